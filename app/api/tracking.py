"""
Progress tracking — heartbeat and final writes from the player.

POST /v1/views/{view_id}/progress   every ~10s while the player is open
POST /v1/views/{view_id}/close      on finish / navigate away / tab close

Always 202. A write that failed is reported as "dropped" but never as an
error: the player must not react to analytics trouble.
"""

from uuid import UUID

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.view_session import ViewSession
from app.core.view_store import ViewEventStore
from app.middleware.rate_limit import rate_limit_tracking
from app.models.database import get_db

router = APIRouter(prefix="/v1/views", tags=["tracking"])


class ProgressPayload(BaseModel):
    time_spent: int = Field(ge=0)
    completed_steps: int = Field(ge=0)


class ClosePayload(BaseModel):
    time_spent: int = Field(ge=0)
    completed_steps: int | None = Field(default=None, ge=0)


def _ack(ok: bool) -> dict:
    return {"status": "accepted" if ok else "dropped"}


@router.post("/{view_id}/progress", status_code=202)
async def report_progress(
    view_id: UUID,
    payload: ProgressPayload,
    request: Request,
    db: AsyncSession = Depends(get_db),
):
    rate_limit_tracking(request)
    session = ViewSession(ViewEventStore(db))
    ok = await session.update_progress(view_id, payload.time_spent, payload.completed_steps)
    return _ack(ok)


@router.post("/{view_id}/close", status_code=202)
async def close_view(
    view_id: UUID,
    payload: ClosePayload,
    request: Request,
    db: AsyncSession = Depends(get_db),
):
    rate_limit_tracking(request)
    session = ViewSession(ViewEventStore(db))
    ok = await session.close(view_id, payload.time_spent, payload.completed_steps)
    return _ack(ok)
