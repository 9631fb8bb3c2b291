"""
Viewer endpoints — what the player calls. No account required.

GET  /shared/{token}         validate the link, return demo + steps (no view counted)
POST /shared/{token}/views   validate again, open a tracked session (counts one view)
GET  /demo/{demo_id}         public demos, or private ones for their owner
POST /demo/{demo_id}/views   open a tracked session without a share link

Guard failures are the only errors a viewer ever sees from this module:
  404 link_invalid, 410 link_expired, 403 link_exhausted.
Session opening is best-effort; view_id comes back null when tracking failed
and the player carries on regardless.
"""

import datetime
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.demos import DemoOut, StepOut, list_steps
from app.config import get_settings
from app.core.errors import DemoNotFound, ShareLinkError
from app.core.share_guard import LinkContext, validate_share_token
from app.core.view_session import ViewSession
from app.core.view_store import ViewEventStore
from app.middleware.rate_limit import get_real_ip, rate_limit_ip, rate_limit_tracking
from app.middleware.supabase_auth import SupabaseAuthContext, optional_supabase_auth
from app.models.database import get_db
from app.models.tables import Demo

import structlog

logger = structlog.get_logger()
router = APIRouter(tags=["viewer"])


# --- Schemas ---

class LinkInfo(BaseModel):
    view_count: int
    max_views: int | None
    views_remaining: int | None
    expires_at: datetime.datetime | None


class DemoPlayback(BaseModel):
    demo: DemoOut
    steps: list[StepOut]
    link: LinkInfo | None = None


class ViewOpened(BaseModel):
    view_id: UUID | None
    heartbeat_seconds: float
    step_advance_seconds: float


# --- Helpers ---

def _http_error(exc: ShareLinkError | DemoNotFound) -> HTTPException:
    return HTTPException(status_code=exc.status_code, detail={"error": exc.code, "message": str(exc)})


async def _guard(db: AsyncSession, token: str) -> LinkContext:
    try:
        return await validate_share_token(db, token)
    except ShareLinkError as exc:
        raise _http_error(exc)


async def _load_demo(db: AsyncSession, demo_id: UUID) -> Demo:
    result = await db.execute(select(Demo).where(Demo.id == demo_id))
    demo = result.scalar_one_or_none()
    if not demo:
        raise _http_error(DemoNotFound())
    return demo


def _can_view(demo: Demo, auth: SupabaseAuthContext | None) -> bool:
    if demo.is_public:
        return True
    return auth is not None and demo.owner_id == auth.profile_id


def _opened(view) -> ViewOpened:
    settings = get_settings()
    return ViewOpened(
        view_id=view.id if view is not None else None,
        heartbeat_seconds=settings.progress_heartbeat_seconds,
        step_advance_seconds=settings.step_advance_seconds,
    )


# --- Share link playback ---

@router.get("/shared/{token}", response_model=DemoPlayback)
async def get_shared_demo(
    token: str,
    request: Request,
    db: AsyncSession = Depends(get_db),
):
    rate_limit_ip(request)
    ctx = await _guard(db, token)
    demo = await _load_demo(db, ctx.demo_id)
    steps = await list_steps(db, demo.id)

    return DemoPlayback(
        demo=DemoOut.model_validate(demo),
        steps=[StepOut.model_validate(s) for s in steps],
        link=LinkInfo(
            view_count=ctx.view_count,
            max_views=ctx.max_views,
            views_remaining=ctx.views_remaining,
            expires_at=ctx.expires_at,
        ),
    )


@router.post("/shared/{token}/views", response_model=ViewOpened, status_code=201)
async def open_shared_view(
    token: str,
    request: Request,
    db: AsyncSession = Depends(get_db),
):
    rate_limit_ip(request)
    ctx = await _guard(db, token)

    session = ViewSession(ViewEventStore(db))
    view = await session.open(
        ctx.demo_id,
        share_link_id=ctx.link_id,
        viewer_ip=get_real_ip(request),
    )
    return _opened(view)


# --- Direct playback ---

@router.get("/demo/{demo_id}", response_model=DemoPlayback)
async def get_demo_for_playback(
    demo_id: UUID,
    auth: SupabaseAuthContext | None = Depends(optional_supabase_auth),
    db: AsyncSession = Depends(get_db),
):
    demo = await _load_demo(db, demo_id)
    if not _can_view(demo, auth):
        raise _http_error(DemoNotFound())
    steps = await list_steps(db, demo.id)
    return DemoPlayback(
        demo=DemoOut.model_validate(demo),
        steps=[StepOut.model_validate(s) for s in steps],
    )


@router.post("/demo/{demo_id}/views", response_model=ViewOpened, status_code=201)
async def open_direct_view(
    demo_id: UUID,
    request: Request,
    auth: SupabaseAuthContext | None = Depends(optional_supabase_auth),
    db: AsyncSession = Depends(get_db),
):
    rate_limit_tracking(request)
    demo = await _load_demo(db, demo_id)
    if not _can_view(demo, auth):
        raise _http_error(DemoNotFound())

    session = ViewSession(ViewEventStore(db))
    view = await session.open(demo.id, viewer_ip=get_real_ip(request))
    return _opened(view)
