"""
Demo authoring API — demos and their steps.

Security:
  - Requires a Supabase Bearer token
  - Every query is scoped to the caller's profile (owner_id)
  - Other users' demos answer 404, never 403, so ids can't be probed
"""

import datetime
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel, Field
from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.media_upload import upload_media
from app.middleware.supabase_auth import SupabaseAuthContext, require_supabase_auth
from app.models.database import get_db
from app.models.tables import Demo, DemoStep, DemoView, ShareLink

import structlog

logger = structlog.get_logger()
router = APIRouter(prefix="/v1/demos", tags=["demos"])

MAX_IMAGE_BYTES = 10 * 1024 * 1024

# Columns that accept a PATCH value but never null
DEMO_NOT_NULL = frozenset({"title", "is_public"})
STEP_NOT_NULL = frozenset({"order_index", "annotations"})


# --- Schemas ---

class DemoCreate(BaseModel):
    title: str = Field(min_length=1, max_length=500)
    description: str | None = None
    is_public: bool = True


class DemoUpdate(BaseModel):
    title: str | None = Field(default=None, min_length=1, max_length=500)
    description: str | None = None
    is_public: bool | None = None
    thumbnail_url: str | None = None
    published_url: str | None = None


class DemoOut(BaseModel):
    id: UUID
    title: str
    description: str | None
    is_public: bool
    thumbnail_url: str | None = None
    created_at: datetime.datetime | None = None
    updated_at: datetime.datetime | None = None

    model_config = {"from_attributes": True}


class StepCreate(BaseModel):
    title: str | None = None
    description: str | None = None
    image_url: str | None = None
    annotations: list = []


class StepUpdate(BaseModel):
    title: str | None = None
    description: str | None = None
    image_url: str | None = None
    order_index: int | None = Field(default=None, ge=0)
    annotations: list | None = None


class StepOut(BaseModel):
    id: UUID
    title: str | None
    description: str | None
    image_url: str | None
    order_index: int
    annotations: list = []

    model_config = {"from_attributes": True}


# --- Helpers ---

async def get_owned_demo(db: AsyncSession, demo_id: UUID, auth: SupabaseAuthContext) -> Demo:
    stmt = select(Demo).where(Demo.id == demo_id, Demo.owner_id == auth.profile_id)
    result = await db.execute(stmt)
    demo = result.scalar_one_or_none()
    if not demo:
        raise HTTPException(status_code=404, detail="Demo not found")
    return demo


async def list_steps(db: AsyncSession, demo_id: UUID) -> list[DemoStep]:
    result = await db.execute(
        select(DemoStep).where(DemoStep.demo_id == demo_id).order_by(DemoStep.order_index)
    )
    return list(result.scalars().all())


def _apply_changes(row, changes: dict, not_null: frozenset[str]):
    """PATCH semantics: set only what was sent. Explicit nulls on NOT NULL columns are a 422."""
    rejected = sorted(field for field, value in changes.items() if value is None and field in not_null)
    if rejected:
        raise HTTPException(status_code=422, detail=f"Fields may not be null: {', '.join(rejected)}")
    for field, value in changes.items():
        setattr(row, field, value)


async def _get_step(db: AsyncSession, demo_id: UUID, step_id: UUID) -> DemoStep:
    result = await db.execute(
        select(DemoStep).where(DemoStep.id == step_id, DemoStep.demo_id == demo_id)
    )
    step = result.scalar_one_or_none()
    if not step:
        raise HTTPException(status_code=404, detail="Step not found")
    return step


# --- Demos ---

@router.get("", response_model=list[DemoOut])
async def list_demos(
    auth: SupabaseAuthContext = Depends(require_supabase_auth),
    db: AsyncSession = Depends(get_db),
):
    stmt = (
        select(Demo)
        .where(Demo.owner_id == auth.profile_id)
        .order_by(Demo.created_at.desc())
    )
    result = await db.execute(stmt)
    return result.scalars().all()


@router.post("", response_model=DemoOut, status_code=201)
async def create_demo(
    req: DemoCreate,
    auth: SupabaseAuthContext = Depends(require_supabase_auth),
    db: AsyncSession = Depends(get_db),
):
    demo = Demo(
        title=req.title.strip(),
        description=req.description,
        is_public=req.is_public,
        owner_id=auth.profile_id,
    )
    db.add(demo)
    await db.commit()
    await db.refresh(demo)

    logger.info("demo_created", demo_id=str(demo.id), owner_id=str(auth.profile_id))
    return demo


@router.get("/{demo_id}", response_model=DemoOut)
async def get_demo(
    demo_id: UUID,
    auth: SupabaseAuthContext = Depends(require_supabase_auth),
    db: AsyncSession = Depends(get_db),
):
    return await get_owned_demo(db, demo_id, auth)


@router.patch("/{demo_id}", response_model=DemoOut)
async def update_demo(
    demo_id: UUID,
    req: DemoUpdate,
    auth: SupabaseAuthContext = Depends(require_supabase_auth),
    db: AsyncSession = Depends(get_db),
):
    demo = await get_owned_demo(db, demo_id, auth)
    _apply_changes(demo, req.model_dump(exclude_unset=True), DEMO_NOT_NULL)
    demo.updated_at = datetime.datetime.now(datetime.timezone.utc)
    await db.commit()
    await db.refresh(demo)
    return demo


@router.delete("/{demo_id}", status_code=204)
async def delete_demo(
    demo_id: UUID,
    auth: SupabaseAuthContext = Depends(require_supabase_auth),
    db: AsyncSession = Depends(get_db),
):
    """Deleting a demo takes its steps, share links and view records with it."""
    demo = await get_owned_demo(db, demo_id, auth)

    await db.execute(delete(DemoView).where(DemoView.demo_id == demo.id))
    await db.execute(delete(ShareLink).where(ShareLink.demo_id == demo.id))
    await db.execute(delete(DemoStep).where(DemoStep.demo_id == demo.id))
    await db.delete(demo)
    await db.commit()

    logger.info("demo_deleted", demo_id=str(demo_id))


# --- Steps ---

@router.get("/{demo_id}/steps", response_model=list[StepOut])
async def get_steps(
    demo_id: UUID,
    auth: SupabaseAuthContext = Depends(require_supabase_auth),
    db: AsyncSession = Depends(get_db),
):
    await get_owned_demo(db, demo_id, auth)
    return await list_steps(db, demo_id)


@router.post("/{demo_id}/steps", response_model=StepOut, status_code=201)
async def create_step(
    demo_id: UUID,
    req: StepCreate,
    auth: SupabaseAuthContext = Depends(require_supabase_auth),
    db: AsyncSession = Depends(get_db),
):
    await get_owned_demo(db, demo_id, auth)

    # Append to the end
    result = await db.execute(
        select(func.max(DemoStep.order_index)).where(DemoStep.demo_id == demo_id)
    )
    last_index = result.scalar_one_or_none()
    next_index = 0 if last_index is None else last_index + 1

    step = DemoStep(
        demo_id=demo_id,
        title=req.title or f"Step {next_index + 1}",
        description=req.description,
        image_url=req.image_url,
        order_index=next_index,
        annotations=req.annotations,
    )
    db.add(step)
    await db.commit()
    await db.refresh(step)
    return step


@router.patch("/{demo_id}/steps/{step_id}", response_model=StepOut)
async def update_step(
    demo_id: UUID,
    step_id: UUID,
    req: StepUpdate,
    auth: SupabaseAuthContext = Depends(require_supabase_auth),
    db: AsyncSession = Depends(get_db),
):
    await get_owned_demo(db, demo_id, auth)
    step = await _get_step(db, demo_id, step_id)
    _apply_changes(step, req.model_dump(exclude_unset=True), STEP_NOT_NULL)
    await db.commit()
    await db.refresh(step)
    return step


@router.delete("/{demo_id}/steps/{step_id}", status_code=204)
async def delete_step(
    demo_id: UUID,
    step_id: UUID,
    auth: SupabaseAuthContext = Depends(require_supabase_auth),
    db: AsyncSession = Depends(get_db),
):
    await get_owned_demo(db, demo_id, auth)
    step = await _get_step(db, demo_id, step_id)
    await db.delete(step)
    await db.commit()


@router.put("/{demo_id}/steps/{step_id}/image", response_model=StepOut)
async def upload_step_image(
    demo_id: UUID,
    step_id: UUID,
    request: Request,
    auth: SupabaseAuthContext = Depends(require_supabase_auth),
    db: AsyncSession = Depends(get_db),
):
    """Raw image body in, hosted URL stored on the step."""
    await get_owned_demo(db, demo_id, auth)
    step = await _get_step(db, demo_id, step_id)

    body = await request.body()
    if not body:
        raise HTTPException(status_code=400, detail="Empty upload")
    if len(body) > MAX_IMAGE_BYTES:
        raise HTTPException(status_code=413, detail="Image too large (max 10MB)")

    content_type = request.headers.get("content-type", "application/octet-stream")
    step.image_url = await upload_media(body, content_type)
    await db.commit()
    await db.refresh(step)
    return step
