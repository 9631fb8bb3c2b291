"""
Share link management — owners mint and toggle token links for a demo.

The token is the whole credential: 256 random bits, shown as the
/shared/{token} URL. Expiry and view ceilings are optional.
"""

import datetime
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.demos import get_owned_demo
from app.config import get_settings
from app.core.share_token import generate_share_token
from app.middleware.supabase_auth import SupabaseAuthContext, require_supabase_auth
from app.models.database import get_db
from app.models.tables import Demo, ShareLink

import structlog

logger = structlog.get_logger()
router = APIRouter(tags=["share-links"])


class CreateShareLinkRequest(BaseModel):
    expires_in_days: int | None = Field(default=None, ge=1, le=365)
    max_views: int | None = Field(default=None, ge=1)


class ShareLinkResponse(BaseModel):
    id: UUID
    demo_id: UUID
    url: str
    token: str
    expires_at: datetime.datetime | None
    is_active: bool
    view_count: int
    max_views: int | None
    created_at: datetime.datetime | None = None


def _to_response(link: ShareLink) -> ShareLinkResponse:
    settings = get_settings()
    return ShareLinkResponse(
        id=link.id,
        demo_id=link.demo_id,
        url=f"{settings.base_url}/shared/{link.token}",
        token=link.token,
        expires_at=link.expires_at,
        is_active=link.is_active,
        view_count=link.view_count or 0,
        max_views=link.max_views,
        created_at=link.created_at,
    )


async def _get_owned_link(db: AsyncSession, link_id: UUID, auth: SupabaseAuthContext) -> ShareLink:
    stmt = (
        select(ShareLink)
        .join(Demo, Demo.id == ShareLink.demo_id)
        .where(ShareLink.id == link_id, Demo.owner_id == auth.profile_id)
    )
    result = await db.execute(stmt)
    link = result.scalar_one_or_none()
    if not link:
        raise HTTPException(status_code=404, detail="Share link not found")
    return link


@router.post("/v1/demos/{demo_id}/share-links", response_model=ShareLinkResponse, status_code=201)
async def create_share_link(
    demo_id: UUID,
    req: CreateShareLinkRequest,
    auth: SupabaseAuthContext = Depends(require_supabase_auth),
    db: AsyncSession = Depends(get_db),
):
    await get_owned_demo(db, demo_id, auth)

    expires_at = None
    if req.expires_in_days:
        expires_at = datetime.datetime.now(datetime.timezone.utc) + datetime.timedelta(days=req.expires_in_days)

    link = ShareLink(
        demo_id=demo_id,
        token=generate_share_token(),
        expires_at=expires_at,
        is_active=True,
        view_count=0,
        max_views=req.max_views,
    )
    db.add(link)
    await db.commit()
    await db.refresh(link)

    logger.info("share_link_created",
                link_id=str(link.id),
                demo_id=str(demo_id),
                expires_at=expires_at.isoformat() if expires_at else None,
                max_views=req.max_views)
    return _to_response(link)


@router.get("/v1/demos/{demo_id}/share-links", response_model=list[ShareLinkResponse])
async def list_share_links(
    demo_id: UUID,
    auth: SupabaseAuthContext = Depends(require_supabase_auth),
    db: AsyncSession = Depends(get_db),
):
    await get_owned_demo(db, demo_id, auth)
    result = await db.execute(
        select(ShareLink)
        .where(ShareLink.demo_id == demo_id)
        .order_by(ShareLink.created_at.desc())
    )
    return [_to_response(link) for link in result.scalars().all()]


@router.patch("/v1/share-links/{link_id}/deactivate", response_model=ShareLinkResponse)
async def deactivate_share_link(
    link_id: UUID,
    auth: SupabaseAuthContext = Depends(require_supabase_auth),
    db: AsyncSession = Depends(get_db),
):
    link = await _get_owned_link(db, link_id, auth)
    link.is_active = False
    await db.commit()
    logger.info("share_link_deactivated", link_id=str(link_id))
    return _to_response(link)


@router.patch("/v1/share-links/{link_id}/activate", response_model=ShareLinkResponse)
async def activate_share_link(
    link_id: UUID,
    auth: SupabaseAuthContext = Depends(require_supabase_auth),
    db: AsyncSession = Depends(get_db),
):
    link = await _get_owned_link(db, link_id, auth)
    link.is_active = True
    await db.commit()
    logger.info("share_link_activated", link_id=str(link_id))
    return _to_response(link)
