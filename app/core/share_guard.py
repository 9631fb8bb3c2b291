"""
Share link guard — decides whether a token grants playback access.

Rules, in order:
  1. No active link with exactly this token  -> LinkInvalid
  2. expires_at set and not in the future    -> LinkExpired
  3. max_views set and view_count >= ceiling -> LinkExhausted

Validation is a pure read. The view counter is bumped separately, once,
when a session is actually opened (see ViewSession.open), so a client
re-fetching the link does not burn a view.
"""

from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.clock import ensure_utc, utcnow
from app.core.errors import LinkExhausted, LinkExpired, LinkInvalid
from app.core.share_token import is_well_formed_token
from app.models.tables import ShareLink

import structlog

logger = structlog.get_logger()


@dataclass(frozen=True)
class LinkContext:
    link_id: UUID
    demo_id: UUID
    view_count: int
    max_views: int | None
    expires_at: datetime | None

    @property
    def views_remaining(self) -> int | None:
        if self.max_views is None:
            return None
        return max(self.max_views - self.view_count, 0)


def check_link(link: ShareLink | None, now: datetime | None = None) -> LinkContext:
    """Apply the usability rules to an already-loaded link row."""
    if link is None or not link.is_active:
        raise LinkInvalid()

    now = now or utcnow()
    expires_at = ensure_utc(link.expires_at) if link.expires_at else None
    if expires_at is not None and expires_at <= now:
        raise LinkExpired()

    view_count = link.view_count or 0
    if link.max_views is not None and view_count >= link.max_views:
        raise LinkExhausted()

    return LinkContext(
        link_id=link.id,
        demo_id=link.demo_id,
        view_count=view_count,
        max_views=link.max_views,
        expires_at=expires_at,
    )


async def validate_share_token(
    db: AsyncSession,
    token: str,
    now: datetime | None = None,
) -> LinkContext:
    """Look up a link by exact token and check it. Never mutates anything."""
    if not is_well_formed_token(token):
        raise LinkInvalid()

    stmt = select(ShareLink).where(
        ShareLink.token == token,
        ShareLink.is_active == True,
    )
    result = await db.execute(stmt)
    link = result.scalar_one_or_none()

    try:
        return check_link(link, now)
    except (LinkInvalid, LinkExpired, LinkExhausted) as exc:
        logger.info("share_link_rejected", reason=exc.code,
                    link_id=str(link.id) if link else None)
        raise
