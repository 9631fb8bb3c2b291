"""
View event store — durable create/update/query for demo_views rows.

Write errors surface as TrackingFailure, read errors as FetchFailure.
The session is rolled back before either is raised so the caller can
keep using it.
"""

from datetime import datetime
from typing import Iterable
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.clock import utcnow
from app.core.errors import FetchFailure, TrackingFailure
from app.models.tables import ANONYMOUS_VIEWER, DemoStep, DemoView, ShareLink

import structlog

logger = structlog.get_logger()


class ViewEventStore:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def _rollback(self):
        try:
            await self.db.rollback()
        except SQLAlchemyError as exc:
            logger.warning("view_store_rollback_failed", error=str(exc))

    async def count_steps(self, demo_id: UUID) -> int:
        try:
            result = await self.db.execute(
                select(func.count(DemoStep.id)).where(DemoStep.demo_id == demo_id)
            )
        except SQLAlchemyError as exc:
            await self._rollback()
            raise TrackingFailure(f"step count failed: {exc}") from exc
        return result.scalar_one()

    async def create_view(
        self,
        demo_id: UUID,
        total_steps: int,
        share_link_id: UUID | None = None,
        viewer_ip: str | None = None,
        viewer_location: str | None = None,
    ) -> DemoView:
        view = DemoView(
            demo_id=demo_id,
            share_link_id=share_link_id,
            viewer_ip=(viewer_ip or ANONYMOUS_VIEWER)[:45],
            viewer_location=viewer_location,
            viewed_at=utcnow(),
            time_spent=0,
            completed_steps=0,
            total_steps=max(total_steps, 0),
        )
        try:
            self.db.add(view)
            await self.db.commit()
        except SQLAlchemyError as exc:
            await self._rollback()
            raise TrackingFailure(f"view insert failed: {exc}") from exc
        return view

    async def get_view(self, view_id: UUID) -> DemoView | None:
        try:
            result = await self.db.execute(select(DemoView).where(DemoView.id == view_id))
        except SQLAlchemyError as exc:
            await self._rollback()
            raise TrackingFailure(f"view lookup failed: {exc}") from exc
        return result.scalar_one_or_none()

    async def update_progress(self, view_id: UUID, time_spent: int, completed_steps: int) -> None:
        """Overwrite the two mutable fields. Nothing else on the row is touched."""
        try:
            result = await self.db.execute(
                update(DemoView)
                .where(DemoView.id == view_id)
                .values(time_spent=time_spent, completed_steps=completed_steps)
            )
            await self.db.commit()
        except SQLAlchemyError as exc:
            await self._rollback()
            raise TrackingFailure(f"view update failed: {exc}") from exc
        if result.rowcount == 0:
            raise TrackingFailure(f"view {view_id} not found")

    async def increment_link_views(self, link_id: UUID) -> None:
        """view_count = view_count + 1 in a single statement (no lost updates)."""
        try:
            result = await self.db.execute(
                update(ShareLink)
                .where(ShareLink.id == link_id)
                .values(view_count=ShareLink.view_count + 1)
            )
            await self.db.commit()
        except SQLAlchemyError as exc:
            await self._rollback()
            raise TrackingFailure(f"share link increment failed: {exc}") from exc
        if result.rowcount == 0:
            raise TrackingFailure(f"share link {link_id} not found")

    async def fetch_views(self, demo_ids: Iterable[UUID], since: datetime) -> list[DemoView]:
        """All views of the given demos with viewed_at >= since (future rows included)."""
        demo_ids = list(demo_ids)
        if not demo_ids:
            return []
        try:
            result = await self.db.execute(
                select(DemoView)
                .where(DemoView.demo_id.in_(demo_ids), DemoView.viewed_at >= since)
                .order_by(DemoView.viewed_at)
            )
        except SQLAlchemyError as exc:
            await self._rollback()
            raise FetchFailure(f"view fetch failed: {exc}") from exc
        return list(result.scalars().all())
