"""
View sessions — one tracked playback per viewer.

Tracking is best-effort, playback is not. Store errors arrive as
TrackingFailure, but a dropped connection or a driver timeout can surface
as anything, so every failure is logged here and swallowed. Callers get
None/False back and carry on. The next heartbeat is the only retry.
"""

from uuid import UUID

from app.core.errors import TrackingFailure
from app.core.view_store import ViewEventStore
from app.models.tables import DemoView

import structlog

logger = structlog.get_logger()


def _clamp(value: int, low: int, high: int | None = None) -> int:
    value = max(int(value), low)
    if high is not None:
        value = min(value, high)
    return value


def _failure_context(exc: Exception) -> dict:
    return {"error": str(exc) or repr(exc), "error_type": type(exc).__name__}


class ViewSession:
    def __init__(self, store: ViewEventStore):
        self.store = store

    async def open(
        self,
        demo_id: UUID,
        share_link_id: UUID | None = None,
        total_steps: int | None = None,
        viewer_ip: str | None = None,
    ) -> DemoView | None:
        """
        Create the view record, then count it against the share link.

        The record is committed before the counter moves, so a crash in
        between loses a count rather than inventing one. A failed increment
        is logged and the session stays usable.
        """
        try:
            if total_steps is None:
                total_steps = await self.store.count_steps(demo_id)
            view = await self.store.create_view(
                demo_id=demo_id,
                total_steps=total_steps,
                share_link_id=share_link_id,
                viewer_ip=viewer_ip,
            )
        except Exception as exc:
            logger.warning("view_track_failed", demo_id=str(demo_id), **_failure_context(exc))
            return None

        if share_link_id is not None:
            try:
                await self.store.increment_link_views(share_link_id)
            except Exception as exc:
                logger.warning("share_link_view_increment_failed",
                               link_id=str(share_link_id), view_id=str(view.id), **_failure_context(exc))

        logger.info("view_tracked",
                    view_id=str(view.id),
                    demo_id=str(demo_id),
                    share_link_id=str(share_link_id) if share_link_id else None,
                    total_steps=view.total_steps)
        return view

    async def update_progress(self, view_id: UUID, time_spent: int, completed_steps: int) -> bool:
        """Last write wins. completed_steps is clamped to the record's total_steps."""
        try:
            view = await self.store.get_view(view_id)
            if view is None:
                raise TrackingFailure(f"view {view_id} not found")
            time_spent = _clamp(time_spent, 0)
            completed_steps = _clamp(completed_steps, 0, view.total_steps)
            await self.store.update_progress(view_id, time_spent, completed_steps)
        except Exception as exc:
            logger.warning("view_progress_failed", view_id=str(view_id), **_failure_context(exc))
            return False
        return True

    async def close(self, view_id: UUID, time_spent: int, completed_steps: int | None = None) -> bool:
        """Final progress write. Keeps the stored step count when none is given."""
        if completed_steps is None:
            try:
                view = await self.store.get_view(view_id)
                if view is None:
                    raise TrackingFailure(f"view {view_id} not found")
            except Exception as exc:
                logger.warning("view_close_failed", view_id=str(view_id), **_failure_context(exc))
                return False
            completed_steps = view.completed_steps

        ok = await self.update_progress(view_id, time_spent, completed_steps)
        if ok:
            logger.info("view_closed", view_id=str(view_id), time_spent=time_spent)
        return ok
