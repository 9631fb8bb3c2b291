"""
Analytics aggregation — read-time projection over demo_views.

Nothing here is stored. Every dashboard call fetches the raw view rows for
a set of demos over a trailing N-day window and folds them into:

  total_views      count of rows
  unique_viewers   distinct viewer_ip values ("anonymous" is one bucket)
  avg_time_spent   sum(time_spent) / max(total, 1)
  completion_rate  rows with completed_steps == total_steps, as a percentage
  views_by_day     one bucket per local calendar day, oldest first, zero-filled
  top_demos        per-demo counts, desc, ties by title, top 5

Device and location breakdowns are not measured; they are returned empty.
A failed read never raises: the caller gets a zeroed summary with
degraded=True so the dashboard can offer a retry.
"""

import datetime
from collections import Counter
from typing import Iterable, Sequence
from uuid import UUID

from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import get_settings
from app.core.clock import analytics_zone, ensure_utc, utcnow
from app.core.errors import FetchFailure
from app.core.view_store import ViewEventStore
from app.models.tables import Demo, DemoView

import structlog

logger = structlog.get_logger()

DEFAULT_WINDOW_DAYS = 7
FALLBACK_WINDOW_DAYS = 90
MAX_WINDOW_DAYS = 365


class DayBucket(BaseModel):
    date: datetime.date
    count: int


class TopDemo(BaseModel):
    id: UUID
    title: str
    views: int


class AnalyticsSummary(BaseModel):
    window_days: int
    total_views: int = 0
    unique_viewers: int = 0
    avg_time_spent: float = 0.0
    completion_rate: float = 0.0
    views_by_day: list[DayBucket] = []
    top_demos: list[TopDemo] = []
    device_types: list[dict] = []
    locations: list[dict] = []
    degraded: bool = False


def parse_time_range(value: str | int | None) -> int:
    """'7d' / '30d' / '90d' (or a bare day count) -> days. Unknown values get 90."""
    if value is None:
        return DEFAULT_WINDOW_DAYS
    raw = str(value).strip().lower()
    if raw.endswith("d"):
        raw = raw[:-1]
    if raw.isdigit() and 1 <= int(raw) <= MAX_WINDOW_DAYS:
        return int(raw)
    return FALLBACK_WINDOW_DAYS


def _day_range(window_days: int, now: datetime.datetime, tz) -> list[datetime.date]:
    today = now.astimezone(tz).date()
    return [today - datetime.timedelta(days=offset) for offset in range(window_days - 1, -1, -1)]


def zeroed_summary(
    window_days: int,
    now: datetime.datetime | None = None,
    tz=None,
    degraded: bool = False,
) -> AnalyticsSummary:
    now = now or utcnow()
    tz = tz or analytics_zone()
    return AnalyticsSummary(
        window_days=window_days,
        views_by_day=[DayBucket(date=day, count=0) for day in _day_range(window_days, now, tz)],
        degraded=degraded,
    )


def build_summary(
    views: Sequence[DemoView],
    titles: dict[UUID, str],
    window_days: int,
    now: datetime.datetime | None = None,
    tz=None,
) -> AnalyticsSummary:
    """Pure fold over already-fetched rows."""
    now = now or utcnow()
    tz = tz or analytics_zone()
    total = len(views)

    unique_viewers = len({v.viewer_ip for v in views})
    avg_time_spent = sum(v.time_spent or 0 for v in views) / max(total, 1)
    completed = sum(1 for v in views if v.completed_steps == v.total_steps)
    completion_rate = completed / max(total, 1) * 100

    per_day = Counter(ensure_utc(v.viewed_at).astimezone(tz).date() for v in views)
    views_by_day = [DayBucket(date=day, count=per_day.get(day, 0)) for day in _day_range(window_days, now, tz)]

    per_demo = Counter(v.demo_id for v in views)
    ranked = sorted(
        per_demo.items(),
        key=lambda item: (-item[1], titles.get(item[0], ""), str(item[0])),
    )
    limit = get_settings().analytics_top_demos_limit
    top_demos = [
        TopDemo(id=demo_id, title=titles.get(demo_id, ""), views=count)
        for demo_id, count in ranked[:limit]
    ]

    return AnalyticsSummary(
        window_days=window_days,
        total_views=total,
        unique_viewers=unique_viewers,
        avg_time_spent=avg_time_spent,
        completion_rate=completion_rate,
        views_by_day=views_by_day,
        top_demos=top_demos,
    )


async def _fetch_titles(db: AsyncSession, *conditions) -> dict[UUID, str]:
    try:
        result = await db.execute(select(Demo.id, Demo.title).where(*conditions))
    except SQLAlchemyError as exc:
        await db.rollback()
        raise FetchFailure(f"demo lookup failed: {exc}") from exc
    return {row.id: row.title for row in result.all()}


async def summarize(
    db: AsyncSession,
    demo_ids: Iterable[UUID],
    window_days: int,
    titles: dict[UUID, str] | None = None,
    now: datetime.datetime | None = None,
) -> AnalyticsSummary:
    """Summary for a set of demos over [now - window_days, now]."""
    now = now or utcnow()
    demo_ids = set(demo_ids)
    since = now - datetime.timedelta(days=window_days)
    try:
        if titles is None:
            titles = await _fetch_titles(db, Demo.id.in_(demo_ids)) if demo_ids else {}
        views = await ViewEventStore(db).fetch_views(demo_ids, since)
    except FetchFailure as exc:
        logger.warning("analytics_fetch_failed", demos=len(demo_ids), error=str(exc))
        return zeroed_summary(window_days, now, degraded=True)

    return build_summary(views, titles, window_days, now)


async def summarize_owner(
    db: AsyncSession,
    owner_id: UUID,
    window_days: int,
    now: datetime.datetime | None = None,
) -> AnalyticsSummary:
    try:
        titles = await _fetch_titles(db, Demo.owner_id == owner_id)
    except FetchFailure as exc:
        logger.warning("analytics_fetch_failed", owner_id=str(owner_id), error=str(exc))
        return zeroed_summary(window_days, now, degraded=True)
    if not titles:
        return zeroed_summary(window_days, now)
    return await summarize(db, titles.keys(), window_days, titles=titles, now=now)


async def summarize_demo(
    db: AsyncSession,
    demo_id: UUID,
    window_days: int,
    now: datetime.datetime | None = None,
) -> AnalyticsSummary:
    return await summarize(db, [demo_id], window_days, now=now)


async def summarize_platform(
    db: AsyncSession,
    window_days: int,
    now: datetime.datetime | None = None,
) -> AnalyticsSummary:
    """Admin view: every demo on the platform."""
    try:
        titles = await _fetch_titles(db)
    except FetchFailure as exc:
        logger.warning("analytics_fetch_failed", scope="platform", error=str(exc))
        return zeroed_summary(window_days, now, degraded=True)
    if not titles:
        return zeroed_summary(window_days, now)
    return await summarize(db, titles.keys(), window_days, titles=titles, now=now)
