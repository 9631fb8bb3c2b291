"""Time helpers shared by the guard, the view store and the aggregator."""

from datetime import datetime, timezone, tzinfo
from zoneinfo import ZoneInfo

from app.config import get_settings


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC (SQLite drops tzinfo on the way back)."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def analytics_zone() -> tzinfo:
    """Zone used for calendar-day bucketing. Falls back to the server's local zone."""
    name = get_settings().analytics_timezone
    if name:
        return ZoneInfo(name)
    return datetime.now().astimezone().tzinfo
