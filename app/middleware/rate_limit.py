"""
Rate limiter — in-memory sliding window.

Limits:
  - Per IP on share link lookups: configurable (default 30/min).
    Tokens are unguessable, this just keeps brute force expensive.
  - Per IP on tracking writes: configurable (default 120/min).
    A player sends one heartbeat every 10s, so this is generous.
"""

import time
from fastapi import HTTPException, Request
from app.config import get_settings

import structlog

logger = structlog.get_logger()

_memory_store: dict[str, list[float]] = {}

_PRIVATE_PREFIXES = (
    "10.", "172.16.", "172.17.", "172.18.", "172.19.", "172.20.", "172.21.",
    "172.22.", "172.23.", "172.24.", "172.25.", "172.26.", "172.27.", "172.28.",
    "172.29.", "172.30.", "172.31.", "192.168.", "127.", "::1",
)


_SWEEP_THRESHOLD = 10000


def _prune(key: str, cutoff: float) -> list[float]:
    recent = [t for t in _memory_store.get(key, ()) if t > cutoff]
    if recent:
        _memory_store[key] = recent
    else:
        _memory_store.pop(key, None)
    return recent


def _sweep(cutoff: float):
    """Drop every key with no hits left in the window."""
    for key in list(_memory_store):
        _prune(key, cutoff)


def _sliding_window_check(key: str, limit: int, window_seconds: int = 60) -> tuple[bool, int]:
    now = time.time()
    cutoff = now - window_seconds

    # Periodic cleanup so idle IPs don't accumulate
    if len(_memory_store) > _SWEEP_THRESHOLD:
        _sweep(cutoff)

    recent = _prune(key, cutoff)
    current_count = len(recent)

    if current_count >= limit:
        return False, 0

    _memory_store.setdefault(key, []).append(now)
    return True, limit - current_count - 1


def check_rate_limit(key: str, limit: int, window: int = 60):
    allowed, remaining = _sliding_window_check(key, limit, window)
    if not allowed:
        logger.info("rate_limited", key=key.split(":")[0], limit=limit)
        raise HTTPException(
            status_code=429,
            detail="Rate limit exceeded. Slow down.",
            headers={
                "Retry-After": str(window),
                "X-RateLimit-Limit": str(limit),
                "X-RateLimit-Remaining": "0",
            },
        )
    return remaining


def get_real_ip(request: Request) -> str:
    """Extract real client IP from x-forwarded-for or request."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        # First public IP in chain is the client
        ips = [ip.strip() for ip in forwarded.split(",")]
        for ip in ips:
            if not ip.startswith(_PRIVATE_PREFIXES):
                return ip
        return ips[0]
    return request.client.host if request.client else "unknown"


def rate_limit_ip(request: Request, limit: int | None = None):
    settings = get_settings()
    ip = get_real_ip(request)
    return check_rate_limit(
        f"ip:{ip}",
        limit or settings.rate_limit_per_ip_per_minute,
    )


def rate_limit_tracking(request: Request):
    settings = get_settings()
    ip = get_real_ip(request)
    return check_rate_limit(
        f"track:{ip}",
        settings.rate_limit_tracking_per_minute,
    )


def reset_rate_limits():
    _memory_store.clear()
