"""
Supabase authentication for FastAPI.
Validates JWTs server-side by calling Supabase /auth/v1/user.
Auto-creates the Profile row on first login.
"""

import datetime
from dataclasses import dataclass
from uuid import UUID

import httpx
from fastapi import Depends, HTTPException, Request
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import get_settings
from app.models.database import get_db
from app.models.tables import Profile

import structlog

logger = structlog.get_logger()


@dataclass
class SupabaseAuthContext:
    profile_id: UUID
    supabase_id: str
    email: str
    role: str

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


async def _validate_supabase_token(token: str) -> dict:
    """Call Supabase /auth/v1/user to validate the Bearer token server-side."""
    settings = get_settings()
    try:
        async with httpx.AsyncClient() as client:
            resp = await client.get(
                f"{settings.supabase_url}/auth/v1/user",
                headers={
                    "Authorization": f"Bearer {token}",
                    "apikey": settings.supabase_anon_key,
                },
            )
    except httpx.HTTPError as exc:
        logger.warning("supabase_unreachable", error=str(exc))
        raise HTTPException(status_code=503, detail="Authentication service unavailable")
    if resp.status_code != 200:
        raise HTTPException(status_code=401, detail="Invalid or expired token")
    return resp.json()


async def _get_or_create_profile(supabase_user: dict, db: AsyncSession) -> Profile:
    """Find profile by supabase_id or create it on first login."""
    supabase_id = supabase_user["id"]
    email = supabase_user.get("email", "")
    metadata = supabase_user.get("user_metadata") or {}

    result = await db.execute(select(Profile).where(Profile.supabase_id == supabase_id))
    profile = result.scalar_one_or_none()

    now = datetime.datetime.now(datetime.timezone.utc)
    if profile:
        profile.last_login_at = now
        await db.commit()
        return profile

    profile = Profile(
        supabase_id=supabase_id,
        email=email,
        full_name=metadata.get("full_name", ""),
        avatar_url=metadata.get("avatar_url", ""),
        role="user",
        last_login_at=now,
    )
    db.add(profile)
    await db.commit()
    logger.info("profile_created", profile_id=str(profile.id), email=email)
    return profile


def _bearer_token(request: Request) -> str | None:
    auth_header = request.headers.get("Authorization", "")
    if not auth_header.startswith("Bearer "):
        return None
    return auth_header[7:]


async def _resolve(token: str, db: AsyncSession) -> SupabaseAuthContext:
    supabase_user = await _validate_supabase_token(token)
    profile = await _get_or_create_profile(supabase_user, db)
    if profile.is_active is False:
        raise HTTPException(status_code=403, detail="Account disabled")
    return SupabaseAuthContext(
        profile_id=profile.id,
        supabase_id=profile.supabase_id,
        email=profile.email,
        role=profile.role,
    )


async def require_supabase_auth(
    request: Request, db: AsyncSession = Depends(get_db)
) -> SupabaseAuthContext:
    """FastAPI dependency — extracts Bearer token, validates, returns auth context."""
    token = _bearer_token(request)
    if not token:
        raise HTTPException(status_code=401, detail="Missing Bearer token")
    return await _resolve(token, db)


async def optional_supabase_auth(
    request: Request, db: AsyncSession = Depends(get_db)
) -> SupabaseAuthContext | None:
    """Like require_supabase_auth, but anonymous requests get None."""
    token = _bearer_token(request)
    if not token:
        return None
    return await _resolve(token, db)


async def require_admin(
    auth: SupabaseAuthContext = Depends(require_supabase_auth),
) -> SupabaseAuthContext:
    if not auth.is_admin:
        raise HTTPException(status_code=403, detail="Admin access required")
    return auth
