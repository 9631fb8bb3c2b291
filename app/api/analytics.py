"""
Analytics API — Supabase-authenticated dashboard endpoints.
User and demo summaries are scoped to the caller's own demos.
"""

from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.demos import get_owned_demo
from app.core.analytics import (
    AnalyticsSummary,
    parse_time_range,
    summarize_demo,
    summarize_owner,
    summarize_platform,
)
from app.middleware.supabase_auth import SupabaseAuthContext, require_admin, require_supabase_auth
from app.models.database import get_db

router = APIRouter(tags=["analytics"])


@router.get("/v1/analytics/summary", response_model=AnalyticsSummary)
async def user_summary(
    auth: SupabaseAuthContext = Depends(require_supabase_auth),
    db: AsyncSession = Depends(get_db),
    time_range: str = Query("7d"),
):
    """Views, viewers, time spent, completion and top demos across all of the caller's demos."""
    return await summarize_owner(db, auth.profile_id, parse_time_range(time_range))


@router.get("/v1/analytics/demos/{demo_id}", response_model=AnalyticsSummary)
async def demo_summary(
    demo_id: UUID,
    auth: SupabaseAuthContext = Depends(require_supabase_auth),
    db: AsyncSession = Depends(get_db),
    time_range: str = Query("7d"),
):
    await get_owned_demo(db, demo_id, auth)
    return await summarize_demo(db, demo_id, parse_time_range(time_range))


@router.get("/v1/admin/analytics", response_model=AnalyticsSummary)
async def platform_summary(
    auth: SupabaseAuthContext = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
    time_range: str = Query("7d"),
):
    return await summarize_platform(db, parse_time_range(time_range))
