"""Pytest configuration."""

import os

# Ensure test environment
os.environ.setdefault("DF_DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("DF_DEBUG", "true")
os.environ.setdefault("DF_ANALYTICS_TIMEZONE", "UTC")
os.environ.setdefault("DF_CLOUDINARY_CLOUD_NAME", "")

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from app.core.share_token import generate_share_token
from app.middleware.rate_limit import reset_rate_limits
from app.models.tables import Base, Demo, DemoStep, Profile, ShareLink


@pytest.fixture(autouse=True)
def _clear_rate_limits():
    reset_rate_limits()
    yield
    reset_rate_limits()


@pytest.fixture
async def engine():
    engine = create_async_engine("sqlite+aiosqlite://", poolclass=StaticPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
async def db(engine):
    session_maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with session_maker() as session:
        yield session


@pytest.fixture
async def owner(db):
    profile = Profile(supabase_id="sb-owner-1", email="owner@example.com", full_name="Demo Owner")
    db.add(profile)
    await db.commit()
    return profile


@pytest.fixture
def make_demo(db, owner):
    async def _make(title="Onboarding tour", steps=3, is_public=True):
        demo = Demo(title=title, owner_id=owner.id, is_public=is_public)
        db.add(demo)
        await db.flush()
        for i in range(steps):
            db.add(DemoStep(demo_id=demo.id, title=f"Step {i + 1}", order_index=i, annotations=[]))
        await db.commit()
        return demo
    return _make


@pytest.fixture
def make_link(db):
    async def _make(demo, **fields):
        link = ShareLink(
            demo_id=demo.id,
            token=fields.pop("token", None) or generate_share_token(),
            is_active=fields.pop("is_active", True),
            view_count=fields.pop("view_count", 0),
            **fields,
        )
        db.add(link)
        await db.commit()
        return link
    return _make
