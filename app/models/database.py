"""Async engine, session factory and the get_db dependency."""

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from app.config import get_settings

# Built on first use so alembic and the test suite can import the models
# without a reachable database.
_engine: AsyncEngine | None = None
_session_maker: async_sessionmaker | None = None


def _engine_options(database_url: str) -> dict:
    settings = get_settings()
    options = {"pool_pre_ping": True, "echo": settings.debug}
    # SQLite (dev/tests) uses a single-connection pool without sizing knobs
    if not database_url.startswith("sqlite"):
        options.update(pool_size=settings.db_pool_size, max_overflow=settings.db_max_overflow)
    return options


def get_engine() -> AsyncEngine:
    global _engine
    if _engine is None:
        database_url = get_settings().database_url
        _engine = create_async_engine(database_url, **_engine_options(database_url))
    return _engine


def get_session_maker() -> async_sessionmaker:
    global _session_maker
    if _session_maker is None:
        _session_maker = async_sessionmaker(get_engine(), class_=AsyncSession, expire_on_commit=False)
    return _session_maker


async def dispose_engine():
    """Close pooled connections on shutdown."""
    global _engine, _session_maker
    if _engine is not None:
        await _engine.dispose()
    _engine = None
    _session_maker = None


async def get_db() -> AsyncSession:
    """FastAPI dependency: one session per request, shared by every store it builds."""
    async with get_session_maker()() as session:
        yield session
