"""Tests for view sessions and the view event store."""

import asyncio
from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

import pytest
from sqlalchemy import select
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from app.core.errors import TrackingFailure
from app.core.share_token import generate_share_token
from app.core.view_session import ViewSession
from app.core.view_store import ViewEventStore
from app.models.tables import ANONYMOUS_VIEWER, Base, Demo, DemoView, ShareLink


async def _view_count(db, link_id) -> int:
    result = await db.execute(select(ShareLink.view_count).where(ShareLink.id == link_id))
    return result.scalar_one()


async def _reload(db, view_id) -> DemoView:
    result = await db.execute(
        select(DemoView).where(DemoView.id == view_id).execution_options(populate_existing=True)
    )
    return result.scalar_one()


@pytest.fixture
def session(db):
    return ViewSession(ViewEventStore(db))


class TestOpen:
    async def test_creates_zeroed_record_with_step_snapshot(self, db, session, make_demo):
        demo = await make_demo(steps=4)
        view = await session.open(demo.id)

        assert view is not None
        stored = await _reload(db, view.id)
        assert stored.demo_id == demo.id
        assert stored.share_link_id is None
        assert stored.total_steps == 4
        assert stored.time_spent == 0
        assert stored.completed_steps == 0
        assert stored.viewer_ip == ANONYMOUS_VIEWER
        assert stored.viewed_at is not None

    async def test_open_counts_exactly_one_view_on_link(self, db, session, make_demo, make_link):
        demo = await make_demo()
        link = await make_link(demo, view_count=2, max_views=10)

        view = await session.open(demo.id, share_link_id=link.id, viewer_ip="203.0.113.9")

        assert view.share_link_id == link.id
        assert view.viewer_ip == "203.0.113.9"
        assert await _view_count(db, link.id) == 3

    async def test_progress_and_close_do_not_recount(self, db, session, make_demo, make_link):
        demo = await make_demo(steps=3)
        link = await make_link(demo)
        view = await session.open(demo.id, share_link_id=link.id)

        await session.update_progress(view.id, 10, 1)
        await session.update_progress(view.id, 20, 2)
        await session.close(view.id, 30, 3)
        await session.close(view.id, 31)

        assert await _view_count(db, link.id) == 1

    async def test_each_session_counts_once(self, db, session, make_demo, make_link):
        demo = await make_demo()
        link = await make_link(demo)
        for _ in range(3):
            await session.open(demo.id, share_link_id=link.id)
        assert await _view_count(db, link.id) == 3

    async def test_explicit_total_steps_wins_over_lookup(self, session, make_demo):
        demo = await make_demo(steps=2)
        view = await session.open(demo.id, total_steps=7)
        assert view.total_steps == 7

    async def test_store_failure_returns_none(self):
        store = MagicMock(spec=ViewEventStore)
        store.count_steps = AsyncMock(return_value=3)
        store.create_view = AsyncMock(side_effect=TrackingFailure("db down"))
        store.increment_link_views = AsyncMock()

        view = await ViewSession(store).open(uuid4(), share_link_id=uuid4())

        assert view is None
        store.increment_link_views.assert_not_called()

    async def test_failed_increment_keeps_session(self):
        created = DemoView(id=uuid4(), demo_id=uuid4(), total_steps=3)
        store = MagicMock(spec=ViewEventStore)
        store.create_view = AsyncMock(return_value=created)
        store.increment_link_views = AsyncMock(side_effect=TrackingFailure("lock timeout"))

        view = await ViewSession(store).open(created.demo_id, share_link_id=uuid4(), total_steps=3)

        assert view is created
        store.increment_link_views.assert_awaited_once()

    async def test_connection_error_returns_none(self):
        store = MagicMock(spec=ViewEventStore)
        store.create_view = AsyncMock(side_effect=ConnectionRefusedError("connect call failed"))
        store.increment_link_views = AsyncMock()

        view = await ViewSession(store).open(uuid4(), share_link_id=uuid4(), total_steps=3)

        assert view is None
        store.increment_link_views.assert_not_called()

    async def test_unexpected_increment_error_keeps_session(self):
        created = DemoView(id=uuid4(), demo_id=uuid4(), total_steps=3)
        store = MagicMock(spec=ViewEventStore)
        store.create_view = AsyncMock(return_value=created)
        store.increment_link_views = AsyncMock(side_effect=OSError("broken pipe"))

        view = await ViewSession(store).open(created.demo_id, share_link_id=uuid4(), total_steps=3)

        assert view is created

    async def test_concurrent_opens_lose_no_counts(self, tmp_path):
        # File-backed so every session gets its own connection
        engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'views.db'}")
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        session_maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

        async with session_maker() as setup:
            demo = Demo(title="Tour", owner_id=uuid4())
            setup.add(demo)
            await setup.flush()
            link = ShareLink(demo_id=demo.id, token=generate_share_token(), is_active=True, view_count=0)
            setup.add(link)
            await setup.commit()

        async def open_one():
            async with session_maker() as own:
                return await ViewSession(ViewEventStore(own)).open(
                    demo.id, share_link_id=link.id, total_steps=3
                )

        try:
            views = await asyncio.gather(*(open_one() for _ in range(10)))
            assert all(view is not None for view in views)
            async with session_maker() as check:
                assert await _view_count(check, link.id) == 10
        finally:
            await engine.dispose()

    async def test_database_error_becomes_tracking_failure(self):
        db = AsyncMock()
        db.add = MagicMock()
        db.commit = AsyncMock(side_effect=OperationalError("INSERT", {}, Exception("disk I/O error")))

        with pytest.raises(TrackingFailure):
            await ViewEventStore(db).create_view(uuid4(), total_steps=2)
        db.rollback.assert_awaited()


class TestProgress:
    async def test_last_write_wins(self, db, session, make_demo):
        demo = await make_demo(steps=5)
        view = await session.open(demo.id)

        assert await session.update_progress(view.id, 42, 3) is True
        assert await session.update_progress(view.id, 50, 4) is True

        stored = await _reload(db, view.id)
        assert stored.time_spent == 50
        assert stored.completed_steps == 4

    async def test_completed_steps_clamped_to_total(self, db, session, make_demo):
        demo = await make_demo(steps=3)
        view = await session.open(demo.id)

        await session.update_progress(view.id, 12, 9)

        stored = await _reload(db, view.id)
        assert stored.completed_steps == 3

    async def test_negative_values_clamped_to_zero(self, db, session, make_demo):
        demo = await make_demo(steps=3)
        view = await session.open(demo.id)

        await session.update_progress(view.id, -5, -1)

        stored = await _reload(db, view.id)
        assert stored.time_spent == 0
        assert stored.completed_steps == 0

    async def test_immutable_fields_untouched(self, db, session, make_demo, make_link):
        demo = await make_demo(steps=3)
        link = await make_link(demo)
        view = await session.open(demo.id, share_link_id=link.id)
        before = await _reload(db, view.id)
        viewed_at, total_steps = before.viewed_at, before.total_steps

        await session.update_progress(view.id, 99, 2)

        after = await _reload(db, view.id)
        assert after.demo_id == demo.id
        assert after.share_link_id == link.id
        assert after.viewed_at == viewed_at
        assert after.total_steps == total_steps

    async def test_unknown_view_is_dropped(self, session):
        assert await session.update_progress(uuid4(), 10, 1) is False

    async def test_driver_timeout_is_dropped(self):
        store = MagicMock(spec=ViewEventStore)
        store.get_view = AsyncMock(side_effect=asyncio.TimeoutError())
        store.update_progress = AsyncMock()

        assert await ViewSession(store).update_progress(uuid4(), 10, 1) is False
        store.update_progress.assert_not_called()


class TestClose:
    async def test_close_keeps_stored_steps_when_omitted(self, db, session, make_demo):
        demo = await make_demo(steps=4)
        view = await session.open(demo.id)
        await session.update_progress(view.id, 20, 2)

        assert await session.close(view.id, 35) is True

        stored = await _reload(db, view.id)
        assert stored.time_spent == 35
        assert stored.completed_steps == 2

    async def test_close_marks_completion(self, db, session, make_demo):
        demo = await make_demo(steps=4)
        view = await session.open(demo.id)

        await session.close(view.id, 40, 4)

        stored = await _reload(db, view.id)
        assert stored.completed_steps == stored.total_steps == 4

    async def test_close_unknown_view_is_dropped(self, session):
        assert await session.close(uuid4(), 10) is False

    async def test_close_survives_unexpected_error(self):
        store = MagicMock(spec=ViewEventStore)
        store.get_view = AsyncMock(side_effect=RuntimeError("event loop is closing"))

        assert await ViewSession(store).close(uuid4(), 10) is False


class TestFetchViews:
    async def test_window_lower_bound_inclusive_and_future_rows_kept(self, db, make_demo):
        demo = await make_demo()
        store = ViewEventStore(db)
        anchor = (await store.create_view(demo.id, total_steps=3)).viewed_at

        old = DemoView(demo_id=demo.id, viewed_at=anchor - timedelta(days=3), total_steps=3)
        future = DemoView(demo_id=demo.id, viewed_at=anchor + timedelta(hours=2), total_steps=3)
        db.add_all([old, future])
        await db.commit()

        views = await store.fetch_views([demo.id], since=anchor)
        ids = {v.id for v in views}
        assert future.id in ids
        assert old.id not in ids
        assert len(views) == 2

    async def test_empty_demo_set_returns_nothing(self, db):
        assert await ViewEventStore(db).fetch_views([], since=None) == []
