"""Tests for share link validation."""

from datetime import datetime, timedelta, timezone
from uuid import uuid4

import pytest
from sqlalchemy import select

from app.core.errors import LinkExhausted, LinkExpired, LinkInvalid
from app.core.share_guard import LinkContext, check_link, validate_share_token
from app.core.share_token import generate_share_token, is_well_formed_token
from app.models.tables import ShareLink

NOW = datetime(2026, 10, 18, 12, 0, tzinfo=timezone.utc)


def _link(**fields) -> ShareLink:
    defaults = dict(id=uuid4(), demo_id=uuid4(), token=generate_share_token(),
                    is_active=True, view_count=0, max_views=None, expires_at=None)
    defaults.update(fields)
    return ShareLink(**defaults)


class TestCheckLink:
    def test_missing_link_is_invalid(self):
        with pytest.raises(LinkInvalid):
            check_link(None, NOW)

    def test_inactive_link_is_invalid(self):
        with pytest.raises(LinkInvalid):
            check_link(_link(is_active=False), NOW)

    def test_past_expiry_is_expired_even_with_views_left(self):
        link = _link(expires_at=NOW - timedelta(minutes=1), view_count=1, max_views=5)
        with pytest.raises(LinkExpired):
            check_link(link, NOW)

    def test_naive_expiry_treated_as_utc(self):
        link = _link(expires_at=(NOW - timedelta(hours=1)).replace(tzinfo=None))
        with pytest.raises(LinkExpired):
            check_link(link, NOW)

    def test_view_ceiling_reached_is_exhausted(self):
        with pytest.raises(LinkExhausted):
            check_link(_link(view_count=5, max_views=5), NOW)

    def test_below_ceiling_is_usable(self):
        ctx = check_link(_link(view_count=4, max_views=5), NOW)
        assert ctx.view_count == 4
        assert ctx.max_views == 5
        assert ctx.views_remaining == 1

    def test_future_expiry_no_ceiling_is_usable(self):
        link = _link(expires_at=NOW + timedelta(days=7))
        ctx = check_link(link, NOW)
        assert isinstance(ctx, LinkContext)
        assert ctx.demo_id == link.demo_id
        assert ctx.views_remaining is None


class TestValidateShareToken:
    async def test_unknown_token_invalid(self, db):
        with pytest.raises(LinkInvalid):
            await validate_share_token(db, generate_share_token())

    async def test_inactive_link_invalid(self, db, make_demo, make_link):
        demo = await make_demo()
        link = await make_link(demo, is_active=False)
        with pytest.raises(LinkInvalid):
            await validate_share_token(db, link.token)

    async def test_prefix_of_real_token_does_not_match(self, db, make_demo, make_link):
        demo = await make_demo()
        link = await make_link(demo)
        with pytest.raises(LinkInvalid):
            await validate_share_token(db, link.token[:32])

    async def test_near_miss_token_does_not_match(self, db, make_demo, make_link):
        demo = await make_demo()
        link = await make_link(demo)
        last = "0" if link.token[-1] != "0" else "1"
        near_miss = link.token[:-1] + last

        assert is_well_formed_token(near_miss)
        with pytest.raises(LinkInvalid):
            await validate_share_token(db, near_miss)

    async def test_expired_link(self, db, make_demo, make_link):
        demo = await make_demo()
        link = await make_link(demo, expires_at=datetime.now(timezone.utc) - timedelta(days=1),
                               view_count=0, max_views=10)
        with pytest.raises(LinkExpired):
            await validate_share_token(db, link.token)

    async def test_exhausted_link(self, db, make_demo, make_link):
        demo = await make_demo()
        link = await make_link(demo, view_count=5, max_views=5)
        with pytest.raises(LinkExhausted):
            await validate_share_token(db, link.token)

    async def test_valid_link_returns_context(self, db, make_demo, make_link):
        demo = await make_demo()
        link = await make_link(demo, view_count=2, max_views=5)
        ctx = await validate_share_token(db, link.token)
        assert ctx.link_id == link.id
        assert ctx.demo_id == demo.id
        assert ctx.view_count == 2

    async def test_validation_never_counts_a_view(self, db, make_demo, make_link):
        demo = await make_demo()
        link = await make_link(demo, view_count=1, max_views=3)
        for _ in range(5):
            await validate_share_token(db, link.token)

        result = await db.execute(select(ShareLink.view_count).where(ShareLink.id == link.id))
        assert result.scalar_one() == 1
