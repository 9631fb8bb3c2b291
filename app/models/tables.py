"""
Database models — the "truth layer."

Design principles:
  - Demos and steps are mutable (owned by the editor)
  - Share links are mutable only through activate/deactivate and the
    atomic view counter
  - demo_views rows are created once per playback session; only
    time_spent and completed_steps change afterwards
  - Analytics are computed at read time, nothing aggregated is stored
"""

from uuid import uuid4

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import DeclarativeBase

# JSONB on Postgres, plain JSON elsewhere (SQLite in tests)
JSONType = JSON().with_variant(JSONB(), "postgresql")

ANONYMOUS_VIEWER = "anonymous"


class Base(DeclarativeBase):
    pass


# ---------------------------------------------------------------------------
# Entity tables
# ---------------------------------------------------------------------------

class Profile(Base):
    """One row per Supabase user, created on first authenticated request."""
    __tablename__ = "profiles"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    supabase_id = Column(String(255), nullable=False, unique=True, index=True)
    email = Column(String(255), nullable=False, index=True)
    full_name = Column(String(255), nullable=True)
    avatar_url = Column(String(500), nullable=True)
    role = Column(String(10), nullable=False, default="user")  # "user" or "admin"
    is_active = Column(Boolean, default=True)
    last_login_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class Demo(Base):
    __tablename__ = "demos"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    title = Column(Text, nullable=False)
    description = Column(Text, nullable=True)
    is_public = Column(Boolean, nullable=False, default=True)
    owner_id = Column(UUID(as_uuid=True), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False)
    published_url = Column(Text, nullable=True)
    thumbnail_url = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        Index("ix_demos_owner_id", "owner_id"),
        Index("ix_demos_is_public", "is_public"),
    )


class DemoStep(Base):
    __tablename__ = "demo_steps"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    demo_id = Column(UUID(as_uuid=True), ForeignKey("demos.id", ondelete="CASCADE"), nullable=False)
    title = Column(Text, nullable=True)
    description = Column(Text, nullable=True)
    image_url = Column(Text, nullable=True)
    order_index = Column(Integer, nullable=False)
    annotations = Column(JSONType, nullable=False, default=list)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        Index("ix_demo_steps_demo_order", "demo_id", "order_index"),
    )


class ShareLink(Base):
    """
    Token-gated access grant to a single demo.

    A link is usable iff it is active, not past expires_at, and (when
    max_views is set) view_count < max_views. view_count only moves
    through the atomic increment in ViewEventStore.
    """
    __tablename__ = "share_links"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    demo_id = Column(UUID(as_uuid=True), ForeignKey("demos.id", ondelete="CASCADE"), nullable=False, index=True)
    token = Column(String(128), nullable=False, unique=True, index=True)
    expires_at = Column(DateTime(timezone=True), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    view_count = Column(Integer, nullable=False, default=0)
    max_views = Column(Integer, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


# ---------------------------------------------------------------------------
# Event table
# ---------------------------------------------------------------------------

class DemoView(Base):
    """
    One row per playback session.
    demo_id, share_link_id, viewed_at and total_steps are fixed at creation;
    time_spent and completed_steps are overwritten by progress updates.
    """
    __tablename__ = "demo_views"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    demo_id = Column(UUID(as_uuid=True), ForeignKey("demos.id", ondelete="CASCADE"), nullable=False)
    share_link_id = Column(UUID(as_uuid=True), ForeignKey("share_links.id", ondelete="SET NULL"), nullable=True)

    # --- Viewer (best-effort) ---
    viewer_ip = Column(String(45), nullable=False, default=ANONYMOUS_VIEWER)
    viewer_location = Column(Text, nullable=True)

    # --- Engagement ---
    viewed_at = Column(DateTime(timezone=True), nullable=False)
    time_spent = Column(Integer, nullable=False, default=0)       # seconds
    completed_steps = Column(Integer, nullable=False, default=0)
    total_steps = Column(Integer, nullable=False, default=0)       # snapshot at open

    __table_args__ = (
        Index("ix_demo_views_demo_id", "demo_id"),
        Index("ix_demo_views_demo_viewed", "demo_id", "viewed_at"),
        Index("ix_demo_views_viewed_at", "viewed_at"),
    )
