"""initial demo schema: profiles, demos, steps, share links, views

Revision ID: demo_schema_001
Revises:
Create Date: 2026-10-18
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision = 'demo_schema_001'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        'profiles',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('supabase_id', sa.String(255), nullable=False, unique=True),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('full_name', sa.String(255), nullable=True),
        sa.Column('avatar_url', sa.String(500), nullable=True),
        sa.Column('role', sa.String(10), nullable=False, server_default='user'),
        sa.Column('is_active', sa.Boolean(), server_default='true'),
        sa.Column('last_login_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.CheckConstraint("role IN ('user', 'admin')", name='ck_profiles_role'),
    )
    op.create_index('ix_profiles_supabase_id', 'profiles', ['supabase_id'], unique=True)
    op.create_index('ix_profiles_email', 'profiles', ['email'])

    op.create_table(
        'demos',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('title', sa.Text(), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('is_public', sa.Boolean(), nullable=False, server_default='true'),
        sa.Column('owner_id', postgresql.UUID(as_uuid=True),
                  sa.ForeignKey('profiles.id', ondelete='CASCADE'), nullable=False),
        sa.Column('published_url', sa.Text(), nullable=True),
        sa.Column('thumbnail_url', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index('ix_demos_owner_id', 'demos', ['owner_id'])
    op.create_index('ix_demos_is_public', 'demos', ['is_public'])

    op.create_table(
        'demo_steps',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('demo_id', postgresql.UUID(as_uuid=True),
                  sa.ForeignKey('demos.id', ondelete='CASCADE'), nullable=False),
        sa.Column('title', sa.Text(), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('image_url', sa.Text(), nullable=True),
        sa.Column('order_index', sa.Integer(), nullable=False),
        sa.Column('annotations', postgresql.JSONB(), nullable=False, server_default='[]'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index('ix_demo_steps_demo_order', 'demo_steps', ['demo_id', 'order_index'])

    op.create_table(
        'share_links',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('demo_id', postgresql.UUID(as_uuid=True),
                  sa.ForeignKey('demos.id', ondelete='CASCADE'), nullable=False),
        sa.Column('token', sa.String(128), nullable=False),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='true'),
        sa.Column('view_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('max_views', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index('ix_share_links_token', 'share_links', ['token'], unique=True)
    op.create_index('ix_share_links_demo_id', 'share_links', ['demo_id'])

    op.create_table(
        'demo_views',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('demo_id', postgresql.UUID(as_uuid=True),
                  sa.ForeignKey('demos.id', ondelete='CASCADE'), nullable=False),
        sa.Column('share_link_id', postgresql.UUID(as_uuid=True),
                  sa.ForeignKey('share_links.id', ondelete='SET NULL'), nullable=True),
        sa.Column('viewer_ip', sa.String(45), nullable=False, server_default='anonymous'),
        sa.Column('viewer_location', sa.Text(), nullable=True),
        sa.Column('viewed_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('time_spent', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('completed_steps', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_steps', sa.Integer(), nullable=False, server_default='0'),
    )
    op.create_index('ix_demo_views_demo_id', 'demo_views', ['demo_id'])
    op.create_index('ix_demo_views_demo_viewed', 'demo_views', ['demo_id', 'viewed_at'])
    op.create_index('ix_demo_views_viewed_at', 'demo_views', ['viewed_at'])


def downgrade() -> None:
    op.drop_index('ix_demo_views_viewed_at')
    op.drop_index('ix_demo_views_demo_viewed')
    op.drop_index('ix_demo_views_demo_id')
    op.drop_table('demo_views')
    op.drop_index('ix_share_links_demo_id')
    op.drop_index('ix_share_links_token')
    op.drop_table('share_links')
    op.drop_index('ix_demo_steps_demo_order')
    op.drop_table('demo_steps')
    op.drop_index('ix_demos_is_public')
    op.drop_index('ix_demos_owner_id')
    op.drop_table('demos')
    op.drop_index('ix_profiles_email')
    op.drop_index('ix_profiles_supabase_id')
    op.drop_table('profiles')
