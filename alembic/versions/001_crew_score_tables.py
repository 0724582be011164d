"""Crew score tables.

Creates profiles, groups, group_members, member_stats, channels and
messages. member_stats carries the raw activity counters and the crew
score snapshot written by the recalculation engine.

Revision ID: 001_crew_score_tables
Revises:
Create Date: 2026-10-19
"""

from collections.abc import Sequence

from alembic import op

revision: str = "001_crew_score_tables"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    # --- Profiles ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS profiles (
            id UUID PRIMARY KEY,
            full_name VARCHAR(128),
            avatar_url TEXT
        )
    """)

    # --- Groups ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS groups (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            name VARCHAR(128) NOT NULL,
            slug VARCHAR(128) UNIQUE NOT NULL,
            created_at TIMESTAMPTZ DEFAULT NOW(),
            tier_theme VARCHAR(32) NOT NULL DEFAULT 'generic',
            custom_tier_names JSONB,
            tier_announcements_enabled BOOLEAN NOT NULL DEFAULT true
        )
    """)

    # --- Group Members ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS group_members (
            id BIGSERIAL PRIMARY KEY,
            group_id UUID NOT NULL REFERENCES groups(id) ON DELETE CASCADE,
            user_id UUID NOT NULL REFERENCES profiles(id) ON DELETE CASCADE,
            status VARCHAR(16) NOT NULL DEFAULT 'pending',
            joined_at TIMESTAMPTZ,
            CONSTRAINT group_members_group_id_user_id_key UNIQUE (group_id, user_id)
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_group_members_group_status
        ON group_members(group_id, status)
    """)

    # --- Member Stats ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS member_stats (
            id BIGSERIAL PRIMARY KEY,
            user_id UUID NOT NULL REFERENCES profiles(id) ON DELETE CASCADE,
            group_id UUID NOT NULL REFERENCES groups(id) ON DELETE CASCADE,
            attendance_rate DOUBLE PRECISION NOT NULL DEFAULT 0,
            events_attended INTEGER NOT NULL DEFAULT 0,
            current_streak INTEGER NOT NULL DEFAULT 0,
            best_streak INTEGER NOT NULL DEFAULT 0,
            spirit_points_total INTEGER NOT NULL DEFAULT 0,
            messages_sent INTEGER NOT NULL DEFAULT 0,
            reactions_given INTEGER NOT NULL DEFAULT 0,
            guest_converts INTEGER NOT NULL DEFAULT 0,
            crew_score INTEGER,
            loyalty_score INTEGER,
            spirit_score INTEGER,
            adventure_score INTEGER,
            legacy_score INTEGER,
            tier VARCHAR(64),
            tier_level INTEGER,
            last_calculated_at TIMESTAMPTZ,
            CONSTRAINT member_stats_user_id_group_id_key UNIQUE (user_id, group_id),
            CONSTRAINT member_stats_crew_score_range CHECK (crew_score BETWEEN 0 AND 1000),
            CONSTRAINT member_stats_tier_level_range CHECK (tier_level BETWEEN 1 AND 5)
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_member_stats_group_score
        ON member_stats(group_id, crew_score DESC)
    """)

    # --- Channels ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS channels (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            group_id UUID NOT NULL REFERENCES groups(id) ON DELETE CASCADE,
            type VARCHAR(32) NOT NULL DEFAULT 'general',
            name VARCHAR(64)
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_channels_group_type
        ON channels(group_id, type)
    """)

    # --- Messages ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS messages (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            channel_id UUID NOT NULL REFERENCES channels(id) ON DELETE CASCADE,
            sender_id UUID NOT NULL REFERENCES profiles(id) ON DELETE CASCADE,
            content TEXT NOT NULL,
            content_type VARCHAR(16) NOT NULL DEFAULT 'text',
            metadata JSONB,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_messages_channel_created
        ON messages(channel_id, created_at)
    """)


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS messages CASCADE")
    op.execute("DROP TABLE IF EXISTS channels CASCADE")
    op.execute("DROP TABLE IF EXISTS member_stats CASCADE")
    op.execute("DROP TABLE IF EXISTS group_members CASCADE")
    op.execute("DROP TABLE IF EXISTS groups CASCADE")
    op.execute("DROP TABLE IF EXISTS profiles CASCADE")
