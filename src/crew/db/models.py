"""ORM models for groups, memberships and member stats.

Raw activity counters in ``member_stats`` are written by other services
(check-in, chat, spirit points). The crew score engine only writes the
score columns of that table.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import (
    BigInteger,
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column

from crew.db.base import Base


# ---------------------------------------------------------------------------
# Profiles & Groups
# ---------------------------------------------------------------------------


class Profile(Base):
    """Public member profile."""

    __tablename__ = "profiles"
    __table_args__ = {"extend_existing": True}  # noqa: RUF012

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True)
    full_name: Mapped[str | None] = mapped_column(String(128), nullable=True)
    avatar_url: Mapped[str | None] = mapped_column(Text, nullable=True)


class Group(Base):
    """A crew. Tier naming is configured per group."""

    __tablename__ = "groups"
    __table_args__ = {"extend_existing": True}  # noqa: RUF012

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    slug: Mapped[str] = mapped_column(String(128), unique=True, nullable=False)
    created_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True, server_default=text("NOW()")
    )
    tier_theme: Mapped[str] = mapped_column(String(32), nullable=False, server_default="generic")
    custom_tier_names: Mapped[list[str] | None] = mapped_column(JSONB, nullable=True)
    tier_announcements_enabled: Mapped[bool] = mapped_column(
        Boolean, nullable=False, server_default="true"
    )


class GroupMember(Base):
    """Membership of a user in a group."""

    __tablename__ = "group_members"
    __table_args__ = (
        UniqueConstraint("group_id", "user_id", name="group_members_group_id_user_id_key"),
        {"extend_existing": True},
    )

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    group_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("groups.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False
    )
    status: Mapped[str] = mapped_column(String(16), nullable=False, server_default="pending")
    joined_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


# ---------------------------------------------------------------------------
# Member stats (raw counters + crew score snapshot)
# ---------------------------------------------------------------------------


class MemberStats(Base):
    """Per-member, per-group activity counters and the persisted crew score."""

    __tablename__ = "member_stats"
    __table_args__ = (
        UniqueConstraint("user_id", "group_id", name="member_stats_user_id_group_id_key"),
        {"extend_existing": True},
    )

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False
    )
    group_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("groups.id", ondelete="CASCADE"), nullable=False
    )

    # --- Raw counters (owned by other writers) ---
    attendance_rate: Mapped[float] = mapped_column(Float, nullable=False, server_default="0")
    events_attended: Mapped[int] = mapped_column(Integer, nullable=False, server_default="0")
    current_streak: Mapped[int] = mapped_column(Integer, nullable=False, server_default="0")
    best_streak: Mapped[int] = mapped_column(Integer, nullable=False, server_default="0")
    spirit_points_total: Mapped[int] = mapped_column(Integer, nullable=False, server_default="0")
    messages_sent: Mapped[int] = mapped_column(Integer, nullable=False, server_default="0")
    reactions_given: Mapped[int] = mapped_column(Integer, nullable=False, server_default="0")
    guest_converts: Mapped[int] = mapped_column(Integer, nullable=False, server_default="0")

    # --- Crew score (owned by the crew score engine) ---
    crew_score: Mapped[int | None] = mapped_column(Integer, nullable=True)
    loyalty_score: Mapped[int | None] = mapped_column(Integer, nullable=True)
    spirit_score: Mapped[int | None] = mapped_column(Integer, nullable=True)
    adventure_score: Mapped[int | None] = mapped_column(Integer, nullable=True)
    legacy_score: Mapped[int | None] = mapped_column(Integer, nullable=True)
    tier: Mapped[str | None] = mapped_column(String(64), nullable=True)
    tier_level: Mapped[int | None] = mapped_column(Integer, nullable=True)
    last_calculated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


# ---------------------------------------------------------------------------
# Chat (announcement channel)
# ---------------------------------------------------------------------------


class Channel(Base):
    """Group chat channel. One channel per group has type 'announcements'."""

    __tablename__ = "channels"
    __table_args__ = {"extend_existing": True}  # noqa: RUF012

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    group_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("groups.id", ondelete="CASCADE"), nullable=False
    )
    type: Mapped[str] = mapped_column(String(32), nullable=False, server_default="general")
    name: Mapped[str | None] = mapped_column(String(64), nullable=True)


class Message(Base):
    """Chat message. System messages use content_type='system'."""

    __tablename__ = "messages"
    __table_args__ = {"extend_existing": True}  # noqa: RUF012

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    channel_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("channels.id", ondelete="CASCADE"), nullable=False
    )
    sender_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False
    )
    content: Mapped[str] = mapped_column(Text, nullable=False)
    content_type: Mapped[str] = mapped_column(String(16), nullable=False, server_default="text")
    message_metadata: Mapped[dict[str, Any] | None] = mapped_column("metadata", JSONB, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=text("NOW()")
    )
