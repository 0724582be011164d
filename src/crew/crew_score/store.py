"""Data-store access for the crew score engine.

Each store method opens its own session, so the cohort reads can be
issued concurrently and every upsert in a chunk commits independently.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Protocol

from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from crew.crew_score.pillars import PillarScore
from crew.db.models import Channel, Group, GroupMember, MemberStats, Message, Profile

APPROVED = "approved"
ANNOUNCEMENTS_CHANNEL = "announcements"


# ---------------------------------------------------------------------------
# Rows exchanged with the store
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class GroupTierConfig:
    id: uuid.UUID
    name: str
    slug: str
    created_at: datetime | None = None
    tier_theme: str = "generic"
    custom_tier_names: list[str] | None = None
    tier_announcements_enabled: bool = True


@dataclass(frozen=True)
class Membership:
    user_id: uuid.UUID
    joined_at: datetime | None = None


@dataclass(frozen=True)
class MemberStatsRow:
    """Raw counters plus the currently persisted crew score, if any."""

    user_id: uuid.UUID
    attendance_rate: Any = 0
    events_attended: Any = 0
    current_streak: Any = 0
    best_streak: Any = 0
    spirit_points_total: Any = 0
    messages_sent: Any = 0
    reactions_given: Any = 0
    guest_converts: Any = 0
    crew_score: int | None = None
    tier: str | None = None
    tier_level: int | None = None


@dataclass(frozen=True)
class CrewScoreUpdate:
    """Full crew score record to upsert for (user_id, group_id)."""

    user_id: uuid.UUID
    crew_score: int
    pillars: PillarScore
    tier: str
    tier_level: int
    calculated_at: datetime


class CrewScoreStore(Protocol):
    """Reads and writes the crew score engine needs from the data store."""

    async def fetch_member_stats(self, group_id: uuid.UUID) -> list[MemberStatsRow]: ...

    async def fetch_approved_members(self, group_id: uuid.UUID) -> list[Membership]: ...

    async def fetch_group(self, group_id: uuid.UUID) -> GroupTierConfig | None: ...

    async def upsert_crew_score(self, group_id: uuid.UUID, update: CrewScoreUpdate) -> None: ...

    async def fetch_display_name(self, user_id: uuid.UUID) -> str | None: ...

    async def fetch_announcement_channel_id(self, group_id: uuid.UUID) -> uuid.UUID | None: ...

    async def insert_system_message(
        self, channel_id: uuid.UUID, author_id: uuid.UUID, content: str
    ) -> None: ...


# ---------------------------------------------------------------------------
# SQLAlchemy implementation
# ---------------------------------------------------------------------------


class SqlCrewScoreStore:
    """PostgreSQL-backed store using the async session factory."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def fetch_member_stats(self, group_id: uuid.UUID) -> list[MemberStatsRow]:
        async with self._session_factory() as db:
            result = await db.execute(
                select(MemberStats).where(MemberStats.group_id == group_id)
            )
            return [
                MemberStatsRow(
                    user_id=s.user_id,
                    attendance_rate=s.attendance_rate,
                    events_attended=s.events_attended,
                    current_streak=s.current_streak,
                    best_streak=s.best_streak,
                    spirit_points_total=s.spirit_points_total,
                    messages_sent=s.messages_sent,
                    reactions_given=s.reactions_given,
                    guest_converts=s.guest_converts,
                    crew_score=s.crew_score,
                    tier=s.tier,
                    tier_level=s.tier_level,
                )
                for s in result.scalars()
            ]

    async def fetch_approved_members(self, group_id: uuid.UUID) -> list[Membership]:
        async with self._session_factory() as db:
            result = await db.execute(
                select(GroupMember.user_id, GroupMember.joined_at).where(
                    GroupMember.group_id == group_id,
                    GroupMember.status == APPROVED,
                )
            )
            return [Membership(user_id=row.user_id, joined_at=row.joined_at) for row in result]

    async def fetch_group(self, group_id: uuid.UUID) -> GroupTierConfig | None:
        async with self._session_factory() as db:
            result = await db.execute(select(Group).where(Group.id == group_id))
            group = result.scalar_one_or_none()
            if group is None:
                return None
            return GroupTierConfig(
                id=group.id,
                name=group.name,
                slug=group.slug,
                created_at=group.created_at,
                tier_theme=group.tier_theme or "generic",
                custom_tier_names=group.custom_tier_names,
                tier_announcements_enabled=group.tier_announcements_enabled,
            )

    async def upsert_crew_score(self, group_id: uuid.UUID, update: CrewScoreUpdate) -> None:
        values = {
            "crew_score": update.crew_score,
            "loyalty_score": update.pillars.loyalty,
            "spirit_score": update.pillars.spirit,
            "adventure_score": update.pillars.adventure,
            "legacy_score": update.pillars.legacy,
            "tier": update.tier,
            "tier_level": update.tier_level,
            "last_calculated_at": update.calculated_at,
        }
        stmt = pg_insert(MemberStats).values(user_id=update.user_id, group_id=group_id, **values)
        stmt = stmt.on_conflict_do_update(
            constraint="member_stats_user_id_group_id_key",
            set_=values,
        )
        async with self._session_factory() as db:
            await db.execute(stmt)
            await db.commit()

    async def fetch_display_name(self, user_id: uuid.UUID) -> str | None:
        async with self._session_factory() as db:
            result = await db.execute(select(Profile.full_name).where(Profile.id == user_id))
            return result.scalar_one_or_none()

    async def fetch_announcement_channel_id(self, group_id: uuid.UUID) -> uuid.UUID | None:
        async with self._session_factory() as db:
            result = await db.execute(
                select(Channel.id)
                .where(Channel.group_id == group_id, Channel.type == ANNOUNCEMENTS_CHANNEL)
                .limit(1)
            )
            return result.scalar_one_or_none()

    async def insert_system_message(
        self, channel_id: uuid.UUID, author_id: uuid.UUID, content: str
    ) -> None:
        async with self._session_factory() as db:
            db.add(Message(
                channel_id=channel_id,
                sender_id=author_id,
                content=content,
                content_type="system",
            ))
            await db.commit()
