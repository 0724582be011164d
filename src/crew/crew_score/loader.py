"""Cohort loading: one consistent snapshot of a group's activity inputs."""

from __future__ import annotations

import asyncio
import logging
import math
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone

from crew.crew_score.cohort import MemberActivityRecord
from crew.crew_score.store import CrewScoreStore, GroupTierConfig, MemberStatsRow, Membership

logger = logging.getLogger(__name__)

_COUNTERS = (
    "events_attended",
    "current_streak",
    "best_streak",
    "spirit_points_total",
    "messages_sent",
    "reactions_given",
    "guest_converts",
)


@dataclass
class CohortSnapshot:
    """Stats, approved memberships and group config read together."""

    group_id: uuid.UUID
    group: GroupTierConfig | None
    members: list[Membership]
    stats: dict[uuid.UUID, MemberStatsRow]
    now: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def joined_at(self) -> dict[uuid.UUID, datetime]:
        return {m.user_id: m.joined_at for m in self.members if m.joined_at is not None}

    @property
    def group_created_at(self) -> datetime | None:
        return self.group.created_at if self.group else None


async def load_cohort_snapshot(
    store: CrewScoreStore,
    group_id: uuid.UUID,
    now: datetime | None = None,
) -> CohortSnapshot:
    """Read stats, approved memberships and the group concurrently.

    Any read failure propagates; nothing has been written at this point.
    """
    stats_rows, members, group = await asyncio.gather(
        store.fetch_member_stats(group_id),
        store.fetch_approved_members(group_id),
        store.fetch_group(group_id),
    )
    return CohortSnapshot(
        group_id=group_id,
        group=group,
        members=list(members),
        stats={row.user_id: row for row in stats_rows},
        now=now or datetime.now(timezone.utc),
    )


def _sanitize(value: object, name: str, user_id: uuid.UUID) -> float:
    """Coerce a raw counter to a non-negative finite number (missing -> 0)."""
    if value is None:
        return 0
    try:
        number = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        logger.warning("Ignoring non-numeric %s=%r for user %s", name, value, user_id)
        return 0
    if not math.isfinite(number) or number < 0:
        logger.warning("Ignoring invalid %s=%r for user %s", name, value, user_id)
        return 0
    return number


def tenure_days(joined_at: datetime | None, now: datetime) -> int:
    """Whole days since joining (0 if unknown or in the future)."""
    if joined_at is None:
        return 0
    return max(0, (now - joined_at) // timedelta(days=1))


def is_founding_member(
    joined_at: datetime | None,
    group_created_at: datetime | None,
    window_days: int = 30,
) -> bool:
    """Joined within ``window_days`` of the group's creation."""
    if joined_at is None or group_created_at is None:
        return False
    return joined_at - group_created_at <= timedelta(days=window_days)


def build_activity_record(
    user_id: uuid.UUID,
    stats: MemberStatsRow | None,
    joined_at: datetime | None,
    group_created_at: datetime | None,
    now: datetime,
    founding_window_days: int = 30,
) -> MemberActivityRecord:
    """Build one member's activity record, defaulting missing counters to zero."""
    tenure = tenure_days(joined_at, now)
    founding = is_founding_member(joined_at, group_created_at, founding_window_days)

    if stats is None:
        return MemberActivityRecord.placeholder(user_id, tenure_days=tenure, is_founding_member=founding)

    counters = {name: int(_sanitize(getattr(stats, name), name, user_id)) for name in _COUNTERS}
    return MemberActivityRecord(
        user_id=user_id,
        attendance_rate=_sanitize(stats.attendance_rate, "attendance_rate", user_id),
        tenure_days=tenure,
        is_founding_member=founding,
        **counters,
    )
