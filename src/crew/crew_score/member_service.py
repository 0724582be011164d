"""On-demand crew score for a single member (read-only)."""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime

from crew.config import get_settings
from crew.crew_score.cohort import score_cohort
from crew.crew_score.loader import build_activity_record, load_cohort_snapshot
from crew.crew_score.store import CrewScoreStore
from crew.crew_score.tier_themes import TierResolver, get_member_tier


class GroupNotFoundError(LookupError):
    """Raised when the requested group does not exist."""


@dataclass(frozen=True)
class MemberCrewScore:
    user_id: uuid.UUID
    group_id: uuid.UUID
    crew_score: int
    loyalty: int
    spirit: int
    adventure: int
    legacy: int
    tier: str
    tier_level: int
    rank: int
    total_members: int
    persisted_tier: str | None = None


async def calculate_member_crew_score(
    store: CrewScoreStore,
    user_id: uuid.UUID,
    group_id: uuid.UUID,
    resolver: TierResolver = get_member_tier,
    now: datetime | None = None,
) -> MemberCrewScore:
    """Score ``user_id`` against their group's cohort without persisting anything.

    The cohort is every approved member with a stats row. A target with no
    stats row yet joins it as a zero-activity placeholder, so their
    percentiles are honest and nobody else's are skewed.

    The tier comes straight from the resolver; the never-regress rule
    only applies to the persisted record, reported as ``persisted_tier``.
    """
    settings = get_settings()
    snapshot = await load_cohort_snapshot(store, group_id, now=now)
    if snapshot.group is None:
        raise GroupNotFoundError(f"Group {group_id} not found")

    group = snapshot.group
    joined_at = snapshot.joined_at
    approved = list(dict.fromkeys(m.user_id for m in snapshot.members))

    records = [
        build_activity_record(
            uid,
            snapshot.stats[uid],
            joined_at.get(uid),
            group.created_at,
            snapshot.now,
            settings.founding_window_days,
        )
        for uid in approved
        if uid in snapshot.stats
    ]

    if not any(r.user_id == user_id for r in records):
        records.append(build_activity_record(
            user_id,
            None,
            joined_at.get(user_id),
            group.created_at,
            snapshot.now,
            settings.founding_window_days,
        ))

    scores = score_cohort(records)
    target = next(s for s in scores if s.user_id == user_id)
    tier_info = resolver(target.crew_score, group.tier_theme, group.custom_tier_names)

    persisted = snapshot.stats.get(user_id)
    return MemberCrewScore(
        user_id=user_id,
        group_id=group_id,
        crew_score=target.crew_score,
        loyalty=target.pillars.loyalty,
        spirit=target.pillars.spirit,
        adventure=target.pillars.adventure,
        legacy=target.pillars.legacy,
        tier=tier_info.tier,
        tier_level=tier_info.level,
        rank=target.rank,
        total_members=len(records),
        persisted_tier=persisted.tier if persisted else None,
    )
