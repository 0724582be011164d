"""Batch recalculation of every approved member's crew score in a group.

1. Take the per-group guard
2. Read stats, approved memberships and group config concurrently
3. Score the whole cohort once
4. Resolve each member's tier against what is persisted (tiers never fall)
5. Upsert in fixed-size chunks: concurrent within a chunk, a barrier between chunks
6. Hand persisted promotions to the notifier without waiting for delivery
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime

import redis.asyncio as aioredis

from crew.config import get_settings
from crew.crew_score.cohort import score_cohort
from crew.crew_score.guard import recalculation_guard
from crew.crew_score.loader import build_activity_record, load_cohort_snapshot
from crew.crew_score.promotion_notifier import spawn_promotion_notifications
from crew.crew_score.push import PushSender
from crew.crew_score.store import CrewScoreStore, CrewScoreUpdate, GroupTierConfig
from crew.crew_score.tier_themes import TierResolver, get_member_tier
from crew.crew_score.tiers import PreviousTier, PromotionEvent, resolve_tier

logger = logging.getLogger(__name__)


@dataclass
class RecalculationResult:
    """Outcome of one recalculation run."""

    group_id: uuid.UUID
    total_members: int = 0
    persisted: int = 0
    failures: dict[uuid.UUID, str] = field(default_factory=dict)
    promotions: list[PromotionEvent] = field(default_factory=list)
    skipped: bool = False

    @property
    def ok(self) -> bool:
        return not self.failures


async def _persist_in_chunks(
    store: CrewScoreStore,
    group_id: uuid.UUID,
    updates: list[CrewScoreUpdate],
    chunk_size: int,
) -> dict[uuid.UUID, str]:
    """Upsert ``updates`` at most ``chunk_size`` at a time. Returns failures by user."""
    failures: dict[uuid.UUID, str] = {}
    for start in range(0, len(updates), chunk_size):
        chunk = updates[start:start + chunk_size]
        outcomes = await asyncio.gather(
            *(store.upsert_crew_score(group_id, update) for update in chunk),
            return_exceptions=True,
        )
        for update, outcome in zip(chunk, outcomes):
            if isinstance(outcome, Exception):
                failures[update.user_id] = str(outcome) or type(outcome).__name__
                logger.error(
                    "Crew score upsert failed for user %s in group %s",
                    update.user_id, group_id, exc_info=outcome,
                )
            elif isinstance(outcome, BaseException):
                raise outcome
    return failures


async def _recalculate(
    store: CrewScoreStore,
    group_id: uuid.UUID,
    resolver: TierResolver,
    chunk_size: int,
    founding_window_days: int,
    default_theme: str,
    now: datetime | None,
) -> tuple[RecalculationResult, GroupTierConfig | None]:
    snapshot = await load_cohort_snapshot(store, group_id, now=now)
    result = RecalculationResult(group_id=group_id)

    if not snapshot.members:
        result.skipped = True
        logger.info("No approved members in group %s, nothing to recalculate", group_id)
        return result, snapshot.group

    group = snapshot.group
    tier_theme = group.tier_theme if group else default_theme
    custom_tier_names = group.custom_tier_names if group else None
    joined_at = snapshot.joined_at

    # Memberships may repeat a user; score each member once
    member_ids = list(dict.fromkeys(m.user_id for m in snapshot.members))
    records = [
        build_activity_record(
            user_id,
            snapshot.stats.get(user_id),
            joined_at.get(user_id),
            snapshot.group_created_at,
            snapshot.now,
            founding_window_days,
        )
        for user_id in member_ids
    ]
    scores = score_cohort(records)
    result.total_members = len(scores)

    updates: list[CrewScoreUpdate] = []
    promotions: dict[uuid.UUID, PromotionEvent] = {}
    for score in scores:
        stats = snapshot.stats.get(score.user_id)
        previous = (
            PreviousTier(crew_score=stats.crew_score, tier=stats.tier, tier_level=stats.tier_level)
            if stats is not None
            else None
        )
        decision = resolve_tier(
            score.user_id, score.crew_score, previous, tier_theme, custom_tier_names, resolver,
        )
        if decision.promotion is not None:
            promotions[score.user_id] = decision.promotion
        updates.append(CrewScoreUpdate(
            user_id=score.user_id,
            crew_score=score.crew_score,
            pillars=score.pillars,
            tier=decision.tier,
            tier_level=decision.level,
            calculated_at=snapshot.now,
        ))

    result.failures = await _persist_in_chunks(store, group_id, updates, chunk_size)
    result.persisted = len(updates) - len(result.failures)
    # A promotion that was not persisted must not be announced
    result.promotions = [p for uid, p in promotions.items() if uid not in result.failures]
    return result, group


async def recalculate_group_crew_scores(
    store: CrewScoreStore,
    group_id: uuid.UUID,
    push_sender: PushSender | None = None,
    redis: aioredis.Redis | None = None,
    resolver: TierResolver = get_member_tier,
    now: datetime | None = None,
) -> RecalculationResult:
    """Recompute and persist the crew score record of every approved member.

    Returns once every upsert has been attempted. Promotion notifications
    are started in the background and may still be in flight.
    """
    settings = get_settings()
    chunk_size = max(1, settings.recalc_chunk_size)

    async with recalculation_guard(
        group_id,
        redis=redis,
        wait_timeout=settings.recalc_lock_wait_seconds,
        lock_ttl=settings.recalc_lock_ttl_seconds,
    ):
        result, group = await _recalculate(
            store,
            group_id,
            resolver,
            chunk_size,
            settings.founding_window_days,
            settings.default_tier_theme,
            now,
        )

    if not result.skipped:
        logger.info(
            "Crew scores recalculated for group %s: %d/%d persisted, %d promotion(s)",
            group_id, result.persisted, result.total_members, len(result.promotions),
        )
    spawn_promotion_notifications(store, push_sender, group_id, group, result.promotions)
    return result
