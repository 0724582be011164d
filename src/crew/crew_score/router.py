"""Crew score API endpoints."""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, HTTPException

from crew.crew_score.guard import RecalculationBusyError
from crew.crew_score.member_service import GroupNotFoundError, calculate_member_crew_score
from crew.crew_score.push import PushSender, RedisPushSender
from crew.crew_score.recalc_service import recalculate_group_crew_scores
from crew.crew_score.schemas import (
    CrewScoreResponse,
    PillarsResponse,
    PromotionEntry,
    RecalculationResponse,
    TierThemesResponse,
    TierThresholdEntry,
)
from crew.crew_score.store import CrewScoreStore, SqlCrewScoreStore
from crew.crew_score.tier_themes import TIER_THEMES, TIER_THRESHOLDS
from crew.database import get_session_factory
from crew.redis_client import get_redis_or_none

router = APIRouter(prefix="/api/v1", tags=["Crew Score"])


def get_crew_store() -> CrewScoreStore:
    """Crew score store backed by the shared session factory."""
    return SqlCrewScoreStore(get_session_factory())


def get_push_sender() -> PushSender | None:
    """Redis push sender, or None when Redis is not configured."""
    redis = get_redis_or_none()
    return RedisPushSender(redis) if redis is not None else None


@router.get(
    "/groups/{group_id}/members/{user_id}/crew-score",
    response_model=CrewScoreResponse,
)
async def get_member_crew_score(
    group_id: uuid.UUID,
    user_id: uuid.UUID,
    store: CrewScoreStore = Depends(get_crew_store),  # noqa: B008
):
    """Live crew score, tier and rank of one member (not persisted)."""
    try:
        result = await calculate_member_crew_score(store, user_id, group_id)
    except GroupNotFoundError:
        raise HTTPException(status_code=404, detail="Group not found")

    return CrewScoreResponse(
        user_id=result.user_id,
        group_id=result.group_id,
        crew_score=result.crew_score,
        pillars=PillarsResponse(
            loyalty=result.loyalty,
            spirit=result.spirit,
            adventure=result.adventure,
            legacy=result.legacy,
        ),
        tier=result.tier,
        tier_level=result.tier_level,
        persisted_tier=result.persisted_tier,
        rank=result.rank,
        total_members=result.total_members,
    )


@router.post(
    "/groups/{group_id}/crew-scores/recalculate",
    response_model=RecalculationResponse,
)
async def recalculate_crew_scores(
    group_id: uuid.UUID,
    store: CrewScoreStore = Depends(get_crew_store),  # noqa: B008
    push_sender: PushSender | None = Depends(get_push_sender),  # noqa: B008
):
    """Recalculate and persist crew scores for every approved member of a group."""
    try:
        result = await recalculate_group_crew_scores(
            store, group_id, push_sender=push_sender, redis=get_redis_or_none(),
        )
    except RecalculationBusyError:
        raise HTTPException(status_code=409, detail="Recalculation already in progress")

    return RecalculationResponse(
        group_id=result.group_id,
        skipped=result.skipped,
        total_members=result.total_members,
        persisted=result.persisted,
        failed=list(result.failures),
        promotions=[
            PromotionEntry(user_id=p.user_id, tier=p.tier, level=p.level)
            for p in result.promotions
        ],
    )


@router.get("/tier-themes", response_model=TierThemesResponse)
async def list_tier_themes():
    """Tier thresholds and the names of every built-in theme."""
    return TierThemesResponse(
        thresholds=[TierThresholdEntry(**t) for t in TIER_THRESHOLDS],
        themes={name: list(names) for name, names in TIER_THEMES.items()},
    )
