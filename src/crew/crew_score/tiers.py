"""Monotonic tier resolution: persisted tiers may rise but never fall.

The crew score itself is volatile (it is relative to the cohort), but the
tier badge a member has earned is kept until a strictly higher level is
reached.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass

from crew.crew_score.tier_themes import TierResolver, get_member_tier


@dataclass(frozen=True)
class PreviousTier:
    """What is currently persisted for a member, if anything."""

    crew_score: int | None = None
    tier: str | None = None
    tier_level: int | None = None


@dataclass(frozen=True)
class PromotionEvent:
    """A member's tier level increased during one recalculation run."""

    user_id: uuid.UUID
    tier: str
    level: int


@dataclass(frozen=True)
class TierDecision:
    tier: str
    level: int
    promotion: PromotionEvent | None = None

    @property
    def promoted(self) -> bool:
        return self.promotion is not None


def resolve_tier(
    user_id: uuid.UUID,
    new_score: int,
    previous: PreviousTier | None,
    tier_theme: str | None = None,
    custom_tier_names: list[str] | None = None,
    resolver: TierResolver = get_member_tier,
) -> TierDecision:
    """Decide the tier to persist for this run.

    1. Old level = resolver(previous score, or 0), raised to the stored
       tier_level when one exists.
    2. Candidate = resolver(new score).
    3. Candidate level above old level: promotion to the candidate.
    4. Otherwise the stored tier name and level are kept as they are, even
       if the candidate name differs at the same level (theme change).
    """
    previous = previous or PreviousTier()

    old_level = resolver(previous.crew_score or 0, tier_theme, custom_tier_names).level
    if previous.tier_level is not None:
        old_level = max(old_level, previous.tier_level)

    candidate = resolver(new_score, tier_theme, custom_tier_names)

    if candidate.level > old_level:
        return TierDecision(
            tier=candidate.tier,
            level=candidate.level,
            promotion=PromotionEvent(user_id=user_id, tier=candidate.tier, level=candidate.level),
        )

    if previous.tier is None:
        # First record at the entry level: nothing to keep, nothing to celebrate
        return TierDecision(tier=candidate.tier, level=candidate.level)

    return TierDecision(tier=previous.tier, level=old_level)
