"""Pillar weights, aggregation and the combined Crew Score.

Crew Score (max 1000) = Loyalty (400) + Spirit (300) + Adventure (150) + Legacy (150).
Each pillar blends the percentiles of a few metrics; weights are
fractions of the pillar max.
"""

from __future__ import annotations

import math
from dataclasses import dataclass

CREW_SCORE_MAX = 1000

# Loyalty = 40%
LOYALTY_MAX = 400
LOYALTY_WEIGHTS = {"attendance_rate": 0.50, "events_attended": 0.25, "current_streak": 0.25}

# Spirit = 30%
SPIRIT_MAX = 300
SPIRIT_WEIGHTS = {"spirit_points_total": 0.40, "messages_sent": 0.30, "reactions_given": 0.30}

# Adventure = 15%
ADVENTURE_MAX = 150
ADVENTURE_WEIGHTS = {"best_streak": 0.60, "events_attended": 0.40}

# Legacy = 15%. The founding member share is a flat bonus, not a percentile.
LEGACY_MAX = 150
LEGACY_WEIGHTS = {"tenure_days": 0.40, "guest_converts": 0.40}
FOUNDING_MEMBER_WEIGHT = 0.20


@dataclass(frozen=True)
class PillarScore:
    """The four rounded pillar scores of one member."""

    loyalty: int
    spirit: int
    adventure: int
    legacy: int

    @property
    def total(self) -> int:
        return self.loyalty + self.spirit + self.adventure + self.legacy


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves away from zero for non-negative values."""
    return math.floor(value + 0.5)


def _weighted(percentiles: dict[str, float], weights: dict[str, float], pillar_max: int) -> float:
    return sum(percentiles[metric] * pillar_max * weight for metric, weight in weights.items())


def compute_pillars(percentiles: dict[str, float], is_founding_member: bool) -> PillarScore:
    """Blend one member's metric percentiles into the four pillars.

    ``percentiles`` maps metric name to the member's percentile (0-1)
    for that metric within the cohort.
    """
    founding_bonus = LEGACY_MAX * FOUNDING_MEMBER_WEIGHT if is_founding_member else 0.0

    return PillarScore(
        loyalty=round_half_up(_weighted(percentiles, LOYALTY_WEIGHTS, LOYALTY_MAX)),
        spirit=round_half_up(_weighted(percentiles, SPIRIT_WEIGHTS, SPIRIT_MAX)),
        adventure=round_half_up(_weighted(percentiles, ADVENTURE_WEIGHTS, ADVENTURE_MAX)),
        legacy=round_half_up(_weighted(percentiles, LEGACY_WEIGHTS, LEGACY_MAX) + founding_bonus),
    )


def combine_pillars(pillars: PillarScore) -> int:
    """Sum the pillars into a Crew Score clamped to [0, 1000]."""
    return min(CREW_SCORE_MAX, max(0, pillars.total))
