"""Pillar aggregation and score combination tests."""

from __future__ import annotations

import pytest

from crew.crew_score.cohort import METRICS
from crew.crew_score.pillars import (
    ADVENTURE_MAX,
    CREW_SCORE_MAX,
    LEGACY_MAX,
    LOYALTY_MAX,
    SPIRIT_MAX,
    PillarScore,
    combine_pillars,
    compute_pillars,
    round_half_up,
)


def _uniform(p: float) -> dict[str, float]:
    return {metric: p for metric in METRICS}


class TestRoundHalfUp:
    """Test round_half_up."""

    @pytest.mark.parametrize(("value", "expected"), [
        (0.0, 0),
        (0.49, 0),
        (0.5, 1),
        (1.5, 2),
        (2.5, 3),
        (99.4999, 99),
        (149.5, 150),
    ])
    def test_rounds_halves_up(self, value, expected):
        assert round_half_up(value) == expected


class TestComputePillars:
    """Test compute_pillars."""

    def test_top_of_every_metric(self):
        pillars = compute_pillars(_uniform(1.0), is_founding_member=False)
        assert pillars == PillarScore(loyalty=400, spirit=300, adventure=150, legacy=120)

    def test_founding_member_fills_legacy(self):
        pillars = compute_pillars(_uniform(1.0), is_founding_member=True)
        assert pillars.legacy == LEGACY_MAX
        assert pillars.total == CREW_SCORE_MAX

    def test_bottom_of_every_metric(self):
        pillars = compute_pillars(_uniform(0.0), is_founding_member=False)
        assert pillars == PillarScore(loyalty=0, spirit=0, adventure=0, legacy=0)

    def test_founding_bonus_is_flat(self):
        """The founding share is 20% of Legacy whatever the percentiles."""
        pillars = compute_pillars(_uniform(0.0), is_founding_member=True)
        assert pillars.legacy == 30

    def test_midpoint_percentiles(self):
        pillars = compute_pillars(_uniform(0.5), is_founding_member=False)
        assert pillars == PillarScore(loyalty=200, spirit=150, adventure=75, legacy=60)

    def test_loyalty_weights(self):
        percentiles = _uniform(0.0)
        percentiles["attendance_rate"] = 1.0
        assert compute_pillars(percentiles, False).loyalty == 200

        percentiles = _uniform(0.0)
        percentiles["current_streak"] = 1.0
        assert compute_pillars(percentiles, False).loyalty == 100

    def test_events_attended_feeds_loyalty_and_adventure(self):
        percentiles = _uniform(0.0)
        percentiles["events_attended"] = 1.0
        pillars = compute_pillars(percentiles, False)
        assert pillars.loyalty == 100
        assert pillars.adventure == 60
        assert pillars.spirit == 0
        assert pillars.legacy == 0

    def test_spirit_weights(self):
        percentiles = _uniform(0.0)
        percentiles["spirit_points_total"] = 1.0
        assert compute_pillars(percentiles, False).spirit == 120

    def test_pillar_maxima(self):
        pillars = compute_pillars(_uniform(1.0), True)
        assert pillars.loyalty == LOYALTY_MAX
        assert pillars.spirit == SPIRIT_MAX
        assert pillars.adventure == ADVENTURE_MAX


class TestCombinePillars:
    """Test combine_pillars."""

    def test_sums_pillars(self):
        assert combine_pillars(PillarScore(300, 150, 75, 60)) == 585

    def test_clamped_to_max(self):
        assert combine_pillars(PillarScore(400, 300, 150, 151)) == CREW_SCORE_MAX

    def test_clamped_to_zero(self):
        assert combine_pillars(PillarScore(0, 0, 0, 0)) == 0
