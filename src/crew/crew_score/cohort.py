"""Cohort scoring: percentiles, pillars, crew scores and ranks for a whole group."""

from __future__ import annotations

import math
import uuid
from dataclasses import dataclass, fields

from crew.crew_score.percentiles import compute_percentiles
from crew.crew_score.pillars import PillarScore, combine_pillars, compute_pillars

# Metrics that are percentile-normalized within the cohort.
METRICS: tuple[str, ...] = (
    "attendance_rate",
    "events_attended",
    "current_streak",
    "spirit_points_total",
    "messages_sent",
    "reactions_given",
    "best_streak",
    "guest_converts",
    "tenure_days",
)


class InvalidActivityError(ValueError):
    """Raised when a raw activity counter is negative or not a finite number."""


@dataclass(frozen=True)
class MemberActivityRecord:
    """Raw activity counters of one approved member, rebuilt on every run."""

    user_id: uuid.UUID
    attendance_rate: float = 0.0
    events_attended: int = 0
    current_streak: int = 0
    best_streak: int = 0
    spirit_points_total: int = 0
    messages_sent: int = 0
    reactions_given: int = 0
    guest_converts: int = 0
    tenure_days: int = 0
    is_founding_member: bool = False

    @classmethod
    def placeholder(
        cls,
        user_id: uuid.UUID,
        tenure_days: int = 0,
        is_founding_member: bool = False,
    ) -> MemberActivityRecord:
        """Zero-activity record for a member without a stats row yet."""
        return cls(user_id=user_id, tenure_days=tenure_days, is_founding_member=is_founding_member)

    def validate(self) -> None:
        """Reject counters that would poison the percentile math."""
        for f in fields(self):
            if f.name not in METRICS:
                continue
            value = getattr(self, f.name)
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise InvalidActivityError(f"{f.name} must be a number, got {value!r} for {self.user_id}")
            if not math.isfinite(value) or value < 0:
                raise InvalidActivityError(
                    f"{f.name} must be a non-negative finite number, got {value!r} for {self.user_id}"
                )


@dataclass(frozen=True)
class MemberScore:
    """Scoring output for one member of a cohort."""

    user_id: uuid.UUID
    pillars: PillarScore
    crew_score: int
    rank: int


def rank_order(scores: list[tuple[uuid.UUID, int]]) -> dict[uuid.UUID, int]:
    """Map user_id -> 1-based rank.

    Sorted by crew score DESC; equal scores are ordered by user_id ASC so
    the ranking never depends on input order.
    """
    ordered = sorted(scores, key=lambda s: (-s[1], s[0]))
    return {user_id: idx + 1 for idx, (user_id, _) in enumerate(ordered)}


def score_cohort(records: list[MemberActivityRecord]) -> list[MemberScore]:
    """Score every member of a cohort. Output follows input order."""
    if not records:
        return []

    for record in records:
        record.validate()

    percentiles_by_metric = {
        metric: compute_percentiles([float(getattr(r, metric)) for r in records])
        for metric in METRICS
    }

    partial: list[tuple[uuid.UUID, PillarScore, int]] = []
    for i, record in enumerate(records):
        member_percentiles = {metric: values[i] for metric, values in percentiles_by_metric.items()}
        pillars = compute_pillars(member_percentiles, record.is_founding_member)
        partial.append((record.user_id, pillars, combine_pillars(pillars)))

    ranks = rank_order([(user_id, crew_score) for user_id, _, crew_score in partial])

    return [
        MemberScore(user_id=user_id, pillars=pillars, crew_score=crew_score, rank=ranks[user_id])
        for user_id, pillars, crew_score in partial
    ]
