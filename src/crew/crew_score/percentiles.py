"""Cohort-relative percentile ranks.

Every metric is normalized against the rest of the cohort, so raw
counters from groups of different size, age or cadence end up on the
same 0-1 scale.
"""

from __future__ import annotations

from bisect import bisect_left, bisect_right
from collections.abc import Sequence


def compute_percentiles(values: Sequence[float]) -> list[float]:
    """Compute the mid-rank percentile (0-1) of each value within ``values``.

    percentile(v) = (count(< v) + (count(== v) - 1) / 2) / (N - 1)

    Tied values share the midpoint of their block. A cohort of one (or
    none) puts everyone at 1.0.
    """
    n = len(values)
    if n <= 1:
        return [1.0] * n

    ordered = sorted(values)
    denominator = n - 1

    percentiles = []
    for value in values:
        below = bisect_left(ordered, value)
        equal = bisect_right(ordered, value) - below
        percentiles.append((below + (equal - 1) / 2) / denominator)
    return percentiles
