"""Tier thresholds and themed tier names.

These values MUST match the frontend tier badge exactly.

Groups pick a theme; ``custom`` groups supply their own five names.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import NamedTuple

TIER_THRESHOLDS: list[dict] = [
    {"level": 1, "min": 0, "max": 199},
    {"level": 2, "min": 200, "max": 399},
    {"level": 3, "min": 400, "max": 699},
    {"level": 4, "min": 700, "max": 899},
    {"level": 5, "min": 900, "max": 1000},
]

DEFAULT_THEME = "generic"
CUSTOM_THEME = "custom"

TIER_THEMES: dict[str, tuple[str, str, str, str, str]] = {
    "generic": ("Newcomer", "Regular", "Dedicated", "Veteran", "Legend"),
    "running": ("Rookie", "Pacer", "Racer", "Marathoner", "Ultra"),
    "cycling": ("Stabiliser", "Sprinter", "Climber", "Peloton", "Maillot"),
    "hiking": ("Rambler", "Trekker", "Pathfinder", "Summiteer", "Mountaineer"),
    "book_club": ("Browser", "Reader", "Bookworm", "Curator", "Librarian"),
    "knitting": ("Caster-on", "Stitcher", "Knitter", "Artisan", "Master"),
    "yoga": ("Beginner", "Student", "Practitioner", "Yogi", "Guru"),
    "football": ("Sub", "Starter", "Playmaker", "Captain", "Legend"),
    "social": ("Newbie", "Regular", "Connector", "Influencer", "Icon"),
    "volunteering": ("Helper", "Supporter", "Champion", "Leader", "Hero"),
    "photography": ("Snapper", "Shooter", "Photographer", "Artist", "Visionary"),
}


class TierInfo(NamedTuple):
    tier: str
    level: int
    threshold: int


# (crew_score, tier_theme, custom_tier_names) -> TierInfo
TierResolver = Callable[[int, "str | None", "list[str] | None"], TierInfo]


def get_member_tier(
    crew_score: float,
    tier_theme: str | None = None,
    custom_tier_names: list[str] | None = None,
) -> TierInfo:
    """Resolve the tier name and level (1-5) for a crew score.

    Pure: same inputs always give the same tier, and a higher score never
    yields a lower level.
    """
    clamped = max(0, min(1000, int(crew_score + 0.5)))
    bracket = next(t for t in TIER_THRESHOLDS if t["min"] <= clamped <= t["max"])
    level = bracket["level"]
    idx = level - 1

    # Custom theme: use provided names, fall back to generic
    if tier_theme == CUSTOM_THEME and custom_tier_names and len(custom_tier_names) == 5:
        return TierInfo(tier=custom_tier_names[idx], level=level, threshold=bracket["min"])

    theme = TIER_THEMES.get(tier_theme or DEFAULT_THEME, TIER_THEMES[DEFAULT_THEME])
    return TierInfo(tier=theme[idx], level=level, threshold=bracket["min"])
