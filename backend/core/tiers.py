"""Leaderboard tier registry.

Tiers are assigned by the remote backend from a user's total points; this
module only mirrors the thresholds so the API and dashboard can show
badges, progress to the next tier and benefits without a round trip.

Typical usage::

    from backend.core.tiers import tier_for_points

    tier_for_points(12_000).name   # "Gold"
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Final, List, Optional


@dataclass(frozen=True)
class Tier:
    """One rung of the tier ladder.

    Attributes:
        name: Display name, also the value stored in ``users.tier``.
        min_points: Inclusive lower bound of total points.
        color: Hex colour used for badges.
        benefits: Human-readable perks.
    """

    name: str
    min_points: int
    color: str
    benefits: List[str] = field(default_factory=list)


TIERS: Final[List[Tier]] = [
    Tier("Bronze", 0, "#CD7F32", ["Basic features"]),
    Tier("Silver", 2_500, "#C0C0C0", ["Priority support", "5% bonus on wins"]),
    Tier("Gold", 10_000, "#FFD700", ["VIP support", "10% bonus on wins", "Exclusive events"]),
    Tier(
        "Platinum", 25_000, "#E5E4E2",
        ["Personal account manager", "15% bonus on wins", "Early access"],
    ),
    Tier("Diamond", 50_000, "#B9F2FF", ["Premium features", "20% bonus on wins", "Custom limits"]),
    Tier(
        "Master", 100_000, "#FF4D4D",
        ["All features unlocked", "25% bonus on wins", "Exclusive tournaments"],
    ),
]

DEFAULT_TIER: Final[str] = "Bronze"

_BY_NAME: Dict[str, Tier] = {t.name: t for t in TIERS}


def get_tier_info() -> Dict[str, dict]:
    """Tier table keyed by name, in ladder order."""
    return {
        t.name: {"min_points": t.min_points, "color": t.color, "benefits": list(t.benefits)}
        for t in TIERS
    }


def tier_config(name: Optional[str]) -> Tier:
    """Look up a tier by name; unknown or missing names map to Bronze."""
    return _BY_NAME.get(name or DEFAULT_TIER, _BY_NAME[DEFAULT_TIER])


def tier_for_points(points: float) -> Tier:
    """Highest tier whose threshold is at or below ``points``."""
    current = TIERS[0]
    for tier in TIERS:
        if points >= tier.min_points:
            current = tier
    return current


def next_tier(name: Optional[str]) -> Optional[Tier]:
    """The tier above ``name``, or ``None`` at the top of the ladder."""
    current = tier_config(name)
    idx = TIERS.index(current)
    return TIERS[idx + 1] if idx + 1 < len(TIERS) else None


def points_to_next_tier(points: float) -> Optional[float]:
    """Points still needed to reach the next tier; ``None`` for Master."""
    upcoming = next_tier(tier_for_points(points).name)
    if upcoming is None:
        return None
    return max(0.0, upcoming.min_points - points)
