"""Tier thresholds and classification.

Tier is a pure function of total points. Totals never decrease, so an
account only ever moves forward through ``TIER_ORDER``.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from decimal import Decimal
from enum import StrEnum


class Tier(StrEnum):
    BRONZE = "bronze"
    SILVER = "silver"
    GOLD = "gold"
    DIAMOND = "diamond"


@dataclass(frozen=True)
class TierConfig:
    min_points: int
    multiplier: Decimal


TIER_CONFIG: dict[Tier, TierConfig] = {
    Tier.BRONZE: TierConfig(0, Decimal("1.0")),
    Tier.SILVER: TierConfig(500, Decimal("1.5")),
    Tier.GOLD: TierConfig(2000, Decimal("2.0")),
    Tier.DIAMOND: TierConfig(5000, Decimal("3.0")),
}

TIER_ORDER: list[Tier] = [Tier.BRONZE, Tier.SILVER, Tier.GOLD, Tier.DIAMOND]

OG_TIERS: frozenset[Tier] = frozenset({Tier.GOLD, Tier.DIAMOND})


@dataclass(frozen=True)
class TierInfo:
    tier: Tier
    multiplier: Decimal
    is_og: bool


@dataclass(frozen=True)
class TierProgress:
    next_tier: Tier | None
    points_needed: int
    progress_percent: int


def classify(total_points: int) -> TierInfo:
    """Map cumulative points to (tier, multiplier, OG flag), highest tier first."""
    for tier in reversed(TIER_ORDER):
        config = TIER_CONFIG[tier]
        if total_points >= config.min_points:
            return TierInfo(tier=tier, multiplier=config.multiplier, is_og=tier in OG_TIERS)
    return TierInfo(tier=Tier.BRONZE, multiplier=TIER_CONFIG[Tier.BRONZE].multiplier, is_og=False)


def next_tier_progress(total_points: int, tier: Tier | str) -> TierProgress:
    """Linear progress from the current tier's threshold to the next one.

    At the top tier there is nothing left to reach: no next tier, zero
    points needed, 100 percent.
    """
    current = Tier(tier)
    index = TIER_ORDER.index(current)
    if index == len(TIER_ORDER) - 1:
        return TierProgress(next_tier=None, points_needed=0, progress_percent=100)

    next_tier = TIER_ORDER[index + 1]
    current_threshold = TIER_CONFIG[current].min_points
    next_threshold = TIER_CONFIG[next_tier].min_points

    points_needed = max(0, next_threshold - total_points)
    span = next_threshold - current_threshold
    percent = math.floor((total_points - current_threshold) / span * 100)

    return TierProgress(
        next_tier=next_tier,
        points_needed=points_needed,
        progress_percent=min(100, max(0, percent)),
    )
