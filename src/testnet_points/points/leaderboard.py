"""Leaderboard queries over the persisted points accounts.

Ranks use competition ranking: equal totals share a rank and the next
distinct total skips past the tied group (100, 100, 50 -> 1, 1, 3).
"""

from __future__ import annotations

from dataclasses import dataclass, field

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from testnet_points.db.models import PointsAccount
from testnet_points.points.tiers import TIER_ORDER, Tier


@dataclass
class LeaderboardStats:
    total_participants: int
    total_points_distributed: int
    tier_breakdown: dict[Tier, int] = field(default_factory=dict)


async def rank_for_points(db: AsyncSession, total_points: int) -> int:
    """1 + number of accounts with strictly more points."""
    result = await db.execute(
        select(func.count())
        .select_from(PointsAccount)
        .where(PointsAccount.total_points > total_points)
    )
    return int(result.scalar_one()) + 1


async def top_accounts(db: AsyncSession, limit: int) -> list[PointsAccount]:
    """Accounts by total points descending; earlier accounts first on ties."""
    result = await db.execute(
        select(PointsAccount)
        .order_by(
            PointsAccount.total_points.desc(),
            PointsAccount.created_at.asc(),
            PointsAccount.wallet_address.asc(),
        )
        .limit(limit)
    )
    return list(result.scalars().all())


async def leaderboard_stats(db: AsyncSession) -> LeaderboardStats:
    totals = await db.execute(
        select(
            func.count(PointsAccount.wallet_address),
            func.coalesce(func.sum(PointsAccount.total_points), 0),
        )
    )
    participants, points = totals.one()

    breakdown: dict[Tier, int] = {tier: 0 for tier in TIER_ORDER}
    tier_rows = await db.execute(
        select(PointsAccount.tier, func.count(PointsAccount.wallet_address))
        .group_by(PointsAccount.tier)
    )
    for tier, count in tier_rows:
        breakdown[Tier(tier)] = int(count)

    return LeaderboardStats(
        total_participants=int(participants),
        total_points_distributed=int(points),
        tier_breakdown=breakdown,
    )
