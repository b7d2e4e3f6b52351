"""Points accumulator: atomic per-account increments and tier reclassification."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

import structlog
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import InstrumentedAttribute

from testnet_points.db.models import PointsAccount
from testnet_points.points.activity_types import PointsCategory
from testnet_points.points.tiers import Tier, TierInfo, classify

logger = structlog.get_logger()

CATEGORY_COLUMNS: dict[PointsCategory, InstrumentedAttribute[int]] = {
    PointsCategory.DEPOSIT: PointsAccount.deposit_points,
    PointsCategory.STAKING: PointsAccount.staking_points,
    PointsCategory.BRIDGE: PointsAccount.bridge_points,
    PointsCategory.REFERRAL: PointsAccount.referral_points,
    PointsCategory.BUG_REPORT: PointsAccount.bug_report_points,
    PointsCategory.SOCIAL: PointsAccount.social_points,
    PointsCategory.OTHER: PointsAccount.other_points,
}


@dataclass(frozen=True)
class TierChange:
    wallet: str
    old_tier: Tier
    new: TierInfo
    total_points: int


async def get_account(db: AsyncSession, wallet: str) -> PointsAccount | None:
    """Load an account with fresh column values, bypassing the identity map."""
    result = await db.execute(
        select(PointsAccount)
        .where(PointsAccount.wallet_address == wallet)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


def new_account(wallet: str, referral_code: str, now: datetime) -> PointsAccount:
    bronze = classify(0)
    return PointsAccount(
        wallet_address=wallet,
        total_points=0,
        deposit_points=0,
        staking_points=0,
        bridge_points=0,
        referral_points=0,
        bug_report_points=0,
        social_points=0,
        other_points=0,
        tier=bronze.tier.value,
        multiplier=bronze.multiplier,
        is_og=bronze.is_og,
        referral_code=referral_code,
        referral_count=0,
        referred_by=None,
        badges=[],
        created_at=now,
        updated_at=now,
    )


async def increment(
    db: AsyncSession,
    wallet: str,
    category: PointsCategory,
    delta: int,
    now: datetime,
    *,
    referral_credit: bool = False,
) -> TierChange | None:
    """Add ``delta`` to the total and one category in a single UPDATE.

    The addition happens in the store (``col = col + delta``), so concurrent
    increments for the same wallet serialize on the row lock instead of
    overwriting each other. Returns the tier change if the new total crossed
    a threshold, after writing the new tier in a second UPDATE on the same
    transaction.
    """
    column = CATEGORY_COLUMNS[category]
    values = {
        PointsAccount.total_points: PointsAccount.total_points + delta,
        column: column + delta,
        PointsAccount.updated_at: now,
    }
    if referral_credit:
        values[PointsAccount.referral_count] = PointsAccount.referral_count + 1

    result = await db.execute(
        update(PointsAccount)
        .where(PointsAccount.wallet_address == wallet)
        .values(values)
        .returning(PointsAccount.total_points, PointsAccount.tier)
        .execution_options(synchronize_session=False)
    )
    row = result.one()
    total_points, stored_tier = row.total_points, Tier(row.tier)

    info = classify(total_points)
    if info.tier == stored_tier:
        return None

    await db.execute(
        update(PointsAccount)
        .where(PointsAccount.wallet_address == wallet)
        .values(
            tier=info.tier.value,
            multiplier=info.multiplier,
            is_og=info.is_og,
            updated_at=now,
        )
        .execution_options(synchronize_session=False)
    )
    logger.info(
        "tier_upgraded",
        wallet=wallet,
        old_tier=stored_tier.value,
        new_tier=info.tier.value,
        total_points=total_points,
    )
    return TierChange(wallet=wallet, old_tier=stored_tier, new=info, total_points=total_points)
