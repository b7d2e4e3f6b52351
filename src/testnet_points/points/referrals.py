"""Referral codes and the referred-by relationship.

Codes are ``<PREFIX>-`` followed by 8 uppercase hex characters from a
cryptographic random source. Lookups are case-insensitive.
"""

from __future__ import annotations

import secrets
from datetime import datetime

import structlog
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from testnet_points.db.models import PointsAccount, TestnetActivity
from testnet_points.points.activity_types import ActivityType
from testnet_points.points.ledger import build_dedup_key

logger = structlog.get_logger()

REFERRAL_SUFFIX_BYTES = 4


def generate_referral_code(prefix: str) -> str:
    """Generate a referral code such as ``SHIELD-9F2C01AB``."""
    return f"{prefix.upper()}-{secrets.token_hex(REFERRAL_SUFFIX_BYTES).upper()}"


def normalize_referral_code(code: str) -> str:
    return (code or "").strip().upper()


async def find_by_referral_code(db: AsyncSession, code: str) -> PointsAccount | None:
    normalized = normalize_referral_code(code)
    if not normalized:
        return None
    result = await db.execute(
        select(PointsAccount).where(PointsAccount.referral_code == normalized)
    )
    return result.scalar_one_or_none()


async def set_referred_by(db: AsyncSession, wallet: str, referrer: str, now: datetime) -> bool:
    """Set ``referred_by`` only if it is still empty. First write wins.

    Returns True if this call bound the referrer.
    """
    result = await db.execute(
        update(PointsAccount)
        .where(
            PointsAccount.wallet_address == wallet,
            PointsAccount.referred_by.is_(None),
        )
        .values(referred_by=referrer, updated_at=now)
        .execution_options(synchronize_session=False)
    )
    bound = result.rowcount == 1
    if bound:
        logger.info("referral_bound", wallet=wallet, referred_by=referrer)
    return bound


async def find_uncredited_referrals(db: AsyncSession, now: datetime) -> list[tuple[str, str]]:
    """(referrer, referred) pairs whose first deposit never credited the referrer.

    A credit is identified by its ledger dedup key, so a pair drops out of
    this list as soon as the referral row exists.
    """
    first_deposits = (
        select(TestnetActivity.wallet_address)
        .where(TestnetActivity.activity_type == ActivityType.FIRST_DEPOSIT.value)
    )
    result = await db.execute(
        select(PointsAccount.referred_by, PointsAccount.wallet_address)
        .where(
            PointsAccount.referred_by.is_not(None),
            PointsAccount.wallet_address.in_(first_deposits),
        )
        .order_by(PointsAccount.created_at)
    )
    pairs = [(row.referred_by, row.wallet_address) for row in result]
    if not pairs:
        return []

    credited_result = await db.execute(
        select(TestnetActivity.dedup_key).where(
            TestnetActivity.activity_type == ActivityType.REFERRAL.value,
        )
    )
    credited = set(credited_result.scalars().all())
    return [
        (referrer, referred)
        for referrer, referred in pairs
        if build_dedup_key(referrer, ActivityType.REFERRAL, now, subject=referred) not in credited
    ]
