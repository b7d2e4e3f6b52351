"""Activity ledger: append-only rows plus the dedup guard queries."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from testnet_points.db.models import TestnetActivity
from testnet_points.points.activity_types import ActivityType, GuardPolicy, guard_policy_for
from testnet_points.points.errors import InvalidWalletAddress


@dataclass(frozen=True)
class CorrelationRefs:
    """Optional identifiers linking an activity to on-chain or vault state."""

    tx_hash: str | None = None
    vault_id: str | None = None
    position_id: str | None = None


NO_REFS = CorrelationRefs()


def normalize_wallet(wallet_address: str) -> str:
    """Case-fold a wallet address so every spelling maps to one account."""
    normalized = (wallet_address or "").strip().lower()
    if not normalized:
        msg = "Wallet address must not be empty"
        raise InvalidWalletAddress(msg)
    return normalized


def utc_day(now: datetime) -> str:
    """ISO date of ``now`` on the UTC calendar."""
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return now.astimezone(timezone.utc).date().isoformat()


def build_dedup_key(
    wallet: str,
    activity_type: ActivityType,
    now: datetime,
    subject: str | None = None,
) -> str | None:
    """Unique ledger key for gated activity types, None when unlimited.

    ``subject`` scopes an otherwise unlimited type to one row per subject
    (a referral credit per referred wallet).
    """
    match guard_policy_for(activity_type):
        case GuardPolicy.ONE_TIME:
            return f"{wallet}:{activity_type}"
        case GuardPolicy.ONCE_PER_DAY:
            return f"{wallet}:{activity_type}:{utc_day(now)}"
        case GuardPolicy.UNLIMITED:
            if subject is not None:
                return f"{wallet}:{activity_type}:{subject}"
            return None


async def dedup_key_taken(db: AsyncSession, dedup_key: str) -> bool:
    """Fast-path guard check. The unique constraint remains the authority."""
    result = await db.execute(
        select(TestnetActivity.id).where(TestnetActivity.dedup_key == dedup_key).limit(1)
    )
    return result.scalar_one_or_none() is not None


async def has_activity(db: AsyncSession, wallet: str, activity_type: ActivityType) -> bool:
    """Whether any row of ``activity_type`` exists for the wallet."""
    result = await db.execute(
        select(TestnetActivity.id)
        .where(
            TestnetActivity.wallet_address == wallet,
            TestnetActivity.activity_type == activity_type.value,
        )
        .limit(1)
    )
    return result.scalar_one_or_none() is not None


def new_activity(
    wallet: str,
    activity_type: ActivityType,
    points: int,
    description: str,
    now: datetime,
    refs: CorrelationRefs = NO_REFS,
    metadata: dict[str, Any] | None = None,
    dedup_key: str | None = None,
) -> TestnetActivity:
    return TestnetActivity(
        wallet_address=wallet,
        activity_type=activity_type.value,
        points_earned=points,
        related_tx_hash=refs.tx_hash,
        related_vault_id=refs.vault_id,
        related_position_id=refs.position_id,
        activity_metadata=metadata or {},
        description=description,
        dedup_key=dedup_key,
        created_at=now,
    )


async def list_activities(db: AsyncSession, wallet: str, limit: int) -> list[TestnetActivity]:
    """Most recent activities for a wallet, newest first."""
    result = await db.execute(
        select(TestnetActivity)
        .where(TestnetActivity.wallet_address == wallet)
        .order_by(TestnetActivity.created_at.desc(), TestnetActivity.id.desc())
        .limit(limit)
    )
    return list(result.scalars().all())
