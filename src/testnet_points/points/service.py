"""Points service: records activities, awards points, credits referrals.

One instance is constructed per process and handed to whatever calls it.
All state lives in the store; each public operation runs its own unit of
work on a fresh session.

Award flow for a single activity:
1. Get or create the wallet's account (committed on its own)
2. Fast-path dedup check on the ledger key
3. Insert the ledger row; a unique-key violation means a concurrent
   writer got there first and the award becomes a no-op
4. Atomically increment total + category, reclassify the tier
5. Commit, then publish a tier event if the tier moved
"""

from __future__ import annotations

import json
import math
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from enum import StrEnum
from typing import Any

import structlog
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from testnet_points.config import Settings, get_settings
from testnet_points.db.models import PointsAccount, TestnetActivity
from testnet_points.points.accumulator import TierChange, get_account, increment, new_account
from testnet_points.points.activity_types import POINTS_CONFIG, ActivityType, category_for
from testnet_points.points.errors import InvalidAmount, ReferralError
from testnet_points.points.leaderboard import (
    LeaderboardStats,
    leaderboard_stats,
    rank_for_points,
    top_accounts,
)
from testnet_points.points.ledger import (
    NO_REFS,
    CorrelationRefs,
    build_dedup_key,
    dedup_key_taken,
    has_activity,
    list_activities,
    new_activity,
    normalize_wallet,
)
from testnet_points.points.referrals import (
    find_by_referral_code,
    find_uncredited_referrals,
    generate_referral_code,
    set_referred_by,
)
from testnet_points.points.tiers import Tier, TierProgress, next_tier_progress

logger = structlog.get_logger()

TIER_UP_CHANNEL = "pubsub:tier_up"
USD_PER_DEPOSIT_UNIT = 10


class BridgeDirection(StrEnum):
    XRPL_TO_FLARE = "xrpl_to_flare"
    FLARE_TO_XRPL = "flare_to_xrpl"


@dataclass
class AwardResult:
    """``activity`` is None when the call wrote no ledger row of its own."""

    activity: TestnetActivity | None
    account: PointsAccount
    points_awarded: int


@dataclass
class PointsSummary:
    account: PointsAccount
    rank: int
    progress: TierProgress


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _short(wallet: str) -> str:
    return f"{wallet[:10]}..."


class PointsService:
    """Points ledger, accumulator, referral graph and leaderboard queries."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        redis: Any = None,
        settings: Settings | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._redis = redis
        self._settings = settings or get_settings()
        self._clock = clock or _utcnow

    def _now(self) -> datetime:
        return self._clock()

    # ------------------------------------------------------------------
    # Accounts
    # ------------------------------------------------------------------

    async def get_or_create_account(self, wallet_address: str) -> PointsAccount:
        wallet = normalize_wallet(wallet_address)
        async with self._session_factory() as db:
            return await self._get_or_create(db, wallet)

    async def get_account(self, wallet_address: str) -> PointsAccount | None:
        wallet = normalize_wallet(wallet_address)
        async with self._session_factory() as db:
            return await get_account(db, wallet)

    async def _get_or_create(self, db: AsyncSession, wallet: str) -> PointsAccount:
        """Return the account, creating and committing it on first reference.

        A unique violation on insert is either a concurrent creation of the
        same wallet (re-read it) or a referral code collision (retry with a
        fresh code).
        """
        account = await get_account(db, wallet)
        if account is not None:
            return account

        attempts = self._settings.referral_code_max_attempts
        for attempt in range(1, attempts + 1):
            code = generate_referral_code(self._settings.referral_code_prefix)
            db.add(new_account(wallet, code, self._now()))
            try:
                await db.commit()
            except IntegrityError:
                await db.rollback()
                account = await get_account(db, wallet)
                if account is not None:
                    return account
                logger.warning("referral_code_collision", wallet=wallet, attempt=attempt)
                continue

            logger.info("points_account_created", wallet=wallet, referral_code=code)
            return await self._reload_account(db, wallet)

        msg = f"Failed to create points account after {attempts} attempts"
        raise RuntimeError(msg)

    async def _reload_account(self, db: AsyncSession, wallet: str) -> PointsAccount:
        """Re-read an account this unit of work has just written."""
        account = await get_account(db, wallet)
        if account is None:
            msg = f"Points account {wallet} missing after commit"
            raise RuntimeError(msg)
        return account

    # ------------------------------------------------------------------
    # Ledger + accumulator
    # ------------------------------------------------------------------

    async def log_activity(
        self,
        wallet_address: str,
        activity_type: ActivityType | str,
        *,
        points: int | None = None,
        refs: CorrelationRefs = NO_REFS,
        metadata: dict[str, Any] | None = None,
        description: str | None = None,
        dedup_subject: str | None = None,
    ) -> AwardResult | None:
        """Record one activity and award its points.

        Returns None when the guard policy rejects the activity (already
        awarded ever / today). ``points`` overrides the configured base,
        for amount-scaled awards.
        """
        activity_type = ActivityType(activity_type)
        wallet = normalize_wallet(wallet_address)
        config = POINTS_CONFIG[activity_type]
        awarded = config.base if points is None else points
        if awarded < 0:
            msg = f"Points must not be negative, got {awarded}"
            raise InvalidAmount(msg)

        now = self._now()
        dedup_key = build_dedup_key(wallet, activity_type, now, subject=dedup_subject)

        async with self._session_factory() as db:
            await self._get_or_create(db, wallet)

            if dedup_key is not None and await dedup_key_taken(db, dedup_key):
                logger.info("activity_already_awarded", wallet=_short(wallet), activity_type=activity_type.value)
                return None

            activity = new_activity(
                wallet,
                activity_type,
                awarded,
                description or config.description,
                now,
                refs=refs,
                metadata=metadata,
                dedup_key=dedup_key,
            )
            db.add(activity)
            try:
                await db.flush()
            except IntegrityError:
                await db.rollback()
                logger.info(
                    "activity_already_awarded",
                    wallet=_short(wallet),
                    activity_type=activity_type.value,
                    source="constraint",
                )
                return None

            change = await increment(
                db,
                wallet,
                category_for(activity_type),
                awarded,
                now,
                referral_credit=activity_type is ActivityType.REFERRAL,
            )
            await db.commit()
            account = await self._reload_account(db, wallet)

        logger.info(
            "points_awarded",
            wallet=_short(wallet),
            activity_type=activity_type.value,
            points=awarded,
        )
        if change is not None:
            await self._publish_tier_change(change)

        return AwardResult(activity=activity, account=account, points_awarded=awarded)

    async def _publish_tier_change(self, change: TierChange) -> None:
        if self._redis is None or not self._settings.publish_tier_events:
            return
        try:
            await self._redis.publish(
                TIER_UP_CHANNEL,
                json.dumps({
                    "wallet": change.wallet,
                    "old_tier": change.old_tier.value,
                    "new_tier": change.new.tier.value,
                    "multiplier": str(change.new.multiplier),
                    "total_points": change.total_points,
                }),
            )
        except Exception:
            logger.warning("tier_event_publish_failed", wallet=_short(change.wallet), exc_info=True)

    # ------------------------------------------------------------------
    # Award operations
    # ------------------------------------------------------------------

    async def award_deposit_points(
        self,
        wallet_address: str,
        amount_usd: float | Decimal,
        refs: CorrelationRefs = NO_REFS,
    ) -> AwardResult:
        """Award scaled deposit points, plus the one-time first deposit bonus.

        The first deposit also credits the referrer, if one is bound. That
        credit runs in its own transaction; if it fails the bonus stays
        committed and ``reconcile_referrals`` picks the credit up later.
        Below one scoring unit no deposit row is written: the result is the
        first deposit bonus if this call awarded it, otherwise the current
        account with ``points_awarded`` 0. Never None.
        """
        if not math.isfinite(float(amount_usd)) or amount_usd < 0:
            msg = f"Deposit amount must be a non-negative number, got {amount_usd}"
            raise InvalidAmount(msg)

        wallet = normalize_wallet(wallet_address)
        metadata = {"amount_usd": float(amount_usd)}

        first = await self.log_activity(
            wallet,
            ActivityType.FIRST_DEPOSIT,
            refs=refs,
            metadata=metadata,
            description="First deposit bonus - Welcome to Shield Finance!",
        )
        if first is not None and first.account.referred_by:
            await self._credit_referrer(first.account.referred_by, wallet, refs)

        units = math.floor(amount_usd / USD_PER_DEPOSIT_UNIT)
        deposit_points = int(units) * POINTS_CONFIG[ActivityType.DEPOSIT].base
        if deposit_points <= 0:
            if first is not None:
                return first
            account = await self.get_or_create_account(wallet)
            return AwardResult(activity=None, account=account, points_awarded=0)

        return await self.log_activity(
            wallet,
            ActivityType.DEPOSIT,
            points=deposit_points,
            refs=refs,
            metadata=metadata,
            description=f"Deposit of ~${float(amount_usd):.2f}",
        )

    async def _credit_referrer(self, referrer: str, referred: str, refs: CorrelationRefs) -> None:
        logger.info("referral_processing", referrer=_short(referrer), referred=_short(referred))
        try:
            await self.process_referral(referrer, referred, refs)
        except SQLAlchemyError:
            logger.error(
                "referral_credit_failed",
                referrer=referrer,
                referred=referred,
                exc_info=True,
            )

    async def award_bridge_points(
        self,
        wallet_address: str,
        direction: BridgeDirection | str,
        refs: CorrelationRefs = NO_REFS,
        amount: str | None = None,
    ) -> AwardResult | None:
        try:
            direction = BridgeDirection(direction)
        except ValueError as e:
            msg = f"Unknown bridge direction: {direction}"
            raise ValueError(msg) from e

        if direction is BridgeDirection.XRPL_TO_FLARE:
            activity_type, label = ActivityType.BRIDGE_XRPL_FLARE, "XRPL → Flare"
        else:
            activity_type, label = ActivityType.BRIDGE_FLARE_XRPL, "Flare → XRPL"

        return await self.log_activity(
            wallet_address,
            activity_type,
            refs=refs,
            metadata={"direction": direction.value, "amount": amount},
            description=f"Bridge {label}",
        )

    async def award_withdrawal_points(
        self,
        wallet_address: str,
        refs: CorrelationRefs = NO_REFS,
        redemption_id: str | None = None,
        amount: str | None = None,
    ) -> AwardResult | None:
        return await self.log_activity(
            wallet_address,
            ActivityType.WITHDRAWAL,
            refs=refs,
            metadata={"redemption_id": redemption_id, "amount": amount},
        )

    async def award_daily_login_points(self, wallet_address: str) -> AwardResult | None:
        """Once per UTC day. None if already claimed today."""
        return await self.log_activity(wallet_address, ActivityType.DAILY_LOGIN)

    async def award_swap_points(
        self,
        wallet_address: str,
        refs: CorrelationRefs = NO_REFS,
        from_token: str | None = None,
        to_token: str | None = None,
        amount: str | None = None,
    ) -> AwardResult | None:
        return await self.log_activity(
            wallet_address,
            ActivityType.SWAP,
            refs=refs,
            metadata={"from_token": from_token, "to_token": to_token, "amount": amount},
            description=f"Swap {from_token or 'tokens'} → {to_token or 'tokens'}",
        )

    async def award_boost_activated_points(
        self,
        wallet_address: str,
        refs: CorrelationRefs = NO_REFS,
        shield_amount: str | None = None,
        boost_percentage: float | None = None,
    ) -> AwardResult | None:
        """One time per wallet, ever."""
        return await self.log_activity(
            wallet_address,
            ActivityType.BOOST_ACTIVATED,
            refs=refs,
            metadata={"shield_amount": shield_amount, "boost_percentage": boost_percentage},
            description=f"Activated SHIELD boost (+{boost_percentage or 0}% APY)",
        )

    async def award_staking_daily_points(self, wallet_address: str) -> AwardResult | None:
        """Called by the daily staking job; once per UTC day per wallet."""
        return await self.log_activity(wallet_address, ActivityType.STAKE_SHIELD)

    async def award_social_share_points(
        self, wallet_address: str, platform: str | None = None,
    ) -> AwardResult | None:
        return await self.log_activity(
            wallet_address,
            ActivityType.SOCIAL_SHARE,
            metadata={"platform": platform},
        )

    async def award_bug_report_points(
        self,
        wallet_address: str,
        points: int | None = None,
        report_id: str | None = None,
    ) -> AwardResult | None:
        return await self.log_activity(
            wallet_address,
            ActivityType.BUG_REPORT,
            points=points,
            metadata={"report_id": report_id},
        )

    async def award_faucet_claim_points(
        self, wallet_address: str, refs: CorrelationRefs = NO_REFS,
    ) -> AwardResult | None:
        return await self.log_activity(wallet_address, ActivityType.FAUCET_CLAIM, refs=refs)

    # ------------------------------------------------------------------
    # Referrals
    # ------------------------------------------------------------------

    async def bind_referral(self, wallet_address: str, referral_code: str) -> PointsAccount:
        """Attach a referrer to a wallet via the referrer's code.

        Binding is write-once. Repeating the same binding is a no-op; a
        different referrer, an own code, or a wallet that already made its
        first deposit is rejected with ``ReferralError``.
        """
        wallet = normalize_wallet(wallet_address)
        async with self._session_factory() as db:
            referrer = await find_by_referral_code(db, referral_code)
            if referrer is None:
                msg = f"Unknown referral code: {referral_code}"
                raise ReferralError(msg)
            if referrer.wallet_address == wallet:
                msg = "A wallet cannot use its own referral code"
                raise ReferralError(msg)

            account = await self._get_or_create(db, wallet)
            if account.referred_by is None:
                if await has_activity(db, wallet, ActivityType.FIRST_DEPOSIT):
                    msg = "Referral codes must be applied before the first deposit"
                    raise ReferralError(msg)
                await set_referred_by(db, wallet, referrer.wallet_address, self._now())
                await db.commit()
                account = await self._reload_account(db, wallet)

            if account.referred_by != referrer.wallet_address:
                msg = "Wallet is already referred by another wallet"
                raise ReferralError(msg)
            return account

    async def process_referral(
        self,
        referrer_address: str,
        referred_address: str,
        refs: CorrelationRefs = NO_REFS,
    ) -> AwardResult | None:
        """Credit ``referrer`` for ``referred``, at most once per referred wallet.

        Binds ``referred_by`` if it is still empty. Returns None if this
        referral was already credited.
        """
        referrer = normalize_wallet(referrer_address)
        referred = normalize_wallet(referred_address)
        if referrer == referred:
            msg = "A wallet cannot refer itself"
            raise ReferralError(msg)

        async with self._session_factory() as db:
            await self._get_or_create(db, referrer)
            await self._get_or_create(db, referred)
            await set_referred_by(db, referred, referrer, self._now())
            await db.commit()
            account = await self._reload_account(db, referred)

        if account.referred_by != referrer:
            msg = "Wallet is already referred by another wallet"
            raise ReferralError(msg)

        result = await self.log_activity(
            referrer,
            ActivityType.REFERRAL,
            refs=refs,
            metadata={"referred_address": referred},
            description=f"Referral bonus for {_short(referred)}",
            dedup_subject=referred,
        )
        if result is not None:
            logger.info("referral_credited", referrer=_short(referrer), referred=_short(referred))
        return result

    async def validate_referral_code(self, code: str) -> PointsAccount | None:
        async with self._session_factory() as db:
            return await find_by_referral_code(db, code)

    async def reconcile_referrals(self) -> int:
        """Credit referrers whose referral credit was lost after a first deposit.

        Safe to run repeatedly. Returns the number of credits written.
        """
        async with self._session_factory() as db:
            pairs = await find_uncredited_referrals(db, self._now())

        credited = 0
        for referrer, referred in pairs:
            result = await self.log_activity(
                referrer,
                ActivityType.REFERRAL,
                metadata={"referred_address": referred, "reconciled": True},
                description=f"Referral bonus for {_short(referred)}",
                dedup_subject=referred,
            )
            if result is not None:
                credited += 1
        if credited:
            logger.info("referrals_reconciled", credited=credited)
        return credited

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def get_user_activities(
        self, wallet_address: str, limit: int | None = None,
    ) -> list[TestnetActivity]:
        wallet = normalize_wallet(wallet_address)
        if limit is None:
            limit = self._settings.activity_history_default_limit
        limit = max(1, limit)
        async with self._session_factory() as db:
            return await list_activities(db, wallet, limit)

    async def get_leaderboard(self, limit: int | None = None) -> list[PointsAccount]:
        """Limits are clamped to ``1..leaderboard_max_limit``."""
        if limit is None:
            limit = self._settings.leaderboard_default_limit
        limit = min(max(1, limit), self._settings.leaderboard_max_limit)
        async with self._session_factory() as db:
            return await top_accounts(db, limit)

    async def get_leaderboard_stats(self) -> LeaderboardStats:
        async with self._session_factory() as db:
            return await leaderboard_stats(db)

    async def get_user_rank(self, wallet_address: str) -> int:
        """Competition rank of the wallet; 0 if it has no account yet."""
        wallet = normalize_wallet(wallet_address)
        async with self._session_factory() as db:
            account = await get_account(db, wallet)
            if account is None:
                return 0
            return await rank_for_points(db, account.total_points)

    def get_next_tier_progress(self, total_points: int, tier: Tier | str) -> TierProgress:
        return next_tier_progress(total_points, tier)

    async def get_points_summary(self, wallet_address: str) -> PointsSummary:
        """Account, rank and tier progress, creating the account if needed."""
        wallet = normalize_wallet(wallet_address)
        async with self._session_factory() as db:
            account = await self._get_or_create(db, wallet)
            rank = await rank_for_points(db, account.total_points)
        return PointsSummary(
            account=account,
            rank=rank,
            progress=next_tier_progress(account.total_points, account.tier),
        )
