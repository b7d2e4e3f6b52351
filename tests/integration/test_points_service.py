"""Points service against a real store — awards, guards, tiers."""

from __future__ import annotations

import asyncio
import json
from decimal import Decimal

import pytest
from sqlalchemy import func, select

from testnet_points.db.models import PointsAccount, TestnetActivity
from testnet_points.points.accumulator import CATEGORY_COLUMNS
from testnet_points.points.activity_types import ActivityType
from testnet_points.points.errors import InvalidAmount, InvalidWalletAddress
from testnet_points.points.ledger import CorrelationRefs
from testnet_points.points.service import TIER_UP_CHANNEL

pytestmark = pytest.mark.asyncio

WALLET = "0xA11CE00000000000000000000000000000000001"


async def _count_rows(service, wallet: str, activity_type: ActivityType | None = None) -> int:
    async with service._session_factory() as db:
        query = select(func.count()).select_from(TestnetActivity).where(
            TestnetActivity.wallet_address == wallet.lower()
        )
        if activity_type is not None:
            query = query.where(TestnetActivity.activity_type == activity_type.value)
        return (await db.execute(query)).scalar_one()


async def _all_accounts(service) -> list[PointsAccount]:
    async with service._session_factory() as db:
        return list((await db.execute(select(PointsAccount))).scalars().all())


def _category_total(account: PointsAccount) -> int:
    return sum(getattr(account, column.key) for column in CATEGORY_COLUMNS.values())


class TestAccounts:

    async def test_created_lazily_as_bronze(self, service):
        account = await service.get_or_create_account(WALLET)
        assert account.wallet_address == WALLET.lower()
        assert account.total_points == 0
        assert account.tier == "bronze"
        assert account.multiplier == Decimal("1.0")
        assert account.referral_code.startswith("SHIELD-")
        assert account.referred_by is None
        assert account.badges == []

    async def test_get_or_create_is_stable(self, service):
        first = await service.get_or_create_account(WALLET)
        second = await service.get_or_create_account(WALLET.upper())
        assert first.referral_code == second.referral_code
        assert len(await _all_accounts(service)) == 1

    async def test_get_account_does_not_create(self, service):
        assert await service.get_account(WALLET) is None
        assert await _all_accounts(service) == []

    async def test_empty_wallet_rejected(self, service):
        with pytest.raises(InvalidWalletAddress):
            await service.log_activity("  ", ActivityType.SWAP)

    async def test_reload_of_missing_account_raises(self, service):
        async with service._session_factory() as db:
            with pytest.raises(RuntimeError, match="missing after commit"):
                await service._reload_account(db, WALLET.lower())


class TestLogActivity:

    async def test_awards_base_points(self, service):
        result = await service.award_swap_points(WALLET, from_token="FXRP", to_token="USDT")
        assert result is not None
        assert result.points_awarded == 15
        assert result.account.total_points == 15
        assert result.account.other_points == 15
        assert result.activity.activity_type == "swap"
        assert result.activity.description == "Swap FXRP → USDT"
        assert result.activity.activity_metadata["from_token"] == "FXRP"

    async def test_correlation_refs_recorded(self, service):
        refs = CorrelationRefs(tx_hash="0xfeed", vault_id="vault-1", position_id="pos-9")
        result = await service.award_withdrawal_points(WALLET, refs=refs, redemption_id="r-1")
        assert result.activity.related_tx_hash == "0xfeed"
        assert result.activity.related_vault_id == "vault-1"
        assert result.activity.related_position_id == "pos-9"
        assert result.points_awarded == 25

    async def test_differently_cased_wallets_share_one_account(self, service):
        await service.award_swap_points(WALLET.lower())
        result = await service.award_swap_points(WALLET.upper())
        assert result.account.total_points == 30
        assert len(await _all_accounts(service)) == 1

    async def test_points_override(self, service):
        result = await service.award_bug_report_points(WALLET, points=250, report_id="BUG-7")
        assert result.points_awarded == 250
        assert result.account.bug_report_points == 250

    async def test_negative_override_rejected(self, service):
        with pytest.raises(InvalidAmount):
            await service.log_activity(WALLET, ActivityType.BUG_REPORT, points=-5)

    async def test_string_activity_type_accepted(self, service):
        result = await service.log_activity(WALLET, "faucet_claim")
        assert result.account.other_points == 5

    async def test_sum_invariant_across_categories(self, service):
        await service.award_deposit_points(WALLET, 55)
        await service.award_bridge_points(WALLET, "xrpl_to_flare")
        await service.award_bridge_points(WALLET, "flare_to_xrpl")
        await service.award_staking_daily_points(WALLET)
        await service.award_boost_activated_points(WALLET, boost_percentage=5)
        await service.award_social_share_points(WALLET, platform="x")
        await service.award_bug_report_points(WALLET)
        await service.award_daily_login_points(WALLET)
        await service.award_swap_points(WALLET)

        for account in await _all_accounts(service):
            assert account.total_points == _category_total(account)

        account = await service.get_account(WALLET)
        assert account.deposit_points == 150
        assert account.bridge_points == 100
        assert account.staking_points == 35
        assert account.social_points == 10
        assert account.bug_report_points == 100
        assert account.other_points == 17
        assert account.total_points == 412

    async def test_unknown_bridge_direction(self, service):
        with pytest.raises(ValueError, match="Unknown bridge direction"):
            await service.award_bridge_points(WALLET, "sideways")


class TestOneTimeGuard:

    async def test_boost_awarded_once(self, service, clock):
        first = await service.award_boost_activated_points(WALLET)
        clock.advance(days=45)
        second = await service.award_boost_activated_points(WALLET)

        assert first is not None
        assert first.points_awarded == 30
        assert second is None
        assert await _count_rows(service, WALLET, ActivityType.BOOST_ACTIVATED) == 1
        account = await service.get_account(WALLET)
        assert account.staking_points == 30
        assert account.total_points == 30

    async def test_constraint_catches_a_lost_race(self, service, monkeypatch):
        """When the fast-path check misses a concurrent insert, the unique key still holds."""

        async def never_taken(_db, _key):
            return False

        monkeypatch.setattr("testnet_points.points.service.dedup_key_taken", never_taken)

        first = await service.award_boost_activated_points(WALLET)
        second = await service.award_boost_activated_points(WALLET)

        assert first is not None
        assert second is None
        assert await _count_rows(service, WALLET, ActivityType.BOOST_ACTIVATED) == 1
        account = await service.get_account(WALLET)
        assert account.total_points == 30


class TestConcurrentAwards:

    async def test_parallel_swaps_all_counted(self, service):
        results = await asyncio.gather(*(service.award_swap_points(WALLET) for _ in range(8)))

        assert all(r is not None for r in results)
        account = await service.get_account(WALLET)
        assert account.total_points == 120
        assert account.other_points == 120
        assert await _count_rows(service, WALLET, ActivityType.SWAP) == 8

    async def test_parallel_boosts_award_once(self, service):
        results = await asyncio.gather(
            *(service.award_boost_activated_points(WALLET) for _ in range(6))
        )

        assert sum(r is not None for r in results) == 1
        assert await _count_rows(service, WALLET, ActivityType.BOOST_ACTIVATED) == 1
        account = await service.get_account(WALLET)
        assert account.staking_points == 30
        assert account.total_points == 30


class TestDailyGuard:

    async def test_daily_login_once_per_utc_day(self, service, clock):
        first = await service.award_daily_login_points(WALLET)
        clock.advance(hours=6)
        second = await service.award_daily_login_points(WALLET)

        assert first.points_awarded == 2
        assert second is None
        assert await _count_rows(service, WALLET, ActivityType.DAILY_LOGIN) == 1

    async def test_next_utc_day_succeeds_again(self, service, clock):
        clock.advance(hours=11, minutes=59)  # 23:59 UTC
        assert await service.award_daily_login_points(WALLET) is not None
        clock.advance(minutes=2)  # 00:01 UTC next day
        assert await service.award_daily_login_points(WALLET) is not None

        account = await service.get_account(WALLET)
        assert account.other_points == 4
        assert await _count_rows(service, WALLET, ActivityType.DAILY_LOGIN) == 2

    async def test_staking_daily_guard(self, service, clock):
        assert await service.award_staking_daily_points(WALLET) is not None
        assert await service.award_staking_daily_points(WALLET) is None
        clock.advance(days=1)
        assert await service.award_staking_daily_points(WALLET) is not None

    async def test_daily_guard_is_per_wallet(self, service):
        assert await service.award_daily_login_points(WALLET) is not None
        assert await service.award_daily_login_points("0xB0B0000000000000000000000000000000000002") is not None


class TestDeposits:

    async def test_first_deposit_scaling(self, service):
        result = await service.award_deposit_points(WALLET, 25)

        assert result.points_awarded == 20
        assert result.activity.activity_type == "deposit"
        assert result.activity.activity_metadata == {"amount_usd": 25.0}
        account = result.account
        assert account.deposit_points == 120  # 100 first-deposit bonus + 20
        assert account.total_points == 120
        assert await _count_rows(service, WALLET, ActivityType.FIRST_DEPOSIT) == 1
        assert await _count_rows(service, WALLET, ActivityType.DEPOSIT) == 1

    async def test_second_deposit_has_no_bonus(self, service):
        await service.award_deposit_points(WALLET, 25)
        result = await service.award_deposit_points(WALLET, 100)

        assert result.points_awarded == 100
        assert result.account.deposit_points == 220
        assert await _count_rows(service, WALLET, ActivityType.FIRST_DEPOSIT) == 1
        assert await _count_rows(service, WALLET, ActivityType.DEPOSIT) == 2

    async def test_small_first_deposit_returns_bonus(self, service):
        result = await service.award_deposit_points(WALLET, Decimal("9.99"))

        assert result is not None
        assert result.points_awarded == 100
        assert result.activity.activity_type == "first_deposit"
        assert result.account.total_points == 100
        assert await _count_rows(service, WALLET, ActivityType.DEPOSIT) == 0

    async def test_small_later_deposit_awards_nothing(self, service):
        await service.award_deposit_points(WALLET, 50)
        result = await service.award_deposit_points(WALLET, 5)

        assert result is not None
        assert result.points_awarded == 0
        assert result.activity is None
        assert result.account.total_points == 150
        assert await _count_rows(service, WALLET, ActivityType.DEPOSIT) == 1

    @pytest.mark.parametrize("amount", [-1, float("nan"), float("inf")])
    async def test_invalid_amount_rejected(self, service, amount):
        with pytest.raises(InvalidAmount):
            await service.award_deposit_points(WALLET, amount)
        assert await service.get_account(WALLET) is None


class TestTierUpgrades:

    async def test_crossing_silver(self, service, redis_mock):
        result = await service.award_bug_report_points(WALLET, points=500)

        assert result.account.tier == "silver"
        assert result.account.multiplier == Decimal("1.5")
        assert result.account.is_og is False
        redis_mock.publish.assert_awaited_once()
        channel, payload = redis_mock.publish.await_args.args
        assert channel == TIER_UP_CHANNEL
        assert json.loads(payload) == {
            "wallet": WALLET.lower(),
            "old_tier": "bronze",
            "new_tier": "silver",
            "multiplier": "1.5",
            "total_points": 500,
        }

    async def test_gold_sets_og(self, service):
        await service.award_bug_report_points(WALLET, points=1999)
        account = await service.get_account(WALLET)
        assert account.tier == "silver"

        result = await service.award_daily_login_points(WALLET)
        assert result.account.total_points == 2001
        assert result.account.tier == "gold"
        assert result.account.multiplier == Decimal("2.0")
        assert result.account.is_og is True

    async def test_no_event_without_tier_change(self, service, redis_mock):
        await service.award_swap_points(WALLET)
        redis_mock.publish.assert_not_awaited()

    async def test_publish_failure_does_not_fail_award(self, service, redis_mock):
        redis_mock.publish.side_effect = ConnectionError("redis down")
        result = await service.award_bug_report_points(WALLET, points=5000)
        assert result.account.tier == "diamond"
        assert result.account.multiplier == Decimal("3.0")

    async def test_works_without_redis(self, service):
        service._redis = None
        result = await service.award_bug_report_points(WALLET, points=600)
        assert result.account.tier == "silver"


class TestActivityHistory:

    async def test_newest_first_with_limit(self, service, clock):
        await service.award_swap_points(WALLET)
        clock.advance(minutes=1)
        await service.award_withdrawal_points(WALLET)
        clock.advance(minutes=1)
        await service.award_daily_login_points(WALLET)

        activities = await service.get_user_activities(WALLET.upper(), limit=2)
        assert [a.activity_type for a in activities] == ["daily_login", "withdrawal"]

    async def test_zero_limit_is_clamped_not_defaulted(self, service, clock):
        for _ in range(3):
            await service.award_swap_points(WALLET)
            clock.advance(minutes=1)

        assert len(await service.get_user_activities(WALLET, limit=0)) == 1
        assert len(await service.get_user_activities(WALLET)) == 3

    async def test_unknown_wallet_has_no_history(self, service):
        assert await service.get_user_activities(WALLET) == []
