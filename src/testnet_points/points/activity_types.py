"""Activity types, their point values, guard policies and categories.

Every activity type must appear in ``POINTS_CONFIG`` and in the two
``match`` statements below; ``assert_never`` makes a missing branch a
type-check failure instead of a silent fallback.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import assert_never


class ActivityType(StrEnum):
    DEPOSIT = "deposit"
    FIRST_DEPOSIT = "first_deposit"
    WITHDRAWAL = "withdrawal"
    STAKE_SHIELD = "stake_shield"
    BRIDGE_XRPL_FLARE = "bridge_xrpl_flare"
    BRIDGE_FLARE_XRPL = "bridge_flare_xrpl"
    REFERRAL = "referral"
    BUG_REPORT = "bug_report"
    SOCIAL_SHARE = "social_share"
    DAILY_LOGIN = "daily_login"
    SWAP = "swap"
    BOOST_ACTIVATED = "boost_activated"
    FAUCET_CLAIM = "faucet_claim"


class GuardPolicy(StrEnum):
    ONE_TIME = "one_time"
    ONCE_PER_DAY = "once_per_day"
    UNLIMITED = "unlimited"


class PointsCategory(StrEnum):
    """Subtotal a points award is booked against."""

    DEPOSIT = "deposit"
    STAKING = "staking"
    BRIDGE = "bridge"
    REFERRAL = "referral"
    BUG_REPORT = "bug_report"
    SOCIAL = "social"
    OTHER = "other"


@dataclass(frozen=True)
class ActivityConfig:
    base: int
    description: str


POINTS_CONFIG: dict[ActivityType, ActivityConfig] = {
    ActivityType.DEPOSIT: ActivityConfig(10, "Deposit (per $10 deposited)"),
    ActivityType.FIRST_DEPOSIT: ActivityConfig(100, "First deposit bonus"),
    ActivityType.WITHDRAWAL: ActivityConfig(25, "Withdrawal cycle completed"),
    ActivityType.STAKE_SHIELD: ActivityConfig(5, "SHIELD staking daily reward"),
    ActivityType.BRIDGE_XRPL_FLARE: ActivityConfig(50, "Bridge XRPL → Flare"),
    ActivityType.BRIDGE_FLARE_XRPL: ActivityConfig(50, "Bridge Flare → XRPL"),
    ActivityType.REFERRAL: ActivityConfig(50, "Referral bonus"),
    ActivityType.BUG_REPORT: ActivityConfig(100, "Bug report accepted"),
    ActivityType.SOCIAL_SHARE: ActivityConfig(10, "Shared on social media"),
    ActivityType.DAILY_LOGIN: ActivityConfig(2, "Daily active user bonus"),
    ActivityType.SWAP: ActivityConfig(15, "Token swap"),
    ActivityType.BOOST_ACTIVATED: ActivityConfig(30, "Activated SHIELD boost"),
    ActivityType.FAUCET_CLAIM: ActivityConfig(5, "Testnet faucet claim"),
}


def guard_policy_for(activity_type: ActivityType) -> GuardPolicy:
    """Dedup rule applied before an activity of this type is recorded."""
    match activity_type:
        case ActivityType.FIRST_DEPOSIT | ActivityType.BOOST_ACTIVATED:
            return GuardPolicy.ONE_TIME
        case (
            ActivityType.DAILY_LOGIN
            | ActivityType.STAKE_SHIELD
            | ActivityType.SOCIAL_SHARE
            | ActivityType.FAUCET_CLAIM
        ):
            return GuardPolicy.ONCE_PER_DAY
        case (
            ActivityType.DEPOSIT
            | ActivityType.WITHDRAWAL
            | ActivityType.BRIDGE_XRPL_FLARE
            | ActivityType.BRIDGE_FLARE_XRPL
            | ActivityType.REFERRAL
            | ActivityType.BUG_REPORT
            | ActivityType.SWAP
        ):
            return GuardPolicy.UNLIMITED
        case _:
            assert_never(activity_type)


def category_for(activity_type: ActivityType) -> PointsCategory:
    """Subtotal column an activity type is booked against."""
    match activity_type:
        case ActivityType.DEPOSIT | ActivityType.FIRST_DEPOSIT:
            return PointsCategory.DEPOSIT
        case ActivityType.STAKE_SHIELD | ActivityType.BOOST_ACTIVATED:
            return PointsCategory.STAKING
        case ActivityType.BRIDGE_XRPL_FLARE | ActivityType.BRIDGE_FLARE_XRPL:
            return PointsCategory.BRIDGE
        case ActivityType.REFERRAL:
            return PointsCategory.REFERRAL
        case ActivityType.BUG_REPORT:
            return PointsCategory.BUG_REPORT
        case ActivityType.SOCIAL_SHARE:
            return PointsCategory.SOCIAL
        case (
            ActivityType.WITHDRAWAL
            | ActivityType.DAILY_LOGIN
            | ActivityType.SWAP
            | ActivityType.FAUCET_CLAIM
        ):
            return PointsCategory.OTHER
        case _:
            assert_never(activity_type)
