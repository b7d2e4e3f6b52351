"""Pydantic response models for points endpoints."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class PointsBreakdown(BaseModel):
    deposit: int
    staking: int
    bridge: int
    referral: int
    bug_report: int
    social: int
    other: int


class PointsAccountResponse(BaseModel):
    wallet_address: str
    total_points: int
    breakdown: PointsBreakdown
    tier: str
    multiplier: Decimal
    is_og: bool
    referral_code: str
    referral_count: int
    referred_by: str | None = None
    badges: list[str] = []
    created_at: datetime
    updated_at: datetime


class TierProgressResponse(BaseModel):
    next_tier: str | None
    points_needed: int
    progress_percent: int


class PointsSummaryResponse(BaseModel):
    account: PointsAccountResponse
    rank: int
    progress: TierProgressResponse


class ActivityResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    activity_type: str
    points_earned: int
    related_tx_hash: str | None = None
    related_vault_id: str | None = None
    related_position_id: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict, validation_alias="activity_metadata")
    description: str
    created_at: datetime


class ActivitiesResponse(BaseModel):
    wallet_address: str
    activities: list[ActivityResponse]


class LeaderboardEntry(BaseModel):
    rank: int
    wallet_address: str
    total_points: int
    tier: str
    multiplier: Decimal
    referral_count: int


class LeaderboardResponse(BaseModel):
    entries: list[LeaderboardEntry]


class LeaderboardStatsResponse(BaseModel):
    total_participants: int
    total_points_distributed: int
    tier_breakdown: dict[str, int]


class RankResponse(BaseModel):
    wallet_address: str
    rank: int


class ReferralCodeResponse(BaseModel):
    valid: bool
    referrer: str | None = None


class ApplyReferralRequest(BaseModel):
    referral_code: str = Field(min_length=1, max_length=32)


class AwardResponse(BaseModel):
    awarded: bool
    points_awarded: int = 0
    total_points: int | None = None
    tier: str | None = None
