"""Points API endpoints — 8 routes."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query

from testnet_points.db.models import PointsAccount
from testnet_points.dependencies import get_points_service, wallet_path
from testnet_points.points.schemas import (
    ActivitiesResponse,
    ActivityResponse,
    ApplyReferralRequest,
    AwardResponse,
    LeaderboardEntry,
    LeaderboardResponse,
    LeaderboardStatsResponse,
    PointsAccountResponse,
    PointsBreakdown,
    PointsSummaryResponse,
    RankResponse,
    ReferralCodeResponse,
    TierProgressResponse,
)
from testnet_points.points.service import PointsService

router = APIRouter(prefix="/api/v1/points", tags=["Points"])


def _account_response(account: PointsAccount) -> PointsAccountResponse:
    return PointsAccountResponse(
        wallet_address=account.wallet_address,
        total_points=account.total_points,
        breakdown=PointsBreakdown(
            deposit=account.deposit_points,
            staking=account.staking_points,
            bridge=account.bridge_points,
            referral=account.referral_points,
            bug_report=account.bug_report_points,
            social=account.social_points,
            other=account.other_points,
        ),
        tier=account.tier,
        multiplier=account.multiplier,
        is_og=account.is_og,
        referral_code=account.referral_code,
        referral_count=account.referral_count,
        referred_by=account.referred_by,
        badges=list(account.badges or []),
        created_at=account.created_at,
        updated_at=account.updated_at,
    )


# ── Leaderboard ──


@router.get("/leaderboard", response_model=LeaderboardResponse)
async def get_leaderboard(
    limit: int = Query(100, ge=1, le=500),
    service: PointsService = Depends(get_points_service),
):
    """Top accounts by total points. Tied totals share a rank."""
    accounts = await service.get_leaderboard(limit)

    entries = []
    rank = 0
    previous_points: int | None = None
    for position, account in enumerate(accounts, start=1):
        if account.total_points != previous_points:
            rank = position
            previous_points = account.total_points
        entries.append(LeaderboardEntry(
            rank=rank,
            wallet_address=account.wallet_address,
            total_points=account.total_points,
            tier=account.tier,
            multiplier=account.multiplier,
            referral_count=account.referral_count,
        ))
    return LeaderboardResponse(entries=entries)


@router.get("/leaderboard/stats", response_model=LeaderboardStatsResponse)
async def get_leaderboard_stats(service: PointsService = Depends(get_points_service)):
    stats = await service.get_leaderboard_stats()
    return LeaderboardStatsResponse(
        total_participants=stats.total_participants,
        total_points_distributed=stats.total_points_distributed,
        tier_breakdown={tier.value: count for tier, count in stats.tier_breakdown.items()},
    )


# ── Referrals ──


@router.get("/referral/{code}", response_model=ReferralCodeResponse)
async def validate_referral_code(code: str, service: PointsService = Depends(get_points_service)):
    referrer = await service.validate_referral_code(code)
    if referrer is None:
        return ReferralCodeResponse(valid=False)
    return ReferralCodeResponse(valid=True, referrer=referrer.wallet_address)


@router.post("/{wallet}/referral", response_model=PointsAccountResponse)
async def apply_referral(
    body: ApplyReferralRequest,
    wallet: str = Depends(wallet_path),
    service: PointsService = Depends(get_points_service),
):
    """Bind a referrer to the wallet. Write-once."""
    try:
        account = await service.bind_referral(wallet, body.referral_code)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    return _account_response(account)


# ── Per-wallet ──


@router.get("/{wallet}", response_model=PointsSummaryResponse)
async def get_points_summary(
    wallet: str = Depends(wallet_path),
    service: PointsService = Depends(get_points_service),
):
    try:
        summary = await service.get_points_summary(wallet)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    progress = summary.progress
    return PointsSummaryResponse(
        account=_account_response(summary.account),
        rank=summary.rank,
        progress=TierProgressResponse(
            next_tier=progress.next_tier.value if progress.next_tier else None,
            points_needed=progress.points_needed,
            progress_percent=progress.progress_percent,
        ),
    )


@router.get("/{wallet}/activities", response_model=ActivitiesResponse)
async def get_activities(
    wallet: str = Depends(wallet_path),
    limit: int = Query(50, ge=1, le=500),
    service: PointsService = Depends(get_points_service),
):
    try:
        activities = await service.get_user_activities(wallet, limit)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    return ActivitiesResponse(
        wallet_address=wallet,
        activities=[ActivityResponse.model_validate(a) for a in activities],
    )


@router.get("/{wallet}/rank", response_model=RankResponse)
async def get_rank(
    wallet: str = Depends(wallet_path),
    service: PointsService = Depends(get_points_service),
):
    try:
        rank = await service.get_user_rank(wallet)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    return RankResponse(wallet_address=wallet, rank=rank)


@router.post("/{wallet}/daily-login", response_model=AwardResponse)
async def claim_daily_login(
    wallet: str = Depends(wallet_path),
    service: PointsService = Depends(get_points_service),
):
    """Claim the daily login bonus. ``awarded`` is false if already claimed today."""
    try:
        result = await service.award_daily_login_points(wallet)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    if result is None:
        return AwardResponse(awarded=False)
    return AwardResponse(
        awarded=True,
        points_awarded=result.points_awarded,
        total_points=result.account.total_points,
        tier=result.account.tier,
    )
