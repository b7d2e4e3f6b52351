"""Shared FastAPI dependencies."""

import structlog
from fastapi import Request

from testnet_points.points.ledger import normalize_wallet
from testnet_points.points.service import PointsService


def get_points_service(request: Request) -> PointsService:
    """The process-wide service built in the app lifespan."""
    return request.app.state.points_service


async def wallet_path(wallet: str) -> str:
    """The ``{wallet}`` path parameter, normalized and bound into the log context.

    Async so the binding lands in the request's own context, not a
    threadpool copy. A blank wallet raises ``InvalidWalletAddress`` (400).
    """
    normalized = normalize_wallet(wallet)
    structlog.contextvars.bind_contextvars(wallet=normalized)
    return normalized
