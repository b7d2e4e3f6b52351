"""ORM models for the points accounts and the activity ledger."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    DateTime,
    Index,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column

from testnet_points.db.base import Base


# ---------------------------------------------------------------------------
# Accounts
# ---------------------------------------------------------------------------


class PointsAccount(Base):
    """Per-wallet aggregate of earned points and derived tier state.

    ``total_points`` always equals the sum of the seven category columns;
    both are only ever changed together by a single UPDATE statement.
    """

    __tablename__ = "points_accounts"
    __table_args__ = (
        Index("idx_points_accounts_total", "total_points"),
    )

    wallet_address: Mapped[str] = mapped_column(String(128), primary_key=True)
    total_points: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    deposit_points: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    staking_points: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    bridge_points: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    referral_points: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    bug_report_points: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    social_points: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    other_points: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    tier: Mapped[str] = mapped_column(String(16), nullable=False, default="bronze")
    multiplier: Mapped[Decimal] = mapped_column(Numeric(4, 2), nullable=False, default=Decimal("1.0"))
    is_og: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    referral_code: Mapped[str] = mapped_column(String(32), unique=True, nullable=False)
    referral_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    referred_by: Mapped[str | None] = mapped_column(String(128), nullable=True)

    badges: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


# ---------------------------------------------------------------------------
# Ledger
# ---------------------------------------------------------------------------


class TestnetActivity(Base):
    """Append-only ledger row, one per point-earning event.

    ``dedup_key`` is NULL for unlimited activity types. For gated types it
    encodes (wallet, type[, UTC day]) and the unique constraint makes the
    guard authoritative under concurrent writers.
    """

    __tablename__ = "testnet_activities"
    __table_args__ = (
        Index("idx_activities_wallet_type", "wallet_address", "activity_type"),
        Index("idx_activities_wallet_created", "wallet_address", "created_at"),
    )

    # Not a test class, despite the name.
    __test__ = False

    id: Mapped[int] = mapped_column(
        BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True,
    )
    wallet_address: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    activity_type: Mapped[str] = mapped_column(String(32), nullable=False)
    points_earned: Mapped[int] = mapped_column(Integer, nullable=False)
    related_tx_hash: Mapped[str | None] = mapped_column(String(128), nullable=True)
    related_vault_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    related_position_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    activity_metadata: Mapped[dict[str, Any]] = mapped_column("metadata", JSON, nullable=False, default=dict)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    dedup_key: Mapped[str | None] = mapped_column(String(255), unique=True, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
