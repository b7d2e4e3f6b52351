"""Shared test fixtures."""

from __future__ import annotations

from collections.abc import AsyncGenerator
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine

from testnet_points.config import Settings
from testnet_points.database import build_engine, build_session_factory, create_tables
from testnet_points.points.service import PointsService


class FrozenClock:
    """Controllable UTC clock for day-boundary tests."""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock(datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'points.db'}",
        log_format="console",
    )


@pytest_asyncio.fixture
async def engine(settings: Settings) -> AsyncGenerator[AsyncEngine, None]:
    """File-backed SQLite store with the points schema created."""
    eng = build_engine(settings.database_url)
    await create_tables(eng)
    yield eng
    await eng.dispose()


@pytest.fixture
def redis_mock() -> AsyncMock:
    redis = AsyncMock()
    redis.publish = AsyncMock(return_value=1)
    return redis


@pytest_asyncio.fixture
async def service(engine: AsyncEngine, settings: Settings, clock: FrozenClock, redis_mock: AsyncMock) -> PointsService:
    return PointsService(
        build_session_factory(engine),
        redis=redis_mock,
        settings=settings,
        clock=clock,
    )
