"""FastAPI application factory."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from testnet_points.config import get_settings
from testnet_points.database import close_db, create_tables, get_engine, get_session_factory, init_db
from testnet_points.middleware import setup_middleware
from testnet_points.points.router import router as points_router
from testnet_points.points.service import PointsService
from testnet_points.redis_client import close_redis, init_redis


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Startup and shutdown lifecycle."""
    settings = get_settings()
    await init_db(settings.database_url)
    await create_tables(get_engine())
    redis = await init_redis(settings)

    app.state.points_service = PointsService(
        get_session_factory(),
        redis=redis,
        settings=settings,
    )

    yield

    await close_db()
    await close_redis()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="Testnet Points API",
        description="Points, tiers, referrals and leaderboard for the testnet rewards program",
        version=settings.app_version,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        lifespan=lifespan,
    )

    setup_middleware(app, settings)
    app.include_router(points_router)

    return app


app = create_app()
