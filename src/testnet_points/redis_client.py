"""Redis client for tier-up event fan-out.

Redis is optional here: with tier events switched off or no URL configured
the service runs without it and ``init_redis`` returns None.
"""

import redis.asyncio as redis
import structlog

from testnet_points.config import Settings

logger = structlog.get_logger()

_client: redis.Redis | None = None


async def init_redis(settings: Settings) -> redis.Redis | None:
    """Connect the tier event publisher, if tier events are enabled."""
    global _client  # noqa: PLW0603
    if not settings.publish_tier_events or not settings.redis_url:
        logger.info("tier_events_disabled")
        return None

    _client = redis.from_url(  # type: ignore[no-untyped-call]
        settings.redis_url,
        decode_responses=True,
        max_connections=settings.redis_max_connections,
    )
    return _client


async def close_redis() -> None:
    global _client  # noqa: PLW0603
    if _client is not None:
        await _client.aclose()
        _client = None
