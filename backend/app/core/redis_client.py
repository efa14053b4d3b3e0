"""
Redis client used for JWT revocation flags.
"""

import logging

import redis.asyncio as redis
from backend.app.core.config import settings

logger = logging.getLogger("gym.redis")

redis_client = redis.from_url(
    settings.redis_url,
    decode_responses=settings.redis_decode_responses,
)


async def get_redis():
    """FastAPI dependency returning the shared client."""
    return redis_client


async def ping_redis() -> bool:
    """Health probe. Never raises."""
    try:
        return bool(await redis_client.ping())
    except Exception:
        logger.warning("Redis ping failed", exc_info=True)
        return False


async def close_redis() -> None:
    await redis_client.aclose()
