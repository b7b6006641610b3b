# stock_opname/core/redis.py
"""
Redis connection for the broadcast relay.

Redis is only used to share push events between worker processes.
The app should boot even if Redis is unavailable (degraded mode: each
process fans out to its own WebSocket sessions only).
"""

import logging
from typing import Optional

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from stock_opname.core.config import get_settings

logger = logging.getLogger(__name__)


async def connect_redis() -> Optional[aioredis.Redis]:
    """
    Create and ping an asyncio Redis client.
    Returns None if Redis is not configured or unavailable.
    """
    settings = get_settings()

    if not settings.redis_url:
        logger.info("REDIS_URL not set. Broadcasts stay within this process.")
        return None

    client = aioredis.from_url(
        settings.redis_url,
        decode_responses=True,
        socket_connect_timeout=2,
    )
    try:
        await client.ping()
    except RedisError as e:
        logger.warning(
            f"Failed to connect to Redis: {e}. Running in degraded mode (local fan-out only)."
        )
        await client.aclose()
        return None

    logger.info("Redis connection established successfully.")
    return client
