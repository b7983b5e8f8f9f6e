"""
Redis client (pass locks).
"""
import logging

import redis.asyncio as redis

from leadflow.core.config import settings

logger = logging.getLogger(__name__)

# from_url does not connect until the first command
redis_client = redis.from_url(
    settings.REDIS_URL,
    encoding="utf-8",
    decode_responses=True
)


async def check_redis_connection() -> bool:
    """True when Redis answers PING."""
    try:
        await redis_client.ping()
        return True
    except Exception as e:
        logger.error(f"Redis not reachable: {e}")
        return False
