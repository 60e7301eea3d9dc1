"""
Shared async Redis connection for the fee cache and the notification queue.

Redis is optional: with REDIS_ENABLED=false, or when the server is
unreachable, `get_redis()` returns None and callers fall back (database
reads for the cache, log delivery for notifications).
"""

from typing import Optional

import redis.asyncio as redis

from academy_booking.core.config import get_settings
from academy_booking.core.logging import get_logger
from academy_booking.core.metrics import redis_connection_errors

logger = get_logger(__name__)
settings = get_settings()

_redis_client: Optional[redis.Redis] = None


async def get_redis() -> Optional[redis.Redis]:
    """Get or create the Redis connection. Returns None if Redis is disabled or down."""
    global _redis_client

    if not settings.REDIS_ENABLED:
        return None

    if _redis_client is None:
        try:
            client = redis.from_url(
                settings.REDIS_URL,
                encoding="utf-8",
                decode_responses=True,
                socket_connect_timeout=5,
                socket_timeout=5,
                retry_on_timeout=True,
            )
            await client.ping()
            _redis_client = client
            logger.info("redis_connected", url=settings.REDIS_URL)
        except Exception as e:
            redis_connection_errors.inc()
            logger.error("redis_connection_failed", error=str(e))
            return None

    return _redis_client


async def close_redis() -> None:
    """Close Redis connection on shutdown."""
    global _redis_client
    if _redis_client:
        await _redis_client.aclose()
        _redis_client = None
