"""
Redis caching for platform fee settings.

CACHING STRATEGY
================

What we cache:
  - The fee configuration (platform fee, tax, commission) as one JSON value
  - Cache key: "settings:fees"

Why:
  - Every slot request and booking summary prices the booking
  - The settings change a few times a year, from the admin panel only

Invalidation strategy:
  - Writes through `update_fee_settings` delete the key explicitly
  - TTL (REDIS_CACHE_TTL) as safety net for out-of-band edits

Decimals are stored as strings so a cache round trip is exact.

Why NOT cache batch capacity:
  - Reservation needs the committed counter (stale data = overbooking)
"""

import json
from typing import Optional

from academy_booking.core.config import get_settings
from academy_booking.core.logging import get_logger
from academy_booking.core.metrics import record_cache_operation
from academy_booking.infrastructure.redis_client import get_redis

logger = get_logger(__name__)
settings = get_settings()

FEE_SETTINGS_KEY = "settings:fees"


async def get_cached_fee_settings() -> Optional[dict]:
    client = await get_redis()
    if not client:
        return None

    try:
        data = await client.get(FEE_SETTINGS_KEY)
        if data:
            logger.debug("cache_hit", key=FEE_SETTINGS_KEY)
            record_cache_operation("get", hit=True)
            return json.loads(data)
        logger.debug("cache_miss", key=FEE_SETTINGS_KEY)
        record_cache_operation("get", hit=False)
    except Exception as e:
        logger.error("cache_get_error", key=FEE_SETTINGS_KEY, error=str(e))

    return None


async def set_cached_fee_settings(data: dict) -> None:
    client = await get_redis()
    if not client:
        return

    try:
        await client.setex(FEE_SETTINGS_KEY, settings.REDIS_CACHE_TTL, json.dumps(data, default=str))
        logger.debug("cache_set", key=FEE_SETTINGS_KEY, ttl=settings.REDIS_CACHE_TTL)
    except Exception as e:
        logger.error("cache_set_error", key=FEE_SETTINGS_KEY, error=str(e))


async def invalidate_fee_settings() -> None:
    client = await get_redis()
    if not client:
        return

    try:
        await client.delete(FEE_SETTINGS_KEY)
        logger.info("cache_invalidated", key=FEE_SETTINGS_KEY)
    except Exception as e:
        logger.error("cache_invalidation_error", key=FEE_SETTINGS_KEY, error=str(e))


async def get_cache_stats() -> dict:
    """Get Redis cache statistics for monitoring."""
    client = await get_redis()
    if not client:
        return {"status": "disabled"}

    try:
        info = await client.info("stats")
        hits = info.get("keyspace_hits", 0)
        misses = info.get("keyspace_misses", 0)
        return {
            "status": "connected",
            "hits": hits,
            "misses": misses,
            "hit_rate": round(hits / max(hits + misses, 1) * 100, 2),
        }
    except Exception as e:
        return {"status": "error", "error": str(e)}
