"""
Consumption Ledger — Redis client singleton and stock cache helpers
"""
import logging

import redis.asyncio as aioredis
from app.core.config import get_settings

settings = get_settings()
logger = logging.getLogger(__name__)

STOCK_CACHE_KEY = "stock:{item_id}"

_redis_client: aioredis.Redis | None = None


def get_redis() -> aioredis.Redis:
    global _redis_client
    if _redis_client is None:
        _redis_client = aioredis.from_url(
            settings.redis_url,
            decode_responses=True,
            socket_connect_timeout=settings.HEALTH_CHECK_TIMEOUT,
        )
    return _redis_client


async def close_redis():
    global _redis_client
    if _redis_client:
        await _redis_client.aclose()
        _redis_client = None


async def cache_stock(item_id: str, stock: int) -> None:
    """Write the committed stock of an item to the cache. Best effort."""
    if not settings.STOCK_CACHE_ENABLED:
        return
    try:
        redis = get_redis()
        await redis.setex(
            STOCK_CACHE_KEY.format(item_id=item_id), settings.STOCK_CACHE_TTL_SECONDS, stock
        )
    except Exception as exc:
        logger.warning("Stock cache update failed for %s: %s", item_id, exc)


async def evict_stock(item_id: str) -> None:
    if not settings.STOCK_CACHE_ENABLED:
        return
    try:
        await get_redis().delete(STOCK_CACHE_KEY.format(item_id=item_id))
    except Exception as exc:
        logger.warning("Stock cache eviction failed for %s: %s", item_id, exc)
