# discovery/db/redis.py
import logging
import redis.asyncio as redis
from redis.exceptions import RedisError
from discovery.core.config import get_settings

logger = logging.getLogger(__name__)

_redis: redis.Redis | None = None


async def connect():
    """
    Redis backs the favorite pair locks and the similar/filter caches.
    Without REDIS_URL, or when the server is unreachable, those features
    degrade (no lock, no cache) and the app keeps running.
    """
    global _redis
    settings = get_settings()
    if not settings.REDIS_URL:
        logger.warning("REDIS_URL not set: favorites run unlocked, caches disabled")
        _redis = None
        return

    client = redis.from_url(
        settings.REDIS_URL,
        decode_responses=True,
        socket_connect_timeout=settings.store_timeout_s,
        socket_timeout=settings.store_timeout_s,
        health_check_interval=30,
    )
    try:
        await client.ping()
    except (RedisError, OSError) as e:
        logger.warning("Redis unreachable at startup, running without it: %s", e)
        await client.aclose()
        _redis = None
        return
    _redis = client
    logger.info("Redis connected")


async def disconnect():
    global _redis
    if _redis is not None:
        await _redis.aclose()
        _redis = None
        logger.info("Redis disconnected")


def get_redis() -> redis.Redis | None:
    """Shared client, or None when Redis is not in use (callers skip locks/caches)."""
    return _redis
