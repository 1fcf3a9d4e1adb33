import json
import logging
from typing import Any, Awaitable, Callable, Optional
from redis.asyncio import Redis
from redis.exceptions import RedisError

logger = logging.getLogger(__name__)

async def cache_get(redis: Redis, key: str):
    if val := await redis.get(key):
        return json.loads(val)
    return None

async def cache_set(redis: Redis, key: str, value, ex: int = 60):
    await redis.set(key, json.dumps(value, default=str), ex=ex)

async def cached_json(
    redis: Optional[Redis],
    key: str,
    ttl: int,
    compute: Callable[[], Awaitable[Any]],
) -> Any:
    """
    Read-through JSON cache. Redis being absent or failing never fails the
    call: it just means computing the value every time.
    """
    if redis is not None:
        try:
            if (hit := await cache_get(redis, key)) is not None:
                logger.debug("cache hit key=%s", key)
                return hit
        except RedisError as e:
            logger.warning("cache get error key=%s err=%s", key, e)

    value = await compute()

    if redis is not None:
        try:
            await cache_set(redis, key, value, ex=ttl)
        except RedisError as e:
            logger.warning("cache set error key=%s err=%s", key, e)
    return value
