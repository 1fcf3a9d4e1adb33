from typing import Optional, Iterable
from redis.asyncio import Redis
from discovery.domain.models.product import ProductSummary
import hashlib
import json

def _h(params) -> str:
    """
    Short stable hash of request parameters.
    Used to generate distinct cache keys for different query parameters.
    """
    s = json.dumps(params or {}, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha1(s.encode()).hexdigest()[:10]

class SummaryCacheRepo:
    """
    Adapter for caching lists of ProductSummary in Redis.
    No business logic here, just cache access (get/set).
    """
    def __init__(self, redis: Redis, key_prefix: str):
        """
        Args:
            redis: Redis client instance
            key_prefix: Prefix for cache keys (e.g., 'sim')
        """
        self.cache = redis
        self.prefix = key_prefix

    def key(self, product_id: str, **params) -> str:
        """Combine prefix, product id and a hash of the remaining parameters."""
        return f"{self.prefix}:{product_id}:{_h(params)}"

    async def get(self, key: str) -> Optional[list[ProductSummary]]:
        """Cached list for `key`, or None on a miss."""
        raw = await self.cache.get(key)
        if raw:
            data = json.loads(raw)
            return [ProductSummary.model_validate(x) for x in data]
        return None

    async def set(self, key: str, items: Iterable[ProductSummary], ttl: int) -> None:
        payload = [i.model_dump() for i in items]
        await self.cache.set(key, json.dumps(payload), ex=ttl)
