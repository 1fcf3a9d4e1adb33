import asyncio
import logging
import time
from typing import List, Optional

from redis.exceptions import RedisError

from discovery.domain.models.product import ProductSummary
from discovery.domain.repositories.product_repo import ProductRepo
from discovery.domain.repositories.product_search_repo import ProductSearchRepo
from discovery.domain.repositories.summary_cache_repo import SummaryCacheRepo
from discovery.domain.services.constants import (
    SIMILAR_DEFAULT_LIMIT,
    SIMILAR_MAX_LIMIT,
    SIMILAR_PRICE_BAND,
)
from discovery.domain.services.search_svc import UPSTREAM_ERRORS

logger = logging.getLogger(__name__)


class SimilarityRetriever:
    """
    "Similar products" for a source product, two tiers:
      1) index-native more-like-this within the source's category;
      2) if that errors or finds nothing: primary store, same category,
         price within [0.7x, 1.3x], best sellers then most viewed.
    Similarity is advisory: a missing source or a failing store yields [].
    """

    def __init__(
        self,
        product_repo: ProductRepo,
        search_repo: ProductSearchRepo,
        *,
        cache: Optional[SummaryCacheRepo] = None,
        cache_ttl: int = 600,
        search_timeout_s: float = 2.5,
        store_timeout_s: float = 5.0,
    ):
        self.product_repo = product_repo
        self.search_repo = search_repo
        self.cache = cache
        self.cache_ttl = cache_ttl
        self.search_timeout_s = search_timeout_s
        self.store_timeout_s = store_timeout_s

    async def _cache_get(self, key: str) -> Optional[List[ProductSummary]]:
        if self.cache is None:
            return None
        try:
            return await self.cache.get(key)
        except RedisError as e:
            logger.warning("similar cache get error key=%s err=%s", key, e)
            return None

    async def _cache_set(self, key: str, items: List[ProductSummary]) -> None:
        if self.cache is None:
            return
        try:
            await self.cache.set(key, items, ttl=self.cache_ttl)
        except RedisError as e:
            logger.warning("similar cache set error key=%s err=%s", key, e)

    async def similar(self, product_id: str, limit: int = SIMILAR_DEFAULT_LIMIT) -> List[ProductSummary]:
        t0 = time.perf_counter()
        limit = min(max(int(limit), 1), SIMILAR_MAX_LIMIT)
        logger.info("similar start product_id=%s limit=%s", product_id, limit)

        cache_key = self.cache.key(product_id, limit=limit) if self.cache is not None else ""
        if cached := await self._cache_get(cache_key):
            logger.info("similar cache_hit product_id=%s items=%s", product_id, len(cached))
            return cached

        try:
            src = await asyncio.wait_for(
                self.product_repo.get_by_product_id(product_id), timeout=self.store_timeout_s
            )
        except UPSTREAM_ERRORS as e:
            logger.error("similar source lookup failed product_id=%s err=%r", product_id, e)
            return []
        if src is None:
            logger.info("similar source not found product_id=%s", product_id)
            return []

        items: List[ProductSummary] = []
        source = "index"
        try:
            hits = await asyncio.wait_for(
                self.search_repo.more_like_this(src, limit + 1), timeout=self.search_timeout_s
            )
            items = [p for p in hits if p.id != src.product_id][:limit]
            if not items:
                logger.info("similar index returned no hits product_id=%s, using attribute fallback", product_id)
        except UPSTREAM_ERRORS as e:
            logger.warning("similar index failed product_id=%s err=%r, using attribute fallback", product_id, e)

        if not items:
            source = "store"
            lo, hi = SIMILAR_PRICE_BAND
            try:
                hits = await asyncio.wait_for(
                    self.product_repo.find_in_price_band(
                        category=src.category,
                        min_price=src.price * lo,
                        max_price=src.price * hi,
                        exclude_product_id=src.product_id,
                        limit=limit,
                    ),
                    timeout=self.store_timeout_s,
                )
            except UPSTREAM_ERRORS as e:
                logger.error("similar attribute fallback failed product_id=%s err=%r", product_id, e)
                return []
            items = [p for p in hits if p.id != src.product_id][:limit]

        if items:
            await self._cache_set(cache_key, items)
        logger.info(
            "similar done product_id=%s source=%s items=%s total_time=%.3fs",
            product_id, source, len(items), time.perf_counter() - t0,
        )
        return items
