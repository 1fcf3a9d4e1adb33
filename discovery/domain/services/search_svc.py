import asyncio
import logging
import time
from typing import List, Literal, Tuple

from pydantic import BaseModel
from pymongo.errors import PyMongoError

from discovery.core.errors import UpstreamUnavailable
from discovery.domain.models.product import ProductSummary
from discovery.domain.models.query_plan import QueryPlan
from discovery.domain.repositories.product_repo import ProductRepo
from discovery.domain.repositories.product_search_repo import ProductSearchRepo

logger = logging.getLogger(__name__)

# Failures that trigger the documented fallback/error policy.
UPSTREAM_ERRORS = (PyMongoError, asyncio.TimeoutError)


class SearchPage(BaseModel):
    items: List[ProductSummary]
    total: int
    page: int
    limit: int
    has_more: bool
    source: Literal["index", "store"] = "index"

    model_config = {"frozen": True}


class SearchExecutor:
    """
    Runs a QueryPlan against the search index.

    Listing plans (no index-only predicates) get one immediate retry and then
    degrade to the same query on the primary store. Free-text plans have no
    store equivalent: an index failure surfaces as UpstreamUnavailable.
    """

    def __init__(
        self,
        search_repo: ProductSearchRepo,
        product_repo: ProductRepo,
        *,
        search_timeout_s: float = 2.5,
        store_timeout_s: float = 5.0,
    ):
        self.search_repo = search_repo
        self.product_repo = product_repo
        self.search_timeout_s = search_timeout_s
        self.store_timeout_s = store_timeout_s

    async def _from_index(self, plan: QueryPlan) -> Tuple[List[ProductSummary], int]:
        return await asyncio.wait_for(self.search_repo.search(plan), timeout=self.search_timeout_s)

    async def _from_store(self, plan: QueryPlan) -> Tuple[List[ProductSummary], int]:
        try:
            return await asyncio.wait_for(self.product_repo.find_summaries(plan), timeout=self.store_timeout_s)
        except UPSTREAM_ERRORS as e:
            logger.error("search store fallback failed err=%r", e)
            raise UpstreamUnavailable("Search is temporarily unavailable") from e

    async def execute(self, plan: QueryPlan) -> SearchPage:
        t0 = time.perf_counter()
        logger.info(
            "search start text=%r filters=%s offset=%s limit=%s listing=%s",
            plan.free_text, len(plan.filter_predicates), plan.offset, plan.limit, plan.is_listing,
        )

        source = "index"
        try:
            items, total = await self._from_index(plan)
        except UPSTREAM_ERRORS as e:
            if not plan.is_listing:
                logger.error("search index failed for free-text query err=%r", e)
                raise UpstreamUnavailable("Search index unavailable, please retry") from e
            logger.warning("search index failed, retrying once err=%r", e)
            try:
                items, total = await self._from_index(plan)
            except UPSTREAM_ERRORS as e2:
                logger.warning("search index failed again, falling back to primary store err=%r", e2)
                items, total = await self._from_store(plan)
                source = "store"

        items = items[: plan.limit]
        page = SearchPage(
            items=items,
            total=total,
            page=plan.page,
            limit=plan.limit,
            has_more=plan.page * plan.limit < total,
            source=source,
        )
        logger.info(
            "search done source=%s items=%s total=%s total_time=%.3fs",
            source, len(items), total, time.perf_counter() - t0,
        )
        return page
