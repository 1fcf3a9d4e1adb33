import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import Callable, List, Optional, Sequence

from pydantic import BaseModel

from discovery.core.errors import NotFound, UpstreamUnavailable
from discovery.domain.models.identity import Identity
from discovery.domain.models.product import ProductSummary
from discovery.domain.models.recency import RecencyEntry, normalize_ids, push_recent
from discovery.domain.repositories.product_repo import ProductRepo
from discovery.domain.repositories.recently_viewed_repo import RecentlyViewedRepo
from discovery.domain.services.constants import CLIENT_RECENCY_CAPACITY, SERVER_RECENCY_CAPACITY
from discovery.domain.services.search_svc import UPSTREAM_ERRORS

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ViewRecorded(BaseModel):
    views: int
    # Updated client-side list for anonymous identities (the client persists it).
    client_recent: Optional[List[RecencyEntry]] = None


class RecencyTracker:
    """
    Recently-viewed tracking.

    Authenticated identities get a server-side list (cap 50) updated in one
    atomic store operation per view. Anonymous identities keep their list on
    the client (cap 30); the tracker applies the same dedupe/prepend/trim
    rules and hands the result back for the client to store.
    """

    def __init__(
        self,
        product_repo: ProductRepo,
        recency_repo: RecentlyViewedRepo,
        *,
        store_timeout_s: float = 5.0,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.product_repo = product_repo
        self.recency_repo = recency_repo
        self.store_timeout_s = store_timeout_s
        self.clock = clock

    async def record_view(
        self,
        identity: Identity,
        product_id: str,
        client_recent: Optional[Sequence[RecencyEntry]] = None,
    ) -> ViewRecorded:
        t0 = time.perf_counter()
        try:
            views = await asyncio.wait_for(self.product_repo.increment_views(product_id), timeout=self.store_timeout_s)
        except UPSTREAM_ERRORS as e:
            logger.error("record_view increment failed product_id=%s err=%r", product_id, e)
            raise UpstreamUnavailable("Could not record the view, please retry") from e
        if views is None:
            raise NotFound(f"Product {product_id} not found")

        now = self.clock()
        result = ViewRecorded(views=views)
        if identity.is_authenticated:
            try:
                await asyncio.wait_for(
                    self.recency_repo.push(identity.user_id, product_id, now, SERVER_RECENCY_CAPACITY),
                    timeout=self.store_timeout_s,
                )
            except UPSTREAM_ERRORS as e:
                logger.error("record_view push failed user_id=%s product_id=%s err=%r", identity.user_id, product_id, e)
                raise UpstreamUnavailable("Could not update recently viewed, please retry") from e
        else:
            result = ViewRecorded(
                views=views,
                client_recent=push_recent(client_recent or [], product_id, now, CLIENT_RECENCY_CAPACITY),
            )

        logger.info(
            "record_view done product_id=%s authenticated=%s views=%s total_time=%.3fs",
            product_id, identity.is_authenticated, views, time.perf_counter() - t0,
        )
        return result

    async def _resolve(self, ids: List[str]) -> List[ProductSummary]:
        """Summaries in list order; products that no longer exist are dropped."""
        if not ids:
            return []
        try:
            found = await asyncio.wait_for(self.product_repo.get_summaries_by_ids(ids), timeout=self.store_timeout_s)
        except UPSTREAM_ERRORS as e:
            logger.error("recently_viewed resolve failed ids=%s err=%r", len(ids), e)
            raise UpstreamUnavailable("Recently viewed is temporarily unavailable") from e
        return [found[pid] for pid in ids if pid in found]

    async def recently_viewed(
        self,
        identity: Identity,
        client_ids: Optional[Sequence[str]] = None,
    ) -> List[ProductSummary]:
        """
        Server list when the identity is authenticated and its list is
        non-empty; otherwise the client-held list. The two are never merged.
        """
        t0 = time.perf_counter()
        entries: List[RecencyEntry] = []
        if identity.is_authenticated:
            try:
                entries = await asyncio.wait_for(self.recency_repo.get(identity.user_id), timeout=self.store_timeout_s)
            except UPSTREAM_ERRORS as e:
                logger.warning("recently_viewed server list unavailable user_id=%s err=%r", identity.user_id, e)

        if entries:
            source = "server"
            ids = [e.product_id for e in entries]
        else:
            source = "client"
            ids = normalize_ids(client_ids or [], CLIENT_RECENCY_CAPACITY)

        items = await self._resolve(ids)
        logger.info(
            "recently_viewed done source=%s ids=%s items=%s total_time=%.3fs",
            source, len(ids), len(items), time.perf_counter() - t0,
        )
        return items
