import asyncio
import logging
import time
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Callable, List, Optional

from pydantic import BaseModel
from pymongo.errors import DuplicateKeyError, PyMongoError
from redis.asyncio import Redis
from redis.exceptions import RedisError

from discovery.core.errors import ConsistencyConflict, NotFound, UpstreamUnavailable
from discovery.domain.models.product import ProductSummary
from discovery.domain.repositories.product_repo import ProductRepo
from discovery.domain.repositories.wishlist_repo import WishlistRepo
from discovery.domain.services.search_svc import UPSTREAM_ERRORS
from discovery.utils.locks import RedisLock

logger = logging.getLogger(__name__)


class FavoriteItem(BaseModel):
    product: ProductSummary
    liked_at: Optional[datetime] = None


class _ProductVanished(Exception):
    """Product was deleted between the existence check and the counter update."""


class FavoriteToggle:
    """
    Favorite (wishlist) membership with a per-product `wishlisted_count`.

    A toggle flips membership and applies the matching +1/-1 counter change in
    one transaction, serialized per (user, product) pair by a Redis lock when
    Redis is available. Failures are surfaced, never retried here: retrying a
    toggle blindly would flip it twice.
    """

    def __init__(
        self,
        product_repo: ProductRepo,
        wishlist_repo: WishlistRepo,
        transaction: Callable,
        *,
        redis: Optional[Redis] = None,
        lock_ttl: int = 10,
        lock_wait_s: float = 3,
        store_timeout_s: float = 5.0,
    ):
        self.product_repo = product_repo
        self.wishlist_repo = wishlist_repo
        self.transaction = transaction  # () -> async context manager yielding a session
        self.redis = redis
        self.lock_ttl = lock_ttl
        self.lock_wait_s = lock_wait_s
        self.store_timeout_s = store_timeout_s

    @asynccontextmanager
    async def _pair_lock(self, user_id: str, product_id: str):
        lock: Optional[RedisLock] = None
        if self.redis is not None:
            candidate = RedisLock(self.redis, f"fav:{user_id}:{product_id}", ttl=self.lock_ttl)
            try:
                acquired = await candidate.acquire_wait(self.lock_wait_s)
            except RedisError as e:
                # Lock service down: the transaction still detects conflicting writers.
                logger.warning("favorite lock unavailable user_id=%s product_id=%s err=%s", user_id, product_id, e)
            else:
                if not acquired:
                    raise ConsistencyConflict("Another update of this favorite is in progress, please retry")
                lock = candidate
        try:
            yield
        finally:
            if lock is not None:
                try:
                    await lock.release()
                except RedisError as e:
                    logger.warning("favorite lock release failed key=%s err=%s", lock.key, e)

    async def _flip(self, user_id: str, product_id: str) -> bool:
        async with self.transaction() as session:
            liked = await self.wishlist_repo.flip(user_id, product_id, session=session)
            if not await self.product_repo.increment_wishlisted(product_id, 1 if liked else -1, session=session):
                raise _ProductVanished(product_id)
            return liked

    async def toggle_favorite(self, user_id: str, product_id: str) -> bool:
        t0 = time.perf_counter()
        logger.info("toggle_favorite start user_id=%s product_id=%s", user_id, product_id)
        try:
            if not await asyncio.wait_for(self.product_repo.exists(product_id), timeout=self.store_timeout_s):
                raise NotFound(f"Product {product_id} not found")
        except UPSTREAM_ERRORS as e:
            raise UpstreamUnavailable("Could not update favorites, please retry") from e

        async with self._pair_lock(user_id, product_id):
            try:
                liked = await asyncio.wait_for(self._flip(user_id, product_id), timeout=self.store_timeout_s)
            except _ProductVanished:
                raise NotFound(f"Product {product_id} not found")
            except DuplicateKeyError as e:
                logger.warning("toggle_favorite lost a race user_id=%s product_id=%s", user_id, product_id)
                raise ConsistencyConflict("Favorite changed concurrently, please retry") from e
            except PyMongoError as e:
                if e.has_error_label("TransientTransactionError"):
                    logger.warning("toggle_favorite write conflict user_id=%s product_id=%s err=%s", user_id, product_id, e)
                    raise ConsistencyConflict("Favorite changed concurrently, please retry") from e
                logger.error("toggle_favorite failed user_id=%s product_id=%s err=%r", user_id, product_id, e)
                raise UpstreamUnavailable("Could not update favorites, please retry") from e
            except asyncio.TimeoutError as e:
                logger.error("toggle_favorite timed out user_id=%s product_id=%s", user_id, product_id)
                raise UpstreamUnavailable("Could not update favorites, please retry") from e

        logger.info(
            "toggle_favorite done user_id=%s product_id=%s liked=%s total_time=%.3fs",
            user_id, product_id, liked, time.perf_counter() - t0,
        )
        return liked

    async def check_favorite(self, user_id: str, product_id: str) -> bool:
        try:
            return await asyncio.wait_for(self.wishlist_repo.exists(user_id, product_id), timeout=self.store_timeout_s)
        except UPSTREAM_ERRORS as e:
            raise UpstreamUnavailable("Favorites are temporarily unavailable") from e

    async def list_favorites_detailed(self, user_id: str) -> List[FavoriteItem]:
        """Favorites newest first with the time each was added; deleted products are skipped."""
        try:
            memberships = await asyncio.wait_for(self.wishlist_repo.list_for_user(user_id), timeout=self.store_timeout_s)
            ids = [m["product_id"] for m in memberships]
            found = await asyncio.wait_for(self.product_repo.get_summaries_by_ids(ids), timeout=self.store_timeout_s)
        except UPSTREAM_ERRORS as e:
            logger.error("list_favorites failed user_id=%s err=%r", user_id, e)
            raise UpstreamUnavailable("Favorites are temporarily unavailable") from e

        out: List[FavoriteItem] = []
        for m in memberships:
            summary = found.get(m["product_id"])
            if summary is None:
                continue
            out.append(FavoriteItem(product=summary, liked_at=m.get("created_at")))
        logger.info("list_favorites done user_id=%s items=%s", user_id, len(out))
        return out

    async def list_favorites(self, user_id: str) -> List[ProductSummary]:
        return [item.product for item in await self.list_favorites_detailed(user_id)]
