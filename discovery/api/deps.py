# discovery/api/deps.py
from functools import partial
from typing import Annotated, Optional
from fastapi import Depends, Header
from discovery.core.config import Settings, get_settings
from discovery.core.errors import Unauthenticated
from discovery.db.mongo import get_client, get_db
from discovery.db.redis import get_redis
from discovery.db.transactions import transaction
from discovery.domain.models.identity import Identity
from discovery.domain.repositories.product_repo import ProductRepo
from discovery.domain.repositories.product_search_repo import ProductSearchRepo
from discovery.domain.repositories.recently_viewed_repo import RecentlyViewedRepo
from discovery.domain.repositories.summary_cache_repo import SummaryCacheRepo
from discovery.domain.repositories.wishlist_repo import WishlistRepo
from discovery.domain.services.favorites_svc import FavoriteToggle
from discovery.domain.services.recently_viewed_svc import RecencyTracker
from discovery.domain.services.search_svc import SearchExecutor
from discovery.domain.services.similar_products_svc import SimilarityRetriever

# Dependency for injecting the MongoDB database into endpoints/services
async def mongo_db(db = Depends(get_db)):
    return db

# Dependency for injecting the Redis client (None when not configured)
def redis_dep():
    return get_redis()

SettingsDep = Annotated[Settings, Depends(get_settings)]

# ----- Identity (decoded upstream by the auth layer) --------------------------

def current_identity(
    x_user_id: Optional[str] = Header(default=None),
    x_anonymous_id: Optional[str] = Header(default=None),
) -> Identity:
    return Identity(user_id=(x_user_id or "").strip() or None, anonymous_id=x_anonymous_id)

def require_user(identity: Identity = Depends(current_identity)) -> str:
    if not identity.is_authenticated:
        raise Unauthenticated("Sign in required")
    return identity.user_id

# ----- Engine components -------------------------------------------------------

def search_executor(settings: SettingsDep, db = Depends(mongo_db)) -> SearchExecutor:
    return SearchExecutor(
        ProductSearchRepo(db, settings.SEARCH_INDEX),
        ProductRepo(db),
        search_timeout_s=settings.search_timeout_s,
        store_timeout_s=settings.store_timeout_s,
    )

def similarity_retriever(settings: SettingsDep, db = Depends(mongo_db), redis = Depends(redis_dep)) -> SimilarityRetriever:
    return SimilarityRetriever(
        ProductRepo(db),
        ProductSearchRepo(db, settings.SEARCH_INDEX),
        cache=SummaryCacheRepo(redis, key_prefix="sim") if redis is not None else None,
        cache_ttl=settings.similar_cache_ttl,
        search_timeout_s=settings.search_timeout_s,
        store_timeout_s=settings.store_timeout_s,
    )

def recency_tracker(settings: SettingsDep, db = Depends(mongo_db)) -> RecencyTracker:
    return RecencyTracker(ProductRepo(db), RecentlyViewedRepo(db), store_timeout_s=settings.store_timeout_s)

def favorite_toggle(settings: SettingsDep, db = Depends(mongo_db), redis = Depends(redis_dep)) -> FavoriteToggle:
    return FavoriteToggle(
        ProductRepo(db),
        WishlistRepo(db),
        partial(transaction, get_client()),
        redis=redis,
        lock_ttl=settings.favorite_lock_ttl,
        lock_wait_s=settings.favorite_lock_wait_s,
        store_timeout_s=settings.store_timeout_s,
    )
