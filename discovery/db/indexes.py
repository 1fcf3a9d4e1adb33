# discovery/db/indexes.py
"""
Idempotent startup bootstrap: regular MongoDB indexes plus the Atlas Search
index the discovery engine queries. Safe to run on every boot.
"""
import logging
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ASCENDING, DESCENDING, IndexModel
from pymongo.errors import PyMongoError
from pymongo.operations import SearchIndexModel

logger = logging.getLogger(__name__)

# Strings that are filtered with equals/in or sorted on need the `token` type.
_keyword = [{"type": "string"}, {"type": "token"}]

SEARCH_INDEX_DEFINITION = {
    "mappings": {
        "dynamic": False,
        "fields": {
            "product_id": {"type": "token"},
            "name": [{"type": "string"}, {"type": "autocomplete"}],
            "description": {"type": "string"},
            "category": _keyword,
            "brand": _keyword,
            "tags": _keyword,
            "search_keywords": {"type": "string"},
            "price": {"type": "number"},
            "discount": {"type": "number"},
            "rating": {"type": "number"},
            "rating_count": {"type": "number"},
            "views": {"type": "number"},
            "sold": {"type": "number"},
            "is_best_seller": {"type": "boolean"},
            "is_new": {"type": "boolean"},
            "created_at": {"type": "date"},
        },
    }
}

PRODUCT_INDEXES = [
    IndexModel([("product_id", ASCENDING)], unique=True),
    IndexModel([("category", ASCENDING), ("price", ASCENDING)]),
    IndexModel([("views", DESCENDING), ("sold", DESCENDING)]),
    IndexModel([("sold", DESCENDING)]),
    IndexModel([("discount", DESCENDING), ("updated_at", DESCENDING)]),
    IndexModel([("rating", DESCENDING), ("rating_count", DESCENDING)]),
    IndexModel([("is_best_seller", ASCENDING), ("is_new", ASCENDING)]),
]
WISHLIST_INDEXES = [
    IndexModel([("user_id", ASCENDING), ("product_id", ASCENDING)], unique=True),
    IndexModel([("user_id", ASCENDING), ("created_at", DESCENDING)]),
]
RECENTLY_VIEWED_INDEXES = [
    IndexModel([("user_id", ASCENDING)], unique=True),
]


async def ensure_search_index(db: AsyncIOMotorDatabase, name: str, collection: str = "products") -> bool:
    """Create the Atlas Search index if missing. Returns False when the deployment cannot host it."""
    col = db[collection]
    try:
        existing = await col.list_search_indexes(name).to_list(length=1)
        if existing:
            logger.info("search index present name=%s status=%s", name, existing[0].get("status"))
            return True
        await col.create_search_index(SearchIndexModel(definition=SEARCH_INDEX_DEFINITION, name=name))
        logger.info("search index created name=%s (building)", name)
        return True
    except PyMongoError as e:
        # Non-Atlas deployments: searches will take the primary-store fallback.
        logger.warning("search index bootstrap failed name=%s err=%s", name, e)
        return False


async def ensure_indexes(db: AsyncIOMotorDatabase, search_index: str) -> None:
    await db["products"].create_indexes(PRODUCT_INDEXES)
    await db["wishlists"].create_indexes(WISHLIST_INDEXES)
    await db["recently_viewed"].create_indexes(RECENTLY_VIEWED_INDEXES)
    logger.info("mongo indexes ensured")
    await ensure_search_index(db, search_index)
