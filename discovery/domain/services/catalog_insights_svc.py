import asyncio
import logging
import re
import time
from typing import Any, Dict, List, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase
from redis.asyncio import Redis

from discovery.core.config import get_settings
from discovery.core.errors import InvalidInput, NotFound, UpstreamUnavailable
from discovery.core.logging import json_preview
from discovery.domain.services.constants import ORDER_STATUSES_COUNTED, SUGGESTION_MIN_CHARS
from discovery.domain.services.search_svc import UPSTREAM_ERRORS
from discovery.utils.cache import cached_json

logger = logging.getLogger(__name__)

FILTER_OPTIONS_CACHE_KEY = "catalog:filter_options:v1"


async def get_suggestions_svc(db: AsyncIOMotorDatabase, query: Optional[str], limit: int = 10) -> List[Dict[str, str]]:
    """Autocomplete entries {type, value} from product names, brands, categories and tags."""
    q = (query or "").strip()
    if len(q) < SUGGESTION_MIN_CHARS:
        raise InvalidInput(f"Query must be at least {SUGGESTION_MIN_CHARS} characters long")

    rx = {"$regex": re.escape(q), "$options": "i"}
    pipeline: List[Dict[str, Any]] = [
        {"$match": {"$or": [{"name": rx}, {"brand": rx}, {"category": rx}, {"tags": rx}]}},
        {"$project": {"_id": 0, "name": 1, "brand": 1, "category": 1, "tags": 1}},
        {"$limit": limit},
    ]
    logger.debug("suggestions pipeline=%s", json_preview(pipeline))
    try:
        docs = await db["products"].aggregate(pipeline).to_list(length=limit)
    except UPSTREAM_ERRORS as e:
        raise UpstreamUnavailable("Suggestions are temporarily unavailable") from e

    seen = set()
    out: List[Dict[str, str]] = []

    def _add(kind: str, value: Optional[str]) -> None:
        if value and value not in seen:
            seen.add(value)
            out.append({"type": kind, "value": value})

    for d in docs:
        _add("product", d.get("name"))
        _add("brand", d.get("brand"))
        _add("category", d.get("category"))
        for tag in d.get("tags") or []:
            _add("tag", tag)
    return out[:limit]


async def _range_of(db: AsyncIOMotorDatabase, field: str) -> Dict[str, float]:
    docs = await db["products"].aggregate(
        [{"$group": {"_id": None, "min": {"$min": f"${field}"}, "max": {"$max": f"${field}"}}}]
    ).to_list(length=1)
    if not docs:
        return {"min": 0, "max": 0}
    return {"min": docs[0].get("min") or 0, "max": docs[0].get("max") or 0}


async def get_filter_options_svc(db: AsyncIOMotorDatabase, redis: Optional[Redis]) -> Dict[str, Any]:
    """Distinct categories and brands plus price/discount ranges, cached briefly."""
    t0 = time.perf_counter()
    settings = get_settings()

    async def _compute() -> Dict[str, Any]:
        col = db["products"]
        try:
            categories, brands, price, discount = await asyncio.gather(
                col.distinct("category"),
                col.distinct("brand"),
                _range_of(db, "price"),
                _range_of(db, "discount"),
            )
        except UPSTREAM_ERRORS as e:
            raise UpstreamUnavailable("Filter options are temporarily unavailable") from e
        return {
            "categories": sorted(c for c in categories if c),
            "brands": sorted(b for b in brands if b),
            "price_range": price,
            "discount_range": discount,
        }

    result = await cached_json(redis, FILTER_OPTIONS_CACHE_KEY, settings.filter_options_cache_ttl, _compute)
    logger.info(
        "filter_options done categories=%s brands=%s total_time=%.3fs",
        len(result["categories"]), len(result["brands"]), time.perf_counter() - t0,
    )
    return result


async def get_popular_svc(db: AsyncIOMotorDatabase, limit: int = 10) -> Dict[str, Any]:
    """Categories and brands with the most products."""
    def _grouped(field: str) -> List[Dict[str, Any]]:
        return [
            {"$match": {field: {"$exists": True, "$nin": [None, ""]}}},
            {"$group": {"_id": f"${field}", "count": {"$sum": 1}}},
            {"$sort": {"count": -1, "_id": 1}},
            {"$limit": limit},
            {"$project": {"_id": 0, field: "$_id", "count": 1}},
        ]

    col = db["products"]
    try:
        categories, brands = await asyncio.gather(
            col.aggregate(_grouped("category")).to_list(length=limit),
            col.aggregate(_grouped("brand")).to_list(length=limit),
        )
    except UPSTREAM_ERRORS as e:
        raise UpstreamUnavailable("Popular searches are temporarily unavailable") from e
    return {"popular_categories": categories, "popular_brands": brands}


async def get_product_stats_svc(db: AsyncIOMotorDatabase, product_id: str) -> Dict[str, int]:
    """Distinct buyers (paid/shipped/completed orders) and review count for a product."""
    t0 = time.perf_counter()
    buyers_pipeline: List[Dict[str, Any]] = [
        {"$match": {"items.product_id": product_id, "status": {"$in": ORDER_STATUSES_COUNTED}}},
        {"$group": {"_id": "$user_id"}},
        {"$count": "buyers"},
    ]
    logger.debug("product_stats pipeline=%s", json_preview(buyers_pipeline))
    try:
        exists = await db["products"].count_documents({"product_id": product_id}, limit=1)
        if not exists:
            raise NotFound(f"Product {product_id} not found")
        buyers_agg, comments = await asyncio.gather(
            db["orders"].aggregate(buyers_pipeline).to_list(length=1),
            db["reviews"].count_documents({"product_id": product_id}),
        )
    except UPSTREAM_ERRORS as e:
        raise UpstreamUnavailable("Product stats are temporarily unavailable") from e

    buyers = buyers_agg[0]["buyers"] if buyers_agg else 0
    logger.info(
        "product_stats done product_id=%s buyers=%s comments=%s total_time=%.3fs",
        product_id, buyers, comments, time.perf_counter() - t0,
    )
    return {"buyers": buyers, "comments": comments}
