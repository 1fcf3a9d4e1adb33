# discovery/domain/repositories/product_repo.py

from __future__ import annotations
import asyncio
from typing import Any, Dict, Iterable, List, Optional, Tuple
from datetime import datetime, timezone
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ReturnDocument, UpdateOne
from discovery.domain.models.product import Product, ProductSummary, SUMMARY_PROJECTION, to_summary
from discovery.domain.models.query_plan import (
    Predicate,
    QueryPlan,
    RangePredicate,
    RELEVANCE,
    SortKey,
    TermPredicate,
)

class ProductRepo:
    """
    Primary store access for the 'products' collection (authoritative data).
    Counters (views, wishlisted_count) are only ever changed with $inc.
    """

    def __init__(self, db: AsyncIOMotorDatabase, collection_name: str = "products"):
        self.col = db[collection_name]

    # ---------- Plan translation (MQL) ----------
    @staticmethod
    def _to_mql(pred: Predicate) -> Dict[str, Any]:
        """Convert a filter predicate to MQL. Text predicates have no store equivalent."""
        if isinstance(pred, TermPredicate):
            if len(pred.values) == 1:
                return {pred.field: pred.values[0]}
            return {pred.field: {"$in": list(pred.values)}}
        if isinstance(pred, RangePredicate):
            ops: Dict[str, Any] = {}
            if pred.gte is not None: ops["$gte"] = pred.gte
            if pred.lte is not None: ops["$lte"] = pred.lte
            return {pred.field: ops}
        raise ValueError(f"Predicate has no primary-store equivalent: {pred.kind}")

    @classmethod
    def mql_filter(cls, predicates: Iterable[Predicate]) -> Dict[str, Any]:
        parts = [cls._to_mql(p) for p in predicates]
        if not parts:
            return {}
        return parts[0] if len(parts) == 1 else {"$and": parts}

    @staticmethod
    def mql_sort(keys: Iterable[SortKey]) -> List[Tuple[str, int]]:
        out = []
        for k in keys:
            if k.field == RELEVANCE:
                raise ValueError("Relevance ordering needs the search index")
            out.append((k.field, k.sign))
        return out

    # ---------- Reads ----------
    async def get_by_product_id(self, product_id: str) -> Optional[Product]:
        doc = await self.col.find_one({"product_id": product_id}, {"_id": 0})
        return Product.model_validate(doc) if doc else None

    async def exists(self, product_id: str) -> bool:
        return await self.col.count_documents({"product_id": product_id}, limit=1) > 0

    async def get_summaries_by_ids(self, ids: List[str]) -> Dict[str, ProductSummary]:
        """Batch fetch keyed by product_id; missing products are simply absent."""
        if not ids:
            return {}
        cursor = self.col.find({"product_id": {"$in": ids}}, SUMMARY_PROJECTION)
        return {doc["product_id"]: to_summary(doc) async for doc in cursor}

    async def find_summaries(self, plan: QueryPlan) -> Tuple[List[ProductSummary], int]:
        """Listing against the primary store with the plan's filter/sort/pagination."""
        mql = self.mql_filter(plan.filter_predicates)
        cursor = (
            self.col.find(mql, SUMMARY_PROJECTION)
            .sort(self.mql_sort(plan.sort))
            .skip(plan.offset)
            .limit(plan.limit)
        )
        docs, total = await asyncio.gather(
            cursor.to_list(length=plan.limit),
            self.col.count_documents(mql),
        )
        return [to_summary(d) for d in docs], total

    async def find_in_price_band(
        self,
        category: str,
        min_price: float,
        max_price: float,
        exclude_product_id: str,
        limit: int,
    ) -> List[ProductSummary]:
        """Attribute neighbours: same category, price in band, best sellers first."""
        cursor = (
            self.col.find(
                {
                    "category": category,
                    "price": {"$gte": min_price, "$lte": max_price},
                    "product_id": {"$ne": exclude_product_id},
                },
                SUMMARY_PROJECTION,
            )
            .sort([("sold", -1), ("views", -1), ("product_id", 1)])
            .limit(limit)
        )
        return [to_summary(d) async for d in cursor]

    # ---------- Atomic counters ----------
    async def increment_views(self, product_id: str) -> Optional[int]:
        """$inc views by one; returns the new count, None if the product does not exist."""
        doc = await self.col.find_one_and_update(
            {"product_id": product_id},
            {"$inc": {"views": 1}},
            projection={"_id": 0, "views": 1},
            return_document=ReturnDocument.AFTER,
        )
        return int(doc.get("views", 0)) if doc else None

    async def increment_wishlisted(self, product_id: str, delta: int, *, session=None) -> bool:
        """$inc wishlisted_count; returns False when the product no longer exists."""
        res = await self.col.update_one(
            {"product_id": product_id},
            {"$inc": {"wishlisted_count": delta}},
            session=session,
        )
        return res.matched_count == 1

    # ---------- Writes (ingest) ----------
    async def upsert_many(self, docs: List[Dict[str, Any]], *, ordered: bool = False) -> Tuple[int, int]:
        """
        Upsert product documents by product_id. Engagement counters are only
        initialised on insert so re-imports never reset them.
        Returns (upserted_count, modified_count).
        """
        if not docs:
            return 0, 0
        now = datetime.now(timezone.utc)
        ops = [
            UpdateOne(
                {"product_id": d["product_id"]},
                {
                    "$set": {**d, "updated_at": now},
                    "$setOnInsert": {
                        "views": 0,
                        "sold": 0,
                        "wishlisted_count": 0,
                        "created_at": now,
                    },
                },
                upsert=True,
            )
            for d in docs
        ]
        res = await self.col.bulk_write(ops, ordered=ordered)
        return res.upserted_count or 0, res.modified_count or 0
