# discovery/domain/repositories/product_search_repo.py
from __future__ import annotations
import asyncio
from typing import Any, Dict, List, Optional, Tuple
from motor.motor_asyncio import AsyncIOMotorDatabase, AsyncIOMotorCollection
from discovery.domain.models.product import Product, ProductSummary, SUMMARY_PROJECTION, to_summary
from discovery.domain.models.query_plan import (
    Predicate,
    QueryPlan,
    RangePredicate,
    RELEVANCE,
    SortKey,
    TermPredicate,
    TextPredicate,
    max_edits_for,
)

# Extra weight for a product whose name contains the whole query as a phrase.
NAME_PHRASE_BOOST = 20.0


class ProductSearchRepo:
    """
    MongoDB Atlas Search over the 'products' collection ($search / $searchMeta).
    Plans are translated to a compound operator; never send an empty `filter: []`.
    """

    def __init__(self, db: AsyncIOMotorDatabase, index_name: str, collection_name: str = "products"):
        self.col: AsyncIOMotorCollection = db[collection_name]
        self.index = index_name

    # ---------- Translation ----------
    @staticmethod
    def _text_clause(pred: TextPredicate) -> Dict[str, Any]:
        """
        One `must` clause per token so every token has to match some field
        ("and" semantics); each token may match any field, weighted by boost.
        """
        def per_field(token: str, path: str, boost: float) -> Dict[str, Any]:
            text: Dict[str, Any] = {"query": token, "path": path, "score": {"boost": {"value": boost}}}
            edits = max_edits_for(token)
            if edits:
                text["fuzzy"] = {"maxEdits": edits, "prefixLength": pred.prefix_length}
            return {"text": text}

        token_clauses = [
            {
                "compound": {
                    "should": [per_field(tok, f.path, f.boost) for f in pred.fields],
                    "minimumShouldMatch": 1,
                }
            }
            for tok in pred.tokens
        ]
        compound: Dict[str, Any] = {
            "should": [
                {"phrase": {"query": pred.query, "path": "name",
                            "score": {"boost": {"value": NAME_PHRASE_BOOST}}}}
            ],
        }
        if pred.operator == "and":
            compound["must"] = token_clauses
        else:
            compound["should"] += token_clauses
            compound["minimumShouldMatch"] = 1
        return {"compound": compound}

    @staticmethod
    def _filter_clause(pred: Predicate) -> Dict[str, Any]:
        if isinstance(pred, TermPredicate):
            if len(pred.values) == 1:
                return {"equals": {"path": pred.field, "value": pred.values[0]}}
            return {"in": {"path": pred.field, "value": list(pred.values)}}
        if isinstance(pred, RangePredicate):
            r: Dict[str, Any] = {"path": pred.field}
            if pred.gte is not None: r["gte"] = pred.gte
            if pred.lte is not None: r["lte"] = pred.lte
            return {"range": r}
        raise ValueError(f"Not a filter predicate: {pred.kind}")

    @classmethod
    def operator_for(cls, plan: QueryPlan) -> Dict[str, Any]:
        compound: Dict[str, Any] = {}
        text = plan.text_predicate
        if text is not None:
            compound["must"] = [cls._text_clause(text)]
        filters = [cls._filter_clause(p) for p in plan.filter_predicates]
        if filters:
            compound["filter"] = filters
        if not compound:
            # match-all: every product document carries product_id
            return {"exists": {"path": "product_id"}}
        return {"compound": compound}

    @staticmethod
    def sort_for(keys: Tuple[SortKey, ...]) -> Dict[str, Any]:
        sort: Dict[str, Any] = {}
        for k in keys:
            if k.field == RELEVANCE:
                sort["score"] = {"$meta": "searchScore", "order": -1}
            else:
                sort[k.field] = k.sign
        return sort

    # ---------- Execution ----------
    async def search(self, plan: QueryPlan) -> Tuple[List[ProductSummary], int]:
        """One page of results plus the total match count (run concurrently)."""
        operator = self.operator_for(plan)
        pipeline: List[Dict[str, Any]] = [
            {"$search": {"index": self.index, **operator, "sort": self.sort_for(plan.sort)}},
            {"$skip": plan.offset},
            {"$limit": plan.limit},
            {"$project": SUMMARY_PROJECTION},
        ]
        meta_pipeline: List[Dict[str, Any]] = [
            {"$searchMeta": {"index": self.index, **operator, "count": {"type": "total"}}},
        ]
        docs, meta = await asyncio.gather(
            self.col.aggregate(pipeline).to_list(length=plan.limit),
            self.col.aggregate(meta_pipeline).to_list(length=1),
        )
        total = int(meta[0].get("count", {}).get("total", 0)) if meta else 0
        return [to_summary(d) for d in docs], total

    async def more_like_this(self, src: Product, limit: int) -> List[ProductSummary]:
        """
        Relaxed "more like this": same category, at least one significant term
        shared with the source's name/description, source excluded.
        """
        like: Dict[str, Any] = {"name": src.name}
        if src.description:
            like["description"] = src.description
        compound: Dict[str, Any] = {
            "must": [{"moreLikeThis": {"like": like}}],
            "filter": [{"equals": {"path": "category", "value": src.category}}],
            "mustNot": [{"equals": {"path": "product_id", "value": src.product_id}}],
        }
        pipeline: List[Dict[str, Any]] = [
            {"$search": {"index": self.index, "compound": compound}},
            {"$limit": limit},
            {"$project": SUMMARY_PROJECTION},
        ]
        docs = await self.col.aggregate(pipeline).to_list(length=limit)
        return [to_summary(d) for d in docs]
