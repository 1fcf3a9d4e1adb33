"""
Shared pytest fixtures: in-memory stand-ins for the Mongo repositories and
the Atlas Search repository, with switches to simulate upstream failures.
"""
import os
from contextlib import asynccontextmanager
from copy import deepcopy
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

import pytest
from pymongo.errors import OperationFailure, ServerSelectionTimeoutError

os.environ.setdefault("MONGO_URI", "mongodb://localhost:27017")
os.environ.setdefault("MONGO_DB", "discovery_test")

from discovery.domain.models.product import Product, ProductSummary, to_summary
from discovery.domain.models.query_plan import (
    QueryPlan,
    RangePredicate,
    RELEVANCE,
    TermPredicate,
)
from discovery.domain.models.recency import RecencyEntry, push_recent


def make_product(product_id: str, **overrides) -> dict:
    doc = {
        "product_id": product_id,
        "name": f"Product {product_id}",
        "description": "",
        "category": "phones",
        "brand": "Acme",
        "price": 100.0,
        "original_price": None,
        "discount": 0,
        "images": [f"https://img.example.com/{product_id}.jpg"],
        "stock": 10,
        "sold": 0,
        "rating": 4.0,
        "rating_count": 1,
        "is_best_seller": False,
        "is_new": True,
        "tags": [],
        "views": 0,
        "wishlisted_count": 0,
        "created_at": datetime(2024, 1, 1, tzinfo=timezone.utc),
    }
    doc.update(overrides)
    return doc


def _matches(doc: dict, pred) -> bool:
    val = doc.get(pred.field)
    if isinstance(pred, TermPredicate):
        if isinstance(val, list):
            return any(v in pred.values for v in val)
        return val in pred.values
    if isinstance(pred, RangePredicate):
        if val is None:
            return False
        if pred.gte is not None and val < pred.gte:
            return False
        if pred.lte is not None and val > pred.lte:
            return False
        return True
    raise ValueError(pred)


def _sorted(docs: List[dict], keys, score=None) -> List[dict]:
    out = list(docs)
    for k in reversed(keys):
        if k.field == RELEVANCE:
            out.sort(key=lambda d: score(d), reverse=True)
        else:
            out.sort(key=lambda d: (d.get(k.field) is None, d.get(k.field) or 0), reverse=k.direction == "desc")
    return out


class FakeProductRepo:
    """Primary store stand-in mirroring ProductRepo's interface."""

    def __init__(self, docs: Optional[List[dict]] = None):
        self.docs: Dict[str, dict] = {d["product_id"]: d for d in (docs or [])}
        self.fail = set()   # method names that raise like an unreachable server
        self.calls: List[str] = []

    def _check(self, name: str) -> None:
        self.calls.append(name)
        if name in self.fail:
            raise ServerSelectionTimeoutError(f"{name}: no servers available")

    def add(self, doc: dict) -> None:
        self.docs[doc["product_id"]] = doc

    async def get_by_product_id(self, product_id: str) -> Optional[Product]:
        self._check("get_by_product_id")
        doc = self.docs.get(product_id)
        return Product.model_validate(doc) if doc else None

    async def exists(self, product_id: str) -> bool:
        self._check("exists")
        return product_id in self.docs

    async def get_summaries_by_ids(self, ids: List[str]) -> Dict[str, ProductSummary]:
        self._check("get_summaries_by_ids")
        return {pid: to_summary(self.docs[pid]) for pid in ids if pid in self.docs}

    async def find_summaries(self, plan: QueryPlan):
        self._check("find_summaries")
        hits = [d for d in self.docs.values() if all(_matches(d, p) for p in plan.filter_predicates)]
        hits = _sorted(hits, plan.sort)
        page = hits[plan.offset: plan.offset + plan.limit]
        return [to_summary(d) for d in page], len(hits)

    async def find_in_price_band(self, category, min_price, max_price, exclude_product_id, limit):
        self._check("find_in_price_band")
        hits = [
            d for d in self.docs.values()
            if d["category"] == category
            and min_price <= d["price"] <= max_price
            and d["product_id"] != exclude_product_id
        ]
        hits.sort(key=lambda d: (-d["sold"], -d["views"], d["product_id"]))
        return [to_summary(d) for d in hits[:limit]]

    async def increment_views(self, product_id: str) -> Optional[int]:
        self._check("increment_views")
        doc = self.docs.get(product_id)
        if doc is None:
            return None
        doc["views"] += 1
        return doc["views"]

    async def increment_wishlisted(self, product_id: str, delta: int, *, session=None) -> bool:
        self._check("increment_wishlisted")
        doc = self.docs.get(product_id)
        if doc is None:
            return False
        doc["wishlisted_count"] += delta
        return True


def _text_score(doc: dict, tokens) -> Optional[float]:
    """Crude stand-in for Atlas scoring: every token must hit some field."""
    boosts = {"name": 10, "brand": 8, "category": 6, "tags": 4, "description": 2}
    score = 0.0
    for tok in tokens:
        hit = 0.0
        for field, boost in boosts.items():
            val = doc.get(field) or ""
            text = " ".join(val) if isinstance(val, list) else str(val)
            if tok in text.lower():
                hit = max(hit, boost)
        if not hit:
            return None
        score += hit
    return score


class FakeSearchRepo:
    """Atlas Search stand-in; `fail_times` makes the next N calls raise."""

    def __init__(self, product_repo: FakeProductRepo):
        self.products = product_repo
        self.fail_times = 0
        self.mlt_fail = False
        self.mlt_empty = False
        self.search_calls = 0
        self.mlt_calls = 0

    async def search(self, plan: QueryPlan):
        self.search_calls += 1
        if self.fail_times:
            self.fail_times -= 1
            raise OperationFailure("$search index not ready")
        text = plan.text_predicate
        hits = []
        scores = {}
        for d in self.products.docs.values():
            if not all(_matches(d, p) for p in plan.filter_predicates):
                continue
            if text is not None:
                s = _text_score(d, text.tokens)
                if s is None:
                    continue
                scores[d["product_id"]] = s
            hits.append(d)
        hits = _sorted(hits, plan.sort, score=lambda d: scores.get(d["product_id"], 0))
        page = hits[plan.offset: plan.offset + plan.limit]
        return [to_summary(d) for d in page], len(hits)

    async def more_like_this(self, src: Product, limit: int):
        self.mlt_calls += 1
        if self.mlt_fail:
            raise ServerSelectionTimeoutError("search node unreachable")
        if self.mlt_empty:
            return []
        terms = set(src.name.lower().split())
        hits = [
            d for d in self.products.docs.values()
            if d["category"] == src.category
            and d["product_id"] != src.product_id
            and terms & set(d["name"].lower().split())
        ]
        return [to_summary(d) for d in hits[:limit]]


class FakeRecencyRepo:
    def __init__(self):
        self.lists: Dict[str, List[RecencyEntry]] = {}
        self.fail = set()

    async def push(self, user_id, product_id, viewed_at, capacity):
        if "push" in self.fail:
            raise ServerSelectionTimeoutError("push failed")
        self.lists[user_id] = push_recent(self.lists.get(user_id, []), product_id, viewed_at, capacity)

    async def get(self, user_id):
        if "get" in self.fail:
            raise ServerSelectionTimeoutError("get failed")
        return list(self.lists.get(user_id, []))


class FakeWishlistRepo:
    def __init__(self):
        self.members: Dict[tuple, datetime] = {}
        self._clock = datetime(2024, 1, 1, tzinfo=timezone.utc)

    async def flip(self, user_id, product_id, *, session=None):
        key = (user_id, product_id)
        if key in self.members:
            del self.members[key]
            return False
        self._clock += timedelta(seconds=1)
        self.members[key] = self._clock
        return True

    async def exists(self, user_id, product_id):
        return (user_id, product_id) in self.members

    async def list_for_user(self, user_id):
        rows = [
            {"product_id": pid, "created_at": ts}
            for (uid, pid), ts in self.members.items() if uid == user_id
        ]
        return sorted(rows, key=lambda r: r["created_at"], reverse=True)


def fake_transaction(*states):
    """
    Transaction stand-in: snapshot the given objects' state and restore it if
    the block raises, like an aborted Mongo transaction.
    """
    @asynccontextmanager
    async def _txn():
        snapshots = [deepcopy(s.__dict__) for s in states]
        try:
            yield object()
        except BaseException:
            for s, snap in zip(states, snapshots):
                s.__dict__.clear()
                s.__dict__.update(snap)
            raise
    return _txn


@pytest.fixture
def catalog():
    """A small catalog used across tests."""
    return [
        make_product("p1", name="Galaxy Phone X", price=300, views=50, sold=10, tags=["android"]),
        make_product("p2", name="Pixel Phone 8", price=450, views=80, sold=5),
        make_product("p3", name="Budget Phone Lite", price=90, views=200, sold=40),
        make_product("p4", name="Phone Case Deluxe", category="accessories", price=20, views=10, sold=100),
        make_product("p5", name="Flagship Phone Ultra", price=1200, views=5, sold=1),
        make_product("p6", name="Smart Speaker", category="audio", price=150, views=30, sold=3),
    ]


@pytest.fixture
def product_repo(catalog):
    return FakeProductRepo(deepcopy(catalog))


@pytest.fixture
def search_repo(product_repo):
    return FakeSearchRepo(product_repo)


@pytest.fixture
def recency_repo():
    return FakeRecencyRepo()


@pytest.fixture
def wishlist_repo():
    return FakeWishlistRepo()
