from __future__ import annotations
from typing import Any, Literal, Optional, Tuple, Union
from pydantic import BaseModel

# Pseudo-field: order by the index's computed relevance score.
RELEVANCE = "relevance"

class TermPredicate(BaseModel):
    """Equality (one value) or any-of (several values) on a field."""
    kind: Literal["term"] = "term"
    field: str
    values: Tuple[Any, ...]

    model_config = {"frozen": True}

class RangePredicate(BaseModel):
    """Inclusive range; either bound may be missing."""
    kind: Literal["range"] = "range"
    field: str
    gte: Optional[float] = None
    lte: Optional[float] = None

    model_config = {"frozen": True}

class TextField(BaseModel):
    path: str
    boost: float = 1.0

    model_config = {"frozen": True}

class TextPredicate(BaseModel):
    """
    Fuzzy multi-field text match. With operator "and" every token must match
    some field, each within `max_edits_for(token)` edits; only the search
    index can evaluate it.
    """
    kind: Literal["text"] = "text"
    query: str
    tokens: Tuple[str, ...]
    fields: Tuple[TextField, ...]
    prefix_length: int = 1
    operator: Literal["and", "or"] = "and"

    model_config = {"frozen": True}

def max_edits_for(token: str) -> int:
    """Edit tolerance by token length: exact up to 2 chars, 1 edit up to 5, else 2."""
    if len(token) <= 2:
        return 0
    return 1 if len(token) <= 5 else 2

Predicate = Union[TermPredicate, RangePredicate, TextPredicate]

class SortKey(BaseModel):
    field: str
    direction: Literal["asc", "desc"] = "desc"

    model_config = {"frozen": True}

    @property
    def sign(self) -> int:
        return 1 if self.direction == "asc" else -1

class QueryPlan(BaseModel):
    free_text: Optional[str] = None
    must_filters: Tuple[Predicate, ...] = ()
    sort: Tuple[SortKey, ...] = ()
    offset: int = 0
    limit: int = 20

    model_config = {"frozen": True}

    @property
    def page(self) -> int:
        return self.offset // self.limit + 1

    @property
    def text_predicate(self) -> Optional[TextPredicate]:
        return next((p for p in self.must_filters if isinstance(p, TextPredicate)), None)

    @property
    def filter_predicates(self) -> Tuple[Predicate, ...]:
        return tuple(p for p in self.must_filters if not isinstance(p, TextPredicate))

    @property
    def is_listing(self) -> bool:
        """True when the plan has an exact primary-store equivalent (no index-only predicates)."""
        return self.text_predicate is None and all(k.field != RELEVANCE for k in self.sort)
