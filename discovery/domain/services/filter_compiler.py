# discovery/domain/services/filter_compiler.py
"""
Filter compiler: raw search parameters -> immutable QueryPlan.

Parameters arrive as decoded query-string values (str, or list of str for
repeated keys). Both snake_case and camelCase spellings are accepted
(`min_price` / `minPrice`). Malformed numbers and flags are treated as absent
so that a bad query string never breaks browsing; absent parameters never
become filters.
"""
from __future__ import annotations
import logging
import math
import re
from typing import Any, List, Mapping, Optional, Tuple

from discovery.domain.models.query_plan import (
    Predicate,
    QueryPlan,
    RangePredicate,
    TermPredicate,
    TextField,
    TextPredicate,
)
from discovery.domain.services.constants import (
    DEFAULT_PAGE_SIZE,
    FUZZY_PREFIX_LENGTH,
    MAX_OFFSET,
    MAX_PAGE_SIZE,
    TEXT_FIELD_BOOSTS,
)
from discovery.domain.services.ranking import resolve_sort

logger = logging.getLogger(__name__)

# public range name -> stored field
RANGE_FIELDS = ("price", "discount", "rating", "views", "sold")
# public multi-valued name -> stored field
TERM_FIELDS = {"category": "category", "brand": "brand", "tags": "tags"}
# public flag name -> stored field
FLAG_FIELDS = {"is_best_seller": "is_best_seller", "is_new": "is_new"}

_TOKEN_RE = re.compile(r"\w+", re.UNICODE)
_TRUE = {"true", "1", "yes", "on"}
_FALSE = {"false", "0", "no", "off"}


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(w.title() for w in rest)


def _raw(params: Mapping[str, Any], name: str) -> List[Any]:
    """All raw values for a parameter under either spelling, flattened."""
    out: List[Any] = []
    for key in dict.fromkeys((name, _camel(name))):
        val = params.get(key)
        if val is None:
            continue
        if isinstance(val, (list, tuple)):
            out.extend(v for v in val if v is not None)
        else:
            out.append(val)
    return out


def _first(params: Mapping[str, Any], name: str) -> Optional[str]:
    for v in _raw(params, name):
        s = str(v).strip()
        if s:
            return s
    return None


def _number(params: Mapping[str, Any], name: str) -> Optional[float]:
    s = _first(params, name)
    if s is None:
        return None
    try:
        n = float(s)
    except ValueError:
        logger.debug("filter_compiler ignoring malformed %s=%r", name, s)
        return None
    return n if math.isfinite(n) else None


def _int(params: Mapping[str, Any], name: str) -> Optional[int]:
    n = _number(params, name)
    return int(n) if n is not None else None


def _flag(params: Mapping[str, Any], name: str) -> Optional[bool]:
    s = _first(params, name)
    if s is None:
        return None
    s = s.lower()
    if s in _TRUE:
        return True
    if s in _FALSE:
        return False
    logger.debug("filter_compiler ignoring malformed %s=%r", name, s)
    return None


def _many(params: Mapping[str, Any], name: str) -> Tuple[str, ...]:
    vals = (str(v).strip() for v in _raw(params, name))
    return tuple(dict.fromkeys(v for v in vals if v))


def tokenize(text: str) -> Tuple[str, ...]:
    """Significant tokens of a free-text query: word characters only, lower-cased, deduplicated."""
    return tuple(dict.fromkeys(_TOKEN_RE.findall(text.lower())))


def text_predicate(text: str) -> Optional[TextPredicate]:
    text = (text or "").strip()
    tokens = tokenize(text)
    if not tokens:
        return None
    return TextPredicate(
        query=text,
        tokens=tokens,
        fields=tuple(TextField(path=p, boost=b) for p, b in TEXT_FIELD_BOOSTS.items()),
        prefix_length=FUZZY_PREFIX_LENGTH,
        operator="and",
    )


def _range_predicates(params: Mapping[str, Any]) -> List[Predicate]:
    preds: List[Predicate] = []
    for field in RANGE_FIELDS:
        lo = _number(params, f"min_{field}")
        hi = _number(params, f"max_{field}")
        if lo is not None or hi is not None:
            preds.append(RangePredicate(field=field, gte=lo, lte=hi))
    return preds


def _term_predicates(params: Mapping[str, Any]) -> List[Predicate]:
    preds: List[Predicate] = []
    for name, field in TERM_FIELDS.items():
        values = _many(params, name)
        if values:
            preds.append(TermPredicate(field=field, values=values))
    for name, field in FLAG_FIELDS.items():
        flag = _flag(params, name)
        if flag is not None:
            preds.append(TermPredicate(field=field, values=(flag,)))
    return preds


def paginate(page: Optional[int], limit: Optional[int]) -> Tuple[int, int]:
    """
    Return (offset, limit). page < 1 -> 1; limit missing -> default, else
    clamped to [1, MAX_PAGE_SIZE]. Pages past MAX_OFFSET are pinned to the
    last representable page, which is simply empty.
    """
    page = page if page is not None and page >= 1 else 1
    limit = DEFAULT_PAGE_SIZE if limit is None else min(max(limit, 1), MAX_PAGE_SIZE)
    page = min(page, MAX_OFFSET // limit + 1)
    return (page - 1) * limit, limit


def compile_query(params: Mapping[str, Any]) -> QueryPlan:
    """Build the QueryPlan for one search request. Pure: no shared builder state."""
    free_text = _first(params, "q") or _first(params, "query")
    text = text_predicate(free_text) if free_text else None

    must: List[Predicate] = []
    if text is not None:
        must.append(text)
    must += _term_predicates(params)
    must += _range_predicates(params)

    sort = resolve_sort(
        has_text=text is not None,
        sort=_first(params, "sort"),
        sort_by=_first(params, "sort_by"),
        sort_order=_first(params, "sort_order"),
    )
    offset, limit = paginate(_int(params, "page"), _int(params, "limit"))

    plan = QueryPlan(
        free_text=text.query if text else None,
        must_filters=tuple(must),
        sort=sort,
        offset=offset,
        limit=limit,
    )
    logger.debug(
        "filter_compiler plan text=%r filters=%s sort=%s offset=%s limit=%s",
        plan.free_text, len(plan.must_filters), [(k.field, k.direction) for k in plan.sort],
        plan.offset, plan.limit,
    )
    return plan
