import logging
from typing import Optional, Tuple
from discovery.domain.models.query_plan import RELEVANCE, SortKey
from discovery.domain.services.constants import (
    DEFAULT_SORT,
    SORT_PRESETS,
    SORTABLE_FIELDS,
    TIE_BREAK_FIELD,
)

logger = logging.getLogger(__name__)

def _direction(order: Optional[str], default: str = "desc") -> str:
    s = (order or "").strip().lower()
    return s if s in {"asc", "desc"} else default

def _requested_keys(
    has_text: bool,
    sort: Optional[str],
    sort_by: Optional[str],
    sort_order: Optional[str],
) -> Optional[list]:
    """
    Translate what the client asked for. Returns None when nothing usable was
    requested (unknown values are ignored, not rejected).
    """
    preset = (sort or "").strip()
    if preset == RELEVANCE:
        return [(RELEVANCE, "desc")] if has_text else None
    if preset in SORT_PRESETS:
        return list(SORT_PRESETS[preset])
    if preset:
        logger.debug("ranking ignoring unknown sort preset=%r", preset)

    field = (sort_by or "").strip()
    if field == RELEVANCE:
        return [(RELEVANCE, "desc")] if has_text else None
    if field in SORTABLE_FIELDS:
        return [(SORTABLE_FIELDS[field], _direction(sort_order))]
    if field:
        logger.debug("ranking ignoring unknown sort_by=%r", field)
    return None

def resolve_sort(
    has_text: bool,
    sort: Optional[str] = None,
    sort_by: Optional[str] = None,
    sort_order: Optional[str] = None,
) -> Tuple[SortKey, ...]:
    """
    Ranking policy:
      - explicit, understood sort request -> that order
      - otherwise free text -> relevance score
      - otherwise popularity (views desc, then sold desc)
    A final product_id asc key makes ties deterministic across pages.
    """
    keys = _requested_keys(has_text, sort, sort_by, sort_order)
    if keys is None:
        keys = [(RELEVANCE, "desc")] if has_text else list(DEFAULT_SORT)

    if all(f != TIE_BREAK_FIELD for f, _ in keys):
        keys.append((TIE_BREAK_FIELD, "asc"))
    return tuple(SortKey(field=f, direction=d) for f, d in keys)
