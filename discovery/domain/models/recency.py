from __future__ import annotations
from datetime import datetime
from typing import Iterable, List, Sequence
from pydantic import BaseModel

class RecencyEntry(BaseModel):
    product_id: str
    viewed_at: datetime

    model_config = {"frozen": True}

def push_recent(
    entries: Sequence[RecencyEntry],
    product_id: str,
    viewed_at: datetime,
    capacity: int,
) -> List[RecencyEntry]:
    """
    Recently-viewed list semantics shared by the server-side list and any
    client-side store: drop an existing entry for `product_id`, prepend a
    fresh one, keep at most `capacity` entries (most recent first).
    """
    kept = [e for e in entries if e.product_id != product_id]
    return [RecencyEntry(product_id=product_id, viewed_at=viewed_at), *kept][:capacity]

def normalize_ids(product_ids: Iterable[str], capacity: int) -> List[str]:
    """Dedupe a most-recent-first id list (first occurrence wins) and trim it to capacity."""
    out: List[str] = []
    seen = set()
    for pid in product_ids:
        pid = (pid or "").strip()
        if not pid or pid in seen:
            continue
        seen.add(pid)
        out.append(pid)
        if len(out) >= capacity:
            break
    return out
