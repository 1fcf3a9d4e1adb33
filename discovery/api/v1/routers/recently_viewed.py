from __future__ import annotations
from typing import List, Optional
from fastapi import APIRouter, Body, Depends, Query, Request

from discovery.api.deps import current_identity, recency_tracker
from discovery.api.v1.schemas.discovery import ProductsOut, ViewIn, ViewOut
from discovery.domain.models.identity import Identity
from discovery.domain.services.recently_viewed_svc import RecencyTracker
from discovery.utils.cancellation import cancel_on_disconnect, run_to_completion

import logging
logger = logging.getLogger(__name__)

router = APIRouter(tags=["recently-viewed"])

@router.post("/products/{product_id}/view", response_model=ViewOut, response_model_exclude_none=True)
async def record_view(
    product_id: str,
    body: Optional[ViewIn] = Body(default=None),
    identity: Identity = Depends(current_identity),
    tracker: RecencyTracker = Depends(recency_tracker),
):
    """
    Count a product view. Signed-in users get it recorded server-side;
    anonymous clients get back their updated list (`recent`) to store.
    """
    logger.info("Request: record_view product_id=%s authenticated=%s", product_id, identity.is_authenticated)
    res = await run_to_completion(
        tracker.record_view(identity, product_id, client_recent=body.recent if body else None)
    )
    return ViewOut(views=res.views, recent=res.client_recent)

@router.get("/me/recently-viewed", response_model=ProductsOut)
async def get_recently_viewed(
    request: Request,
    ids: List[str] = Query(default=[], description="Client-held list (most recent first), used when there is no server list"),
    identity: Identity = Depends(current_identity),
    tracker: RecencyTracker = Depends(recency_tracker),
):
    """
    Recently viewed products, most recent first. The server-side list wins
    whenever it is non-empty; otherwise the client-held `ids` are resolved.
    """
    items = await cancel_on_disconnect(request, tracker.recently_viewed(identity, client_ids=ids))
    logger.info("Response: recently_viewed returned %s items authenticated=%s", len(items), identity.is_authenticated)
    return ProductsOut(products=items, count=len(items))
