# discovery/api/v1/routers/search.py
from fastapi import APIRouter, Depends, Query, Request
from typing import List, Optional
import time
import logging

from discovery.api.deps import mongo_db, redis_dep, search_executor
from discovery.api.v1.schemas.discovery import SearchOut, SuggestionOut
from discovery.domain.services.catalog_insights_svc import (
    get_filter_options_svc,
    get_popular_svc,
    get_suggestions_svc,
)
from discovery.domain.services.filter_compiler import compile_query
from discovery.domain.services.search_svc import SearchExecutor
from discovery.utils.cancellation import cancel_on_disconnect

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/search", tags=["search"])

@router.get("", response_model=SearchOut)
async def search_products(
    request: Request,
    executor: SearchExecutor = Depends(search_executor),
):
    """
    Fuzzy search + filters + sort + pagination.

    Query parameters (snake_case or camelCase): q, category*, brand*, tags*,
    min_price/max_price, min_discount/max_discount, min_rating/max_rating,
    min_views/max_views, min_sold/max_sold, is_best_seller, is_new,
    sort (relevance|popular|price_asc|price_desc|newest|rating|discount|best_selling)
    or sort_by + sort_order, page, limit (1-100). `*` = repeatable.
    Malformed values are ignored rather than rejected.
    """
    params = {k: request.query_params.getlist(k) for k in request.query_params.keys()}
    logger.info("Request: search params=%s", params)
    start_time = time.perf_counter()

    plan = compile_query(params)
    res = await cancel_on_disconnect(request, executor.execute(plan))

    logger.info(
        "Response: search total=%s items=%s source=%s elapsed_time=%.4fs",
        res.total, len(res.items), res.source, time.perf_counter() - start_time,
    )
    return SearchOut(
        page=res.page,
        limit=res.limit,
        total=res.total,
        has_more=res.has_more,
        source=res.source,
        products=res.items,
    )

@router.get("/suggestions", response_model=List[SuggestionOut])
async def search_suggestions(
    q: Optional[str] = Query(None, description="At least 2 characters"),
    limit: int = Query(10, ge=1, le=50),
    db = Depends(mongo_db),
):
    return await get_suggestions_svc(db, q, limit)

@router.get("/popular")
async def popular_searches(
    limit: int = Query(10, ge=1, le=50),
    db = Depends(mongo_db),
):
    return await get_popular_svc(db, limit)

@router.get("/filters")
async def filter_options(
    db = Depends(mongo_db),
    redis = Depends(redis_dep),
):
    return await get_filter_options_svc(db, redis)
