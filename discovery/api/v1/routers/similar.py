# discovery/api/v1/routers/similar.py
from fastapi import APIRouter, Depends, Query, Request
import time
import logging

from discovery.api.deps import similarity_retriever
from discovery.api.v1.schemas.discovery import ProductsOut
from discovery.domain.services.constants import SIMILAR_DEFAULT_LIMIT, SIMILAR_MAX_LIMIT
from discovery.domain.services.similar_products_svc import SimilarityRetriever
from discovery.utils.cancellation import cancel_on_disconnect

logger = logging.getLogger(__name__)

router = APIRouter(tags=["similar"])

@router.get("/products/{product_id}/similar", response_model=ProductsOut)
async def similar_products(
    request: Request,
    product_id: str,
    limit: int = Query(SIMILAR_DEFAULT_LIMIT, ge=1, le=SIMILAR_MAX_LIMIT),
    retriever: SimilarityRetriever = Depends(similarity_retriever),
):
    """
    Substitutable/similar products, source product excluded.
    Pipeline: cache → Atlas moreLikeThis (same category) → category + price band fallback.
    An unknown product yields an empty list.
    """
    logger.info("Request: similar_products product_id=%s, limit=%s", product_id, limit)
    start_time = time.perf_counter()

    items = await cancel_on_disconnect(request, retriever.similar(product_id, limit))

    logger.info(
        "Response: similar_products product_id=%s, count=%s, elapsed_time=%.4fs",
        product_id, len(items), time.perf_counter() - start_time,
    )
    return ProductsOut(products=items, count=len(items))
