# discovery/api/v1/routers/products.py

from fastapi import APIRouter, Depends
import time

from discovery.api.deps import mongo_db
from discovery.api.v1.schemas.discovery import ProductStatsOut
from discovery.domain.services.catalog_insights_svc import get_product_stats_svc

import logging
logger = logging.getLogger(__name__)

router = APIRouter(tags=["products"])

@router.get("/products/{product_id}/stats", response_model=ProductStatsOut)
async def product_stats(
    product_id: str,
    db = Depends(mongo_db),
):
    """Distinct buyers (paid, shipped or completed orders) and number of reviews."""
    start = time.perf_counter()
    res = await get_product_stats_svc(db, product_id)
    logger.info("Response: product_stats product_id=%s %s in %.4fs", product_id, res, time.perf_counter() - start)
    return res
