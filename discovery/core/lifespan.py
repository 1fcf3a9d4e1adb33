# discovery/core/lifespan.py
from contextlib import asynccontextmanager
import logging
from fastapi import FastAPI
from pymongo.errors import PyMongoError
from discovery.db import mongo, redis as r
from discovery.db.indexes import ensure_indexes
from discovery.core.config import get_settings

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()

    # --- Startup ---
    # Mongo is required
    await mongo.connect()

    # Indexes + Atlas Search index, idempotent. A failure only degrades search.
    try:
        await ensure_indexes(mongo.get_db(), settings.SEARCH_INDEX)
    except PyMongoError as e:
        logger.warning("index bootstrap failed (continuing): %s", e)

    # Redis optional
    await r.connect()

    # Application runs
    yield

    # --- Shutdown ---
    await r.disconnect()
    await mongo.disconnect()
    logger.info("shutdown complete")
