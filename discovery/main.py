from fastapi import FastAPI
from discovery.core.config import get_settings
from discovery.core.errors import register_error_handlers
from discovery.core.lifespan import lifespan
from discovery.api.v1.routers.health import router as health_router
from discovery.api.v1.routers.search import router as search_router
from discovery.api.v1.routers.similar import router as similar_router
from discovery.api.v1.routers.recently_viewed import router as recently_viewed_router
from discovery.api.v1.routers.wishlist import router as wishlist_router
from discovery.api.v1.routers.products import router as products_router
from discovery.api.v1.routers.importer import router as import_router
from discovery.core.logging import configure_logging

from fastapi.middleware.cors import CORSMiddleware
import logging

settings = get_settings()
configure_logging(level=logging.DEBUG if settings.DEBUG else logging.INFO)

app = FastAPI(title=settings.APP_NAME, lifespan=lifespan)
register_error_handlers(app)

# ------- CORS -------
# ALLOWED_ORIGINS is a CSV, e.g. "https://shop.example.com,https://www.shop.example.com"
allowed_origins = [o.strip() for o in settings.ALLOWED_ORIGINS.split(",") if o.strip()]

app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=False,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["*"],            # X-User-Id / X-Anonymous-Id come from the auth layer
    max_age=86400,
)

# ------- Routes -------
app.include_router(health_router)
app.include_router(search_router)            # search, suggestions, popular, filters
app.include_router(similar_router)           # similar
app.include_router(recently_viewed_router)   # record view, recently viewed
app.include_router(wishlist_router)          # favorites
app.include_router(products_router)          # product stats
app.include_router(import_router)            # bulk product ingest
