# discovery/api/v1/schemas/discovery.py
from datetime import datetime
from pydantic import BaseModel, Field
from typing import List, Optional

from discovery.domain.models.product import ProductSummary
from discovery.domain.models.recency import RecencyEntry

class ProductsOut(BaseModel):
    products: List[ProductSummary]
    count: int

class SearchOut(BaseModel):
    page: int
    limit: int
    total: int
    has_more: bool
    source: str
    products: List[ProductSummary]

class FavoriteOut(ProductSummary):
    liked_at: Optional[datetime] = None

class FavoritesOut(BaseModel):
    products: List[FavoriteOut]
    count: int

class LikedOut(BaseModel):
    liked: bool

class ViewIn(BaseModel):
    """Optional body for anonymous views: the client-held list to update."""
    recent: List[RecencyEntry] = Field(default_factory=list)

class ViewOut(BaseModel):
    ok: bool = True
    views: int
    recent: Optional[List[RecencyEntry]] = None

class SuggestionOut(BaseModel):
    type: str
    value: str

class ProductStatsOut(BaseModel):
    buyers: int
    comments: int

class BulkIngestResult(BaseModel):
    format: str
    received: int
    upserted: int
    modified: int
    errors: List[str] = Field(default_factory=list)
    processing_time_ms: float
