from pydantic import BaseModel, Field
from typing import Any, Iterable, Mapping, Optional, List
from datetime import datetime
import re

class Product(BaseModel):
    product_id: str
    name: str
    description: Optional[str] = None
    category: str = "other"
    brand: Optional[str] = None
    price: float = 0.0
    original_price: Optional[float] = None
    discount: Optional[float] = None
    images: List[str] = []
    image_url: Optional[str] = None
    stock: int = 0
    sold: int = 0
    rating: float = 0.0
    rating_count: int = 0
    is_best_seller: bool = False
    is_new: bool = True
    tags: List[str] = []
    views: int = 0
    wishlisted_count: int = 0
    search_keywords: List[str] = []
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = {"frozen": True, "extra": "ignore"}  # immuable = safe

class ProductSummary(BaseModel):
    """Display-ready projection shared by every discovery surface."""
    id: str
    name: str
    price: float
    original_price: Optional[float] = None
    image: Optional[str] = None
    rating: float = 0.0
    sold: int = 0
    discount: Optional[float] = None
    category: str = "other"
    views: int = 0

    model_config = {"frozen": True}  # immuable = safe

# Fields read from storage to build a summary; used as find()/$project projection.
SUMMARY_PROJECTION = {
    "_id": 0,
    "product_id": 1,
    "name": 1,
    "price": 1,
    "original_price": 1,
    "images": 1,
    "image_url": 1,
    "rating": 1,
    "sold": 1,
    "discount": 1,
    "category": 1,
    "views": 1,
}

def to_summary(doc: Mapping[str, Any] | Product) -> ProductSummary:
    """
    Single projection from a stored product (raw document or Product) to ProductSummary.
    Storage identifiers other than product_id never leak.
    """
    if isinstance(doc, Product):
        doc = doc.model_dump()
    images = doc.get("images") or []
    image = doc.get("image_url") or (images[0] if images else None)
    return ProductSummary(
        id=str(doc["product_id"]),
        name=doc.get("name") or "",
        price=float(doc.get("price") or 0),
        original_price=doc.get("original_price"),
        image=image,
        rating=float(doc.get("rating") or 0),
        sold=int(doc.get("sold") or 0),
        discount=doc.get("discount"),
        category=doc.get("category") or "other",
        views=int(doc.get("views") or 0),
    )

_TOKEN_SPLIT = re.compile(r"[\s,;/|]+")

def compute_search_keywords(
    name: Optional[str],
    brand: Optional[str],
    category: Optional[str],
    tags: Optional[Iterable[str]],
) -> List[str]:
    """
    Derive search keywords at write time: tokens of name/brand/category/tags,
    lower-cased, deduplicated (first occurrence order), empty strings removed.
    """
    parts = [name or "", brand or "", category or "", *(tags or [])]
    seen: dict[str, None] = {}
    for part in parts:
        for token in _TOKEN_SPLIT.split(str(part).lower()):
            token = token.strip()
            if token:
                seen.setdefault(token, None)
    return list(seen)

class ProductIn(BaseModel):
    """Inbound product document for bulk ingest."""
    product_id: str = Field(min_length=1)
    name: str = Field(min_length=1)
    description: Optional[str] = None
    category: str = "other"
    brand: Optional[str] = None
    price: float = Field(ge=0)
    original_price: Optional[float] = Field(default=None, ge=0)
    discount: Optional[float] = Field(default=None, ge=0, le=100)
    images: List[str] = []
    image_url: Optional[str] = None
    stock: int = Field(default=0, ge=0)
    rating: float = Field(default=0.0, ge=0, le=5)
    rating_count: int = Field(default=0, ge=0)
    is_best_seller: bool = False
    is_new: bool = True
    tags: List[str] = []

    def to_document(self) -> dict:
        doc = self.model_dump()
        doc["search_keywords"] = compute_search_keywords(self.name, self.brand, self.category, self.tags)
        return doc
