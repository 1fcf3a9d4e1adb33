# Pagination
DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100
# $skip is encoded as a BSON int64
MAX_OFFSET = 2**63 - 1

# Free-text weights (name dominates)
TEXT_FIELD_BOOSTS = {
    "name": 10.0,
    "brand": 8.0,
    "category": 6.0,
    "tags": 4.0,
    "description": 2.0,
}
FUZZY_PREFIX_LENGTH = 1

# Sort presets -> (field, direction) list; "relevance" handled by the ranking policy
SORT_PRESETS = {
    "popular": [("views", "desc"), ("sold", "desc")],
    "price_asc": [("price", "asc")],
    "price_desc": [("price", "desc")],
    "newest": [("created_at", "desc")],
    "rating": [("rating", "desc"), ("rating_count", "desc")],
    "discount": [("discount", "desc")],
    "best_selling": [("sold", "desc")],
}
# Field names accepted by sort_by= (public name -> stored field)
SORTABLE_FIELDS = {
    "price": "price",
    "rating": "rating",
    "views": "views",
    "sold": "sold",
    "discount": "discount",
    "createdAt": "created_at",
    "created_at": "created_at",
}
DEFAULT_SORT = SORT_PRESETS["popular"]
TIE_BREAK_FIELD = "product_id"

# Similar products
SIMILAR_DEFAULT_LIMIT = 12
SIMILAR_MAX_LIMIT = 24
SIMILAR_PRICE_BAND = (0.7, 1.3)

# Recently viewed
SERVER_RECENCY_CAPACITY = 50    # authenticated, stored server-side (canonical)
CLIENT_RECENCY_CAPACITY = 30    # anonymous, stored by the client

# Catalog insights
SUGGESTION_MIN_CHARS = 2
ORDER_STATUSES_COUNTED = ["paid", "shipped", "completed"]
