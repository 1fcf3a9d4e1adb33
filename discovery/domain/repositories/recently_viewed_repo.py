# discovery/domain/repositories/recently_viewed_repo.py
from __future__ import annotations
from datetime import datetime
from typing import List
from motor.motor_asyncio import AsyncIOMotorDatabase
from discovery.domain.models.recency import RecencyEntry

class RecentlyViewedRepo:
    """
    Server-side recently-viewed lists, one document per user:
      { user_id, items: [{product_id, viewed_at}, ...], updated_at }
    """

    def __init__(self, db: AsyncIOMotorDatabase, collection_name: str = "recently_viewed"):
        self.col = db[collection_name]

    async def push(self, user_id: str, product_id: str, viewed_at: datetime, capacity: int) -> None:
        """
        Remove-then-prepend-then-trim as a single pipeline update on the user's
        document, so concurrent pushes for one user serialize on that document.
        The document is created on first view.
        """
        entry = {"product_id": {"$literal": product_id}, "viewed_at": {"$literal": viewed_at}}
        await self.col.update_one(
            {"user_id": user_id},
            [
                {
                    "$set": {
                        "items": {
                            "$slice": [
                                {
                                    "$concatArrays": [
                                        [entry],
                                        {
                                            "$filter": {
                                                "input": {"$ifNull": ["$items", []]},
                                                "as": "it",
                                                "cond": {"$ne": ["$$it.product_id", {"$literal": product_id}]},
                                            }
                                        },
                                    ]
                                },
                                capacity,
                            ]
                        },
                        "updated_at": {"$literal": viewed_at},
                    }
                }
            ],
            upsert=True,
        )

    async def get(self, user_id: str) -> List[RecencyEntry]:
        doc = await self.col.find_one({"user_id": user_id}, {"_id": 0, "items": 1})
        if not doc:
            return []
        return [RecencyEntry.model_validate(it) for it in doc.get("items") or []]
