# discovery/domain/repositories/wishlist_repo.py
from __future__ import annotations
from datetime import datetime, timezone
from typing import List
from motor.motor_asyncio import AsyncIOMotorDatabase

class WishlistRepo:
    """
    Favorite membership, one document per (user_id, product_id) pair:
      { user_id, product_id, created_at }
    A unique index on (user_id, product_id) is created at startup.
    """

    def __init__(self, db: AsyncIOMotorDatabase, collection_name: str = "wishlists"):
        self.col = db[collection_name]

    async def flip(self, user_id: str, product_id: str, *, session=None) -> bool:
        """
        Flip membership. Returns the new state (True = now a member).
        Must run inside the caller's transaction together with the counter update.
        """
        res = await self.col.delete_one({"user_id": user_id, "product_id": product_id}, session=session)
        if res.deleted_count:
            return False
        # DuplicateKeyError here means a concurrent toggle won the race; the
        # caller aborts the transaction.
        await self.col.insert_one(
            {"user_id": user_id, "product_id": product_id, "created_at": datetime.now(timezone.utc)},
            session=session,
        )
        return True

    async def exists(self, user_id: str, product_id: str) -> bool:
        return await self.col.count_documents({"user_id": user_id, "product_id": product_id}, limit=1) > 0

    async def list_for_user(self, user_id: str) -> List[dict]:
        """Memberships newest first: [{product_id, created_at}, ...]."""
        cursor = self.col.find(
            {"user_id": user_id},
            {"_id": 0, "product_id": 1, "created_at": 1},
        ).sort([("created_at", -1), ("_id", -1)])
        return [doc async for doc in cursor]
