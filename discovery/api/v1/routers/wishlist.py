# discovery/api/v1/routers/wishlist.py
from fastapi import APIRouter, Depends, Request
import logging

from discovery.api.deps import favorite_toggle, require_user
from discovery.api.v1.schemas.discovery import FavoriteOut, FavoritesOut, LikedOut
from discovery.domain.services.favorites_svc import FavoriteToggle
from discovery.utils.cancellation import cancel_on_disconnect, run_to_completion

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/wishlist", tags=["wishlist"])

@router.get("", response_model=FavoritesOut)
async def list_wishlist(
    request: Request,
    user_id: str = Depends(require_user),
    favorites: FavoriteToggle = Depends(favorite_toggle),
):
    """Favorited products, newest first."""
    items = await cancel_on_disconnect(request, favorites.list_favorites_detailed(user_id))
    products = [FavoriteOut(**i.product.model_dump(), liked_at=i.liked_at) for i in items]
    return FavoritesOut(products=products, count=len(products))

@router.get("/check/{product_id}", response_model=LikedOut)
async def check_wishlist(
    product_id: str,
    user_id: str = Depends(require_user),
    favorites: FavoriteToggle = Depends(favorite_toggle),
):
    return LikedOut(liked=await favorites.check_favorite(user_id, product_id))

@router.post("/{product_id}", response_model=LikedOut)
async def toggle_wishlist(
    product_id: str,
    user_id: str = Depends(require_user),
    favorites: FavoriteToggle = Depends(favorite_toggle),
):
    """Toggle: returns the new state so the client can flip its button without re-reading."""
    logger.info("Request: toggle_wishlist user_id=%s product_id=%s", user_id, product_id)
    liked = await run_to_completion(favorites.toggle_favorite(user_id, product_id))
    return LikedOut(liked=liked)
