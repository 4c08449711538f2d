"""
Users API - admin endpoints for per-account settings.
"""
from fastapi import APIRouter, Depends
from pydantic import BaseModel

from ..data.store import FrameStore
from ..services.category_sync import CategorySync
from ..services.image_limits import ImageLimitService
from .state import get_store

router = APIRouter(prefix="/api/users", tags=["users"])


class ImageLimitUpdate(BaseModel):
    max_images_per_product: int


class BulkImageLimitUpdate(ImageLimitUpdate):
    user_ids: list[str]


@router.put("/image-limit")
def update_image_limit_bulk(req: BulkImageLimitUpdate, store: FrameStore = Depends(get_store)):
    """Set the images-per-product limit for several users."""
    affected = ImageLimitService(store).set_limit_bulk(req.user_ids, req.max_images_per_product)
    return {"success": True, "affectedCount": affected}


@router.put("/{user_id}/image-limit")
def update_image_limit(user_id: str, req: ImageLimitUpdate, store: FrameStore = Depends(get_store)):
    """Set one user's images-per-product limit."""
    limit = ImageLimitService(store).set_limit(user_id, req.max_images_per_product)
    return {"success": True, "user_id": user_id, "max_images_per_product": limit}


@router.get("/{user_id}/image-limit")
def get_image_limit(user_id: str, store: FrameStore = Depends(get_store)):
    return {"user_id": user_id, "max_images_per_product": ImageLimitService(store).get_limit(user_id)}


@router.post("/{user_id}/categories/sync")
def sync_categories(user_id: str, store: FrameStore = Depends(get_store)):
    """Align the storefront's category display settings with the user's categories."""
    result = CategorySync(store).sync(user_id)
    return {"added": result.added, "removed": result.removed, "total": result.total}
