"""
Functions API - the admin back-office operations exposed as JSON endpoints:
catalog copy between accounts and image-quota validation.
"""
from typing import Optional

from fastapi import APIRouter, Depends, Header
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from ..config.settings import get_settings
from ..data.store import FrameStore
from ..services.catalog_copy import CatalogCopyOperation
from ..services.image_limits import ImageLimitService
from .state import get_store

router = APIRouter(prefix="/functions", tags=["functions"])


# Pydantic models for API
class CopyProductsRequest(BaseModel):
    """Request model for copying products; fields are checked by the operation."""
    sourceUserId: Optional[str] = None
    targetUserId: Optional[str] = None
    productIds: Optional[list[str]] = None
    atomic: bool = False


class CopyStatsResponse(BaseModel):
    products: int
    images: int
    priceTiers: int
    categories: int


class CopyProductsResponse(BaseModel):
    success: bool
    message: str
    stats: CopyStatsResponse


class ValidateImagesRequest(BaseModel):
    userId: Optional[str] = None
    productId: Optional[str] = None
    imageCount: Optional[int] = None


# Endpoints

@router.post("/copy-products-between-users", response_model=CopyProductsResponse)
def copy_products_between_users(req: CopyProductsRequest, store: FrameStore = Depends(get_store)):
    """Copy products with their categories, images and price tiers to another account."""
    operation = CatalogCopyOperation(
        store,
        atomic=req.atomic,
        sync_categories=get_settings().sync_categories_after_copy,
    )
    result = operation.run(req.sourceUserId, req.targetUserId, req.productIds)
    return CopyProductsResponse(
        success=True,
        message=result.message,
        stats=CopyStatsResponse(**result.stats.to_dict()),
    )


@router.post("/validate-product-images")
def validate_product_images(
    req: ValidateImagesRequest,
    authorization: Optional[str] = Header(default=None),
    store: FrameStore = Depends(get_store),
):
    """Check an upload against the account's images-per-product limit."""
    if not authorization:
        return JSONResponse(status_code=401, content={"error": "Missing authorization header"})

    check = ImageLimitService(store).validate(req.userId, req.imageCount, req.productId)
    return JSONResponse(status_code=200 if check.valid else 400, content=check.to_dict())
