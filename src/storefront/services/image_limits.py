"""
Image Limits - per-account quota of images per product.

The quota lives on ``users.max_images_per_product`` (1-50, default 10).
Validation answers "may this account attach N more images?" either for an
existing product (counting what it already has) or for a product that is
still being created.
"""
import logging
from dataclasses import dataclass
from typing import Iterable, Optional

from ..config.settings import Settings, get_settings
from ..data.store import FrameStore, utc_now
from ..exceptions import NotFoundError, ValidationError

logger = logging.getLogger(__name__)


@dataclass
class ImageLimitCheck:
    """Outcome of an image-count validation."""
    valid: bool
    limit: int
    requested_count: int
    current_count: Optional[int] = None
    error: Optional[str] = None

    @property
    def total_images(self) -> int:
        return (self.current_count or 0) + self.requested_count

    def to_dict(self) -> dict:
        body = {'valid': self.valid, 'limit': self.limit, 'requestedCount': self.requested_count}
        if self.current_count is not None:
            body['currentCount'] = self.current_count
        if self.error:
            body['error'] = self.error
            body['totalImages'] = self.total_images
        else:
            body['message'] = 'Image count validation passed'
        return body


class ImageLimitService:
    """Reads and enforces the images-per-product quota."""

    def __init__(self, store: FrameStore, settings: Optional[Settings] = None):
        self.store = store
        self.settings = settings or get_settings()

    def get_limit(self, user_id: str) -> int:
        user = self.store.select_one('users', eq={'id': user_id})
        if not user:
            raise NotFoundError("User not found")
        return int(user.get('max_images_per_product') or self.settings.default_max_images_per_product)

    def validate(self, user_id: str, image_count: int, product_id: Optional[str] = None) -> ImageLimitCheck:
        """
        Check whether ``image_count`` more images fit under the user's quota.

        Raises:
            ValidationError: missing user id or image count
            NotFoundError: unknown user, or product not owned by the user
        """
        if not user_id or not image_count:
            raise ValidationError("Missing required fields: userId, imageCount")

        limit = self.get_limit(user_id)

        if not product_id:
            if image_count > limit:
                return ImageLimitCheck(
                    valid=False, limit=limit, requested_count=image_count,
                    error=f"Number of images ({image_count}) exceeds the limit of {limit} images per product",
                )
            return ImageLimitCheck(valid=True, limit=limit, requested_count=image_count)

        owned = self.store.select_one('products', eq={'id': product_id, 'user_id': user_id})
        if not owned:
            raise NotFoundError("Product not found or access denied")

        current = self.store.count('product_images', eq={'product_id': product_id})
        check = ImageLimitCheck(valid=True, limit=limit, requested_count=image_count, current_count=current)
        if check.total_images > limit:
            check.valid = False
            check.error = (
                f"Total images ({check.total_images}) exceeds the limit of {limit} images per product"
            )
        return check

    def _check_range(self, max_images: int):
        low = self.settings.min_images_per_product
        high = self.settings.max_images_per_product_ceiling
        if not isinstance(max_images, int) or isinstance(max_images, bool) or not low <= max_images <= high:
            raise ValidationError(f"The limit must be between {low} and {high} images")

    def set_limit(self, user_id: str, max_images: int) -> int:
        """Set one user's quota."""
        self._check_range(max_images)
        updated = self.store.update(
            'users', {'max_images_per_product': max_images, 'updated_at': utc_now()}, eq={'id': user_id}
        )
        if not updated:
            raise NotFoundError("User not found")
        logger.info("Image limit for user %s set to %d", user_id, max_images)
        return max_images

    def set_limit_bulk(self, user_ids: Iterable[str], max_images: int) -> int:
        """Set the same quota for several users; returns the affected count."""
        user_ids = list(user_ids or [])
        if not user_ids:
            raise ValidationError("No users selected")
        self._check_range(max_images)

        updated = self.store.update(
            'users', {'max_images_per_product': max_images, 'updated_at': utc_now()}, in_={'id': user_ids}
        )
        logger.info("Image limit set to %d for %d users", max_images, len(updated))
        return len(updated)
