"""
Catalog Copy - bulk duplication of catalog data between accounts.

Copies categories, products, product images and price tiers from a source
account to a target account. The copy is best-effort by default: only the
product fetch and the product insert abort the run; category, image and
tier failures are logged, recorded and skipped. With ``atomic=True`` any
failure deletes what the run created and re-raises.

Re-running the same copy creates a second set of products; there are no
idempotency keys.
"""
import logging
from dataclasses import dataclass, field
from typing import Callable, Iterable

from ..data.store import FrameStore, utc_now
from ..exceptions import NotFoundError, PartialFailure, StorefrontError, TransportError, ValidationError
from .category_sync import CategorySync

logger = logging.getLogger(__name__)


@dataclass
class CopyStats:
    """Rows created per entity type."""
    products: int = 0
    images: int = 0
    price_tiers: int = 0
    categories: int = 0

    def to_dict(self) -> dict:
        return {
            'products': self.products,
            'images': self.images,
            'priceTiers': self.price_tiers,
            'categories': self.categories,
        }


@dataclass
class CopyResult:
    """Outcome of a copy run."""
    source_account_id: str
    target_account_id: str
    stats: CopyStats = field(default_factory=CopyStats)
    product_id_map: dict[str, str] = field(default_factory=dict)
    failures: list[PartialFailure] = field(default_factory=list)
    skipped_images: int = 0
    skipped_tiers: int = 0
    categories_synced: bool = False

    @property
    def message(self) -> str:
        s = self.stats
        return (
            f"Successfully copied {s.products} products with {s.images} images, "
            f"{s.price_tiers} price tiers, and {s.categories} categories"
        )

    def add_failure(self, failure: PartialFailure):
        self.failures.append(failure)


class CatalogCopyOperation:
    """
    One-shot copy of a set of products (with their media and tiers) to another account.

    Steps:
    1. Fetch source products owned by the source account
    2. Create the target's missing categories
    3. Insert each product and capture its new id
    4. Copy images of the mapped products
    5. Copy price tiers of the mapped products
    """

    def __init__(
        self,
        store: FrameStore,
        atomic: bool = False,
        sync_categories: bool = False,
        clock: Callable[[], str] = utc_now,
    ):
        self.store = store
        self.atomic = atomic
        self.sync_categories = sync_categories
        self.clock = clock
        # Rows created by the current run: (table, id)
        self._created: list[tuple[str, str]] = []

    @staticmethod
    def validate_request(source_account_id, target_account_id, product_ids) -> list[str]:
        """Check the request shape; raises ValidationError before any I/O."""
        if not source_account_id or not target_account_id or product_ids is None \
                or isinstance(product_ids, (str, bytes)):
            raise ValidationError("Missing required fields: sourceUserId, targetUserId, and productIds array")

        product_ids = list(dict.fromkeys(product_ids))
        if not product_ids:
            raise ValidationError("No products specified for copying")

        if source_account_id == target_account_id:
            raise ValidationError("Source and target accounts must be different")

        return product_ids

    def run(self, source_account_id: str, target_account_id: str, product_ids: Iterable[str]) -> CopyResult:
        """
        Copy ``product_ids`` from the source to the target account.

        Raises:
            ValidationError: bad input (nothing read or written)
            NotFoundError: no matching products owned by the source
            TransportError: product fetch or product insert failed
            PartialFailure: only in atomic mode, after rolling back
        """
        product_ids = self.validate_request(source_account_id, target_account_id, product_ids)
        self._created = []

        logger.info(
            "Copying %d products from user %s to user %s",
            len(product_ids), source_account_id, target_account_id,
        )

        result = CopyResult(source_account_id=source_account_id, target_account_id=target_account_id)

        products = self._fetch_products(source_account_id, product_ids)

        try:
            self._copy_categories(products, target_account_id, result)
            self._copy_products(products, target_account_id, result)
            self._copy_images(product_ids, result)
            self._copy_price_tiers(product_ids, result)
        except StorefrontError:
            if self.atomic:
                self._rollback()
            raise

        if self.sync_categories:
            self._sync_categories(target_account_id, result)

        logger.info("Copy operation completed: %s", result.stats.to_dict())
        return result

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    def _fetch_products(self, source_account_id: str, product_ids: list[str]) -> list[dict]:
        try:
            products = self.store.select(
                'products',
                eq={'user_id': source_account_id},
                in_={'id': product_ids},
            )
        except TransportError as e:
            logger.error("Error fetching products: %s", e.details)
            raise TransportError("Failed to fetch products to copy", details=e.details) from e

        if not products:
            raise NotFoundError("No products found to copy")
        return products

    def _copy_categories(self, products: list[dict], target_account_id: str, result: CopyResult):
        labels = []
        for product in products:
            for label in product.get('category') or []:
                if label not in labels:
                    labels.append(label)
        if not labels:
            return

        try:
            existing = {
                row['name'] for row in
                self.store.select('user_product_categories', eq={'user_id': target_account_id})
            }
            now = self.clock()
            to_create = [
                {'user_id': target_account_id, 'name': name, 'created_at': now, 'updated_at': now}
                for name in labels if name not in existing
            ]
            if not to_create:
                return

            inserted = self.store.insert('user_product_categories', to_create)
        except TransportError as e:
            self._partial(result, 'categories', "Error copying categories", e)
            return

        self._track('user_product_categories', inserted)
        result.stats.categories = len(inserted)

    def _copy_products(self, products: list[dict], target_account_id: str, result: CopyResult):
        # One insert per product so each new id is captured against its source id
        for product in products:
            now = self.clock()
            row = {k: v for k, v in product.items() if k not in ('id', 'created_at', 'updated_at')}
            row.update({'user_id': target_account_id, 'created_at': now, 'updated_at': now})

            try:
                inserted = self.store.insert('products', [row])
            except TransportError as e:
                logger.error("Error inserting products: %s", e.details)
                raise TransportError("Failed to copy products", details=e.details) from e

            self._track('products', inserted)
            result.product_id_map[product['id']] = inserted[0]['id']
            result.stats.products += 1

    def _remap_rows(self, rows: list[dict], result: CopyResult, kind: str, drop: tuple) -> tuple[list[dict], int]:
        remapped = []
        skipped = 0
        now = self.clock()
        for row in rows:
            new_product_id = result.product_id_map.get(row.get('product_id'))
            if not new_product_id:
                logger.error("No mapping found for product ID: %s (%s)", row.get('product_id'), kind)
                skipped += 1
                continue
            data = {k: v for k, v in row.items() if k not in drop}
            data['product_id'] = new_product_id
            data['created_at'] = now
            if 'updated_at' in drop:
                data['updated_at'] = now
            remapped.append(data)
        return remapped, skipped

    def _copy_images(self, product_ids: list[str], result: CopyResult):
        try:
            images = self.store.select('product_images', in_={'product_id': product_ids}, order_by='display_order')
        except TransportError as e:
            self._partial(result, 'images', "Error fetching product images", e)
            return

        to_insert, result.skipped_images = self._remap_rows(images, result, 'image', ('id', 'created_at'))
        if not to_insert:
            return

        try:
            inserted = self.store.insert('product_images', to_insert)
        except TransportError as e:
            self._partial(result, 'images', "Error copying product images", e)
            return

        self._track('product_images', inserted)
        result.stats.images = len(inserted)

    def _copy_price_tiers(self, product_ids: list[str], result: CopyResult):
        try:
            tiers = self.store.select('product_price_tiers', in_={'product_id': product_ids}, order_by='min_quantity')
        except TransportError as e:
            self._partial(result, 'price_tiers', "Error fetching price tiers", e)
            return

        to_insert, result.skipped_tiers = self._remap_rows(
            tiers, result, 'price tier', ('id', 'created_at', 'updated_at')
        )
        if not to_insert:
            return

        try:
            inserted = self.store.insert('product_price_tiers', to_insert)
        except TransportError as e:
            self._partial(result, 'price_tiers', "Error copying price tiers", e)
            return

        self._track('product_price_tiers', inserted)
        result.stats.price_tiers = len(inserted)

    def _sync_categories(self, target_account_id: str, result: CopyResult):
        try:
            CategorySync(self.store, clock=self.clock).sync(target_account_id)
            result.categories_synced = True
        except StorefrontError as e:
            logger.warning("Category sync warning (non-critical): %s", e)

    # ------------------------------------------------------------------
    # Failure handling
    # ------------------------------------------------------------------

    def _partial(self, result: CopyResult, step: str, message: str, error: TransportError):
        failure = PartialFailure(step, message, details=error.details or str(error))
        logger.error("%s: %s", message, failure.details)
        if self.atomic:
            raise failure from error
        result.add_failure(failure)

    def _track(self, table: str, rows: list[dict]):
        self._created.extend((table, row['id']) for row in rows)

    def _rollback(self):
        """Delete every row this run created, newest table first."""
        by_table: dict[str, list[str]] = {}
        for table, row_id in self._created:
            by_table.setdefault(table, []).append(row_id)

        for table in reversed(list(by_table)):
            try:
                removed = self.store.delete(table, in_={'id': by_table[table]})
                logger.warning("Rolled back %d rows from %s", removed, table)
            except TransportError as e:
                logger.error("Rollback of %s failed: %s", table, e.details)
        self._created = []
