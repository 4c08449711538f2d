"""
Tiers Service - CRUD operations for product price tiers.
Handles validation of quantity breaks before they reach the table.
"""
import logging
from dataclasses import dataclass, field
from decimal import InvalidOperation
from typing import Optional

from ..data.store import FrameStore, utc_now
from ..engine.models import PriceTier, TieredPricingResult, to_decimal
from ..engine.tiered_pricing import TieredPriceCalculator, sort_tiers
from ..exceptions import NotFoundError, ValidationError

logger = logging.getLogger(__name__)


@dataclass
class TierValidationResult:
    """Result of tier validation."""
    valid: bool
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


class TiersService:
    """Service for managing price tiers of a product."""

    def __init__(self, store: FrameStore):
        self.store = store

    def _get_product(self, product_id: str) -> dict:
        product = self.store.select_one('products', eq={'id': product_id})
        if not product:
            raise NotFoundError(f"Product '{product_id}' not found")
        return product

    def list_tiers(self, product_id: str) -> list[PriceTier]:
        """List a product's tiers ordered by min_quantity."""
        rows = self.store.select('product_price_tiers', eq={'product_id': product_id}, order_by='min_quantity')
        return [PriceTier.from_row(row) for row in rows]

    def get_tier(self, tier_id: str) -> Optional[PriceTier]:
        row = self.store.select_one('product_price_tiers', eq={'id': tier_id})
        return PriceTier.from_row(row) if row else None

    def validate_tier(
        self,
        product_id: str,
        min_quantity,
        unit_price,
        discounted_unit_price=None,
        tier_id: Optional[str] = None,
    ) -> TierValidationResult:
        """Validate a tier against the product's other tiers before saving."""
        result = TierValidationResult(valid=True)

        # Quantity threshold
        try:
            qty = int(str(min_quantity))
        except (TypeError, ValueError):
            result.errors.append("Minimum quantity must be an integer")
            result.valid = False
            qty = None

        if qty is not None and qty < 1:
            result.errors.append("Minimum quantity must be at least 1")
            result.valid = False

        # Prices
        try:
            price = to_decimal(unit_price)
            discounted = to_decimal(discounted_unit_price)
        except InvalidOperation:
            result.errors.append("Prices must be numbers")
            result.valid = False
            return result

        if price is None:
            result.errors.append("Unit price is required")
            result.valid = False
        elif not price.is_finite():
            result.errors.append("Unit price must be a finite number")
            result.valid = False
        elif price < 0:
            result.errors.append("Unit price cannot be negative")
            result.valid = False

        if discounted is not None and not discounted.is_finite():
            result.errors.append("Discounted price must be a finite number")
            result.valid = False
            discounted = None

        if price is not None and price.is_finite() and discounted is not None and discounted >= price:
            result.errors.append("Discounted price must be lower than the unit price")
            result.valid = False

        if not result.valid:
            return result

        others = [t for t in self.list_tiers(product_id) if t.id != tier_id]

        if any(t.min_quantity == qty for t in others):
            result.errors.append(f"A tier starting at {qty} units already exists")
            result.valid = False
            return result

        # Non-blocking checks
        candidate = PriceTier(min_quantity=qty, unit_price=price, discounted_unit_price=discounted)
        for other in others:
            if other.min_quantity < qty and candidate.effective_unit_price > other.effective_unit_price:
                result.warnings.append(
                    f"Tier at {qty} units costs more than tier at {other.min_quantity} units"
                )

        product = self.store.select_one('products', eq={'id': product_id})
        base = to_decimal(product.get('price')) if product else None
        if base is not None and candidate.effective_unit_price > base:
            result.warnings.append("Tier price is higher than the product base price")

        return result

    def _raise_if_invalid(self, validation: TierValidationResult):
        if not validation.valid:
            raise ValidationError("Invalid price tier", details="; ".join(validation.errors))
        for warning in validation.warnings:
            logger.warning("Price tier warning: %s", warning)

    def create_tier(self, product_id: str, min_quantity, unit_price, discounted_unit_price=None) -> PriceTier:
        """Create a new tier for a product."""
        self._get_product(product_id)
        self._raise_if_invalid(
            self.validate_tier(product_id, min_quantity, unit_price, discounted_unit_price)
        )

        now = utc_now()
        row = self.store.insert('product_price_tiers', [{
            'product_id': product_id,
            'min_quantity': int(min_quantity),
            'unit_price': to_decimal(unit_price),
            'discounted_unit_price': to_decimal(discounted_unit_price),
            'created_at': now,
            'updated_at': now,
        }])[0]
        return PriceTier.from_row(row)

    def update_tier(self, tier_id: str, updates: dict) -> PriceTier:
        """Update an existing tier; only the given fields change."""
        current = self.store.select_one('product_price_tiers', eq={'id': tier_id})
        if not current:
            raise NotFoundError(f"Price tier '{tier_id}' not found")

        allowed = ('min_quantity', 'unit_price', 'discounted_unit_price')
        merged = {key: updates.get(key, current.get(key)) for key in allowed}

        self._raise_if_invalid(self.validate_tier(
            current['product_id'], merged['min_quantity'], merged['unit_price'],
            merged['discounted_unit_price'], tier_id=tier_id,
        ))

        changes = {key: updates[key] for key in allowed if key in updates}
        if 'min_quantity' in changes:
            changes['min_quantity'] = int(changes['min_quantity'])
        for key in ('unit_price', 'discounted_unit_price'):
            if key in changes:
                changes[key] = to_decimal(changes[key])
        changes['updated_at'] = utc_now()

        row = self.store.update('product_price_tiers', changes, eq={'id': tier_id})[0]
        return PriceTier.from_row(row)

    def delete_tier(self, tier_id: str) -> bool:
        """Delete a tier."""
        removed = self.store.delete('product_price_tiers', eq={'id': tier_id})
        if not removed:
            raise NotFoundError(f"Price tier '{tier_id}' not found")
        return True

    def quote(self, product_id: str, quantity: int) -> TieredPricingResult:
        """Price ``quantity`` units of a stored product."""
        if quantity is None or int(quantity) < 1:
            raise ValidationError("Quantity must be a positive integer")

        product = self._get_product(product_id)
        rows = self.store.select('product_price_tiers', eq={'product_id': product_id})
        calculator = TieredPriceCalculator.for_product(product, rows)
        return calculator.calculate(int(quantity))

    def get_stats(self, product_id: str) -> dict:
        """Summary of a product's tier table."""
        tiers = sort_tiers(self.list_tiers(product_id))
        prices = [t.effective_unit_price for t in tiers]
        return {
            'total': len(tiers),
            'promotional': sum(1 for t in tiers if t.has_promotional_price),
            'min_price': min(prices) if prices else None,
            'max_price': max(prices) if prices else None,
            'starts_at': tiers[0].min_quantity if tiers else None,
        }
