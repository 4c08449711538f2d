"""
Data models for the pricing engine.

Uses dataclasses for structured, type-safe data representation. Money is
held as Decimal; rows coming from the store are converted on the way in.
"""
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Optional


def to_decimal(value) -> Optional[Decimal]:
    """Convert a stored price (float, int, str or Decimal) to Decimal."""
    if value is None or value == '':
        return None
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


@dataclass(frozen=True)
class PriceTier:
    """A quantity break: from ``min_quantity`` units on, ``unit_price`` applies."""
    min_quantity: int
    unit_price: Decimal
    discounted_unit_price: Optional[Decimal] = None
    id: Optional[str] = None
    product_id: Optional[str] = None

    @property
    def has_promotional_price(self) -> bool:
        """True when the discounted price is set, positive and below the unit price."""
        return (
            self.discounted_unit_price is not None
            and self.discounted_unit_price > 0
            and self.discounted_unit_price < self.unit_price
        )

    @property
    def effective_unit_price(self) -> Decimal:
        if self.has_promotional_price:
            return self.discounted_unit_price
        return self.unit_price

    @classmethod
    def from_row(cls, row: dict) -> 'PriceTier':
        """Create a PriceTier from a ``product_price_tiers`` row."""
        return cls(
            id=row.get('id'),
            product_id=row.get('product_id'),
            min_quantity=int(row['min_quantity']),
            unit_price=to_decimal(row['unit_price']),
            discounted_unit_price=to_decimal(row.get('discounted_unit_price')),
        )

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'product_id': self.product_id,
            'min_quantity': self.min_quantity,
            'unit_price': self.unit_price,
            'discounted_unit_price': self.discounted_unit_price,
        }


@dataclass
class TieredPricingResult:
    """Complete result of a tiered price calculation."""
    quantity: int
    unit_price: Decimal
    total_price: Decimal
    base_unit_price: Decimal
    applied_tier: Optional[PriceTier] = None
    # Raw value; negative when the tier costs more than the base price
    savings: Decimal = Decimal('0')
    next_tier: Optional[PriceTier] = None
    next_tier_savings: Decimal = Decimal('0')
    units_to_next_tier: int = 0
    warnings: list[str] = field(default_factory=list)

    @property
    def display_savings(self) -> Decimal:
        """Savings floored at zero for customer-facing display."""
        return max(self.savings, Decimal('0'))

    @property
    def display_next_tier_savings(self) -> Decimal:
        return max(self.next_tier_savings, Decimal('0'))

    def to_dict(self) -> dict:
        return {
            'quantity': self.quantity,
            'unitPrice': self.unit_price,
            'totalPrice': self.total_price,
            'baseUnitPrice': self.base_unit_price,
            'appliedTier': self.applied_tier.to_dict() if self.applied_tier else None,
            'savings': self.display_savings,
            'rawSavings': self.savings,
            'nextTier': self.next_tier.to_dict() if self.next_tier else None,
            'nextTierSavings': self.display_next_tier_savings,
            'unitsToNextTier': self.units_to_next_tier,
            'warnings': list(self.warnings),
        }


@dataclass
class FirstTierPrices:
    """Entry price of a tiered product, as shown on product cards."""
    unit_price: Decimal
    discounted_price: Optional[Decimal]
    has_promotional_pricing: bool
    discount_percentage: Optional[int]
