"""
Cart pricing helpers.

A cart line is priced at its applied tier price when tiered pricing is
active, otherwise at its promotional price, otherwise at its list price.
Variant distributions (one product split across colours and sizes) are
priced at the tier for their combined quantity.
"""
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Iterable, Optional

from .models import PriceTier, to_decimal
from .tiered_pricing import calculate_applicable_price


@dataclass
class CartItem:
    """A product line in a shopper's cart."""
    id: str
    title: str
    price: Decimal
    quantity: int
    discounted_price: Optional[Decimal] = None
    has_tiered_pricing: bool = False
    applied_tier_price: Optional[Decimal] = None
    selected_color: Optional[str] = None
    selected_size: Optional[str] = None
    notes: Optional[str] = None

    @property
    def effective_price(self) -> Decimal:
        for candidate in (self.applied_tier_price, self.discounted_price, self.price):
            if candidate:
                return candidate
        return Decimal('0')

    @property
    def line_total(self) -> Decimal:
        return self.effective_price * self.quantity


@dataclass
class DistributionLine:
    """Units of one colour/size variant inside a distribution."""
    quantity: int
    color: Optional[str] = None
    size: Optional[str] = None


@dataclass
class DistributionQuote:
    product_id: str
    total_quantity: int
    applied_tier_price: Decimal
    total_price: Decimal
    items: list[DistributionLine] = field(default_factory=list)


def apply_tier_pricing(item: CartItem, tiers: Iterable[PriceTier]) -> CartItem:
    """Set ``applied_tier_price`` from the tiers for the line's quantity."""
    if not item.has_tiered_pricing:
        item.applied_tier_price = None
        return item

    result = calculate_applicable_price(item.quantity, tiers, item.price, item.discounted_price)
    item.applied_tier_price = result.unit_price
    return item


def calculate_cart_stats(items: Iterable[CartItem]) -> tuple[int, Decimal]:
    """Return (item_count, total) for the cart."""
    items = list(items)
    item_count = sum(item.quantity for item in items)
    total = sum((item.line_total for item in items), Decimal('0'))
    return item_count, total


def validate_cart_item(item: CartItem) -> bool:
    """A line needs an id, a title, a positive quantity and a usable price."""
    has_valid_price = bool(item.price and item.price > 0) or bool(
        item.has_tiered_pricing and item.applied_tier_price and item.applied_tier_price > 0
    )
    return bool(item.id and item.title and has_valid_price and item.quantity > 0)


def price_distribution(
    product_id: str,
    lines: Iterable[DistributionLine],
    tiers: Iterable[PriceTier],
    base_price,
    base_discounted_price=None,
) -> DistributionQuote:
    """Price every variant line at the tier reached by their combined quantity."""
    lines = [line for line in lines if line.quantity > 0]
    total_quantity = sum(line.quantity for line in lines)
    result = calculate_applicable_price(
        total_quantity, tiers, to_decimal(base_price), to_decimal(base_discounted_price)
    )
    return DistributionQuote(
        product_id=product_id,
        total_quantity=total_quantity,
        applied_tier_price=result.unit_price,
        total_price=result.total_price,
        items=lines,
    )
