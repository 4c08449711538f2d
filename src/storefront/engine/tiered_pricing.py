"""
Tiered Pricing - quantity-break price resolution.

Resolution order for a requested quantity:
1. Sort tiers by min_quantity
2. Effective base price: promotional base price when valid, else base price
3. Applicable tier: the largest min_quantity not above the quantity
4. Tier price: promotional tier price when valid, else tier unit price
5. Extension, savings against base, and the "buy N more" hint
"""
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, Optional

from .models import FirstTierPrices, PriceTier, TieredPricingResult, to_decimal


def effective_base_price(base_price, base_discounted_price=None) -> Decimal:
    """Promotional base price if present, positive and below base; else base."""
    base = to_decimal(base_price) or Decimal('0')
    discounted = to_decimal(base_discounted_price)
    if discounted is not None and 0 < discounted < base:
        return discounted
    return base


def sort_tiers(tiers: Iterable[PriceTier]) -> list[PriceTier]:
    return sorted(tiers or [], key=lambda t: t.min_quantity)


def find_applicable_tier(quantity: int, tiers: Iterable[PriceTier]) -> Optional[PriceTier]:
    """The tier with the largest min_quantity <= quantity, or None."""
    applicable = None
    for tier in sort_tiers(tiers):
        if tier.min_quantity <= quantity:
            applicable = tier
        else:
            break
    return applicable


def find_next_tier(quantity: int, tiers: Iterable[PriceTier]) -> Optional[PriceTier]:
    for tier in sort_tiers(tiers):
        if tier.min_quantity > quantity:
            return tier
    return None


def calculate_applicable_price(
    quantity: int,
    tiers: Iterable[PriceTier],
    base_price,
    base_discounted_price=None,
) -> TieredPricingResult:
    """
    Calculate unit price, total and savings for a quantity.

    Args:
        quantity: Requested units (callers validate it is positive)
        tiers: Price tiers in any order
        base_price: Non-tiered unit price
        base_discounted_price: Optional promotional base price

    Returns:
        TieredPricingResult; ``savings`` keeps its raw (possibly negative) value
    """
    sorted_tiers = sort_tiers(tiers)
    base_unit_price = effective_base_price(base_price, base_discounted_price)

    applied_tier = find_applicable_tier(quantity, sorted_tiers)
    unit_price = applied_tier.effective_unit_price if applied_tier else base_unit_price
    total_price = unit_price * quantity

    result = TieredPricingResult(
        quantity=quantity,
        unit_price=unit_price,
        total_price=total_price,
        base_unit_price=base_unit_price,
        applied_tier=applied_tier,
        savings=base_unit_price * quantity - total_price,
    )

    if result.savings < 0:
        result.warnings.append(
            f"Tier price {unit_price} exceeds base price {base_unit_price} at quantity {quantity}"
        )

    next_tier = find_next_tier(quantity, sorted_tiers)
    if next_tier:
        next_qty = next_tier.min_quantity
        result.next_tier = next_tier
        result.next_tier_savings = base_unit_price * next_qty - next_tier.effective_unit_price * next_qty
        result.units_to_next_tier = next_qty - quantity

    return result


def minimum_price(tiers: Iterable[PriceTier]) -> Optional[Decimal]:
    """Lowest effective unit price across tiers, or None without tiers."""
    prices = [t.effective_unit_price for t in tiers or []]
    return min(prices) if prices else None


def best_value_tier(tiers: Iterable[PriceTier]) -> Optional[PriceTier]:
    """Tier with the lowest effective unit price (first one wins ties)."""
    best = None
    for tier in tiers or []:
        if best is None or tier.effective_unit_price < best.effective_unit_price:
            best = tier
    return best


def first_tier_prices(tiers: Iterable[PriceTier]) -> Optional[FirstTierPrices]:
    """Entry price from the lowest tier, with its promotional discount if any."""
    sorted_tiers = sort_tiers(tiers)
    if not sorted_tiers:
        return None

    first = sorted_tiers[0]
    percentage = None
    if first.has_promotional_price:
        ratio = (first.unit_price - first.discounted_unit_price) / first.unit_price * 100
        percentage = int(ratio.quantize(Decimal('1'), rounding=ROUND_HALF_UP))

    return FirstTierPrices(
        unit_price=first.unit_price,
        discounted_price=first.discounted_unit_price if first.has_promotional_price else None,
        has_promotional_pricing=first.has_promotional_price,
        discount_percentage=percentage,
    )


def format_tier_range(tier: PriceTier, next_tier: Optional[PriceTier] = None) -> str:
    """Human-readable quantity range, e.g. "10-49 units" or "50+ units"."""
    if next_tier is not None:
        upper = next_tier.min_quantity - 1
        if upper <= tier.min_quantity:
            return f"{tier.min_quantity} unit{'s' if tier.min_quantity > 1 else ''}"
        return f"{tier.min_quantity}-{upper} units"
    return f"{tier.min_quantity}+ unit{'s' if tier.min_quantity > 1 else ''}"


class TieredPriceCalculator:
    """
    Pricing for one product: its tiers bound to its base prices.

    Pure; calling ``calculate`` twice with the same quantity gives equal results.
    """

    def __init__(self, tiers: Iterable[PriceTier], base_price, base_discounted_price=None):
        self.tiers = tuple(sort_tiers(tiers))
        self.base_price = to_decimal(base_price) or Decimal('0')
        self.base_discounted_price = to_decimal(base_discounted_price)

    @classmethod
    def for_product(cls, product: dict, tier_rows: Iterable[dict]) -> 'TieredPriceCalculator':
        """Build from a ``products`` row; tiers only count when the product opts in."""
        tiers = [PriceTier.from_row(r) for r in tier_rows] if product.get('has_tiered_pricing') else []
        return cls(tiers, product.get('price'), product.get('discounted_price'))

    def calculate(self, quantity: int) -> TieredPricingResult:
        return calculate_applicable_price(quantity, self.tiers, self.base_price, self.base_discounted_price)

    @property
    def minimum_price(self) -> Optional[Decimal]:
        return minimum_price(self.tiers)

    def tier_table(self) -> list[dict]:
        """One row per tier with its range label, for price tables."""
        rows = []
        for i, tier in enumerate(self.tiers):
            next_tier = self.tiers[i + 1] if i + 1 < len(self.tiers) else None
            rows.append({
                'range': format_tier_range(tier, next_tier),
                'min_quantity': tier.min_quantity,
                'unit_price': tier.unit_price,
                'effective_unit_price': tier.effective_unit_price,
                'promotional': tier.has_promotional_price,
            })
        return rows
