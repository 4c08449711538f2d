from decimal import Decimal

from storefront.engine.cart import (
    CartItem,
    DistributionLine,
    apply_tier_pricing,
    calculate_cart_stats,
    price_distribution,
    validate_cart_item,
)
from storefront.engine.models import PriceTier

TIERS = [
    PriceTier(min_quantity=10, unit_price=Decimal('90')),
    PriceTier(min_quantity=50, unit_price=Decimal('80')),
]


def item(**overrides):
    data = {'id': 'p1', 'title': 'Team Jersey', 'price': Decimal('100'), 'quantity': 1}
    data.update(overrides)
    return CartItem(**data)


def test_effective_price_order():
    assert item().effective_price == Decimal('100')
    assert item(discounted_price=Decimal('95')).effective_price == Decimal('95')
    assert item(discounted_price=Decimal('95'), applied_tier_price=Decimal('90')).effective_price == Decimal('90')


def test_apply_tier_pricing():
    line = apply_tier_pricing(item(quantity=12, has_tiered_pricing=True), TIERS)

    assert line.applied_tier_price == Decimal('90')
    assert line.line_total == Decimal('1080')


def test_apply_tier_pricing_off():
    line = apply_tier_pricing(item(quantity=12, applied_tier_price=Decimal('1')), TIERS)
    assert line.applied_tier_price is None


def test_cart_stats():
    cart = [
        item(quantity=2),
        item(id='p2', title='Bottle', price=Decimal('20'), discounted_price=Decimal('18'), quantity=3),
    ]
    assert calculate_cart_stats(cart) == (5, Decimal('254'))
    assert calculate_cart_stats([]) == (0, Decimal('0'))


def test_validate_cart_item():
    assert validate_cart_item(item()) is True
    assert validate_cart_item(item(quantity=0)) is False
    assert validate_cart_item(item(title='')) is False
    assert validate_cart_item(item(price=Decimal('0'))) is False
    assert validate_cart_item(
        item(price=Decimal('0'), has_tiered_pricing=True, applied_tier_price=Decimal('5'))
    ) is True


def test_distribution_priced_on_combined_quantity():
    lines = [
        DistributionLine(quantity=30, color='red', size='M'),
        DistributionLine(quantity=25, color='blue', size='L'),
        DistributionLine(quantity=0, color='green', size='S'),
    ]
    quote = price_distribution('p1', lines, TIERS, 100)

    assert quote.total_quantity == 55
    assert quote.applied_tier_price == Decimal('80')
    assert quote.total_price == Decimal('4400')
    assert len(quote.items) == 2
