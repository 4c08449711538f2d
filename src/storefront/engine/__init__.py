"""Engine subpackage - tiered pricing and cart pricing logic."""
from .tiered_pricing import TieredPriceCalculator, calculate_applicable_price
from .models import PriceTier, TieredPricingResult, FirstTierPrices

__all__ = [
    'TieredPriceCalculator', 'calculate_applicable_price',
    'PriceTier', 'TieredPricingResult', 'FirstTierPrices',
]
