"""
Storefront Package

Catalog backend for seller storefronts: quantity-tiered pricing,
catalog copy between accounts, and per-account image quotas.
"""

__version__ = "1.0.0"
