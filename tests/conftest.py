import pytest
import sys
import os
from decimal import Decimal

# Add src to path for internal imports
src_path = os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), 'src')
if src_path not in sys.path:
    sys.path.insert(0, src_path)

from storefront.config.settings import Settings
from storefront.data.store import FrameStore


@pytest.fixture
def settings(tmp_path):
    return Settings(project_root=tmp_path)


@pytest.fixture
def store():
    return FrameStore()


@pytest.fixture
def seeded_store(store):
    """
    Two sellers. Alice owns two tiered products with three images and two
    tiers each, plus a draft product without media.
    """
    store.insert('users', [
        {'id': 'alice', 'name': 'Alice', 'email': 'alice@example.com', 'role': 'seller',
         'max_images_per_product': 10},
        {'id': 'bob', 'name': 'Bob', 'email': 'bob@example.com', 'role': 'seller',
         'max_images_per_product': 4},
    ])
    store.insert('products', [
        {'id': 'p1', 'user_id': 'alice', 'title': 'Team Jersey', 'price': Decimal('100'),
         'discounted_price': None, 'status': 'active', 'category': ['Apparel', 'Teams'],
         'colors': ['red', 'blue'], 'sizes': ['M', 'L'], 'has_tiered_pricing': True,
         'created_at': '2026-01-01T00:00:00+00:00'},
        {'id': 'p2', 'user_id': 'alice', 'title': 'Water Bottle', 'price': Decimal('20'),
         'discounted_price': Decimal('18'), 'status': 'active', 'category': ['Accessories'],
         'has_tiered_pricing': True, 'created_at': '2026-01-02T00:00:00+00:00'},
        {'id': 'p3', 'user_id': 'alice', 'title': 'Draft Cap', 'price': Decimal('15'),
         'status': 'draft', 'category': [], 'has_tiered_pricing': False,
         'created_at': '2026-01-03T00:00:00+00:00'},
    ])
    store.insert('product_images', [
        {'product_id': pid, 'url': f'https://cdn.example.com/{pid}/{i}.jpg', 'display_order': i,
         'is_featured': i == 0, 'media_type': 'image'}
        for pid in ('p1', 'p2') for i in range(3)
    ])
    store.insert('product_price_tiers', [
        {'product_id': 'p1', 'min_quantity': 10, 'unit_price': Decimal('90')},
        {'product_id': 'p1', 'min_quantity': 50, 'unit_price': Decimal('80'),
         'discounted_unit_price': Decimal('75')},
        {'product_id': 'p2', 'min_quantity': 12, 'unit_price': Decimal('16')},
        {'product_id': 'p2', 'min_quantity': 48, 'unit_price': Decimal('14')},
    ])
    store.insert('user_product_categories', [
        {'user_id': 'alice', 'name': 'Apparel', 'created_at': '2026-01-01T00:00:00+00:00'},
        {'user_id': 'alice', 'name': 'Teams', 'created_at': '2026-01-01T00:00:01+00:00'},
        {'user_id': 'alice', 'name': 'Accessories', 'created_at': '2026-01-01T00:00:02+00:00'},
        {'user_id': 'bob', 'name': 'Apparel', 'created_at': '2026-01-01T00:00:00+00:00'},
    ])
    return store
