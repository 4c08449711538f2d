import pytest
from decimal import Decimal

from storefront.data.store import FrameStore
from storefront.exceptions import TransportError


def test_insert_assigns_ids(store):
    rows = store.insert('users', [{'email': 'a@example.com'}, {'email': 'b@example.com'}])

    assert len({r['id'] for r in rows}) == 2
    assert [r['email'] for r in rows] == ['a@example.com', 'b@example.com']


def test_select_filters(seeded_store):
    rows = seeded_store.select('products', eq={'user_id': 'alice'}, in_={'id': ['p1', 'p3', 'px']})
    assert sorted(r['id'] for r in rows) == ['p1', 'p3']


def test_missing_cells_are_none(seeded_store):
    row = seeded_store.select_one('products', eq={'id': 'p3'})
    assert row['discounted_price'] is None
    assert row['colors'] is None


def test_order_by(seeded_store):
    rows = seeded_store.select('product_price_tiers', eq={'product_id': 'p1'}, order_by='min_quantity',
                               ascending=False)
    assert [r['min_quantity'] for r in rows] == [50, 10]


def test_unique_key_violation(seeded_store):
    with pytest.raises(TransportError) as exc_info:
        seeded_store.insert('product_price_tiers', [{'product_id': 'p1', 'min_quantity': 10, 'unit_price': 1}])
    assert 'duplicate key value violates unique constraint' in exc_info.value.details


def test_batch_rejected_as_a_whole(store):
    with pytest.raises(TransportError):
        store.insert('users', [{'email': 'same@example.com'}, {'email': 'same@example.com'}])
    assert store.count('users') == 0


def test_unknown_table_and_column(store):
    with pytest.raises(TransportError, match="Backend request failed"):
        store.select('orders')
    with pytest.raises(TransportError):
        store.select('users', eq={'nickname': 'x'})


def test_update_keeps_nested_values(seeded_store):
    seeded_store.insert('storefront_settings', [{'user_id': 'alice', 'settings': {}}])
    updated = seeded_store.update('storefront_settings', {'settings': {'categoryDisplaySettings': []}},
                                  eq={'user_id': 'alice'})

    assert updated[0]['settings'] == {'categoryDisplaySettings': []}
    assert seeded_store.update('users', {'name': 'X'}, eq={'id': 'ghost'}) == []


def test_delete_requires_filter(seeded_store):
    with pytest.raises(TransportError):
        seeded_store.delete('products')
    assert seeded_store.delete('product_images', eq={'product_id': 'p1'}) == 3
    assert seeded_store.count('product_images') == 3


def test_snapshots_survive_reload(tmp_path):
    store = FrameStore(tmp_path)
    store.insert('users', [{'id': 'u1', 'email': 'u1@example.com', 'max_images_per_product': 7}])
    store.insert('products', [{'id': 'p1', 'user_id': 'u1', 'price': Decimal('9.99'),
                               'category': ['Hats'], 'has_tiered_pricing': True}])

    reloaded = FrameStore(tmp_path)

    assert reloaded.table_counts()['users'] == 1
    assert reloaded.select_one('users', eq={'id': 'u1'})['max_images_per_product'] == 7
    product = reloaded.select_one('products', eq={'id': 'p1'})
    assert product['category'] == ['Hats']
    assert Decimal(str(product['price'])) == Decimal('9.99')


def test_null_unique_keys_do_not_collide(store):
    store.insert('users', [{'name': 'No Email'}, {'name': 'Also No Email'}])
    assert store.count('users') == 2
