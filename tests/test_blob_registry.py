import pytest

from storefront.exceptions import RegistryClosedError
from storefront.media.blob_registry import BlobUrlRegistry


@pytest.fixture
def registry():
    with BlobUrlRegistry() as reg:
        yield reg


def test_new_url_is_unique(registry):
    check = registry.validate_uniqueness('blob:a', 'hash-1')
    assert check.is_valid is True
    assert check.reason is None


def test_same_url_same_content(registry):
    registry.register('blob:a', 'hash-1', '0101')
    check = registry.validate_uniqueness('blob:a', 'hash-1')

    assert check.is_valid is False
    assert check.reason == 'Blob URL already registered with same content hash'


def test_same_content_other_url(registry):
    registry.register('blob:a', 'hash-1', '0101')
    registry.register('blob:b', 'hash-1', '0101')
    check = registry.validate_uniqueness('blob:c', 'hash-1')

    assert check.is_valid is False
    assert check.reason == 'Content already registered (2 blob URL(s) with same hash)'


def test_revoke_releases_url():
    released = []
    with BlobUrlRegistry(on_revoke=released.append) as registry:
        registry.register('blob:a', 'hash-1', '')
        registry.revoke('blob:a')

        assert released == ['blob:a']
        assert registry.get_record('blob:a') is None
        assert registry.urls_for_hash('hash-1') == []
        assert registry.validate_uniqueness('blob:a', 'hash-1').is_valid is True

        # Unknown URLs are ignored
        registry.revoke('blob:zzz')
        assert released == ['blob:a']


def test_clear_keeps_registry_open():
    released = []
    registry = BlobUrlRegistry(on_revoke=released.append).init()
    registry.register('blob:a', 'h1', '')
    registry.register('blob:b', 'h2', '')

    registry.clear()

    assert sorted(released) == ['blob:a', 'blob:b']
    assert registry.is_open
    assert registry.state()['total_blob_urls'] == 0


def test_revoke_callback_errors_are_contained():
    def broken(url):
        raise RuntimeError("gone")

    registry = BlobUrlRegistry(on_revoke=broken).init()
    registry.register('blob:a', 'h1', '')
    registry.revoke('blob:a')
    assert registry.get_record('blob:a') is None


def test_dispose_closes_registry():
    released = []
    registry = BlobUrlRegistry(on_revoke=released.append).init()
    registry.register('blob:a', 'h1', '')
    registry.dispose()

    assert released == ['blob:a']
    assert not registry.is_open
    with pytest.raises(RegistryClosedError):
        registry.register('blob:b', 'h2', '')


def test_use_before_init():
    with pytest.raises(RegistryClosedError):
        BlobUrlRegistry().validate_uniqueness('blob:a', 'h1')


def test_registries_are_independent():
    with BlobUrlRegistry() as first, BlobUrlRegistry() as second:
        first.register('blob:a', 'h1', '')
        assert second.validate_uniqueness('blob:a', 'h1').is_valid is True


def test_state_shortens_values(registry):
    long_url = 'blob:https://storefront.example.com/' + 'x' * 40
    registry.register(long_url, 'a' * 64, '')
    state = registry.state()

    assert state['total_hashes'] == 1
    record = state['records'][0]
    assert record['url'] == long_url[:30] + '...'
    assert record['hash'] == 'a' * 12 + '...'
