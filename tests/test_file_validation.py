import io

from PIL import Image

from storefront.media.blob_registry import BlobUrlRegistry
from storefront.media.file_validation import (
    ImageFingerprint,
    UploadSession,
    UploadedFile,
    content_hash,
    find_duplicate,
    generate_fingerprint,
    hamming_distance,
    validate_files,
)


def upload(name, content=b'img', content_type='image/png', blob_url=None):
    return UploadedFile(name=name, content=content, content_type=content_type, blob_url=blob_url)


def png(width=100, height=100, dark_columns=50, speck=None):
    """PNG with the left columns black and the rest white; ``speck`` paints one grey pixel."""
    img = Image.new("RGB", (width, height), "white")
    for x in range(dark_columns):
        for y in range(height):
            img.putpixel((x, y), (0, 0, 0))
    if speck:
        img.putpixel(speck, (128, 128, 128))
    buffer = io.BytesIO()
    img.save(buffer, format="PNG")
    return buffer.getvalue()


def test_accepts_distinct_images():
    result = validate_files([upload('a.png', b'aaa'), upload('b.jpg', b'bbb', 'image/jpeg')])

    assert [f.name for f in result.valid_files] == ['a.png', 'b.jpg']
    assert result.hashes['a.png'] == content_hash(b'aaa')
    assert result.duplicates == []
    assert result.invalid == []


def test_oversized_file():
    big = upload('big.png', b'x' * (1024 * 1024 + 1))
    result = validate_files([big], max_file_size_mb=1)

    assert result.invalid[0].name == 'big.png'
    assert result.invalid[0].reason == 'Size exceeds 1MB'


def test_type_not_allowed():
    result = validate_files([upload('doc.pdf', b'%PDF', 'application/pdf')])
    assert result.invalid[0].reason == 'File type not allowed'


def test_same_family_type_allowed():
    result = validate_files([upload('anim.gif', b'GIF', 'image/gif')])
    assert len(result.valid_files) == 1


def test_duplicate_within_batch():
    result = validate_files([upload('a.png', b'same'), upload('copy.png', b'same')])

    assert [f.name for f in result.valid_files] == ['a.png']
    assert result.duplicates == ['copy.png']


def test_duplicate_of_existing_hash():
    result = validate_files([upload('a.png', b'known')], existing_hashes={content_hash(b'known')})
    assert result.duplicates == ['a.png']


def test_registry_catches_later_batches():
    with BlobUrlRegistry() as registry:
        first = validate_files([upload('a.png', b'one', blob_url='blob:1')], registry=registry)
        second = validate_files([upload('again.png', b'one', blob_url='blob:2')], registry=registry)

        assert len(first.valid_files) == 1
        assert second.duplicates == ['again.png']
        assert registry.urls_for_hash(content_hash(b'one')) == ['blob:1']


def test_hamming_distance():
    assert hamming_distance('1010', '1010') == 0
    assert hamming_distance('1010', '0101') == 4
    assert hamming_distance('10', '1010') == 4


def test_find_duplicate_exact_and_visual():
    registered = {
        'img-1': ImageFingerprint('h1', '1111000011110000', 100, 100),
        'img-2': ImageFingerprint('h2', '0000000000000000', 200, 100),
    }

    exact = find_duplicate(ImageFingerprint('h1', '0' * 16, 10, 10), registered)
    assert exact == ('img-1', 'Exact SHA-256 match (identical file content)')

    image_id, reason = find_duplicate(ImageFingerprint('h3', '1111000011110011', 100, 100), registered)
    assert image_id == 'img-1'
    assert 'hamming distance: 2' in reason

    # Similar fingerprint but different dimensions
    assert find_duplicate(ImageFingerprint('h4', '0000000000000001', 100, 100), registered) == (None, None)


def test_generate_fingerprint():
    fingerprint = generate_fingerprint(png(120, 80))

    assert (fingerprint.width, fingerprint.height) == (120, 80)
    assert len(fingerprint.visual_fingerprint) == 64 * 64
    assert set(fingerprint.visual_fingerprint) == {'0', '1'}
    # Left side dark, right side bright
    assert fingerprint.visual_fingerprint[0] == '0'
    assert fingerprint.visual_fingerprint[63] == '1'


def test_near_duplicate_caught_by_fingerprint():
    original = png()
    touched = png(speck=(80, 40))
    assert content_hash(original) != content_hash(touched)

    known = {'img-1': generate_fingerprint(original)}
    result = validate_files([upload('touched.png', touched)], existing_fingerprints=known)

    assert result.duplicates == ['touched.png']
    assert result.valid_files == []


def test_near_duplicate_within_batch():
    result = validate_files(
        [upload('a.png', png()), upload('b.png', png(speck=(10, 10))), upload('c.png', png(dark_columns=0))],
        existing_fingerprints={},
    )

    assert [f.name for f in result.valid_files] == ['a.png', 'c.png']
    assert result.duplicates == ['b.png']
    assert len(result.valid_files[0].visual_fingerprint) == 64 * 64
    assert set(result.fingerprints) == {'a.png', 'c.png'}


def test_same_picture_other_size_is_not_duplicate():
    known = {'img-1': generate_fingerprint(png(100, 100))}
    result = validate_files([upload('big.png', png(200, 200, dark_columns=100))], existing_fingerprints=known)

    assert len(result.valid_files) == 1


def test_unreadable_image_invalid_when_fingerprinting():
    result = validate_files([upload('broken.png', b'not an image')], existing_fingerprints={})
    assert result.invalid[0].reason == 'Unreadable image'


def test_session_recheck_keeps_first_outcome():
    registry = BlobUrlRegistry().init()
    session = UploadSession(registry)
    files = [upload('a.png', png(), blob_url='blob:a'), upload('b.png', png(dark_columns=0), blob_url='blob:b')]

    first = session.check(files)
    second = session.check(files)
    third = session.check(files)

    for result in (first, second, third):
        assert [f.name for f in result.valid_files] == ['a.png', 'b.png']
        assert result.duplicates == []
    assert registry.urls_for_hash(content_hash(files[0].content)) == ['blob:a']


def test_session_duplicate_stays_duplicate():
    session = UploadSession(BlobUrlRegistry().init())
    files = [upload('a.png', png(), blob_url='blob:a'), upload('copy.png', png(), blob_url='blob:copy')]

    assert session.check(files).duplicates == ['copy.png']
    assert session.check(files).duplicates == ['copy.png']


def test_session_releases_removed_uploads():
    revoked = []
    registry = BlobUrlRegistry(on_revoke=revoked.append).init()
    session = UploadSession(registry)
    picture = png()

    session.check([upload('a.png', picture, blob_url='blob:a')])
    remaining = session.check([])

    assert remaining.valid_files == []
    assert revoked == ['blob:a']
    assert registry.get_record('blob:a') is None

    # Same picture uploaded again is no longer a duplicate
    again = session.check([upload('again.png', picture, blob_url='blob:again')])
    assert [f.name for f in again.valid_files] == ['again.png']


def test_session_reports_invalid_reason():
    session = UploadSession(BlobUrlRegistry().init(), allowed_types=('image/png',))
    result = session.check([upload('doc.pdf', b'%PDF', 'application/pdf', blob_url='blob:doc')])

    assert result.invalid[0].name == 'doc.pdf'
    assert result.invalid[0].reason == 'File type not allowed'
