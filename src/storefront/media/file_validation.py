"""
Upload validation for product media.

Files are checked in order: size, type, exact duplicate (SHA-256 of the
content), near duplicate (visual fingerprint), and optionally blob-URL
uniqueness against a BlobUrlRegistry.

A visual fingerprint is the image scaled to 64x64 with one bit per pixel,
set when the pixel's mean RGB brightness is above 127. Two images of the
same dimensions whose fingerprints differ in at most ``threshold`` bits are
treated as the same picture.
"""
import hashlib
import io
import logging
from dataclasses import dataclass, field
from typing import Iterable, Optional

from PIL import Image, UnidentifiedImageError

from .blob_registry import BlobUrlRegistry

logger = logging.getLogger(__name__)

DEFAULT_ALLOWED_TYPES = ('image/png', 'image/jpeg', 'image/webp', 'image/jpg')
FINGERPRINT_SIZE = 64


@dataclass
class UploadedFile:
    name: str
    content: bytes
    content_type: str
    last_modified: Optional[int] = None
    blob_url: Optional[str] = None
    visual_fingerprint: str = ''

    @property
    def size(self) -> int:
        return len(self.content)


@dataclass
class InvalidFile:
    name: str
    reason: str


@dataclass
class ImageFingerprint:
    content_hash: str
    visual_fingerprint: str
    width: int
    height: int


@dataclass
class FileValidationResult:
    valid_files: list[UploadedFile] = field(default_factory=list)
    duplicates: list[str] = field(default_factory=list)
    invalid: list[InvalidFile] = field(default_factory=list)
    hashes: dict[str, str] = field(default_factory=dict)
    fingerprints: dict[str, ImageFingerprint] = field(default_factory=dict)


def content_hash(data: bytes) -> str:
    """Hex SHA-256 of the file content."""
    return hashlib.sha256(data).hexdigest()


def generate_fingerprint(content: bytes, size: int = FINGERPRINT_SIZE) -> ImageFingerprint:
    """
    Content hash, visual fingerprint and dimensions of an image.

    Raises:
        PIL.UnidentifiedImageError: content is not a decodable image
    """
    with Image.open(io.BytesIO(content)) as img:
        width, height = img.size
        small = img.convert('RGB').resize((size, size), Image.Resampling.BILINEAR)

    pixels = small.tobytes()
    bits = ''.join(
        '1' if (pixels[i] + pixels[i + 1] + pixels[i + 2]) / 3 > 127 else '0'
        for i in range(0, len(pixels), 3)
    )
    return ImageFingerprint(content_hash(content), bits, width, height)


def hamming_distance(fingerprint1: str, fingerprint2: str) -> int:
    """Differing positions; fingerprints of different length count as fully different."""
    if len(fingerprint1) != len(fingerprint2):
        return max(len(fingerprint1), len(fingerprint2))
    return sum(1 for a, b in zip(fingerprint1, fingerprint2) if a != b)


def fingerprints_similar(fingerprint1: str, fingerprint2: str, threshold: int = 5) -> bool:
    return hamming_distance(fingerprint1, fingerprint2) <= threshold


def find_duplicate(
    fingerprint: ImageFingerprint,
    registered: dict[str, ImageFingerprint],
    threshold: int = 5,
) -> tuple[Optional[str], Optional[str]]:
    """
    Look for an already registered image matching ``fingerprint``.

    Returns (duplicate_id, reason), or (None, None) when the image is new.
    """
    for image_id, other in registered.items():
        if fingerprint.content_hash == other.content_hash:
            return image_id, 'Exact SHA-256 match (identical file content)'

        same_size = fingerprint.width == other.width and fingerprint.height == other.height
        if same_size and fingerprints_similar(fingerprint.visual_fingerprint, other.visual_fingerprint, threshold):
            distance = hamming_distance(fingerprint.visual_fingerprint, other.visual_fingerprint)
            return image_id, f'Visual similarity match (hamming distance: {distance}, threshold: {threshold})'

    return None, None


def _type_allowed(content_type: str, allowed_types: Iterable[str]) -> bool:
    # Exact type or same family, e.g. "image/gif" matches "image/png"
    return any(
        content_type == allowed or content_type.startswith(allowed.split('/')[0] + '/')
        for allowed in allowed_types
    )


def validate_files(
    files: Iterable[UploadedFile],
    max_file_size_mb: int = 5,
    allowed_types: Iterable[str] = DEFAULT_ALLOWED_TYPES,
    existing_hashes: Optional[set[str]] = None,
    registry: Optional[BlobUrlRegistry] = None,
    existing_fingerprints: Optional[dict[str, ImageFingerprint]] = None,
    similarity_threshold: int = 5,
) -> FileValidationResult:
    """
    Split ``files`` into valid files, duplicates and invalid files.

    Near-duplicate detection runs when ``existing_fingerprints`` is given
    (an empty dict still compares the files of the batch with each other).
    When a registry is given, accepted files that carry a blob URL are
    registered in it so later batches see them.
    """
    allowed_types = tuple(allowed_types)
    existing_hashes = existing_hashes or set()
    result = FileValidationResult()
    processed: set[str] = set()
    known = dict(existing_fingerprints) if existing_fingerprints is not None else None

    for upload in files:
        if upload.size > max_file_size_mb * 1024 * 1024:
            result.invalid.append(InvalidFile(upload.name, f'Size exceeds {max_file_size_mb}MB'))
            continue

        if not _type_allowed(upload.content_type, allowed_types):
            result.invalid.append(InvalidFile(upload.name, 'File type not allowed'))
            continue

        digest = content_hash(upload.content)
        if digest in existing_hashes or digest in processed:
            result.duplicates.append(upload.name)
            continue

        fingerprint = None
        if known is not None:
            try:
                fingerprint = generate_fingerprint(upload.content)
            except (UnidentifiedImageError, OSError) as e:
                logger.warning("Cannot read image %s: %s", upload.name, e)
                result.invalid.append(InvalidFile(upload.name, 'Unreadable image'))
                continue

            match_id, reason = find_duplicate(fingerprint, known, similarity_threshold)
            if match_id is not None:
                logger.info("Upload %s duplicates %s: %s", upload.name, match_id, reason)
                result.duplicates.append(upload.name)
                continue
            upload.visual_fingerprint = fingerprint.visual_fingerprint

        if registry is not None and upload.blob_url:
            check = registry.validate_uniqueness(upload.blob_url, digest)
            if not check.is_valid:
                result.duplicates.append(upload.name)
                continue
            registry.register(upload.blob_url, digest, upload.visual_fingerprint)

        processed.add(digest)
        result.valid_files.append(upload)
        result.hashes[upload.name] = digest
        if fingerprint is not None:
            known[upload.name] = fingerprint
            result.fingerprints[upload.name] = fingerprint

    return result


class UploadSession:
    """
    Upload checks for one editing session.

    Every upload is checked once, keyed by its blob URL (or its name when it
    has none); checking the same upload again returns its first outcome.
    Uploads missing from a later ``check`` call are released: their blob URL
    is revoked and their content no longer counts as a duplicate.
    """

    def __init__(
        self,
        registry: BlobUrlRegistry,
        max_file_size_mb: int = 5,
        allowed_types: Iterable[str] = DEFAULT_ALLOWED_TYPES,
        similarity_threshold: int = 5,
        existing_fingerprints: Optional[dict[str, ImageFingerprint]] = None,
    ):
        self.registry = registry
        self.max_file_size_mb = max_file_size_mb
        self.allowed_types = tuple(allowed_types)
        self.similarity_threshold = similarity_threshold
        self.fingerprints: dict[str, ImageFingerprint] = dict(existing_fingerprints or {})
        self._hashes: dict[str, str] = {}
        # key -> ('valid' | 'duplicate' | 'invalid', reason)
        self._outcomes: dict[str, tuple[str, Optional[str]]] = {}

    @staticmethod
    def _key(upload: UploadedFile) -> str:
        return upload.blob_url or upload.name

    def check(self, files: Iterable[UploadedFile]) -> FileValidationResult:
        files = list(files)
        current = {self._key(f) for f in files}
        for key in [k for k in self._outcomes if k not in current]:
            self._release(key)

        result = FileValidationResult()
        for upload in files:
            key = self._key(upload)
            if key not in self._outcomes:
                self._outcomes[key] = self._check_one(upload, key)

            status, reason = self._outcomes[key]
            if status == 'valid':
                result.valid_files.append(upload)
                result.hashes[upload.name] = self._hashes[key]
                if key in self.fingerprints:
                    result.fingerprints[upload.name] = self.fingerprints[key]
            elif status == 'duplicate':
                result.duplicates.append(upload.name)
            else:
                result.invalid.append(InvalidFile(upload.name, reason))
        return result

    def _check_one(self, upload: UploadedFile, key: str) -> tuple[str, Optional[str]]:
        single = validate_files(
            [upload],
            max_file_size_mb=self.max_file_size_mb,
            allowed_types=self.allowed_types,
            existing_hashes=set(self._hashes.values()),
            registry=self.registry,
            existing_fingerprints=self.fingerprints,
            similarity_threshold=self.similarity_threshold,
        )
        if single.valid_files:
            self._hashes[key] = single.hashes[upload.name]
            if upload.name in single.fingerprints:
                self.fingerprints[key] = single.fingerprints[upload.name]
            return 'valid', None
        if single.duplicates:
            return 'duplicate', None
        return 'invalid', single.invalid[0].reason

    def _release(self, key: str):
        status, _ = self._outcomes.pop(key)
        if status != 'valid':
            return
        self._hashes.pop(key, None)
        self.fingerprints.pop(key, None)
        if self.registry.is_open:
            self.registry.revoke(key)
