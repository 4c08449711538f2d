"""
Blob URL Registry - tracks ephemeral object URLs created for pending uploads.

A registry is an explicit context owned by its caller: create it, ``init()``
it (or use it as a context manager), and ``dispose()`` it when the editing
session ends. Nothing is shared between registries.
"""
import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Optional

from ..exceptions import RegistryClosedError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BlobUrlRecord:
    url: str
    file_hash: str
    visual_fingerprint: str
    created_at: float


@dataclass(frozen=True)
class UniquenessCheck:
    is_valid: bool
    reason: Optional[str] = None


def _short(value: str, length: int) -> str:
    return value[:length] + '...' if len(value) > length else value


class BlobUrlRegistry:
    """
    Maps blob URLs to the content they point at, and content hashes back to URLs.

    ``on_revoke`` is called for every URL the registry releases.
    """

    def __init__(self, on_revoke: Optional[Callable[[str], None]] = None):
        self.on_revoke = on_revoke
        self._records: dict[str, BlobUrlRecord] = {}
        self._by_hash: dict[str, list[str]] = {}
        self._open = False

    def init(self) -> 'BlobUrlRegistry':
        self._records.clear()
        self._by_hash.clear()
        self._open = True
        return self

    def dispose(self):
        """Release every URL and close the registry."""
        if self._open:
            self.clear()
        self._open = False

    def __enter__(self) -> 'BlobUrlRegistry':
        return self.init()

    def __exit__(self, exc_type, exc, tb):
        self.dispose()
        return False

    @property
    def is_open(self) -> bool:
        return self._open

    def _ensure_open(self):
        if not self._open:
            raise RegistryClosedError("Blob URL registry is not initialised or was disposed")

    def register(self, url: str, content_hash: str, fingerprint: str):
        self._ensure_open()
        self._records[url] = BlobUrlRecord(
            url=url, file_hash=content_hash, visual_fingerprint=fingerprint, created_at=time.time()
        )
        urls = self._by_hash.setdefault(content_hash, [])
        if url not in urls:
            urls.append(url)
        logger.debug("Blob URL registered: url=%s hash=%s", _short(url, 30), _short(content_hash, 12))

    def validate_uniqueness(self, url: str, content_hash: str) -> UniquenessCheck:
        """A URL/content pair is valid only if neither was registered before."""
        self._ensure_open()
        record = self._records.get(url)
        if record and record.file_hash == content_hash:
            return UniquenessCheck(False, 'Blob URL already registered with same content hash')

        existing = self._by_hash.get(content_hash) or []
        if existing:
            return UniquenessCheck(
                False, f'Content already registered ({len(existing)} blob URL(s) with same hash)'
            )
        return UniquenessCheck(True)

    def revoke(self, url: str):
        self._ensure_open()
        record = self._records.pop(url, None)
        if record is None:
            return

        urls = self._by_hash.get(record.file_hash, [])
        if url in urls:
            urls.remove(url)
        if not urls:
            self._by_hash.pop(record.file_hash, None)

        self._release(url)
        logger.debug("Blob URL revoked: url=%s", _short(url, 30))

    def clear(self):
        """Release every URL but keep the registry usable."""
        self._ensure_open()
        for url in list(self._records):
            self._release(url)
        self._records.clear()
        self._by_hash.clear()
        logger.debug("Blob URL registry cleared")

    def _release(self, url: str):
        if self.on_revoke is None:
            return
        try:
            self.on_revoke(url)
        except Exception as e:
            logger.error("Error revoking blob URL %s: %s", _short(url, 30), e)

    def urls_for_hash(self, content_hash: str) -> list[str]:
        self._ensure_open()
        return list(self._by_hash.get(content_hash, []))

    def get_record(self, url: str) -> Optional[BlobUrlRecord]:
        self._ensure_open()
        return self._records.get(url)

    def state(self) -> dict:
        """Snapshot for debugging, with shortened URLs and hashes."""
        return {
            'total_blob_urls': len(self._records),
            'total_hashes': len(self._by_hash),
            'records': [
                {
                    'url': _short(url, 30),
                    'hash': _short(record.file_hash, 12),
                    'created_at': datetime.fromtimestamp(record.created_at, tz=timezone.utc).isoformat(),
                }
                for url, record in self._records.items()
            ],
        }
