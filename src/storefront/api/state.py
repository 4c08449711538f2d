"""
Shared API state - the table store every router works against.
"""
from typing import Optional

from ..config.settings import get_settings
from ..data.store import FrameStore

_store: Optional[FrameStore] = None


def get_store() -> FrameStore:
    """FastAPI dependency returning the process-wide store."""
    global _store
    if _store is None:
        _store = FrameStore(get_settings().data_dir)
    return _store
