"""
Category Sync - keeps storefront category display settings in line with the
account's categories.
"""
import logging
from dataclasses import dataclass
from typing import Callable

from ..data.store import FrameStore, utc_now

logger = logging.getLogger(__name__)


@dataclass
class SyncResult:
    added: int
    removed: int
    total: int


class CategorySync:
    """Merge ``user_product_categories`` into ``storefront_settings.categoryDisplaySettings``."""

    def __init__(self, store: FrameStore, clock: Callable[[], str] = utc_now):
        self.store = store
        self.clock = clock

    def sync(self, user_id: str) -> SyncResult:
        """
        Existing entries keep their order and enabled flag, entries for deleted
        categories are dropped, and new categories are appended enabled.
        """
        categories = [
            row['name'] for row in
            self.store.select('user_product_categories', eq={'user_id': user_id}, order_by='created_at')
        ]
        settings_row = self.store.select_one('storefront_settings', eq={'user_id': user_id})
        settings = dict(settings_row['settings'] or {}) if settings_row else {}

        current = sorted(settings.get('categoryDisplaySettings') or [], key=lambda c: c.get('order', 0))
        known = set(categories)
        kept = [entry for entry in current if entry.get('category') in known]
        removed = len(current) - len(kept)

        present = {entry['category'] for entry in kept}
        added = 0
        for name in categories:
            if name not in present:
                kept.append({'category': name, 'order': 0, 'enabled': True})
                present.add(name)
                added += 1

        # Renumber so orders stay contiguous
        display = [dict(entry, order=i) for i, entry in enumerate(kept)]
        settings['categoryDisplaySettings'] = display

        now = self.clock()
        if settings_row:
            self.store.update('storefront_settings', {'settings': settings, 'updated_at': now},
                              eq={'id': settings_row['id']})
        else:
            self.store.insert('storefront_settings', [
                {'user_id': user_id, 'settings': settings, 'created_at': now, 'updated_at': now}
            ])

        logger.info("Synced categories for user %s: +%d -%d (%d total)", user_id, added, removed, len(display))
        return SyncResult(added=added, removed=removed, total=len(display))
