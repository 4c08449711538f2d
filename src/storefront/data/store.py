"""
Table Store - row-filtered access to the storefront tables.

Each table is a pandas DataFrame held with object dtype so values come back
as the Python objects that went in. Queries are expressed the way the
backend exposes them: equality (``eq``) and membership (``in_``) predicates,
no SQL. When a data directory is configured every write is snapshotted to
``<data_dir>/<table>.json``.
"""
import logging
import math
import threading
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, Optional

import pandas as pd

from ..exceptions import TransportError

logger = logging.getLogger(__name__)


# Table → (columns, unique keys)
TABLES: dict[str, tuple[tuple[str, ...], tuple[tuple[str, ...], ...]]] = {
    'users': (
        ('id', 'name', 'email', 'role', 'slug', 'max_images_per_product', 'referral_code', 'referred_by',
         'created_at', 'updated_at'),
        (('email',), ('referral_code',)),
    ),
    'products': (
        ('id', 'user_id', 'title', 'description', 'price', 'discounted_price', 'status',
         'category', 'brand', 'colors', 'sizes', 'has_tiered_pricing', 'featured_image_url',
         'is_visible_on_storefront', 'created_at', 'updated_at'),
        (),
    ),
    'product_images': (
        ('id', 'product_id', 'url', 'display_order', 'is_featured', 'media_type', 'created_at'),
        (),
    ),
    'product_price_tiers': (
        ('id', 'product_id', 'min_quantity', 'unit_price', 'discounted_unit_price',
         'created_at', 'updated_at'),
        (('product_id', 'min_quantity'),),
    ),
    'user_product_categories': (
        ('id', 'user_id', 'name', 'created_at', 'updated_at'),
        (('user_id', 'name'),),
    ),
    'storefront_settings': (
        ('id', 'user_id', 'settings', 'created_at', 'updated_at'),
        (('user_id',),),
    ),
    'referral_commissions': (
        ('id', 'referrer_id', 'referred_user_id', 'subscription_id', 'plan_type', 'amount', 'status',
         'created_at', 'paid_at'),
        (),
    ),
    'withdrawal_requests': (
        ('id', 'user_id', 'amount', 'pix_key', 'pix_key_type', 'status', 'admin_notes',
         'created_at', 'processed_at', 'processed_by'),
        (),
    ),
    'user_pix_keys': (
        ('id', 'user_id', 'pix_key', 'pix_key_type', 'holder_name', 'created_at', 'updated_at'),
        (('user_id', 'pix_key'),),
    ),
}


def utc_now() -> str:
    """Current timestamp as an ISO string, the format rows are stored with."""
    return datetime.now(timezone.utc).isoformat()


def _is_missing(value) -> bool:
    return value is None or (isinstance(value, float) and math.isnan(value))


class FrameStore:
    """
    In-process table gateway backed by pandas DataFrames.

    Reads return plain dicts (missing cells as None); writes return the rows
    as stored, in input order, with generated ids.
    """

    def __init__(self, data_dir: Optional[Path] = None, tables: Optional[dict] = None):
        self.data_dir = Path(data_dir) if data_dir else None
        self.schema = tables or TABLES
        self.tables: dict[str, pd.DataFrame] = {}
        self._lock = threading.RLock()

        if self.data_dir:
            self.data_dir.mkdir(parents=True, exist_ok=True)

        for name, (columns, _) in self.schema.items():
            self.tables[name] = self._load_table(name, columns)

    def _load_table(self, name: str, columns: tuple) -> pd.DataFrame:
        """Load a table snapshot from disk, or start empty."""
        if self.data_dir:
            path = self.data_dir / f'{name}.json'
            if path.exists():
                df = pd.read_json(path, orient='records', dtype=False, convert_dates=False)
                df = df.astype(object)
                for col in columns:
                    if col not in df.columns:
                        df[col] = None
                logger.info("Loaded %d rows for table %s", len(df), name)
                return df
        return pd.DataFrame(columns=list(columns), dtype=object)

    def _persist(self, name: str):
        if not self.data_dir:
            return
        path = self.data_dir / f'{name}.json'
        self.tables[name].to_json(path, orient='records', default_handler=str, indent=2)

    def _frame(self, table: str) -> pd.DataFrame:
        if table not in self.tables:
            raise TransportError(
                "Backend request failed",
                details=f'relation "{table}" does not exist',
            )
        return self.tables[table]

    def _mask(self, df: pd.DataFrame, eq: Optional[dict], in_: Optional[dict]) -> pd.Series:
        mask = pd.Series(True, index=df.index)
        for col, value in (eq or {}).items():
            if col not in df.columns:
                raise TransportError("Backend request failed", details=f'column "{col}" does not exist')
            mask &= df[col] == value
        for col, values in (in_ or {}).items():
            if col not in df.columns:
                raise TransportError("Backend request failed", details=f'column "{col}" does not exist')
            mask &= df[col].isin(list(values))
        return mask

    @staticmethod
    def _records(df: pd.DataFrame) -> list[dict]:
        return [
            {k: (None if _is_missing(v) else v) for k, v in row.items()}
            for row in df.to_dict(orient='records')
        ]

    def select(
        self,
        table: str,
        eq: Optional[dict] = None,
        in_: Optional[dict] = None,
        order_by: Optional[str] = None,
        ascending: bool = True,
    ) -> list[dict]:
        """Return rows matching every ``eq`` and ``in_`` predicate."""
        with self._lock:
            df = self._frame(table)
            result = df[self._mask(df, eq, in_)]
            if order_by:
                result = result.sort_values(order_by, ascending=ascending, kind='stable')
            return self._records(result)

    def select_one(self, table: str, eq: Optional[dict] = None, in_: Optional[dict] = None) -> Optional[dict]:
        """Return the first matching row or None (``maybeSingle`` semantics)."""
        rows = self.select(table, eq=eq, in_=in_)
        return rows[0] if rows else None

    def count(self, table: str, eq: Optional[dict] = None, in_: Optional[dict] = None) -> int:
        with self._lock:
            df = self._frame(table)
            return int(self._mask(df, eq, in_).sum())

    def insert(self, table: str, rows: Iterable[dict]) -> list[dict]:
        """
        Insert rows and return them as stored.

        Rows without an ``id`` get a fresh UUID. The whole batch is rejected
        if any row violates a unique key of the table.
        """
        rows = [dict(r) for r in rows]
        if not rows:
            return []

        with self._lock:
            df = self._frame(table)
            for row in rows:
                if _is_missing(row.get('id')):
                    row['id'] = str(uuid.uuid4())

            self._check_unique(table, df, rows)

            new_df = pd.DataFrame(rows, dtype=object)
            if df.empty:
                combined = new_df.reindex(columns=list(dict.fromkeys([*df.columns, *new_df.columns])))
            else:
                combined = pd.concat([df, new_df], ignore_index=True)
            self.tables[table] = combined.astype(object)
            self._persist(table)

        logger.debug("Inserted %d rows into %s", len(rows), table)
        return [dict(r) for r in rows]

    def _check_unique(self, table: str, df: pd.DataFrame, rows: list[dict]):
        _, unique_keys = self.schema.get(table, ((), ()))
        for key in (('id',), *unique_keys):
            seen = set()
            if all(col in df.columns for col in key):
                seen = {tuple(vals) for vals in df[list(key)].itertuples(index=False, name=None)}
            for row in rows:
                value = tuple(row.get(col) for col in key)
                # NULLs never collide
                if any(_is_missing(v) for v in value):
                    continue
                if value in seen:
                    raise TransportError(
                        "Backend request failed",
                        details=(
                            f'duplicate key value violates unique constraint "{table}_'
                            f'{"_".join(key)}_key"'
                        ),
                    )
                seen.add(value)

    def update(self, table: str, updates: dict, eq: Optional[dict] = None, in_: Optional[dict] = None) -> list[dict]:
        """Apply ``updates`` to every matching row and return the updated rows."""
        with self._lock:
            df = self._frame(table)
            mask = self._mask(df, eq, in_)
            if not mask.any():
                return []

            for col, value in updates.items():
                if col not in df.columns:
                    df[col] = None
                # Per-cell assignment keeps list/dict values intact
                for idx in df.index[mask]:
                    df.at[idx, col] = value

            self.tables[table] = df
            self._persist(table)
            return self._records(df[mask])

    def delete(self, table: str, eq: Optional[dict] = None, in_: Optional[dict] = None) -> int:
        """Delete matching rows and return how many were removed."""
        if not eq and not in_:
            raise TransportError("Backend request failed", details="DELETE requires a WHERE clause")

        with self._lock:
            df = self._frame(table)
            mask = self._mask(df, eq, in_)
            removed = int(mask.sum())
            if removed:
                self.tables[table] = df[~mask].reset_index(drop=True)
                self._persist(table)
            return removed

    def table_counts(self) -> dict[str, int]:
        """Row count per table."""
        with self._lock:
            return {name: len(df) for name, df in self.tables.items()}
