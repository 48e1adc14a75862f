"""SQLite-backed TTL key-value cache for search result pages."""

import json
import sqlite3
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Callable, Iterator

from .config import get_config, get_data_dir

SCHEMA = """
CREATE TABLE IF NOT EXISTS kv_cache (
    namespace TEXT NOT NULL,
    key TEXT NOT NULL,
    value TEXT NOT NULL,
    expires_at REAL NOT NULL,
    PRIMARY KEY (namespace, key)
);

CREATE INDEX IF NOT EXISTS idx_kv_cache_expiry ON kv_cache(expires_at);
"""


class ResultCache:
    """JSON values with a per-entry TTL, namespaced per feature.

    Keys are scoped under ``namespace`` so several features can share one
    database file without colliding.
    """

    def __init__(
        self,
        db_path: Path | None = None,
        namespace: str = "search",
        clock: Callable[[], float] = time.time,
    ):
        if db_path is None:
            db_path = get_config().storage.cache_path or get_data_dir() / "cache.db"
        self.db_path = Path(db_path)
        self.namespace = namespace
        self._clock = clock
        self._ensure_schema()

    def _ensure_schema(self) -> None:
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        with self._connect() as conn:
            conn.executescript(SCHEMA)

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        conn = sqlite3.connect(self.db_path)
        try:
            yield conn
            conn.commit()
        finally:
            conn.close()

    def get(self, key: str) -> Any | None:
        """Return the cached value, or None if absent or expired."""
        with self._connect() as conn:
            row = conn.execute(
                "SELECT value, expires_at FROM kv_cache WHERE namespace = ? AND key = ?",
                (self.namespace, key),
            ).fetchone()
            if row is None:
                return None
            value, expires_at = row
            if expires_at <= self._clock():
                conn.execute(
                    "DELETE FROM kv_cache WHERE namespace = ? AND key = ?",
                    (self.namespace, key),
                )
                return None
            return json.loads(value)

    def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        """Store a JSON-serializable value for ``ttl_seconds``."""
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        payload = json.dumps(value, default=str)
        with self._connect() as conn:
            conn.execute(
                "INSERT OR REPLACE INTO kv_cache (namespace, key, value, expires_at) "
                "VALUES (?, ?, ?, ?)",
                (self.namespace, key, payload, self._clock() + ttl_seconds),
            )

    def delete(self, key: str) -> None:
        with self._connect() as conn:
            conn.execute(
                "DELETE FROM kv_cache WHERE namespace = ? AND key = ?",
                (self.namespace, key),
            )

    def prune_expired(self) -> int:
        """Drop expired entries in this namespace. Returns count deleted."""
        with self._connect() as conn:
            cursor = conn.execute(
                "DELETE FROM kv_cache WHERE namespace = ? AND expires_at <= ?",
                (self.namespace, self._clock()),
            )
            return cursor.rowcount

    def clear(self) -> int:
        """Drop every entry in this namespace. Returns count deleted."""
        with self._connect() as conn:
            cursor = conn.execute("DELETE FROM kv_cache WHERE namespace = ?", (self.namespace,))
            return cursor.rowcount


# Global cache instance
_cache: ResultCache | None = None


def get_cache() -> ResultCache:
    """Get or create the global result cache."""
    global _cache
    if _cache is None:
        _cache = ResultCache()
    return _cache
