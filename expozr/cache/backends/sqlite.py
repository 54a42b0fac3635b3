"""
Expozr cache - SQLite backend via aiosqlite.

Transactional, asynchronous persistent store. One table keyed by cache
key, with an indexed ``expires`` column (epoch ms, ``0`` = never) so
expired entries can be removed with a single range delete.
"""

from __future__ import annotations

import logging
import os
import pickle
import sqlite3
from pathlib import Path
from typing import Any, Optional

from ...faults.domains import CacheFault
from ..core import CacheBackend, CacheStats, Clock, expiry_for, now_ms
from ..serializers import CacheSerializer, get_serializer

logger = logging.getLogger("expozr.cache.sqlite")

DEFAULT_DB_NAME = "expozr-cache.db"

_SCHEMA = """
CREATE TABLE IF NOT EXISTS cache_entries (
    key         TEXT    PRIMARY KEY,
    value       BLOB    NOT NULL,
    expires     INTEGER NOT NULL DEFAULT 0
);

CREATE INDEX IF NOT EXISTS idx_cache_entries_expires ON cache_entries(expires);
"""


class SQLiteBackend(CacheBackend):
    """
    Async SQLite cache backend.

    Args:
        db_path: Database file (a directory gets ``expozr-cache.db``),
            or ``":memory:"``
        serializer: Value encoding ("json" or "pickle")
        clock: Millisecond clock, injectable for tests
    """

    def __init__(
        self,
        db_path: str | os.PathLike = DEFAULT_DB_NAME,
        serializer: str | CacheSerializer = "json",
        clock: Clock = now_ms,
    ):
        path = str(db_path)
        if path != ":memory:" and Path(path).is_dir():
            path = str(Path(path) / DEFAULT_DB_NAME)
        self.db_path = path
        self._serializer = get_serializer(serializer) if isinstance(serializer, str) else serializer
        self._clock = clock
        self._conn = None
        self._stats = CacheStats(backend="sqlite")

    @property
    def name(self) -> str:
        return "sqlite"

    async def initialize(self) -> None:
        """Open the database and create the schema if needed."""
        if self._conn is not None:
            return
        import aiosqlite

        try:
            if self.db_path != ":memory:":
                Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
            self._conn = await aiosqlite.connect(self.db_path)
            await self._conn.executescript(_SCHEMA)
            await self._conn.commit()
        except (sqlite3.Error, OSError) as e:
            self._stats.errors += 1
            raise CacheFault("initialize", str(e), backend=self.name) from e
        logger.debug("SQLite cache opened: %s", self.db_path)

    async def shutdown(self) -> None:
        if self._conn is not None:
            await self._conn.close()
            self._conn = None

    async def _connection(self):
        if self._conn is None:
            await self.initialize()
        return self._conn

    async def get(self, key: str) -> Optional[Any]:
        conn = await self._connection()
        try:
            cursor = await conn.execute(
                "SELECT value, expires FROM cache_entries WHERE key = ?", (key,)
            )
            row = await cursor.fetchone()
            await cursor.close()
        except sqlite3.Error as e:
            self._stats.errors += 1
            raise CacheFault("get", str(e), backend=self.name) from e

        if row is None:
            self._stats.misses += 1
            return None

        value, expires = row
        if expires > 0 and self._clock() >= expires:
            await self.delete(key)
            self._stats.evictions += 1
            self._stats.misses += 1
            return None

        try:
            result = self._serializer.deserialize(value)
        except (ValueError, TypeError, EOFError, pickle.UnpicklingError) as e:
            self._stats.errors += 1
            raise CacheFault("get", f"undecodable entry: {e}", backend=self.name) from e
        self._stats.hits += 1
        return result

    async def set(self, key: str, value: Any, ttl_ms: Optional[float] = None) -> None:
        try:
            encoded = self._serializer.serialize(value)
        except (TypeError, ValueError, OverflowError, AttributeError) as e:
            self._stats.errors += 1
            raise CacheFault("set", str(e), backend=self.name) from e

        conn = await self._connection()
        try:
            await conn.execute(
                """
                INSERT INTO cache_entries (key, value, expires) VALUES (?, ?, ?)
                ON CONFLICT(key) DO UPDATE SET value = excluded.value, expires = excluded.expires
                """,
                (key, encoded, expiry_for(ttl_ms, self._clock)),
            )
            await conn.commit()
        except sqlite3.Error as e:
            self._stats.errors += 1
            raise CacheFault("set", str(e), backend=self.name) from e
        self._stats.sets += 1

    async def has(self, key: str) -> bool:
        conn = await self._connection()
        try:
            cursor = await conn.execute(
                "SELECT 1 FROM cache_entries WHERE key = ? AND (expires = 0 OR expires > ?)",
                (key, self._clock()),
            )
            row = await cursor.fetchone()
            await cursor.close()
        except sqlite3.Error as e:
            raise CacheFault("has", str(e), backend=self.name) from e
        return row is not None

    async def delete(self, key: str) -> bool:
        conn = await self._connection()
        try:
            cursor = await conn.execute("DELETE FROM cache_entries WHERE key = ?", (key,))
            deleted = cursor.rowcount
            await cursor.close()
            await conn.commit()
        except sqlite3.Error as e:
            self._stats.errors += 1
            raise CacheFault("delete", str(e), backend=self.name) from e
        if deleted:
            self._stats.deletes += 1
        return deleted > 0

    async def clear(self) -> None:
        conn = await self._connection()
        try:
            await conn.execute("DELETE FROM cache_entries")
            await conn.commit()
        except sqlite3.Error as e:
            self._stats.errors += 1
            raise CacheFault("clear", str(e), backend=self.name) from e

    async def size(self) -> int:
        conn = await self._connection()
        try:
            cursor = await conn.execute("SELECT COUNT(*) FROM cache_entries")
            (count,) = await cursor.fetchone()
            await cursor.close()
        except sqlite3.Error as e:
            raise CacheFault("size", str(e), backend=self.name) from e
        return count

    async def clean_expired(self) -> int:
        """Range-delete every entry whose expiry has passed."""
        conn = await self._connection()
        try:
            cursor = await conn.execute(
                "DELETE FROM cache_entries WHERE expires > 0 AND expires < ?",
                (self._clock(),),
            )
            removed = cursor.rowcount
            await cursor.close()
            await conn.commit()
        except sqlite3.Error as e:
            self._stats.errors += 1
            raise CacheFault("clean_expired", str(e), backend=self.name) from e
        if removed:
            logger.debug("Removed %d expired entries", removed)
        return removed

    async def stats(self) -> CacheStats:
        self._stats.size = await self.size()
        return self._stats
