"""
Expozr cache - Single-file persistent backend.

A small synchronous key/value store kept as one JSON document on disk.
Every key is stored under a namespace prefix (``expozr:`` by default) as
``{"value": ..., "expires": <epoch ms | 0>}``; other keys in the same
document are left untouched. Writes that would grow the document past
``max_bytes`` are rejected with a ``CacheFault``.

Values must be JSON-serializable.
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional

from ...faults.domains import CacheFault
from ..core import (
    DEFAULT_MAX_BYTES,
    CacheBackend,
    CacheEntry,
    CacheStats,
    Clock,
    expiry_for,
    now_ms,
)

logger = logging.getLogger("expozr.cache.file")

DEFAULT_FILENAME = "expozr-cache.json"


class FileBackend(CacheBackend):
    """
    Persistent single-document cache.

    Args:
        path: Document location (a directory gets ``expozr-cache.json``)
        prefix: Key namespace prefix
        max_bytes: Capacity bound of the encoded document
        clock: Millisecond clock, injectable for tests
    """

    def __init__(
        self,
        path: str | os.PathLike = ".",
        prefix: str = "expozr:",
        max_bytes: int = DEFAULT_MAX_BYTES,
        clock: Clock = now_ms,
    ):
        target = Path(path)
        if target.is_dir() or not target.suffix:
            target = target / DEFAULT_FILENAME
        self.path = target
        self.prefix = prefix if prefix.endswith(":") else f"{prefix}:"
        self.max_bytes = max_bytes
        self._clock = clock
        self._stats = CacheStats(backend="file")

    @property
    def name(self) -> str:
        return "file"

    # ── Document I/O ─────────────────────────────────────────────────

    def _read(self, operation: str) -> Dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8") or "{}")
        except (OSError, ValueError) as e:
            self._stats.errors += 1
            raise CacheFault(operation, str(e), backend=self.name) from e
        if not isinstance(data, dict):
            self._stats.errors += 1
            raise CacheFault(operation, "cache document is not an object", backend=self.name)
        return data

    def _write(self, operation: str, document: Dict[str, Any]) -> None:
        try:
            encoded = json.dumps(document, ensure_ascii=False)
        except (TypeError, ValueError) as e:
            self._stats.errors += 1
            raise CacheFault(operation, str(e), backend=self.name) from e

        if len(encoded.encode("utf-8")) > self.max_bytes:
            self._stats.errors += 1
            raise CacheFault(
                operation,
                f"quota exceeded ({self.max_bytes} bytes)",
                backend=self.name,
            )

        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp = self.path.with_suffix(self.path.suffix + ".tmp")
            tmp.write_text(encoded, encoding="utf-8")
            os.replace(tmp, self.path)
        except OSError as e:
            self._stats.errors += 1
            raise CacheFault(operation, str(e), backend=self.name) from e

    def _own_keys(self, document: Dict[str, Any]) -> list[str]:
        return [k for k in document if k.startswith(self.prefix)]

    # ── CacheBackend ─────────────────────────────────────────────────

    async def get(self, key: str) -> Optional[Any]:
        document = self._read("get")
        record = document.get(self.prefix + key)
        if not isinstance(record, dict):
            self._stats.misses += 1
            return None

        entry = CacheEntry.from_record(key, record)
        if entry.is_expired(self._clock()):
            del document[self.prefix + key]
            self._write("get", document)
            self._stats.evictions += 1
            self._stats.misses += 1
            return None

        self._stats.hits += 1
        return entry.value

    async def set(self, key: str, value: Any, ttl_ms: Optional[float] = None) -> None:
        document = self._read("set")
        entry = CacheEntry(key=key, value=value, expires_at=expiry_for(ttl_ms, self._clock))
        document[self.prefix + key] = entry.to_record()
        self._write("set", document)
        self._stats.sets += 1

    async def has(self, key: str) -> bool:
        try:
            document = self._read("has")
        except CacheFault:
            return False
        record = document.get(self.prefix + key)
        if not isinstance(record, dict):
            return False
        if CacheEntry.from_record(key, record).is_expired(self._clock()):
            del document[self.prefix + key]
            self._write("has", document)
            return False
        return True

    async def delete(self, key: str) -> bool:
        document = self._read("delete")
        if document.pop(self.prefix + key, None) is None:
            return False
        self._write("delete", document)
        self._stats.deletes += 1
        return True

    async def clear(self) -> None:
        document = self._read("clear")
        for key in self._own_keys(document):
            del document[key]
        self._write("clear", document)

    async def size(self) -> int:
        return len(self._own_keys(self._read("size")))

    async def clean_expired(self) -> int:
        document = self._read("clean_expired")
        now = self._clock()
        expired = [
            k for k in self._own_keys(document)
            if isinstance(document[k], dict)
            and CacheEntry.from_record(k, document[k]).is_expired(now)
        ]
        for key in expired:
            del document[key]
        if expired:
            self._write("clean_expired", document)
            logger.debug("Removed %d expired entries from %s", len(expired), self.path)
        return len(expired)

    async def stats(self) -> CacheStats:
        self._stats.size = len(self._own_keys(self._read("stats")))
        return self._stats
