"""
Expozr cache - Null (no-op) backend.

Selected with ``cache.strategy = "none"`` to disable caching without
changing calling code.
"""

from __future__ import annotations

from typing import Any, Optional

from ..core import CacheBackend, CacheStats


class NullBackend(CacheBackend):
    """No-op cache backend; every read is a miss."""

    __slots__ = ("_stats",)

    def __init__(self):
        self._stats = CacheStats(backend="none")

    @property
    def name(self) -> str:
        return "none"

    async def get(self, key: str) -> Optional[Any]:
        self._stats.misses += 1
        return None

    async def set(self, key: str, value: Any, ttl_ms: Optional[float] = None) -> None:
        self._stats.sets += 1

    async def has(self, key: str) -> bool:
        return False

    async def delete(self, key: str) -> bool:
        return False

    async def clear(self) -> None:
        pass

    async def size(self) -> int:
        return 0

    async def stats(self) -> CacheStats:
        return self._stats
