"""
Expozr cache - In-memory backend.

Ephemeral LRU store backed by an ``OrderedDict``: O(1) get/set/delete,
least recently used entry evicted when ``max_size`` is reached. Expired
entries are dropped lazily on read, and optionally by a background
sweeper.

Safe for concurrent coroutines via ``asyncio.Lock``.
"""

from __future__ import annotations

import asyncio
import logging
from collections import OrderedDict
from typing import Any, Optional

from ..core import CacheBackend, CacheEntry, CacheStats, Clock, expiry_for, now_ms

logger = logging.getLogger("expozr.cache.memory")


class MemoryBackend(CacheBackend):
    """
    In-memory LRU cache backend.

    Args:
        max_size: Maximum number of entries
        sweep_interval: Seconds between background expiry sweeps (0 = off)
        capacity_warning_threshold: Warn when usage exceeds this fraction
        clock: Millisecond clock, injectable for tests
    """

    __slots__ = (
        "_max_size",
        "_store",
        "_lock",
        "_stats",
        "_clock",
        "_sweep_interval",
        "_sweeper_task",
        "_capacity_warning_threshold",
        "_capacity_warned",
    )

    def __init__(
        self,
        max_size: int = 100,
        sweep_interval: float = 0.0,
        capacity_warning_threshold: float = 0.85,
        clock: Clock = now_ms,
    ):
        self._max_size = max(1, max_size)
        self._store: OrderedDict[str, CacheEntry] = OrderedDict()
        self._lock = asyncio.Lock()
        self._stats = CacheStats(max_size=self._max_size, backend="memory")
        self._clock = clock
        self._sweep_interval = sweep_interval
        self._sweeper_task: Optional[asyncio.Task] = None
        self._capacity_warning_threshold = capacity_warning_threshold
        self._capacity_warned = False

    @property
    def name(self) -> str:
        return "memory"

    async def initialize(self) -> None:
        if self._sweep_interval > 0 and self._sweeper_task is None:
            self._sweeper_task = asyncio.get_running_loop().create_task(self._sweeper())

    async def shutdown(self) -> None:
        if self._sweeper_task and not self._sweeper_task.done():
            self._sweeper_task.cancel()
            try:
                await self._sweeper_task
            except asyncio.CancelledError:
                pass
        self._sweeper_task = None
        async with self._lock:
            self._store.clear()
            self._stats.size = 0

    async def get(self, key: str) -> Optional[Any]:
        """O(1) lookup with LRU promotion."""
        async with self._lock:
            entry = self._store.get(key)
            if entry is None:
                self._stats.misses += 1
                return None

            if entry.is_expired(self._clock()):
                del self._store[key]
                self._stats.evictions += 1
                self._stats.misses += 1
                self._stats.size = len(self._store)
                return None

            self._store.move_to_end(key)
            self._stats.hits += 1
            return entry.value

    async def set(self, key: str, value: Any, ttl_ms: Optional[float] = None) -> None:
        """O(1) insert, evicting the least recently used entry at capacity."""
        async with self._lock:
            self._store.pop(key, None)

            while len(self._store) >= self._max_size:
                evicted, _ = self._store.popitem(last=False)
                self._stats.evictions += 1
                logger.debug("Evicted %r (capacity %d)", evicted, self._max_size)

            self._store[key] = CacheEntry(
                key=key,
                value=value,
                expires_at=expiry_for(ttl_ms, self._clock),
                created_at=self._clock(),
            )
            self._stats.sets += 1
            self._stats.size = len(self._store)
            self._check_capacity_warning()

    async def has(self, key: str) -> bool:
        async with self._lock:
            entry = self._store.get(key)
            if entry is None:
                return False
            if entry.is_expired(self._clock()):
                del self._store[key]
                self._stats.size = len(self._store)
                return False
            return True

    async def delete(self, key: str) -> bool:
        async with self._lock:
            if self._store.pop(key, None) is None:
                return False
            self._stats.deletes += 1
            self._stats.size = len(self._store)
            return True

    async def clear(self) -> None:
        async with self._lock:
            self._store.clear()
            self._stats.size = 0
            self._capacity_warned = False

    async def size(self) -> int:
        return len(self._store)

    async def clean_expired(self) -> int:
        async with self._lock:
            now = self._clock()
            expired = [k for k, e in self._store.items() if e.is_expired(now)]
            for key in expired:
                del self._store[key]
            self._stats.evictions += len(expired)
            self._stats.size = len(self._store)
            return len(expired)

    async def stats(self) -> CacheStats:
        self._stats.size = len(self._store)
        return self._stats

    # ── Private helpers ──────────────────────────────────────────────

    def _check_capacity_warning(self) -> None:
        """Caller must hold lock."""
        ratio = len(self._store) / self._max_size
        if ratio >= self._capacity_warning_threshold and not self._capacity_warned:
            logger.warning(
                "Cache capacity at %.0f%% (%d/%d)",
                ratio * 100, len(self._store), self._max_size,
            )
            self._capacity_warned = True
        elif ratio < self._capacity_warning_threshold * 0.9:
            self._capacity_warned = False

    async def _sweeper(self) -> None:
        while True:
            await asyncio.sleep(self._sweep_interval)
            swept = await self.clean_expired()
            if swept:
                logger.debug("Expiry sweeper removed %d entries", swept)
