"""
Expozr cache - Storage-backed cache for inventories and results.

Backends:
    memory  - ephemeral LRU store
    file    - single JSON document on disk, capacity-bounded
    sqlite  - transactional store over aiosqlite
    none    - no-op

Usage:
    ```python
    from expozr.cache import create_cache_backend

    cache = create_cache_backend("memory")
    await cache.set("inventory:https://cdn/app", data, ttl_ms=60_000)
    ```
"""

from .core import (
    DEFAULT_TTL_MS,
    CacheBackend,
    CacheConfig,
    CacheEntry,
    CacheStats,
    expiry_for,
    now_ms,
)
from .backends import FileBackend, MemoryBackend, NullBackend, SQLiteBackend
from .factory import (
    CACHE_STRATEGIES,
    create_auto_cache,
    create_cache_backend,
    detect_best_cache_strategy,
)
from .serializers import (
    CacheSerializer,
    JsonCacheSerializer,
    PickleCacheSerializer,
    get_serializer,
)
from ..faults.domains import CacheFault

__all__ = [
    "DEFAULT_TTL_MS",
    "CacheBackend",
    "CacheConfig",
    "CacheEntry",
    "CacheStats",
    "expiry_for",
    "now_ms",
    "MemoryBackend",
    "FileBackend",
    "SQLiteBackend",
    "NullBackend",
    "CACHE_STRATEGIES",
    "create_cache_backend",
    "create_auto_cache",
    "detect_best_cache_strategy",
    "CacheSerializer",
    "JsonCacheSerializer",
    "PickleCacheSerializer",
    "get_serializer",
    "CacheFault",
]
