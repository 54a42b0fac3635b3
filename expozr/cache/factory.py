"""
Expozr cache - Backend factory.

Builds a ``CacheBackend`` from a strategy name and a ``CacheConfig``.
"""

from __future__ import annotations

import logging
import os
from typing import Optional

from ..faults.domains import CacheFault
from .core import CacheBackend, CacheConfig

logger = logging.getLogger("expozr.cache.factory")

CACHE_STRATEGIES = ("memory", "file", "sqlite", "none")


def create_cache_backend(
    strategy: Optional[str] = None,
    config: Optional[CacheConfig] = None,
) -> CacheBackend:
    """
    Factory: create a cache backend.

    Args:
        strategy: "memory", "file", "sqlite" or "none"
            (defaults to ``config.strategy``)
        config: CacheConfig instance

    Raises:
        CacheFault: For an unknown strategy
    """
    config = config or CacheConfig()
    kind = (strategy or config.strategy or "memory").lower()

    if kind == "memory":
        from .backends.memory import MemoryBackend

        return MemoryBackend(max_size=config.max_size, sweep_interval=config.sweep_interval)

    elif kind == "file":
        from .backends.file import FileBackend

        return FileBackend(
            path=config.directory or ".",
            prefix=config.key_prefix,
            max_bytes=config.max_bytes,
        )

    elif kind == "sqlite":
        from .backends.sqlite import SQLiteBackend

        return SQLiteBackend(
            db_path=config.directory or ":memory:",
            serializer=config.serializer,
        )

    elif kind in ("none", "null"):
        from .backends.null import NullBackend

        return NullBackend()

    raise CacheFault(
        "create",
        f"Unknown cache strategy: {strategy or config.strategy}",
        metadata={"options": list(CACHE_STRATEGIES)},
    )


def detect_best_cache_strategy(directory: Optional[str] = None) -> str:
    """
    Pick the most capable strategy available.

    A writable cache directory allows the persistent SQLite store;
    otherwise the in-memory store is used.
    """
    if directory and os.path.isdir(directory) and os.access(directory, os.W_OK):
        return "sqlite"
    return "memory"


def create_auto_cache(config: Optional[CacheConfig] = None) -> CacheBackend:
    """Create a backend using :func:`detect_best_cache_strategy`."""
    config = config or CacheConfig()
    strategy = detect_best_cache_strategy(config.directory)
    logger.debug("Auto-selected cache strategy: %s", strategy)
    return create_cache_backend(strategy, config)
