"""
Expozr cache - Core types and the backend contract.

Defines the data structures shared by every storage backend and the
asynchronous ``CacheBackend`` contract the Navigator talks to.

Expiry is expressed in epoch milliseconds so entries survive process
restarts in persistent backends; ``0`` means the entry never expires.
"""

from __future__ import annotations

import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional

Clock = Callable[[], int]


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


def expiry_for(ttl_ms: Optional[float], clock: Clock = now_ms) -> int:
    """Absolute expiry for a TTL; ``None``/``0`` yields ``0`` (never)."""
    if not ttl_ms or ttl_ms <= 0:
        return 0
    return clock() + int(ttl_ms)


# ============================================================================
# Cache Entry
# ============================================================================

@dataclass(slots=True)
class CacheEntry:
    """Single stored value with its absolute expiry."""
    key: str
    value: Any
    expires_at: int = 0
    created_at: int = field(default_factory=now_ms)

    def is_expired(self, now: Optional[int] = None) -> bool:
        if self.expires_at == 0:
            return False
        return (now if now is not None else now_ms()) >= self.expires_at

    def ttl_remaining(self, now: Optional[int] = None) -> Optional[int]:
        """Remaining TTL in milliseconds, or None if no expiry."""
        if self.expires_at == 0:
            return None
        return max(0, self.expires_at - (now if now is not None else now_ms()))

    def to_record(self) -> Dict[str, Any]:
        return {"value": self.value, "expires": self.expires_at}

    @classmethod
    def from_record(cls, key: str, record: Dict[str, Any]) -> "CacheEntry":
        return cls(key=key, value=record.get("value"), expires_at=int(record.get("expires") or 0))

    def __repr__(self) -> str:
        ttl = self.ttl_remaining()
        suffix = f", ttl={ttl}ms" if ttl is not None else ""
        return f"<CacheEntry key={self.key!r}{suffix}>"


# ============================================================================
# Cache Stats
# ============================================================================

@dataclass
class CacheStats:
    """Aggregate cache statistics for observability."""
    hits: int = 0
    misses: int = 0
    sets: int = 0
    deletes: int = 0
    evictions: int = 0
    errors: int = 0
    size: int = 0
    max_size: int = 0
    backend: str = "unknown"

    @property
    def hit_rate(self) -> float:
        """Cache hit rate as a percentage."""
        total = self.hits + self.misses
        if total == 0:
            return 0.0
        return (self.hits / total) * 100.0

    @property
    def total_operations(self) -> int:
        return self.hits + self.misses + self.sets + self.deletes

    def to_dict(self) -> Dict[str, Any]:
        return {
            "hits": self.hits,
            "misses": self.misses,
            "sets": self.sets,
            "deletes": self.deletes,
            "evictions": self.evictions,
            "errors": self.errors,
            "hit_rate": round(self.hit_rate, 2),
            "size": self.size,
            "max_size": self.max_size,
            "backend": self.backend,
            "total_operations": self.total_operations,
        }


# ============================================================================
# Cache Configuration
# ============================================================================

DEFAULT_TTL_MS = 3_600_000
DEFAULT_MAX_BYTES = 5 * 1024 * 1024


@dataclass
class CacheConfig:
    """
    Cache configuration.

    ``strategy`` selects the backend: "memory", "file", "sqlite" or
    "none". ``ttl`` is in milliseconds.
    """
    strategy: str = "memory"
    ttl: int = DEFAULT_TTL_MS
    max_size: int = 100              # entries, memory backend
    max_bytes: int = DEFAULT_MAX_BYTES  # file backend capacity
    directory: Optional[str] = None  # persistent backends
    key_prefix: str = "expozr:"
    serializer: str = "json"         # sqlite value encoding
    sweep_interval: float = 0.0      # seconds, 0 = lazy expiry only

    def to_dict(self) -> Dict[str, Any]:
        return {
            "strategy": self.strategy,
            "ttl": self.ttl,
            "max_size": self.max_size,
            "max_bytes": self.max_bytes,
            "directory": self.directory,
            "key_prefix": self.key_prefix,
            "serializer": self.serializer,
            "sweep_interval": self.sweep_interval,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CacheConfig":
        known = {k: v for k, v in (data or {}).items() if k in cls.__dataclass_fields__}
        return cls(**known)


# ============================================================================
# Cache Backend Contract
# ============================================================================

class CacheBackend(ABC):
    """
    Abstract cache backend - defines the storage contract.

    All operations are asynchronous. Backends enforce their own TTL:
    an expired ``get`` deletes the entry and reports a miss. I/O
    failures surface as ``CacheFault``.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        ...

    async def initialize(self) -> None:
        """Acquire backend resources."""

    async def shutdown(self) -> None:
        """Release backend resources."""

    @abstractmethod
    async def get(self, key: str) -> Optional[Any]:
        """Return the stored value, or None if missing or expired."""
        ...

    @abstractmethod
    async def set(self, key: str, value: Any, ttl_ms: Optional[float] = None) -> None:
        """
        Store a value.

        Args:
            key: Cache key
            value: Value to store
            ttl_ms: Time-to-live in milliseconds (None/0 = no expiry)
        """
        ...

    @abstractmethod
    async def has(self, key: str) -> bool:
        ...

    @abstractmethod
    async def delete(self, key: str) -> bool:
        """Delete entry by key; True if it existed."""
        ...

    @abstractmethod
    async def clear(self) -> None:
        ...

    @abstractmethod
    async def size(self) -> int:
        """Number of stored (possibly not yet swept) entries."""
        ...

    async def clean_expired(self) -> int:
        """Remove expired entries; returns how many were removed."""
        return 0

    @abstractmethod
    async def stats(self) -> CacheStats:
        ...

    async def __aenter__(self) -> "CacheBackend":
        await self.initialize()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.shutdown()
