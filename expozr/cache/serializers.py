"""
Expozr cache - Pluggable serializers for persistent value encoding.

JSON is the default (inventories are plain documents). Pickle is
available for trusted, process-local stores only.
"""

from __future__ import annotations

import json
import logging
import pickle
from typing import Any, Protocol, runtime_checkable

logger = logging.getLogger("expozr.cache.serializers")


@runtime_checkable
class CacheSerializer(Protocol):
    """Protocol for cache value serialization."""

    def serialize(self, value: Any) -> bytes:
        ...

    def deserialize(self, data: bytes) -> Any:
        ...


class JsonCacheSerializer:
    """JSON serializer - safe, human-readable."""

    def serialize(self, value: Any) -> bytes:
        try:
            return json.dumps(value, ensure_ascii=False).encode("utf-8")
        except (TypeError, ValueError, OverflowError) as e:
            logger.warning("JSON serialization failed: %s", e)
            raise

    def deserialize(self, data: bytes) -> Any:
        try:
            return json.loads(data.decode("utf-8"))
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            logger.warning("JSON deserialization failed: %s", e)
            raise


class PickleCacheSerializer:
    """
    Pickle serializer - supports arbitrary Python objects.

    WARNING: Only use with trusted data. Pickle can execute
    arbitrary code during deserialization.
    """

    def serialize(self, value: Any) -> bytes:
        try:
            return pickle.dumps(value, protocol=pickle.HIGHEST_PROTOCOL)
        except (pickle.PicklingError, TypeError, AttributeError) as e:
            logger.warning("Pickle serialization failed: %s", e)
            raise

    def deserialize(self, data: bytes) -> Any:
        try:
            return pickle.loads(data)
        except (pickle.UnpicklingError, EOFError) as e:
            logger.warning("Pickle deserialization failed: %s", e)
            raise


def get_serializer(name: str = "json") -> CacheSerializer:
    """
    Factory for serializer instances.

    Args:
        name: "json" or "pickle"
    """
    serializers = {
        "json": JsonCacheSerializer,
        "pickle": PickleCacheSerializer,
    }

    cls = serializers.get(name)
    if cls is None:
        raise ValueError(f"Unknown serializer: {name}. Options: {list(serializers.keys())}")

    return cls()
