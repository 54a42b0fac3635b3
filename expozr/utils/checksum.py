"""
Integrity digests for inventories and cached payloads.

Generates deterministic SHA-256 digests from a canonical JSON
representation (sorted keys, compact separators). Guards against
accidental corruption only; not a trust boundary.
"""

import hashlib
import json
from typing import Any


def canonical_json(data: Any) -> str:
    """Serialize ``data`` deterministically."""
    return json.dumps(
        data,
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
        default=str,
    )


def generate(data: Any) -> str:
    """
    Generate an integrity digest for ``data``.

    Returns:
        SHA-256 hex digest string
    """
    return hashlib.sha256(canonical_json(data).encode("utf-8")).hexdigest()


def verify(data: Any, expected: str) -> bool:
    """Check ``data`` against a digest produced by :func:`generate`."""
    if not expected:
        return False
    return generate(data) == expected.lower()


def generate_short(data: Any, length: int = 8) -> str:
    """Truncated digest for quick comparison."""
    return generate(data)[:length]
