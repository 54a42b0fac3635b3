"""
Utilities for Expozr.
"""

from . import checksum, version
from .urls import (
    INVENTORY_FILENAME,
    cargo_key,
    file_extension,
    inventory_url,
    is_valid_url,
    join_url,
    module_url,
    normalize_url,
)

__all__ = [
    "checksum",
    "version",
    "INVENTORY_FILENAME",
    "cargo_key",
    "file_extension",
    "inventory_url",
    "is_valid_url",
    "join_url",
    "module_url",
    "normalize_url",
]
