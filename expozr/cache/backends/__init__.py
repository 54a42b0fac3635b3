"""
Expozr cache - Storage backends.
"""

from .file import FileBackend
from .memory import MemoryBackend
from .null import NullBackend
from .sqlite import SQLiteBackend

__all__ = [
    "MemoryBackend",
    "FileBackend",
    "SQLiteBackend",
    "NullBackend",
]
