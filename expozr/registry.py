"""
Global cargo registry.

Process-wide, tamper-resistant record of loaded cargo:

    root[alias] -> SourceNamespace
    root[alias]["bundles"] -> BundleTable
    root[alias]["bundles"][cargo] -> payload

The top two levels are sealed: once written, a key can never be
replaced or deleted. The bundle table is updatable in place so a cargo
can be hot-reloaded.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Mapping, MutableMapping
from types import MappingProxyType
from typing import Any, Dict, Iterator, List, Optional

from .faults.domains import RegistryFault
from .loading.scope import host_lookup

logger = logging.getLogger("expozr.registry")

BUNDLES = "bundles"


class SealedNamespace(MutableMapping):
    """Mapping whose keys are write-once and never removable."""

    __slots__ = ("_data", "_label")

    def __init__(self, initial: Optional[Dict[str, Any]] = None, *, label: str = "namespace"):
        self._data: Dict[str, Any] = dict(initial or {})
        self._label = label

    def __getitem__(self, key: str) -> Any:
        return self._data[key]

    def __setitem__(self, key: str, value: Any) -> None:
        if key in self._data:
            raise RegistryFault(f"{self._label}.{key}", "already defined and cannot be replaced")
        self._data[key] = value

    def __delitem__(self, key: str) -> None:
        raise RegistryFault(f"{self._label}.{key}", "cannot be deleted")

    def __iter__(self) -> Iterator[str]:
        return iter(self._data)

    def __len__(self) -> int:
        return len(self._data)

    def __repr__(self) -> str:
        return f"<SealedNamespace {self._label} keys={list(self._data)}>"


class BundleTable(MutableMapping):
    """Updatable ``cargo -> payload`` table of one source."""

    __slots__ = ("_data",)

    def __init__(self):
        self._data: Dict[str, Any] = {}

    def __getitem__(self, key: str) -> Any:
        return self._data[key]

    def __setitem__(self, key: str, value: Any) -> None:
        self._data[key] = value

    def __delitem__(self, key: str) -> None:
        del self._data[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._data)

    def __len__(self) -> int:
        return len(self._data)

    def view(self) -> Mapping:
        return MappingProxyType(self._data)


class SourceNamespace(SealedNamespace):
    """Sealed per-source namespace holding the ``bundles`` slot."""

    __slots__ = ()

    def __init__(self, alias: str):
        super().__init__({BUNDLES: BundleTable()}, label=alias)

    @property
    def bundles(self) -> BundleTable:
        return self[BUNDLES]


class GlobalRegistry:
    """
    Canonical registry of loaded cargo.

    Only loaders write (``bind``/``unbind``); readers use ``lookup``.
    """

    def __init__(self):
        self._root = SealedNamespace(label="registry")
        self._lock = threading.Lock()

    @property
    def root(self) -> SealedNamespace:
        """The sealed top-level namespace; it cannot be rebound."""
        return self._root

    def _namespace(self, alias: str) -> SourceNamespace:
        namespace = self._root.get(alias)
        if namespace is None:
            namespace = SourceNamespace(alias)
            self._root[alias] = namespace
        return namespace

    def bind(self, alias: str, cargo: str, payload: Any) -> None:
        """Publish ``payload`` as ``alias``/``cargo``; replaces an older bundle."""
        with self._lock:
            table = self._namespace(alias).bundles
            if cargo in table:
                logger.debug("Rebinding %s/%s", alias, cargo)
            table[cargo] = payload

    def lookup(self, alias: str, cargo: str, *, use_host_scope: bool = True) -> Any:
        """
        Payload for ``alias``/``cargo``, or None.

        The canonical registry wins; the host-scope convenience binding
        is consulted only when the registry has no entry.
        """
        namespace = self._root.get(alias)
        if namespace is not None and cargo in namespace.bundles:
            return namespace.bundles[cargo]
        if use_host_scope:
            return host_lookup(alias, cargo)
        return None

    def has(self, alias: str, cargo: Optional[str] = None) -> bool:
        namespace = self._root.get(alias)
        if namespace is None:
            return False
        return cargo is None or cargo in namespace.bundles

    def sources(self) -> List[str]:
        return list(self._root)

    def bundles(self, alias: str) -> Mapping:
        """Read-only live view of a source's bundle table."""
        namespace = self._root.get(alias)
        if namespace is None:
            return MappingProxyType({})
        return namespace.bundles.view()

    def unbind(self, alias: str, cargo: str) -> bool:
        """Remove one bundle; the source namespace stays."""
        with self._lock:
            namespace = self._root.get(alias)
            if namespace is None or cargo not in namespace.bundles:
                return False
            del namespace.bundles[cargo]
            return True

    def __contains__(self, alias: str) -> bool:
        return alias in self._root

    def __repr__(self) -> str:
        return f"<GlobalRegistry sources={self.sources()}>"


_global_registry: Optional[GlobalRegistry] = None
_global_lock = threading.Lock()


def get_global_registry() -> GlobalRegistry:
    """The process-wide registry, created on first use."""
    global _global_registry
    if _global_registry is None:
        with _global_lock:
            if _global_registry is None:
                _global_registry = GlobalRegistry()
    return _global_registry
