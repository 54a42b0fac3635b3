"""
Execution scopes for universal-wrapper cargo.

A universal-wrapper artifact is plain Python source run inside an
isolated namespace dict. The payload is read back from an agreed output
slot, or else from the first new, non-incidental name holding a
module-like value.
"""

from __future__ import annotations

import builtins
import inspect
import re
import threading
from collections.abc import Mapping
from types import MappingProxyType, ModuleType
from typing import Any, Dict, Iterable, List, Optional, Tuple

_NON_IDENT = re.compile(r"[^0-9A-Za-z_]+")
_NOISE_SUFFIXES = (".module.py", ".common.py", ".umd.py", ".cjs.py", ".py")

_PRIMITIVES = (str, bytes, bytearray, int, float, complex, bool, type(None))


def slot_name(cargo: str) -> str:
    """
    Agreed output slot for a cargo.

    Path segments and extension noise are dropped, and the remainder is
    made a valid identifier: ``"./lib/math-utils.umd.py"`` -> ``"math_utils"``.
    """
    tail = cargo.replace("\\", "/").rstrip("/").rsplit("/", 1)[-1]
    lowered = tail.lower()
    for suffix in _NOISE_SUFFIXES:
        if lowered.endswith(suffix):
            tail = tail[: -len(suffix)]
            break
    ident = _NON_IDENT.sub("_", tail).strip("_") or "cargo"
    if ident[0].isdigit():
        ident = f"_{ident}"
    return ident


def is_module_like(value: Any) -> bool:
    """Module, non-empty mapping, class, callable or object with public attributes."""
    if isinstance(value, _PRIMITIVES):
        return False
    if isinstance(value, ModuleType) or inspect.isclass(value) or callable(value):
        return True
    if isinstance(value, Mapping):
        return len(value) > 0
    if isinstance(value, (list, tuple, set, frozenset)):
        return False
    return any(not name.startswith("_") for name in dir(value))


class IncidentalNameFilter:
    """
    Drops names a script defines incidentally.

    Dunders, ``_``-private names and known instrumentation prefixes are
    never considered payload candidates.
    """

    DEFAULT_PREFIXES: Tuple[str, ...] = (
        "__coverage__",
        "webpackHotUpdate",
        "webpackChunk",
        "pydevd",
        "_pytest",
        "__pycache__",
    )

    def __init__(self, prefixes: Iterable[str] = DEFAULT_PREFIXES, extra: Iterable[str] = ()):
        self.prefixes = tuple(prefixes) + tuple(extra)

    def is_incidental(self, name: str) -> bool:
        if name.startswith("_"):
            return True
        return name.startswith(self.prefixes)

    def __call__(self, names: Iterable[str]) -> List[str]:
        return [n for n in names if not self.is_incidental(n)]


class ExecutionScope:
    """
    Builds the isolated namespace a universal-wrapper artifact runs in.

    Args:
        injected: Extra names made available to every artifact
    """

    def __init__(self, injected: Optional[Dict[str, Any]] = None):
        self.injected = dict(injected or {})

    def build(self, url: str, cargo: str) -> Dict[str, Any]:
        namespace: Dict[str, Any] = {
            "__name__": f"expozr_umd_{slot_name(cargo)}",
            "__file__": url,
            "__builtins__": builtins,
        }
        namespace.update(self.injected)
        return namespace

    @staticmethod
    def resolve(
        namespace: Dict[str, Any],
        baseline: Iterable[str],
        slot: str,
        name_filter: IncidentalNameFilter,
    ) -> Tuple[Optional[str], Any]:
        """
        Locate the payload after execution.

        Returns:
            ``(name, payload)``; ``(None, None)`` when nothing usable exists
        """
        value = namespace.get(slot)
        if value is not None and is_module_like(value):
            return slot, value

        before = set(baseline)
        for name in name_filter(k for k in namespace if k not in before):
            value = namespace[name]
            if is_module_like(value):
                return name, value
        return None, None


# ============================================================================
# Host scope (process-wide convenience bindings)
# ============================================================================

_host_scope: Dict[str, Dict[str, Any]] = {}
_host_lock = threading.Lock()


def bind_host(alias: str, cargo: str, payload: Any) -> None:
    """Record ``payload`` under ``alias``/``cargo`` in the host scope."""
    with _host_lock:
        _host_scope.setdefault(alias, {})[cargo] = payload


def host_lookup(alias: str, cargo: str) -> Any:
    return _host_scope.get(alias, {}).get(cargo)


def host_scope() -> Mapping:
    """Read-only view of the host scope."""
    return MappingProxyType(_host_scope)


def clear_host_scope() -> None:
    with _host_lock:
        _host_scope.clear()
