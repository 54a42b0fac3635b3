"""
Format strategies - one way of turning fetched source into a payload
per packaging format.

    esm  -> NativeModuleStrategy
    umd  -> UniversalWrapperStrategy
    cjs  -> LegacySyncStrategy

Strategies are dispatched through a dict keyed by ``ModuleFormat``;
``auto`` candidates are routed by file-name detection.
"""

from __future__ import annotations

import asyncio
import importlib
import importlib.util
import logging
import sys
from dataclasses import dataclass
from types import ModuleType, SimpleNamespace
from typing import Any, Dict, Optional, Protocol, runtime_checkable

from ..faults.domains import NetworkFault
from .fetch import ModuleFetcher
from .formats import ModuleFormat
from .scope import (
    ExecutionScope,
    IncidentalNameFilter,
    _NON_IDENT,
    bind_host,
    slot_name,
)

logger = logging.getLogger("expozr.loading.strategies")


@dataclass
class LoadRequest:
    """
    What to load and how persistently.

    Attributes:
        source: Source alias
        cargo: Cargo name
        timeout_ms: Per-attempt timeout (None/0 = none)
        attempts: Attempts per candidate
        delay_ms: Base delay between attempts
        backoff: Delay multiplier
        suppress_errors: Log candidate failures as warnings
        slot: Agreed output slot override for universal wrappers
    """
    source: str
    cargo: str
    timeout_ms: Optional[float] = 30000
    attempts: int = 3
    delay_ms: float = 1000
    backoff: float = 1.0
    suppress_errors: bool = False
    slot: Optional[str] = None

    @property
    def resource(self) -> str:
        return f"{self.source}/{self.cargo}"


@runtime_checkable
class FormatStrategy(Protocol):
    """Loads one candidate location of a single format."""

    format: ModuleFormat

    @property
    def name(self) -> str:
        ...

    async def attempt_load(self, url: str, request: LoadRequest) -> Any:
        ...


def synthetic_module_name(source: str, cargo: str) -> str:
    """``sys.modules`` key for a natively loaded cargo."""
    alias = _NON_IDENT.sub("_", source).strip("_") or "source"
    return f"expozr_remote__{alias}__{slot_name(cargo)}"


# ============================================================================
# esm - native module
# ============================================================================

class NativeModuleStrategy:
    """
    Executes the source as a real module object.

    The module is registered in ``sys.modules`` under a synthetic name
    so code inside it can be pickled and introspected like any import.
    """

    format = ModuleFormat.ESM

    def __init__(self, fetcher: ModuleFetcher):
        self.fetcher = fetcher

    @property
    def name(self) -> str:
        return "native-module"

    async def attempt_load(self, url: str, request: LoadRequest) -> ModuleType:
        source = await self.fetcher.fetch_text(url)
        module_name = synthetic_module_name(request.source, request.cargo)

        spec = importlib.util.spec_from_loader(module_name, loader=None, origin=url)
        module = importlib.util.module_from_spec(spec)
        module.__file__ = url

        previous = sys.modules.get(module_name)
        sys.modules[module_name] = module
        try:
            exec(compile(source, url, "exec"), module.__dict__)
        except BaseException:
            if previous is not None:
                sys.modules[module_name] = previous
            else:
                sys.modules.pop(module_name, None)
            raise

        logger.debug("Executed %s as native module %s", url, module_name)
        return module


# ============================================================================
# umd - universal wrapper
# ============================================================================

class UniversalWrapperStrategy:
    """
    Executes the source in an isolated scope and reads the payload back.

    Args:
        fetcher: Module fetcher
        scope: Namespace builder
        name_filter: Drops incidental names from the candidate set
    """

    format = ModuleFormat.UMD

    def __init__(
        self,
        fetcher: ModuleFetcher,
        scope: Optional[ExecutionScope] = None,
        name_filter: Optional[IncidentalNameFilter] = None,
    ):
        self.fetcher = fetcher
        self.scope = scope or ExecutionScope()
        self.name_filter = name_filter or IncidentalNameFilter()

    @property
    def name(self) -> str:
        return "universal-wrapper"

    async def attempt_load(self, url: str, request: LoadRequest) -> Any:
        source = await self.fetcher.fetch_text(url)
        namespace = self.scope.build(url, request.cargo)
        baseline = set(namespace)

        exec(compile(source, url, "exec"), namespace)

        slot = request.slot or slot_name(request.cargo)
        found, payload = self.scope.resolve(namespace, baseline, slot, self.name_filter)
        if found is None:
            new_names = self.name_filter(k for k in namespace if k not in baseline)
            raise NetworkFault(
                url,
                message=f"No usable payload after executing '{url}' (expected '{slot}')",
                metadata={"slot": slot, "new_names": new_names},
            )

        bind_host(request.source, request.cargo, payload)
        logger.debug("Resolved %s payload from name '%s'", url, found)
        return payload


# ============================================================================
# cjs - legacy synchronous
# ============================================================================

class LegacySyncStrategy:
    """
    Fetches with a blocking client on a worker thread, then executes the
    source with ``module``, ``exports`` and ``require`` injected. The
    payload is ``module.exports``.
    """

    format = ModuleFormat.CJS

    def __init__(self, fetcher: ModuleFetcher):
        self.fetcher = fetcher

    @property
    def name(self) -> str:
        return "legacy-sync"

    async def attempt_load(self, url: str, request: LoadRequest) -> Any:
        source = await asyncio.to_thread(self.fetcher.fetch_text_sync, url)

        exports: Dict[str, Any] = {}
        module = SimpleNamespace(exports=exports, id=url, filename=url)
        namespace: Dict[str, Any] = {
            "__name__": f"expozr_cjs_{slot_name(request.cargo)}",
            "__file__": url,
            "module": module,
            "exports": exports,
            "require": importlib.import_module,
        }
        exec(compile(source, url, "exec"), namespace)

        payload = module.exports
        if payload is None or (payload is exports and not exports):
            raise NetworkFault(
                url,
                message=f"'{url}' did not populate module.exports",
            )
        return payload


def default_strategies(
    fetcher: ModuleFetcher,
    scope: Optional[ExecutionScope] = None,
    name_filter: Optional[IncidentalNameFilter] = None,
) -> Dict[ModuleFormat, FormatStrategy]:
    return {
        ModuleFormat.ESM: NativeModuleStrategy(fetcher),
        ModuleFormat.UMD: UniversalWrapperStrategy(fetcher, scope, name_filter),
        ModuleFormat.CJS: LegacySyncStrategy(fetcher),
    }
