"""
Auto-loader - one-call setup for remote function libraries.

Loads a table of ``module name -> cargo name`` per source, unwraps the
common wrapper shapes and collects every callable into one flat table.

Usage:
    ```python
    context = await create_auto_loader({
        "sources": {
            "remote": {
                "url": "https://cdn.example.com/remote",
                "modules": {"math": "./math", "strings": "./strings"},
            },
        },
    })
    context.call("add", 2, 3)
    ```
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Mapping, Optional

from .config import SOURCE_TABLE_KEYS, _snake
from .faults.core import Fault, FaultDomain
from .faults.domains import CargoNotFoundFault, ConfigFault
from .loading.scope import bind_host
from .navigator import Navigator

logger = logging.getLogger("expozr.autoloader")

DEFAULT_NAMESPACE = "expozr"
AUTOLOADER_CACHE_TTL = 300_000


class LoaderStatus(str, Enum):
    LOADING = "loading"
    READY = "ready"
    ERROR = "error"


def _has_functions(value: Any) -> bool:
    return any(callable(v) for v in _members(value).values())


def _members(value: Any) -> Dict[str, Any]:
    if isinstance(value, Mapping):
        return {k: v for k, v in value.items() if isinstance(k, str)}
    if value is None or isinstance(value, (str, bytes, int, float, bool)):
        return {}
    return {k: getattr(value, k) for k in dir(value) if not k.startswith("_")}


def _get(value: Any, name: str) -> Any:
    if isinstance(value, Mapping):
        return value.get(name)
    return getattr(value, name, None)


def normalize_payload(payload: Any) -> Any:
    """
    Unwrap a loaded payload to the object carrying its functions.

    Tried in order: the payload itself, ``default``, ``exports`` and
    ``default.exports``. Falls back to the payload unchanged.
    """
    if _has_functions(payload):
        return payload
    default = _get(payload, "default")
    for candidate in (default, _get(payload, "exports"), _get(default, "exports")):
        if candidate is not None and _has_functions(candidate):
            return candidate
    return payload if payload is not None else {}


def extract_functions(module: Any) -> Dict[str, Callable]:
    return {name: value for name, value in _members(module).items() if callable(value)}


@dataclass
class LoaderContext:
    modules: Dict[str, Any] = field(default_factory=dict)
    functions: Dict[str, Callable] = field(default_factory=dict)
    status: LoaderStatus = LoaderStatus.LOADING
    error: Optional[BaseException] = None
    _settled: asyncio.Event = field(default_factory=asyncio.Event, repr=False)

    def _settle(self, status: LoaderStatus, error: Optional[BaseException] = None) -> None:
        self.status = status
        self.error = error
        self._settled.set()

    async def wait_ready(self, timeout: float = 30.0) -> None:
        """
        Wait until loading finished.

        Raises:
            The loading error, or ``asyncio.TimeoutError``
        """
        await asyncio.wait_for(self._settled.wait(), timeout)
        if self.status is LoaderStatus.ERROR:
            raise self.error or Fault(
                code="AUTOLOADER_FAILED",
                message="Auto-loader failed",
                domain=FaultDomain.LOADING,
            )

    def call(self, name: str, *args: Any, **kwargs: Any) -> Any:
        if self.status is not LoaderStatus.READY:
            raise Fault(
                code="AUTOLOADER_NOT_READY",
                message=f"Auto-loader not ready (status: {self.status.value})",
                domain=FaultDomain.LOADING,
                metadata={"function": name},
            )
        function = self.functions.get(name)
        if function is None:
            raise CargoNotFoundFault(name, "auto-loader", metadata={"function": name})
        return function(*args, **kwargs)


class AutoLoader:
    """
    Loads every configured module through a private ``Navigator``.

    Config keys: ``sources`` (alias -> ``{url, version, modules}``),
    ``namespace`` (host-scope alias, default ``"expozr"``),
    ``auto_expose`` (default True), ``timeout`` (ms), ``retries``.
    Extra keyword arguments go to the ``Navigator``.
    """

    def __init__(self, config: Mapping[str, Any], **navigator_kwargs: Any):
        # Module tables keep their keys verbatim, so only top-level keys are normalized.
        self.config = {_snake(str(k)): v for k, v in config.items()}
        self.sources: Dict[str, Mapping[str, Any]] = {}
        for key in SOURCE_TABLE_KEYS:
            if key in self.config:
                self.sources = dict(self.config[key] or {})
                break
        if not self.sources:
            raise ConfigFault("sources", "auto-loader needs at least one source")

        self.namespace = self.config.get("namespace") or DEFAULT_NAMESPACE
        self.auto_expose = self.config.get("auto_expose", True) is not False
        self.context = LoaderContext()
        self.navigator = Navigator(self._navigator_config(), **navigator_kwargs)

    def _navigator_config(self) -> Dict[str, Any]:
        sources = {}
        for alias, entry in self.sources.items():
            if not isinstance(entry, Mapping) or not entry.get("url"):
                raise ConfigFault(f"sources.{alias}", "requires a url")
            sources[alias] = {"url": entry["url"], "version": entry.get("version")}

        retry: Dict[str, Any] = {"delay": 1000}
        if self.config.get("retries") is not None:
            retry["attempts"] = int(self.config["retries"])
        return {
            "sources": {a: {k: v for k, v in s.items() if v is not None} for a, s in sources.items()},
            "cache": {"strategy": "memory", "ttl": AUTOLOADER_CACHE_TTL},
            "loading": {"timeout": self.config.get("timeout") or 10000, "retry": retry},
        }

    async def load(self) -> LoaderContext:
        context = self.context
        try:
            for alias, entry in self.sources.items():
                modules = entry.get("modules") or {}
                logger.info("Loading %d module(s) from source '%s'", len(modules), alias)
                for module_name, cargo in modules.items():
                    loaded = await self.navigator.load_cargo(alias, cargo)
                    module = normalize_payload(loaded.payload)
                    functions = extract_functions(module)
                    context.modules[module_name] = module
                    context.functions.update(functions)
                    logger.debug("Module '%s' exposes %s", module_name, sorted(functions))
        except Exception as e:
            logger.error("Auto-loader setup failed: %s", e)
            context._settle(LoaderStatus.ERROR, e)
            raise

        if self.auto_expose:
            bind_host(self.namespace, "modules", dict(context.modules))
            for name, function in context.functions.items():
                bind_host(self.namespace, name, function)
            logger.info(
                "Exposed %d function(s) under '%s'", len(context.functions), self.namespace
            )

        context._settle(LoaderStatus.READY)
        return context

    def call(self, name: str, *args: Any, **kwargs: Any) -> Any:
        return self.context.call(name, *args, **kwargs)

    async def close(self) -> None:
        await self.navigator.close()


async def create_auto_loader(config: Mapping[str, Any], **navigator_kwargs: Any) -> LoaderContext:
    """Build an ``AutoLoader`` and load everything; raises on the first failure."""
    loader = AutoLoader(config, **navigator_kwargs)
    try:
        return await loader.load()
    finally:
        await loader.close()
