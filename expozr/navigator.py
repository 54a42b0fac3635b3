"""
Navigator - load-coordination engine.

Resolves a source's inventory, orders candidate locations for a cargo,
drives the format-ordered loader, and publishes results to the global
registry, the result table and the event bus.

Usage:
    ```python
    from expozr import Navigator

    async with Navigator({"sources": {"remote": "https://cdn.example.com/remote"}}) as nav:
        loaded = await nav.load_cargo("remote", "./math")
        loaded.payload.add(1, 2)
    ```
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple, Union

from .cache.core import CacheBackend, CacheStats, Clock, now_ms
from .cache.factory import create_cache_backend
from .config import NavigatorConfig, RetryConfig, normalize_keys
from .events import EventBus, EventName, Listener, NavigatorEvent
from .faults.domains import (
    CacheFault,
    CargoNotFoundFault,
    DependencyResolutionFault,
    InvalidManifestFault,
    NavigatorResetFault,
    NetworkFault,
    SourceNotFoundFault,
    VersionMismatchFault,
)
from .loading.fetch import ModuleFetcher
from .loading.formats import (
    ENVIRONMENT_DEFAULT_ORDER,
    SUPPORTED_FORMATS,
    FormatCandidate,
    FormatPreference,
    LoadingStrategy,
    ModuleFormat,
    RuntimeEnvironment,
    detect_environment,
    detect_format_from_entry,
    generate_format_urls,
    order_candidates,
)
from .loading.loader import FormatOrderedLoader, extract_exports
from .loading.retry import Sleep, with_retry, with_timeout
from .loading.strategies import FormatStrategy, LoadRequest
from .manifest import (
    CargoDescriptor,
    Inventory,
    LoadedCargo,
    SourceReference,
    parse_inventory,
    verify_integrity,
)
from .registry import GlobalRegistry, get_global_registry
from .utils.urls import cargo_key, inventory_url, module_url
from .utils.version import is_valid, satisfies

logger = logging.getLogger("expozr.navigator")

INVENTORY_CACHE_PREFIX = "inventory:"


@dataclass
class LoadOptions:
    """
    Per-call overrides for ``Navigator.load_cargo``.

    Unset fields fall back to the navigator configuration.
    """
    module_format: Optional[ModuleFormat] = None
    fallback_formats: Sequence[ModuleFormat] = field(default_factory=tuple)
    strategy: Optional[LoadingStrategy] = None
    automatic_module_discovery: Optional[bool] = None
    suppress_errors: Optional[bool] = None
    timeout: Optional[float] = None
    retry: Optional[RetryConfig] = None
    exports: Optional[Sequence[str]] = None
    use_cache: bool = True

    def __post_init__(self):
        self.module_format = ModuleFormat.coerce(self.module_format)
        self.fallback_formats = tuple(
            f for f in (ModuleFormat.coerce(x) for x in self.fallback_formats or ()) if f is not None
        )
        if self.strategy is not None:
            self.strategy = LoadingStrategy.coerce(self.strategy)
        if isinstance(self.retry, Mapping):
            self.retry = RetryConfig.from_dict(self.retry)
        if isinstance(self.exports, str):
            self.exports = [self.exports]

    @classmethod
    def coerce(cls, value: Union["LoadOptions", Mapping[str, Any], None]) -> "LoadOptions":
        if value is None:
            return cls()
        if isinstance(value, cls):
            return value
        data = normalize_keys(value)
        known = {k: v for k, v in data.items() if k in cls.__dataclass_fields__}
        return cls(**known)


class Navigator:
    """
    Orchestrates cargo loading for a set of configured sources.

    Args:
        config: ``NavigatorConfig`` or a plain mapping
        cache: Storage-backed cache (default: built from ``config.cache``)
        fetcher: Module fetcher (default: httpx-backed)
        registry: Global registry (default: the process-wide one)
        events: Event bus
        strategies: Format strategy overrides
        clock: Millisecond clock for the in-process inventory table
        sleep: Retry sleep override
    """

    def __init__(
        self,
        config: Union[NavigatorConfig, Mapping[str, Any], None] = None,
        *,
        cache: Optional[CacheBackend] = None,
        fetcher: Optional[ModuleFetcher] = None,
        registry: Optional[GlobalRegistry] = None,
        events: Optional[EventBus] = None,
        strategies: Optional[Dict[ModuleFormat, FormatStrategy]] = None,
        clock: Clock = now_ms,
        sleep: Optional[Sleep] = None,
    ):
        if not isinstance(config, NavigatorConfig):
            config = NavigatorConfig.from_dict(config or {})
        self.config = config

        self._owns_fetcher = fetcher is None
        self.fetcher = fetcher or ModuleFetcher(timeout=(config.loading.timeout or 30000) / 1000)
        self._owns_cache = cache is None
        self.cache = cache or create_cache_backend(config.cache.strategy, config.cache)
        self._retired_caches: List[CacheBackend] = []
        self._cache_ready = False

        self.registry = registry or get_global_registry()
        self.events = events or EventBus()
        self.loader = FormatOrderedLoader(self.fetcher, strategies, sleep=sleep)
        self._sleep = sleep
        self._clock = clock

        self._sources: Dict[str, SourceReference] = {}
        self._environment = RuntimeEnvironment.MODULE
        self._apply_config()

        # alias -> (inventory, base url, expires_at ms, served from storage cache)
        self._inventories: Dict[str, Tuple[Inventory, str, int, bool]] = {}
        self._loaded: Dict[str, LoadedCargo] = {}
        self._inflight: Dict[str, asyncio.Future] = {}
        # Bumped by reset(); loads started under an older generation are discarded.
        self._generation = 0

    # ── Configuration ───────────────────────────────────────────────

    def _apply_config(self) -> None:
        self._sources = dict(self.config.sources)
        forced = (self.config.environment or "").lower()
        if forced in (RuntimeEnvironment.MODULE.value, RuntimeEnvironment.SCRIPT.value):
            self._environment = RuntimeEnvironment(forced)
        else:
            self._environment = detect_environment()

    @property
    def environment(self) -> RuntimeEnvironment:
        return self._environment

    def update_config(self, partial: Mapping[str, Any]) -> None:
        """Deep-merge ``partial`` into the live configuration."""
        previous_cache = self.config.cache
        self.config = self.config.merged(partial)
        self._apply_config()

        if self._owns_cache and self.config.cache.strategy != previous_cache.strategy:
            self._retired_caches.append(self.cache)
            self.cache = create_cache_backend(self.config.cache.strategy, self.config.cache)
            self._cache_ready = False
            logger.info("Cache strategy changed to '%s'", self.config.cache.strategy)

    def _source_ref(self, source: str) -> SourceReference:
        ref = self._sources.get(source)
        if ref is None:
            raise SourceNotFoundFault(source)
        return ref

    # ── Events ──────────────────────────────────────────────────────

    def on(self, event: EventName, listener: Listener) -> Callable[[], None]:
        return self.events.on(event, listener)

    def off(self, event: EventName, listener: Listener) -> bool:
        return self.events.off(event, listener)

    # ── Cache helpers ───────────────────────────────────────────────

    async def _ensure_cache(self) -> None:
        if not self._cache_ready:
            await self.cache.initialize()
            self._cache_ready = True

    async def _cache_read(self, key: str) -> Any:
        """Cache read; failures degrade to a miss."""
        try:
            await self._ensure_cache()
            return await self.cache.get(key)
        except CacheFault as e:
            logger.warning("Cache read for '%s' failed, treating as miss: %s", key, e)
            return None

    async def _cache_write(self, key: str, value: Any) -> None:
        await self._ensure_cache()
        await self.cache.set(key, value, self.config.cache.ttl)

    # ── Inventory ───────────────────────────────────────────────────

    async def get_inventory(self, source: str) -> Inventory:
        """
        Resolve a source's inventory.

        Served from the in-process table, then the storage-backed cache,
        then the network (primary location, then fallback).

        Raises:
            SourceNotFoundFault, NetworkFault, InvalidManifestFault,
            VersionMismatchFault, CacheFault (write failures)
        """
        inventory, _base, _from_cache = await self._resolve_inventory(source)
        return inventory

    async def _resolve_inventory(self, source: str) -> Tuple[Inventory, str, bool]:
        ref = self._source_ref(source)
        generation = self._generation

        held = self._inventories.get(source)
        if held is not None:
            inventory, base, expires_at, from_cache = held
            if expires_at == 0 or self._clock() < expires_at:
                return inventory, base, from_cache
            del self._inventories[source]

        key = INVENTORY_CACHE_PREFIX + inventory_url(ref.url)
        record = await self._cache_read(key)
        self._check_generation(generation, source)
        from_cache = isinstance(record, Mapping) and "inventory" in record
        if from_cache:
            self.events.emit(NavigatorEvent.CACHE_HIT, {"key": key})
            base = record.get("url") or ref.url
            inventory = self._accept(source, ref, record["inventory"])
            # The in-process copy never outlives the stored record.
            expires_at = int(record.get("expires_at") or 0)
        else:
            self.events.emit(NavigatorEvent.CACHE_MISS, {"key": key})
            base, document = await self._fetch_inventory(source, ref)
            self._check_generation(generation, source)
            inventory = self._accept(source, ref, document)
            ttl = self.config.cache.ttl
            expires_at = self._clock() + int(ttl) if ttl and ttl > 0 else 0
            await self._cache_write(
                key, {"url": base, "inventory": document, "expires_at": expires_at}
            )
            self._check_generation(generation, source)

        self._inventories[source] = (inventory, base, expires_at, from_cache)
        self.events.emit(NavigatorEvent.SOURCE_LOADED, {"source": source, "inventory": inventory})
        return inventory, base, from_cache

    async def _fetch_inventory(self, source: str, ref: SourceReference) -> Tuple[str, Any]:
        retry = self.config.loading.retry
        locations = [ref.url] + ([ref.fallback] if ref.fallback else [])
        last_error: Optional[Exception] = None

        for base in locations:
            url = inventory_url(base)
            try:
                document = await self._with_retry_timeout(
                    lambda: self.fetcher.fetch_json(url), url, retry
                )
                return base, document
            except NetworkFault as e:
                last_error = e
                if base != locations[-1]:
                    logger.warning("Inventory for '%s' unavailable at %s, trying fallback: %s", source, url, e)

        assert last_error is not None
        raise last_error

    async def _with_retry_timeout(self, factory, resource: str, retry: RetryConfig) -> Any:
        return await with_retry(
            lambda: with_timeout(factory(), self.config.loading.timeout, resource),
            attempts=retry.attempts,
            delay_ms=retry.delay,
            backoff=retry.backoff,
            sleep=self._sleep,
        )

    def _accept(self, source: str, ref: SourceReference, document: Any) -> Inventory:
        inventory = parse_inventory(document)

        if self.config.loading.verify_integrity and not verify_integrity(document):
            raise InvalidManifestFault(
                "inventory",
                f"integrity digest mismatch for source '{source}'",
                metadata={"source": source},
            )

        if ref.version and not satisfies(inventory.source.version, ref.version):
            raise VersionMismatchFault(
                ref.version,
                inventory.source.version,
                metadata={"source": source},
            )
        return inventory

    # ── Cargo loading ───────────────────────────────────────────────

    async def load_cargo(
        self,
        source: str,
        name: str,
        options: Union[LoadOptions, Mapping[str, Any], None] = None,
    ) -> LoadedCargo:
        """
        Load cargo ``name`` from ``source``.

        Repeated calls return the same ``LoadedCargo``; concurrent
        first-time calls share a single load.

        Raises:
            SourceNotFoundFault, CargoNotFoundFault, NetworkFault,
            LoadTimeoutFault, InvalidManifestFault, VersionMismatchFault,
            DependencyResolutionFault
        """
        options = LoadOptions.coerce(options)
        key = cargo_key(source, name)

        if options.use_cache:
            existing = self._loaded.get(key)
            if existing is not None:
                return existing

        # No await between lookup and insert: the check-and-claim is atomic.
        pending = self._inflight.get(key)
        if pending is not None:
            return await asyncio.shield(pending)

        future: asyncio.Future = asyncio.get_running_loop().create_future()
        self._inflight[key] = future
        try:
            loaded = await self._load(source, name, key, options)
        except asyncio.CancelledError:
            if not future.done():
                future.cancel()
            raise
        except Exception as e:
            if not future.done():
                future.set_exception(e)
                # Mark retrieved; joiners still receive it.
                future.exception()
            raise
        else:
            if not future.done():
                future.set_result(loaded)
            return loaded
        finally:
            if self._inflight.get(key) is future:
                del self._inflight[key]

    async def _load(self, source: str, name: str, key: str, options: LoadOptions) -> LoadedCargo:
        generation = self._generation
        self.events.emit(NavigatorEvent.CARGO_LOADING, {"source": source, "cargo": name})
        try:
            inventory, base, from_cache = await self._resolve_inventory(source)
            descriptor = inventory.get(name)
            if descriptor is None:
                raise CargoNotFoundFault(name, source)
            self._check_dependencies(descriptor, inventory)

            discovery = self._discovery_enabled(options)
            candidates = self.candidates_for(base, descriptor, options)
            result = await self.loader.load(candidates, self._request(source, name, options))
            payload = extract_exports(result.payload, options.exports, cargo=name, source=source)

            strategy = options.strategy or self.config.module_system.strategy
            if discovery and result.candidate.format is ModuleFormat.AUTO:
                strategy = LoadingStrategy.FALLBACK

            self._check_generation(generation, key)
            self.registry.bind(source, name, payload)
            loaded = LoadedCargo(
                payload=payload,
                descriptor=descriptor,
                source=inventory.source,
                served_from_cache=from_cache,
                format_used=result.format_used,
                strategy_used=strategy,
            )
            self._loaded[key] = loaded
        except Exception as e:
            self.events.emit(NavigatorEvent.CARGO_ERROR, {"source": source, "cargo": name, "error": e})
            raise

        self.events.emit(
            NavigatorEvent.CARGO_LOADED,
            {"source": source, "cargo": name, "payload": payload},
        )
        return loaded

    def _check_generation(self, generation: int, resource: str) -> None:
        if generation != self._generation:
            raise NavigatorResetFault(resource)

    def _discovery_enabled(self, options: LoadOptions) -> bool:
        if options.automatic_module_discovery is not None:
            return options.automatic_module_discovery
        return self.config.module_system.automatic_module_discovery

    def _request(self, source: str, name: str, options: LoadOptions) -> LoadRequest:
        retry = options.retry or self.config.loading.retry
        suppress = options.suppress_errors
        if suppress is None:
            suppress = self.config.module_system.suppress_errors
        return LoadRequest(
            source=source,
            cargo=name,
            timeout_ms=options.timeout if options.timeout is not None else self.config.loading.timeout,
            attempts=retry.attempts,
            delay_ms=retry.delay,
            backoff=retry.backoff,
            suppress_errors=suppress,
        )

    def candidates_for(
        self,
        base_url: str,
        descriptor: CargoDescriptor,
        options: Optional[LoadOptions] = None,
    ) -> List[FormatCandidate]:
        """Ordered ``(format, url)`` candidates for one cargo."""
        options = options or LoadOptions()
        hint = descriptor.module_format
        if options.module_format and hint and options.module_format is not hint:
            logger.warning(
                "Requested format '%s' overrides published format '%s' for '%s'",
                options.module_format.value, hint.value, descriptor.name,
            )

        if not self._discovery_enabled(options):
            supported = SUPPORTED_FORMATS[self._environment]
            wanted = (options.module_format, hint, detect_format_from_entry(descriptor.entry))
            fmt = next((f for f in wanted if f is not None and f in supported), None)
            if fmt is None:
                fmt = ENVIRONMENT_DEFAULT_ORDER[self._environment][0]
                logger.warning(
                    "No format usable in the %s environment for '%s'; loading its entry as '%s'",
                    self._environment.value, descriptor.name, fmt.value,
                )
            return [FormatCandidate(fmt, module_url(base_url, descriptor.entry))]

        module_system = self.config.module_system
        preference = FormatPreference(
            module_format=options.module_format,
            fallback_formats=options.fallback_formats,
            hint=hint,
            primary=module_system.primary,
            fallbacks=module_system.fallbacks,
        )
        return order_candidates(
            generate_format_urls(base_url, descriptor.entry),
            preference,
            self._environment,
        )

    @staticmethod
    def _check_dependencies(descriptor: CargoDescriptor, inventory: Inventory) -> None:
        """Dependencies naming sibling cargo (or shared versions) must satisfy their range."""
        for dependency, required in descriptor.dependencies.items():
            sibling = inventory.get(dependency)
            if sibling is not None:
                found = sibling.version
            else:
                shared = inventory.shared_dependencies.get(dependency)
                if isinstance(shared, Mapping):
                    shared = shared.get("version")
                if not isinstance(shared, str) or not is_valid(shared):
                    continue
                found = shared
            if not satisfies(found, str(required)):
                raise DependencyResolutionFault(
                    dependency,
                    f"requires '{required}', found '{found}'",
                    metadata={"cargo": descriptor.name},
                )

    # ── Preload / reset ─────────────────────────────────────────────

    async def preload(self, source: str, names: Optional[Sequence[str]] = None) -> None:
        """
        Best-effort concurrent loading; never raises.

        Without ``names`` every inventory cargo is loaded, honouring
        ``loading.preload.include``/``exclude``.
        """
        if names is None:
            try:
                inventory = await self.get_inventory(source)
            except Exception as e:
                logger.warning("Preload of '%s' skipped: %s", source, e)
                return
            preload = self.config.loading.preload
            names = [
                n for n in inventory.cargo
                if (not preload.include or n in preload.include) and n not in preload.exclude
            ]

        results = await asyncio.gather(
            *(self.load_cargo(source, n) for n in names),
            return_exceptions=True,
        )
        for name, result in zip(names, results):
            if isinstance(result, BaseException):
                logger.warning("Preload of '%s/%s' failed: %s", source, name, result)

    async def reset(self) -> None:
        """Clear inventories, results, the cache and in-flight loads.

        Callers still waiting on an in-flight load receive a
        NavigatorResetFault, and the abandoned load never binds its payload.
        """
        self._generation += 1
        self._inventories.clear()
        self._loaded.clear()
        for key, future in self._inflight.items():
            if not future.done():
                future.set_exception(NavigatorResetFault(key))
                # Mark retrieved so an unawaited future does not log.
                future.exception()
        self._inflight.clear()
        await self._ensure_cache()
        await self.cache.clear()
        self.events.emit(NavigatorEvent.NAVIGATOR_RESET, {})
        logger.info("Navigator reset")

    # ── Introspection ───────────────────────────────────────────────

    def is_loaded(self, source: str, name: str) -> bool:
        return cargo_key(source, name) in self._loaded

    def get_loaded_cargo(self, source: Optional[str] = None) -> Dict[str, LoadedCargo]:
        if source is None:
            return dict(self._loaded)
        prefix = cargo_key(source, "")
        return {k: v for k, v in self._loaded.items() if k.startswith(prefix)}

    def get_loaded_sources(self) -> List[str]:
        return list(self._inventories)

    async def get_cache_stats(self) -> CacheStats:
        return await self.cache.stats()

    # ── Lifecycle ───────────────────────────────────────────────────

    async def close(self) -> None:
        for cache in self._retired_caches:
            await cache.shutdown()
        self._retired_caches.clear()
        if self._owns_cache:
            await self.cache.shutdown()
            self._cache_ready = False
        if self._owns_fetcher:
            await self.fetcher.close()

    async def __aenter__(self) -> "Navigator":
        await self._ensure_cache()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()


def create_navigator(config: Union[NavigatorConfig, Mapping[str, Any], None] = None, **kwargs) -> Navigator:
    return Navigator(config, **kwargs)


async def load_cargo_from(
    url: str,
    name: str,
    options: Union[LoadOptions, Mapping[str, Any], None] = None,
    **navigator_kwargs: Any,
) -> Any:
    """
    One-off load of ``name`` from the source at ``url``.

    Returns the payload; the source is registered under its URL.
    """
    async with Navigator({"sources": {url: url}}, **navigator_kwargs) as navigator:
        loaded = await navigator.load_cargo(url, name, options)
        return loaded.payload
