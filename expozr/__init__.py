"""
Expozr - load coordination for remotely published code bundles.

Complete integration of:
- Navigator: inventory resolution, format-ordered loading, result caching
- Cache: memory, file and SQLite storage backends
- Loading: candidate generation, retry/timeout, format strategies
- Registry: write-once per-source namespaces for loaded cargo
- Faults: structured error handling with fault domains
- Config: typed configuration with file/env loading and host presets
"""

__version__ = "0.1.0"

# ============================================================================
# Core
# ============================================================================

from .navigator import (
    LoadOptions,
    Navigator,
    create_navigator,
    load_cargo_from,
)
from .autoloader import AutoLoader, LoaderContext, LoaderStatus, create_auto_loader
from .config import (
    PRESETS,
    ConfigLoader,
    LoadingConfig,
    ModuleSystemConfig,
    NavigatorConfig,
    PreloadConfig,
    RetryConfig,
    legacy_host_config,
    modern_host_config,
    server_host_config,
)
from .events import EventBus, NavigatorEvent
from .manifest import (
    CargoDescriptor,
    Inventory,
    LoadedCargo,
    SourceInfo,
    SourceReference,
    compute_integrity,
    parse_inventory,
    validate_inventory,
    verify_integrity,
)
from .registry import GlobalRegistry, get_global_registry

# ============================================================================
# Loading
# ============================================================================

from .loading import (
    FormatCandidate,
    FormatOrderedLoader,
    LoadingStrategy,
    ModuleFetcher,
    ModuleFormat,
    RuntimeEnvironment,
    generate_format_urls,
    order_candidates,
    with_retry,
    with_timeout,
)

# ============================================================================
# Cache
# ============================================================================

from .cache import CacheBackend, CacheConfig, CacheStats, create_cache_backend

# ============================================================================
# Faults
# ============================================================================

from .faults import (
    CacheFault,
    CargoNotFoundFault,
    ConfigFault,
    DependencyResolutionFault,
    ErrorCodes,
    Fault,
    FaultDomain,
    InvalidManifestFault,
    LoadTimeoutFault,
    NavigatorResetFault,
    NetworkFault,
    RegistryFault,
    SecurityFault,
    Severity,
    SourceNotFoundFault,
    VersionMismatchFault,
)

__all__ = [
    "__version__",
    # Core
    "Navigator",
    "LoadOptions",
    "create_navigator",
    "load_cargo_from",
    "AutoLoader",
    "LoaderContext",
    "LoaderStatus",
    "create_auto_loader",
    # Config
    "NavigatorConfig",
    "LoadingConfig",
    "RetryConfig",
    "PreloadConfig",
    "ModuleSystemConfig",
    "ConfigLoader",
    "PRESETS",
    "modern_host_config",
    "legacy_host_config",
    "server_host_config",
    # Events / registry
    "EventBus",
    "NavigatorEvent",
    "GlobalRegistry",
    "get_global_registry",
    # Manifest
    "SourceReference",
    "SourceInfo",
    "CargoDescriptor",
    "Inventory",
    "LoadedCargo",
    "parse_inventory",
    "validate_inventory",
    "compute_integrity",
    "verify_integrity",
    # Loading
    "ModuleFormat",
    "LoadingStrategy",
    "RuntimeEnvironment",
    "FormatCandidate",
    "FormatOrderedLoader",
    "ModuleFetcher",
    "generate_format_urls",
    "order_candidates",
    "with_retry",
    "with_timeout",
    # Cache
    "CacheBackend",
    "CacheConfig",
    "CacheStats",
    "create_cache_backend",
    # Faults
    "Fault",
    "FaultDomain",
    "Severity",
    "ErrorCodes",
    "SourceNotFoundFault",
    "CargoNotFoundFault",
    "NetworkFault",
    "LoadTimeoutFault",
    "NavigatorResetFault",
    "InvalidManifestFault",
    "CacheFault",
    "VersionMismatchFault",
    "DependencyResolutionFault",
    "RegistryFault",
    "SecurityFault",
    "ConfigFault",
]
