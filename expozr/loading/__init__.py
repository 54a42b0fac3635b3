"""
Expozr loading - candidate generation, format strategies and the
format-ordered loader.
"""

from .fetch import ModuleFetcher
from .formats import (
    DEFAULT_FORMAT_SUFFIXES,
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
    strip_entry_extension,
)
from .loader import (
    AttemptState,
    CandidateFailure,
    FormatOrderedLoader,
    LoadAttempt,
    LoadResult,
    extract_exports,
)
from .retry import with_retry, with_timeout
from .scope import (
    ExecutionScope,
    IncidentalNameFilter,
    bind_host,
    clear_host_scope,
    host_lookup,
    host_scope,
    is_module_like,
    slot_name,
)
from .strategies import (
    FormatStrategy,
    LegacySyncStrategy,
    LoadRequest,
    NativeModuleStrategy,
    UniversalWrapperStrategy,
    default_strategies,
    synthetic_module_name,
)

__all__ = [
    "ModuleFetcher",
    "DEFAULT_FORMAT_SUFFIXES",
    "ENVIRONMENT_DEFAULT_ORDER",
    "SUPPORTED_FORMATS",
    "FormatCandidate",
    "FormatPreference",
    "LoadingStrategy",
    "ModuleFormat",
    "RuntimeEnvironment",
    "detect_environment",
    "detect_format_from_entry",
    "generate_format_urls",
    "order_candidates",
    "strip_entry_extension",
    "AttemptState",
    "CandidateFailure",
    "FormatOrderedLoader",
    "LoadAttempt",
    "LoadResult",
    "extract_exports",
    "with_retry",
    "with_timeout",
    "ExecutionScope",
    "IncidentalNameFilter",
    "bind_host",
    "clear_host_scope",
    "host_lookup",
    "host_scope",
    "is_module_like",
    "slot_name",
    "FormatStrategy",
    "LegacySyncStrategy",
    "LoadRequest",
    "NativeModuleStrategy",
    "UniversalWrapperStrategy",
    "default_strategies",
    "synthetic_module_name",
]
