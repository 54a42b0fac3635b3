"""
Expozr faults - domain-specific fault types.

Provides concrete fault classes for each engine domain:
- MANIFEST faults (sources, inventories, versions, dependencies)
- LOADING faults (network, timeouts)
- CACHE faults
- REGISTRY faults
- SECURITY faults
- CONFIG faults
"""

from typing import Any, Optional

from .core import Fault, FaultDomain, Severity


class ErrorCodes:
    """Stable machine-readable fault codes."""
    SOURCE_NOT_FOUND = "SOURCE_NOT_FOUND"
    CARGO_NOT_FOUND = "CARGO_NOT_FOUND"
    DEPENDENCY_RESOLUTION_ERROR = "DEPENDENCY_RESOLUTION_ERROR"
    LOAD_TIMEOUT = "LOAD_TIMEOUT"
    NETWORK_ERROR = "NETWORK_ERROR"
    VERSION_MISMATCH = "VERSION_MISMATCH"
    INVALID_MANIFEST = "INVALID_MANIFEST"
    CACHE_ERROR = "CACHE_ERROR"
    REGISTRY_SEALED = "REGISTRY_SEALED"
    SECURITY_ERROR = "SECURITY_ERROR"
    INVALID_CONFIG = "INVALID_CONFIG"
    NAVIGATOR_RESET = "NAVIGATOR_RESET"


# ============================================================================
# MANIFEST Faults
# ============================================================================

class ManifestFault(Fault):
    """Base class for source and inventory faults."""

    def __init__(
        self,
        code: str,
        message: str,
        *,
        severity: Severity = Severity.ERROR,
        metadata: Optional[dict[str, Any]] = None,
    ):
        super().__init__(
            code=code,
            message=message,
            domain=FaultDomain.MANIFEST,
            severity=severity,
            retryable=False,
            metadata=metadata,
        )


class SourceNotFoundFault(ManifestFault):
    """Source alias is not present in the navigator configuration."""

    def __init__(self, source: str, **kwargs):
        super().__init__(
            code=ErrorCodes.SOURCE_NOT_FOUND,
            message=f"Source '{source}' not found in configuration",
            metadata={"source": source, **kwargs.get("metadata", {})},
        )


class CargoNotFoundFault(ManifestFault):
    """Cargo (or a requested export of it) is not in the source inventory."""

    def __init__(self, cargo: str, source: str, **kwargs):
        super().__init__(
            code=ErrorCodes.CARGO_NOT_FOUND,
            message=f"Cargo '{cargo}' not found in source '{source}'",
            metadata={"cargo": cargo, "source": source, **kwargs.get("metadata", {})},
        )


class InvalidManifestFault(ManifestFault):
    """Inventory document failed validation."""

    def __init__(self, manifest_type: str, reason: str, **kwargs):
        super().__init__(
            code=ErrorCodes.INVALID_MANIFEST,
            message=f"Invalid {manifest_type}: {reason}",
            metadata={
                "manifest_type": manifest_type,
                "reason": reason,
                **kwargs.get("metadata", {}),
            },
        )


class VersionMismatchFault(ManifestFault):
    """Published version does not satisfy the requested constraint."""

    def __init__(self, required: str, found: str, **kwargs):
        super().__init__(
            code=ErrorCodes.VERSION_MISMATCH,
            message=f"Version mismatch: required '{required}', found '{found}'",
            metadata={"required": required, "found": found, **kwargs.get("metadata", {})},
        )


class DependencyResolutionFault(ManifestFault):
    """A cargo dependency could not be satisfied."""

    def __init__(self, dependency: str, reason: str = "", **kwargs):
        suffix = f": {reason}" if reason else ""
        super().__init__(
            code=ErrorCodes.DEPENDENCY_RESOLUTION_ERROR,
            message=f"Failed to resolve dependency '{dependency}'{suffix}",
            metadata={"dependency": dependency, "reason": reason, **kwargs.get("metadata", {})},
        )


# ============================================================================
# LOADING Faults
# ============================================================================

class LoadingFault(Fault):
    """Base class for fetch and evaluation faults."""

    def __init__(
        self,
        code: str,
        message: str,
        *,
        severity: Severity = Severity.ERROR,
        retryable: bool = True,
        metadata: Optional[dict[str, Any]] = None,
    ):
        super().__init__(
            code=code,
            message=message,
            domain=FaultDomain.LOADING,
            severity=severity,
            retryable=retryable,
            metadata=metadata,
        )


class NetworkFault(LoadingFault):
    """Transport failure while fetching a location."""

    def __init__(self, url: str, cause: Optional[BaseException] = None, **kwargs):
        reason = str(cause) if cause is not None else "Unknown error"
        super().__init__(
            code=ErrorCodes.NETWORK_ERROR,
            message=kwargs.get("message") or f"Network error loading '{url}': {reason}",
            metadata={"url": url, "cause": cause, **kwargs.get("metadata", {})},
        )
        self.url = url
        self.cause = cause


class LoadTimeoutFault(LoadingFault):
    """An operation did not finish within its timeout."""

    def __init__(self, resource: str, timeout_ms: float, **kwargs):
        super().__init__(
            code=ErrorCodes.LOAD_TIMEOUT,
            message=f"Loading '{resource}' timed out after {timeout_ms:g}ms",
            metadata={"resource": resource, "timeout_ms": timeout_ms, **kwargs.get("metadata", {})},
        )
        self.resource = resource
        self.timeout_ms = timeout_ms


class NavigatorResetFault(LoadingFault):
    """A load was abandoned because the navigator was reset while it ran."""

    def __init__(self, resource: str, **kwargs):
        super().__init__(
            code=ErrorCodes.NAVIGATOR_RESET,
            message=f"Loading '{resource}' was abandoned by a navigator reset",
            severity=Severity.WARN,
            metadata={"resource": resource, **kwargs.get("metadata", {})},
        )
        self.resource = resource


# ============================================================================
# CACHE Faults
# ============================================================================

class CacheFault(Fault):
    """Cache backend operation failed; carries the operation name."""

    def __init__(
        self,
        operation: str,
        reason: Optional[str] = None,
        *,
        backend: Optional[str] = None,
        severity: Severity = Severity.WARN,
        metadata: Optional[dict[str, Any]] = None,
    ):
        suffix = f": {reason}" if reason else ""
        super().__init__(
            code=ErrorCodes.CACHE_ERROR,
            message=f"Cache {operation} failed{suffix}",
            domain=FaultDomain.CACHE,
            severity=severity,
            retryable=True,
            metadata={
                "operation": operation,
                "reason": reason,
                "backend": backend,
                **(metadata or {}),
            },
        )
        self.operation = operation
        self.reason = reason


# ============================================================================
# REGISTRY / SECURITY / CONFIG Faults
# ============================================================================

class RegistryFault(Fault):
    """Attempt to replace or remove a sealed registry namespace."""

    def __init__(self, key: str, reason: str, **kwargs):
        super().__init__(
            code=ErrorCodes.REGISTRY_SEALED,
            message=f"Registry key '{key}' is sealed: {reason}",
            domain=FaultDomain.REGISTRY,
            metadata={"key": key, "reason": reason, **kwargs.get("metadata", {})},
        )


class SecurityFault(Fault):
    """Security policy violated (e.g. disallowed URL scheme)."""

    def __init__(self, violation: str, **kwargs):
        super().__init__(
            code=ErrorCodes.SECURITY_ERROR,
            message=f"Security violation: {violation}",
            domain=FaultDomain.SECURITY,
            metadata={"violation": violation, **kwargs.get("metadata", {})},
        )


class ConfigFault(Fault):
    """Configuration file or value could not be used."""

    def __init__(self, key: str, reason: str, **kwargs):
        super().__init__(
            code=ErrorCodes.INVALID_CONFIG,
            message=f"Invalid configuration '{key}': {reason}",
            domain=FaultDomain.CONFIG,
            metadata={"key": key, "reason": reason, **kwargs.get("metadata", {})},
        )
