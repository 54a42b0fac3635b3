"""
Expozr faults - core types.

Defines:
- Fault base class (structured, typed failure carrying context)
- FaultDomain (functional area a fault belongs to)
- Severity levels and per-domain defaults
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Optional


# ============================================================================
# Severity & Domain
# ============================================================================

class Severity(str, Enum):
    """
    Fault severity levels.

    Determines the log level used when the fault is reported.
    """
    INFO = "info"
    WARN = "warn"
    ERROR = "error"
    FATAL = "fatal"


class FaultDomain:
    """
    Fault domains (taxonomy).

    Identifies the engine component where a fault occurred.
    """

    def __init__(self, name: str, description: str = ""):
        self.name = name
        self.value = name
        self.description = description

    def __str__(self) -> str:
        return self.name

    def __repr__(self) -> str:
        return f"FaultDomain(name='{self.name}')"

    def __eq__(self, other: Any) -> bool:
        if isinstance(other, FaultDomain):
            return self.name == other.name
        return str(self) == str(other)

    def __hash__(self) -> int:
        return hash(self.name)


# Standard domains
FaultDomain.CONFIG = FaultDomain("config", "Configuration errors")
FaultDomain.MANIFEST = FaultDomain("manifest", "Inventory and source resolution")
FaultDomain.LOADING = FaultDomain("loading", "Cargo fetch and evaluation")
FaultDomain.CACHE = FaultDomain("cache", "Storage-backed cache")
FaultDomain.REGISTRY = FaultDomain("registry", "Global cargo registry")
FaultDomain.SECURITY = FaultDomain("security", "Security policy violations")


DOMAIN_DEFAULTS = {
    FaultDomain.CONFIG: {"severity": Severity.FATAL, "retryable": False},
    FaultDomain.MANIFEST: {"severity": Severity.ERROR, "retryable": False},
    FaultDomain.LOADING: {"severity": Severity.ERROR, "retryable": True},
    FaultDomain.CACHE: {"severity": Severity.WARN, "retryable": True},
    FaultDomain.REGISTRY: {"severity": Severity.ERROR, "retryable": False},
    FaultDomain.SECURITY: {"severity": Severity.FATAL, "retryable": False},
}


# ============================================================================
# Fault - Base Class
# ============================================================================

class Fault(Exception):
    """
    Base fault class - structured, typed failure.

    A fault carries:
    - Stable machine-readable code (``CARGO_NOT_FOUND``)
    - Human-readable message
    - Domain classification and severity
    - Retry semantics
    - Contextual metadata (source, cargo, url, cause, ...)

    Example:
        ```python
        raise Fault(
            code="CARGO_NOT_FOUND",
            message="Cargo 'math' not found in source 'remote'",
            domain=FaultDomain.MANIFEST,
            metadata={"cargo": "math", "source": "remote"},
        )
        ```
    """

    def __init__(
        self,
        code: str | None = None,
        message: str | None = None,
        *,
        domain: FaultDomain | None = None,
        severity: Optional[Severity] = None,
        retryable: Optional[bool] = None,
        metadata: Optional[dict[str, Any]] = None,
    ):
        self.code = code if code is not None else getattr(self, "code", None)
        self.message = message if message is not None else getattr(self, "message", None)
        self.domain = domain if domain is not None else getattr(self, "domain", None)

        if self.code is None or self.message is None or self.domain is None:
            raise TypeError(f"{self.__class__.__name__} missing required code, message, or domain")

        super().__init__(self.message)

        defaults = DOMAIN_DEFAULTS.get(self.domain, {"severity": Severity.ERROR, "retryable": False})
        self.severity = severity or defaults["severity"]
        self.retryable = retryable if retryable is not None else defaults["retryable"]
        self.metadata = metadata or {}

    @property
    def context(self) -> dict[str, Any]:
        """Contextual data attached to this fault."""
        return self.metadata

    def __str__(self) -> str:
        return f"[{self.code}] {self.message}"

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}(code={self.code!r}, "
            f"domain={self.domain.value}, severity={self.severity.value})"
        )

    def to_dict(self) -> dict[str, Any]:
        """
        Serialize fault to dictionary.

        Non-primitive metadata values (exceptions, objects) are rendered
        with ``str()`` so the result is JSON-safe.
        """
        return {
            "code": self.code,
            "message": self.message,
            "domain": self.domain.value,
            "severity": self.severity.value,
            "retryable": self.retryable,
            "metadata": {k: _safe_value(v) for k, v in self.metadata.items()},
        }


def _safe_value(value: Any) -> Any:
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    if isinstance(value, (list, tuple)):
        return [_safe_value(v) for v in value]
    if isinstance(value, dict):
        return {str(k): _safe_value(v) for k, v in value.items()}
    return str(value)
