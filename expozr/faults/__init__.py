"""
Expozr faults - typed failure kinds carrying context.

Every fault has a stable ``code``, a ``domain`` and a ``metadata``
mapping with the identifiers involved (source, cargo, url, ...).
"""

from .core import DOMAIN_DEFAULTS, Fault, FaultDomain, Severity
from .domains import (
    CargoNotFoundFault,
    DependencyResolutionFault,
    CacheFault,
    ConfigFault,
    ErrorCodes,
    InvalidManifestFault,
    LoadingFault,
    LoadTimeoutFault,
    NavigatorResetFault,
    ManifestFault,
    NetworkFault,
    RegistryFault,
    SecurityFault,
    SourceNotFoundFault,
    VersionMismatchFault,
)

__all__ = [
    "Fault",
    "FaultDomain",
    "Severity",
    "DOMAIN_DEFAULTS",
    "ErrorCodes",
    "ManifestFault",
    "LoadingFault",
    "SourceNotFoundFault",
    "CargoNotFoundFault",
    "InvalidManifestFault",
    "VersionMismatchFault",
    "DependencyResolutionFault",
    "NetworkFault",
    "LoadTimeoutFault",
    "NavigatorResetFault",
    "CacheFault",
    "RegistryFault",
    "SecurityFault",
    "ConfigFault",
]
