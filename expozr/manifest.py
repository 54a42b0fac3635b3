"""
Inventory manifest model - pure data, fully serializable.

An inventory is the JSON document a source publishes at
``<url>/expozr.inventory.json``, describing its cargo:

    {
        "source": {"name": "remote", "version": "1.0.0", "url": "https://cdn/remote"},
        "cargo": {
            "math": {"name": "math", "version": "1.2.0", "entry": "math.umd.py"}
        },
        "dependencies": {},
        "timestamp": 1700000000000,
        "checksum": "<sha-256 hex>"
    }
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

from .faults.domains import InvalidManifestFault
from .loading.formats import ModuleFormat
from .utils import checksum
from .utils.version import is_valid

# Manifest key -> accepted aliases, first match wins.
SOURCE_KEYS = ("source", "expozr", "warehouse")
CARGO_KEYS = ("cargo", "cargoIndex")
DEPENDENCY_KEYS = ("dependencies", "sharedDependencies")
TIMESTAMP_KEYS = ("timestamp", "generatedAt")
DIGEST_KEYS = ("checksum", "integrityDigest")
FORMAT_KEYS = ("moduleSystem", "format", "module_format")


def _first(document: Mapping[str, Any], keys: tuple, default: Any = None) -> Any:
    for key in keys:
        if key in document:
            return document[key]
    return default


@dataclass(frozen=True)
class SourceReference:
    """Where a source lives and which version the host accepts."""
    url: str
    version: Optional[str] = None
    alias: Optional[str] = None
    fallback: Optional[str] = None

    @classmethod
    def from_config(cls, alias: str, value: "str | Mapping[str, Any] | SourceReference") -> "SourceReference":
        if isinstance(value, SourceReference):
            return value if value.alias else SourceReference(value.url, value.version, alias, value.fallback)
        if isinstance(value, str):
            return cls(url=value, alias=alias)
        if not isinstance(value, Mapping) or not value.get("url"):
            raise InvalidManifestFault("source reference", f"source '{alias}' requires a url")
        return cls(
            url=value["url"],
            version=value.get("version"),
            alias=value.get("alias") or alias,
            fallback=value.get("fallback"),
        )


@dataclass(frozen=True)
class SourceInfo:
    name: str
    version: str
    url: str
    description: Optional[str] = None
    author: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {"name": self.name, "version": self.version, "url": self.url}
        if self.description:
            data["description"] = self.description
        if self.author:
            data["author"] = self.author
        return data


@dataclass(frozen=True)
class CargoDescriptor:
    """
    One published cargo.

    ``module_format`` is the publisher's packaging hint.
    """
    name: str
    version: str
    entry: str
    exports: Optional[List[str]] = None
    module_format: Optional[ModuleFormat] = None
    dependencies: Dict[str, str] = field(default_factory=dict)
    metadata: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "CargoDescriptor":
        exports = data.get("exports")
        return cls(
            name=data["name"],
            version=data["version"],
            entry=data["entry"],
            exports=list(exports) if exports else None,
            module_format=ModuleFormat.coerce(_first(data, FORMAT_KEYS)),
            dependencies=dict(data.get("dependencies") or {}),
            metadata=dict(data.get("metadata") or {}),
        )

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "name": self.name,
            "version": self.version,
            "entry": self.entry,
        }
        if self.exports:
            data["exports"] = list(self.exports)
        if self.module_format:
            data["moduleSystem"] = self.module_format.value
        if self.dependencies:
            data["dependencies"] = dict(self.dependencies)
        if self.metadata:
            data["metadata"] = dict(self.metadata)
        return data


@dataclass
class Inventory:
    source: SourceInfo
    cargo: Dict[str, CargoDescriptor]
    shared_dependencies: Dict[str, Any] = field(default_factory=dict)
    generated_at: int = 0
    integrity_digest: Optional[str] = None

    def get(self, name: str) -> Optional[CargoDescriptor]:
        return self.cargo.get(name)

    def __contains__(self, name: str) -> bool:
        return name in self.cargo

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "source": self.source.to_dict(),
            "cargo": {name: c.to_dict() for name, c in self.cargo.items()},
            "dependencies": dict(self.shared_dependencies),
            "timestamp": self.generated_at,
        }
        if self.integrity_digest:
            data["checksum"] = self.integrity_digest
        return data


@dataclass
class LoadedCargo:
    """Result of one successful load, shared by every later request."""
    payload: Any
    descriptor: CargoDescriptor
    source: SourceInfo
    loaded_at: float = field(default_factory=time.time)
    served_from_cache: bool = False
    format_used: Optional[ModuleFormat] = None
    strategy_used: Optional[str] = None

    @property
    def module(self) -> Any:
        return self.payload


# ============================================================================
# Validation & parsing
# ============================================================================

def validate_inventory(document: Any) -> None:
    """
    Check an inventory document's structure.

    Raises:
        InvalidManifestFault: Naming the first problem found
    """
    if not isinstance(document, Mapping):
        raise InvalidManifestFault("inventory", "document must be an object")

    source = _first(document, SOURCE_KEYS)
    if not isinstance(source, Mapping):
        raise InvalidManifestFault("inventory", "missing 'source' section")
    for key in ("name", "version", "url"):
        if not source.get(key):
            raise InvalidManifestFault("inventory", f"source is missing '{key}'")

    cargo = _first(document, CARGO_KEYS)
    if not isinstance(cargo, Mapping):
        raise InvalidManifestFault("inventory", "'cargo' must be an object")

    for name, entry in cargo.items():
        validate_cargo(name, entry)


def validate_cargo(name: str, entry: Any) -> None:
    if not isinstance(entry, Mapping):
        raise InvalidManifestFault("inventory", f"cargo '{name}' must be an object")
    for key in ("name", "version", "entry"):
        if not isinstance(entry.get(key), str) or not entry.get(key):
            raise InvalidManifestFault("inventory", f"cargo '{name}' is missing string '{key}'")
    if not is_valid(entry["version"]):
        raise InvalidManifestFault(
            "inventory", f"cargo '{name}' has invalid version '{entry['version']}'"
        )


def compute_integrity(document: Mapping[str, Any]) -> str:
    """Digest over the cargo table and shared dependencies of a document."""
    return checksum.generate({
        "cargo": _first(document, CARGO_KEYS, {}),
        "dependencies": _first(document, DEPENDENCY_KEYS, {}),
    })


def verify_integrity(document: Mapping[str, Any]) -> bool:
    """True when the document has no digest or its digest matches."""
    digest = _first(document, DIGEST_KEYS)
    if not digest:
        return True
    return checksum.verify({
        "cargo": _first(document, CARGO_KEYS, {}),
        "dependencies": _first(document, DEPENDENCY_KEYS, {}),
    }, digest)


def parse_inventory(document: Any) -> Inventory:
    """Validate and build an ``Inventory``."""
    validate_inventory(document)
    source = _first(document, SOURCE_KEYS)
    cargo = _first(document, CARGO_KEYS)

    timestamp = _first(document, TIMESTAMP_KEYS, 0)
    try:
        generated_at = int(timestamp or 0)
    except (TypeError, ValueError):
        generated_at = 0

    return Inventory(
        source=SourceInfo(
            name=source["name"],
            version=source["version"],
            url=source["url"],
            description=source.get("description"),
            author=source.get("author"),
        ),
        cargo={name: CargoDescriptor.from_dict(entry) for name, entry in cargo.items()},
        shared_dependencies=dict(_first(document, DEPENDENCY_KEYS, {}) or {}),
        generated_at=generated_at,
        integrity_digest=_first(document, DIGEST_KEYS),
    )
