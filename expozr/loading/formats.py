"""
Packaging formats and candidate generation.

A cargo may be published in several packaging variants. This module
turns one declared entry into an ordered list of ``(format, url)``
candidates for the loader to probe.

Formats:
    esm   - native module, executed as a real module object
    umd   - universal wrapper, executed in an isolated scope
    cjs   - legacy synchronous, ``module.exports`` convention
    auto  - the literal declared entry
"""

from __future__ import annotations

import importlib.util
import logging
import os
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from ..utils.urls import module_url

logger = logging.getLogger("expozr.loading.formats")


class ModuleFormat(str, Enum):
    ESM = "esm"
    UMD = "umd"
    CJS = "cjs"
    AUTO = "auto"

    @classmethod
    def coerce(cls, value: "str | ModuleFormat | None") -> Optional["ModuleFormat"]:
        """Parse a format tag; unknown tags give None."""
        if value is None or isinstance(value, cls):
            return value
        try:
            return cls(str(value).lower())
        except ValueError:
            logger.debug("Ignoring unknown module format %r", value)
            return None


class LoadingStrategy(str, Enum):
    """How a cargo load was scheduled; recorded on the result."""
    DYNAMIC = "dynamic"
    STATIC = "static"
    LAZY = "lazy"
    EAGER = "eager"
    FALLBACK = "fallback"

    @classmethod
    def coerce(cls, value: "str | LoadingStrategy | None") -> "LoadingStrategy":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).lower()) if value else cls.DYNAMIC
        except ValueError:
            return cls.DYNAMIC


class RuntimeEnvironment(str, Enum):
    """
    Host capabilities.

    MODULE hosts can create native module objects; SCRIPT hosts are
    restricted to scope execution.
    """
    MODULE = "module"
    SCRIPT = "script"


SUPPORTED_FORMATS: Dict[RuntimeEnvironment, Tuple[ModuleFormat, ...]] = {
    RuntimeEnvironment.MODULE: (ModuleFormat.ESM, ModuleFormat.UMD, ModuleFormat.CJS, ModuleFormat.AUTO),
    RuntimeEnvironment.SCRIPT: (ModuleFormat.UMD, ModuleFormat.CJS, ModuleFormat.AUTO),
}

ENVIRONMENT_DEFAULT_ORDER: Dict[RuntimeEnvironment, Tuple[ModuleFormat, ...]] = {
    RuntimeEnvironment.MODULE: (ModuleFormat.ESM, ModuleFormat.UMD, ModuleFormat.CJS),
    RuntimeEnvironment.SCRIPT: (ModuleFormat.CJS, ModuleFormat.UMD),
}

# Ordered: table order is the emission order of candidates.
DEFAULT_FORMAT_SUFFIXES: Tuple[Tuple[ModuleFormat, Tuple[str, ...]], ...] = (
    (ModuleFormat.ESM, (".py", ".module.py")),
    (ModuleFormat.UMD, (".umd.py",)),
    (ModuleFormat.CJS, (".cjs.py", ".common.py")),
)

# Longest first so compound suffixes are stripped whole.
_KNOWN_SUFFIXES = (".module.py", ".common.py", ".umd.py", ".cjs.py", ".py")


def detect_environment() -> RuntimeEnvironment:
    """
    Detect the host environment.

    ``EXPOZR_ENVIRONMENT=script`` forces the restricted environment.
    """
    forced = os.environ.get("EXPOZR_ENVIRONMENT", "").strip().lower()
    if forced == RuntimeEnvironment.SCRIPT.value:
        return RuntimeEnvironment.SCRIPT
    if hasattr(importlib.util, "module_from_spec"):
        return RuntimeEnvironment.MODULE
    return RuntimeEnvironment.SCRIPT


def strip_entry_extension(entry: str) -> str:
    """Remove the entry's extension, including compound suffixes."""
    lowered = entry.lower()
    for suffix in _KNOWN_SUFFIXES:
        if lowered.endswith(suffix):
            return entry[: -len(suffix)]
    head, tail = entry.rsplit("/", 1) if "/" in entry else ("", entry)
    if "." in tail:
        tail = tail.rsplit(".", 1)[0]
    return f"{head}/{tail}" if head else tail


def detect_format_from_entry(entry: str) -> ModuleFormat:
    lowered = entry.split("?", 1)[0].lower()
    if lowered.endswith(".umd.py"):
        return ModuleFormat.UMD
    if lowered.endswith((".cjs.py", ".common.py")):
        return ModuleFormat.CJS
    if lowered.endswith((".module.py", ".py")):
        return ModuleFormat.ESM
    return ModuleFormat.UMD


@dataclass(frozen=True)
class FormatCandidate:
    format: ModuleFormat
    url: str

    def __str__(self) -> str:
        return f"{self.format.value} {self.url}"


def generate_format_urls(
    base_url: str,
    entry: str,
    suffixes: Sequence[Tuple[ModuleFormat, Sequence[str]]] = DEFAULT_FORMAT_SUFFIXES,
) -> List[FormatCandidate]:
    """
    Expand one entry into per-format candidate locations.

    Variants are emitted in table order, followed by the literal entry
    tagged ``auto``. Duplicate URLs keep their first occurrence.

    Example:
        generate_format_urls("http://cdn/app", "math.umd.py") ->
            esm http://cdn/app/math.py, esm http://cdn/app/math.module.py,
            umd http://cdn/app/math.umd.py, cjs ..., auto (dropped: duplicate)
    """
    base_name = strip_entry_extension(entry)
    candidates: List[FormatCandidate] = []
    seen: set[str] = set()

    def add(fmt: ModuleFormat, url: str) -> None:
        if url not in seen:
            seen.add(url)
            candidates.append(FormatCandidate(fmt, url))

    for fmt, fmt_suffixes in suffixes:
        for suffix in fmt_suffixes:
            add(ModuleFormat(fmt), module_url(base_url, f"{base_name}{suffix}"))

    add(ModuleFormat.AUTO, module_url(base_url, entry))
    return candidates


@dataclass
class FormatPreference:
    """
    Inputs to candidate ordering, highest precedence first.

    Attributes:
        module_format: Per-call preferred format
        fallback_formats: Per-call fallbacks, in order
        hint: Publisher's packaging hint from the descriptor
        primary: Configured primary format
        fallbacks: Configured fallback formats
    """
    module_format: Optional[ModuleFormat] = None
    fallback_formats: Sequence[ModuleFormat] = field(default_factory=tuple)
    hint: Optional[ModuleFormat] = None
    primary: Optional[ModuleFormat] = None
    fallbacks: Sequence[ModuleFormat] = field(default_factory=tuple)

    def precedence(self, environment: RuntimeEnvironment) -> List[ModuleFormat]:
        """Deduplicated format precedence list."""
        ordered: List[ModuleFormat] = []
        chain: Iterable[Optional[ModuleFormat]] = (
            self.module_format,
            *self.fallback_formats,
            self.hint,
            self.primary,
            *self.fallbacks,
            *ENVIRONMENT_DEFAULT_ORDER[environment],
        )
        for fmt in chain:
            fmt = ModuleFormat.coerce(fmt)
            if fmt is not None and fmt is not ModuleFormat.AUTO and fmt not in ordered:
                ordered.append(fmt)
        return ordered


def order_candidates(
    candidates: Sequence[FormatCandidate],
    preference: Optional[FormatPreference] = None,
    environment: Optional[RuntimeEnvironment] = None,
) -> List[FormatCandidate]:
    """
    Filter and order candidates for probing.

    Formats the environment cannot run are dropped. The rest are ordered
    by ``preference`` precedence; formats absent from it follow, and
    ``auto`` always comes last. The sort is stable.
    """
    environment = environment or detect_environment()
    preference = preference or FormatPreference()
    supported = SUPPORTED_FORMATS[environment]
    rank = {fmt: i for i, fmt in enumerate(preference.precedence(environment))}
    unranked = len(rank)

    def key(candidate: FormatCandidate) -> int:
        if candidate.format is ModuleFormat.AUTO:
            return unranked + 1
        return rank.get(candidate.format, unranked)

    usable = [c for c in candidates if c.format in supported]
    return sorted(usable, key=key)
