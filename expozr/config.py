"""
Config system - layered navigator configuration.

Merge precedence (later overrides earlier):
    defaults < config files (JSON/YAML) < .env file < EXPOZR_* environment < overrides

Nested keys in environment variables use a double underscore:
``EXPOZR_LOADING__RETRY__ATTEMPTS=5``.
"""

from __future__ import annotations

import copy
import json
import logging
import os
import re
from dataclasses import dataclass, field
from glob import glob
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

from .cache.core import CacheConfig
from .faults.domains import ConfigFault, InvalidManifestFault
from .loading.formats import LoadingStrategy, ModuleFormat
from .manifest import SourceReference

logger = logging.getLogger("expozr.config")

_CAMEL = re.compile(r"(?<!^)(?=[A-Z])")

# Alternate top-level names for the source table.
SOURCE_TABLE_KEYS = ("sources", "expozrs", "warehouses")

DEFAULT_CONFIG_FILES = ("expozr.yaml", "expozr.yml", "expozr.json")


def _snake(key: str) -> str:
    return _CAMEL.sub("_", key).lower() if any(c.isupper() for c in key) else key


def normalize_keys(data: Any, _top: bool = True) -> Any:
    """
    Recursively convert camelCase mapping keys to snake_case.

    Source aliases (the keys of the source table) are kept verbatim.
    """
    if not isinstance(data, Mapping):
        return data
    result: Dict[str, Any] = {}
    for k, v in data.items():
        key = _snake(str(k))
        if _top and key in SOURCE_TABLE_KEYS and isinstance(v, Mapping):
            result[key] = {alias: normalize_keys(ref, False) for alias, ref in v.items()}
        else:
            result[key] = normalize_keys(v, False)
        if key == "retry" and isinstance(result[key], dict):
            result[key] = _retries_as_attempts(result[key])
    return result


def _retries_as_attempts(retry: Dict[str, Any]) -> Dict[str, Any]:
    # `retries` counts re-attempts only; merges carry the total as `attempts`.
    if "retries" not in retry:
        return retry
    retry = dict(retry)
    retries = retry.pop("retries")
    retry.setdefault("attempts", int(retries) + 1)
    return retry


def deep_merge(target: Dict[str, Any], source: Mapping[str, Any]) -> Dict[str, Any]:
    """Deep merge ``source`` into a copy of ``target``."""
    merged = copy.deepcopy(target)
    _merge_into(merged, source)
    return merged


def _merge_into(target: Dict[str, Any], source: Mapping[str, Any]) -> None:
    for key, value in source.items():
        if key in target and isinstance(target[key], dict) and isinstance(value, Mapping):
            _merge_into(target[key], value)
        else:
            target[key] = copy.deepcopy(value)


# ============================================================================
# Typed configuration
# ============================================================================

@dataclass
class RetryConfig:
    attempts: int = 3
    delay: float = 1000       # ms
    backoff: float = 1.0

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "RetryConfig":
        data = dict(data or {})
        attempts = data.get("attempts")
        if attempts is None and "retries" in data:
            attempts = int(data["retries"]) + 1
        return cls(
            attempts=max(1, int(attempts if attempts is not None else cls.attempts)),
            delay=float(data.get("delay", cls.delay)),
            backoff=float(data.get("backoff", cls.backoff)),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {"attempts": self.attempts, "delay": self.delay, "backoff": self.backoff}


@dataclass
class PreloadConfig:
    enabled: bool = False
    include: List[str] = field(default_factory=list)
    exclude: List[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "PreloadConfig":
        data = data or {}
        return cls(
            enabled=bool(data.get("enabled", False)),
            include=list(data.get("include") or []),
            exclude=list(data.get("exclude") or []),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {"enabled": self.enabled, "include": list(self.include), "exclude": list(self.exclude)}


@dataclass
class LoadingConfig:
    timeout: float = 30000    # ms, 0 = none
    retry: RetryConfig = field(default_factory=RetryConfig)
    preload: PreloadConfig = field(default_factory=PreloadConfig)
    verify_integrity: bool = True

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "LoadingConfig":
        data = data or {}
        return cls(
            timeout=float(data.get("timeout", cls.timeout)),
            retry=RetryConfig.from_dict(data.get("retry") or {}),
            preload=PreloadConfig.from_dict(data.get("preload") or {}),
            verify_integrity=bool(data.get("verify_integrity", True)),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timeout": self.timeout,
            "retry": self.retry.to_dict(),
            "preload": self.preload.to_dict(),
            "verify_integrity": self.verify_integrity,
        }


@dataclass
class ModuleSystemConfig:
    """Format preferences and probing behaviour."""
    primary: Optional[ModuleFormat] = None
    fallbacks: List[ModuleFormat] = field(default_factory=list)
    strategy: LoadingStrategy = LoadingStrategy.DYNAMIC
    automatic_module_discovery: bool = True
    suppress_errors: bool = False

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ModuleSystemConfig":
        data = data or {}
        fallbacks = [ModuleFormat.coerce(f) for f in (data.get("fallbacks") or [])]
        return cls(
            primary=ModuleFormat.coerce(data.get("primary")),
            fallbacks=[f for f in fallbacks if f is not None],
            strategy=LoadingStrategy.coerce(data.get("strategy")),
            automatic_module_discovery=bool(data.get("automatic_module_discovery", True)),
            suppress_errors=bool(data.get("suppress_errors", False)),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "primary": self.primary.value if self.primary else None,
            "fallbacks": [f.value for f in self.fallbacks],
            "strategy": self.strategy.value,
            "automatic_module_discovery": self.automatic_module_discovery,
            "suppress_errors": self.suppress_errors,
        }


@dataclass
class NavigatorConfig:
    """
    Complete navigator configuration.

    Example:
        ```python
        config = NavigatorConfig.from_dict({
            "sources": {"remote": {"url": "https://cdn.example.com/remote", "version": "^1.0.0"}},
            "loading": {"timeout": 10000, "retry": {"attempts": 2}},
            "cache": {"strategy": "memory"},
        })
        ```
    """
    sources: Dict[str, SourceReference] = field(default_factory=dict)
    loading: LoadingConfig = field(default_factory=LoadingConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    module_system: ModuleSystemConfig = field(default_factory=ModuleSystemConfig)
    environment: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]] = None) -> "NavigatorConfig":
        data = normalize_keys(data or {})
        raw_sources: Mapping[str, Any] = {}
        for key in SOURCE_TABLE_KEYS:
            if key in data:
                raw_sources = data[key] or {}
                break
        if not isinstance(raw_sources, Mapping):
            raise ConfigFault("sources", "must be a mapping of alias to source")

        try:
            sources = {
                alias: SourceReference.from_config(alias, value)
                for alias, value in raw_sources.items()
            }
        except InvalidManifestFault as e:
            raise ConfigFault("sources", e.message) from e

        return cls(
            sources=sources,
            loading=LoadingConfig.from_dict(data.get("loading") or {}),
            cache=CacheConfig.from_dict(data.get("cache") or {}),
            module_system=ModuleSystemConfig.from_dict(data.get("module_system") or {}),
            environment=data.get("environment"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sources": {
                alias: {
                    k: v for k, v in (
                        ("url", ref.url),
                        ("version", ref.version),
                        ("alias", ref.alias),
                        ("fallback", ref.fallback),
                    ) if v is not None
                }
                for alias, ref in self.sources.items()
            },
            "loading": self.loading.to_dict(),
            "cache": self.cache.to_dict(),
            "module_system": self.module_system.to_dict(),
            "environment": self.environment,
        }

    def merged(self, partial: Mapping[str, Any]) -> "NavigatorConfig":
        """New config with ``partial`` deep-merged over this one."""
        return NavigatorConfig.from_dict(deep_merge(self.to_dict(), normalize_keys(partial)))


# ============================================================================
# Presets
# ============================================================================

def _preset(base: Dict[str, Any], config: Optional[Mapping[str, Any]]) -> NavigatorConfig:
    return NavigatorConfig.from_dict(deep_merge(base, normalize_keys(config or {})))


def modern_host_config(config: Optional[Mapping[str, Any]] = None) -> NavigatorConfig:
    """Persistent SQLite cache for a day, gentle backoff, preloading on."""
    return _preset({
        "loading": {
            "timeout": 30000,
            "retry": {"attempts": 3, "delay": 1000, "backoff": 1.5},
            "preload": {"enabled": True},
        },
        "cache": {"strategy": "sqlite", "ttl": 24 * 60 * 60 * 1000},
    }, config)


def legacy_host_config(config: Optional[Mapping[str, Any]] = None) -> NavigatorConfig:
    """Slow or constrained hosts: longer timeouts, more attempts, file cache."""
    return _preset({
        "loading": {
            "timeout": 45000,
            "retry": {"attempts": 5, "delay": 2000, "backoff": 1.5},
            "preload": {"enabled": False},
        },
        "cache": {"strategy": "file", "ttl": 12 * 60 * 60 * 1000},
        "module_system": {"suppress_errors": True},
    }, config)


def server_host_config(config: Optional[Mapping[str, Any]] = None) -> NavigatorConfig:
    """Long-running services: short timeouts, fast retries, memory cache."""
    return _preset({
        "loading": {
            "timeout": 15000,
            "retry": {"attempts": 3, "delay": 500, "backoff": 2},
            "preload": {"enabled": False},
        },
        "cache": {"strategy": "memory", "ttl": 60 * 60 * 1000},
    }, config)


PRESETS = {
    "modern": modern_host_config,
    "legacy": legacy_host_config,
    "server": server_host_config,
}


# ============================================================================
# Loader
# ============================================================================

class ConfigLoader:
    """
    Loads and merges configuration from multiple sources with precedence:
    overrides > environment variables > .env file > config files > defaults
    """

    def __init__(self, env_prefix: str = "EXPOZR_"):
        self.env_prefix = env_prefix
        self.config_data: Dict[str, Any] = {}

    @classmethod
    def load(
        cls,
        paths: Optional[List[str]] = None,
        env_prefix: str = "EXPOZR_",
        env_file: Optional[str] = None,
        overrides: Optional[Dict[str, Any]] = None,
    ) -> "ConfigLoader":
        """
        Load configuration from multiple sources.

        Args:
            paths: Config file paths (glob patterns supported); defaults
                to the first of ``expozr.yaml``/``expozr.yml``/``expozr.json``
                found in the working directory
            env_prefix: Prefix for environment variables
            env_file: Path to .env file
            overrides: Manual overrides (highest precedence)
        """
        loader = cls(env_prefix=env_prefix)

        if not paths:
            paths = [name for name in DEFAULT_CONFIG_FILES if Path(name).exists()][:1]

        for pattern in paths:
            loader._load_from_files(pattern)

        if env_file:
            loader._load_env_file(env_file)

        loader._load_from_env()

        if overrides:
            _merge_into(loader.config_data, normalize_keys(overrides))

        return loader

    def _load_from_files(self, pattern: str) -> None:
        matches = sorted(glob(pattern)) or []
        if not matches and not any(ch in pattern for ch in "*?["):
            raise ConfigFault(pattern, "file not found")
        for path_str in matches:
            path = Path(path_str)
            if path.suffix == ".json":
                self._load_json_file(path)
            elif path.suffix in (".yaml", ".yml"):
                self._load_yaml_file(path)
            else:
                logger.warning("Ignoring config file with unknown type: %s", path)

    def _load_json_file(self, path: Path) -> None:
        try:
            with open(path, encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            raise ConfigFault(str(path), str(e)) from e
        self._merge_document(path, data)

    def _load_yaml_file(self, path: Path) -> None:
        import yaml

        try:
            with open(path, encoding="utf-8") as f:
                data = yaml.safe_load(f)
        except (OSError, yaml.YAMLError) as e:
            raise ConfigFault(str(path), str(e)) from e
        if data:
            self._merge_document(path, data)

    def _merge_document(self, path: Path, data: Any) -> None:
        if not isinstance(data, Mapping):
            raise ConfigFault(str(path), "top level must be a mapping")
        _merge_into(self.config_data, normalize_keys(data))
        logger.debug("Loaded config file %s", path)

    def _load_env_file(self, path: str) -> None:
        """Load prefixed keys from a .env file."""
        from dotenv import dotenv_values

        if not Path(path).exists():
            return
        for key, value in dotenv_values(path).items():
            if key.startswith(self.env_prefix) and value is not None:
                self._set_nested(key, value)

    def _load_from_env(self) -> None:
        for key, value in os.environ.items():
            if key.startswith(self.env_prefix):
                self._set_nested(key, value)

    def _set_nested(self, key: str, value: str) -> None:
        """Convert EXPOZR_LOADING__RETRY__ATTEMPTS to a nested dict."""
        parts = key[len(self.env_prefix):].lower().split("__")

        current = self.config_data
        for part in parts[:-1]:
            if not isinstance(current.get(part), dict):
                current[part] = {}
            current = current[part]

        current[parts[-1]] = self._parse_value(value)

    @staticmethod
    def _parse_value(value: str) -> Any:
        """Parse string value to appropriate type."""
        lowered = value.strip().lower()
        if lowered in ("true", "yes", "on"):
            return True
        if lowered in ("false", "no", "off"):
            return False

        try:
            if "." in value:
                return float(value)
            return int(value)
        except ValueError:
            pass

        if value.startswith(("{", "[")):
            try:
                return json.loads(value)
            except json.JSONDecodeError:
                pass

        return value

    def get(self, path: str, default: Any = None) -> Any:
        """Get config value by dot-separated path."""
        current: Any = self.config_data
        for part in path.split("."):
            if isinstance(current, dict) and part in current:
                current = current[part]
            else:
                return default
        return current

    def to_dict(self) -> Dict[str, Any]:
        return copy.deepcopy(self.config_data)

    def navigator_config(self, preset: Optional[str] = None) -> NavigatorConfig:
        """
        Build a ``NavigatorConfig``, optionally layered over a named preset.

        Raises:
            ConfigFault: For an unknown preset or invalid values
        """
        if preset is None:
            return NavigatorConfig.from_dict(self.config_data)
        factory = PRESETS.get(preset)
        if factory is None:
            raise ConfigFault("preset", f"unknown preset '{preset}'", metadata={"options": list(PRESETS)})
        return factory(self.config_data)
