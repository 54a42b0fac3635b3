"""
Global registry (registry.py)

Sealed namespaces, updatable bundle tables and read precedence over the
host-scope convenience bindings.
"""

import pytest

from expozr.faults import RegistryFault
from expozr.loading.scope import bind_host
from expozr.registry import (
    BUNDLES,
    BundleTable,
    GlobalRegistry,
    SealedNamespace,
    get_global_registry,
)


class TestSealedNamespace:

    def test_write_once(self):
        ns = SealedNamespace(label="root")
        ns["a"] = 1
        with pytest.raises(RegistryFault):
            ns["a"] = 2
        assert ns["a"] == 1

    def test_cannot_delete(self):
        ns = SealedNamespace({"a": 1})
        with pytest.raises(RegistryFault):
            del ns["a"]

    def test_bundle_table_is_updatable(self):
        table = BundleTable()
        table["x"] = 1
        table["x"] = 2
        del table["x"]
        assert len(table) == 0


class TestGlobalRegistry:

    def test_bind_and_lookup(self, registry):
        registry.bind("remote", "./math", {"add": 1})
        assert registry.lookup("remote", "./math") == {"add": 1}
        assert registry.has("remote")
        assert registry.has("remote", "./math")
        assert not registry.has("remote", "./other")
        assert "remote" in registry

    def test_rebind_replaces_bundle(self, registry):
        registry.bind("remote", "./math", "v1")
        registry.bind("remote", "./math", "v2")
        assert registry.lookup("remote", "./math") == "v2"

    def test_namespace_cannot_be_hijacked(self, registry):
        registry.bind("remote", "./math", "v1")
        with pytest.raises(RegistryFault):
            registry.root["remote"] = "hijacked"
        with pytest.raises(RegistryFault):
            del registry.root["remote"]
        with pytest.raises(RegistryFault):
            registry.root["remote"][BUNDLES] = {}
        assert registry.lookup("remote", "./math") == "v1"

    def test_root_cannot_be_rebound(self, registry):
        registry.bind("remote", "./math", "v1")
        with pytest.raises(AttributeError):
            registry.root = SealedNamespace(label="registry")
        assert registry.lookup("remote", "./math") == "v1"
        assert registry.sources() == ["remote"]

    def test_bundles_view_is_read_only(self, registry):
        registry.bind("remote", "./math", "v1")
        view = registry.bundles("remote")
        assert dict(view) == {"./math": "v1"}
        with pytest.raises(TypeError):
            view["./math"] = "tampered"
        assert dict(registry.bundles("unknown")) == {}

    def test_unbind_keeps_namespace(self, registry):
        registry.bind("remote", "./math", "v1")
        assert registry.unbind("remote", "./math") is True
        assert registry.unbind("remote", "./math") is False
        assert registry.has("remote")
        assert not registry.has("remote", "./math")

    def test_canonical_entry_wins_over_host_scope(self, registry):
        bind_host("remote", "./math", "host-copy")
        assert registry.lookup("remote", "./math") == "host-copy"
        registry.bind("remote", "./math", "canonical")
        assert registry.lookup("remote", "./math") == "canonical"
        registry.unbind("remote", "./math")
        assert registry.lookup("remote", "./math", use_host_scope=False) is None

    def test_sources(self, registry):
        registry.bind("a", "x", 1)
        registry.bind("b", "y", 2)
        assert registry.sources() == ["a", "b"]

    def test_global_singleton(self):
        assert get_global_registry() is get_global_registry()
