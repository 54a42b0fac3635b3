"""
Auto-loader (autoloader.py)
"""

import asyncio
from types import SimpleNamespace

import pytest

from conftest import SOURCE_URL, UMD_MATH, make_inventory
from expozr.autoloader import (
    AutoLoader,
    LoaderContext,
    LoaderStatus,
    create_auto_loader,
    extract_functions,
    normalize_payload,
)
from expozr.faults import CargoNotFoundFault, ConfigFault, Fault, NetworkFault
from expozr.loading.scope import host_lookup

INVENTORY = f"{SOURCE_URL}/expozr.inventory.json"


def add(a, b):
    return a + b


def autoloader_config(**extra):
    config = {
        "sources": {
            "remote": {"url": SOURCE_URL, "modules": {"mathLib": "./math"}},
        },
        "retries": 1,
    }
    config.update(extra)
    return config


@pytest.fixture
def published(remote_host):
    remote_host.serve(INVENTORY, make_inventory())
    remote_host.serve(f"{SOURCE_URL}/math.umd.py", UMD_MATH)
    return remote_host


@pytest.fixture
def loader_kwargs(fetcher, sleeper, registry):
    return {"fetcher": fetcher, "sleep": sleeper, "registry": registry}


# ============================================================================
# Payload shapes
# ============================================================================


class TestNormalizePayload:

    @pytest.mark.parametrize("payload", [
        {"add": add},
        {"default": {"add": add}},
        {"exports": {"add": add}},
        {"default": {"exports": {"add": add}}},
        SimpleNamespace(default=SimpleNamespace(add=add)),
    ])
    def test_unwraps_to_functions(self, payload):
        assert extract_functions(normalize_payload(payload)) == {"add": add}

    def test_nothing_callable_returns_payload(self):
        payload = {"version": "1.0.0"}
        assert normalize_payload(payload) is payload

    def test_none(self):
        assert normalize_payload(None) == {}

    def test_private_members_skipped(self):
        module = SimpleNamespace(add=add, _hidden=add, value=1)
        assert extract_functions(module) == {"add": add}


# ============================================================================
# Context
# ============================================================================


class TestLoaderContext:

    def test_call_before_ready(self):
        context = LoaderContext()
        with pytest.raises(Fault) as exc_info:
            context.call("add", 1, 2)
        assert exc_info.value.code == "AUTOLOADER_NOT_READY"

    def test_call_missing_function(self):
        context = LoaderContext()
        context._settle(LoaderStatus.READY)
        with pytest.raises(CargoNotFoundFault):
            context.call("subtract", 1, 2)

    def test_call(self):
        context = LoaderContext(functions={"add": add})
        context._settle(LoaderStatus.READY)
        assert context.call("add", 1, 2) == 3

    @pytest.mark.asyncio
    async def test_wait_ready_raises_load_error(self):
        context = LoaderContext()
        context._settle(LoaderStatus.ERROR, NetworkFault("https://x"))
        with pytest.raises(NetworkFault):
            await context.wait_ready(timeout=1)

    @pytest.mark.asyncio
    async def test_wait_ready_times_out(self):
        with pytest.raises(asyncio.TimeoutError):
            await LoaderContext().wait_ready(timeout=0.01)


# ============================================================================
# AutoLoader
# ============================================================================


class TestAutoLoader:

    def test_requires_sources(self):
        with pytest.raises(ConfigFault):
            AutoLoader({"namespace": "x"})

    def test_source_requires_url(self):
        with pytest.raises(ConfigFault):
            AutoLoader({"sources": {"remote": {"modules": {}}}})

    def test_navigator_config(self, loader_kwargs):
        loader = AutoLoader(autoloader_config(timeout=2500), **loader_kwargs)
        config = loader.navigator.config
        assert config.cache.strategy == "memory"
        assert config.cache.ttl == 300_000
        assert config.loading.timeout == 2500
        assert config.loading.retry.attempts == 1
        assert config.sources["remote"].url == SOURCE_URL

    @pytest.mark.asyncio
    async def test_load_and_expose(self, published, loader_kwargs):
        context = await create_auto_loader(autoloader_config(), **loader_kwargs)

        assert context.status is LoaderStatus.READY
        assert "mathLib" in context.modules
        assert context.call("add", 2, 3) == 5
        assert context.call("multiply", 2, 3) == 6
        assert host_lookup("expozr", "add") is context.functions["add"]
        assert host_lookup("expozr", "modules")["mathLib"] is context.modules["mathLib"]
        await context.wait_ready(timeout=1)

    @pytest.mark.asyncio
    async def test_custom_namespace_and_no_expose(self, published, loader_kwargs):
        context = await create_auto_loader(
            autoloader_config(namespace="calc", autoExpose=False), **loader_kwargs
        )
        assert context.call("add", 1, 1) == 2
        assert host_lookup("calc", "add") is None

    @pytest.mark.asyncio
    async def test_load_failure_sets_error(self, remote_host, loader_kwargs):
        remote_host.serve(INVENTORY, make_inventory())
        loader = AutoLoader(autoloader_config(), **loader_kwargs)

        with pytest.raises(NetworkFault):
            await loader.load()

        assert loader.context.status is LoaderStatus.ERROR
        assert isinstance(loader.context.error, NetworkFault)
        with pytest.raises(Fault):
            loader.call("add", 1, 2)
        await loader.close()
