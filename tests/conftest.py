"""
Shared test fixtures and helpers for the Expozr test suite.
"""

import json
from typing import Any, Dict, List, Optional

import httpx
import pytest

from expozr.loading.fetch import ModuleFetcher
from expozr.loading.scope import clear_host_scope
from expozr.manifest import compute_integrity
from expozr.registry import GlobalRegistry

SOURCE_URL = "https://cdn.example.com/remote"


# ============================================================================
# Artifacts
# ============================================================================

UMD_MATH = 'math = {"add": lambda a, b: a + b, "multiply": lambda a, b: a * b}\n'

ESM_MATH = "def add(a, b):\n    return a + b\n\n\ndef multiply(a, b):\n    return a * b\n"

CJS_MATH = 'module.exports = {"add": lambda a, b: a + b}\n'


def make_inventory(
    cargo: Optional[Dict[str, Dict[str, Any]]] = None,
    *,
    version: str = "1.0.0",
    url: str = SOURCE_URL,
    dependencies: Optional[Dict[str, Any]] = None,
    digest: bool = False,
) -> Dict[str, Any]:
    """Build an inventory document."""
    if cargo is None:
        cargo = {"./math": {"name": "./math", "version": "1.0.0", "entry": "math.js"}}
    document: Dict[str, Any] = {
        "source": {"name": "remote", "version": version, "url": url},
        "cargo": cargo,
        "dependencies": dependencies or {},
        "timestamp": 1700000000000,
    }
    if digest:
        document["checksum"] = compute_integrity(document)
    return document


# ============================================================================
# Remote host double
# ============================================================================


class RemoteHost:
    """
    Serves documents from a dict through ``httpx.MockTransport``.

    Unknown URLs answer 404. Every request URL is recorded.
    """

    def __init__(self, files: Optional[Dict[str, Any]] = None):
        self.files: Dict[str, Any] = dict(files or {})
        self.requests: List[str] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        url = str(request.url)
        self.requests.append(url)
        body = self.files.get(url)
        if body is None:
            return httpx.Response(404, text="not found")
        if isinstance(body, httpx.Response):
            return body
        if isinstance(body, (dict, list)):
            return httpx.Response(200, text=json.dumps(body))
        return httpx.Response(200, text=body)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def serve(self, url: str, body: Any) -> None:
        self.files[url] = body

    def count(self, url: str) -> int:
        return self.requests.count(url)


class SleepRecorder:
    """Stands in for ``asyncio.sleep``; records requested seconds."""

    def __init__(self):
        self.calls: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


class FakeClock:
    """Millisecond clock under test control."""

    def __init__(self, start: int = 1_000_000):
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture
def remote_host():
    return RemoteHost()


@pytest.fixture
def fetcher(remote_host):
    return ModuleFetcher(transport=remote_host.transport)


@pytest.fixture
def sleeper():
    return SleepRecorder()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def registry():
    """Isolated registry so tests never share the process-wide one."""
    return GlobalRegistry()


@pytest.fixture(autouse=True)
def _reset_host_scope():
    yield
    clear_host_scope()
