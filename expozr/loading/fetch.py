"""
Module fetcher - retrieves inventories and cargo sources via httpx.

Remote locations use an ``httpx.AsyncClient`` (or a blocking
``httpx.Client`` for the legacy synchronous strategy). ``file://`` URLs
and bare filesystem paths are read from disk. A custom transport can be
injected, e.g. ``httpx.MockTransport`` in tests.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional, Sequence
from urllib.parse import urlsplit
from urllib.request import url2pathname

import httpx

from ..faults.domains import InvalidManifestFault, NetworkFault, SecurityFault

logger = logging.getLogger("expozr.loading.fetch")

DEFAULT_ALLOWED_SCHEMES = ("http", "https", "file")


class ModuleFetcher:
    """
    Fetches text and JSON documents.

    Args:
        transport: Optional httpx transport for the blocking client (also used
            by the async client when it implements the async interface)
        async_transport: Optional async transport for the pooled client
        headers: Extra request headers
        timeout: Transport timeout in seconds
        allowed_schemes: URL schemes that may be fetched
    """

    def __init__(
        self,
        *,
        transport: Optional[httpx.BaseTransport] = None,
        async_transport: Optional[httpx.AsyncBaseTransport] = None,
        headers: Optional[Dict[str, str]] = None,
        timeout: float = 30.0,
        allowed_schemes: Sequence[str] = DEFAULT_ALLOWED_SCHEMES,
    ):
        if async_transport is None and isinstance(transport, httpx.AsyncBaseTransport):
            async_transport = transport
        if transport is None and isinstance(async_transport, httpx.BaseTransport):
            transport = async_transport
        self._transport = transport if isinstance(transport, httpx.BaseTransport) else None
        self._async_transport = async_transport
        self._headers = {"User-Agent": "expozr-navigator/1.0", **(headers or {})}
        self._timeout = timeout
        self._allowed_schemes = tuple(allowed_schemes)
        self._client: Optional[httpx.AsyncClient] = None

    # ── Lifecycle ───────────────────────────────────────────────────

    def _async_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                headers=self._headers,
                timeout=httpx.Timeout(self._timeout),
                follow_redirects=True,
                transport=self._async_transport,
            )
        return self._client

    async def close(self) -> None:
        """Close the pooled async client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    # ── Helpers ─────────────────────────────────────────────────────

    def _scheme(self, url: str) -> str:
        scheme = urlsplit(url).scheme.lower()
        # Windows drive letters parse as one-letter schemes.
        if len(scheme) <= 1:
            scheme = ""
        if scheme and scheme not in self._allowed_schemes:
            raise SecurityFault(
                f"scheme '{scheme}' is not allowed",
                metadata={"url": url, "allowed": list(self._allowed_schemes)},
            )
        return scheme

    @staticmethod
    def _local_path(url: str) -> Path:
        parts = urlsplit(url)
        if parts.scheme.lower() == "file":
            return Path(url2pathname(parts.path))
        return Path(url)

    def _read_local(self, url: str) -> str:
        try:
            return self._local_path(url).read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            raise NetworkFault(url, e) from e

    @staticmethod
    def _check_response(url: str, response: httpx.Response) -> str:
        if not response.is_success:
            raise NetworkFault(
                url,
                message=f"Network error loading '{url}': HTTP {response.status_code}",
                metadata={"status": response.status_code},
            )
        return response.text

    # ── Fetching ────────────────────────────────────────────────────

    async def fetch_text(self, url: str) -> str:
        """Fetch a document asynchronously."""
        if self._scheme(url) in ("", "file"):
            return self._read_local(url)
        try:
            response = await self._async_client().get(url)
        except httpx.HTTPError as e:
            raise NetworkFault(url, e) from e
        logger.debug("GET %s -> %d", url, response.status_code)
        return self._check_response(url, response)

    def fetch_text_sync(self, url: str) -> str:
        """Fetch a document with a blocking client."""
        if self._scheme(url) in ("", "file"):
            return self._read_local(url)
        try:
            with httpx.Client(
                headers=self._headers,
                timeout=httpx.Timeout(self._timeout),
                follow_redirects=True,
                transport=self._transport,
            ) as client:
                response = client.get(url)
        except httpx.HTTPError as e:
            raise NetworkFault(url, e) from e
        logger.debug("GET (sync) %s -> %d", url, response.status_code)
        return self._check_response(url, response)

    async def fetch_json(self, url: str) -> Any:
        """Fetch and decode a JSON document."""
        text = await self.fetch_text(url)
        try:
            return json.loads(text)
        except ValueError as e:
            raise InvalidManifestFault("document", f"invalid JSON at '{url}': {e}") from e
