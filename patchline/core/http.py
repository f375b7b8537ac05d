"""Shared HTTP client ownership for pipeline components."""

from __future__ import annotations

from typing import Self

import httpx
import structlog

from patchline.core.config import HttpConfig

logger = structlog.get_logger()


def create_async_client(config: HttpConfig) -> httpx.AsyncClient:
    """Build an async client with the configured timeout and headers."""
    return httpx.AsyncClient(
        timeout=config.timeout,
        verify=config.verify_ssl,
        follow_redirects=True,
        headers={
            "User-Agent": config.user_agent,
            "Accept": "*/*",
            # Content-Length must match the bytes written to disk.
            "Accept-Encoding": "identity",
        },
    )


class HttpComponent:
    """Base for components that talk HTTP.

    A client passed in by the caller is shared and never closed here; a
    client created lazily is owned and closed by ``aclose``.
    """

    def __init__(self, http_config: HttpConfig, client: httpx.AsyncClient | None = None):
        self.http_config = http_config
        self._async_client = client
        self._owns_client = client is None

    @property
    def async_client(self) -> httpx.AsyncClient:
        """Get or create async HTTP client."""
        if self._async_client is None:
            self._async_client = create_async_client(self.http_config)
            self._owns_client = True
        return self._async_client

    async def aclose(self) -> None:
        """Close the HTTP client if this component created it."""
        if self._async_client is not None and self._owns_client:
            await self._async_client.aclose()
            self._async_client = None

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.aclose()


async def head_ok(client: httpx.AsyncClient, url: str) -> bool:
    """Metadata-only existence probe; transport errors count as absent."""
    try:
        response = await client.head(url)
    except httpx.HTTPError as e:
        logger.debug("head_probe_failed", url=url, error=str(e))
        return False
    return response.is_success


async def head_content_length(client: httpx.AsyncClient, url: str) -> int | None:
    """Declared size of a resource, None when unknown or unavailable."""
    try:
        response = await client.head(url)
    except httpx.HTTPError as e:
        logger.debug("head_probe_failed", url=url, error=str(e))
        return None
    if not response.is_success:
        return None
    value = response.headers.get("Content-Length")
    if value is None:
        return None
    try:
        return int(value)
    except ValueError:
        return None
