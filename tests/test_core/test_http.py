"""Tests for patchline.core.http module."""

import asyncio

import httpx

from patchline.core.config import HttpConfig
from patchline.core.http import HttpComponent, create_async_client, head_content_length, head_ok


class TestCreateAsyncClient:
    """Test client construction."""

    def test_requests_unencoded_bodies(self):
        async def _run():
            async with create_async_client(HttpConfig(user_agent="patchline-test")) as client:
                return client.build_request("GET", "https://files.example/a.pwr").headers

        headers = asyncio.run(_run())
        assert headers["Accept-Encoding"] == "identity"
        assert headers["User-Agent"] == "patchline-test"


class TestHeadProbes:
    """Test HEAD helpers."""

    def test_content_length(self, mock_client):
        async def _run():
            async with mock_client(
                lambda request: httpx.Response(200, headers={"Content-Length": "42"})
            ) as client:
                return await head_content_length(client, "https://files.example/a")

        assert asyncio.run(_run()) == 42

    def test_unreachable_counts_as_absent(self, mock_client):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("down", request=request)

        async def _run():
            async with mock_client(handler) as client:
                return (
                    await head_ok(client, "https://files.example/a"),
                    await head_content_length(client, "https://files.example/a"),
                )

        assert asyncio.run(_run()) == (False, None)


class TestHttpComponent:
    """Test client ownership."""

    def test_shared_client_is_not_closed(self, mock_client):
        async def _run():
            client = mock_client(lambda request: httpx.Response(200))
            async with HttpComponent(HttpConfig(), client=client):
                pass
            closed = client.is_closed
            await client.aclose()
            return closed

        assert asyncio.run(_run()) is False

    def test_owned_client_is_closed(self):
        async def _run():
            component = HttpComponent(HttpConfig())
            client = component.async_client
            await component.aclose()
            return client.is_closed

        assert asyncio.run(_run()) is True
