"""Tests for patchline.core.updater module."""

import asyncio
import json

import httpx
import pytest

from patchline.core.config import HttpConfig, UpdateCheckConfig
from patchline.core.updater import (
    SelfUpdateChecker,
    UpdateStatus,
    compare_versions,
    normalize_version,
    parse_version_parts,
)

RELEASES_URL = "https://api.example/repos/acme/launcher/releases/latest"


class TestVersionCompare:
    """Test dotted version handling."""

    @pytest.mark.parametrize(
        ("raw", "expected"),
        [("v0.1.5", "0.1.5"), ("0.1.5", "0.1.5"), ("  v1.2.3  ", "1.2.3")],
    )
    def test_normalize(self, raw, expected):
        assert normalize_version(raw) == expected

    def test_parse_parts(self):
        assert parse_version_parts("0.1.5") == [0, 1, 5]
        assert parse_version_parts("10.0") == [10, 0]
        assert parse_version_parts("invalid") == []
        assert parse_version_parts("1.2.3-beta") == [1, 2]

    @pytest.mark.parametrize(
        ("a", "b", "expected"),
        [
            ("0.1.6", "0.1.5", 1),
            ("0.2.0", "0.1.5", 1),
            ("1.0.0", "0.9.9", 1),
            ("0.10.0", "0.9.0", 1),
            ("0.1.5", "0.1.5", 0),
            ("0.1", "0.1.0", 0),
            ("0.1.4", "0.1.5", -1),
        ],
    )
    def test_compare(self, a, b, expected):
        assert compare_versions(a, b) == expected


class TestSelfUpdateChecker:
    """Test the release check."""

    def _check(self, mock_client, handler, current="0.1.0"):
        async def _run():
            async with mock_client(handler) as client:
                checker = SelfUpdateChecker(
                    UpdateCheckConfig(releases_url=RELEASES_URL), HttpConfig(), client=client
                )
                return await checker.check(current)

        return asyncio.run(_run())

    def _release(self, tag):
        body = {"tag_name": tag, "html_url": f"https://example/releases/{tag}", "draft": False}

        def handler(request: httpx.Request) -> httpx.Response:
            assert str(request.url) == RELEASES_URL
            return httpx.Response(200, content=json.dumps(body).encode())

        return handler

    def test_update_available(self, mock_client):
        result = self._check(mock_client, self._release("v0.2.0"))

        assert result.status is UpdateStatus.UPDATE_AVAILABLE
        assert result.latest_version == "v0.2.0"
        assert result.url == "https://example/releases/v0.2.0"
        assert result.current_version == "0.1.0"

    @pytest.mark.parametrize("tag", ["v0.1.0", "0.1", "v0.0.9"])
    def test_up_to_date(self, mock_client, tag):
        result = self._check(mock_client, self._release(tag))

        assert result.status is UpdateStatus.UP_TO_DATE
        assert result.url is None

    def test_status_error(self, mock_client):
        result = self._check(mock_client, lambda request: httpx.Response(403))

        assert result.status is UpdateStatus.CHECK_FAILED
        assert "403" in result.error

    def test_transport_error(self, mock_client):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("unreachable", request=request)

        result = self._check(mock_client, handler)

        assert result.status is UpdateStatus.CHECK_FAILED
        assert "failed to check for updates" in result.error

    def test_malformed_release(self, mock_client):
        result = self._check(mock_client, lambda request: httpx.Response(200, content=b"{}"))

        assert result.status is UpdateStatus.CHECK_FAILED
        assert "failed to parse release info" in result.error
