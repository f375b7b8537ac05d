"""Tests for patchline.core.diagnostics module."""

import asyncio

import httpx

from patchline import __version__
from patchline.core.diagnostics import Diagnostics
from patchline.core.install_state import LocalInstallStore


def _run(app_config, mock_client, handler, platform):
    async def _go():
        async with mock_client(handler) as client:
            return await Diagnostics(app_config, client=client, platform=platform).run()

    return asyncio.run(_go())


class TestDiagnostics:
    """Test the diagnostics report."""

    def test_fresh_machine(self, app_config, mock_client, linux_platform):
        report = _run(app_config, mock_client, lambda request: httpx.Response(200), linux_platform)

        assert report.launcher_version == __version__
        assert report.patch_host_reachable
        assert report.patch_host_error is None
        assert not report.client_present
        assert report.installed_version is None
        assert all(not status.exists for status in report.directories)

        text = report.render()
        assert "Installed version: none" in text
        assert "[reachable]" in text
        assert "[missing]" in text

    def test_installed(self, app_config, mock_client, linux_platform):
        app_config.ensure_base_dirs()
        (app_config.game_dir / "Client").mkdir()
        (app_config.game_dir / "Client" / "GameClient").write_text("bin")
        LocalInstallStore(app_config).write(9)

        report = _run(app_config, mock_client, lambda request: httpx.Response(404), linux_platform)

        assert report.client_present
        assert report.installed_version == "9"
        assert report.patch_host_reachable
        assert report.patch_host_error == "HTTP 404"
        assert all(status.exists and status.writable for status in report.directories)

    def test_unreachable_host_does_not_raise(self, app_config, mock_client, linux_platform):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("no route", request=request)

        report = _run(app_config, mock_client, handler, linux_platform)

        assert not report.patch_host_reachable
        assert report.patch_host_error == "no route"
        assert "[unreachable]" in report.render()
