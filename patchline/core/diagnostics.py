"""Environment diagnostics report."""

from __future__ import annotations

import os
import platform as _platform
import sys
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path

import httpx
import structlog

from patchline import __version__
from patchline.core.config import AppConfig
from patchline.core.http import HttpComponent
from patchline.core.install_state import LocalInstallStore
from patchline.core.platform import (
    Platform,
    client_relative_path,
    runtime_binary_relative_path,
    tool_binary_name,
)

logger = structlog.get_logger()


@dataclass
class DirectoryStatus:
    name: str
    path: Path
    exists: bool
    writable: bool


@dataclass
class DiagnosticReport:
    """Snapshot of the launcher environment."""

    launcher_version: str
    python_version: str
    os: str
    arch: str
    timestamp: str
    directories: list[DirectoryStatus] = field(default_factory=list)
    runtime_present: bool = False
    client_present: bool = False
    tool_present: bool = False
    installed_version: str | None = None
    patch_host: str = ""
    patch_host_reachable: bool = False
    patch_host_error: str | None = None

    def render(self) -> str:
        """Plain-text rendering."""
        lines = [
            "=== Launcher diagnostics ===",
            f"Timestamp: {self.timestamp}",
            f"Launcher: {self.launcher_version}",
            f"Python: {self.python_version}",
            f"Platform: {self.os}/{self.arch}",
            "",
            "Directories:",
        ]
        for status in self.directories:
            state = "ok" if status.exists and status.writable else (
                "read-only" if status.exists else "missing"
            )
            lines.append(f"  {status.name}: {status.path} [{state}]")
        lines += [
            "",
            f"Installed version: {self.installed_version or 'none'}",
            f"Game client: {'present' if self.client_present else 'missing'}",
            f"Runtime: {'present' if self.runtime_present else 'missing'}",
            f"Patch tool: {'present' if self.tool_present else 'missing'}",
            "",
            f"Patch host: {self.patch_host} "
            f"[{'reachable' if self.patch_host_reachable else 'unreachable'}]",
        ]
        if self.patch_host_error:
            lines.append(f"  error: {self.patch_host_error}")
        return "\n".join(lines)


class Diagnostics(HttpComponent):
    """Collect a diagnostic report. Never raises."""

    def __init__(
        self,
        config: AppConfig,
        client: httpx.AsyncClient | None = None,
        platform: Platform | None = None,
    ):
        super().__init__(config.http, client)
        self.config = config
        self.platform = platform or Platform.current()

    def _directory_status(self, name: str, path: Path) -> DirectoryStatus:
        exists = path.is_dir()
        return DirectoryStatus(
            name=name,
            path=path,
            exists=exists,
            writable=exists and os.access(path, os.W_OK),
        )

    async def _probe_host(self, report: DiagnosticReport) -> None:
        try:
            response = await self.async_client.head(report.patch_host)
        except httpx.HTTPError as e:
            report.patch_host_error = str(e) or type(e).__name__
            return
        # Any HTTP answer means the host is reachable.
        report.patch_host_reachable = True
        if not response.is_success:
            report.patch_host_error = f"HTTP {response.status_code}"

    async def run(self) -> DiagnosticReport:
        config = self.config
        report = DiagnosticReport(
            launcher_version=__version__,
            python_version=sys.version.split()[0],
            os=self.platform.os,
            arch=self.platform.arch or _platform.machine(),
            timestamp=datetime.now(UTC).isoformat(),
            patch_host=config.patch.host,
        )
        report.directories = [
            self._directory_status(name, path)
            for name, path in (
                ("app", config.app_dir),
                ("game", config.game_dir),
                ("runtime", config.runtime_dir),
                ("patch tool", config.tool_dir),
                ("cache", config.cache_dir),
                ("user data", config.user_data_dir),
            )
        ]
        report.client_present = (config.game_dir / client_relative_path(self.platform)).exists()
        report.runtime_present = (
            config.runtime_dir / runtime_binary_relative_path(self.platform)
        ).exists()
        report.tool_present = (config.tool_dir / tool_binary_name(self.platform)).exists()
        report.installed_version = LocalInstallStore(config).read()

        await self._probe_host(report)
        logger.info(
            "diagnostics_complete",
            reachable=report.patch_host_reachable,
            installed=report.installed_version,
        )
        return report
