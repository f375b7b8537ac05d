"""Patch application through the external patch tool."""

from __future__ import annotations

import asyncio
import shutil
from pathlib import Path

import httpx
import structlog

from patchline.core.artifacts import ArtifactProvisioner, make_executable
from patchline.core.cancel import CancellationToken, check_cancel
from patchline.core.config import AppConfig
from patchline.core.errors import ExternalToolError, FilesystemError
from patchline.core.platform import (
    Platform,
    client_relative_path,
    tool_binary_name,
    tool_keys,
)
from patchline.core.types import (
    ArchiveKind,
    DownloadTarget,
    ProgressCallback,
    ProgressUpdate,
    emit_progress,
)

logger = structlog.get_logger()

STAGING_DIR_NAME = "staging-temp"
STRAY_PATTERNS = ("*.tmp", "sf-*")
SAVE_INTERVAL_FLAG = "--save-interval=60"


class PatchToolProvisioner(ArtifactProvisioner):
    """Bootstrap the patch tool binary into the tool directory."""

    name = "butler"
    keep_archive = False

    def __init__(
        self,
        config: AppConfig,
        client: httpx.AsyncClient | None = None,
        platform: Platform | None = None,
    ):
        super().__init__(
            root=config.tool_dir,
            cache_dir=config.cache_dir,
            http_config=config.http,
            client=client,
            platform=platform,
        )
        self.url_template = config.tool.url_template

    @property
    def binary_path(self) -> Path:
        return self.root / tool_binary_name(self.platform)

    async def resolve_target(self, cancel: CancellationToken | None) -> DownloadTarget:
        os_key, arch = tool_keys(self.platform)
        return DownloadTarget(
            url=self.url_template.format(os=os_key, arch=arch),
            archive=ArchiveKind.ZIP,
        )

    def after_install(self, binary: Path) -> None:
        if self.platform.is_posix:
            make_executable(binary)


def clean_staging(game_dir: Path) -> None:
    """Remove the staging directory and stray partial files left by the tool."""
    staging = game_dir / STAGING_DIR_NAME
    if staging.exists():
        shutil.rmtree(staging, ignore_errors=True)
    if not game_dir.is_dir():
        return
    for pattern in STRAY_PATTERNS:
        for stray in game_dir.glob(pattern):
            try:
                if stray.is_dir():
                    shutil.rmtree(stray)
                else:
                    stray.unlink()
            except OSError as e:
                logger.warning("staging_cleanup_failed", path=str(stray), error=str(e))


class PatchApplier:
    """Apply a downloaded patch to the live install tree."""

    def __init__(
        self,
        game_dir: Path,
        tool: PatchToolProvisioner,
        platform: Platform | None = None,
    ):
        self.game_dir = game_dir
        self.tool = tool
        self.platform = platform or Platform.current()

    @property
    def executable_path(self) -> Path:
        return self.game_dir / client_relative_path(self.platform)

    def build_command(self, tool_path: Path, patch_path: Path) -> list[str]:
        """Command line for the patch tool."""
        staging = self.game_dir / STAGING_DIR_NAME
        command = [str(tool_path), "apply", "--staging-dir", str(staging)]
        if self.platform.is_windows:
            command.append(SAVE_INTERVAL_FLAG)
        command.extend([str(patch_path), str(self.game_dir)])
        return command

    async def _run_tool(self, command: list[str]) -> tuple[int, str, str]:
        try:
            proc = await asyncio.create_subprocess_exec(
                *command,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise ExternalToolError(f"failed to start patch tool: {e}") from e
        stdout, stderr = await proc.communicate()
        return (
            proc.returncode or 0,
            stdout.decode(errors="replace"),
            stderr.decode(errors="replace"),
        )

    async def apply(
        self,
        patch_path: Path,
        on_progress: ProgressCallback | None = None,
        *,
        cancel: CancellationToken | None = None,
        incremental: bool = False,
    ) -> None:
        """Apply ``patch_path`` to the install tree.

        A full package is skipped when the product executable already
        exists. Incremental patches always run.

        Raises:
            ExternalToolError: The patch tool failed or could not start
            FilesystemError: Install directories could not be prepared
            OperationCancelledError, IntegrityError, NetworkError, StatusError:
                From the tool bootstrap
        """
        executable = self.executable_path
        if executable.exists() and not incremental:
            logger.info("patch_apply_skipped", reason="already_installed", path=str(executable))
            emit_progress(
                on_progress,
                ProgressUpdate(stage="complete", progress=100.0, message="Game already installed"),
            )
            return

        emit_progress(
            on_progress,
            ProgressUpdate(stage="install", progress=0.0, message="Preparing patch tool..."),
        )
        tool_path = await self.tool.ensure(cancel=cancel, on_progress=on_progress)
        check_cancel(cancel, "before_patch_apply")

        clean_staging(self.game_dir)
        try:
            (self.game_dir / STAGING_DIR_NAME).mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise FilesystemError(f"unable to prepare install directory: {e}") from e

        emit_progress(
            on_progress,
            ProgressUpdate(stage="install", progress=50.0, message="Applying game patch..."),
        )
        command = self.build_command(tool_path, patch_path)
        logger.info("patch_apply_start", patch=str(patch_path), dest=str(self.game_dir))
        returncode, stdout, stderr = await self._run_tool(command)

        clean_staging(self.game_dir)
        if returncode != 0:
            output = stderr.strip() or stdout.strip()
            logger.error("patch_apply_failed", returncode=returncode, output=output)
            raise ExternalToolError(
                f"patch tool exited with code {returncode}: {output}",
                output=output,
                returncode=returncode,
            )

        try:
            patch_path.unlink(missing_ok=True)
        except OSError as e:
            logger.warning("patch_cleanup_failed", path=str(patch_path), error=str(e))

        if self.platform.is_posix and executable.exists():
            try:
                make_executable(executable)
            except OSError as e:
                raise FilesystemError(f"failed to mark game executable: {e}") from e

        logger.info("patch_apply_complete", dest=str(self.game_dir))
        emit_progress(
            on_progress,
            ProgressUpdate(stage="complete", progress=100.0, message="Game installed successfully"),
        )
