"""Installation state machine.

The orchestrator owns the pipeline components and the cancellation token,
turns caller intents into pipeline runs and publishes every state change
as a snapshot on an unbounded queue. Only one intent should be in flight
at a time; the cancellation token is the only cross-call coordination.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from pathlib import Path

import click
import httpx
import structlog

from patchline.core.applier import PatchApplier, PatchToolProvisioner
from patchline.core.cache import PatchCache
from patchline.core.cancel import CancellationToken, check_cancel
from patchline.core.config import AppConfig
from patchline.core.content import ContentOverlay
from patchline.core.diagnostics import Diagnostics
from patchline.core.errors import (
    ErrorKind,
    FilesystemError,
    LauncherError,
    NetworkError,
    OperationCancelledError,
    StatusError,
    UnsupportedPlatformError,
)
from patchline.core.http import create_async_client
from patchline.core.install_state import LocalInstallStore
from patchline.core.launcher import ProductLauncher
from patchline.core.patches import PatchFetcher
from patchline.core.platform import Platform, client_relative_path
from patchline.core.runtime import RuntimeProvisioner
from patchline.core.state import (
    CancelDownload,
    CheckForUpdates,
    CheckingForUpdates,
    ClickPlay,
    DiagnosticsReady,
    DiagnosticsRunning,
    DownloadGame,
    Downloading,
    DownloadMod,
    Error,
    Idle,
    Initialising,
    Intent,
    OpenGameFolder,
    Playing,
    ReadyToPlay,
    RunDiagnostics,
    State,
    UninstallGame,
    Uninstalling,
)
from patchline.core.types import (
    ProgressCallback,
    ProgressUpdate,
    ResolveFailure,
    VersionCheckResult,
)
from patchline.core.versions import VersionResolver, sort_versions

logger = structlog.get_logger()


def _resolve_error(check: VersionCheckResult) -> LauncherError:
    message = check.error or "version check failed"
    if check.failure is ResolveFailure.UNREACHABLE:
        return NetworkError(message)
    if check.failure is ResolveFailure.UNSUPPORTED_PLATFORM:
        return UnsupportedPlatformError(message)
    return StatusError(message)


class InstallationOrchestrator:
    """Drive the install/update/play pipeline from caller intents.

    Args:
        config: Application configuration
        client: Shared HTTP client, created and owned here when omitted
        cancel: Cancellation token, created when omitted
        platform: Target platform, detected when omitted
        opener: Callable opening a directory with the OS handler

    Every pipeline component may be injected by keyword; the defaults are
    built from ``config`` and share one HTTP client.
    """

    def __init__(
        self,
        config: AppConfig,
        *,
        client: httpx.AsyncClient | None = None,
        cancel: CancellationToken | None = None,
        platform: Platform | None = None,
        resolver: VersionResolver | None = None,
        fetcher: PatchFetcher | None = None,
        runtime: RuntimeProvisioner | None = None,
        applier: PatchApplier | None = None,
        content: ContentOverlay | None = None,
        store: LocalInstallStore | None = None,
        launcher: ProductLauncher | None = None,
        diagnostics: Diagnostics | None = None,
        opener: Callable[[str], int] | None = None,
    ):
        self.config = config
        self.platform = platform or Platform.current()
        self.cancel_token = cancel or CancellationToken()

        self._owns_client = client is None
        self.client = client or create_async_client(config.http)

        self.resolver = resolver or VersionResolver(
            config.patch, config.http, client=self.client, platform=self.platform
        )
        self.fetcher = fetcher or PatchFetcher(
            config.patch,
            config.http,
            PatchCache(config.cache_dir, config.patch.cache_size_floor),
            client=self.client,
            platform=self.platform,
        )
        self.runtime = runtime or RuntimeProvisioner(config, client=self.client, platform=self.platform)
        self.applier = applier or PatchApplier(
            config.game_dir,
            PatchToolProvisioner(config, client=self.client, platform=self.platform),
            platform=self.platform,
        )
        self.content = content or ContentOverlay(config, client=self.client)
        self.store = store or LocalInstallStore(config)
        self.launcher = launcher or ProductLauncher(config, platform=self.platform)
        self.diagnostics = diagnostics or Diagnostics(config, client=self.client, platform=self.platform)
        self.opener = opener or click.launch

        self.updates: asyncio.Queue[State] = asyncio.Queue()
        self.state: State = Initialising()

    @property
    def executable_path(self) -> Path:
        return self.config.game_dir / client_relative_path(self.platform)

    async def aclose(self) -> None:
        """Close the shared HTTP client if this orchestrator created it."""
        if self._owns_client:
            await self.client.aclose()

    async def __aenter__(self) -> InstallationOrchestrator:
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.aclose()

    def _set_state(self, state: State) -> None:
        self.state = state
        self.updates.put_nowait(state)
        logger.debug("state_changed", state=state.name)

    def _fail(self, error: BaseException) -> None:
        if isinstance(error, OperationCancelledError):
            logger.warning("operation_cancelled")
            self._set_state(Error(message="cancelled", kind=ErrorKind.CANCELLED))
        elif isinstance(error, LauncherError):
            logger.error("operation_failed", kind=error.kind.value, error=error.message)
            self._set_state(Error(message=error.message, kind=error.kind))
        else:
            logger.error("operation_failed_unexpectedly", error=str(error), exc_info=error)
            self._set_state(Error(message=str(error) or type(error).__name__))

    def _download_progress(self, label: str | None = None) -> ProgressCallback:
        def on_progress(update: ProgressUpdate) -> None:
            self._set_state(
                Downloading(
                    label=label or update.current_file or update.stage,
                    progress=update.progress,
                    rate=update.speed or update.message,
                )
            )

        return on_progress

    def _ensure_layout(self) -> None:
        try:
            self.config.ensure_base_dirs()
        except OSError as e:
            raise FilesystemError(f"failed to create launcher directories: {e}") from e

    def cancel(self) -> None:
        """Request cancellation of the in-flight step."""
        self.cancel_token.cancel()
        logger.warning("cancel_download_requested")

    async def start(self) -> State:
        """Resolve the initial state from the local install record."""
        self._set_state(Initialising())
        try:
            self._ensure_layout()
        except FilesystemError as e:
            self._fail(e)
            return self.state
        local = self.store.read()
        if local is not None and self.executable_path.exists():
            self._set_state(ReadyToPlay(version=local))
        else:
            self._set_state(Idle())
        return self.state

    async def available_versions(self, channel: str | None = None) -> VersionCheckResult:
        """Remote versions with the installed version merged in."""
        check = await self.resolver.find_latest(channel or self.config.patch.channel)
        local = self.store.read_ordinal()
        if local is not None and local not in check.available:
            check.available = sort_versions([*check.available, local])
        return check

    async def handle(self, intent: Intent) -> State:
        """Process one intent and return the resulting state."""
        logger.info("intent_received", intent=type(intent).__name__)
        if isinstance(intent, (CheckForUpdates, DownloadGame)):
            await self.bootstrap(intent.target_version)
        elif isinstance(intent, ClickPlay):
            await self._play(intent)
        elif isinstance(intent, CancelDownload):
            self.cancel()
        elif isinstance(intent, DownloadMod):
            await self._download_mod(intent.mod_id)
        elif isinstance(intent, UninstallGame):
            await self._uninstall()
        elif isinstance(intent, RunDiagnostics):
            await self._run_diagnostics()
        elif isinstance(intent, OpenGameFolder):
            self._open_game_folder()
        else:
            raise TypeError(f"unknown intent: {intent!r}")
        return self.state

    async def bootstrap(self, requested_version: int | None = None) -> State:
        """Ensure the runtime and bring the install to the requested version."""
        self.cancel_token.reset()
        self._set_state(CheckingForUpdates())
        logger.info("bootstrap_start", requested=requested_version)
        try:
            self._ensure_layout()
            await self.runtime.ensure(
                cancel=self.cancel_token, on_progress=self._download_progress("runtime")
            )
            check_cancel(self.cancel_token, "after_runtime")
            version = await self._prepare_game(requested_version)
        except Exception as e:
            self._fail(e)
            return self.state

        self._set_state(ReadyToPlay(version=version))
        logger.info("bootstrap_complete", version=version)
        return self.state

    async def _prepare_game(self, requested_version: int | None) -> str:
        check_cancel(self.cancel_token, "before_prepare")
        local_version = self.store.read_ordinal()
        client_exists = self.executable_path.exists()

        if requested_version is not None and client_exists and local_version == requested_version:
            logger.info("version_already_installed", version=requested_version)
            return str(requested_version)

        self._set_state(CheckingForUpdates())
        check = await self.available_versions()
        known_versions = check.available

        if check.error is not None:
            # An explicit request matching the install returned above.
            if requested_version is None and client_exists and local_version is not None:
                logger.warning(
                    "version_check_failed_using_cached",
                    error=check.error,
                    version=local_version,
                )
                return str(local_version)
            raise _resolve_error(check)

        logger.info("latest_version", latest=check.latest, checked=len(check.checked_urls))

        target = requested_version or (check.latest if check.latest > 0 else None) or local_version or 0
        if target == 0:
            raise StatusError("No game versions available for this platform")
        if known_versions and target <= known_versions[0] and target not in known_versions:
            raise StatusError(f"Version {target} is not available for this platform")

        if client_exists and local_version == target:
            logger.info("version_already_installed", version=target)
            return str(target)

        baseline = local_version if client_exists and local_version else 0
        on_progress = self._download_progress()
        patch_path = await self.fetcher.acquire(
            self.config.patch.channel,
            baseline,
            target,
            cancel=self.cancel_token,
            on_progress=on_progress,
        )
        check_cancel(self.cancel_token, "after_patch_download")
        await self.applier.apply(
            patch_path,
            on_progress,
            cancel=self.cancel_token,
            incremental=baseline > 0,
        )
        self.store.write(target)
        return str(target)

    async def _play(self, intent: ClickPlay) -> None:
        state = self.state
        if isinstance(state, Error):
            logger.warning("play_from_error_rerun_bootstrap")
            await self.bootstrap(None)
            return
        if not isinstance(state, ReadyToPlay):
            logger.warning("play_ignored", state=state.name)
            return

        version = state.version
        if not self.executable_path.exists():
            self._fail(
                FilesystemError(
                    f"Game version {version} is not installed. Please redownload in the launcher."
                )
            )
            return

        report = await self.content.apply_enabled()
        if report.skipped:
            logger.warning("content_overlay_partial", skipped=len(report.skipped))

        self._set_state(Playing())
        try:
            await asyncio.to_thread(
                self.launcher.launch, version, intent.player_name, intent.auth_mode
            )
        except Exception as e:
            self._fail(e)
            return
        self._set_state(Idle())
        logger.info("game_launched", version=version)

    async def _download_mod(self, mod_id: int) -> None:
        if not self.executable_path.exists():
            self._fail(FilesystemError("Install the game before installing mods."))
            return

        self.cancel_token.reset()
        label = f"mod-{mod_id}"
        self._set_state(Downloading(label=label, progress=0.0, rate="starting"))
        try:
            await self.content.fetch_latest(
                mod_id, cancel=self.cancel_token, on_progress=self._download_progress(label)
            )
        except Exception as e:
            self._fail(e)
            return

        local = self.store.read()
        self._set_state(ReadyToPlay(version=local) if local is not None else Idle())

    async def _uninstall(self) -> None:
        self._set_state(Uninstalling())
        try:
            await self.store.uninstall()
        except Exception as e:
            self._fail(e)
            return
        self._set_state(Idle())

    async def _run_diagnostics(self) -> None:
        self._set_state(DiagnosticsRunning())
        report = await self.diagnostics.run()
        self._set_state(DiagnosticsReady(report=report.render()))

    def _open_game_folder(self) -> None:
        game_dir = self.config.game_dir
        if not game_dir.exists():
            self._fail(FilesystemError("Game folder not found. Download the game first."))
            return
        result = self.opener(str(game_dir))
        if result:
            self._fail(FilesystemError(f"failed to open game folder (exit code {result})"))
