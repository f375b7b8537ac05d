"""Install, update, play and maintain the game client."""

from __future__ import annotations

import asyncio
import dataclasses
import json
import signal
import sys
from collections.abc import Awaitable, Callable
from typing import Any

import click
import structlog
from rich.console import Console
from rich.progress import (
    BarColumn,
    Progress,
    TaskID,
    TextColumn,
    TimeElapsedColumn,
)
from rich.table import Table

from patchline.core.config import AppConfig
from patchline.core.orchestrator import InstallationOrchestrator
from patchline.core.state import (
    CheckForUpdates,
    ClickPlay,
    DiagnosticsReady,
    DownloadGame,
    Downloading,
    Error,
    Idle,
    OpenGameFolder,
    ReadyToPlay,
    RunDiagnostics,
    State,
    UninstallGame,
)

logger = structlog.get_logger()


def _get_context_objects(ctx: click.Context) -> tuple[AppConfig, Console, bool, bool]:
    """Extract context objects from Click context."""
    config = ctx.obj["config"]
    console = ctx.obj["console"]
    verbose = ctx.obj.get("verbose", False)
    debug = ctx.obj.get("debug", False)
    return config, console, verbose, debug


def state_to_dict(state: State) -> dict[str, Any]:
    """JSON-friendly form of a state snapshot."""
    data: dict[str, Any] = {"state": state.name}
    if dataclasses.is_dataclass(state):
        for key, value in dataclasses.asdict(state).items():
            data[key] = value.value if hasattr(value, "value") else value
    return data


class StateRenderer:
    """Render orchestrator snapshots on the console."""

    def __init__(self, console: Console, output_format: str):
        self.console = console
        self.output_format = output_format
        self._progress: Progress | None = None
        self._tasks: dict[str, TaskID] = {}
        self._last: str | None = None

    def _ensure_progress(self) -> Progress:
        if self._progress is None:
            self._progress = Progress(
                TextColumn("[bold blue]{task.description}"),
                BarColumn(),
                TextColumn("{task.percentage:>5.1f}%"),
                TextColumn("[dim]{task.fields[rate]}"),
                TimeElapsedColumn(),
                console=self.console,
            )
            self._progress.start()
        return self._progress

    def close(self) -> None:
        if self._progress is not None:
            self._progress.stop()
            self._progress = None
            self._tasks.clear()

    def render(self, state: State) -> None:
        if self.output_format == "json":
            if not isinstance(state, Downloading):
                print(json.dumps(state_to_dict(state)))
            return

        if isinstance(state, Downloading):
            progress = self._ensure_progress()
            task = self._tasks.get(state.label)
            if task is None:
                task = progress.add_task(state.label, total=100.0, rate=state.rate)
                self._tasks[state.label] = task
            progress.update(task, completed=state.progress, rate=state.rate)
            return

        self.close()
        if state.name == self._last:
            return
        self._last = state.name
        if isinstance(state, Error):
            color = "yellow" if state.cancelled else "red"
            self.console.print(f"[{color}]Error: {state.message}[/{color}]")
        elif isinstance(state, ReadyToPlay):
            self.console.print(f"[green]Ready to play version {state.version}[/green]")
        elif isinstance(state, DiagnosticsReady):
            self.console.print(state.report, markup=False, highlight=False)
        else:
            self.console.print(f"[cyan]{state.name}[/cyan]")


async def _drain(orchestrator: InstallationOrchestrator, renderer: StateRenderer) -> None:
    while True:
        state = await orchestrator.updates.get()
        renderer.render(state)


def run_session(
    config: AppConfig,
    console: Console,
    body: Callable[[InstallationOrchestrator], Awaitable[Any]],
) -> Any:
    """Run ``body`` against a fresh orchestrator, rendering its states.

    Ctrl-C requests cancellation of the running step instead of killing
    the process.
    """
    renderer = StateRenderer(console, config.output_format)

    async def session() -> Any:
        async with InstallationOrchestrator(config) as orchestrator:
            loop = asyncio.get_running_loop()
            if sys.platform != "win32":
                loop.add_signal_handler(signal.SIGINT, orchestrator.cancel)
            drain = asyncio.create_task(_drain(orchestrator, renderer))
            try:
                return await body(orchestrator)
            finally:
                if sys.platform != "win32":
                    loop.remove_signal_handler(signal.SIGINT)
                # Flush whatever is still queued before stopping the renderer.
                while not orchestrator.updates.empty():
                    renderer.render(orchestrator.updates.get_nowait())
                drain.cancel()
                renderer.close()

    return asyncio.run(session())


def raise_on_error(state: State) -> None:
    if isinstance(state, Error):
        if state.cancelled:
            raise click.Abort()
        raise click.ClickException(state.message)


@click.command("versions")
@click.option("--channel", "-C", default=None, help="Release channel (release, pre-release)")
@click.pass_context
def versions(ctx: click.Context, channel: str | None) -> None:
    """List game versions published for this platform."""
    config, console, verbose, _ = _get_context_objects(ctx)

    async def body(orchestrator: InstallationOrchestrator):
        return await orchestrator.available_versions(channel), orchestrator.store.read()

    check, installed = run_session(config, console, body)

    if config.output_format == "json":
        print(json.dumps({
            "latest": check.latest,
            "available": check.available,
            "installed": installed,
            "error": check.error,
        }, indent=2))
        return

    if check.error:
        console.print(f"[yellow]Warning: {check.error}[/yellow]")

    table = Table(title="Game Versions", show_header=True)
    table.add_column("Version", justify="right", style="cyan")
    table.add_column("Status", style="green")
    for version in check.available:
        marks = []
        if version == check.latest:
            marks.append("latest")
        if installed is not None and str(version) == installed:
            marks.append("installed")
        table.add_row(str(version), ", ".join(marks))
    console.print(table)

    if verbose and check.success_url:
        console.print(f"[dim]Latest found at {check.success_url}[/dim]")


@click.command("check")
@click.option("--version", "target", type=int, default=None, help="Target version, defaults to latest")
@click.pass_context
def check(ctx: click.Context, target: int | None) -> None:
    """Check for updates and bring the install up to date."""
    config, console, _, _ = _get_context_objects(ctx)
    state = run_session(config, console, lambda o: o.handle(CheckForUpdates(target_version=target)))
    raise_on_error(state)


@click.command("install")
@click.option("--version", "target", type=int, default=None, help="Version to install, defaults to latest")
@click.pass_context
def install(ctx: click.Context, target: int | None) -> None:
    """Download and install the game."""
    config, console, _, _ = _get_context_objects(ctx)
    state = run_session(config, console, lambda o: o.handle(DownloadGame(target_version=target)))
    raise_on_error(state)


@click.command("play")
@click.option("--name", "player_name", default=None, help="Player name")
@click.option(
    "--auth-mode",
    type=click.Choice(["offline", "online"]),
    default=None,
    help="Authentication mode",
)
@click.option("--version", "target", type=int, default=None, help="Install this version first if needed")
@click.pass_context
def play(ctx: click.Context, player_name: str | None, auth_mode: str | None, target: int | None) -> None:
    """Launch the game, installing it first when needed."""
    config, console, _, _ = _get_context_objects(ctx)
    intent = ClickPlay(
        player_name=player_name or config.launch.player_name,
        auth_mode=auth_mode or config.launch.auth_mode,
    )

    async def body(orchestrator: InstallationOrchestrator) -> State:
        state = await orchestrator.start()
        needs_install = not isinstance(state, ReadyToPlay) or (
            target is not None and state.version != str(target)
        )
        if needs_install:
            state = await orchestrator.handle(DownloadGame(target_version=target))
            if not isinstance(state, ReadyToPlay):
                return state
        return await orchestrator.handle(intent)

    state = run_session(config, console, body)
    raise_on_error(state)
    if isinstance(state, Idle):
        console.print("[green]Game launched[/green]")


@click.command("uninstall")
@click.confirmation_option(prompt="Remove the game, runtime, caches and user data?")
@click.pass_context
def uninstall(ctx: click.Context) -> None:
    """Remove every installed file."""
    config, console, _, _ = _get_context_objects(ctx)
    state = run_session(config, console, lambda o: o.handle(UninstallGame()))
    raise_on_error(state)


@click.command("diagnostics")
@click.pass_context
def diagnostics(ctx: click.Context) -> None:
    """Print an environment diagnostics report."""
    config, console, _, _ = _get_context_objects(ctx)
    state = run_session(config, console, lambda o: o.handle(RunDiagnostics()))
    raise_on_error(state)


@click.command("open-folder")
@click.pass_context
def open_folder(ctx: click.Context) -> None:
    """Open the game folder in the file manager."""
    config, console, _, _ = _get_context_objects(ctx)
    state = run_session(config, console, lambda o: o.handle(OpenGameFolder()))
    raise_on_error(state)
