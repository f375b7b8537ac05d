"""Search, install and manage add-on content."""

from __future__ import annotations

import asyncio
import json
from pathlib import Path

import click
from rich.console import Console
from rich.table import Table

from patchline.commands.launcher import raise_on_error, run_session
from patchline.core.config import AppConfig
from patchline.core.content import ContentOverlay
from patchline.core.errors import LauncherError
from patchline.core.state import DownloadMod
from patchline.core.utils import format_size


def _get_context_objects(ctx: click.Context) -> tuple[AppConfig, Console, bool, bool]:
    """Extract context objects from Click context."""
    config = ctx.obj["config"]
    console = ctx.obj["console"]
    verbose = ctx.obj.get("verbose", False)
    debug = ctx.obj.get("debug", False)
    return config, console, verbose, debug


@click.group("content", short_help="Manage add-on content.")
def content_group() -> None:
    """Manage add-on content from the content registry.

    Installed archives are kept in the user data directory and recorded in
    a manifest. Enabled entries are overlaid onto the game install every
    time the game is launched.
    """
    pass


@content_group.command("search")
@click.argument("query")
@click.option("--page", "-p", type=int, default=0, help="Zero-based result page")
@click.pass_context
def search(ctx: click.Context, query: str, page: int) -> None:
    """Search the registry."""
    config, console, verbose, _ = _get_context_objects(ctx)

    async def run():
        async with ContentOverlay(config) as overlay:
            return await overlay.search(query, page)

    try:
        result = asyncio.run(run())
    except LauncherError as e:
        raise click.ClickException(f"Search failed: {e.message}") from e

    if config.output_format == "json":
        print(json.dumps([p.model_dump(by_alias=True) for p in result.data], indent=2))
        return

    table = Table(title=f"Results for '{query}'", show_header=True)
    table.add_column("ID", justify="right", style="cyan")
    table.add_column("Name", style="green")
    table.add_column("Author", style="yellow")
    table.add_column("Downloads", justify="right")
    if verbose:
        table.add_column("Summary", style="dim")
    for project in result.data:
        row = [
            str(project.id),
            project.name,
            project.authors[0].name if project.authors else "Unknown",
            f"{project.download_count:,}",
        ]
        if verbose:
            row.append(project.summary)
        table.add_row(*row)
    console.print(table)
    if result.pagination is not None:
        console.print(
            f"[dim]Showing {result.pagination.result_count} of {result.pagination.total_count}[/dim]"
        )


@content_group.command("install")
@click.argument("registry_id", type=int)
@click.pass_context
def install(ctx: click.Context, registry_id: int) -> None:
    """Download the latest file of a registry project."""
    config, console, _, _ = _get_context_objects(ctx)
    state = run_session(config, console, lambda o: o.handle(DownloadMod(mod_id=registry_id)))
    raise_on_error(state)
    console.print(f"[green]Installed content {registry_id}[/green]")


@content_group.command("list")
@click.pass_context
def list_installed(ctx: click.Context) -> None:
    """List installed content."""
    config, console, _, _ = _get_context_objects(ctx)
    try:
        entries = ContentOverlay(config).installed()
    except LauncherError as e:
        raise click.ClickException(e.message) from e

    if config.output_format == "json":
        print(json.dumps([e.model_dump() for e in entries], indent=2))
        return

    if not entries:
        console.print("[yellow]No content installed[/yellow]")
        return

    table = Table(title="Installed Content", show_header=True)
    table.add_column("ID", style="cyan")
    table.add_column("Name", style="green")
    table.add_column("Version")
    table.add_column("Enabled")
    table.add_column("Size", justify="right")
    for entry in entries:
        try:
            size = format_size(Path(entry.file_path).stat().st_size)
        except OSError:
            size = "missing"
        table.add_row(
            entry.id,
            entry.name,
            entry.version,
            "[green]yes[/green]" if entry.enabled else "[dim]no[/dim]",
            size,
        )
    console.print(table)


def _toggle(ctx: click.Context, entry_id: str, enabled: bool) -> None:
    config, console, _, _ = _get_context_objects(ctx)
    try:
        ContentOverlay(config).set_enabled(entry_id, enabled)
    except LauncherError as e:
        raise click.ClickException(e.message) from e
    console.print(f"[green]{entry_id} {'enabled' if enabled else 'disabled'}[/green]")


@content_group.command("enable")
@click.argument("entry_id")
@click.pass_context
def enable(ctx: click.Context, entry_id: str) -> None:
    """Overlay an entry on launch."""
    _toggle(ctx, entry_id, True)


@content_group.command("disable")
@click.argument("entry_id")
@click.pass_context
def disable(ctx: click.Context, entry_id: str) -> None:
    """Stop overlaying an entry on launch."""
    _toggle(ctx, entry_id, False)


@content_group.command("remove")
@click.argument("entry_id")
@click.pass_context
def remove(ctx: click.Context, entry_id: str) -> None:
    """Delete an installed entry."""
    config, console, _, _ = _get_context_objects(ctx)
    try:
        ContentOverlay(config).remove(entry_id)
    except LauncherError as e:
        raise click.ClickException(e.message) from e
    console.print(f"[green]Removed {entry_id}[/green]")


@content_group.command("apply")
@click.pass_context
def apply(ctx: click.Context) -> None:
    """Overlay enabled content onto the install now."""
    config, console, _, _ = _get_context_objects(ctx)
    report = asyncio.run(ContentOverlay(config).apply_enabled())

    if config.output_format == "json":
        print(json.dumps({"applied": report.applied, "skipped": report.skipped}, indent=2))
        return

    for entry_id in report.applied:
        console.print(f"[green]Applied {entry_id}[/green]")
    for entry_id, reason in report.skipped:
        console.print(f"[yellow]Skipped {entry_id}: {reason}[/yellow]")
    if not report.applied and not report.skipped:
        console.print("[dim]No enabled content[/dim]")
