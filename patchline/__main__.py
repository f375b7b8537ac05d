"""Main entry point for patchline CLI."""

from __future__ import annotations

import asyncio
import logging
import sys
from pathlib import Path
from typing import Any

import click
import structlog
from rich.console import Console

from patchline import __version__
from patchline.commands.content import content_group
from patchline.commands.launcher import (
    check,
    diagnostics,
    install,
    open_folder,
    play,
    uninstall,
    versions,
)
from patchline.core.config import AppConfig
from patchline.core.updater import SelfUpdateCheck, UpdateStatus, check_for_updates


def configure_logging(level: str = "INFO", colors: bool = False) -> None:
    """Configure structlog processors and the minimum level."""
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.dev.ConsoleRenderer(colors=colors),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.getLevelNamesMapping()[level]
        ),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=False,
    )


# Configure structured logging
configure_logging("WARNING")

logger = structlog.get_logger()


@click.group()
@click.version_option(version=__version__, prog_name="patchline")
@click.option(
    "--config",
    "-c",
    type=click.Path(exists=True, path_type=Path),
    help="Configuration file path",
)
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output")
@click.option("--debug", "-d", is_flag=True, help="Enable debug output")
@click.option(
    "--output",
    "-o",
    type=click.Choice(["rich", "json", "plain"], case_sensitive=False),
    default="rich",
    help="Output format",
)
@click.pass_context
def main(
    ctx: click.Context,
    config: Path | None,
    verbose: bool,
    debug: bool,
    output: str,
) -> None:
    """Install, update and launch the game client."""
    ctx.ensure_object(dict)

    # Load configuration
    try:
        app_config = AppConfig.load(config)
    except Exception as e:
        logger.error("config_load_failed", error=str(e))
        sys.exit(1)

    # Override config with CLI options
    if verbose or debug:
        app_config.log_level = "DEBUG" if debug else "INFO"
    if output:
        app_config.output_format = output.lower()

    # Configure logging level
    if verbose or debug:
        configure_logging(app_config.log_level, colors=debug)

    # Create console for rich output
    console = Console(
        force_terminal=output == "rich",
        no_color=output != "rich",
        width=None if output == "rich" else 120,
    )

    # Store config and console in context for subcommands
    ctx.obj["config"] = app_config
    ctx.obj["console"] = console
    ctx.obj["verbose"] = verbose or debug
    ctx.obj["debug"] = debug

    logger.debug("cli_initialized", app_dir=str(app_config.app_dir))


@main.command()
@click.option("--check", "check_updates", is_flag=True, help="Check for a newer launcher release")
@click.pass_context
def version(ctx: click.Context, check_updates: bool) -> None:
    """Show version information."""
    console: Console = ctx.obj["console"]
    config: AppConfig = ctx.obj["config"]
    update = asyncio.run(check_for_updates(config)) if check_updates else None

    if config.output_format == "json":
        import json

        info = {
            "name": "patchline",
            "version": __version__,
            "python_version": sys.version.replace("\n", " "),
            "platform": sys.platform,
        }
        if update is not None:
            info["update"] = update.model_dump(mode="json")
        # Use regular print for JSON to avoid Rich formatting
        print(json.dumps(info, indent=2))
    else:
        console.print(f"patchline {__version__}")
        if ctx.obj["verbose"]:
            console.print(f"Python {sys.version}")
            console.print(f"Platform: {sys.platform}")
            console.print(f"Data directory: {config.app_dir}")
        if update is not None:
            _print_update(console, update)


def _print_update(console: Console, update: SelfUpdateCheck) -> None:
    if update.status is UpdateStatus.UPDATE_AVAILABLE:
        console.print(f"[yellow]Update available: {update.latest_version}[/yellow] {update.url}")
    elif update.status is UpdateStatus.UP_TO_DATE:
        console.print("[green]Launcher is up to date[/green]")
    else:
        console.print(f"[red]Update check failed: {update.error}[/red]")


# Register commands
main.add_command(versions)
main.add_command(check)
main.add_command(install)
main.add_command(play)
main.add_command(uninstall)
main.add_command(diagnostics)
main.add_command(open_folder)
main.add_command(content_group)


def handle_exception(exc_type: type[BaseException], exc_value: BaseException, exc_traceback: Any) -> None:
    """Handle uncaught exceptions."""
    if issubclass(exc_type, KeyboardInterrupt):
        logger.info("operation_cancelled_by_user")
        sys.exit(1)

    logger.error(
        "uncaught_exception",
        exc_info=(exc_type, exc_value, exc_traceback),
    )
    sys.exit(1)


if __name__ == "__main__":
    # Install exception handler
    sys.excepthook = handle_exception

    try:
        main()
    except Exception as e:
        logger.error("cli_execution_failed", error=str(e))
        sys.exit(1)
