"""
Statesync CLI - Main application entry point.

This module sets up the Typer CLI application with all subcommands.
"""

import logging
import sys

import typer

from statesync import __version__
from statesync.cli import sync
from statesync.core.config.env import load_layered_env

app = typer.Typer(
    name="statesync",
    help="Mirror sandbox state into durable object storage",
    no_args_is_help=True,
    add_completion=False,
    context_settings={"help_option_names": ["--help", "-h"]},
)


def setup_logging(debug: bool = False) -> None:
    """
    Configure logging for all commands.

    Args:
        debug: If True, enable DEBUG level logging
    """
    level = logging.DEBUG if debug else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stderr,
    )


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"statesync {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    ctx: typer.Context,
    debug: bool = typer.Option(
        False,
        "--debug",
        help="Enable debug output with detailed logging",
    ),
    supervisor: str | None = typer.Option(
        None,
        "--supervisor",
        help="Process supervisor to run sandbox commands with (local, docker, auto)",
    ),
    container: str | None = typer.Option(
        None,
        "--container",
        help="Container to exec into when using the docker supervisor",
    ),
    version: bool = typer.Option(
        False,
        "--version",
        callback=_version_callback,
        is_eager=True,
        help="Show version and exit",
    ),
) -> None:
    """
    Statesync - keep sandbox state in durable storage.

    Quick Start:
        statesync sync               # Mirror state and verify the marker
        statesync status             # When did the last sync land?
        statesync diagnose           # Inspect sources and storage
        statesync history            # Recent sync runs
    """
    setup_logging(debug)

    # Precedence: OS env > project .env > user .env
    load_layered_env()

    ctx.obj = {"debug": debug, "supervisor": supervisor, "container": container}


app.command(name="sync")(sync.sync)
app.command(name="status")(sync.status)
app.command(name="diagnose")(sync.diagnose)
app.command(name="history")(sync.history)


def cli_main() -> None:
    """Entry point for the statesync console script."""
    app()


__all__ = ["app", "cli_main", "setup_logging"]
