"""
Statesync CLI - sync, status, diagnose and history commands.

Thin wrappers around the SyncEngine: each command loads configuration,
builds a process supervisor and runs one async operation to completion.
"""

import asyncio
import json
import logging
from typing import Any

import typer
from rich.console import Console
from rich.table import Table

from statesync.cli.errors import (
    ExitCode,
    print_error,
    print_storage_not_configured_error,
    print_supervisor_error,
)
from statesync.core.config import StateSyncConfig, load_config
from statesync.core.process import ProcessSupervisor, SupervisorError, get_supervisor
from statesync.core.sync import DiagnosticsCollector, SyncEngine, SyncResult
from statesync.utils.logging import EventType, SyncEventLog

logger = logging.getLogger(__name__)

console = Console()


def _load(ctx: typer.Context) -> tuple[StateSyncConfig, ProcessSupervisor]:
    """
    Load configuration and build the supervisor, applying CLI overrides.

    Raises:
        typer.Exit: With USER_ERROR if no usable supervisor can be built
    """
    options: dict[str, Any] = ctx.obj or {}
    config = load_config()

    supervisor_config = config.supervisor.model_copy()
    if options.get("supervisor"):
        supervisor_config.name = options["supervisor"]
    if options.get("container"):
        supervisor_config.container = options["container"]

    try:
        supervisor = get_supervisor(supervisor_config.name, supervisor_config)
    except ValueError as e:
        print_supervisor_error(supervisor_config.name, str(e))
        raise typer.Exit(ExitCode.USER_ERROR)

    logger.debug("Using supervisor %s", supervisor.name)
    return config, supervisor


async def _run_sync(engine: SyncEngine) -> SyncResult:
    try:
        return await engine.sync()
    finally:
        await engine.supervisor.shutdown()


def sync(
    ctx: typer.Context,
    json_output: bool = typer.Option(
        False,
        "--json",
        help="Print the result as JSON",
    ),
) -> None:
    """
    Mirror sandbox state into durable storage.

    Mounts the bucket if needed, picks the configuration directory that
    holds data, mirrors configuration, workspace and extensions, then
    verifies the completion marker.

    Exit codes: 0 on success, 1 if the sync failed, 2 if storage is not
    configured.

    Examples:
        statesync sync
        statesync sync --json
        statesync --supervisor docker --container app sync
    """
    config, supervisor = _load(ctx)
    event_log = SyncEventLog.init(config.application.name)
    engine = SyncEngine(config, supervisor, event_log=event_log)

    result = asyncio.run(_run_sync(engine))

    if json_output:
        console.print(
            json.dumps(result.to_payload(), indent=2),
            markup=False,
            highlight=False,
            emoji=False,
            soft_wrap=True,
        )
    elif result.success:
        console.print(f"[green]Synced[/green] (last sync: {result.last_sync})")

    if result.success:
        raise typer.Exit(ExitCode.SUCCESS)

    if not config.storage.is_configured:
        if not json_output:
            print_storage_not_configured_error()
        raise typer.Exit(ExitCode.USER_ERROR)

    if not json_output:
        print_error(
            f"Sync failed: {result.error}",
            reason=result.details,
            solution="statesync diagnose",
        )
    raise typer.Exit(ExitCode.GENERAL_ERROR)


def status(ctx: typer.Context) -> None:
    """
    Show the time of the last verified sync.

    Reads the completion marker from durable storage. Does not mount the
    bucket; run `statesync sync` first if it is not mounted.
    """
    config, supervisor = _load(ctx)
    if not config.storage.is_configured:
        print_storage_not_configured_error()
        raise typer.Exit(ExitCode.USER_ERROR)

    engine = SyncEngine(config, supervisor)

    async def _read() -> str | None:
        try:
            return await engine.last_sync()
        finally:
            await supervisor.shutdown()

    try:
        last_sync = asyncio.run(_read())
    except SupervisorError as e:
        print_error("Failed to read the completion marker", reason=str(e))
        raise typer.Exit(ExitCode.GENERAL_ERROR)

    if last_sync is None:
        console.print(
            f"[yellow]No verified sync found[/yellow] at {config.storage.marker_path}"
        )
        raise typer.Exit(ExitCode.GENERAL_ERROR)

    console.print(f"Last sync: [green]{last_sync}[/green]")


def diagnose(ctx: typer.Context) -> None:
    """
    Print the diagnostics report collected when a sync fails.
    """
    config, supervisor = _load(ctx)
    collector = DiagnosticsCollector(supervisor, config)

    async def _collect() -> str:
        try:
            return await collector.collect()
        finally:
            await supervisor.shutdown()

    report = asyncio.run(_collect())
    for fragment in report.split(" | "):
        console.print(fragment, markup=False, highlight=False, emoji=False, soft_wrap=True)


def history(
    limit: int = typer.Option(
        20,
        "--limit",
        "-n",
        help="Number of recent sync runs to show",
    ),
    json_output: bool = typer.Option(
        False,
        "--json",
        help="Print raw events as JSON lines",
    ),
) -> None:
    """
    Show recent sync runs from the event log.
    """
    config = load_config()
    event_log = SyncEventLog.init(config.application.name)
    events = [e for e in event_log.read_events() if e.event_type == EventType.SYNC_END.value]
    events = events[-limit:] if limit > 0 else []

    if json_output:
        for entry in events:
            console.print(
                entry.model_dump_json(),
                markup=False,
                highlight=False,
                emoji=False,
                soft_wrap=True,
            )
        return

    if not events:
        console.print(f"[dim]No sync runs recorded in {event_log.log_file}[/dim]")
        return

    table = Table(title="Sync history")
    table.add_column("When", style="cyan")
    table.add_column("Result")
    table.add_column("Last sync / error")

    for entry in events:
        data = entry.data
        if data.get("success"):
            table.add_row(
                entry.timestamp.isoformat(timespec="seconds"),
                "[green]ok[/green]",
                str(data.get("last_sync", "")),
            )
        else:
            table.add_row(
                entry.timestamp.isoformat(timespec="seconds"),
                "[red]failed[/red]",
                str(data.get("error", "")),
            )

    console.print(table)
