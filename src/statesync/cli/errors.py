"""
Standardized error handling and exit codes for the statesync CLI.

Consistent error messaging with actionable guidance and standardized exit
codes across all CLI commands.
"""

from enum import IntEnum

from rich.console import Console
from rich.markup import escape

console = Console(stderr=True)


class ExitCode(IntEnum):
    """Standard exit codes for statesync CLI operations."""

    SUCCESS = 0
    """Operation completed successfully."""

    GENERAL_ERROR = 1
    """Sync failed or another runtime error."""

    USER_ERROR = 2
    """Configuration error (actionable by the user)."""

    SIGINT = 130
    """Terminated by SIGINT (Ctrl+C) - Unix standard."""


def print_error(
    problem: str,
    *,
    reason: str | None = None,
    solution: str | None = None,
) -> None:
    """
    Print a standardized error message with actionable guidance.

    Args:
        problem: Brief description of what went wrong
        reason: Optional explanation of why it happened
        solution: Optional command or action to fix it

    Example:
        >>> print_error(
        ...     "Storage is not configured",
        ...     reason="Durable storage needs an access key, secret and account id",
        ...     solution="export STATESYNC_ACCESS_KEY_ID=...",
        ... )
    """
    # problem and reason may carry raw command output with [brackets]
    console.print(f"[red]Error:[/red] {escape(problem)}")

    if reason:
        console.print(f"[dim]{escape(reason)}[/dim]")

    if solution:
        console.print(f"[cyan]→ Try:[/cyan] {solution}")


def print_storage_not_configured_error() -> None:
    """Print error when storage credentials are missing."""
    print_error(
        "Storage is not configured",
        reason="Durable storage needs an access key id, a secret access key and an account id",
        solution="export STATESYNC_ACCESS_KEY_ID=... STATESYNC_SECRET_ACCESS_KEY=... "
        "STATESYNC_ACCOUNT_ID=...  # or add them to .env",
    )


def print_supervisor_error(name: str | None, message: str) -> None:
    """Print error when no usable process supervisor could be created."""
    print_error(
        f"Cannot run sandbox commands with supervisor '{name or 'auto'}'",
        reason=message,
        solution="statesync --supervisor local sync  # or --supervisor docker --container NAME",
    )
