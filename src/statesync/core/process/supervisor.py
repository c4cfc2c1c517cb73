"""
Process supervisor protocol and registry.

This module defines the ProcessSupervisor protocol that every backend must
implement, enabling pluggable places to run sandbox commands (the local host,
a Docker container, etc.).
"""

from __future__ import annotations

import logging
import os
from collections.abc import Callable, Mapping
from typing import Protocol, runtime_checkable

from statesync.core.config.models import SupervisorConfig

from .models import ProcessHandle, ProcessOutput, ProcessStatus

logger = logging.getLogger(__name__)


class SupervisorError(Exception):
    """
    Raised when the supervisor itself fails.

    Covers commands that could not be started and handles the supervisor
    does not know about. A command that runs and fails is not a
    SupervisorError; its outcome is visible through its output.
    """

    def __init__(self, message: str, command: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.command = command


@runtime_checkable
class ProcessSupervisor(Protocol):
    """
    Protocol for process supervisor implementations.

    Supervisors are responsible for:
    - Starting shell commands and tracking them by handle
    - Waiting for completion with a timeout
    - Exposing captured stdout/stderr
    - Reporting (advisory) process status
    - Terminating a command the caller stopped waiting for
    - Terminating whatever is still running on shutdown
    """

    @property
    def name(self) -> str:
        """
        Supervisor name (e.g., 'local', 'docker').

        Returns:
            Lowercase supervisor identifier
        """
        ...

    def is_available(self) -> bool:
        """
        Check if the supervisor can run commands on this system.

        Returns:
            True if the supervisor can be used
        """
        ...

    async def start(self, command: str, env: Mapping[str, str] | None = None) -> ProcessHandle:
        """
        Start a shell command.

        Args:
            command: Shell command line
            env: Extra environment variables for the command. Use these for
                secrets: the command line is logged and kept on the handle.

        Returns:
            Handle for the started process

        Raises:
            SupervisorError: If the command could not be started
        """
        ...

    async def await_completion(self, handle: ProcessHandle, timeout: float) -> None:
        """
        Wait until the process signals completion or the timeout elapses.

        Never raises on timeout. A ``running`` status after this returns is
        not proof of failure.

        Args:
            handle: Process to wait for
            timeout: Maximum wait in seconds

        Raises:
            SupervisorError: If the handle is unknown
        """
        ...

    async def status(self, handle: ProcessHandle) -> ProcessStatus:
        """
        Get the reported status of a process.

        Raises:
            SupervisorError: If the handle is unknown
        """
        ...

    async def get_output(self, handle: ProcessHandle) -> ProcessOutput:
        """
        Get captured output of a process.

        Output is materialized on demand; a process that has not finished
        yet returns whatever has been captured so far. Once a finished
        process's output has been returned the handle is discarded.

        Raises:
            SupervisorError: If the handle is unknown
        """
        ...

    async def terminate(self, handle: ProcessHandle) -> None:
        """
        Stop a process that is still running.

        No-op for a process that already exited. Its output stays
        retrievable through get_output().

        Raises:
            SupervisorError: If the handle is unknown
        """
        ...

    def list_processes(self) -> list[ProcessHandle]:
        """
        List the handles this supervisor still tracks.

        Returns:
            Handles in start order
        """
        ...

    async def find_process(self, match: str) -> tuple[ProcessHandle, ProcessStatus] | None:
        """
        Find a supervised process whose command contains ``match``.

        Only processes not reported as exited are considered.

        Returns:
            (handle, status) of the most recently started match, or None
        """
        ...

    async def shutdown(self) -> None:
        """Terminate every process that is still running."""
        ...


async def run_command(
    supervisor: ProcessSupervisor,
    command: str,
    timeout: float,
    env: Mapping[str, str] | None = None,
) -> tuple[ProcessHandle, ProcessOutput]:
    """
    Start a command, wait for it, and fetch its output.

    Args:
        supervisor: Supervisor to run the command with
        command: Shell command line
        timeout: Maximum wait in seconds
        env: Extra environment variables for the command

    Returns:
        (handle, output) tuple

    Raises:
        SupervisorError: If the command could not be started
    """
    handle = await supervisor.start(command, env=env)
    await supervisor.await_completion(handle, timeout)
    output = await supervisor.get_output(handle)
    return handle, output


# Supervisor registry
_supervisors: dict[str, type[ProcessSupervisor]] = {}


def register_supervisor(
    name: str,
) -> Callable[[type[ProcessSupervisor]], type[ProcessSupervisor]]:
    """
    Decorator to register a process supervisor implementation.

    Usage:
        @register_supervisor('local')
        class LocalSupervisor:
            ...

    Args:
        name: Supervisor name (e.g., 'local', 'docker')

    Returns:
        Decorator function
    """

    def decorator(supervisor_class: type[ProcessSupervisor]) -> type[ProcessSupervisor]:
        _supervisors[name] = supervisor_class
        return supervisor_class

    return decorator


def get_supervisor(
    name: str | None = None,
    config: SupervisorConfig | None = None,
) -> ProcessSupervisor:
    """
    Get a process supervisor by name or auto-detect.

    If name is not provided (or is 'auto'), auto-detects based on:
    1. STATESYNC_SUPERVISOR environment variable
    2. Default detection order (docker > local)

    Args:
        name: Supervisor name or None for auto-detect
        config: Supervisor configuration passed to the constructor

    Returns:
        ProcessSupervisor instance

    Raises:
        ValueError: If the name is invalid or no supervisor is available
    """
    if name is None or name == "auto":
        name = detect_supervisor(config)
        if name is None:
            raise ValueError("No process supervisor available.")

    supervisor_class = _supervisors.get(name)
    if supervisor_class is None:
        raise ValueError(
            f"Supervisor '{name}' not registered. "
            f"Available supervisors: {', '.join(_supervisors.keys())}"
        )

    return supervisor_class(config)


def detect_supervisor(config: SupervisorConfig | None = None) -> str | None:
    """
    Auto-detect which supervisor to use.

    Detection order:
    1. STATESYNC_SUPERVISOR environment variable (if set and not 'auto')
    2. Default detection order: docker > local

    Returns:
        Supervisor name if found, None if none is available
    """
    override = os.environ.get("STATESYNC_SUPERVISOR", "").lower()
    candidates = ["docker", "local"]
    if override and override != "auto":
        candidates.insert(0, override)

    for supervisor_name in candidates:
        supervisor_class = _supervisors.get(supervisor_name)
        if supervisor_class is None:
            continue
        try:
            if supervisor_class(config).is_available():
                return supervisor_name
        except (TypeError, ValueError) as e:
            logger.debug("Supervisor %s unusable: %s", supervisor_name, e)
            continue

    return None


def list_supervisors() -> list[str]:
    """
    List all registered supervisor names.

    Returns:
        List of supervisor names
    """
    return list(_supervisors.keys())
