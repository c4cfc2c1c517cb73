"""
Local process supervisor.

Runs shell commands on the host with asyncio subprocesses. Each command is
started in its own session so the whole process group can be terminated
on shutdown.
"""

from __future__ import annotations

import asyncio
import logging
import os
import signal
import sys
from collections.abc import Mapping
from dataclasses import dataclass

from statesync.core.config.models import SupervisorConfig

from .models import ProcessHandle, ProcessOutput, ProcessStatus
from .supervisor import SupervisorError, register_supervisor

logger = logging.getLogger(__name__)

IS_UNIX = sys.platform != "win32"


@dataclass
class _TrackedProcess:
    handle: ProcessHandle
    process: asyncio.subprocess.Process
    communicate: asyncio.Task[tuple[bytes, bytes]]


@register_supervisor("local")
class LocalSupervisor:
    """
    Supervisor for commands running directly on this host.

    Output is collected in the background from the moment a command starts,
    so a caller can wait, give up on waiting, and still read the output
    later once the command finishes. A handle is forgotten once its
    completed output has been retrieved.
    """

    def __init__(self, config: SupervisorConfig | None = None) -> None:
        self.config = config or SupervisorConfig(name=self.name)
        self._processes: dict[str, _TrackedProcess] = {}

    @property
    def name(self) -> str:
        return "local"

    def is_available(self) -> bool:
        return IS_UNIX

    def _wrap(self, command: str, env_names: list[str] | None = None) -> str:
        """Hook for subclasses that run the command somewhere else."""
        return command

    async def start(self, command: str, env: Mapping[str, str] | None = None) -> ProcessHandle:
        if not command.strip():
            raise SupervisorError("Cannot start an empty command", command=command)

        handle = ProcessHandle(command=command)
        # Only variable names are logged; values may be credentials
        logger.debug("Starting %s: %s (env: %s)", handle.id, command, sorted(env or {}))
        try:
            process = await asyncio.create_subprocess_shell(
                self._wrap(command, sorted(env or {})),
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env={**os.environ, **env} if env else None,
                start_new_session=IS_UNIX,
            )
        except OSError as e:
            raise SupervisorError(f"Failed to start command: {e}", command=command) from e

        self._processes[handle.id] = _TrackedProcess(
            handle=handle,
            process=process,
            communicate=asyncio.create_task(process.communicate()),
        )
        return handle

    def _tracked(self, handle: ProcessHandle) -> _TrackedProcess:
        tracked = self._processes.get(handle.id)
        if tracked is None:
            raise SupervisorError(f"Unknown process handle: {handle.id}", command=handle.command)
        return tracked

    async def await_completion(self, handle: ProcessHandle, timeout: float) -> None:
        tracked = self._tracked(handle)
        # asyncio.wait leaves the task running on timeout
        done, _ = await asyncio.wait({tracked.communicate}, timeout=timeout)
        if not done:
            logger.debug("%s did not complete within %ss", handle.id, timeout)

    async def status(self, handle: ProcessHandle) -> ProcessStatus:
        tracked = self._tracked(handle)
        if not tracked.communicate.done():
            return ProcessStatus.RUNNING
        if tracked.communicate.cancelled() or tracked.communicate.exception() is not None:
            return ProcessStatus.UNKNOWN
        if tracked.process.returncode is None:
            return ProcessStatus.UNKNOWN
        return ProcessStatus.EXITED

    async def get_output(self, handle: ProcessHandle) -> ProcessOutput:
        tracked = self._tracked(handle)
        task = tracked.communicate
        if not task.done():
            return ProcessOutput()

        # Finished: the caller now owns the output, stop tracking the handle
        del self._processes[handle.id]
        if task.cancelled():
            return ProcessOutput(stderr="output collection was cancelled")
        if (error := task.exception()) is not None:
            return ProcessOutput(stderr=f"output collection failed: {error}")

        stdout_bytes, stderr_bytes = task.result()
        return ProcessOutput(
            stdout=stdout_bytes.decode("utf-8", errors="replace") if stdout_bytes else "",
            stderr=stderr_bytes.decode("utf-8", errors="replace") if stderr_bytes else "",
            exit_code=tracked.process.returncode,
        )

    async def terminate(self, handle: ProcessHandle) -> None:
        tracked = self._tracked(handle)
        if tracked.communicate.done():
            return

        logger.info("Terminating %s: %s", handle.id, handle.command)
        if IS_UNIX:
            # The command leads its own session; its children get the signal too
            signal_process_group(tracked.process.pid, signal.SIGTERM)
        await ensure_process_terminated(tracked.process)

        # Children of the shell keep the output pipes open until they exit
        done, _ = await asyncio.wait({tracked.communicate}, timeout=2.0)
        if not done and IS_UNIX:
            signal_process_group(tracked.process.pid, signal.SIGKILL)
            done, _ = await asyncio.wait({tracked.communicate}, timeout=5.0)
        if not done:
            logger.warning("%s still holds its output open after termination", handle.id)

    def list_processes(self) -> list[ProcessHandle]:
        return [tracked.handle for tracked in self._processes.values()]

    async def find_process(self, match: str) -> tuple[ProcessHandle, ProcessStatus] | None:
        for handle in reversed(self.list_processes()):
            if match not in handle.command:
                continue
            status = await self.status(handle)
            if status != ProcessStatus.EXITED:
                return handle, status
        return None

    async def shutdown(self) -> None:
        pending = [t.handle for t in self._processes.values() if not t.communicate.done()]
        for handle in pending:
            await self.terminate(handle)


def signal_process_group(pgid: int, sig: signal.Signals) -> None:
    """
    Send a signal to a process group, ignoring groups that are already gone.

    Args:
        pgid: Process group id (the pid of a session leader)
        sig: Signal to send
    """
    try:
        os.killpg(pgid, sig)
    except (ProcessLookupError, PermissionError) as e:
        logger.debug("Signal %s to process group %s skipped: %s", sig.name, pgid, e)


async def kill_process_group(process: asyncio.subprocess.Process) -> None:
    """
    Kill the process group so children of the shell die too.

    Args:
        process: The subprocess to kill along with its children.
    """
    if process.returncode is not None:
        return

    try:
        pgid = os.getpgid(process.pid)
        os.killpg(pgid, signal.SIGKILL)
        logger.debug("Killed process group %s", pgid)
    except (ProcessLookupError, OSError) as e:
        # Process may have already terminated
        logger.debug("Process group kill failed (process may be dead): %s", e)

    try:
        await asyncio.wait_for(process.wait(), timeout=5.0)
    except asyncio.TimeoutError:
        logger.warning("Process %s still alive after SIGKILL", process.pid)


async def ensure_process_terminated(process: asyncio.subprocess.Process) -> None:
    """
    Terminate a process, escalating from SIGTERM to a group SIGKILL.

    1. Send SIGTERM (process.terminate())
    2. Wait up to 2 seconds for graceful shutdown
    3. Kill the process group if it is still running

    Args:
        process: The subprocess to terminate.
    """
    if process.returncode is not None:
        return

    try:
        logger.debug("Terminating process %s gracefully", process.pid)
        process.terminate()
        try:
            await asyncio.wait_for(process.wait(), timeout=2.0)
        except asyncio.TimeoutError:
            logger.debug("Process %s did not terminate gracefully, force killing", process.pid)
            await kill_process_group(process)
    except (ProcessLookupError, OSError) as e:
        logger.debug("Process termination skipped (already dead): %s", e)
