"""
Process supervision.

Starts external shell commands, waits for them with a timeout, and exposes
their captured output. Status reporting is treated as a hint; callers
confirm outcomes by inspecting resulting state where they can.

Example usage:
    from statesync.core.process import get_supervisor, run_command

    supervisor = get_supervisor("local")
    handle, output = await run_command(supervisor, "ls -A /data | head -1", 5.0)
    if output.stdout.strip():
        ...
"""

from .docker import DockerExecSupervisor
from .local import LocalSupervisor
from .models import ProcessHandle, ProcessOutcome, ProcessOutput, ProcessStatus
from .supervisor import (
    ProcessSupervisor,
    SupervisorError,
    detect_supervisor,
    get_supervisor,
    list_supervisors,
    register_supervisor,
    run_command,
)

__all__ = [
    # Models
    "ProcessHandle",
    "ProcessOutcome",
    "ProcessOutput",
    "ProcessStatus",
    # Protocol, registry and helpers
    "ProcessSupervisor",
    "SupervisorError",
    "register_supervisor",
    "get_supervisor",
    "detect_supervisor",
    "list_supervisors",
    "run_command",
    # Implementations
    "LocalSupervisor",
    "DockerExecSupervisor",
]
