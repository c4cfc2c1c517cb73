"""
Transfer pipeline steps.

The transfer is an explicit sequence of typed steps (three mirror
transfers, then the completion marker write). The pipeline stops at the
first step that fails, so the marker is only written once every mirror
step has completed.

A step's exit code is used when the supervisor reports one; a missing
exit code is not treated as failure, because status reporting is
unreliable. A step still running after its wait is terminated and counts
as failed. The completion marker read back afterwards is what confirms
the whole pipeline.
"""

from __future__ import annotations

import asyncio
import logging
import shlex
import time
from dataclasses import dataclass, field
from typing import Protocol

from pydantic import BaseModel, Field

from statesync.core.process.models import ProcessOutcome, ProcessStatus
from statesync.core.process.supervisor import ProcessSupervisor
from statesync.core.sync.models import CompletionMarker, StepResult

logger = logging.getLogger(__name__)

RSYNC_ERROR_SIGNATURE = "rsync error:"


class TransferStep(Protocol):
    """One step of the transfer pipeline."""

    name: str

    def command(self) -> str:
        """Shell command this step runs."""
        ...

    async def run(self, supervisor: ProcessSupervisor, timeout: float) -> StepResult:
        """Run the step within ``timeout`` seconds."""
        ...


async def _run_step(
    name: str,
    supervisor: ProcessSupervisor,
    command: str,
    timeout: float,
    error_signature: str | None = None,
) -> StepResult:
    started = time.monotonic()
    handle = await supervisor.start(command)
    await supervisor.await_completion(handle, timeout)
    status = await supervisor.status(handle)
    if status == ProcessStatus.RUNNING:
        # A transfer left running would keep writing under the mount after
        # the destination lock is released
        await supervisor.terminate(handle)
    output = await supervisor.get_output(handle)
    duration_ms = int((time.monotonic() - started) * 1000)

    outcome = ProcessOutcome(status_hint=status, exit_code=output.exit_code)
    reason = None
    if status == ProcessStatus.RUNNING:
        reason = f"{name} did not complete within {timeout:.1f}s"
    elif outcome.reported_failure:
        reason = f"{name} exited with code {output.exit_code}"
    elif error_signature and error_signature in output.stderr:
        reason = f"{name} reported an error"

    return StepResult(
        name=name,
        ok=reason is None,
        outcome=outcome,
        stdout=output.stdout,
        stderr=output.stderr,
        reason=reason,
        duration_ms=duration_ms,
    )


@dataclass
class MirrorStep:
    """
    One-way, delete-reconciling copy of a directory tree.

    After the step the destination holds exactly the source's contents minus
    the excluded patterns; files only present at the destination are removed.
    """

    name: str
    source: str
    destination: str
    excludes: list[str] = field(default_factory=list)

    def command(self) -> str:
        parts = ["rsync", "-r", "--no-times", "--delete"]
        parts.extend(shlex.quote(f"--exclude={pattern}") for pattern in self.excludes)
        # Trailing slashes: copy the contents, not the directory itself
        parts.append(shlex.quote(self.source.rstrip("/") + "/"))
        parts.append(shlex.quote(self.destination.rstrip("/") + "/"))
        return " ".join(parts)

    async def run(self, supervisor: ProcessSupervisor, timeout: float) -> StepResult:
        return await _run_step(
            self.name, supervisor, self.command(), timeout, RSYNC_ERROR_SIGNATURE
        )


@dataclass
class MarkerWriteStep:
    """Overwrite the completion marker with a timestamp."""

    marker_path: str
    marker: CompletionMarker
    name: str = "marker"

    def command(self) -> str:
        return (
            f"printf '%s\\n' {shlex.quote(self.marker.timestamp)}"
            f" > {shlex.quote(self.marker_path)}"
        )

    async def run(self, supervisor: ProcessSupervisor, timeout: float) -> StepResult:
        return await _run_step(self.name, supervisor, self.command(), timeout)


class PipelineResult(BaseModel):
    """Results of the steps that ran, in order."""

    steps: list[StepResult] = Field(default_factory=list)
    expected_steps: int = 0

    @property
    def completed(self) -> bool:
        """True when every step ran and none failed."""
        return len(self.steps) == self.expected_steps and all(s.ok for s in self.steps)

    @property
    def failed_step(self) -> StepResult | None:
        for step in self.steps:
            if not step.ok:
                return step
        return None

    def confirm(self, name: str) -> None:
        """Record that a content check of the resulting state backed up step ``name``."""
        for index, step in enumerate(self.steps):
            if step.name == name:
                outcome = step.outcome.model_copy(update={"confirmed_by_content_check": True})
                self.steps[index] = step.model_copy(update={"outcome": outcome})


class TransferPipeline:
    """
    Runs transfer steps sequentially under one shared time budget.

    Steps never run in parallel: they share the mount point, and a delete
    pass racing another transfer could remove files it just wrote.
    """

    def __init__(
        self,
        supervisor: ProcessSupervisor,
        steps: list[TransferStep],
        budget_seconds: float,
    ) -> None:
        self.supervisor = supervisor
        self.steps = steps
        self.budget_seconds = budget_seconds

    async def run(self) -> PipelineResult:
        """
        Run the steps, stopping at the first failure.

        Raises:
            SupervisorError: If a step's command could not be started
        """
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.budget_seconds
        result = PipelineResult(expected_steps=len(self.steps))

        for step in self.steps:
            remaining = deadline - loop.time()
            if remaining <= 0:
                result.steps.append(
                    StepResult(
                        name=step.name,
                        ok=False,
                        outcome=ProcessOutcome(status_hint=ProcessStatus.UNKNOWN),
                        reason=f"transfer budget of {self.budget_seconds:.1f}s exhausted "
                        f"before {step.name} started",
                    )
                )
                break

            logger.debug("Running step %s: %s", step.name, step.command())
            step_result = await step.run(self.supervisor, remaining)
            result.steps.append(step_result)
            if not step_result.ok:
                logger.warning("Step %s failed: %s", step.name, step_result.reason)
                break

        return result
