"""
Process supervision data models.

Pydantic models describing supervised commands, their captured output, and
the outcome a caller derives from them.
"""

from datetime import datetime, timezone
from enum import Enum
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field


class ProcessStatus(str, Enum):
    """
    Reported status of a supervised process.

    Status reporting is advisory: a process may report ``unknown`` (or even
    ``running``) after it has completed successfully.
    """

    RUNNING = "running"
    EXITED = "exited"
    UNKNOWN = "unknown"


class ProcessHandle(BaseModel):
    """
    Opaque reference to a started command.

    Owned by the caller that started it. Status and output are obtained
    from the supervisor that issued the handle.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(
        default_factory=lambda: f"proc-{uuid4().hex[:12]}",
        description="Supervisor-scoped process identifier",
    )
    command: str = Field(description="Shell command that was started")
    started_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="When the command was started",
    )


class ProcessOutput(BaseModel):
    """Captured output of a supervised process."""

    stdout: str = ""
    stderr: str = ""
    exit_code: int | None = Field(
        default=None,
        description="Exit code if reported; may be None even after completion",
    )


class ProcessOutcome(BaseModel):
    """
    What a caller concluded about a command.

    ``status_hint`` and ``exit_code`` come from the supervisor and are not
    trusted on their own; ``confirmed_by_content_check`` records whether an
    independent check of resulting state (file content, listing) backed it up.
    """

    status_hint: ProcessStatus
    exit_code: int | None = None
    confirmed_by_content_check: bool = False

    @property
    def reported_failure(self) -> bool:
        """True when the supervisor reported a non-zero exit code."""
        return self.exit_code is not None and self.exit_code != 0
