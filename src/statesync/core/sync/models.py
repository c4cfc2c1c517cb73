"""
Data models for the state sync subsystem.

Defines Pydantic models for source candidates, the completion marker,
transfer step results, and the result returned to callers.
"""

from __future__ import annotations

import re
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator

from statesync.core.process.models import ProcessOutcome

MARKER_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}")


class SourceRole(str, Enum):
    """Which naming a configuration source directory uses."""

    CURRENT = "current"
    LEGACY = "legacy"


class SourceCandidate(BaseModel):
    """A local directory that may hold the authoritative configuration tree."""

    model_config = ConfigDict(frozen=True)

    path: str
    role: SourceRole


class CompletionMarker(BaseModel):
    """
    Content of the completion marker file.

    The marker holds a single ISO-8601 timestamp and is the only signal
    that a sync succeeded as of that time. Anything that does not start
    with a ``YYYY-MM-DD`` date is not a marker.

    Example:
        >>> CompletionMarker.parse("2026-10-19T08:15:00+00:00\\n").timestamp
        '2026-10-19T08:15:00+00:00'
        >>> CompletionMarker.parse("cat: .last-sync: No such file") is None
        True
    """

    model_config = ConfigDict(frozen=True)

    timestamp: str

    @classmethod
    def now(cls) -> CompletionMarker:
        """Marker for the current time, UTC, second precision."""
        return cls(timestamp=datetime.now(timezone.utc).isoformat(timespec="seconds"))

    @classmethod
    def parse(cls, content: str | None) -> CompletionMarker | None:
        """Parse marker file content, or None if it is not a valid marker."""
        if not content:
            return None
        text = content.strip()
        if not MARKER_PATTERN.match(text):
            return None
        return cls(timestamp=text)


class StepResult(BaseModel):
    """
    Result of one transfer pipeline step.

    Carries the supervisor's (advisory) outcome alongside the captured
    output so a failure can be explained without rerunning anything.
    """

    name: str = Field(description="Step name (e.g. 'config', 'marker')")
    ok: bool = Field(description="Whether the pipeline may continue past this step")
    outcome: ProcessOutcome
    stdout: str = ""
    stderr: str = ""
    reason: str | None = Field(
        default=None,
        description="Why the step was judged failed",
    )
    duration_ms: int = 0

    @property
    def failure_details(self) -> str:
        """Captured stderr, then stdout, then the failure reason."""
        return (
            self.stderr.strip()
            or self.stdout.strip()
            or self.reason
            or "No timestamp file created"
        )


class SyncResult(BaseModel):
    """
    Result of a sync invocation.

    ``success=True`` implies a verified completion marker whose timestamp
    is ``last_sync``. ``success=False`` always carries a short ``error``
    and usually a longer ``details`` string for operators.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    success: bool = Field(description="Whether the sync fully validated")
    last_sync: str | None = Field(
        default=None,
        alias="lastSync",
        description="Timestamp of the verified completion marker",
    )
    error: str | None = Field(
        default=None,
        description="Short error suitable for a status indicator",
    )
    details: str | None = Field(
        default=None,
        description="Diagnostic text or captured command output",
    )

    @model_validator(mode="after")
    def _check_invariants(self) -> SyncResult:
        if self.success:
            if not self.last_sync:
                raise ValueError("a successful sync result needs last_sync")
            if self.error:
                raise ValueError("a successful sync result cannot carry an error")
        elif not self.error:
            raise ValueError("a failed sync result needs a non-empty error")
        return self

    @classmethod
    def succeeded(cls, marker: CompletionMarker) -> SyncResult:
        return cls(success=True, last_sync=marker.timestamp)

    @classmethod
    def failed(cls, error: str, details: str | None = None) -> SyncResult:
        return cls(success=False, error=error, details=details)

    def to_payload(self) -> dict[str, Any]:
        """Caller-facing shape: camelCase keys, absent fields omitted."""
        return self.model_dump(by_alias=True, exclude_none=True)

    def summary(self) -> str:
        """Generate a human-readable summary of the result."""
        if self.success:
            return f"sync succeeded, last sync {self.last_sync}"
        return f"sync failed: {self.error}"
