"""
Exceptions for the state sync subsystem.

Exception Hierarchy:
    SyncError (base)
    ├── ConfigurationError (storage credentials missing)
    ├── MountError (durable storage could not be mounted)
    ├── SourceVerificationError (a source check failed)
    │   └── NoSourceDataError (neither source candidate has data)
    ├── TransferError (pipeline produced no valid completion marker)
    ├── UnexpectedError (anything else during transfer or verification)
    └── SyncInProgressError (another sync holds the destination)

Every SyncError maps to a failed SyncResult through ``to_result()``; the
engine never lets one escape to its caller.

Example:
    >>> try:
    ...     raise NoSourceDataError(details="Application process not running")
    ... except SyncError as e:
    ...     result = e.to_result()
    >>> result.error
    'no config data found'
"""

from __future__ import annotations

from statesync.core.sync.models import SyncResult


class SyncError(Exception):
    """
    Base exception for all sync failures.

    Attributes:
        error: Short message suitable for a status indicator
        details: Longer diagnostic text for operators
        context: Optional dictionary of additional context
    """

    default_error = "sync failed"

    def __init__(
        self,
        error: str | None = None,
        *,
        details: str | None = None,
        **context: object,
    ) -> None:
        self.error = error or self.default_error
        super().__init__(self.error)
        self.details = details
        self.context = context

    def __str__(self) -> str:
        if self.details:
            return f"{self.error}: {self.details}"
        return self.error

    def to_result(self) -> SyncResult:
        """Convert to the failed result returned to callers."""
        return SyncResult.failed(self.error, self.details)


class ConfigurationError(SyncError):
    """Storage credentials are absent; nothing was checked."""

    default_error = "storage not configured"


class MountError(SyncError):
    """The mount step reported failure."""

    default_error = "failed to mount storage"


class SourceVerificationError(SyncError):
    """A source directory check itself failed (not merely empty)."""

    default_error = "failed to verify source"


class NoSourceDataError(SourceVerificationError):
    """Neither the current nor the legacy configuration directory has data."""

    default_error = "no config data found"


class TransferError(SyncError):
    """
    The transfer pipeline did not produce a valid completion marker.

    ``details`` carries the captured output of the step that failed.
    """

    default_error = "sync failed"

    def __init__(
        self,
        error: str | None = None,
        *,
        step: str | None = None,
        details: str | None = None,
        **context: object,
    ) -> None:
        super().__init__(error, details=details, step=step, **context)
        self.step = step


class UnexpectedError(SyncError):
    """An exception escaped the transfer or verification phase."""

    default_error = "sync error"


class SyncInProgressError(SyncError):
    """Another sync currently holds the destination."""

    default_error = "sync already in progress"


__all__ = [
    "SyncError",
    "ConfigurationError",
    "MountError",
    "SourceVerificationError",
    "NoSourceDataError",
    "TransferError",
    "UnexpectedError",
    "SyncInProgressError",
]
