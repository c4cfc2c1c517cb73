"""
State synchronization into durable storage.

Mirrors the sandbox's configuration, workspace and extensions trees into a
mounted storage bucket and verifies the result with a completion marker.

Example:
    >>> from statesync.core.sync import SyncEngine
    >>> engine = SyncEngine(config, supervisor)
    >>> result = await engine.sync()
    >>> if not result.success:
    ...     print(result.error, result.details)
"""

from statesync.core.sync.diagnostics import DiagnosticsCollector
from statesync.core.sync.engine import SyncEngine
from statesync.core.sync.errors import (
    ConfigurationError,
    MountError,
    NoSourceDataError,
    SourceVerificationError,
    SyncError,
    SyncInProgressError,
    TransferError,
    UnexpectedError,
)
from statesync.core.sync.models import (
    CompletionMarker,
    SourceCandidate,
    SourceRole,
    StepResult,
    SyncResult,
)
from statesync.core.sync.source import SourceSelector
from statesync.core.sync.steps import MarkerWriteStep, MirrorStep, PipelineResult, TransferPipeline

__all__ = [
    "SyncEngine",
    "SourceSelector",
    "DiagnosticsCollector",
    "TransferPipeline",
    "MirrorStep",
    "MarkerWriteStep",
    "PipelineResult",
    "SyncResult",
    "SourceCandidate",
    "SourceRole",
    "CompletionMarker",
    "StepResult",
    "SyncError",
    "ConfigurationError",
    "MountError",
    "SourceVerificationError",
    "NoSourceDataError",
    "TransferError",
    "UnexpectedError",
    "SyncInProgressError",
]
