"""
Sync engine: mirrors sandbox state into durable storage.

A sync runs as one sequential flow:

    credentials -> mount -> select source -> mirror config, workspace and
    extensions -> write completion marker -> read marker back

Each precondition is a hard gate; failing one returns before durable
storage is touched. The marker read back at the end is the only evidence
of success the engine trusts: exit codes from the sandbox are not reliable
enough to vouch for the transfers on their own.
"""

from __future__ import annotations

import logging
import shlex

from statesync.core.config.models import StateSyncConfig
from statesync.core.process.supervisor import ProcessSupervisor, run_command
from statesync.core.storage.mount import MountManager, S3FSMountManager
from statesync.core.sync.diagnostics import DiagnosticsCollector
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
from statesync.core.sync.lock import destination_lock
from statesync.core.sync.models import CompletionMarker, SourceCandidate, SyncResult
from statesync.core.sync.source import SourceSelector
from statesync.core.sync.steps import MarkerWriteStep, MirrorStep, TransferPipeline, TransferStep
from statesync.utils.logging import SyncEventLog

logger = logging.getLogger(__name__)


class SyncEngine:
    """
    Orchestrates one best-effort sync into durable storage.

    ``sync()`` never raises: every failure is reported as a SyncResult with
    ``success=False``. Nothing is retried; retry policy belongs to the
    caller.

    Example:
        >>> engine = SyncEngine(load_config(), get_supervisor("local"))
        >>> result = await engine.sync()
        >>> result.to_payload()
        {'success': True, 'lastSync': '2026-10-19T08:15:00+00:00'}
    """

    def __init__(
        self,
        config: StateSyncConfig,
        supervisor: ProcessSupervisor,
        mount_manager: MountManager | None = None,
        selector: SourceSelector | None = None,
        diagnostics: DiagnosticsCollector | None = None,
        event_log: SyncEventLog | None = None,
    ) -> None:
        self.config = config
        self.supervisor = supervisor
        self.mount_manager = mount_manager or S3FSMountManager(
            supervisor, config.storage, config.timeouts
        )
        self.selector = selector or SourceSelector(supervisor, config.sources, config.timeouts)
        self.diagnostics = diagnostics or DiagnosticsCollector(supervisor, config)
        self.event_log = event_log

    # =========================================================================
    # Public API
    # =========================================================================

    async def sync(self) -> SyncResult:
        """
        Run a sync.

        Returns:
            SyncResult; on success ``last_sync`` equals the marker content
        """
        storage = self.config.storage
        if not storage.is_configured:
            return self._finish(ConfigurationError().to_result())

        lock = destination_lock(storage.mount_path)
        if self.config.sync.on_concurrent == "reject" and lock.locked():
            return self._finish(
                SyncInProgressError(details=f"another sync is writing to {storage.mount_path}")
                .to_result()
            )

        async with lock:
            try:
                result = await self._run()
            except SyncError as e:
                result = e.to_result()
        return self._finish(result)

    async def read_marker(self) -> str:
        """
        Read the raw completion marker content.

        Raises:
            SupervisorError: If the read command could not be started
        """
        command = f"cat {shlex.quote(self.config.storage.marker_path)} 2>/dev/null"
        _, output = await run_command(
            self.supervisor, command, self.config.timeouts.check_seconds
        )
        return output.stdout.strip()

    async def last_sync(self) -> str | None:
        """
        Timestamp of the last verified sync, if the marker is valid.

        Raises:
            SupervisorError: If the marker could not be read
        """
        marker = CompletionMarker.parse(await self.read_marker())
        return marker.timestamp if marker else None

    def build_steps(self, source: SourceCandidate, marker: CompletionMarker) -> list[TransferStep]:
        """
        Transfer steps for one sync, in execution order.

        Configuration always lands under the current prefix, whichever
        source directory it came from.
        """
        storage = self.config.storage
        sources = self.config.sources
        return [
            MirrorStep(
                name="config",
                source=source.path,
                destination=storage.durable_path(storage.config_prefix),
                excludes=list(sources.config_excludes),
            ),
            MirrorStep(
                name="workspace",
                source=sources.workspace_dir,
                destination=storage.durable_path(storage.workspace_prefix),
                excludes=sources.workspace_excludes,
            ),
            MirrorStep(
                name="extensions",
                source=sources.extensions_dir,
                destination=storage.durable_path(storage.extensions_prefix),
            ),
            MarkerWriteStep(marker_path=storage.marker_path, marker=marker),
        ]

    # =========================================================================
    # Private helpers
    # =========================================================================

    async def _run(self) -> SyncResult:
        await self._ensure_mounted()
        source = await self._select_source()
        if self.event_log:
            self.event_log.log_sync_start(source=source.path, role=source.role.value)

        try:
            return await self._transfer_and_verify(source)
        except SyncError:
            raise
        except Exception as e:
            logger.exception("Unexpected error during transfer")
            raise UnexpectedError(details=str(e) or type(e).__name__) from e

    async def _ensure_mounted(self) -> None:
        try:
            mounted = await self.mount_manager.ensure_mounted()
        except Exception as e:
            raise MountError(details=str(e) or type(e).__name__) from e
        if not mounted:
            raise MountError(details=f"mount path {self.config.storage.mount_path}")

    async def _select_source(self) -> SourceCandidate:
        try:
            return await self.selector.select()
        except NoSourceDataError as e:
            logger.warning("Sync aborted: no config data in either source directory")
            e.details = await self.diagnostics.collect()
            raise
        except SourceVerificationError as e:
            logger.warning("Failed to verify source: %s", e.details)
            report = await self.diagnostics.collect()
            e.details = f"{e.details} | {report}" if e.details else report
            raise
        except Exception as e:
            logger.warning("Source check raised: %s", e)
            report = await self.diagnostics.collect()
            raise SourceVerificationError(details=f"{e} | {report}") from e

    async def _transfer_and_verify(self, source: SourceCandidate) -> SyncResult:
        marker = CompletionMarker.now()
        pipeline = TransferPipeline(
            self.supervisor,
            self.build_steps(source, marker),
            self.config.timeouts.transfer_seconds,
        )
        outcome = await pipeline.run()

        # Verify by content, whatever the steps reported
        content = await self.read_marker()
        written = CompletionMarker.parse(content)
        verified = (
            outcome.completed and written is not None and written.timestamp == marker.timestamp
        )
        if verified:
            outcome.confirm(MarkerWriteStep.name)

        if self.event_log:
            for step in outcome.steps:
                self.event_log.log_step_end(
                    step.name,
                    step.ok,
                    step.duration_ms,
                    step.reason,
                    confirmed=step.outcome.confirmed_by_content_check,
                )

        if verified:
            logger.info("Sync verified, last sync %s", written.timestamp)
            return SyncResult.succeeded(written)

        failed = outcome.failed_step
        if failed is not None:
            raise TransferError(step=failed.name, details=failed.failure_details)
        if not content:
            raise TransferError(step="marker", details="No timestamp file created")
        raise TransferError(
            step="marker",
            details=f"completion marker reads {content[:100]!r}, expected {marker.timestamp!r}",
        )

    def _finish(self, result: SyncResult) -> SyncResult:
        if result.success:
            logger.info("Sync succeeded: %s", result.last_sync)
        else:
            logger.warning("Sync failed: %s", result.error)
            if self.event_log:
                self.event_log.log_error(result.error or "", result.details)
        if self.event_log:
            self.event_log.log_sync_end(result.success, result.last_sync, result.error)
        return result
