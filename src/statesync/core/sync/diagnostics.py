"""
Forensic snapshot for failed syncs.

When a sync aborts before transferring anything, the collector gathers the
surrounding state into one pipe-delimited string so the failure can be
acted on without shelling into the sandbox.
"""

from __future__ import annotations

import logging
import re
import shlex

from statesync.core.config.models import StateSyncConfig
from statesync.core.process.supervisor import ProcessSupervisor, run_command

logger = logging.getLogger(__name__)

LISTING_LIMIT = 300
MARKER_LIMIT = 100
SEPARATOR = " | "
_ERE_SPECIAL = re.compile(r"[.^$*+?()\[\]{}|\\]")


def _ere_escape(text: str) -> str:
    return _ERE_SPECIAL.sub(lambda m: "\\" + m.group(), text)


def process_pattern(match: str) -> str:
    """
    pgrep pattern for a literal substring that does not match itself.

    The shell running pgrep has the pattern on its own command line;
    bracketing the first character keeps that shell out of the results.
    """
    if not match:
        raise ValueError("process match must not be empty")
    first, rest = match[0], _ere_escape(match[1:])
    if first in "]^\\":
        return _ere_escape(first) + rest
    return f"[{first}]{rest}"


class DiagnosticsCollector:
    """
    Collects a best-effort diagnostics report.

    Each check is guarded on its own: a check that fails contributes a
    short failure fragment and the remaining checks still run.
    """

    def __init__(self, supervisor: ProcessSupervisor, config: StateSyncConfig) -> None:
        self.supervisor = supervisor
        self.config = config

    async def _run(self, command: str) -> str:
        _, output = await run_command(
            self.supervisor, command, self.config.timeouts.check_seconds
        )
        return output.stdout.strip()

    async def application_status(self) -> str:
        """
        Look for the application in the sandbox's process table.

        Falls back to the processes this supervisor started itself when
        the process table shows nothing (or pgrep is missing).
        """
        match = self.config.application.process_match
        pattern = shlex.quote(process_pattern(match))
        listing = await self._run(f"pgrep -af -- {pattern} 2>/dev/null")
        if listing:
            pid, _, args = listing.splitlines()[0].partition(" ")
            return f"Application running (pid {pid}: {args[:LISTING_LIMIT]})"

        found = await self.supervisor.find_process(match)
        if found is not None:
            handle, status = found
            return f"Application running ({handle.id}, status: {status.value})"
        return f"Application process ({match}) not running, config has not been created yet"

    async def local_listing(self) -> str:
        path = self.config.sources.config_dir
        listing = await self._run(f"ls -la {shlex.quote(path)}/ 2>&1")
        return f"Local {path}/: {listing[:LISTING_LIMIT]}"

    async def durable_listing(self) -> str:
        storage = self.config.storage
        current = shlex.quote(storage.durable_path(storage.config_prefix))
        legacy = shlex.quote(storage.durable_path(storage.legacy_config_prefix))
        listing = await self._run(
            f'ls -la {current}/ 2>&1; echo "---"; ls -la {legacy}/ 2>&1'
        )
        return f"Durable backups: {listing[:LISTING_LIMIT]}"

    async def marker_content(self) -> str:
        storage = self.config.storage
        content = await self._run(
            f"cat {shlex.quote(storage.marker_path)} 2>&1 || echo 'no {storage.marker_name} file'"
        )
        return f"Durable {storage.marker_name}: {content[:MARKER_LIMIT]}"

    async def collect(self) -> str:
        """
        Run every check and join the fragments.

        Returns:
            Pipe-delimited report, never empty
        """
        storage = self.config.storage
        checks = [
            (self.application_status, "Application process: status unavailable"),
            (self.local_listing, f"Local {self.config.sources.config_dir}/: failed to list"),
            (self.durable_listing, "Durable backups: failed to list"),
            (self.marker_content, f"Durable mount {storage.mount_path}: unresponsive"),
        ]

        parts: list[str] = []
        for check, fallback in checks:
            try:
                parts.append(await check())
            except Exception as e:
                logger.warning("Diagnostic check %s failed: %s", check.__name__, e)
                parts.append(fallback)

        return SEPARATOR.join(parts)
