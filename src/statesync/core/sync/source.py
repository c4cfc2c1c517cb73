"""
Source selection for the configuration tree.

Configuration may live under the current directory name or, for sandboxes
that were provisioned by older releases, under the legacy name. The
selector picks whichever one actually holds data, current first.

An empty source is never selected: mirroring it with delete semantics
would wipe the existing backup.
"""

from __future__ import annotations

import logging
import shlex

from statesync.core.config.models import SourcesConfig, TimeoutsConfig
from statesync.core.process.supervisor import ProcessSupervisor, SupervisorError, run_command
from statesync.core.sync.errors import NoSourceDataError, SourceVerificationError
from statesync.core.sync.models import SourceCandidate, SourceRole

logger = logging.getLogger(__name__)


class SourceSelector:
    """
    Picks the configuration source directory for one sync attempt.

    Example:
        >>> selector = SourceSelector(supervisor, config.sources)
        >>> candidate = await selector.select()
        >>> candidate.role
        <SourceRole.CURRENT: 'current'>
    """

    def __init__(
        self,
        supervisor: ProcessSupervisor,
        sources: SourcesConfig,
        timeouts: TimeoutsConfig | None = None,
    ) -> None:
        self.supervisor = supervisor
        self.sources = sources
        self.timeouts = timeouts or TimeoutsConfig()

    def candidates(self) -> list[SourceCandidate]:
        """Candidates in check order."""
        return [
            SourceCandidate(path=self.sources.config_dir, role=SourceRole.CURRENT),
            SourceCandidate(path=self.sources.legacy_config_dir, role=SourceRole.LEGACY),
        ]

    async def has_data(self, path: str) -> bool:
        """
        Check whether a directory has at least one entry.

        Decided from the listing itself; a missing directory lists nothing.

        Raises:
            SupervisorError: If the check could not be run
        """
        command = f"ls -A {shlex.quote(path.rstrip('/') + '/')} 2>/dev/null | head -1"
        _, output = await run_command(self.supervisor, command, self.timeouts.check_seconds)
        return bool(output.stdout.strip())

    async def select(self) -> SourceCandidate:
        """
        Select the configuration source.

        Returns:
            The first candidate with data

        Raises:
            NoSourceDataError: If no candidate has data
            SourceVerificationError: If a check failed
        """
        for candidate in self.candidates():
            try:
                found = await self.has_data(candidate.path)
            except SupervisorError as e:
                raise SourceVerificationError(
                    details=e.message, path=candidate.path
                ) from e

            if found:
                if candidate.role == SourceRole.LEGACY:
                    logger.info("Using legacy configuration directory %s", candidate.path)
                return candidate
            logger.debug("No data in %s candidate %s", candidate.role.value, candidate.path)

        raise NoSourceDataError()
