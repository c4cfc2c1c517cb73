"""
Durable storage mounting.

The sync engine only needs ``ensure_mounted()``; S3FSMountManager is the
implementation used in sandboxes where the bucket is exposed through s3fs.
"""

from __future__ import annotations

import logging
import shlex
from typing import Protocol, runtime_checkable

from statesync.core.config.models import StorageConfig, TimeoutsConfig
from statesync.core.process.supervisor import ProcessSupervisor, SupervisorError, run_command

logger = logging.getLogger(__name__)


@runtime_checkable
class MountManager(Protocol):
    """Makes the durable bucket available at the configured mount path."""

    async def ensure_mounted(self) -> bool:
        """
        Mount the bucket unless it is already mounted.

        Idempotent. Returns False on failure (missing credentials, mount
        helper failure); never raises.
        """
        ...


class S3FSMountManager:
    """
    Mount an S3-compatible bucket with s3fs.

    Whether the bucket is mounted is decided from the mount table, not from
    the exit code of the mount command.
    """

    PASSWD_FILE = "/etc/passwd-s3fs-statesync"
    CREDENTIALS_ENV = "STATESYNC_S3FS_CREDENTIALS"

    def __init__(
        self,
        supervisor: ProcessSupervisor,
        storage: StorageConfig,
        timeouts: TimeoutsConfig | None = None,
    ) -> None:
        self.supervisor = supervisor
        self.storage = storage
        self.timeouts = timeouts or TimeoutsConfig()

    async def is_mounted(self) -> bool:
        """Check the mount table for an s3fs mount at the mount path."""
        pattern = f"s3fs on {self.storage.mount_path} "
        _, output = await run_command(
            self.supervisor,
            f"mount | grep -F {shlex.quote(pattern)}",
            self.timeouts.check_seconds,
        )
        return bool(output.stdout.strip())

    def _credentials_env(self) -> dict[str, str]:
        # Passed through the environment; the command line is logged
        credentials = f"{self.storage.access_key_id}:{self.storage.secret_access_key}"
        return {self.CREDENTIALS_ENV: credentials}

    def _mount_command(self) -> str:
        mount_path = shlex.quote(self.storage.mount_path)
        passwd = shlex.quote(self.PASSWD_FILE)
        options = ",".join(
            [
                f"passwd_file={self.PASSWD_FILE}",
                f"url={self.storage.endpoint_url}",
                "use_path_request_style",
                "nomultipart",
            ]
        )
        return (
            f"umask 077 && printf '%s\\n' \"${self.CREDENTIALS_ENV}\" > {passwd}"
            f" && mkdir -p {mount_path}"
            f" && s3fs {shlex.quote(self.storage.bucket)} {mount_path}"
            f" -o {shlex.quote(options)} 2>&1"
        )

    async def ensure_mounted(self) -> bool:
        if not self.storage.is_configured:
            logger.warning("Storage credentials missing, not mounting")
            return False

        try:
            if await self.is_mounted():
                logger.debug("Storage already mounted at %s", self.storage.mount_path)
                return True

            logger.info(
                "Mounting bucket %s at %s", self.storage.bucket, self.storage.mount_path
            )
            _, output = await run_command(
                self.supervisor,
                self._mount_command(),
                self.timeouts.mount_seconds,
                env=self._credentials_env(),
            )
            if await self.is_mounted():
                return True

            logger.warning(
                "Mount of %s not visible after mount command: %s",
                self.storage.mount_path,
                (output.stdout or output.stderr).strip()[:300],
            )
            return False
        except SupervisorError as e:
            logger.warning("Mount failed: %s", e)
            return False
