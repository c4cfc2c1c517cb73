"""
Pytest configuration and shared fixtures.

Provides a scripted process supervisor that records every command it is
asked to run, sample configurations, and isolation from the caller's
environment and config files.
"""

from __future__ import annotations

import shlex
from dataclasses import dataclass, field

import pytest

from statesync.core.config import clear_cache
from statesync.core.config.models import (
    SourcesConfig,
    StateSyncConfig,
    StorageConfig,
    TimeoutsConfig,
)
from statesync.core.process.models import ProcessHandle, ProcessOutput, ProcessStatus
from statesync.core.process.supervisor import SupervisorError

# ==============================================================================
# Scripted supervisor
# ==============================================================================


@dataclass
class Reply:
    """Canned response for commands matching a fragment."""

    stdout: str = ""
    stderr: str = ""
    exit_code: int | None = 0
    status: ProcessStatus = ProcessStatus.EXITED
    error: Exception | None = None


@dataclass
class _Started:
    handle: ProcessHandle
    reply: Reply


@dataclass
class ScriptedSupervisor:
    """
    In-memory supervisor emulating the sandbox shell.

    Without a matching rule it behaves like a healthy sandbox: the bucket is
    mounted, ``ls -A`` reports data for directories in ``dirs_with_data``,
    printf into the marker path stores the marker and ``cat`` reads it back.
    Rules added with ``on()`` take precedence, most recent first.
    """

    marker_path: str = "/data/statesync/.last-sync"
    mounted: bool = True
    mount_succeeds: bool = True
    marker: str | None = None
    dirs_with_data: set[str] = field(default_factory=set)
    app_process: ProcessHandle | None = None
    commands: list[str] = field(default_factory=list)
    envs: list[dict[str, str]] = field(default_factory=list)
    terminated: list[str] = field(default_factory=list)
    rules: list[tuple[str, Reply]] = field(default_factory=list)
    shut_down: bool = False
    _started: dict[str, _Started] = field(default_factory=dict)

    @property
    def name(self) -> str:
        return "scripted"

    def is_available(self) -> bool:
        return True

    def on(self, fragment: str, reply: Reply) -> None:
        self.rules.insert(0, (fragment, reply))

    def count(self, fragment: str) -> int:
        return sum(1 for command in self.commands if fragment in command)

    def _default(self, command: str) -> Reply:
        if command.startswith("mount | grep"):
            return Reply(stdout="s3fs on /data/statesync type fuse.s3fs\n" if self.mounted else "")
        if "s3fs " in command:
            self.mounted = self.mount_succeeds
            return Reply(exit_code=0 if self.mount_succeeds else 1)
        if command.startswith("ls -A "):
            path = shlex.split(command)[2].rstrip("/")
            return Reply(stdout="settings.json\n" if path in self.dirs_with_data else "")
        if command.startswith("printf") and self.marker_path in command:
            self.marker = shlex.split(command)[2]
            return Reply()
        if command.startswith("cat ") and self.marker_path in command:
            if self.marker is None:
                return Reply(stdout="no .last-sync file\n" if "||" in command else "")
            return Reply(stdout=self.marker + "\n")
        return Reply()

    async def start(self, command: str, env: dict[str, str] | None = None) -> ProcessHandle:
        self.commands.append(command)
        self.envs.append(dict(env or {}))
        reply = next((r for fragment, r in self.rules if fragment in command), None)
        if reply is None:
            reply = self._default(command)
        if reply.error is not None:
            raise reply.error
        handle = ProcessHandle(command=command)
        self._started[handle.id] = _Started(handle=handle, reply=reply)
        return handle

    async def await_completion(self, handle: ProcessHandle, timeout: float) -> None:
        return None

    async def status(self, handle: ProcessHandle) -> ProcessStatus:
        return self._started[handle.id].reply.status

    async def get_output(self, handle: ProcessHandle) -> ProcessOutput:
        reply = self._started[handle.id].reply
        if reply.status == ProcessStatus.RUNNING:
            return ProcessOutput()
        return ProcessOutput(stdout=reply.stdout, stderr=reply.stderr, exit_code=reply.exit_code)

    async def terminate(self, handle: ProcessHandle) -> None:
        self.terminated.append(handle.command)

    def list_processes(self) -> list[ProcessHandle]:
        return [started.handle for started in self._started.values()]

    async def find_process(self, match: str) -> tuple[ProcessHandle, ProcessStatus] | None:
        if self.app_process is not None and match in self.app_process.command:
            return self.app_process, ProcessStatus.RUNNING
        return None

    async def shutdown(self) -> None:
        self.shut_down = True


# ==============================================================================
# Environment isolation
# ==============================================================================


@pytest.fixture(autouse=True)
def isolated_env(tmp_path, monkeypatch):
    """Keep tests away from real config files, .env files and event logs."""
    for name in [
        "STATESYNC_ACCESS_KEY_ID",
        "STATESYNC_SECRET_ACCESS_KEY",
        "STATESYNC_ACCOUNT_ID",
        "STATESYNC_BUCKET",
        "STATESYNC_MOUNT_PATH",
        "STATESYNC_SUPERVISOR",
        "STATESYNC_CONTAINER",
        "STATESYNC_TRANSFER_TIMEOUT",
    ]:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "xdg-config"))
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "xdg-data"))
    clear_cache()
    yield
    clear_cache()


# ==============================================================================
# Configuration fixtures
# ==============================================================================


@pytest.fixture
def storage_config() -> StorageConfig:
    return StorageConfig(
        access_key_id="AKIA123",
        secret_access_key="s3cret",
        account_id="acct42",
    )


@pytest.fixture
def config(storage_config) -> StateSyncConfig:
    """Fully configured sync settings with default paths."""
    return StateSyncConfig(
        storage=storage_config,
        sources=SourcesConfig(),
        timeouts=TimeoutsConfig(),
    )


@pytest.fixture
def supervisor(config) -> ScriptedSupervisor:
    """Scripted supervisor where only the current config directory has data."""
    return ScriptedSupervisor(
        marker_path=config.storage.marker_path,
        dirs_with_data={config.sources.config_dir},
    )


@pytest.fixture
def failing_start() -> Reply:
    return Reply(error=SupervisorError("sandbox unreachable"))
