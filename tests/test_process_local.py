"""Tests for the local process supervisor."""

from __future__ import annotations

import asyncio
import logging
import sys

import pytest

from statesync.core.process import (
    LocalSupervisor,
    ProcessHandle,
    ProcessOutcome,
    ProcessStatus,
    SupervisorError,
    run_command,
)
from statesync.core.process.local import ensure_process_terminated, kill_process_group

pytestmark = pytest.mark.skipif(sys.platform == "win32", reason="requires a POSIX shell")


class TestStart:
    @pytest.mark.asyncio
    async def test_captures_stdout_and_exit_code(self):
        supervisor = LocalSupervisor()
        handle, output = await run_command(supervisor, "echo hello", timeout=5)

        assert output.stdout == "hello\n"
        assert output.stderr == ""
        assert output.exit_code == 0
        assert handle not in supervisor.list_processes()

    @pytest.mark.asyncio
    async def test_captures_stderr_and_failure(self):
        supervisor = LocalSupervisor()
        _, output = await run_command(supervisor, "echo oops >&2; exit 3", timeout=5)

        assert output.stderr == "oops\n"
        assert output.exit_code == 3

    @pytest.mark.asyncio
    async def test_empty_command_is_supervisor_error(self):
        with pytest.raises(SupervisorError):
            await LocalSupervisor().start("   ")

    @pytest.mark.asyncio
    async def test_unknown_handle(self):
        with pytest.raises(SupervisorError, match="Unknown process handle"):
            await LocalSupervisor().status(ProcessHandle(command="echo"))

    def test_name_and_availability(self):
        supervisor = LocalSupervisor()
        assert supervisor.name == "local"
        assert supervisor.is_available() is True


class TestTimeout:
    @pytest.mark.asyncio
    async def test_timeout_leaves_process_running(self):
        supervisor = LocalSupervisor()
        handle = await supervisor.start("sleep 5")
        try:
            await supervisor.await_completion(handle, timeout=0.1)

            assert await supervisor.status(handle) == ProcessStatus.RUNNING
            output = await supervisor.get_output(handle)
            assert output.stdout == ""
            assert output.exit_code is None
        finally:
            await supervisor.shutdown()

    @pytest.mark.asyncio
    async def test_output_available_after_late_completion(self):
        supervisor = LocalSupervisor()
        handle = await supervisor.start("sleep 0.2; echo late")

        await supervisor.await_completion(handle, timeout=0.01)
        assert await supervisor.status(handle) == ProcessStatus.RUNNING

        await supervisor.await_completion(handle, timeout=5)
        output = await supervisor.get_output(handle)
        assert output.stdout == "late\n"

    @pytest.mark.asyncio
    async def test_shutdown_terminates_running(self):
        supervisor = LocalSupervisor()
        handle = await supervisor.start("sleep 30")

        await supervisor.shutdown()

        assert await supervisor.status(handle) != ProcessStatus.RUNNING


class TestFindProcess:
    @pytest.mark.asyncio
    async def test_finds_running_process(self):
        supervisor = LocalSupervisor()
        handle = await supervisor.start("sleep 5 # gateway")
        try:
            found = await supervisor.find_process("gateway")
            assert found == (handle, ProcessStatus.RUNNING)
        finally:
            await supervisor.shutdown()

    @pytest.mark.asyncio
    async def test_ignores_exited_process(self):
        supervisor = LocalSupervisor()
        await run_command(supervisor, "echo gateway", timeout=5)

        assert await supervisor.find_process("gateway") is None


class TestEnvironment:
    @pytest.mark.asyncio
    async def test_env_reaches_command_but_not_logs(self, caplog):
        caplog.set_level(logging.DEBUG, logger="statesync.core.process")
        supervisor = LocalSupervisor()

        handle, output = await run_command(
            supervisor,
            'printf %s "$STATESYNC_TEST_TOKEN"',
            timeout=5,
            env={"STATESYNC_TEST_TOKEN": "TOPSECRET"},
        )

        assert output.stdout == "TOPSECRET"
        assert "TOPSECRET" not in handle.command
        assert "TOPSECRET" not in caplog.text
        assert "STATESYNC_TEST_TOKEN" in caplog.text

    @pytest.mark.asyncio
    async def test_inherits_host_environment(self, monkeypatch):
        monkeypatch.setenv("STATESYNC_TEST_HOST", "host-value")

        _, output = await run_command(
            LocalSupervisor(),
            'printf "%s/%s" "$STATESYNC_TEST_HOST" "$STATESYNC_TEST_EXTRA"',
            timeout=5,
            env={"STATESYNC_TEST_EXTRA": "extra"},
        )

        assert output.stdout == "host-value/extra"


class TestRelease:
    @pytest.mark.asyncio
    async def test_finished_handles_are_dropped(self):
        supervisor = LocalSupervisor()
        for _ in range(50):
            await run_command(supervisor, "echo hi", timeout=5)

        assert supervisor.list_processes() == []

    @pytest.mark.asyncio
    async def test_running_handle_kept_until_output_read(self):
        supervisor = LocalSupervisor()
        handle = await supervisor.start("sleep 0.2; echo done")

        await supervisor.get_output(handle)
        assert supervisor.list_processes() == [handle]

        await supervisor.await_completion(handle, timeout=5)
        output = await supervisor.get_output(handle)

        assert output.stdout == "done\n"
        assert supervisor.list_processes() == []
        with pytest.raises(SupervisorError, match="Unknown process handle"):
            await supervisor.get_output(handle)


class TestTerminate:
    @pytest.mark.asyncio
    async def test_stops_shell_and_children(self):
        supervisor = LocalSupervisor()
        # The trailing echo keeps sleep a child of the shell instead of exec'd
        handle = await supervisor.start("sleep 30; echo finished")
        await supervisor.await_completion(handle, timeout=0.1)

        await asyncio.wait_for(supervisor.terminate(handle), timeout=10)

        assert await supervisor.status(handle) == ProcessStatus.EXITED
        output = await supervisor.get_output(handle)
        assert "finished" not in output.stdout
        assert output.exit_code != 0

    @pytest.mark.asyncio
    async def test_noop_for_finished_process(self):
        supervisor = LocalSupervisor()
        handle = await supervisor.start("echo hi")
        await supervisor.await_completion(handle, timeout=5)

        await supervisor.terminate(handle)

        output = await supervisor.get_output(handle)
        assert output.stdout == "hi\n"
        assert output.exit_code == 0


class TestTermination:
    @pytest.mark.asyncio
    async def test_ensure_terminated_noop_when_exited(self):
        process = await asyncio.create_subprocess_shell("true")
        await process.wait()

        await ensure_process_terminated(process)

        assert process.returncode == 0

    @pytest.mark.asyncio
    async def test_kill_process_group(self):
        process = await asyncio.create_subprocess_shell("sleep 30", start_new_session=True)

        await kill_process_group(process)

        assert process.returncode is not None


class TestProcessOutcome:
    def test_reported_failure(self):
        assert ProcessOutcome(status_hint=ProcessStatus.EXITED, exit_code=1).reported_failure
        assert not ProcessOutcome(status_hint=ProcessStatus.EXITED, exit_code=0).reported_failure

    def test_missing_exit_code_is_not_failure(self):
        outcome = ProcessOutcome(status_hint=ProcessStatus.UNKNOWN)
        assert outcome.reported_failure is False
        assert outcome.confirmed_by_content_check is False
