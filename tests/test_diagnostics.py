"""Tests for the diagnostics collector."""

import asyncio
import shutil
from uuid import uuid4

import pytest

from statesync.core.config.models import ApplicationConfig
from statesync.core.process import LocalSupervisor
from statesync.core.process.local import kill_process_group
from statesync.core.sync import DiagnosticsCollector
from statesync.core.sync.diagnostics import process_pattern

from conftest import Reply, ScriptedSupervisor


class TestCollect:
    @pytest.mark.asyncio
    async def test_all_fragments_present(self, config):
        supervisor = ScriptedSupervisor(marker_path=config.storage.marker_path)
        supervisor.on("ls -la /root/.appstate/", Reply(stdout="total 0\n"))

        report = await DiagnosticsCollector(supervisor, config).collect()

        parts = report.split(" | ")
        assert len(parts) == 4
        assert parts[0] == (
            "Application process (gateway) not running, config has not been created yet"
        )
        assert parts[1] == "Local /root/.appstate/: total 0"
        assert parts[2].startswith("Durable backups: ")
        assert parts[3] == "Durable .last-sync: no .last-sync file"

    @pytest.mark.asyncio
    async def test_durable_listing_covers_both_prefixes(self, config):
        supervisor = ScriptedSupervisor(marker_path=config.storage.marker_path)

        await DiagnosticsCollector(supervisor, config).durable_listing()

        command = supervisor.commands[-1]
        assert "/data/statesync/config/" in command
        assert "/data/statesync/config-legacy/" in command
        assert 'echo "---"' in command

    @pytest.mark.asyncio
    async def test_listing_truncated(self, config):
        supervisor = ScriptedSupervisor(marker_path=config.storage.marker_path)
        supervisor.on("ls -la /root/.appstate/", Reply(stdout="x" * 1000))

        fragment = await DiagnosticsCollector(supervisor, config).local_listing()

        assert fragment == "Local /root/.appstate/: " + "x" * 300

    @pytest.mark.asyncio
    async def test_marker_content_shown(self, config):
        supervisor = ScriptedSupervisor(
            marker_path=config.storage.marker_path,
            marker="2026-10-19T08:15:00+00:00",
        )

        fragment = await DiagnosticsCollector(supervisor, config).marker_content()

        assert fragment == "Durable .last-sync: 2026-10-19T08:15:00+00:00"

    @pytest.mark.asyncio
    async def test_failing_check_does_not_stop_others(self, config, failing_start):
        supervisor = ScriptedSupervisor(marker_path=config.storage.marker_path)
        supervisor.on("ls -la", failing_start)

        report = await DiagnosticsCollector(supervisor, config).collect()

        parts = report.split(" | ")
        assert parts[1] == "Local /root/.appstate/: failed to list"
        assert parts[2] == "Durable backups: failed to list"
        assert parts[3] == "Durable .last-sync: no .last-sync file"

    @pytest.mark.asyncio
    async def test_running_application(self, config):
        supervisor = ScriptedSupervisor(marker_path=config.storage.marker_path)
        supervisor.app_process = await supervisor.start("gateway serve")

        fragment = await DiagnosticsCollector(supervisor, config).application_status()

        assert fragment.startswith("Application running (proc-")
        assert fragment.endswith("status: running)")


class TestApplicationStatus:
    @pytest.mark.asyncio
    async def test_reads_sandbox_process_table(self, config):
        supervisor = ScriptedSupervisor(marker_path=config.storage.marker_path)
        supervisor.on("pgrep", Reply(stdout="4242 node gateway --port 8080\n4243 gateway-worker\n"))

        fragment = await DiagnosticsCollector(supervisor, config).application_status()

        assert fragment == "Application running (pid 4242: node gateway --port 8080)"
        assert supervisor.commands == ["pgrep -af -- '[g]ateway' 2>/dev/null"]

    @pytest.mark.asyncio
    async def test_status_fault_falls_back_in_report(self, config, failing_start):
        supervisor = ScriptedSupervisor(marker_path=config.storage.marker_path)
        supervisor.on("pgrep", failing_start)

        report = await DiagnosticsCollector(supervisor, config).collect()

        assert report.split(" | ")[0] == "Application process: status unavailable"

    @pytest.mark.parametrize(
        ("match", "pattern"),
        [
            ("gateway", "[g]ateway"),
            ("app.server", r"[a]pp\.server"),
            ("-serve", "[-]serve"),
            ("^up", r"\^up"),
        ],
    )
    def test_process_pattern(self, match, pattern):
        assert process_pattern(match) == pattern

    def test_process_pattern_rejects_empty(self):
        with pytest.raises(ValueError):
            process_pattern("")

    @pytest.mark.asyncio
    @pytest.mark.skipif(shutil.which("pgrep") is None, reason="pgrep not installed")
    async def test_finds_process_started_elsewhere(self, config):
        token = f"statesync-app-{uuid4().hex[:8]}"
        config = config.model_copy(
            update={"application": ApplicationConfig(process_match=token)}
        )
        # Started outside the supervisor; the trailing ':' keeps sh from exec'ing sleep
        app = await asyncio.create_subprocess_exec(
            "sh", "-c", "sleep 30; :", token, start_new_session=True
        )
        supervisor = LocalSupervisor()
        try:
            fragment = await DiagnosticsCollector(supervisor, config).application_status()
        finally:
            await kill_process_group(app)
            await supervisor.shutdown()

        assert fragment.startswith(f"Application running (pid {app.pid}: ")
        assert token in fragment
