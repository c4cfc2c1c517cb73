"""
Structured JSONL event log for statesync.

Records one line per sync event so operators can see sync history across
sandbox restarts. Events are written to
~/.local/share/statesync/logs/{app}.jsonl

Each log line is valid JSON with the format:
{
  "timestamp": "2026-10-19T08:15:00.123456Z",
  "event_type": "sync_end",
  "data": { ... event-specific data ... }
}
"""

import json
import logging
import os
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

logger = logging.getLogger(__name__)


class EventType(str, Enum):
    """Types of events that can be logged."""

    SYNC_START = "sync_start"
    STEP_END = "step_end"
    SYNC_END = "sync_end"
    ERROR = "error"


class LogEntry(BaseModel):
    """A single structured log entry in JSONL format."""

    model_config = ConfigDict(use_enum_values=True)

    timestamp: datetime = Field(..., description="When the event occurred (ISO 8601 format)")
    event_type: EventType = Field(..., description="Type of event")
    data: dict[str, Any] = Field(default_factory=dict, description="Event-specific data")


class SyncEventLog:
    """
    JSONL event log for sync invocations.

    Example:
        events = SyncEventLog.init("app")
        events.log_sync_start(source="/root/.appstate", role="current")
        events.log_sync_end(success=True, last_sync="2026-10-19T08:15:00+00:00")
    """

    def __init__(self, log_file: Path):
        """
        Initialize with a log file path.

        Args:
            log_file: Path to the JSONL log file (created on first write)
        """
        self.log_file = Path(log_file)

    @staticmethod
    def default_path(app_name: str) -> Path:
        """
        Location of the event log for an application.

        Raises:
            ValueError: If app_name is empty
        """
        if not app_name:
            raise ValueError("app_name cannot be empty")

        xdg_data_home = os.environ.get("XDG_DATA_HOME") or os.path.expanduser("~/.local/share")
        return Path(xdg_data_home) / "statesync" / "logs" / f"{app_name}.jsonl"

    @classmethod
    def init(cls, app_name: str) -> "SyncEventLog":
        """
        Create the event log for an application.

        Logs are written to $XDG_DATA_HOME/statesync/logs/{app_name}.jsonl
        """
        return cls(cls.default_path(app_name))

    def log_event(self, event_type: EventType, data: dict[str, Any] | None = None) -> None:
        """
        Append an event to the log.

        Write failures are reported as warnings and never raised, so a full
        or read-only disk cannot break a sync.

        Args:
            event_type: Type of event
            data: Event-specific data (optional)
        """
        entry = LogEntry(
            timestamp=datetime.now(timezone.utc),
            event_type=event_type,
            data=data or {},
        )
        try:
            self.log_file.parent.mkdir(parents=True, exist_ok=True)
            with open(self.log_file, "a", encoding="utf-8") as f:
                f.write(entry.model_dump_json(exclude_none=True) + "\n")
        except OSError as e:
            logger.warning("Failed to write to event log %s: %s", self.log_file, e)

    def log_sync_start(self, source: str, role: str) -> None:
        self.log_event(EventType.SYNC_START, {"source": source, "role": role})

    def log_step_end(
        self,
        name: str,
        ok: bool,
        duration_ms: int,
        reason: str | None,
        confirmed: bool = False,
    ) -> None:
        data: dict[str, Any] = {"step": name, "ok": ok, "duration_ms": duration_ms}
        if reason:
            data["reason"] = reason
        if confirmed:
            data["confirmed"] = True
        self.log_event(EventType.STEP_END, data)

    def log_sync_end(
        self,
        success: bool,
        last_sync: str | None = None,
        error: str | None = None,
    ) -> None:
        data: dict[str, Any] = {"success": success}
        if last_sync is not None:
            data["last_sync"] = last_sync
        if error is not None:
            data["error"] = error
        self.log_event(EventType.SYNC_END, data)

    def log_error(self, error: str, details: str | None = None) -> None:
        data: dict[str, Any] = {"error": error}
        if details:
            data["details"] = details
        self.log_event(EventType.ERROR, data)

    def read_events(self, limit: int | None = None) -> list[LogEntry]:
        """
        Read logged events, oldest first.

        Malformed lines are skipped.

        Args:
            limit: Only return the most recent ``limit`` events

        Returns:
            Parsed log entries
        """
        if not self.log_file.exists():
            return []

        entries: list[LogEntry] = []
        with open(self.log_file, encoding="utf-8") as f:
            for line in f:
                line = line.strip()
                if not line:
                    continue
                try:
                    entries.append(LogEntry.model_validate(json.loads(line)))
                except (json.JSONDecodeError, ValidationError):
                    logger.debug("Skipping malformed event log line")
                    continue

        if limit is not None:
            return entries[-limit:] if limit > 0 else []
        return entries
