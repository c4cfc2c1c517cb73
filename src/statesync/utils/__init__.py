"""Utility modules for statesync."""

from statesync.utils.logging import EventType, SyncEventLog

__all__ = ["EventType", "SyncEventLog"]
