"""
statesync - Durable state synchronization for ephemeral sandboxes.

Mirrors application configuration, workspace files and extensions from a
sandbox's local filesystem into a mounted storage bucket, and records a
verified completion marker.
"""

__version__ = "0.4.0.dev0"

# Re-export core models for convenience
from statesync.core.config.models import StateSyncConfig
from statesync.core.sync.models import SyncResult

__all__ = ["StateSyncConfig", "SyncResult", "__version__"]
