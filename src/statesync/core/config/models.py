"""
Configuration data models for statesync.

These models define the structure of .statesync.json and
~/.config/statesync/config.json files, with validation and type safety
via Pydantic.
"""

from pathlib import PurePosixPath
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class StorageConfig(BaseModel):
    """
    Durable storage bucket and its mount layout.

    The bucket is mounted at ``mount_path``; each logical tree lives under
    its own prefix and the completion marker sits at the mount root.
    """
    access_key_id: Optional[str] = Field(
        default=None,
        description="Access key id for the storage bucket"
    )
    secret_access_key: Optional[str] = Field(
        default=None,
        description="Secret access key for the storage bucket"
    )
    account_id: Optional[str] = Field(
        default=None,
        description="Account id used to derive the storage endpoint"
    )
    bucket: str = Field(
        default="statesync-data",
        min_length=1,
        description="Bucket name to mount"
    )
    endpoint_template: str = Field(
        default="https://{account_id}.r2.cloudflarestorage.com",
        description="S3-compatible endpoint URL, formatted with account_id"
    )
    mount_path: str = Field(
        default="/data/statesync",
        description="Local path the bucket is mounted at"
    )
    config_prefix: str = Field(
        default="config",
        description="Durable prefix for the configuration tree"
    )
    legacy_config_prefix: str = Field(
        default="config-legacy",
        description="Durable prefix older releases wrote configuration to"
    )
    workspace_prefix: str = Field(
        default="workspace",
        description="Durable prefix for the workspace tree"
    )
    extensions_prefix: str = Field(
        default="extensions",
        description="Durable prefix for installed extensions"
    )
    marker_name: str = Field(
        default=".last-sync",
        description="Completion marker file name at the mount root"
    )

    @property
    def is_configured(self) -> bool:
        """True when all three credentials are present."""
        return bool(self.access_key_id and self.secret_access_key and self.account_id)

    @property
    def endpoint_url(self) -> str:
        return self.endpoint_template.format(account_id=self.account_id or "")

    def durable_path(self, prefix: str) -> str:
        """Absolute path of a prefix under the mount point."""
        return str(PurePosixPath(self.mount_path) / prefix)

    @property
    def marker_path(self) -> str:
        return self.durable_path(self.marker_name)


class SourcesConfig(BaseModel):
    """
    Local source directories inside the sandbox.

    Configuration may live under the current or the legacy directory name;
    extensions are nested inside the workspace.
    """
    config_dir: str = Field(
        default="/root/.appstate",
        description="Current configuration directory"
    )
    legacy_config_dir: str = Field(
        default="/root/.appstate-legacy",
        description="Legacy configuration directory (backward compatibility)"
    )
    workspace_dir: str = Field(
        default="/root/workspace",
        description="Workspace directory"
    )
    extensions_dir: str = Field(
        default="/root/workspace/extensions",
        description="Installed extensions directory"
    )
    config_excludes: list[str] = Field(
        default_factory=lambda: ["*.lock", "*.log", "*.tmp"],
        description="Patterns never mirrored from the configuration tree"
    )

    @property
    def workspace_excludes(self) -> list[str]:
        """
        Exclude the extensions directory when it is nested in the workspace.

        The pattern is anchored to the transfer root so same-named
        directories deeper in the workspace are still mirrored.
        """
        workspace = PurePosixPath(self.workspace_dir)
        extensions = PurePosixPath(self.extensions_dir)
        try:
            relative = extensions.relative_to(workspace)
        except ValueError:
            return []
        return [f"/{relative}"] if str(relative) != "." else []


class TimeoutsConfig(BaseModel):
    """
    Per-step timeouts, in seconds.
    """
    check_seconds: float = Field(
        default=5.0,
        gt=0,
        description="Timeout for directory checks and diagnostic commands"
    )
    transfer_seconds: float = Field(
        default=30.0,
        gt=0,
        description="Budget shared by the whole transfer pipeline"
    )
    mount_seconds: float = Field(
        default=30.0,
        gt=0,
        description="Timeout for mount commands"
    )


class SupervisorConfig(BaseModel):
    """
    Which process supervisor runs the sandbox commands.
    """
    name: str = Field(
        default="local",
        description="Supervisor name ('local', 'docker' or 'auto')"
    )
    container: Optional[str] = Field(
        default=None,
        description="Container name for the docker supervisor"
    )


class ApplicationConfig(BaseModel):
    """
    The stateful application hosted in the sandbox.
    """
    name: str = Field(
        default="app",
        min_length=1,
        description="Application name (used for event log file names)"
    )
    process_match: str = Field(
        default="gateway",
        min_length=1,
        description="Substring identifying the application's process command line"
    )


class SyncPolicyConfig(BaseModel):
    """
    Behavior when sync invocations overlap on the same mount path.
    """
    on_concurrent: str = Field(
        default="queue",
        pattern="^(queue|reject)$",
        description="'queue' waits for the running sync, 'reject' fails fast"
    )


class StateSyncConfig(BaseModel):
    """
    Top-level statesync configuration.

    Loaded from defaults, user config, project config, and env vars.

    Example:
        >>> config = StateSyncConfig(
        ...     storage=StorageConfig(mount_path="/mnt/bucket"),
        ... )
        >>> config.storage.marker_path
        '/mnt/bucket/.last-sync'
    """
    storage: StorageConfig = Field(
        default_factory=StorageConfig,
        description="Durable storage bucket and mount layout"
    )
    sources: SourcesConfig = Field(
        default_factory=SourcesConfig,
        description="Local source directories"
    )
    timeouts: TimeoutsConfig = Field(
        default_factory=TimeoutsConfig,
        description="Per-step timeouts"
    )
    supervisor: SupervisorConfig = Field(
        default_factory=SupervisorConfig,
        description="Process supervisor selection"
    )
    application: ApplicationConfig = Field(
        default_factory=ApplicationConfig,
        description="Hosted application"
    )
    sync: SyncPolicyConfig = Field(
        default_factory=SyncPolicyConfig,
        description="Overlapping sync policy"
    )

    model_config = ConfigDict(
        extra="allow",  # Allow extra fields for forward compatibility
        validate_assignment=True,
    )
