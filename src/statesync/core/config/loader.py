"""
Configuration loading with multi-layer merging.

Implements the configuration precedence chain:
    defaults < user config < project config < env vars
"""

import json
import logging
import os
from pathlib import Path
from typing import Any

from .models import StateSyncConfig

logger = logging.getLogger(__name__)

# Global cache to avoid reloading config multiple times per process
_config_cache: StateSyncConfig | None = None

# Env var -> (section, key) for plain string overrides
_ENV_STRING_OVERRIDES: dict[str, tuple[str, str]] = {
    "STATESYNC_ACCESS_KEY_ID": ("storage", "access_key_id"),
    "STATESYNC_SECRET_ACCESS_KEY": ("storage", "secret_access_key"),
    "STATESYNC_ACCOUNT_ID": ("storage", "account_id"),
    "STATESYNC_BUCKET": ("storage", "bucket"),
    "STATESYNC_MOUNT_PATH": ("storage", "mount_path"),
    "STATESYNC_SUPERVISOR": ("supervisor", "name"),
    "STATESYNC_CONTAINER": ("supervisor", "container"),
}


def get_xdg_config_home() -> Path:
    """
    Get XDG config home directory.

    Returns:
        Path to config directory (defaults to ~/.config)
    """
    if xdg_home := os.environ.get("XDG_CONFIG_HOME"):
        return Path(xdg_home)
    return Path.home() / ".config"


def get_user_config_path() -> Path:
    """
    Get path to user configuration file.

    Returns:
        Path to ~/.config/statesync/config.json (or XDG equivalent)
    """
    return get_xdg_config_home() / "statesync" / "config.json"


def get_project_config_path(cwd: Path | None = None) -> Path:
    """
    Get path to project configuration file.

    Args:
        cwd: Working directory to search from (defaults to current directory)

    Returns:
        Path to .statesync.json in the project root
    """
    if cwd is None:
        cwd = Path.cwd()
    return cwd / ".statesync.json"


def deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """
    Deep merge two dictionaries.

    Values in `override` take precedence over values in `base`; nested dicts
    are merged, not replaced.

    Example:
        >>> deep_merge({"storage": {"bucket": "a", "mount_path": "/m"}},
        ...            {"storage": {"bucket": "b"}})
        {'storage': {'bucket': 'b', 'mount_path': '/m'}}
    """
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def load_json_file(path: Path) -> dict[str, Any] | None:
    """
    Load a JSON file, returning None if it doesn't exist or is invalid.

    Args:
        path: Path to JSON file

    Returns:
        Parsed JSON as dict, or None if file doesn't exist or can't be parsed
    """
    if not path.exists():
        return None

    try:
        with path.open() as f:
            data = json.load(f)
        if isinstance(data, dict):
            return data
        logger.warning("Ignoring config at %s: top level is not an object", path)
        return None
    except (json.JSONDecodeError, OSError) as e:
        # Config system should be resilient to a broken file
        logger.warning("Failed to parse config at %s: %s", path, e)
        return None


def apply_env_overrides(config_dict: dict[str, Any]) -> dict[str, Any]:
    """
    Apply environment variable overrides to configuration.

    Env vars have the highest precedence and override all config files.

    Supported env vars:
        STATESYNC_ACCESS_KEY_ID, STATESYNC_SECRET_ACCESS_KEY,
        STATESYNC_ACCOUNT_ID - storage credentials
        STATESYNC_BUCKET - overrides storage.bucket
        STATESYNC_MOUNT_PATH - overrides storage.mount_path
        STATESYNC_SUPERVISOR - overrides supervisor.name
        STATESYNC_CONTAINER - overrides supervisor.container
        STATESYNC_TRANSFER_TIMEOUT - overrides timeouts.transfer_seconds

    Args:
        config_dict: Configuration dictionary to override

    Returns:
        Configuration dictionary with env var overrides applied
    """
    result = config_dict.copy()

    for env_name, (section, key) in _ENV_STRING_OVERRIDES.items():
        if value := os.environ.get(env_name):
            result[section] = {**result.get(section, {}), key: value}

    if timeout_str := os.environ.get("STATESYNC_TRANSFER_TIMEOUT"):
        try:
            timeout = float(timeout_str)
            if timeout <= 0:
                logger.warning(
                    "STATESYNC_TRANSFER_TIMEOUT must be > 0, got %s, ignoring", timeout_str
                )
            else:
                result["timeouts"] = {**result.get("timeouts", {}), "transfer_seconds": timeout}
        except ValueError:
            logger.warning("Invalid STATESYNC_TRANSFER_TIMEOUT value '%s', ignoring", timeout_str)

    return result


def get_default_config() -> dict[str, Any]:
    """
    Get hardcoded default configuration.

    Returns:
        Dictionary with default configuration values
    """
    return {
        "timeouts": {
            "check_seconds": 5.0,
            "transfer_seconds": 30.0,
        },
        "sync": {"on_concurrent": "queue"},
    }


def load_config(project_dir: Path | None = None, use_cache: bool = True) -> StateSyncConfig:
    """
    Load configuration with multi-layer merging.

    Configuration precedence (highest to lowest):
        1. Environment variables (STATESYNC_*)
        2. Project config (.statesync.json)
        3. User config (~/.config/statesync/config.json)
        4. Hardcoded defaults

    Args:
        project_dir: Project directory to load .statesync.json from (defaults to cwd)
        use_cache: If True, return cached config from previous load

    Returns:
        Validated StateSyncConfig instance

    Raises:
        ValidationError: If the merged config fails Pydantic validation
    """
    global _config_cache

    if use_cache and _config_cache is not None:
        return _config_cache

    merged = get_default_config()

    if user_config := load_json_file(get_user_config_path()):
        merged = deep_merge(merged, user_config)

    if project_config := load_json_file(get_project_config_path(project_dir)):
        merged = deep_merge(merged, project_config)

    merged = apply_env_overrides(merged)

    config = StateSyncConfig(**merged)
    _config_cache = config
    return config


def clear_cache() -> None:
    """
    Clear the cached configuration.

    Useful for testing or when config files change during execution.
    """
    global _config_cache
    _config_cache = None
