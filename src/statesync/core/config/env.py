"""Environment loading helpers.

Storage credentials usually arrive as environment variables. statesync
also reads them from .env files, layered as:

  os.environ (pre-existing) > project .env > user .env

A .env file never overrides a variable that was already exported in the
process environment, so shell/CI overrides always win.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Iterable

from dotenv import dotenv_values

logger = logging.getLogger(__name__)


def user_env_file() -> Path:
    """Default user-level env file (~/.config/statesync/.env or XDG equivalent)."""
    xdg_home = Path(os.environ.get("XDG_CONFIG_HOME", str(Path.home() / ".config")))
    return xdg_home / "statesync" / ".env"


def _read_env(path: Path) -> dict[str, str]:
    if not path.is_file():
        return {}
    return {
        str(key): str(value)
        for key, value in dotenv_values(path).items()
        if key is not None and value is not None
    }


def load_layered_env(
    *,
    project_dir: Path | None = None,
    user_env_paths: Iterable[Path] | None = None,
    project_env_paths: Iterable[Path] | None = None,
) -> set[str]:
    """Load environment variables from user + project .env files.

    Args:
        project_dir: base directory for project env paths (defaults to cwd)
        user_env_paths: explicit user env file paths
        project_env_paths: explicit project env file paths

    Returns:
        Names of the variables that were set from .env files.
    """
    project_dir = project_dir or Path.cwd()
    if user_env_paths is None:
        user_env_paths = [user_env_file()]
    if project_env_paths is None:
        project_env_paths = [project_dir / ".env", project_dir / ".env.local"]

    # Project files may replace what a user file set, never the OS env
    loaded: set[str] = set()
    for layer in (user_env_paths, project_env_paths):
        for path in layer:
            for key, value in _read_env(Path(path)).items():
                if key in os.environ and key not in loaded:
                    continue
                os.environ[key] = value
                loaded.add(key)

    if loaded:
        logger.debug("Loaded %d variable(s) from .env files", len(loaded))
    return loaded
