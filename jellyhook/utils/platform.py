"""Per-user config and data directories."""

from __future__ import annotations

import os
import sys
from pathlib import Path

_APP = "jellyhook"


def _user_dir(override_env: str, windows_env: str, windows_default: str, xdg_env: str, xdg_default: Path) -> Path:
    override = os.environ.get(override_env)
    if override:
        return Path(override)
    if sys.platform == "win32":
        return Path(os.environ.get(windows_env, Path.home() / "AppData" / windows_default)) / _APP
    if sys.platform == "darwin":
        return Path.home() / "Library" / "Application Support" / _APP
    return Path(os.environ.get(xdg_env, xdg_default)) / _APP


def get_config_dir() -> Path:
    """Where ``config.yaml`` is looked up; ``JELLYHOOK_CONFIG_DIR`` overrides."""
    return _user_dir(
        "JELLYHOOK_CONFIG_DIR", "APPDATA", "Roaming",
        "XDG_CONFIG_HOME", Path.home() / ".config",
    )


def get_data_dir() -> Path:
    """Default home of the SQLite database; ``JELLYHOOK_DATA_DIR`` overrides."""
    return _user_dir(
        "JELLYHOOK_DATA_DIR", "LOCALAPPDATA", "Local",
        "XDG_DATA_HOME", Path.home() / ".local" / "share",
    )
