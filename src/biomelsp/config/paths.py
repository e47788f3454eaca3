"""Where configuration and storage files live.

    system  /etc/biomelsp/config.yaml, %PROGRAMDATA%\\biomelsp\\config.yaml
    user    $XDG_CONFIG_HOME/biomelsp, ~/.config/biomelsp or ~/.biomelsp,
            %APPDATA%\\biomelsp on Windows
    folder  <folder>/.biomelsp/config.yaml, also used by nested directories
"""

from __future__ import annotations

import os
import sys
from pathlib import Path

CONFIG_FILENAME = "config.yaml"
STORAGE_FILENAME = "storage.yaml"
APP_NAME = "biomelsp"
SHORT_NAME = ".biomelsp"


def _windows_dir(variable: str) -> Path | None:
    base = os.environ.get(variable)
    return Path(base) / APP_NAME if base else None


def get_system_config_path() -> Path | None:
    if sys.platform == "win32":
        base = _windows_dir("PROGRAMDATA")
        return base / CONFIG_FILENAME if base else None
    return Path("/etc", APP_NAME, CONFIG_FILENAME)


def get_user_config_dir() -> Path | None:
    if sys.platform == "win32":
        return _windows_dir("APPDATA")
    if xdg := os.environ.get("XDG_CONFIG_HOME"):
        return Path(xdg) / APP_NAME
    dot_config = Path.home() / ".config"
    return dot_config / APP_NAME if dot_config.exists() else Path.home() / SHORT_NAME


def get_user_config_path() -> Path | None:
    user_dir = get_user_config_dir()
    return user_dir / CONFIG_FILENAME if user_dir else None


def get_storage_path() -> Path | None:
    """File backing the local host's key-value storage."""
    user_dir = get_user_config_dir()
    return user_dir / STORAGE_FILENAME if user_dir else None


def get_project_config_path(directory: str | Path) -> Path:
    return Path(directory, SHORT_NAME, CONFIG_FILENAME)


def get_config_paths(session_root: str | Path | None = None) -> list[Path]:
    """Config files from lowest to highest priority; the files may not exist."""
    candidates = [get_system_config_path(), get_user_config_path()]
    if session_root:
        candidates.append(get_project_config_path(session_root))
    return [path for path in candidates if path is not None]
