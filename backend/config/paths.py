"""
Per-user data locations for logs and exported walk-forward results.
"""

from __future__ import annotations

import os
import sys
from pathlib import Path


APP_IDENTIFIER = "com.walkforward.app"
_LOCAL_FALLBACK_DIR = ".walkforward-data"


def _platform_data_home() -> Path:
    if sys.platform == "darwin":
        return Path.home() / "Library" / "Application Support"
    if os.name == "nt":
        return Path(os.environ.get("APPDATA", "").strip() or Path.home() / "AppData" / "Roaming")
    return Path(os.environ.get("XDG_DATA_HOME", "").strip() or Path.home() / ".local" / "share")


def resolve_app_data_dir() -> Path:
    """
    Application data directory, created on first use.

    WALKFORWARD_APP_DATA_DIR overrides the platform default. When the target
    cannot be created (read-only home, sandbox) a directory under the current
    working directory is used instead.
    """
    override = os.environ.get("WALKFORWARD_APP_DATA_DIR", "").strip()
    target = Path(override) if override else _platform_data_home() / APP_IDENTIFIER
    target = target.expanduser().resolve()
    try:
        target.mkdir(parents=True, exist_ok=True)
    except OSError:
        target = (Path.cwd() / _LOCAL_FALLBACK_DIR).resolve()
        target.mkdir(parents=True, exist_ok=True)
    return target


def default_log_directory() -> str:
    return str(resolve_app_data_dir() / "logs")
