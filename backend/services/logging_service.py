"""
Log file setup and retention for the walk-forward backend.
"""
from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import Optional, Set

LOG_FILENAME = "walkforward.log"
_FILE_HANDLER_NAME = "walkforward_file_handler"


def _tagged_handler(logger: logging.Logger) -> Optional[logging.Handler]:
    for handler in logger.handlers:
        if handler.get_name() == _FILE_HANDLER_NAME:
            return handler
    return None


def configure_file_logging(log_directory: str, level: int = logging.INFO) -> Path:
    """
    Attach (or re-attach) the walkforward.log file handler to the root logger.

    Calling this again with a different directory moves the handler; there is
    never more than one tagged file handler.

    Returns:
        Resolved log directory
    """
    log_dir = Path(log_directory).expanduser().resolve()
    log_dir.mkdir(parents=True, exist_ok=True)

    root = logging.getLogger()
    previous = _tagged_handler(root)
    if previous is not None:
        root.removeHandler(previous)
        previous.close()

    handler = logging.FileHandler(log_dir / LOG_FILENAME, encoding="utf-8")
    handler.set_name(_FILE_HANDLER_NAME)
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s [%(name)s] %(message)s"))
    root.addHandler(handler)
    if root.getEffectiveLevel() > level:
        root.setLevel(level)
    return log_dir


def _open_log_files() -> Set[Path]:
    """Files currently held open by a root FileHandler."""
    return {
        Path(handler.baseFilename).resolve()
        for handler in logging.getLogger().handlers
        if isinstance(handler, logging.FileHandler)
    }


def cleanup_old_files(directory: str, retention_days: int) -> int:
    """
    Remove regular files last modified more than retention_days ago.

    A file that a root FileHandler is still writing to is never removed,
    however old its last write.

    Returns:
        Number of files removed
    """
    target = Path(directory).expanduser().resolve()
    if not target.is_dir():
        return 0

    cutoff = time.time() - retention_days * 86400
    in_use = _open_log_files()
    removed = 0
    for path in target.iterdir():
        if path.resolve() in in_use:
            continue
        try:
            if path.is_file() and path.stat().st_mtime < cutoff:
                path.unlink(missing_ok=True)
                removed += 1
        except OSError:
            # file vanished or is locked by another process
            continue
    return removed
