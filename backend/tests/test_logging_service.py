"""
Tests for log file setup, retention and JSON formatting.
"""

import json
import logging
import os
import time

import pytest

from api.middleware import StructuredFormatter, request_id_ctx
from config.paths import resolve_app_data_dir
from services.logging_service import LOG_FILENAME, cleanup_old_files, configure_file_logging


@pytest.fixture
def restore_root_handlers():
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    yield
    for handler in list(root.handlers):
        if handler not in handlers:
            root.removeHandler(handler)
            handler.close()
    root.setLevel(level)


def _tagged(root):
    return [h for h in root.handlers if h.get_name() == "walkforward_file_handler"]


def test_configure_file_logging_keeps_one_handler(tmp_path, restore_root_handlers):
    """Re-configuring moves the handler instead of stacking a second one."""
    first = configure_file_logging(str(tmp_path / "a"))
    second = configure_file_logging(str(tmp_path / "b"))
    root = logging.getLogger()

    assert first == (tmp_path / "a").resolve()
    assert len(_tagged(root)) == 1
    logging.getLogger("walkforward.test").info("hello file")
    _tagged(root)[0].flush()
    assert "hello file" in (second / LOG_FILENAME).read_text(encoding="utf-8")


def test_cleanup_old_files_removes_only_expired(tmp_path):
    """Files older than the retention window are deleted."""
    old = tmp_path / "old.log"
    fresh = tmp_path / "fresh.log"
    old.write_text("x", encoding="utf-8")
    fresh.write_text("y", encoding="utf-8")
    past = time.time() - 10 * 86400
    os.utime(old, (past, past))

    assert cleanup_old_files(str(tmp_path), retention_days=7) == 1
    assert not old.exists()
    assert fresh.exists()


def test_cleanup_keeps_stale_log_held_by_handler(tmp_path, restore_root_handlers):
    """An old walkforward.log with an attached handler survives retention."""
    stale_log = tmp_path / LOG_FILENAME
    stale_log.write_text("previous run\n", encoding="utf-8")
    past = time.time() - 30 * 86400
    os.utime(stale_log, (past, past))

    configure_file_logging(str(tmp_path))
    assert cleanup_old_files(str(tmp_path), retention_days=14) == 0
    assert stale_log.exists()

    logging.getLogger("walkforward.test").warning("still writing")
    _tagged(logging.getLogger())[0].flush()
    assert "still writing" in stale_log.read_text(encoding="utf-8")


def test_cleanup_missing_directory_is_noop(tmp_path):
    """Nothing to clean."""
    assert cleanup_old_files(str(tmp_path / "missing"), retention_days=1) == 0


def test_app_data_dir_override(tmp_path, monkeypatch):
    """WALKFORWARD_APP_DATA_DIR wins over the platform default."""
    monkeypatch.setenv("WALKFORWARD_APP_DATA_DIR", str(tmp_path / "data"))
    assert resolve_app_data_dir() == (tmp_path / "data").resolve()
    assert (tmp_path / "data").is_dir()


def test_structured_formatter_includes_request_id_and_extra():
    """Extra fields and the bound request id land in the JSON line."""
    record = logging.LogRecord("walkforward", logging.INFO, __file__, 1, "progress %s", ("x",), None)
    record.phase = "optimizing"
    token = request_id_ctx.set("req-1")
    try:
        payload = json.loads(StructuredFormatter().format(record))
    finally:
        request_id_ctx.reset(token)

    assert payload["message"] == "progress x"
    assert payload["phase"] == "optimizing"
    assert payload["request_id"] == "req-1"
    assert "args" not in payload
