"""
Logging configuration and log file retention tests
"""

import logging
from contextlib import contextmanager
from datetime import datetime, timedelta

from services.logging import LOG_PREFIX, cleanup_old_logs, configure_logging, get_log_file_path
from utils import get_logs_dir


@contextmanager
def bare_root_logger():
    """Run with no root handlers, putting the originals back afterwards."""
    root = logging.getLogger()
    saved_handlers = root.handlers[:]
    saved_level = root.level
    for handler in saved_handlers:
        root.removeHandler(handler)
    try:
        yield root
    finally:
        for handler in root.handlers[:]:
            root.removeHandler(handler)
            handler.close()
        for handler in saved_handlers:
            root.addHandler(handler)
        root.setLevel(saved_level)


class TestLogFiles:
    """Tests for daily log files."""

    def test_file_name(self, app_home):
        path = get_log_file_path(datetime(2024, 3, 9))
        assert path == app_home / "logs" / "octra-2024-03-09.log"

    def test_cleanup(self):
        logs_dir = get_logs_dir()
        old = get_log_file_path(datetime.now() - timedelta(days=30))
        recent = get_log_file_path(datetime.now() - timedelta(days=1))
        stray = logs_dir / f"{LOG_PREFIX}notes.log"
        for path in (old, recent, stray):
            path.write_text("x")

        assert cleanup_old_logs(7) == 1
        assert not old.exists()
        assert recent.exists()
        assert stray.exists()

    def test_negative_retention(self):
        old = get_log_file_path(datetime.now() - timedelta(days=30))
        old.write_text("x")
        assert cleanup_old_logs(-1) == 0
        assert old.exists()


class TestConfigureLogging:
    """Tests for root logger setup."""

    def test_console_and_file(self):
        with bare_root_logger() as root:
            configure_logging(logging.DEBUG, retention_days=7)
            assert root.level == logging.DEBUG
            assert len(root.handlers) == 2
            file_handler = next(h for h in root.handlers if isinstance(h, logging.FileHandler))
            assert file_handler.baseFilename == str(get_log_file_path())

    def test_console_only(self):
        with bare_root_logger() as root:
            configure_logging(logging.INFO)
            assert len(root.handlers) == 1
            assert not isinstance(root.handlers[0], logging.FileHandler)

    def test_keeps_existing_handlers(self):
        with bare_root_logger() as root:
            existing = logging.NullHandler()
            root.addHandler(existing)
            configure_logging(logging.DEBUG, retention_days=7)
            assert root.handlers == [existing]
