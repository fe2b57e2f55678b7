"""
Tests for observability — logging setup.
"""

import logging
from pathlib import Path

import pytest

from pluginctl.core.observability.logging_config import resolve_level, setup_logging


@pytest.fixture(autouse=True)
def _restore_root_logger():
    root = logging.getLogger()
    before, level = list(root.handlers), root.level
    yield
    for handler in root.handlers[:]:
        if handler not in before:
            root.removeHandler(handler)
            handler.close()
    root.setLevel(level)


class TestSetupLogging:
    def test_default_level(self):
        setup_logging()
        root = logging.getLogger()
        assert root.level == logging.WARNING
        assert len(root.handlers) == 1

    def test_debug_format_has_location(self):
        setup_logging(level="DEBUG")
        fmt = logging.getLogger().handlers[0].formatter._fmt
        assert "%(lineno)d" in fmt

    def test_unknown_level_falls_back(self):
        setup_logging(level="chatty")
        assert logging.getLogger().level == logging.WARNING

    def test_file_output(self, tmp_path: Path):
        log_file = tmp_path / "pluginctl.log"
        setup_logging(level="WARNING", log_file=str(log_file), log_file_level="DEBUG")
        assert logging.getLogger().level == logging.DEBUG

        logging.getLogger("pluginctl.test").debug("written to file only")
        for handler in logging.getLogger().handlers:
            handler.flush()
        assert "written to file only" in log_file.read_text()

    def test_repeated_setup_does_not_stack_handlers(self):
        setup_logging()
        setup_logging()
        assert len(logging.getLogger().handlers) == 1

    def test_creates_log_directory(self, tmp_path: Path):
        log_file = tmp_path / "logs" / "nested" / "pluginctl.log"
        setup_logging(log_file=str(log_file))
        logging.getLogger("pluginctl.test").warning("hello")
        for handler in logging.getLogger().handlers:
            handler.flush()
        assert "hello" in log_file.read_text()


class TestResolveLevel:
    def test_flags_win(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("PLUGINCTL_LOG_LEVEL", "ERROR")
        assert resolve_level(debug=True, verbose=True) == "DEBUG"
        assert resolve_level(verbose=True) == "INFO"
        assert resolve_level(quiet=True) == "ERROR"

    def test_env_then_default(self, monkeypatch: pytest.MonkeyPatch):
        assert resolve_level() == "WARNING"
        monkeypatch.setenv("PLUGINCTL_LOG_LEVEL", "info")
        assert resolve_level() == "info"
