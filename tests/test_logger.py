"""Tests for the logger module."""

import logging
from logging.handlers import RotatingFileHandler
from unittest.mock import patch

import pytest

from crowncord.util import logger as logger_module
from crowncord.util.logger import (
    DATE_FORMAT,
    LOG_FORMAT,
    ColorFormatter,
    PromptToolkitHandler,
    get_logger,
    handle_exception,
    setup_logger,
    should_use_color,
)


def _record(level: int, msg: str) -> logging.LogRecord:
    return logging.LogRecord(
        name="crowncord.test", level=level, pathname="test.py", lineno=1, msg=msg, args=(), exc_info=None
    )


@pytest.fixture(autouse=True)
def isolated_log_dir(tmp_path, monkeypatch):
    """Keep log files of this module out of the project's logs directory."""
    monkeypatch.setattr(logger_module, "LOGS_DIR", tmp_path / "logs")
    monkeypatch.setattr(logger_module, "LOG_FILEPATH", None)


class TestShouldUseColor:
    @patch("sys.stderr.isatty", return_value=True)
    def test_tty(self, _):
        assert should_use_color() is True

    @patch("sys.stderr.isatty", return_value=False)
    def test_not_tty(self, _):
        assert should_use_color() is False

    @patch("sys.stderr.isatty", side_effect=ValueError("closed"))
    def test_error_means_no_color(self, _):
        assert should_use_color() is False


class TestColorFormatter:
    @pytest.mark.parametrize(
        "level, code",
        [(logging.DEBUG, "\033[36m"), (logging.INFO, "\033[32m"), (logging.ERROR, "\033[31m")],
    )
    def test_level_colors(self, level, code):
        formatted = ColorFormatter(LOG_FORMAT, datefmt=DATE_FORMAT).format(_record(level, "[ROTATION] hello"))

        assert formatted.startswith(code)
        assert formatted.endswith("\033[0m")
        assert "[ROTATION] hello" in formatted

    def test_unknown_level_is_plain(self):
        record = _record(25, "custom")
        record.levelname = "NOTICE"

        formatted = ColorFormatter(LOG_FORMAT, datefmt=DATE_FORMAT).format(record)

        assert "\033[" not in formatted


class TestSetupLogger:
    def test_logger_is_configured_once(self):
        first = setup_logger("crowncord_test_setup")
        second = get_logger("crowncord_test_setup")

        assert first is second
        assert first.level == logging.DEBUG
        assert first.propagate is False
        assert len(first.handlers) == 2

    def test_handlers(self, tmp_path):
        lg = setup_logger("crowncord_test_handlers")

        console = next(h for h in lg.handlers if isinstance(h, PromptToolkitHandler))
        file_handler = next(h for h in lg.handlers if isinstance(h, RotatingFileHandler))
        assert console.level == logging.INFO
        assert file_handler.level == logging.DEBUG
        assert file_handler.maxBytes == logger_module.MAX_LOG_BYTES
        assert file_handler.backupCount == logger_module.LOG_BACKUP_COUNT
        assert logger_module.LOG_FILEPATH.parent == tmp_path / "logs"

    def test_debug_reaches_file_only(self):
        lg = setup_logger("crowncord_test_file")
        with patch("crowncord.util.logger.print_formatted_text") as printed:
            lg.debug("[JOB REGISTRY] quiet")
            lg.info("[JOB REGISTRY] loud")
        for handler in lg.handlers:
            handler.flush()

        assert printed.call_count == 1
        content = logger_module.LOG_FILEPATH.read_text(encoding="utf-8")
        assert "[JOB REGISTRY] quiet" in content
        assert "[JOB REGISTRY] loud" in content


class TestHandleException:
    def test_keyboard_interrupt_uses_default_hook(self):
        with patch("sys.__excepthook__") as default_hook:
            handle_exception(KeyboardInterrupt, KeyboardInterrupt(), None)

        default_hook.assert_called_once()

    def test_other_exceptions_are_logged(self):
        with patch("crowncord.util.logger.logging.error") as log_error:
            handle_exception(ValueError, ValueError("x"), None)

        log_error.assert_called_once()
        assert log_error.call_args.kwargs["exc_info"][0] is ValueError


def test_noisy_libraries_are_quiet():
    assert logging.getLogger("discord").level == logging.ERROR
    assert logging.getLogger("aiosqlite").propagate is False
