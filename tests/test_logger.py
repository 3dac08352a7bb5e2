"""Tests for logger.py: setup_logging() and JsonFormatter.

Covers:
- CLI mode logging (stderr handler, optional file handler)
- MCP mode logging (rotating file handler, never stdout)
- Debug level override and LOG_LEVEL handling
- JSON formatter output, including sync_id extras
- Third-party logger silencing

Strategy: Mock logging.basicConfig to verify setup_logging passes correct args,
since pytest's log capture plugin interferes with actual basicConfig calls.
"""

import json
import logging
import sys
from logging.handlers import RotatingFileHandler
from unittest.mock import patch

from snapsync.logger import MAX_LOG_BYTES, JsonFormatter, setup_logging

# ---------------------------------------------------------------------------
# setup_logging tests
# ---------------------------------------------------------------------------


class TestSetupLogging:
    """Tests for setup_logging()."""

    @patch("snapsync.logger.logging.basicConfig")
    def test_cli_mode_logs_to_stderr(self, mock_basic):
        """CLI mode passes StreamHandler(stderr) to basicConfig."""
        setup_logging(mode="cli")

        kwargs = mock_basic.call_args[1]
        handlers = kwargs["handlers"]
        assert len(handlers) == 1
        assert isinstance(handlers[0], logging.StreamHandler)
        assert handlers[0].stream is sys.stderr
        assert kwargs["force"] is True

    @patch("snapsync.logger.logging.basicConfig")
    def test_cli_mode_with_log_file(self, mock_basic, tmp_path):
        """CLI mode adds a file handler when log_file is given."""
        log_file = tmp_path / "cli.log"
        setup_logging(mode="cli", log_file=str(log_file))

        handlers = mock_basic.call_args[1]["handlers"]
        assert len(handlers) == 2
        assert isinstance(handlers[1], logging.FileHandler)
        assert handlers[1].baseFilename == str(log_file)
        for handler in handlers:
            handler.close()

    @patch("snapsync.logger.logging.basicConfig")
    def test_mcp_mode_logs_to_rotating_file(self, mock_basic, tmp_path, monkeypatch):
        """MCP mode uses only a rotating file handler."""
        monkeypatch.delenv("LOG_LEVEL", raising=False)
        log_file = tmp_path / "mcp.log"
        setup_logging(mode="mcp", log_file=str(log_file))

        kwargs = mock_basic.call_args[1]
        (handler,) = kwargs["handlers"]
        assert isinstance(handler, RotatingFileHandler)
        assert handler.maxBytes == MAX_LOG_BYTES
        assert kwargs["level"] == logging.WARNING
        handler.close()

    @patch("snapsync.logger.logging.basicConfig")
    def test_debug_overrides_level(self, mock_basic):
        """debug=True passes DEBUG level to basicConfig."""
        setup_logging(mode="cli", debug=True)
        assert mock_basic.call_args[1]["level"] == logging.DEBUG

    @patch("snapsync.logger.logging.basicConfig")
    def test_log_level_env(self, mock_basic, monkeypatch):
        """LOG_LEVEL env var sets the level."""
        monkeypatch.setenv("LOG_LEVEL", "error")
        setup_logging(mode="cli")
        assert mock_basic.call_args[1]["level"] == logging.ERROR

    @patch("snapsync.logger.logging.basicConfig")
    def test_invalid_log_level_falls_back_to_info(self, mock_basic, monkeypatch):
        monkeypatch.setenv("LOG_LEVEL", "LOUD")
        setup_logging(mode="cli")
        assert mock_basic.call_args[1]["level"] == logging.INFO

    @patch("snapsync.logger.logging.basicConfig")
    def test_third_party_loggers_silenced(self, mock_basic):
        """urllib3/requests loggers are raised to WARNING unless debugging."""
        logging.getLogger("urllib3").setLevel(logging.DEBUG)
        setup_logging(mode="cli")
        assert logging.getLogger("urllib3").level == logging.WARNING
        assert logging.getLogger("requests").level == logging.WARNING


# ---------------------------------------------------------------------------
# JsonFormatter tests
# ---------------------------------------------------------------------------


def _record(msg="hello", **extra):
    record = logging.LogRecord(
        name="snapsync.sync.engine",
        level=logging.INFO,
        pathname=__file__,
        lineno=1,
        msg=msg,
        args=(),
        exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestJsonFormatter:
    """Tests for JsonFormatter."""

    def test_basic_fields(self):
        entry = json.loads(JsonFormatter().format(_record()))
        assert entry["level"] == "INFO"
        assert entry["logger"] == "snapsync.sync.engine"
        assert entry["msg"] == "hello"
        assert "ts" in entry
        assert "sync_id" not in entry

    def test_sync_id_extra(self):
        entry = json.loads(JsonFormatter().format(_record(sync_id="abc")))
        assert entry["sync_id"] == "abc"

    def test_exception_included(self):
        try:
            raise RuntimeError("boom")
        except RuntimeError:
            record = _record()
            record.exc_info = sys.exc_info()
        entry = json.loads(JsonFormatter().format(record))
        assert "RuntimeError: boom" in entry["exc"]
