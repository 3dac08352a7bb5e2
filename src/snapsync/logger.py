import json
import logging
import os
import sys
from logging.handlers import RotatingFileHandler

DEFAULT_LOG_FILE = "/tmp/snapsync.log"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Sync runs log one line per phase; a few MB covers weeks of auto-sync.
MAX_LOG_BYTES = 5 * 1024 * 1024
LOG_BACKUPS = 3

_NOISY_LOGGERS = ("urllib3", "requests", "mcp", "asyncio")


class JsonFormatter(logging.Formatter):
    """Single-line JSON formatter for structured output.

    Produces one JSON object per record with fields: ts, level, logger, msg.
    Exception info is included as an "exc" field when present, and any
    ``extra={"sync_id": ...}`` passed to the logger is carried through.
    """

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "ts": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        sync_id = getattr(record, "sync_id", None)
        if sync_id:
            entry["sync_id"] = sync_id
        if record.exc_info:
            entry["exc"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def _formatter(log_format: str, with_name: bool) -> logging.Formatter:
    if log_format == "json":
        return JsonFormatter(datefmt=DATE_FORMAT)
    pattern = (
        "[%(asctime)s] [%(levelname)s] %(name)s %(message)s"
        if with_name
        else "[%(asctime)s] [%(levelname)s] %(message)s"
    )
    return logging.Formatter(pattern, datefmt=DATE_FORMAT)


def setup_logging(
    mode: str = "cli",
    debug: bool = False,
    log_file: str | None = None,
    debug_format: str = "text",
) -> None:
    """
    Configure logging based on execution mode.

    Args:
        mode: "mcp" for file logging (never stdout), "cli" for stderr logging.
        debug: If True, overrides LOG_LEVEL to DEBUG.
        log_file: Custom log file path (overrides LOG_FILE env var).
        debug_format: "text" (default) or "json" for structured output.

    Environment variables:
        LOG_LEVEL: Logging level (DEBUG, INFO, WARNING, ERROR).
                   Default: WARNING for MCP mode, INFO for CLI mode.
        LOG_FILE: Custom log file path for MCP mode.
                  Default: /tmp/snapsync.log
    """
    default_level = "WARNING" if mode == "mcp" else "INFO"
    env_level = os.getenv("LOG_LEVEL", default_level).upper()

    if debug:
        log_level = logging.DEBUG
    else:
        log_level = getattr(logging, env_level, logging.INFO)

    handlers: list[logging.Handler] = []
    if mode == "mcp":
        # stdio transport owns stdout; everything goes to a file.
        final_log_file = log_file or os.getenv("LOG_FILE", DEFAULT_LOG_FILE)
        file_handler = RotatingFileHandler(
            final_log_file,
            mode="a",
            maxBytes=MAX_LOG_BYTES,
            backupCount=LOG_BACKUPS,
            encoding="utf-8",
        )
        file_handler.setFormatter(_formatter(debug_format, with_name=True))
        handlers.append(file_handler)
    else:
        stderr_handler = logging.StreamHandler(sys.stderr)
        stderr_handler.setFormatter(_formatter(debug_format, with_name=False))
        handlers.append(stderr_handler)

        if log_file:
            file_handler = logging.FileHandler(log_file, mode="a", encoding="utf-8")
            file_handler.setFormatter(_formatter(debug_format, with_name=True))
            handlers.append(file_handler)

    logging.basicConfig(level=log_level, handlers=handlers, force=True)

    # Silence third-party libs unless DEBUG
    if log_level != logging.DEBUG:
        for name in _NOISY_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)
