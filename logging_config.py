"""
Structured logging for the RoastTemp server.

Everything goes through the shared ``roasttemp`` logger:
- console: human-readable, INFO and up
- roasttemp.log: JSON lines, every level, size-rotated
- roasttemp-errors.log: JSON lines, ERROR and up, size-rotated

Per-call context (request id, upstream attempt, status codes) is passed with
``extra={...}`` and lands as top-level keys in the JSON output.
"""

import json
import logging
import logging.handlers
import sys
import traceback
from datetime import datetime, timezone
from pathlib import Path

LOGGER_NAME = "roasttemp"

# Attributes every LogRecord has; anything else came in through ``extra``
_RESERVED_ATTRS = frozenset([
    'name', 'msg', 'args', 'created', 'filename', 'funcName',
    'levelname', 'levelno', 'lineno', 'module', 'msecs',
    'message', 'pathname', 'process', 'processName',
    'relativeCreated', 'thread', 'threadName', 'exc_info',
    'exc_text', 'stack_info', 'taskName', 'asctime',
])


class JSONFormatter(logging.Formatter):
    """One JSON object per record, extras included."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        if record.exc_info:
            exc_type, exc_value, _ = record.exc_info
            entry["exception"] = {
                "type": exc_type.__name__ if exc_type else None,
                "message": str(exc_value) if exc_value else None,
                "traceback": traceback.format_exception(*record.exc_info),
            }

        entry.update(
            (key, value) for key, value in record.__dict__.items()
            if key not in _RESERVED_ATTRS
        )

        # Paths, enums and the like are logged by their str()
        return json.dumps(entry, default=str)


class HumanReadableFormatter(logging.Formatter):
    """Console format: time, logger, level, message."""

    def __init__(self):
        super().__init__(
            fmt='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        )


def _rotating_json_handler(path: Path, level: int, max_bytes: int, backup_count: int) -> logging.Handler:
    handler = logging.handlers.RotatingFileHandler(
        path, maxBytes=max_bytes, backupCount=backup_count, encoding='utf-8'
    )
    handler.setLevel(level)
    handler.setFormatter(JSONFormatter())
    return handler


def setup_logging(
    log_dir: str = "/app/logs",
    max_bytes: int = 10 * 1024 * 1024,
    backup_count: int = 5,
    log_level: str = "INFO"
) -> logging.Logger:
    """
    (Re)configure the shared logger. Safe to call more than once.

    Args:
        log_dir: Directory for the rotating log files, created if missing
        max_bytes: Size at which a log file is rotated
        backup_count: Rotated files kept per log
        log_level: Threshold of the logger itself (DEBUG, INFO, ...)

    Returns:
        The configured ``roasttemp`` logger
    """
    log_path = Path(log_dir)
    log_path.mkdir(parents=True, exist_ok=True)

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(getattr(logging, log_level.upper()))

    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    console = logging.StreamHandler(sys.stdout)
    console.setLevel(logging.INFO)
    console.setFormatter(HumanReadableFormatter())

    logger.addHandler(console)
    logger.addHandler(_rotating_json_handler(
        log_path / "roasttemp.log", logging.DEBUG, max_bytes, backup_count))
    logger.addHandler(_rotating_json_handler(
        log_path / "roasttemp-errors.log", logging.ERROR, max_bytes, backup_count))

    logger.info(
        "Logging system initialized",
        extra={
            "log_dir": str(log_dir),
            "max_bytes": max_bytes,
            "backup_count": backup_count,
            "log_level": log_level,
        }
    )
    return logger


def get_logger() -> logging.Logger:
    """Return the shared ``roasttemp`` logger."""
    return logging.getLogger(LOGGER_NAME)
