"""
zkill-matrix Structured Logging

Provides consistent logging across the zkill_matrix package with:
- Level and output format applied once at startup via configure_logging()
- JSON-formatted output option for machine parsing
- Module-specific loggers

Usage:
    from zkill_matrix.core.logging import get_logger

    logger = get_logger(__name__)
    logger.debug("Processing kill")
    logger.info("Delivered", extra={"kill_id": 123})
    logger.error("Request failed", exc_info=True)
"""

import json
import logging
import sys
import traceback
from datetime import datetime, timezone
from typing import Any, Optional

DEFAULT_LEVEL = logging.INFO

# LogRecord attributes that are not user-supplied "extra" fields
_RECORD_ATTRS = frozenset(
    (
        "name",
        "msg",
        "args",
        "levelname",
        "levelno",
        "pathname",
        "filename",
        "module",
        "lineno",
        "funcName",
        "created",
        "msecs",
        "relativeCreated",
        "thread",
        "threadName",
        "processName",
        "process",
        "exc_info",
        "exc_text",
        "stack_info",
        "message",
        "taskName",
    )
)


class ZkillFormatter(logging.Formatter):
    """
    Formats logs with level, module, and message.

    Supports both human-readable and JSON output.
    """

    def __init__(self, json_output: bool = False) -> None:
        super().__init__()
        self.json_output = json_output

    def format(self, record: logging.LogRecord) -> str:
        timestamp = datetime.now(timezone.utc).isoformat(timespec="seconds")

        if self.json_output:
            return self._format_json(record, timestamp)
        return self._format_text(record, timestamp)

    def _format_text(self, record: logging.LogRecord, timestamp: str) -> str:
        """Format as human-readable text."""
        module = record.name.split(".")[-1] if "." in record.name else record.name

        msg = f"{timestamp} [ZKILL {record.levelname}] [{module}] {record.getMessage()}"

        if record.exc_info:
            exc_text = "".join(traceback.format_exception(*record.exc_info))
            msg += f"\n{exc_text}"

        return msg

    def _format_json(self, record: logging.LogRecord, timestamp: str) -> str:
        """Format as JSON for machine parsing."""
        log_data: dict[str, Any] = {
            "timestamp": timestamp,
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        for key, value in record.__dict__.items():
            if key not in _RECORD_ATTRS:
                log_data[key] = value

        if record.exc_info:
            log_data["exception"] = "".join(traceback.format_exception(*record.exc_info))

        return json.dumps(log_data, default=str)


# Module-level logger cache
_loggers: dict[str, logging.Logger] = {}
_handler: Optional[logging.Handler] = None
_level: int = DEFAULT_LEVEL
_json_output: bool = False


def _get_handler() -> logging.Handler:
    """Get or create the shared stderr handler."""
    global _handler
    if _handler is None:
        _handler = logging.StreamHandler(sys.stderr)
        _handler.setFormatter(ZkillFormatter(json_output=_json_output))
    return _handler


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger for the given module name.

    Args:
        name: Module name (typically __name__)

    Returns:
        Configured logger instance
    """
    if name in _loggers:
        return _loggers[name]

    logger = logging.getLogger(name)
    logger.setLevel(_level)
    logger.addHandler(_get_handler())
    logger.propagate = False  # Don't bubble up to root logger

    _loggers[name] = logger
    return logger


def configure_logging(level: int = DEFAULT_LEVEL, json_output: bool = False) -> None:
    """
    Apply level and output format to all zkill_matrix loggers.

    Called once by bootstrap after settings are loaded. Loggers created
    later pick up the same configuration.

    Args:
        level: logging.DEBUG, logging.INFO, etc.
        json_output: Emit one JSON object per line
    """
    global _level, _json_output

    _level = level
    _json_output = json_output
    _get_handler().setFormatter(ZkillFormatter(json_output=json_output))

    for logger in _loggers.values():
        logger.setLevel(level)


def reset_logging() -> None:
    """
    Reset all zkill_matrix loggers to default state.

    Restores propagate=True and NOTSET levels so pytest's caplog can capture
    records, and drops the shared handler. Used by test fixtures.
    """
    global _handler, _level, _json_output

    manager = logging.Logger.manager
    for name in list(manager.loggerDict.keys()):
        if name.startswith("zkill_matrix"):
            logger_or_placeholder = manager.loggerDict[name]
            # loggerDict can contain Logger objects or PlaceHolder objects
            if isinstance(logger_or_placeholder, logging.Logger):
                logger_or_placeholder.propagate = True
                logger_or_placeholder.setLevel(logging.NOTSET)

    for logger in _loggers.values():
        if _handler is not None:
            logger.removeHandler(_handler)

    _handler = None
    _level = DEFAULT_LEVEL
    _json_output = False
