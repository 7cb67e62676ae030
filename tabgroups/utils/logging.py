"""Structured JSON logging for the tab grouping engine.

Every record becomes one JSON line. Context passed through ``extra={...}`` is
emitted at the top level, with the tab and group identifiers the engine logs
most placed first so related lines are easy to scan.
"""

import json
import logging
import os
import sys
import traceback
from collections.abc import Set
from datetime import UTC, datetime
from enum import Enum
from pathlib import Path
from typing import IO, Any, ClassVar

PACKAGE_LOGGER = "tabgroups"

_PACKAGE_ROOT = Path(__file__).resolve().parent.parent


def _jsonable(value: Any) -> Any:
    """Convert a context value into something ``json.dumps`` accepts."""
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, Set):
        return sorted((_jsonable(item) for item in value), key=str)
    if isinstance(value, (list, tuple)):
        return [_jsonable(item) for item in value]
    if isinstance(value, dict):
        return {str(key): _jsonable(item) for key, item in value.items()}
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    return str(value)


def _source_path(pathname: str) -> str:
    """Shorten a source path to be relative to the package when possible."""
    try:
        return Path(pathname).resolve().relative_to(_PACKAGE_ROOT).as_posix()
    except ValueError:
        return pathname


class JsonFormatter(logging.Formatter):
    """Format log records as single-line JSON objects."""

    # Attributes every LogRecord carries; anything else came from extra={...}
    RESERVED_ATTRS: ClassVar[frozenset[str]] = frozenset(
        vars(logging.makeLogRecord({}))
    ) | {"message", "asctime", "taskName"}

    # Engine context emitted ahead of other extra fields
    CONTEXT_FIELDS: ClassVar[tuple[str, ...]] = (
        "tab_id",
        "group_id",
        "group_name",
        "window_id",
        "rule_id",
    )

    def format(self, record: logging.LogRecord) -> str:
        """Format a log record as JSON.

        Args:
            record: The log record to format.

        Returns:
            JSON-formatted string.
        """
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        extras = {
            key: value
            for key, value in vars(record).items()
            if key not in self.RESERVED_ATTRS and not key.startswith("_")
        }
        for key in self.CONTEXT_FIELDS:
            if key in extras:
                entry[key] = _jsonable(extras.pop(key))
        for key, value in extras.items():
            entry[key] = _jsonable(value)

        if record.levelno >= logging.WARNING:
            entry["location"] = {
                "file": _source_path(record.pathname),
                "line": record.lineno,
                "function": record.funcName,
            }

        if record.exc_info and record.exc_info[0] is not None:
            exc_type, exc_value, exc_tb = record.exc_info
            entry["exception"] = {
                "type": exc_type.__name__,
                "message": str(exc_value),
                "traceback": "".join(traceback.format_exception(exc_type, exc_value, exc_tb)),
            }

        return json.dumps(entry, default=str)


def _level_from_env(default: int = logging.INFO) -> int:
    level = logging.getLevelName(os.environ.get("LOG_LEVEL", "").strip().upper())
    return level if isinstance(level, int) else default


def configure_logging(
    name: str = PACKAGE_LOGGER,
    level: int | None = None,
    stream: IO[str] | None = None,
) -> logging.Logger:
    """Configure structured JSON logging for the engine.

    Safe to call more than once; the previous handler is replaced.

    Args:
        name: The root logger name.
        level: Log level; read from ``LOG_LEVEL`` when omitted (default INFO).
        stream: Where log lines go (stderr by default).

    Returns:
        Configured logger instance.
    """
    log_level = level if level is not None else _level_from_env()

    logger = logging.getLogger(name)
    logger.setLevel(log_level)
    logger.handlers.clear()

    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setLevel(log_level)
    handler.setFormatter(JsonFormatter())
    logger.addHandler(handler)

    logger.propagate = False

    return logger


def get_logger(module_name: str) -> logging.Logger:
    """Return the ``tabgroups.<module_name>`` child logger."""
    return logging.getLogger(f"{PACKAGE_LOGGER}.{module_name}")
