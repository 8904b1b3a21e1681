"""
Logging Utility - Structured JSON Logging

Provides centralized, structured logging configuration for all backend components.
Supports JSON format for production and human-readable format for development.

A bounded in-memory buffer keeps the most recent entries of a run so progress
and errors stay inspectable without the log growing without limit.

Usage:
    from clickdown.utils.logging import get_logger, setup_logging

    buffer = setup_logging(level="INFO", format_type="json")
    logger = get_logger(__name__)
    logger.info("Page fetched", extra={"list_id": "901", "page": 0})
"""

import logging
import sys
from collections import deque
from datetime import datetime, timezone
from typing import Any

import orjson

TEXT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# Attributes present on every LogRecord; anything else came from `extra=`.
_RESERVED_ATTRS = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", None, None)).keys()
) | {"message", "asctime"}


class JsonFormatter(logging.Formatter):
    """Render records as one JSON object per line, including `extra` fields."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        for key, value in vars(record).items():
            if key not in _RESERVED_ATTRS and not key.startswith("_"):
                entry[key] = value

        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        return orjson.dumps(entry, default=str).decode("utf-8")


class BoundedLogBuffer(logging.Handler):
    """Keep the most recent formatted log entries, dropping the oldest."""

    def __init__(self, capacity: int = 2000, level: int = logging.NOTSET) -> None:
        super().__init__(level)
        self.capacity = capacity
        self._entries: deque[str] = deque(maxlen=capacity)

    def emit(self, record: logging.LogRecord) -> None:
        try:
            self._entries.append(self.format(record))
        except Exception:
            self.handleError(record)

    def entries(self) -> list[str]:
        return list(self._entries)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Logger instance configured through setup_logging()
    """
    return logging.getLogger(name)


def setup_logging(
    level: str = "INFO",
    format_type: str = "json",
    buffer_size: int = 2000,
) -> BoundedLogBuffer:
    """Configure application-wide logging.

    Replaces any handlers on the root logger with a stdout handler and a
    bounded buffer. Safe to call more than once.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        format_type: Log format ('json' or 'text')
        buffer_size: Number of recent entries kept in memory

    Returns:
        The installed BoundedLogBuffer
    """
    formatter: logging.Formatter
    if format_type == "json":
        formatter = JsonFormatter()
    else:
        formatter = logging.Formatter(TEXT_FORMAT)

    stream_handler = logging.StreamHandler(sys.stdout)
    stream_handler.setFormatter(formatter)

    buffer = BoundedLogBuffer(capacity=buffer_size)
    buffer.setFormatter(logging.Formatter(TEXT_FORMAT))

    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)
    root.addHandler(stream_handler)
    root.addHandler(buffer)
    root.setLevel(getattr(logging, level.upper(), logging.INFO))

    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)

    return buffer
