"""
Structured JSON logging for the credo service.

Every record becomes one JSON line on stdout and, when a log directory is
configured, in a ``YYYY-MM-DD.log`` file that rolls over at UTC midnight.
"""

from __future__ import annotations

import json
import logging
import os
import sys
import time
from datetime import UTC, datetime
from logging.handlers import TimedRotatingFileHandler
from typing import Any

SERVICE_LOGGER_NAME = "credo_service"

VALID_LOG_LEVELS: frozenset[str] = frozenset({"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"})

# Attributes every LogRecord carries; anything else arrived through ``extra=``.
_RECORD_ATTRS = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime", "taskName"}


def _utc_stamp(epoch: float) -> str:
    return datetime.fromtimestamp(epoch, tz=UTC).strftime("%Y-%m-%dT%H:%M:%SZ")


class JSONFormatter(logging.Formatter):
    """Renders a record as a JSON object with its ``extra`` fields nested."""

    def __init__(self, service_name: str) -> None:
        super().__init__()
        self._service_name = service_name

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": _utc_stamp(record.created),
            "level": record.levelname,
            "service": self._service_name,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        extra = {k: v for k, v in vars(record).items() if k not in _RECORD_ATTRS}
        if extra:
            entry["extra"] = extra
        return json.dumps(entry, default=str)


class DailyRotatingFileHandler(TimedRotatingFileHandler):
    """Writes to ``<directory>/<UTC date>.log`` and opens a new file each day."""

    def __init__(self, directory: str) -> None:
        self._log_directory = directory
        super().__init__(self._today_path(), when="midnight", utc=True)

    def _today_path(self) -> str:
        return os.path.join(self._log_directory, datetime.now(tz=UTC).strftime("%Y-%m-%d.log"))

    def doRollover(self) -> None:  # noqa: N802
        if self.stream:
            self.stream.close()
            self.stream = None  # type: ignore[assignment]
        self.baseFilename = os.path.abspath(self._today_path())
        if not self.delay:
            self.stream = self._open()
        self.rolloverAt = self.computeRollover(int(time.time()))


def _attach(logger: logging.Logger, handler: logging.Handler, formatter: JSONFormatter) -> None:
    handler.setLevel(logger.level)
    handler.setFormatter(formatter)
    logger.addHandler(handler)


def setup_logging(level: str, service_name: str, log_directory: str | None) -> logging.Logger:
    """
    Configure the ``credo_service`` logger tree.

    Calling it again replaces the previous handlers, so tests and reloads
    do not stack duplicate output.

    Raises:
        ValueError: If level is not a valid log level
    """
    level_name = level.upper()
    if level_name not in VALID_LOG_LEVELS:
        msg = f"Invalid log level: {level}. Must be one of {sorted(VALID_LOG_LEVELS)}"
        raise ValueError(msg)

    logger = logging.getLogger(SERVICE_LOGGER_NAME)
    logger.setLevel(logging.getLevelName(level_name))
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    formatter = JSONFormatter(service_name)
    _attach(logger, logging.StreamHandler(sys.stdout), formatter)
    if log_directory:
        os.makedirs(log_directory, exist_ok=True)
        _attach(logger, DailyRotatingFileHandler(directory=log_directory), formatter)

    logger.propagate = False
    return logger


def get_logger(name: str) -> logging.Logger:
    """Logger under the service namespace; ``get_logger(__name__)`` is the usual call."""
    if name == SERVICE_LOGGER_NAME or name.startswith(SERVICE_LOGGER_NAME + "."):
        return logging.getLogger(name)
    return logging.getLogger(f"{SERVICE_LOGGER_NAME}.{name}")
