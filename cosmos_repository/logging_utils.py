"""
Structured JSON logging for repository failures.

``Repository`` logs every failed operation with context fields
(operation, container, item_type, item_id, partition_key) passed through
``extra``. The JSON formatter emits them as top-level keys and expands
repository exceptions into their type, message and details, so Log
Analytics and similar sinks can filter on them.
"""

from __future__ import annotations

import json
import logging
import sys
import traceback
from datetime import datetime, timezone
from typing import IO, Any

from .exceptions import RepositoryError

ROOT_LOGGER_NAME = "cosmos_repository"

# Attributes every LogRecord carries; anything else came in through ``extra``
_RECORD_ATTRS = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime"}


def _jsonable(value: Any) -> Any:
    try:
        json.dumps(value)
    except (TypeError, ValueError):
        return str(value)
    return value


def describe_exception(exc: BaseException, tb: Any = None) -> dict[str, Any]:
    """Render an exception as a JSON-ready dict.

    Repository exceptions contribute their ``details`` so a failed
    operation's status code, container and cause are searchable.
    """
    described: dict[str, Any] = {
        "type": type(exc).__name__,
        "message": str(exc),
    }
    if isinstance(exc, RepositoryError) and exc.details:
        described["details"] = {k: _jsonable(v) for k, v in exc.details.items()}
    if tb is not None:
        described["traceback"] = "".join(traceback.format_exception(type(exc), exc, tb))
    return described


class StructuredJsonFormatter(logging.Formatter):
    """
    Formats records as single-line JSON objects.

    Fields:
    - timestamp: record creation time, ISO 8601 in UTC
    - level, logger, message
    - exception: type, message, details and traceback when exc_info is set
    - every field passed through ``extra``
    """

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        if record.exc_info and record.exc_info[1] is not None:
            _, exc, tb = record.exc_info
            payload["exception"] = describe_exception(exc, tb)

        payload.update(
            (key, _jsonable(value))
            for key, value in vars(record).items()
            if key not in _RECORD_ATTRS and not key.startswith("_")
        )
        return json.dumps(payload, default=str)


def configure_structured_logging(
    level: int = logging.INFO,
    logger_name: str | None = ROOT_LOGGER_NAME,
    stream: IO[str] | None = None,
) -> logging.Logger:
    """
    Send a logger's records to a stream as structured JSON.

    Calling this again replaces the JSON handler installed earlier; other
    handlers on the logger are left alone.

    Args:
        level: Logging level (default: INFO)
        logger_name: Logger to configure (default: the package logger)
        stream: Destination (default: stdout)

    Returns:
        The configured logger
    """
    logger = logging.getLogger(logger_name)
    for handler in list(logger.handlers):
        if isinstance(handler.formatter, StructuredJsonFormatter):
            logger.removeHandler(handler)

    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setFormatter(StructuredJsonFormatter())
    logger.addHandler(handler)
    logger.setLevel(level)
    return logger


def get_repository_logger(name: str) -> logging.Logger:
    """
    Get the logger a repository reports its failures to.

    Args:
        name: Entity type name (e.g., 'Widget', 'Order')

    Returns:
        Logger named 'cosmos_repository.{name}'
    """
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")


class RepositoryLoggerAdapter(logging.LoggerAdapter):
    """
    Adds fixed context to every record a repository logs.

    Pass one as ``Repository(..., logger=...)`` to tag all failures of that
    repository with a tenant, request id or similar.
    """

    def process(self, msg: str, kwargs: dict[str, Any]) -> tuple[str, dict[str, Any]]:
        extra = dict(self.extra or {})
        extra.update(kwargs.get("extra") or {})
        kwargs["extra"] = extra
        return msg, kwargs
