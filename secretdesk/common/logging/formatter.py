"""JSON log formatter for structured engine logs.

Example log output:
    {
        "timestamp": "2026-10-19T10:30:00.000Z",
        "level": "INFO",
        "service": "secretdesk",
        "operation_id": "abc123-def456",
        "message": "Catalogue loaded",
        "context": {
            "secret_count": 42,
            "unavailable_count": 1
        }
    }

Secret material must never reach a log sink. Extra fields whose name is in
``REDACTED_FIELDS`` are replaced with ``"[REDACTED]"`` before serialization,
so an accidental ``extra={"payload": ...}`` does not leak values.
"""

import json
import logging
import traceback
from datetime import UTC, datetime
from types import TracebackType
from typing import Any

REDACTED = "[REDACTED]"

REDACTED_FIELDS = frozenset(
    {
        "payload",
        "secret_string",
        "secret_value",
        "value",
        "new_value",
        "old_value",
        "aws_secret_access_key",
    }
)

# Attributes every LogRecord carries; anything else came in through ``extra``.
_RESERVED_FIELDS = frozenset(
    {
        "name",
        "msg",
        "args",
        "created",
        "filename",
        "funcName",
        "levelname",
        "levelno",
        "lineno",
        "module",
        "msecs",
        "pathname",
        "process",
        "processName",
        "relativeCreated",
        "thread",
        "threadName",
        "taskName",
        "operation_id",
        "context",
        "exc_info",
        "message",
        "asctime",
        "exc_text",
        "stack_info",
    }
)


def redact(fields: dict[str, Any]) -> dict[str, Any]:
    """Return a copy of ``fields`` with secret-bearing keys masked."""
    return {key: (REDACTED if key in REDACTED_FIELDS else value) for key, value in fields.items()}


class JSONFormatter(logging.Formatter):
    """Formatter that outputs each record as one JSON object.

    Attributes:
        service_name: Name of the emitting application
        include_context: Whether to include extra context fields
    """

    def __init__(
        self, service_name: str, include_context: bool = True, *args: Any, **kwargs: Any
    ) -> None:
        super().__init__(*args, **kwargs)
        self.service_name = service_name
        self.include_context = include_context

    def format(self, record: logging.LogRecord) -> str:
        """Format a log record as JSON.

        Args:
            record: The log record to format

        Returns:
            JSON string representation of the log record
        """
        log_entry: dict[str, Any] = {
            "timestamp": self._format_timestamp(record.created),
            "level": record.levelname,
            "service": self.service_name,
            "operation_id": getattr(record, "operation_id", None),
            "message": record.getMessage(),
        }

        if self.include_context:
            context = self._extract_context(record)
            if context:
                log_entry["context"] = context

        if record.exc_info:
            log_entry["exception"] = {
                "type": record.exc_info[0].__name__ if record.exc_info[0] else None,
                "message": str(record.exc_info[1]) if record.exc_info[1] else None,
                "traceback": self._format_exception(record.exc_info),
            }

        log_entry["source"] = {
            "file": record.pathname,
            "line": record.lineno,
            "function": record.funcName,
        }

        return json.dumps(log_entry, default=str)

    def _format_timestamp(self, created: float) -> str:
        """Format timestamp as ISO 8601 in UTC with millisecond precision."""
        dt = datetime.fromtimestamp(created, tz=UTC)
        return dt.strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3] + "Z"

    def _extract_context(self, record: logging.LogRecord) -> dict[str, Any] | None:
        """Extract the context dict from a record.

        An explicit ``context`` dict (see ``log_with_context``) wins; otherwise
        all non-standard attributes passed through ``extra`` are collected.
        Both paths are redacted.
        """
        context = getattr(record, "context", None)
        if context and isinstance(context, dict):
            return redact(dict(context))

        extra = {
            key: value for key, value in record.__dict__.items() if key not in _RESERVED_FIELDS
        }

        return redact(extra) if extra else None

    def _format_exception(
        self,
        exc_info: tuple[type[BaseException] | None, BaseException | None, TracebackType | None],
    ) -> str:
        return "".join(traceback.format_exception(*exc_info))
