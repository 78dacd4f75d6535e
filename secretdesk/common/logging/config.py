"""Logging setup for applications embedding the secret engine.

A presentation layer calls ``configure_logging()`` once at startup; engine
modules only ever use ``logging.getLogger(__name__)`` and pass structured
fields through ``extra``.

Example:
    >>> from secretdesk.common.logging.config import configure_logging
    >>> logger = configure_logging(service_name="secretdesk", log_level="INFO")
    >>> logger.info("Session started", extra={"context": {"region": "ap-northeast-2"}})
"""

import logging
import sys

from secretdesk.common.logging.context import get_operation_id
from secretdesk.common.logging.formatter import JSONFormatter


class OperationIDFilter(logging.Filter):
    """Logging filter that stamps the current operation ID on each record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.operation_id = get_operation_id()
        return True


def configure_logging(
    service_name: str,
    log_level: str = "INFO",
    include_context: bool = True,
) -> logging.Logger:
    """Configure structured JSON logging on the root logger.

    Sets up:
    - JSON formatted output to stdout
    - Operation ID injection on all records
    - The requested log level

    Args:
        service_name: Name reported in every log line
        log_level: Minimum log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        include_context: Whether to include the context dict in output

    Returns:
        Configured root logger instance

    Raises:
        ValueError: If log_level is invalid
    """
    numeric_level = getattr(logging, log_level.upper(), None)
    if not isinstance(numeric_level, int):
        raise ValueError(f"Invalid log level: {log_level}")

    root_logger = logging.getLogger()
    root_logger.setLevel(numeric_level)

    # Remove existing handlers to avoid duplicates
    root_logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(numeric_level)
    handler.setFormatter(
        JSONFormatter(
            service_name=service_name,
            include_context=include_context,
        )
    )
    handler.addFilter(OperationIDFilter())

    root_logger.addHandler(handler)

    # botocore logs request bodies at DEBUG, which include SecretString
    logging.getLogger("botocore").setLevel(max(numeric_level, logging.INFO))

    return root_logger


def log_with_context(
    logger: logging.Logger,
    level: str,
    message: str,
    **context_fields: object,
) -> None:
    """Log a message with additional context fields.

    Context fields appear in the "context" dict of the JSON output and go
    through the same redaction as ``extra`` fields.

    Example:
        >>> log_with_context(logger, "INFO", "Batch finished", succeeded=3, failed=1)
    """
    log_method = getattr(logger, level.lower())
    log_method(message, extra={"context": context_fields})
