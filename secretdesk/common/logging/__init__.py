"""Structured logging for the secret engine.

JSON log lines with an operation ID so every remote call made by one load,
batch mutation or bulk delete can be correlated.

Usage:
    from secretdesk.common.logging import configure_logging, OperationContext
    configure_logging(service_name="secretdesk", log_level="INFO")

    with OperationContext():
        await session.load()
"""

from secretdesk.common.logging.config import (
    OperationIDFilter,
    configure_logging,
    log_with_context,
)
from secretdesk.common.logging.context import (
    OperationContext,
    clear_operation_id,
    generate_operation_id,
    get_operation_id,
    set_operation_id,
)
from secretdesk.common.logging.formatter import REDACTED, JSONFormatter, redact

__all__ = [
    # Configuration
    "configure_logging",
    "log_with_context",
    "OperationIDFilter",
    # Operation ID management
    "generate_operation_id",
    "get_operation_id",
    "set_operation_id",
    "clear_operation_id",
    "OperationContext",
    # Formatter
    "JSONFormatter",
    "REDACTED",
    "redact",
]
