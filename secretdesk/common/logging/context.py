"""Operation ID generation and context propagation for log correlation.

Every engine operation (a catalogue load, a batch mutation, a bulk delete)
runs under one operation ID. The ID lives in a context variable, so it
follows the operation into every task spawned by its fan-out and every log
line those tasks emit can be grouped together.

Example:
    >>> from secretdesk.common.logging.context import OperationContext, get_operation_id
    >>> with OperationContext("load-1"):
    ...     get_operation_id()
    'load-1'
"""

import contextvars
import uuid
from types import TracebackType

# Context variable for storing the operation ID in async contexts
_operation_id_var: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "operation_id", default=None
)


def generate_operation_id() -> str:
    """Generate a new unique operation ID (UUID v4 string)."""
    return str(uuid.uuid4())


def get_operation_id() -> str | None:
    """Get the current operation ID, or None outside of an operation."""
    return _operation_id_var.get()


def set_operation_id(operation_id: str) -> None:
    """Set the operation ID for the current context.

    Args:
        operation_id: The operation ID to set

    Raises:
        ValueError: If operation_id is empty or None
    """
    if not operation_id:
        raise ValueError("Operation ID cannot be empty")
    _operation_id_var.set(operation_id)


def clear_operation_id() -> None:
    """Clear the operation ID from the current context."""
    _operation_id_var.set(None)


class OperationContext:
    """Context manager for a scoped operation ID.

    Sets an operation ID for a block of code and restores the previous value
    on exit. Tasks created inside the block (``asyncio.gather``,
    ``asyncio.create_task``, ``asyncio.to_thread``) copy the context and
    therefore log under the same ID.

    Args:
        operation_id: The ID to set for this context. If None, generates one.

    Example:
        >>> async def batch() -> None:
        ...     with OperationContext() as op_id:
        ...         logger.info("Batch started", extra={"operation": "batch_mutate"})
    """

    def __init__(self, operation_id: str | None = None) -> None:
        self.operation_id = operation_id or generate_operation_id()
        self.previous_operation_id: str | None = None

    def __enter__(self) -> str:
        self.previous_operation_id = get_operation_id()
        set_operation_id(self.operation_id)
        return self.operation_id

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        if self.previous_operation_id is not None:
            set_operation_id(self.previous_operation_id)
        else:
            clear_operation_id()
