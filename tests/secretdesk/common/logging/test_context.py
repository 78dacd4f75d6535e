"""Tests for operation ID context propagation."""

import asyncio

import pytest

from secretdesk.common.logging.context import (
    OperationContext,
    clear_operation_id,
    generate_operation_id,
    get_operation_id,
    set_operation_id,
)


class TestOperationId:
    """Test suite for operation ID helpers."""

    def test_generate_is_unique(self) -> None:
        """Test that generated IDs don't repeat."""
        assert generate_operation_id() != generate_operation_id()

    def test_set_get_clear(self) -> None:
        """Test the basic set/get/clear cycle."""
        set_operation_id("op-1")
        assert get_operation_id() == "op-1"

        clear_operation_id()
        assert get_operation_id() is None

    def test_set_empty_raises(self) -> None:
        """Test that an empty ID is rejected."""
        with pytest.raises(ValueError, match="cannot be empty"):
            set_operation_id("")


class TestOperationContext:
    """Test suite for OperationContext."""

    def test_generates_id_when_none_given(self) -> None:
        """Test that a fresh ID is generated and cleared on exit."""
        with OperationContext() as operation_id:
            assert operation_id
            assert get_operation_id() == operation_id

        assert get_operation_id() is None

    def test_nested_contexts_restore_previous(self) -> None:
        """Test that leaving an inner context restores the outer ID."""
        with OperationContext("outer"):
            with OperationContext("inner"):
                assert get_operation_id() == "inner"
            assert get_operation_id() == "outer"

    def test_restored_after_exception(self) -> None:
        """Test that the ID is cleared even when the block raises."""
        with pytest.raises(RuntimeError):
            with OperationContext("failing"):
                raise RuntimeError("boom")

        assert get_operation_id() is None

    @pytest.mark.asyncio()
    async def test_propagates_into_gathered_tasks(self) -> None:
        """Test that tasks spawned inside the context see the same ID."""

        async def read_id() -> str | None:
            await asyncio.sleep(0)
            return get_operation_id()

        with OperationContext("batch-1"):
            ids = await asyncio.gather(read_id(), read_id(), asyncio.to_thread(get_operation_id))

        assert ids == ["batch-1", "batch-1", "batch-1"]
