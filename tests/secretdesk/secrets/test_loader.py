"""
Test Suite for CatalogueLoader (secretdesk/secrets/loader.py).

Covers:
- Pagination completeness (every page, every secret, List order)
- Partial fetch resilience (one failed GetValue never aborts the load)
- Malformed / binary payloads flagged, not dropped
- All-or-nothing listing (List failure propagates, fetches cancelled)
- Concurrent fan-out and the optional concurrency cap
- Stop requests
"""

import asyncio
import json

import pytest

from secretdesk.secrets.exceptions import AuthError, OperationStoppedError, TransportError
from secretdesk.secrets.loader import CatalogueLoader
from secretdesk.secrets.models import PayloadState


def _fill(store, count: int) -> list[str]:
    return [store.add(f"app/secret-{i:03d}", json.dumps({"index": str(i)})) for i in range(count)]


class TestCatalogueLoaderInit:
    """Test suite for constructor validation."""

    @pytest.mark.unit()
    @pytest.mark.parametrize("page_size", [0, 101])
    def test_page_size_bounds(self, page_size: int) -> None:
        with pytest.raises(ValueError, match="page_size"):
            CatalogueLoader(page_size=page_size)

    @pytest.mark.unit()
    def test_fetch_concurrency_bounds(self) -> None:
        with pytest.raises(ValueError, match="fetch_concurrency"):
            CatalogueLoader(fetch_concurrency=0)


class TestCatalogueLoaderPagination:
    """Test suite for listing all pages."""

    @pytest.mark.unit()
    @pytest.mark.asyncio()
    async def test_loads_every_page(self, store) -> None:
        # Arrange: 250 secrets -> pages of 100, 100, 50
        arns = _fill(store, 250)
        loader = CatalogueLoader(page_size=100)

        # Act
        catalogue = await loader.load(store)

        # Assert
        assert len(catalogue) == 250
        assert catalogue.ids == tuple(arns)
        assert store.count("ListSecrets") == 3
        assert store.count("GetSecretValue") == 250

    @pytest.mark.unit()
    @pytest.mark.asyncio()
    async def test_empty_store(self, store) -> None:
        catalogue = await CatalogueLoader().load(store)

        assert len(catalogue) == 0
        assert store.count("ListSecrets") == 1

    @pytest.mark.unit()
    @pytest.mark.asyncio()
    async def test_values_and_metadata_loaded(self, store) -> None:
        arn = store.add("prod/db", '{"user": "app", "password": "pw"}', description="Primary DB")

        catalogue = await CatalogueLoader().load(store)

        secret = catalogue[arn]
        assert secret.name == "prod/db"
        assert secret.description == "Primary DB"
        assert secret.payload == {"user": "app", "password": "pw"}
        assert secret.last_changed == store.changed[arn]

    @pytest.mark.unit()
    @pytest.mark.asyncio()
    async def test_duplicate_listing_entries_kept_once(self, store, monkeypatch) -> None:
        arns = _fill(store, 3)
        original = store.list_secrets

        async def shifting_list(max_results: int = 100, next_token: str | None = None):
            # Second page repeats the last entry of the first page
            start = int(next_token or 0)
            return await original(max_results=max_results, next_token=str(start - 1) if start else None)

        monkeypatch.setattr(store, "list_secrets", shifting_list)

        catalogue = await CatalogueLoader(page_size=2).load(store)

        assert catalogue.ids == tuple(arns)

    @pytest.mark.unit()
    @pytest.mark.asyncio()
    async def test_reload_is_idempotent(self, store) -> None:
        _fill(store, 5)
        store.add("broken", "not json")
        loader = CatalogueLoader(page_size=2)

        first = await loader.load(store)
        second = await loader.load(store)

        assert first == second


class TestCatalogueLoaderResilience:
    """Test suite for per-secret failure handling."""

    @pytest.mark.unit()
    @pytest.mark.asyncio()
    async def test_failed_fetch_flags_secret_and_continues(self, store) -> None:
        # Arrange
        arns = _fill(store, 4)
        store.get_failures[arns[1]] = TransportError("timeout", secret_id=arns[1])

        # Act
        catalogue = await CatalogueLoader().load(store)

        # Assert
        assert len(catalogue) == 4
        assert catalogue[arns[1]].payload_state is PayloadState.UNAVAILABLE
        assert catalogue[arns[1]].payload is None
        for arn in (arns[0], arns[2], arns[3]):
            assert catalogue[arn].payload_state is PayloadState.LOADED

    @pytest.mark.unit()
    @pytest.mark.asyncio()
    async def test_malformed_payloads_flagged(self, store) -> None:
        good = store.add("good", '{"a": "1"}')
        not_json = store.add("not-json", "plain text")
        nested = store.add("nested", '{"a": {"b": "c"}}')
        binary = store.add("binary", None)

        catalogue = await CatalogueLoader().load(store)

        assert catalogue[good].payload_state is PayloadState.LOADED
        assert catalogue[not_json].payload_state is PayloadState.MALFORMED
        assert catalogue[nested].payload_state is PayloadState.MALFORMED
        assert catalogue[binary].payload_state is PayloadState.UNAVAILABLE

    @pytest.mark.unit()
    @pytest.mark.asyncio()
    async def test_list_failure_aborts_load(self, store) -> None:
        _fill(store, 3)
        store.list_failure = AuthError("denied", operation="ListSecrets")

        with pytest.raises(AuthError):
            await CatalogueLoader().load(store)

    @pytest.mark.unit()
    @pytest.mark.asyncio()
    async def test_later_page_failure_cancels_outstanding_fetches(
        self, slow_store, monkeypatch
    ) -> None:
        _fill(slow_store, 5)
        original = slow_store.list_secrets

        async def failing_second_page(max_results: int = 100, next_token: str | None = None):
            if next_token:
                raise TransportError("connection reset", operation="ListSecrets")
            return await original(max_results=max_results, next_token=next_token)

        monkeypatch.setattr(slow_store, "list_secrets", failing_second_page)

        with pytest.raises(TransportError):
            await CatalogueLoader(page_size=3).load(slow_store)

        # Nothing left running in the background
        pending = [t for t in asyncio.all_tasks() if t is not asyncio.current_task()]
        assert all(t.done() for t in pending)


class TestCatalogueLoaderConcurrency:
    """Test suite for the GetValue fan-out."""

    @pytest.mark.unit()
    @pytest.mark.asyncio()
    async def test_fetches_overlap(self, slow_store) -> None:
        _fill(slow_store, 20)

        catalogue = await CatalogueLoader().load(slow_store)

        assert len(catalogue) == 20
        assert slow_store.max_in_flight > 1

    @pytest.mark.unit()
    @pytest.mark.asyncio()
    async def test_fetch_concurrency_cap(self, slow_store) -> None:
        _fill(slow_store, 20)

        await CatalogueLoader(fetch_concurrency=3).load(slow_store)

        assert 1 < slow_store.max_in_flight <= 3


class TestCatalogueLoaderStop:
    """Test suite for stop requests."""

    @pytest.mark.unit()
    @pytest.mark.asyncio()
    async def test_stop_before_start(self, store) -> None:
        _fill(store, 3)
        stop = asyncio.Event()
        stop.set()

        with pytest.raises(OperationStoppedError):
            await CatalogueLoader().load(store, stop=stop)

        assert store.count("ListSecrets") == 0

    @pytest.mark.unit()
    @pytest.mark.asyncio()
    async def test_stop_between_pages(self, store, monkeypatch) -> None:
        _fill(store, 5)
        stop = asyncio.Event()
        original = store.list_secrets

        async def stop_after_first_page(max_results: int = 100, next_token: str | None = None):
            page = await original(max_results=max_results, next_token=next_token)
            stop.set()
            return page

        monkeypatch.setattr(store, "list_secrets", stop_after_first_page)

        with pytest.raises(OperationStoppedError):
            await CatalogueLoader(page_size=2).load(store, stop=stop)

        assert store.count("ListSecrets") == 1
