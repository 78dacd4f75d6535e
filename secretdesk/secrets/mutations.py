"""
Mutation Engine: create, update, bulk delete and batch read-modify-write.

Operations:
    create        - CreateSecret, then read back the store timestamp
    update        - UpdateSecret with the whole replacement value, then read back
    delete        - one DeleteSecret per id, concurrently, then one reload
    batch_mutate  - per secret: GetValue -> merge -> UpdateSecret, then one reload

Batch mutation race window:
    The store has no conditional write. ``batch_mutate`` reads the current
    value, merges the requested keys and writes the whole value back. If
    another actor changes the same secret between that read and that write,
    the other change is silently overwritten. This is a known, accepted
    limitation of the remote API and must be presented to operators as such.

Failure policy:
    Per-secret failures are collected into the result, never raised, and never
    cancel sibling secrets. The single exception is AuthError during a batch:
    it stops further secrets from being started (they are reported as skipped),
    because every remaining call would fail the same way.
"""

import asyncio
import logging
from collections.abc import Iterable, Mapping, Sequence
from datetime import UTC, datetime

from secretdesk.common.logging import log_with_context
from secretdesk.secrets.client import SecretStoreClient
from secretdesk.secrets.exceptions import (
    AuthError,
    PayloadParseError,
    SecretStoreError,
    ValidationError,
)
from secretdesk.secrets.loader import CatalogueLoader
from secretdesk.secrets.models import (
    BatchMutationRequest,
    BatchResult,
    DeleteResult,
    MutationStage,
    Secret,
    SecretCatalogue,
    SecretFailure,
    encode_payload,
    parse_payload,
)

logger = logging.getLogger(__name__)


def validate_payload(payload: Mapping[str, str], secret_id: str | None = None) -> dict[str, str]:
    """
    Check that ``payload`` is a flat map of non-empty string keys to string values.

    Returns:
        A plain dict copy of the payload

    Raises:
        ValidationError: On any non-string or empty key, or non-string value
    """
    if not isinstance(payload, Mapping):
        raise ValidationError(
            f"Payload must be a mapping, got {type(payload).__name__}", secret_id=secret_id
        )
    for key, value in payload.items():
        if not isinstance(key, str) or not key:
            raise ValidationError("Payload keys must be non-empty strings", secret_id=secret_id)
        if not isinstance(value, str):
            raise ValidationError(
                f"Value for key '{key}' must be a string, got {type(value).__name__}",
                secret_id=secret_id,
            )
    return dict(payload)


def group_requests(requests: Iterable[BatchMutationRequest]) -> dict[str, dict[str, str]]:
    """
    Group batch requests by secret, preserving first-seen secret order.

    A later request for the same (secret, key) overrides an earlier one.

    Raises:
        ValidationError: A request has an empty secret id or key
    """
    grouped: dict[str, dict[str, str]] = {}
    for request in requests:
        if not request.secret_id:
            raise ValidationError("Batch request is missing a secret id")
        if not request.key:
            raise ValidationError("Batch request key must not be empty", secret_id=request.secret_id)
        if not isinstance(request.new_value, str):
            raise ValidationError(
                f"Batch value for key '{request.key}' must be a string",
                secret_id=request.secret_id,
            )
        grouped.setdefault(request.secret_id, {})[request.key] = request.new_value
    return grouped


class MutationEngine:
    """
    Executes mutations against the store and resynchronizes afterwards.

    Args:
        loader: Used for the single reload after bulk operations
        batch_concurrency: Secrets processed at once by ``batch_mutate``
        recovery_window_days: Retention for soft deletes (None = store default)
    """

    def __init__(
        self,
        loader: CatalogueLoader,
        batch_concurrency: int = 8,
        recovery_window_days: int | None = None,
    ) -> None:
        if batch_concurrency < 1:
            raise ValueError("batch_concurrency must be >= 1")
        self._loader = loader
        self._batch_concurrency = batch_concurrency
        self._recovery_window_days = recovery_window_days

    async def create(
        self,
        client: SecretStoreClient,
        name: str,
        payload: Mapping[str, str],
        description: str | None = None,
    ) -> Secret:
        """
        Create a secret holding ``payload``.

        Returns:
            The new Secret with the store-assigned ARN and timestamp

        Raises:
            ValidationError: Empty name or malformed payload (no remote call made)
            ConflictError: A secret with this name already exists
        """
        if not name or not name.strip():
            raise ValidationError("Secret name must not be empty", operation="CreateSecret")
        secret_string = encode_payload(validate_payload(payload, name))

        arn = await client.create_secret(name, secret_string, description)
        created = Secret(id=arn, name=name, description=description)

        try:
            value = await client.get_secret_value(arn)
        except SecretStoreError as e:
            # The write succeeded; only the read-back failed
            logger.warning(
                "Created secret could not be read back",
                extra={"secret_id": arn, "error_type": type(e).__name__},
            )
            return created.with_secret_string(secret_string, datetime.now(UTC))

        return created.with_secret_string(
            value.secret_string, value.created_date or datetime.now(UTC)
        )

    async def update(
        self,
        client: SecretStoreClient,
        secret_id: str,
        payload: Mapping[str, str],
        description: str | None = None,
        previous: Secret | None = None,
    ) -> Secret:
        """
        Replace a secret's whole payload (and description when given).

        The value is re-fetched after the write so the returned Secret carries
        the post-write timestamp and payload. If that read fails, the written
        payload and the local time are returned instead.

        Args:
            previous: Catalogue entry for this secret, used for name and for the
                description when ``description`` is None (unchanged)

        Raises:
            ValidationError: Malformed payload
            NotFoundError: The secret no longer exists
        """
        secret_string = encode_payload(validate_payload(payload, secret_id))
        await client.update_secret(secret_id, secret_string, description)

        if description is None and previous is not None:
            description = previous.description

        try:
            value = await client.get_secret_value(secret_id)
        except SecretStoreError as e:
            # The write succeeded; only the read-back failed
            logger.warning(
                "Updated secret could not be read back",
                extra={"secret_id": secret_id, "error_type": type(e).__name__},
            )
            return Secret(
                id=secret_id,
                name=previous.name if previous else "",
                description=description,
            ).with_secret_string(secret_string, datetime.now(UTC))

        return Secret(
            id=value.secret_id or secret_id,
            name=value.name or (previous.name if previous else ""),
            description=description,
        ).with_secret_string(value.secret_string, value.created_date or datetime.now(UTC))

    async def delete(
        self,
        client: SecretStoreClient,
        secret_ids: Sequence[str],
        force_immediate: bool = False,
        stop: asyncio.Event | None = None,
    ) -> DeleteResult:
        """
        Delete secrets concurrently, each independently fallible.

        ``force_immediate`` hard-deletes (irreversible); otherwise the store
        keeps the secret recoverable for its retention window. After every
        call finished the catalogue is reloaded once; trust that snapshot, not
        the list of requested ids.
        """
        unique_ids = list(dict.fromkeys(secret_ids))

        async def delete_one(secret_id: str) -> SecretFailure | None:
            """Delete a single secret, returning its failure or None."""
            try:
                await client.delete_secret(
                    secret_id,
                    force_immediate=force_immediate,
                    recovery_window_days=self._recovery_window_days,
                )
                return None
            except SecretStoreError as e:
                logger.warning(
                    "Secret delete failed",
                    extra={"secret_id": secret_id, "error_type": type(e).__name__},
                )
                return SecretFailure(secret_id=secret_id, stage=MutationStage.DELETE, error=e)

        results = await asyncio.gather(*(delete_one(secret_id) for secret_id in unique_ids))

        succeeded = tuple(sid for sid, failure in zip(unique_ids, results, strict=True) if failure is None)
        failures = tuple(failure for failure in results if failure is not None)
        log_with_context(
            logger,
            "INFO",
            "Bulk delete finished",
            requested=len(unique_ids),
            succeeded=len(succeeded),
            failed=len(failures),
            force_immediate=force_immediate,
        )

        catalogue, resync_error = await self._resync(client, stop)
        return DeleteResult(
            succeeded=succeeded,
            failures=failures,
            catalogue=catalogue,
            resync_error=resync_error,
        )

    async def batch_mutate(
        self,
        client: SecretStoreClient,
        requests: Iterable[BatchMutationRequest],
        stop: asyncio.Event | None = None,
    ) -> BatchResult:
        """
        Apply key-level changes across many secrets.

        For each distinct secret (serially within that secret, concurrently
        across secrets up to ``batch_concurrency``):
            1. GetValue (the store is the source of truth, not the catalogue)
            2. Missing/unparsable payload -> failure, secret skipped
            3. Merge ``payload[key] = new_value`` (absent keys are added)
            4. UpdateSecret with the merged payload
        Then the catalogue is reloaded once.

        NOT atomic against concurrent external writers (see module docstring).

        Raises:
            ValidationError: A request is malformed (raised before any call)
        """
        grouped = group_requests(requests)
        if not grouped:
            return BatchResult(succeeded=())

        logger.info(
            "Batch mutation started; read-modify-write is not atomic against external writers",
            extra={
                "secret_count": len(grouped),
                "key_count": sum(len(changes) for changes in grouped.values()),
            },
        )

        semaphore = asyncio.Semaphore(self._batch_concurrency)
        halted = asyncio.Event()
        succeeded: set[str] = set()
        skipped: set[str] = set()
        failures: dict[str, SecretFailure] = {}

        def should_halt() -> bool:
            return halted.is_set() or (stop is not None and stop.is_set())

        def record_failure(secret_id: str, stage: MutationStage, error: Exception) -> None:
            if isinstance(error, AuthError):
                halted.set()
            failures[secret_id] = SecretFailure(secret_id=secret_id, stage=stage, error=error)
            logger.warning(
                "Batch mutation failed for secret",
                extra={
                    "secret_id": secret_id,
                    "stage": stage.value,
                    "error_type": type(error).__name__,
                },
            )

        async def mutate_one(secret_id: str, changes: dict[str, str]) -> None:
            async with semaphore:
                if should_halt():
                    skipped.add(secret_id)
                    return

                try:
                    value = await client.get_secret_value(secret_id)
                except SecretStoreError as e:
                    record_failure(secret_id, MutationStage.FETCH, e)
                    return

                try:
                    payload = parse_payload(value.secret_string, secret_id)
                except PayloadParseError as e:
                    record_failure(secret_id, MutationStage.PARSE, e)
                    return

                merged = {**payload, **changes}
                try:
                    await client.update_secret(secret_id, encode_payload(merged))
                except SecretStoreError as e:
                    record_failure(secret_id, MutationStage.WRITE, e)
                    return

                succeeded.add(secret_id)

        await asyncio.gather(*(mutate_one(sid, changes) for sid, changes in grouped.items()))

        order = list(grouped)
        result_succeeded = tuple(sid for sid in order if sid in succeeded)
        result_failures = tuple(failures[sid] for sid in order if sid in failures)
        result_skipped = tuple(sid for sid in order if sid in skipped)

        log_with_context(
            logger,
            "INFO",
            "Batch mutation finished",
            succeeded=len(result_succeeded),
            failed=len(result_failures),
            skipped=len(result_skipped),
        )

        catalogue, resync_error = await self._resync(client, stop)
        return BatchResult(
            succeeded=result_succeeded,
            failures=result_failures,
            skipped=result_skipped,
            catalogue=catalogue,
            resync_error=resync_error,
        )

    async def _resync(
        self, client: SecretStoreClient, stop: asyncio.Event | None
    ) -> tuple[SecretCatalogue | None, SecretStoreError | None]:
        """Reload once after a bulk operation; report instead of raise on failure."""
        try:
            return await self._loader.load(client, stop=stop), None
        except SecretStoreError as e:
            logger.error(
                "Catalogue resync after mutation failed",
                extra={"error_type": type(e).__name__, "error": str(e)},
            )
            return None, e
