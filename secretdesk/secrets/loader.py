"""
Catalogue Loader: full List + GetValue synchronization.

The store has no "get all values" endpoint, so a load is:

    1. Page through ListSecrets (<=100 per page) until no NextToken is
       returned. Strictly sequential: each request needs the previous cursor.
    2. For every summary, schedule a GetSecretValue task as soon as its page
       arrives. The fan-out is concurrent and unbounded by default, so a load
       costs roughly the listing round trips plus the slowest single fetch,
       not the sum of all fetches.
    3. Collect every fetch. A failed fetch never aborts the load: the secret
       stays in the catalogue flagged UNAVAILABLE and the failure is logged.
    4. Assemble the catalogue in List order.

All-or-nothing at the listing level (a List failure cancels outstanding
fetches and propagates), best-effort at the payload level.

This is the dominant cost of every refresh and of every mutation resync.
"""

import asyncio
import logging

from secretdesk.secrets.client import SecretStoreClient
from secretdesk.secrets.exceptions import OperationStoppedError, SecretStoreError
from secretdesk.secrets.models import PayloadState, Secret, SecretCatalogue

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 100


class CatalogueLoader:
    """
    Builds a complete ``SecretCatalogue`` from the remote store.

    Args:
        page_size: ListSecrets MaxResults (1-100)
        fetch_concurrency: Optional cap on in-flight GetSecretValue calls.
            None keeps the fan-out unbounded. Note that ``asyncio.to_thread``
            already runs on the loop's default thread pool, which bounds the
            number of boto3 calls actually executing at once.

    Example:
        >>> loader = CatalogueLoader(page_size=100)
        >>> catalogue = await loader.load(client)
        >>> len(catalogue)
        42
    """

    def __init__(self, page_size: int = MAX_PAGE_SIZE, fetch_concurrency: int | None = None) -> None:
        if not 1 <= page_size <= MAX_PAGE_SIZE:
            raise ValueError(f"page_size must be between 1 and {MAX_PAGE_SIZE}, got {page_size}")
        if fetch_concurrency is not None and fetch_concurrency < 1:
            raise ValueError("fetch_concurrency must be >= 1 or None")
        self._page_size = page_size
        self._fetch_concurrency = fetch_concurrency

    async def load(
        self,
        client: SecretStoreClient,
        stop: asyncio.Event | None = None,
    ) -> SecretCatalogue:
        """
        List every secret and fetch every value.

        Args:
            client: Secret store adapter for the active credentials
            stop: When set, no further List page is requested

        Returns:
            The freshly assembled catalogue

        Raises:
            SecretStoreError: A List call failed (auth, network, ...). Whole
                load aborted, outstanding fetches cancelled.
            OperationStoppedError: ``stop`` was set before listing finished
        """
        semaphore = asyncio.Semaphore(self._fetch_concurrency) if self._fetch_concurrency else None
        fetches: list[asyncio.Task[Secret]] = []
        seen_ids: set[str] = set()
        next_token: str | None = None
        pages = 0

        try:
            while True:
                if stop is not None and stop.is_set():
                    raise OperationStoppedError(
                        "Catalogue load stopped before listing finished",
                        operation="ListSecrets",
                    )

                page = await client.list_secrets(max_results=self._page_size, next_token=next_token)
                pages += 1

                for summary in page.secrets:
                    # The listing can shift while it is paged; keep the first sighting
                    if summary.id in seen_ids:
                        logger.debug(
                            "Duplicate secret in listing skipped",
                            extra={"secret_id": summary.id, "page": pages},
                        )
                        continue
                    seen_ids.add(summary.id)
                    fetches.append(
                        asyncio.create_task(self._fetch_value(client, summary, semaphore))
                    )

                next_token = page.next_token
                if not next_token:
                    break
        except BaseException:
            for task in fetches:
                task.cancel()
            await asyncio.gather(*fetches, return_exceptions=True)
            raise

        secrets = await asyncio.gather(*fetches)
        catalogue = SecretCatalogue(secrets)

        unavailable = sum(1 for s in secrets if s.payload_state is PayloadState.UNAVAILABLE)
        malformed = sum(1 for s in secrets if s.payload_state is PayloadState.MALFORMED)
        logger.info(
            "Catalogue loaded",
            extra={
                "secret_count": len(catalogue),
                "pages": pages,
                "unavailable_count": unavailable,
                "malformed_count": malformed,
            },
        )
        return catalogue

    async def _fetch_value(
        self,
        client: SecretStoreClient,
        summary: Secret,
        semaphore: asyncio.Semaphore | None,
    ) -> Secret:
        """Fetch one value; never raises for remote failures."""
        try:
            if semaphore is None:
                value = await client.get_secret_value(summary.id)
            else:
                async with semaphore:
                    value = await client.get_secret_value(summary.id)
        except SecretStoreError as e:
            logger.warning(
                "Failed to load secret value",
                extra={
                    "secret_id": summary.id,
                    "secret_name": summary.name,
                    "error_type": type(e).__name__,
                    "error": str(e),
                },
            )
            return summary.unavailable()

        # Listing carries LastChangedDate; keep it over the version CreatedDate
        secret = summary.with_secret_string(value.secret_string, summary.last_changed or value.created_date)
        if secret.payload_state is PayloadState.MALFORMED:
            logger.info(
                "Secret payload is not a flat string map",
                extra={"secret_id": summary.id, "secret_name": summary.name},
            )
        return secret
