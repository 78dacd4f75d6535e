"""
Secret session: the engine facade a presentation layer talks to.

The session exclusively owns the in-memory ``SecretCatalogue``. Callers read
it (immutable snapshot) and run searches against it, and they change remote
state only through the session's mutation methods, which swap in a new
catalogue when they finish (copy-on-write, no locks needed).

Every operation:
    - asks the Credential Provider for the current credentials (None -> AuthError)
    - reuses the client adapter while the credentials stay the same
    - runs under its own operation ID so its log lines correlate
    - can be asked to stop via ``stop()``; in-flight calls complete, no new
      calls are issued

Usage Example:
    >>> provider = SettingsCredentialProvider()
    >>> async with SecretSession(provider) as session:
    ...     catalogue = await session.load()
    ...     rows = session.plan_value_replacement({"old-host": "new-host"})
    ...     result = await session.batch_mutate(to_requests(rows))
    ...     result.failed_ids
    ()
"""

import asyncio
import logging
from collections.abc import Callable, Iterable, Mapping, Sequence
from types import TracebackType

from config.settings import Settings, get_settings
from secretdesk.common.logging import OperationContext
from secretdesk.secrets.client import SecretStoreClient
from secretdesk.secrets.credentials import AwsCredentials, CredentialProvider
from secretdesk.secrets.exceptions import AuthError
from secretdesk.secrets.loader import CatalogueLoader
from secretdesk.secrets.models import (
    BatchMutationRequest,
    BatchResult,
    DeleteResult,
    KeyValueEntry,
    Secret,
    SecretCatalogue,
)
from secretdesk.secrets.mutations import MutationEngine
from secretdesk.secrets.planning import (
    KeyAdditionPreview,
    ValueReplacement,
    plan_key_addition,
    plan_value_replacement,
)
from secretdesk.secrets.search import (
    EntryMatch,
    SearchField,
    filter_secrets,
    malformed_secrets,
    search_entries,
)

logger = logging.getLogger(__name__)

ClientFactory = Callable[[AwsCredentials], SecretStoreClient]


class SecretSession:
    """
    Owns the catalogue and wires loader, mutation engine and search together.

    Args:
        credential_provider: Supplies credentials before every operation
        settings: Engine settings (defaults to ``get_settings()``)
        client_factory: Builds a client adapter from credentials; override in
            tests or to share a pre-built client
    """

    def __init__(
        self,
        credential_provider: CredentialProvider,
        settings: Settings | None = None,
        client_factory: ClientFactory | None = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._provider = credential_provider
        self._client_factory = client_factory or self._default_client_factory
        self._loader = CatalogueLoader(
            page_size=self._settings.list_page_size,
            fetch_concurrency=self._settings.fetch_concurrency,
        )
        self._engine = MutationEngine(
            self._loader,
            batch_concurrency=self._settings.batch_concurrency,
            recovery_window_days=self._settings.recovery_window_days,
        )
        self._catalogue = SecretCatalogue()
        self._client: SecretStoreClient | None = None
        self._client_credentials: AwsCredentials | None = None
        self._stop = asyncio.Event()

    def _default_client_factory(self, credentials: AwsCredentials) -> SecretStoreClient:
        return SecretStoreClient.from_credentials(credentials, self._settings)

    @property
    def catalogue(self) -> SecretCatalogue:
        """Current snapshot (immutable; replaced wholesale by operations)."""
        return self._catalogue

    def stop(self) -> None:
        """Ask the running operation to stop issuing further remote calls."""
        self._stop.set()
        logger.info("Stop requested")

    def _begin(self) -> asyncio.Event:
        self._stop = asyncio.Event()
        return self._stop

    def _get_client(self) -> SecretStoreClient:
        credentials = self._provider.get_credentials()
        if credentials is None:
            raise AuthError("No AWS credentials configured")

        if self._client is None or credentials != self._client_credentials:
            if self._client is not None:
                self._client.close()
            self._client = self._client_factory(credentials)
            self._client_credentials = credentials
        return self._client

    async def load(self) -> SecretCatalogue:
        """
        Reload the whole catalogue (List + GetValue for every secret).

        Raises:
            AuthError: No credentials, or the store rejected them
            SecretStoreError: Listing failed; the previous catalogue is kept
        """
        stop = self._begin()
        with OperationContext():
            client = self._get_client()
            self._catalogue = await self._loader.load(client, stop=stop)
            return self._catalogue

    async def create(
        self,
        name: str,
        payload: Mapping[str, str],
        description: str | None = None,
    ) -> Secret:
        """Create a secret and append it to the catalogue."""
        self._begin()
        with OperationContext():
            secret = await self._engine.create(self._get_client(), name, payload, description)
            self._catalogue = self._catalogue.with_secret(secret)
            return secret

    async def update(
        self,
        secret_id: str,
        payload: Mapping[str, str],
        description: str | None = None,
    ) -> Secret:
        """Replace a secret's payload (and description when given); returns the post-write Secret."""
        self._begin()
        with OperationContext():
            secret = await self._engine.update(
                self._get_client(),
                secret_id,
                payload,
                description=description,
                previous=self._catalogue.get(secret_id),
            )
            self._catalogue = self._catalogue.with_secret(secret)
            return secret

    async def delete(self, secret_ids: Sequence[str], force_immediate: bool = False) -> DeleteResult:
        """Delete secrets concurrently, then reload the catalogue once."""
        stop = self._begin()
        with OperationContext():
            result = await self._engine.delete(
                self._get_client(), secret_ids, force_immediate=force_immediate, stop=stop
            )
            if result.catalogue is not None:
                self._catalogue = result.catalogue
            return result

    async def batch_mutate(self, requests: Iterable[BatchMutationRequest]) -> BatchResult:
        """
        Apply a batch of key-level changes, then reload the catalogue once.

        Not atomic against concurrent external writers: a change made by
        someone else between this engine's read and write of a secret is lost.
        """
        stop = self._begin()
        with OperationContext():
            result = await self._engine.batch_mutate(self._get_client(), requests, stop=stop)
            if result.catalogue is not None:
                self._catalogue = result.catalogue
            return result

    def find_secrets(
        self, terms: Iterable[str], field: SearchField = SearchField.NAME
    ) -> list[Secret]:
        return filter_secrets(self._catalogue, terms, field)

    def find_entries(
        self,
        text: str = "",
        mode: EntryMatch = EntryMatch.KEY,
        name_terms: Iterable[str] = (),
    ) -> list[KeyValueEntry]:
        return search_entries(self._catalogue, text, mode, name_terms)

    def malformed_secrets(self) -> list[Secret]:
        return malformed_secrets(self._catalogue)

    def plan_value_replacement(
        self, replacements: Mapping[str, str], secret_ids: Iterable[str] | None = None
    ) -> list[ValueReplacement]:
        return plan_value_replacement(self._catalogue, replacements, secret_ids)

    def plan_key_addition(
        self, secret_ids: Sequence[str], pairs: Sequence[tuple[str, str]]
    ) -> list[KeyAdditionPreview]:
        return plan_key_addition(self._catalogue, secret_ids, pairs)

    def close(self) -> None:
        """Drop the in-memory catalogue and close the client connection pool."""
        self._catalogue = SecretCatalogue()
        if self._client is not None:
            self._client.close()
        self._client = None
        self._client_credentials = None

    async def __aenter__(self) -> "SecretSession":
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        self.close()
