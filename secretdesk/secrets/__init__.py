"""
Secret synchronization and batch-mutation engine.

This package keeps an in-memory catalogue of every secret in an AWS Secrets
Manager account (values included) and mutates many secrets at once without a
server-side transaction primitive.

Architecture:
    - SecretStoreClient: async adapter over boto3 with error mapping (client.py)
    - CatalogueLoader: paginated List + concurrent GetValue fan-out (loader.py)
    - MutationEngine: create/update/delete/batch read-modify-write (mutations.py)
    - Search functions: AND term filters and key/value search (search.py)
    - Batch planning: value replacement and key addition previews (planning.py)
    - SecretSession: facade owning the catalogue (session.py)

Quick Start:
    >>> from secretdesk.secrets import SecretSession, SettingsCredentialProvider
    >>> session = SecretSession(SettingsCredentialProvider())
    >>> catalogue = await session.load()
    >>> session.find_secrets(["prod", "db"])

Security Requirements:
    - Secret values NEVER logged (only names/ARNs)
    - No disk persistence: the catalogue lives only as long as the session
"""

from secretdesk.secrets.client import SecretStoreClient, map_aws_error
from secretdesk.secrets.credentials import (
    AwsCredentials,
    CredentialProvider,
    SettingsCredentialProvider,
    StaticCredentialProvider,
)
from secretdesk.secrets.exceptions import (
    AuthError,
    ConflictError,
    NotFoundError,
    OperationStoppedError,
    PayloadParseError,
    SecretStoreError,
    TransportError,
    ValidationError,
)
from secretdesk.secrets.loader import CatalogueLoader
from secretdesk.secrets.models import (
    BatchMutationRequest,
    BatchResult,
    DeleteResult,
    KeyValueEntry,
    MutationStage,
    PayloadState,
    Secret,
    SecretCatalogue,
    SecretFailure,
    parse_payload,
)
from secretdesk.secrets.mutations import MutationEngine
from secretdesk.secrets.planning import (
    KeyAdditionPreview,
    ValueReplacement,
    parse_env_pairs,
    parse_json_pairs,
    plan_key_addition,
    plan_value_replacement,
    to_requests,
)
from secretdesk.secrets.search import (
    EntryMatch,
    SearchField,
    filter_secrets,
    flatten_entries,
    malformed_secrets,
    search_entries,
)
from secretdesk.secrets.session import SecretSession

__all__ = [
    # Facade
    "SecretSession",
    # Components
    "SecretStoreClient",
    "CatalogueLoader",
    "MutationEngine",
    "map_aws_error",
    # Credentials
    "AwsCredentials",
    "CredentialProvider",
    "SettingsCredentialProvider",
    "StaticCredentialProvider",
    # Data model
    "Secret",
    "SecretCatalogue",
    "PayloadState",
    "KeyValueEntry",
    "BatchMutationRequest",
    "BatchResult",
    "DeleteResult",
    "SecretFailure",
    "MutationStage",
    "parse_payload",
    # Search
    "SearchField",
    "EntryMatch",
    "filter_secrets",
    "flatten_entries",
    "search_entries",
    "malformed_secrets",
    # Planning
    "ValueReplacement",
    "KeyAdditionPreview",
    "plan_value_replacement",
    "plan_key_addition",
    "parse_env_pairs",
    "parse_json_pairs",
    "to_requests",
    # Exceptions (callers should catch these)
    "SecretStoreError",
    "ConflictError",
    "ValidationError",
    "NotFoundError",
    "AuthError",
    "TransportError",
    "OperationStoppedError",
    "PayloadParseError",
]
