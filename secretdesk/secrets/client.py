"""
Secret Store Client Adapter for AWS Secrets Manager.

This module wraps the five remote operations the engine depends on behind one
async call contract with typed error mapping:

    | Operation | boto3 call          | Returns              |
    |-----------|---------------------|----------------------|
    | List      | list_secrets        | ListPage             |
    | GetValue  | get_secret_value    | SecretValue          |
    | Create    | create_secret       | assigned ARN         |
    | Update    | update_secret       | None                 |
    | Delete    | delete_secret       | None                 |

Architecture:
    - boto3 client calls are blocking; every call is offloaded with
      ``asyncio.to_thread`` so the engine's fan-out runs concurrently
    - botocore ``ClientError`` codes are mapped onto the engine taxonomy
      (``secretdesk.secrets.exceptions``) here and nowhere else
    - Transient failures (throttling, 5xx, connection errors) are retried with
      exponential backoff via tenacity; permanent errors propagate immediately
    - An endpoint override (local emulator) sets ``endpoint_url`` and disables
      TLS for that client only

Security Considerations:
    - Secret values are NEVER logged (only ARNs/names and operation names)
    - IAM permissions required: secretsmanager:ListSecrets, GetSecretValue,
      CreateSecret, UpdateSecret, DeleteSecret

Usage Example:
    >>> from secretdesk.secrets.client import SecretStoreClient
    >>> client = SecretStoreClient.from_credentials(credentials)
    >>> page = await client.list_secrets(max_results=100)
    >>> value = await client.get_secret_value(page.secrets[0].id)
"""

import asyncio
import logging
from collections.abc import Callable
from datetime import datetime
from typing import Any, cast

import boto3
from botocore.exceptions import (
    BotoCoreError,
    ClientError,
    NoCredentialsError,
    ParamValidationError,
    PartialCredentialsError,
)
from tenacity import (
    Retrying,
    before_sleep_log,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from config.settings import Settings, get_settings
from secretdesk.secrets.credentials import AwsCredentials
from secretdesk.secrets.exceptions import (
    AuthError,
    ConflictError,
    NotFoundError,
    SecretStoreError,
    TransportError,
    ValidationError,
)
from secretdesk.secrets.models import ListPage, Secret, SecretValue

logger = logging.getLogger(__name__)

# Transient AWS error codes that should be retried
TRANSIENT_ERROR_CODES = frozenset(
    {
        "ThrottlingException",
        "TooManyRequestsException",
        "LimitExceededException",
        "ServiceUnavailable",
        "InternalServiceError",
        "InternalFailure",
    }
)

AUTH_ERROR_CODES = frozenset(
    {
        "AccessDeniedException",
        "UnrecognizedClientException",
        "InvalidSignatureException",
        "SignatureDoesNotMatch",
        "ExpiredTokenException",
        "InvalidClientTokenId",
        "IncompleteSignature",
        "MissingAuthenticationToken",
    }
)

VALIDATION_ERROR_CODES = frozenset(
    {
        "InvalidParameterException",
        "InvalidRequestException",
        "ValidationException",
        "MalformedPolicyDocumentException",
    }
)

CONFLICT_ERROR_CODES = frozenset({"ResourceExistsException", "ResourceConflictException"})


def _error_code(exception: ClientError) -> str:
    return cast(str, exception.response.get("Error", {}).get("Code", "Unknown"))


def _is_transient_aws_error(exception: BaseException) -> bool:
    """
    Check if an AWS exception is transient and should be retried.

    Transient (retry):
        - Throttling / 5xx codes in TRANSIENT_ERROR_CODES
        - Network errors (BotoCoreError), except missing credentials

    Permanent (don't retry):
        - Auth, validation, not-found and conflict codes
        - NoCredentialsError / PartialCredentialsError
        - ParamValidationError (request rejected by botocore before sending)
    """
    if isinstance(exception, NoCredentialsError | PartialCredentialsError | ParamValidationError):
        return False

    if isinstance(exception, BotoCoreError):
        return True

    if isinstance(exception, ClientError):
        return _error_code(exception) in TRANSIENT_ERROR_CODES

    return False


def map_aws_error(
    exception: ClientError | BotoCoreError,
    operation: str,
    secret_id: str | None = None,
) -> SecretStoreError:
    """
    Map a botocore exception onto the engine's error taxonomy.

    Args:
        exception: The botocore exception raised by the call
        operation: Remote operation name for context ("UpdateSecret", ...)
        secret_id: ARN/name the call referenced, if any

    Returns:
        The engine-level exception (caller raises it ``from`` the original)
    """
    if isinstance(exception, NoCredentialsError | PartialCredentialsError):
        return AuthError(
            f"AWS credentials missing or incomplete: {exception}",
            secret_id=secret_id,
            operation=operation,
        )

    if isinstance(exception, ParamValidationError):
        return ValidationError(
            f"Request rejected by client-side validation: {exception}",
            secret_id=secret_id,
            operation=operation,
        )

    if isinstance(exception, BotoCoreError):
        return TransportError(
            f"AWS SDK transport error: {exception}",
            secret_id=secret_id,
            operation=operation,
        )

    code = _error_code(exception)

    if code in CONFLICT_ERROR_CODES:
        return ConflictError(
            "A secret with this name already exists. Use a different name.",
            secret_id=secret_id,
            operation=operation,
            error_code=code,
        )
    if code == "ResourceNotFoundException":
        return NotFoundError(
            "Secret not found in AWS Secrets Manager",
            secret_id=secret_id,
            operation=operation,
            error_code=code,
        )
    if code in AUTH_ERROR_CODES:
        return AuthError(
            "Access denied by AWS Secrets Manager. "
            "Verify credentials and secretsmanager IAM permissions.",
            secret_id=secret_id,
            operation=operation,
            error_code=code,
        )
    # Checked before VALIDATION_ERROR_CODES for the scheduled-deletion hint
    if code == "InvalidRequestException":
        return ValidationError(
            "Invalid request (the secret may be scheduled for deletion)",
            secret_id=secret_id,
            operation=operation,
            error_code=code,
        )
    if code in VALIDATION_ERROR_CODES:
        return ValidationError(
            "Request rejected by AWS Secrets Manager validation",
            secret_id=secret_id,
            operation=operation,
            error_code=code,
        )
    if code in TRANSIENT_ERROR_CODES:
        return TransportError(
            "AWS Secrets Manager unavailable or throttling after retries",
            secret_id=secret_id,
            operation=operation,
            error_code=code,
        )
    return SecretStoreError(
        f"AWS API error: {code}",
        secret_id=secret_id,
        operation=operation,
        error_code=code,
    )


class SecretStoreClient:
    """
    Async adapter over a boto3 ``secretsmanager`` client.

    All public methods are coroutines. Each one runs its boto3 call in a worker
    thread (boto3 clients are thread-safe), retries transient failures, and
    raises only ``SecretStoreError`` subclasses.

    Retries:
        ``retry_attempts`` attempts with exponential backoff between
        ``retry_wait_min`` and ``retry_wait_max`` seconds, for transient
        failures only. Auth, validation, not-found and conflict errors are
        never retried. The engine above this adapter doesn't retry at all.

    Example:
        >>> client = SecretStoreClient(boto3.client("secretsmanager", region_name="us-east-1"))
        >>> arn = await client.create_secret("app/db", '{"user": "app"}')
    """

    def __init__(
        self,
        boto_client: Any,
        region_name: str | None = None,
        retry_attempts: int = 3,
        retry_wait_min: float = 1.0,
        retry_wait_max: float = 5.0,
    ) -> None:
        self._client = boto_client
        self._region_name = region_name
        self._retrying = Retrying(
            stop=stop_after_attempt(retry_attempts),
            wait=wait_exponential(multiplier=1, min=retry_wait_min, max=retry_wait_max),
            retry=retry_if_exception(_is_transient_aws_error),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )

    @classmethod
    def from_credentials(
        cls,
        credentials: AwsCredentials,
        settings: Settings | None = None,
    ) -> "SecretStoreClient":
        """
        Build an adapter for the given credential context.

        Raises:
            AuthError: boto3 could not build a client for these credentials
                (unknown region, unusable endpoint, ...)
        """
        settings = settings or get_settings()
        client_kwargs: dict[str, Any] = {
            "region_name": credentials.region,
            "aws_access_key_id": credentials.access_key_id,
            "aws_secret_access_key": credentials.secret_access_key,
        }
        if credentials.endpoint:
            client_kwargs["endpoint_url"] = credentials.endpoint
            client_kwargs["use_ssl"] = False
            logger.info(
                "Initializing secret store client with endpoint override (TLS disabled)",
                extra={"region": credentials.region, "endpoint": credentials.endpoint},
            )
        else:
            logger.info(
                "Initializing secret store client",
                extra={"region": credentials.region},
            )

        try:
            boto_client = boto3.client("secretsmanager", **client_kwargs)
        except (BotoCoreError, ValueError) as e:
            raise AuthError(
                f"Could not initialize AWS Secrets Manager client: {e}",
                operation="CreateClient",
            ) from e

        return cls(
            boto_client,
            region_name=credentials.region,
            retry_attempts=settings.retry_attempts,
            retry_wait_min=settings.retry_wait_min_seconds,
            retry_wait_max=settings.retry_wait_max_seconds,
        )

    @property
    def region_name(self) -> str | None:
        return self._region_name

    async def list_secrets(self, max_results: int = 100, next_token: str | None = None) -> ListPage:
        """
        Fetch one page of secret summaries (no values).

        Args:
            max_results: Page size, 1-100 (the API ceiling)
            next_token: Continuation cursor from the previous page

        Returns:
            ListPage with payload-less Secrets and the next cursor (None on the last page)
        """
        if not 1 <= max_results <= 100:
            raise ValidationError(
                f"max_results must be between 1 and 100, got {max_results}",
                operation="ListSecrets",
            )
        kwargs: dict[str, Any] = {"MaxResults": max_results}
        if next_token:
            kwargs["NextToken"] = next_token

        response = await self._call("ListSecrets", None, self._client.list_secrets, **kwargs)

        secrets = tuple(
            Secret(
                id=entry["ARN"],
                name=entry.get("Name", ""),
                description=entry.get("Description"),
                last_changed=cast(datetime | None, entry.get("LastChangedDate")),
            )
            for entry in response.get("SecretList", [])
            if entry.get("ARN")
        )
        return ListPage(secrets=secrets, next_token=response.get("NextToken") or None)

    async def get_secret_value(self, secret_id: str) -> SecretValue:
        """
        Fetch the current stored string of one secret.

        ``secret_string`` is None for binary secrets (SecretBinary only); the
        engine treats those as having no usable payload.
        """
        response = await self._call(
            "GetSecretValue", secret_id, self._client.get_secret_value, SecretId=secret_id
        )
        return SecretValue(
            secret_id=response.get("ARN", secret_id),
            name=response.get("Name", ""),
            secret_string=response.get("SecretString"),
            created_date=cast(datetime | None, response.get("CreatedDate")),
        )

    async def create_secret(
        self, name: str, secret_string: str, description: str | None = None
    ) -> str:
        """Create a secret and return its store-assigned ARN."""
        kwargs: dict[str, Any] = {"Name": name, "SecretString": secret_string}
        if description is not None:
            kwargs["Description"] = description

        response = await self._call("CreateSecret", name, self._client.create_secret, **kwargs)
        logger.info("Secret created", extra={"secret_name": name})
        return cast(str, response["ARN"])

    async def update_secret(
        self, secret_id: str, secret_string: str, description: str | None = None
    ) -> None:
        """Replace a secret's whole value (and description when given)."""
        kwargs: dict[str, Any] = {"SecretId": secret_id, "SecretString": secret_string}
        if description is not None:
            kwargs["Description"] = description

        await self._call("UpdateSecret", secret_id, self._client.update_secret, **kwargs)
        logger.info("Secret updated", extra={"secret_id": secret_id})

    async def delete_secret(
        self,
        secret_id: str,
        force_immediate: bool = False,
        recovery_window_days: int | None = None,
    ) -> None:
        """
        Delete a secret.

        Args:
            secret_id: ARN or name
            force_immediate: Hard delete without recovery (irreversible)
            recovery_window_days: Retention for soft deletes (7-30); store default if None
        """
        kwargs: dict[str, Any] = {"SecretId": secret_id}
        if force_immediate:
            kwargs["ForceDeleteWithoutRecovery"] = True
        elif recovery_window_days is not None:
            kwargs["RecoveryWindowInDays"] = recovery_window_days

        await self._call("DeleteSecret", secret_id, self._client.delete_secret, **kwargs)
        logger.info(
            "Secret deleted",
            extra={"secret_id": secret_id, "force_immediate": force_immediate},
        )

    def close(self) -> None:
        """Close the underlying HTTP connection pool."""
        close = getattr(self._client, "close", None)
        if callable(close):
            close()

    async def _call(
        self,
        operation: str,
        secret_id: str | None,
        method: Callable[..., dict[str, Any]],
        **kwargs: Any,
    ) -> dict[str, Any]:
        try:
            return await asyncio.to_thread(self._call_with_retry, method, **kwargs)
        except (ClientError, BotoCoreError) as e:
            error = map_aws_error(e, operation, secret_id)
            logger.debug(
                "Secret store call failed",
                extra={
                    "operation": operation,
                    "secret_id": secret_id,
                    "error_type": type(error).__name__,
                    "error_code": error.error_code,
                },
            )
            raise error from e

    def _call_with_retry(self, method: Callable[..., dict[str, Any]], **kwargs: Any) -> dict[str, Any]:
        """
        Run one boto3 call with retry logic (worker thread).

        Transient exceptions are retried; permanent ones propagate immediately
        to ``_call`` for mapping.
        """
        return cast(dict[str, Any], self._retrying.copy()(method, **kwargs))
