"""
Credential Context and Credential Providers.

The engine never parses credential files itself. It asks a provider for the
active endpoint/region/access-key triple right before each operation, so a
presentation layer can swap credentials between calls (e.g. after the operator
edits them) without rebuilding the session.

Providers:
    - StaticCredentialProvider: fixed credentials (tests, embedding apps)
    - SettingsCredentialProvider: reads AWS_* variables through pydantic-settings

Security:
    - ``AwsCredentials.secret_access_key`` is excluded from repr
    - Providers return None (not an exception) when nothing is configured; the
      session turns that into an AuthError
"""

import logging
from dataclasses import dataclass, field
from typing import Protocol

from config.settings import Settings, get_settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AwsCredentials:
    """
    Active credential context for the secret store.

    Attributes:
        access_key_id: AWS access key ID
        secret_access_key: AWS secret access key (never logged)
        region: AWS region (e.g. "ap-northeast-2")
        endpoint: Optional endpoint override. When set, every call goes to this
            host and TLS is disabled for it (local emulators such as LocalStack).
    """

    access_key_id: str
    secret_access_key: str = field(repr=False)
    region: str
    endpoint: str | None = None

    @property
    def uses_custom_endpoint(self) -> bool:
        return bool(self.endpoint)


class CredentialProvider(Protocol):
    """Collaborator interface supplying the current credentials (or None)."""

    def get_credentials(self) -> AwsCredentials | None: ...


class StaticCredentialProvider:
    """Provider that always returns the credentials it was built with."""

    def __init__(self, credentials: AwsCredentials | None) -> None:
        self._credentials = credentials

    def get_credentials(self) -> AwsCredentials | None:
        return self._credentials


class SettingsCredentialProvider:
    """
    Provider backed by ``config.settings.Settings``.

    Reads AWS_ACCESS_KEY_ID, AWS_SECRET_ACCESS_KEY, AWS_REGION and
    AWS_ENDPOINT_URL from the environment or .env file. Returns None when
    either key is empty.

    Example:
        >>> provider = SettingsCredentialProvider()
        >>> creds = provider.get_credentials()
        >>> creds.region if creds else None
        'ap-northeast-2'
    """

    def __init__(self, settings: Settings | None = None) -> None:
        self._settings = settings

    def get_credentials(self) -> AwsCredentials | None:
        settings = self._settings or get_settings()
        access_key_id = settings.aws_access_key_id.get_secret_value().strip()
        secret_access_key = settings.aws_secret_access_key.get_secret_value().strip()

        if not access_key_id or not secret_access_key:
            logger.info(
                "No AWS credentials configured",
                extra={"region": settings.aws_region},
            )
            return None

        return AwsCredentials(
            access_key_id=access_key_id,
            secret_access_key=secret_access_key,
            region=settings.aws_region,
            endpoint=settings.aws_endpoint_url or None,
        )
