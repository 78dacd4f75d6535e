"""
Engine settings loaded from environment variables.

Uses Pydantic Settings for type-safe configuration with validation.
All settings can be overridden via environment variables or a .env file.
The AWS fields use the standard AWS variable names, so an operator's existing
shell environment (AWS_ACCESS_KEY_ID, AWS_SECRET_ACCESS_KEY, ...) is picked up
without extra configuration.
"""

from functools import lru_cache

from pydantic import Field, SecretStr, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Engine configuration.

    All settings are loaded from environment variables or .env file.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # AWS credentials (Credential Context)
    aws_access_key_id: SecretStr = Field(
        default=SecretStr(""),
        description="AWS access key ID (empty means no credentials configured)",
    )
    aws_secret_access_key: SecretStr = Field(
        default=SecretStr(""),
        description="AWS secret access key",
    )
    aws_region: str = Field(
        default="ap-northeast-2",
        description="AWS region of the secret store",
    )
    aws_endpoint_url: str | None = Field(
        default=None,
        description="Endpoint override (e.g. local emulator); disables TLS for that host",
    )

    # Catalogue loading
    list_page_size: int = Field(
        default=100,
        ge=1,
        le=100,  # ListSecrets MaxResults ceiling
        description="Secrets requested per ListSecrets page",
    )
    fetch_concurrency: int | None = Field(
        default=None,
        ge=1,
        description="Cap on concurrent GetSecretValue calls during load (None = unbounded)",
    )

    # Mutations
    batch_concurrency: int = Field(
        default=8,
        ge=1,
        le=64,
        description="Secrets processed concurrently by a batch mutation",
    )
    recovery_window_days: int | None = Field(
        default=None,
        ge=7,
        le=30,
        description="Recovery window for soft deletes (None = store default)",
    )

    # Client adapter retry policy (transient errors only)
    retry_attempts: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Attempts per remote call for throttling/transient failures",
    )
    retry_wait_min_seconds: float = Field(
        default=1.0,
        ge=0.0,
        description="Minimum exponential backoff between attempts",
    )
    retry_wait_max_seconds: float = Field(
        default=5.0,
        ge=0.0,
        description="Maximum exponential backoff between attempts",
    )

    # Logging Configuration
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )
    service_name: str = Field(
        default="secretdesk",
        description="Service name reported in structured logs",
    )

    @model_validator(mode="after")
    def _check_retry_window(self) -> "Settings":
        if self.retry_wait_max_seconds < self.retry_wait_min_seconds:
            raise ValueError("retry_wait_max_seconds must be >= retry_wait_min_seconds")
        return self


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses lru_cache to ensure settings are loaded only once.

    Example:
        >>> settings = get_settings()
        >>> settings.list_page_size
        100
    """
    return Settings()
