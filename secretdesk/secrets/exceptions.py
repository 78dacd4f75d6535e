"""
Secret Engine Exception Hierarchy.

This module defines the errors raised by the secret engine. Remote error
codes from the secret store are mapped onto these kinds exactly once, in the
client adapter (``secretdesk.secrets.client``); everything above the adapter
only ever sees these types.

Exception hierarchy:
    SecretStoreError (base)
    ├── ConflictError - Secret name already exists (Create)
    ├── ValidationError - Malformed request (empty name, bad payload shape)
    ├── NotFoundError - Operation referenced a secret id that doesn't exist
    ├── AuthError - Missing/invalid credentials, permission denied (never retried)
    ├── TransportError - Network/timeout/throttling after the retry budget
    └── OperationStoppedError - A stop request aborted a load

    PayloadParseError is separate: it is a *data* condition describing a stored
    string that is not a flat JSON object of string values. The engine catches
    it and flags the secret instead of letting it abort a load.

All exceptions carry structured context (secret id, operation) and NEVER the
secret value.
"""


class SecretStoreError(Exception):
    """
    Base exception for all secret engine errors.

    Attributes:
        message: Human-readable error message (MUST NOT include secret values)
        secret_id: ARN or name the failing call referenced, if any
        operation: Remote operation name ("ListSecrets", "UpdateSecret", ...)
        error_code: Raw remote error code when the error came from the store

    Example:
        >>> try:
        ...     await session.update(secret_id, payload)
        ... except SecretStoreError as e:
        ...     logger.error("Update failed", extra={"secret_id": e.secret_id})
    """

    def __init__(
        self,
        message: str,
        secret_id: str | None = None,
        operation: str | None = None,
        error_code: str | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.secret_id = secret_id
        self.operation = operation
        self.error_code = error_code

    def __str__(self) -> str:
        """
        Format error message with context (secret id + operation).

        Example:
            >>> str(NotFoundError("Secret not found", "arn:...:db", "GetSecretValue"))
            'Secret not found (secret: arn:...:db, operation: GetSecretValue)'
        """
        context_parts = []
        if self.secret_id:
            context_parts.append(f"secret: {self.secret_id}")
        if self.operation:
            context_parts.append(f"operation: {self.operation}")
        if self.error_code:
            context_parts.append(f"code: {self.error_code}")

        if context_parts:
            context = ", ".join(context_parts)
            return f"{self.message} ({context})"
        return self.message


class ConflictError(SecretStoreError):
    """
    Raised when Create targets a name that already exists in the store.

    Resolution:
    - Pick another name, or update the existing secret instead
    - A secret scheduled for deletion still reserves its name until the
      recovery window ends (restore it or force-delete it first)
    """


class ValidationError(SecretStoreError):
    """
    Raised when a request is malformed.

    Raised locally before any remote call (empty name, payload that is not a
    flat string map, bad batch input) and mapped from the store's
    InvalidParameter/InvalidRequest/Validation error codes.
    """


class NotFoundError(SecretStoreError):
    """
    Raised when an operation references a secret id the store doesn't know.

    Common causes:
    - The secret was deleted by another actor since the last load
    - The catalogue is stale (reload before retrying)
    """


class AuthError(SecretStoreError):
    """
    Raised when credentials are missing, invalid, expired, or lack permission.

    Fatal for the whole operation and never retried automatically. A batch
    mutation that hits an AuthError stops starting further secrets.

    Resolution:
    - Verify credentials: `aws sts get-caller-identity`
    - Check the IAM policy grants secretsmanager:* on the targeted secrets
    """


class TransportError(SecretStoreError):
    """
    Raised on network failures, timeouts, or throttling that outlived the
    client adapter's retry budget.

    Safe to retry at the caller's discretion; the engine itself doesn't.
    """


class OperationStoppedError(SecretStoreError):
    """Raised when a stop request aborted a catalogue load before it finished listing."""


class PayloadParseError(ValueError):
    """
    A stored secret string is not a flat JSON object of string values.

    This is a data condition, not a remote failure. ``parse_payload`` raises
    it; the loader turns it into ``PayloadState.MALFORMED`` and the batch
    engine into a PARSE-stage failure for that one secret.

    Attributes:
        secret_id: Secret whose payload failed to parse (if known)
        reason: Why the payload was rejected (never contains the payload)
    """

    def __init__(self, reason: str, secret_id: str | None = None) -> None:
        self.reason = reason
        self.secret_id = secret_id
        message = f"Malformed secret payload: {reason}"
        if secret_id:
            message += f" (secret: {secret_id})"
        super().__init__(message)
