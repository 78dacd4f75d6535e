"""
Data model for the secret catalogue.

Defines the immutable records the engine passes around:

    Secret               - one remote secret plus its decoded payload (if any)
    SecretCatalogue      - ordered, id-keyed snapshot of every Secret
    KeyValueEntry        - one (secret, key, value) triple from a flattened payload
    BatchMutationRequest - one (secret_id, key, new_value) change
    SecretFailure / DeleteResult / BatchResult - aggregate mutation outcomes

Everything here is frozen. The catalogue is never mutated in place: helpers
such as ``with_secret`` return a new catalogue and the session swaps its
reference (copy-on-write), so readers never observe a half-updated snapshot.

Payload contract:
    A payload is a JSON object whose values are all strings. ``parse_payload``
    enforces it; anything else (invalid JSON, arrays, nested objects, numbers)
    is a malformed secret, which is NOT the same as an empty secret ``{}``.
"""

import json
from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum

from secretdesk.secrets.exceptions import PayloadParseError, SecretStoreError


class PayloadState(str, Enum):
    """Lifecycle of a secret's payload inside the catalogue."""

    NOT_LOADED = "not_loaded"  # listed, value not fetched yet
    LOADED = "loaded"  # parsed flat string map (possibly empty)
    MALFORMED = "malformed"  # stored string is not a flat string map
    UNAVAILABLE = "unavailable"  # fetch failed or store returned no string


def parse_payload(secret_string: str | None, secret_id: str | None = None) -> dict[str, str]:
    """
    Decode a stored secret string into a flat ``dict[str, str]``.

    Args:
        secret_string: Raw SecretString from the store
        secret_id: Used for error context only

    Returns:
        The decoded payload

    Raises:
        PayloadParseError: Missing string, invalid JSON, non-object JSON, or
            any value that is not a string (nested objects, numbers, null)

    Example:
        >>> parse_payload('{"user": "app", "password": "x"}')
        {'user': 'app', 'password': 'x'}
        >>> parse_payload("{}")
        {}
    """
    if secret_string is None:
        raise PayloadParseError("no secret string stored", secret_id)
    try:
        decoded = json.loads(secret_string)
    except json.JSONDecodeError as e:
        raise PayloadParseError(f"invalid JSON at position {e.pos}", secret_id) from e

    if not isinstance(decoded, dict):
        raise PayloadParseError(f"expected a JSON object, got {type(decoded).__name__}", secret_id)

    for key, value in decoded.items():
        if not isinstance(value, str):
            raise PayloadParseError(
                f"value for key '{key}' is {type(value).__name__}, expected string", secret_id
            )
    return decoded


def encode_payload(payload: Mapping[str, str]) -> str:
    """Encode a payload for storage (compact JSON, key order preserved)."""
    return json.dumps(dict(payload), ensure_ascii=False)


@dataclass(frozen=True)
class Secret:
    """
    A remote secret record, optionally carrying its decoded payload.

    Attributes:
        id: Store-assigned identifier (ARN); stable and unique
        name: Unique, immutable name
        description: Free text, mutable
        last_changed: Store timestamp of the last mutation (UTC), if known
        payload: Decoded flat string map when ``payload_state`` is LOADED
        payload_state: See ``PayloadState``
        secret_string: Raw stored string when one was retrieved

    ``payload`` and ``secret_string`` are excluded from repr so a Secret can
    be logged or printed in a traceback without exposing values.
    """

    id: str
    name: str
    description: str | None = None
    last_changed: datetime | None = None
    payload: dict[str, str] | None = field(default=None, repr=False)
    payload_state: PayloadState = PayloadState.NOT_LOADED
    secret_string: str | None = field(default=None, repr=False)

    @property
    def has_payload(self) -> bool:
        return self.payload_state is PayloadState.LOADED

    @property
    def is_malformed(self) -> bool:
        """True when a value was expected but no usable payload exists."""
        return self.payload_state in (PayloadState.MALFORMED, PayloadState.UNAVAILABLE)

    @property
    def is_empty(self) -> bool:
        """True for a well-formed secret with no keys (``{}``)."""
        return self.has_payload and not self.payload

    def with_secret_string(
        self, secret_string: str | None, last_changed: datetime | None = None
    ) -> "Secret":
        """Return a copy enriched with a freshly fetched value."""
        if secret_string is None:
            return self.unavailable(last_changed)
        try:
            payload = parse_payload(secret_string, self.id)
        except PayloadParseError:
            return replace(
                self,
                payload=None,
                payload_state=PayloadState.MALFORMED,
                secret_string=secret_string,
                last_changed=last_changed or self.last_changed,
            )
        return replace(
            self,
            payload=payload,
            payload_state=PayloadState.LOADED,
            secret_string=secret_string,
            last_changed=last_changed or self.last_changed,
        )

    def unavailable(self, last_changed: datetime | None = None) -> "Secret":
        """Return a copy flagged as having no retrievable payload."""
        return replace(
            self,
            payload=None,
            payload_state=PayloadState.UNAVAILABLE,
            secret_string=None,
            last_changed=last_changed or self.last_changed,
        )

    def without_timestamp(self) -> "Secret":
        return replace(self, last_changed=None)


@dataclass(frozen=True)
class SecretValue:
    """Result of a GetValue call: the current stored string and its timestamp."""

    secret_id: str
    name: str
    secret_string: str | None = field(repr=False)
    created_date: datetime | None = None


@dataclass(frozen=True)
class ListPage:
    """One page of a List call: payload-less summaries plus the next cursor."""

    secrets: tuple[Secret, ...]
    next_token: str | None = None


@dataclass(frozen=True)
class KeyValueEntry:
    """One key of one secret's payload, as seen by search and batch planning."""

    secret_id: str
    secret_name: str
    key: str
    value: str = field(repr=False)


@dataclass(frozen=True)
class BatchMutationRequest:
    """Set ``key`` to ``new_value`` in secret ``secret_id`` (adds the key if absent)."""

    secret_id: str
    key: str
    new_value: str = field(repr=False)


class SecretCatalogue:
    """
    Ordered, immutable snapshot of every secret in the store.

    Keyed by ``Secret.id``: constructing a catalogue with two entries sharing
    an id raises ``ValueError``. Name uniqueness is the store's job and is not
    re-validated here.

    Example:
        >>> catalogue = SecretCatalogue([Secret(id="arn:1", name="db")])
        >>> catalogue.get("arn:1").name
        'db'
        >>> len(catalogue.without(["arn:1"]))
        0
    """

    def __init__(self, secrets: Iterable[Secret] = ()) -> None:
        self._secrets: tuple[Secret, ...] = tuple(secrets)
        self._by_id: dict[str, Secret] = {}
        for secret in self._secrets:
            if secret.id in self._by_id:
                raise ValueError(f"Duplicate secret id in catalogue: {secret.id}")
            self._by_id[secret.id] = secret

    def __len__(self) -> int:
        return len(self._secrets)

    def __iter__(self) -> Iterator[Secret]:
        return iter(self._secrets)

    def __contains__(self, secret_id: object) -> bool:
        return secret_id in self._by_id

    def __getitem__(self, secret_id: str) -> Secret:
        return self._by_id[secret_id]

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, SecretCatalogue):
            return NotImplemented
        return self._secrets == other._secrets

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        return f"SecretCatalogue(size={len(self._secrets)})"

    @property
    def secrets(self) -> tuple[Secret, ...]:
        return self._secrets

    @property
    def ids(self) -> tuple[str, ...]:
        return tuple(secret.id for secret in self._secrets)

    def get(self, secret_id: str) -> Secret | None:
        return self._by_id.get(secret_id)

    def find_by_name(self, name: str) -> Secret | None:
        for secret in self._secrets:
            if secret.name == name:
                return secret
        return None

    def with_secret(self, secret: Secret) -> "SecretCatalogue":
        """Return a new catalogue with ``secret`` replaced in place, or appended if new."""
        if secret.id in self._by_id:
            return SecretCatalogue(secret if s.id == secret.id else s for s in self._secrets)
        return SecretCatalogue((*self._secrets, secret))

    def without(self, secret_ids: Iterable[str]) -> "SecretCatalogue":
        removed = set(secret_ids)
        return SecretCatalogue(s for s in self._secrets if s.id not in removed)

    def matches(self, other: "SecretCatalogue") -> bool:
        """Equality up to timestamp fields (two loads of an unchanged store match)."""
        if len(self) != len(other):
            return False
        return all(
            mine.without_timestamp() == theirs.without_timestamp()
            for mine, theirs in zip(self._secrets, other._secrets, strict=True)
        )


class MutationStage(str, Enum):
    """Step of a per-secret mutation that failed."""

    FETCH = "fetch"
    PARSE = "parse"
    WRITE = "write"
    DELETE = "delete"


@dataclass(frozen=True)
class SecretFailure:
    """One secret's failure inside a bulk operation."""

    secret_id: str
    stage: MutationStage
    error: Exception


@dataclass(frozen=True)
class DeleteResult:
    """
    Outcome of a bulk delete.

    ``catalogue`` is the resynchronized snapshot taken after all deletes
    finished; ``resync_error`` is set instead when that reload failed.
    """

    succeeded: tuple[str, ...]
    failures: tuple[SecretFailure, ...] = ()
    catalogue: SecretCatalogue | None = None
    resync_error: SecretStoreError | None = None

    @property
    def failed_ids(self) -> tuple[str, ...]:
        return tuple(failure.secret_id for failure in self.failures)


@dataclass(frozen=True)
class BatchResult:
    """
    Aggregate outcome of a batch mutation.

    Attributes:
        succeeded: Secrets whose merged payload was written
        failures: Secrets that failed, with the stage that failed
        skipped: Secrets never started (stop request or AuthError)
        catalogue: Snapshot reloaded once after the batch
        resync_error: Set instead of ``catalogue`` when that reload failed
    """

    succeeded: tuple[str, ...]
    failures: tuple[SecretFailure, ...] = ()
    skipped: tuple[str, ...] = ()
    catalogue: SecretCatalogue | None = None
    resync_error: SecretStoreError | None = None

    @property
    def succeeded_count(self) -> int:
        return len(self.succeeded)

    @property
    def failed_count(self) -> int:
        return len(self.failures)

    @property
    def failed_ids(self) -> tuple[str, ...]:
        return tuple(failure.secret_id for failure in self.failures)

    @property
    def is_complete(self) -> bool:
        """True when every targeted secret was written."""
        return not self.failures and not self.skipped
