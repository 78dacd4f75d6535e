"""
Batch planning: turn operator intent into batch mutation requests.

Two intents are supported:

    Value replacement - "replace old value X with new value Y wherever it
        currently appears", optionally restricted to selected secrets. Matching
        is on the exact, whole value.
    Key addition - "add these key/value pairs to every selected secret",
        with a per-secret preview of which keys already exist and would be
        overwritten.

Both produce previews computed from the catalogue snapshot, plus the
``BatchMutationRequest`` list to hand to the mutation engine. The engine
re-reads every secret before writing, so a stale preview can never write
stale values for keys it didn't target.

Key/value pairs can be typed in as ``KEY=VALUE`` lines or as a JSON object.
"""

import json
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field

from secretdesk.secrets.exceptions import ValidationError
from secretdesk.secrets.models import BatchMutationRequest, SecretCatalogue
from secretdesk.secrets.search import flatten_entries


@dataclass(frozen=True)
class ValueReplacement:
    """Preview row: one entry whose value will change."""

    secret_id: str
    secret_name: str
    key: str
    old_value: str = field(repr=False)
    new_value: str = field(repr=False)

    def to_request(self) -> BatchMutationRequest:
        return BatchMutationRequest(secret_id=self.secret_id, key=self.key, new_value=self.new_value)


@dataclass(frozen=True)
class KeyAdditionPreview:
    """Preview for one secret of a key addition."""

    secret_id: str
    secret_name: str
    existing: dict[str, str] = field(repr=False)
    additions: dict[str, str] = field(repr=False)
    duplicate_keys: tuple[str, ...] = ()

    @property
    def overwrites(self) -> bool:
        return bool(self.duplicate_keys)

    def to_requests(self) -> list[BatchMutationRequest]:
        return [
            BatchMutationRequest(secret_id=self.secret_id, key=key, new_value=value)
            for key, value in self.additions.items()
        ]


def to_requests(previews: Iterable[ValueReplacement | KeyAdditionPreview]) -> list[BatchMutationRequest]:
    """Flatten previews into the request list ``batch_mutate`` consumes."""
    requests: list[BatchMutationRequest] = []
    for preview in previews:
        if isinstance(preview, ValueReplacement):
            requests.append(preview.to_request())
        else:
            requests.extend(preview.to_requests())
    return requests


def plan_value_replacement(
    catalogue: SecretCatalogue,
    replacements: Mapping[str, str],
    secret_ids: Iterable[str] | None = None,
) -> list[ValueReplacement]:
    """
    Find every entry whose value equals one of ``replacements``' keys.

    Args:
        catalogue: Snapshot to plan against
        replacements: old value -> new value
        secret_ids: Restrict to these secrets (None = whole catalogue)

    Raises:
        ValidationError: An old or new value is blank

    Example:
        >>> rows = plan_value_replacement(catalogue, {"db-old.internal": "db-new.internal"})
        >>> [(r.secret_name, r.key) for r in rows]
        [('app/api', 'DB_HOST'), ('app/worker', 'DB_HOST')]
    """
    for old_value, new_value in replacements.items():
        if not old_value.strip() or not new_value.strip():
            raise ValidationError("Replacement old and new values must not be blank")

    selected = set(secret_ids) if secret_ids is not None else None
    secrets = [s for s in catalogue if selected is None or s.id in selected]

    rows: list[ValueReplacement] = []
    for entry in flatten_entries(secrets):
        if entry.value in replacements:
            rows.append(
                ValueReplacement(
                    secret_id=entry.secret_id,
                    secret_name=entry.secret_name,
                    key=entry.key,
                    old_value=entry.value,
                    new_value=replacements[entry.value],
                )
            )
    return rows


def plan_key_addition(
    catalogue: SecretCatalogue,
    secret_ids: Sequence[str],
    pairs: Sequence[tuple[str, str]],
) -> list[KeyAdditionPreview]:
    """
    Preview adding ``pairs`` to each selected secret.

    Raises:
        ValidationError: Invalid pairs (see ``validate_pairs``), an unknown
            secret id, or a selected secret without a usable payload
    """
    additions = validate_pairs(pairs)

    previews: list[KeyAdditionPreview] = []
    for secret_id in dict.fromkeys(secret_ids):
        secret = catalogue.get(secret_id)
        if secret is None:
            raise ValidationError("Selected secret is not in the catalogue", secret_id=secret_id)
        if not secret.has_payload or secret.payload is None:
            raise ValidationError(
                "Selected secret has no readable key/value payload", secret_id=secret_id
            )
        previews.append(
            KeyAdditionPreview(
                secret_id=secret.id,
                secret_name=secret.name,
                existing=dict(secret.payload),
                additions=dict(additions),
                duplicate_keys=tuple(key for key in additions if key in secret.payload),
            )
        )
    return previews


def validate_pairs(pairs: Sequence[tuple[str, str]]) -> dict[str, str]:
    """
    Validate key/value input.

    Keys are stripped before the duplicate check, so ``" a"`` and ``"a"``
    are the same key.

    Raises:
        ValidationError: No pairs, a blank key or value, or a repeated key
    """
    if not pairs:
        raise ValidationError("At least one key/value pair is required")

    result: dict[str, str] = {}
    for raw_key, value in pairs:
        key = raw_key.strip()
        if not key or not value.strip():
            raise ValidationError("Every key and value must be filled in")
        if key in result:
            raise ValidationError(f"Key '{key}' is given more than once")
        result[key] = value
    return result


def parse_env_pairs(text: str) -> list[tuple[str, str]]:
    """
    Parse ``KEY=VALUE`` lines. Blank lines and ``#`` comments are skipped.

    Only the first ``=`` separates key from value; both sides are stripped.

    Raises:
        ValidationError: Non-blank input yielded no pairs
    """
    pairs: list[tuple[str, str]] = []
    for line in text.splitlines():
        stripped = line.strip()
        if not stripped or stripped.startswith("#"):
            continue
        key, sep, value = stripped.partition("=")
        if not sep or not key.strip():
            continue
        pairs.append((key.strip(), value.strip()))

    if not pairs and text.strip():
        raise ValidationError("Input is not in KEY=VALUE format")
    return pairs


def parse_json_pairs(text: str) -> list[tuple[str, str]]:
    """
    Parse a JSON object into pairs; scalar values are converted to strings.

    Raises:
        ValidationError: Invalid JSON, a non-object document, or nested values
    """
    try:
        decoded = json.loads(text or "{}")
    except json.JSONDecodeError as e:
        raise ValidationError(f"Input is not valid JSON: {e.msg}") from e

    if not isinstance(decoded, dict):
        raise ValidationError("Input must be a JSON object")

    pairs: list[tuple[str, str]] = []
    for key, value in decoded.items():
        if isinstance(value, dict | list):
            raise ValidationError(f"Value for key '{key}' must not be nested")
        pairs.append((key, value if isinstance(value, str) else json.dumps(value)))
    return pairs
