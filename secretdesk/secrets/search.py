"""
Search/Filter Index over a secret catalogue.

Pure, synchronous functions. Every query is recomputed from the catalogue it
is given: there is no index structure and no cached result to invalidate.
Catalogues of hundreds to low thousands of secrets make a linear scan cheap.

    filter_secrets   - secrets matching ALL terms on name/description
    flatten_entries  - every (secret, key, value) of every loaded payload
    search_entries   - entries whose key or value contains a substring
    malformed_secrets - secrets without a usable payload

Matching is case-insensitive substring matching throughout. Secrets whose
payload is malformed or unavailable contribute no entries (fail-open).
"""

from collections.abc import Iterable, Sequence
from enum import Enum

from secretdesk.secrets.models import KeyValueEntry, Secret, SecretCatalogue


class SearchField(str, Enum):
    """Secret fields a term filter matches against."""

    NAME = "name"
    DESCRIPTION = "description"
    NAME_AND_DESCRIPTION = "name_and_description"


class EntryMatch(str, Enum):
    """Which side of a key/value entry a search text matches."""

    KEY = "key"
    VALUE = "value"


def _normalize_terms(terms: Iterable[str]) -> list[str]:
    return [term.strip().lower() for term in terms if term and term.strip()]


def _haystack(secret: Secret, field: SearchField) -> str:
    if field is SearchField.NAME:
        return secret.name.lower()
    if field is SearchField.DESCRIPTION:
        return (secret.description or "").lower()
    # Newline keeps a term from matching across the name/description boundary
    return f"{secret.name}\n{secret.description or ''}".lower()


def matches_all_terms(secret: Secret, terms: Sequence[str], field: SearchField = SearchField.NAME) -> bool:
    """True when every (already normalized) term occurs in the secret's field."""
    haystack = _haystack(secret, field)
    return all(term in haystack for term in terms)


def filter_secrets(
    catalogue: SecretCatalogue,
    terms: Iterable[str],
    field: SearchField = SearchField.NAME,
) -> list[Secret]:
    """
    Filter secrets by terms with AND semantics.

    Args:
        catalogue: Snapshot to filter
        terms: Search terms; blank terms are ignored, no terms returns everything
        field: Field(s) to match against

    Returns:
        Matching secrets in catalogue order

    Example:
        >>> [s.name for s in filter_secrets(catalogue, ["foo", "BAR"])]
        ['foo-bar-db', 'bar/foo']
    """
    normalized = _normalize_terms(terms)
    if not normalized:
        return list(catalogue)
    return [secret for secret in catalogue if matches_all_terms(secret, normalized, field)]


def flatten_entries(catalogue: Iterable[Secret]) -> list[KeyValueEntry]:
    """Flatten every LOADED payload into key/value entries, in catalogue then key order."""
    entries: list[KeyValueEntry] = []
    for secret in catalogue:
        if not secret.has_payload or secret.payload is None:
            continue
        entries.extend(
            KeyValueEntry(secret_id=secret.id, secret_name=secret.name, key=key, value=value)
            for key, value in secret.payload.items()
        )
    return entries


def search_entries(
    catalogue: SecretCatalogue,
    text: str = "",
    mode: EntryMatch = EntryMatch.KEY,
    name_terms: Iterable[str] = (),
) -> list[KeyValueEntry]:
    """
    Search key/value entries.

    Args:
        catalogue: Snapshot to search
        text: Substring to look for; empty returns every entry of the
            secrets that pass ``name_terms``
        mode: Match ``text`` against the key name or the value
        name_terms: Optional AND prefilter on secret names

    Returns:
        Matching entries; malformed/unavailable secrets contribute none
    """
    normalized_terms = _normalize_terms(name_terms)
    secrets: Iterable[Secret] = catalogue
    if normalized_terms:
        secrets = [s for s in catalogue if matches_all_terms(s, normalized_terms, SearchField.NAME)]

    entries = flatten_entries(secrets)
    needle = text.strip().lower()
    if not needle:
        return entries

    if mode is EntryMatch.KEY:
        return [entry for entry in entries if needle in entry.key.lower()]
    return [entry for entry in entries if needle in entry.value.lower()]


def malformed_secrets(catalogue: SecretCatalogue) -> list[Secret]:
    """Secrets whose payload is malformed or could not be fetched."""
    return [secret for secret in catalogue if secret.is_malformed]
