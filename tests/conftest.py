"""
Root conftest for tests.

Ensures:
1. Cached settings never leak between tests (get_settings is lru_cached)
2. No operation ID leaks between tests through the context variable
3. AWS variables from the developer's shell don't reach Settings()
"""

from collections.abc import Iterator

import pytest

from config.settings import get_settings
from secretdesk.common.logging.context import clear_operation_id

_AWS_ENV_VARS = (
    "AWS_ACCESS_KEY_ID",
    "AWS_SECRET_ACCESS_KEY",
    "AWS_REGION",
    "AWS_ENDPOINT_URL",
    "AWS_SESSION_TOKEN",
)


@pytest.fixture(autouse=True)
def _isolate_settings(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    """Clear AWS env vars and the settings cache around every test."""
    for name in _AWS_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    get_settings.cache_clear()
    clear_operation_id()
    yield
    get_settings.cache_clear()
    clear_operation_id()
