"""
Test Suite for engine settings (config/settings.py).
"""

import pytest
from pydantic import ValidationError

from config.settings import Settings, get_settings


class TestSettings:
    """Test suite for Settings defaults, environment loading and validation."""

    @pytest.mark.unit()
    def test_defaults(self) -> None:
        settings = Settings(_env_file=None)

        assert settings.aws_region == "ap-northeast-2"
        assert settings.aws_endpoint_url is None
        assert settings.aws_access_key_id.get_secret_value() == ""
        assert settings.list_page_size == 100
        assert settings.fetch_concurrency is None
        assert settings.batch_concurrency == 8
        assert settings.recovery_window_days is None
        assert settings.retry_attempts == 3

    @pytest.mark.unit()
    def test_environment_overrides(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("AWS_REGION", "us-east-1")
        monkeypatch.setenv("AWS_ENDPOINT_URL", "http://localhost:4566")
        monkeypatch.setenv("BATCH_CONCURRENCY", "16")
        monkeypatch.setenv("FETCH_CONCURRENCY", "20")

        settings = Settings(_env_file=None)

        assert settings.aws_region == "us-east-1"
        assert settings.aws_endpoint_url == "http://localhost:4566"
        assert settings.batch_concurrency == 16
        assert settings.fetch_concurrency == 20

    @pytest.mark.unit()
    def test_secret_key_hidden_in_repr(self) -> None:
        settings = Settings(_env_file=None, aws_secret_access_key="wJalrXUtnFEMI")

        assert "wJalrXUtnFEMI" not in repr(settings)

    @pytest.mark.unit()
    @pytest.mark.parametrize(
        "overrides",
        [
            {"list_page_size": 0},
            {"list_page_size": 101},
            {"fetch_concurrency": 0},
            {"batch_concurrency": 0},
            {"recovery_window_days": 3},
            {"recovery_window_days": 31},
            {"retry_attempts": 0},
            {"retry_wait_min_seconds": 5.0, "retry_wait_max_seconds": 1.0},
        ],
    )
    def test_invalid_values_rejected(self, overrides: dict[str, object]) -> None:
        with pytest.raises(ValidationError):
            Settings(_env_file=None, **overrides)

    @pytest.mark.unit()
    def test_get_settings_cached(self) -> None:
        assert get_settings() is get_settings()
