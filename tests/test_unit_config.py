"""
Unit tests for library settings.

Tests cover:
- Defaults
- Environment overrides with the ACCOUNT_GUARD_ prefix
- Rejected values
"""

import os

import pytest
from pydantic import ValidationError

from account_guard.core.config import AppEnvironment, Settings
from account_guard.domain.pubkey import TOKEN_2022_PROGRAM_ID, TOKEN_PROGRAM_ID


@pytest.fixture
def clean_env(monkeypatch):
    """Remove ACCOUNT_GUARD_ variables so defaults apply."""
    for key in list(os.environ):
        if key.startswith("ACCOUNT_GUARD_"):
            monkeypatch.delenv(key)
    return monkeypatch


class TestDefaults:
    """Tests for default settings."""

    def test_defaults(self, clean_env):
        """Test the documented defaults."""
        settings = Settings()
        assert settings.app_env == AppEnvironment.LOCAL
        assert settings.app_log_level == "INFO"
        assert settings.metrics_enabled is True
        assert settings.otel_enabled is False
        assert settings.rent_lamports_per_byte_year == 3480
        assert settings.rent_exemption_threshold == 2.0
        assert settings.rent_account_storage_overhead == 128
        assert settings.default_token_program_key == TOKEN_PROGRAM_ID


class TestEnvironmentOverrides:
    """Tests for ACCOUNT_GUARD_ environment variables."""

    def test_overrides(self, clean_env):
        """Test that prefixed variables override defaults."""
        clean_env.setenv("ACCOUNT_GUARD_APP_ENV", "PROD")
        clean_env.setenv("ACCOUNT_GUARD_APP_LOG_LEVEL", " debug ")
        clean_env.setenv("ACCOUNT_GUARD_EXPRESSION_MAX_DEPTH", "16")
        clean_env.setenv("ACCOUNT_GUARD_METRICS_ENABLED", "false")
        clean_env.setenv("ACCOUNT_GUARD_DEFAULT_TOKEN_PROGRAM", str(TOKEN_2022_PROGRAM_ID))
        settings = Settings()
        assert settings.app_env == AppEnvironment.PROD
        assert settings.app_log_level == "DEBUG"
        assert settings.expression_max_depth == 16
        assert settings.metrics_enabled is False
        assert settings.default_token_program_key == TOKEN_2022_PROGRAM_ID

    def test_unprefixed_variables_ignored(self, clean_env):
        """Test that only the prefix is read."""
        clean_env.setenv("APP_ENV", "prod")
        assert Settings().app_env == AppEnvironment.LOCAL


class TestRejectedValues:
    """Tests for settings validation."""

    @pytest.mark.parametrize(
        "name,value",
        [
            ("ACCOUNT_GUARD_APP_ENV", "staging"),
            ("ACCOUNT_GUARD_APP_LOG_LEVEL", "VERBOSE"),
            ("ACCOUNT_GUARD_EXPRESSION_MAX_LENGTH", "0"),
            ("ACCOUNT_GUARD_RENT_LAMPORTS_PER_BYTE_YEAR", "-1"),
            ("ACCOUNT_GUARD_RENT_ACCOUNT_STORAGE_OVERHEAD", "-1"),
            ("ACCOUNT_GUARD_RENT_EXEMPTION_THRESHOLD", "0"),
            ("ACCOUNT_GUARD_OTEL_TRACES_SAMPLER_ARG", "1.5"),
            ("ACCOUNT_GUARD_DEFAULT_TOKEN_PROGRAM", "not-a-key"),
        ],
    )
    def test_invalid_values_raise(self, clean_env, name, value):
        """Test that invalid values are rejected at load."""
        clean_env.setenv(name, value)
        with pytest.raises(ValidationError):
            Settings()
