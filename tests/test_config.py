"""Tests for configuration management system.

Tests cover:
- Loading configuration from environment variables
- Validation of invalid configuration
- Production environment constraints
- Settings singleton behavior
- Policy snapshot generation
"""

import os
from unittest.mock import patch

import pytest
from pydantic import SecretStr, ValidationError

from opsdesk.core.config import (
    ApiClientSettings,
    ConfigValidationError,
    Environment,
    PrivacySettings,
    Settings,
    ViewSettings,
    validate_settings,
)
from opsdesk.core.settings import clear_settings_cache, get_settings, get_settings_safe


@pytest.fixture
def production_env():
    """Provide production environment variables."""
    return {
        "OPSDESK_ENVIRONMENT": "production",
        "OPSDESK_DEBUG": "false",
        "OPSDESK_BACKEND__BASE_URL": "https://api.example.com/",
        "OPSDESK_BACKEND__API_TOKEN": "token-123",
    }


class TestDefaults:
    """Tests for default values."""

    def test_view_defaults(self):
        settings = ViewSettings()
        assert settings.page_size == 10
        assert settings.poll_interval_seconds == 30.0
        assert settings.realtime_updates is True

    def test_privacy_defaults(self):
        settings = PrivacySettings()
        assert settings.step_up_confirmation_delay == 2.0
        assert settings.verification_code_length == 4
        assert settings.protected_fields == ["email", "phone", "address", "date_of_birth"]

    def test_settings_defaults(self):
        settings = Settings()
        assert settings.environment == Environment.DEV
        assert not settings.is_production
        assert settings.log_level == "INFO"


class TestEnvironmentLoading:
    """Tests for loading settings from environment variables."""

    def test_nested_view_settings(self):
        env = {"OPSDESK_VIEW__PAGE_SIZE": "25", "OPSDESK_VIEW__REALTIME_UPDATES": "false"}
        with patch.dict(os.environ, env, clear=False):
            settings = Settings()
        assert settings.view.page_size == 25
        assert settings.view.realtime_updates is False

    def test_backend_url_trailing_slash_stripped(self):
        settings = ApiClientSettings(base_url="https://api.example.com/")
        assert settings.base_url == "https://api.example.com"

    def test_backend_url_requires_scheme(self):
        with pytest.raises(ValidationError):
            ApiClientSettings(base_url="api.example.com")

    def test_page_size_must_be_positive(self):
        with pytest.raises(ValidationError):
            ViewSettings(page_size=0)

    def test_log_level_normalized(self):
        assert Settings(log_level="debug").log_level == "DEBUG"

    def test_invalid_log_level(self):
        with pytest.raises(ValidationError):
            Settings(log_level="chatty")


class TestProductionConstraints:
    """Tests for production environment constraints."""

    def test_debug_forbidden_in_production(self):
        with pytest.raises(ValidationError, match="Debug mode"):
            Settings(environment="production", debug=True)

    def test_production_requires_api_token(self):
        settings = Settings(
            environment="production",
            backend=ApiClientSettings(base_url="https://api.example.com"),
        )
        with pytest.raises(ConfigValidationError) as exc_info:
            validate_settings(settings)
        assert exc_info.value.field == "backend.api_token"

    def test_production_with_token_is_valid(self):
        settings = Settings(
            environment="production",
            backend=ApiClientSettings(
                base_url="https://api.example.com", api_token=SecretStr("t")
            ),
        )
        validate_settings(settings)

    def test_unknown_protected_field_rejected(self):
        settings = Settings(privacy=PrivacySettings(protected_fields=["email", "shoe_size"]))
        with pytest.raises(ConfigValidationError, match="shoe_size"):
            validate_settings(settings)


class TestSettingsSingleton:
    """Tests for the cached settings accessor."""

    def test_get_settings_is_cached(self):
        assert get_settings() is get_settings()

    def test_clear_settings_cache_reloads(self):
        first = get_settings()
        clear_settings_cache()
        assert get_settings() is not first

    def test_get_settings_from_production_env(self, production_env):
        with patch.dict(os.environ, production_env, clear=False):
            settings = get_settings()
        assert settings.is_production
        assert settings.backend.base_url == "https://api.example.com"
        assert settings.backend.api_token.get_secret_value() == "token-123"

    def test_invalid_env_exits(self):
        with patch.dict(os.environ, {"OPSDESK_VIEW__PAGE_SIZE": "0"}, clear=False):
            with pytest.raises(SystemExit):
                get_settings()

    def test_get_settings_safe_returns_none_on_error(self):
        with patch.dict(os.environ, {"OPSDESK_LOG_LEVEL": "chatty"}, clear=False):
            assert get_settings_safe() is None


class TestPolicySnapshot:
    """Tests for policy snapshot generation."""

    def test_snapshot_excludes_secrets(self):
        settings = Settings(
            backend=ApiClientSettings(base_url="https://api.example.com", api_token=SecretStr("s3cret"))
        )
        snapshot = settings.get_policy_snapshot()
        assert "s3cret" not in str(snapshot)
        assert snapshot["view"]["page_size"] == 10

    def test_policy_hash_is_stable(self):
        assert Settings().get_policy_hash() == Settings().get_policy_hash()
        assert len(Settings().get_policy_hash()) == 64

    def test_policy_hash_changes_with_policy(self):
        baseline = Settings().get_policy_hash()
        changed = Settings(privacy=PrivacySettings(protected_fields=["email"])).get_policy_hash()
        assert baseline != changed
