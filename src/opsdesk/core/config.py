"""OpsDesk settings, read from ``OPSDESK_*`` environment variables.

Sections nest with a double underscore, e.g. ``OPSDESK_VIEW__PAGE_SIZE``
or ``OPSDESK_PRIVACY__PROTECTED_FIELDS='["email"]'``.

Example:
    export OPSDESK_ENVIRONMENT=dev
    export OPSDESK_BACKEND__BASE_URL=https://api.example.com
"""

from __future__ import annotations

import hashlib
import json
import logging
from enum import Enum
from functools import cached_property
from typing import Annotated, Any, Self

from pydantic import Field, SecretStr, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


class Environment(str, Enum):
    """Where the service runs; production tightens validation."""

    DEV = "dev"
    STAGING = "staging"
    PRODUCTION = "production"


class ApiClientSettings(BaseSettings):
    """Settings for the back-office data API consumed by the core.

    The core never owns persistence; every fetch and mutation goes through
    this HTTP collaborator.
    """

    model_config = SettingsConfigDict(
        env_prefix="OPSDESK_BACKEND__",
        extra="ignore",
    )

    base_url: str = Field(
        default="http://localhost:8080/api",
        description="Base URL of the back-office data API",
    )
    timeout: Annotated[float, Field(gt=0, le=300)] = Field(
        default=30.0,
        description="Request timeout in seconds",
    )
    api_token: SecretStr | None = Field(
        default=None,
        description="Bearer token sent with every request (optional in dev)",
    )

    @field_validator("base_url")
    @classmethod
    def validate_base_url(cls, v: str) -> str:
        """Require an absolute http(s) URL without a trailing slash."""
        if not v.startswith(("http://", "https://")):
            msg = "Backend base_url must start with http:// or https://"
            raise ValueError(msg)
        return v.rstrip("/")


class ViewSettings(BaseSettings):
    """Record view defaults (pagination and real-time refresh)."""

    model_config = SettingsConfigDict(
        env_prefix="OPSDESK_VIEW__",
        extra="ignore",
    )

    page_size: Annotated[int, Field(ge=1, le=500)] = Field(
        default=10,
        description="Default number of records per page",
    )
    poll_interval_seconds: Annotated[float, Field(gt=0)] = Field(
        default=30.0,
        description="Fixed interval between real-time refetches",
    )
    realtime_updates: bool = Field(
        default=True,
        description="Whether views start with polling enabled",
    )


class PrivacySettings(BaseSettings):
    """Data-privacy controls for protected personal fields."""

    model_config = SettingsConfigDict(
        env_prefix="OPSDESK_PRIVACY__",
        extra="ignore",
    )

    step_up_confirmation_delay: Annotated[float, Field(ge=0)] = Field(
        default=2.0,
        description="Seconds between step-up acceptance and the field reveal",
    )
    verification_code_length: Annotated[int, Field(ge=1, le=12)] = Field(
        default=4,
        description="Exact length required for the step-up verification code",
    )
    protected_fields: list[str] = Field(
        default=["email", "phone", "address", "date_of_birth"],
        description="Fields protected by the global policy at startup",
    )


class Settings(BaseSettings):
    """Top-level settings; nested sections cover backend, view and privacy.

    Example environment variables:
        OPSDESK_ENVIRONMENT=production
        OPSDESK_VIEW__POLL_INTERVAL_SECONDS=30
        OPSDESK_PRIVACY__STEP_UP_CONFIRMATION_DELAY=2
    """

    model_config = SettingsConfigDict(
        env_prefix="OPSDESK_",
        env_nested_delimiter="__",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        validate_default=True,
    )

    # Core settings
    environment: Environment = Field(
        default=Environment.DEV,
        description="Deployment environment (dev, staging, production)",
    )
    debug: bool = Field(
        default=False,
        description="Verbose error pages; rejected in production",
    )
    log_level: str = Field(
        default="INFO",
        description="Root log level name",
    )

    backend: ApiClientSettings = Field(default_factory=ApiClientSettings)
    view: ViewSettings = Field(default_factory=ViewSettings)
    privacy: PrivacySettings = Field(default_factory=PrivacySettings)

    # API settings
    api_host: str = Field(
        default="127.0.0.1",
        description="Interface the HTTP API binds to",
    )
    api_port: Annotated[int, Field(ge=1, le=65535)] = Field(
        default=8000,
        description="Port the HTTP API listens on",
    )

    # Application metadata
    app_name: str = Field(
        default="OpsDesk",
        description="Name reported in logs and the API title",
    )
    app_version: str = Field(
        default="0.1.0",
        description="Version reported by the API",
    )

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Accept any case; store upper case."""
        level = v.upper()
        if level not in logging.getLevelNamesMapping():
            msg = f"Unknown log level: {v}"
            raise ValueError(msg)
        return level

    @model_validator(mode="after")
    def validate_production_constraints(self) -> Self:
        """Production never runs with debug on."""
        if self.environment == Environment.PRODUCTION:
            if self.debug:
                msg = "Debug mode is not allowed in production environment"
                raise ValueError(msg)
            if not self.backend.base_url.startswith("https://"):
                logger.warning(
                    "Backend API is configured without HTTPS in production. "
                    "Protected personal data will travel in clear text."
                )
        return self

    @cached_property
    def is_production(self) -> bool:
        """True when deployed to production."""
        return self.environment == Environment.PRODUCTION

    def get_policy_snapshot(self) -> dict[str, Any]:
        """Generate a snapshot of non-sensitive configuration values.

        Returns:
            Dictionary suitable for logging at startup.
        """
        return {
            "environment": self.environment.value,
            "backend": {
                "base_url": self.backend.base_url,
                "timeout": self.backend.timeout,
            },
            "view": {
                "page_size": self.view.page_size,
                "poll_interval_seconds": self.view.poll_interval_seconds,
                "realtime_updates": self.view.realtime_updates,
            },
            "privacy": {
                "step_up_confirmation_delay": self.privacy.step_up_confirmation_delay,
                "protected_fields": sorted(self.privacy.protected_fields),
            },
            "app_version": self.app_version,
        }

    def get_policy_hash(self) -> str:
        """Compute a SHA-256 hex digest of the policy snapshot."""
        snapshot_json = json.dumps(self.get_policy_snapshot(), sort_keys=True)
        return hashlib.sha256(snapshot_json.encode()).hexdigest()


class ConfigValidationError(Exception):
    """Settings parsed but are unusable; startup must stop."""

    def __init__(self, message: str, field: str | None = None) -> None:
        self.message = message
        self.field = field
        super().__init__(message)


def validate_settings(settings: Settings) -> None:
    """Cross-field checks pydantic cannot express on a single field.

    Raises:
        ConfigValidationError: On an unknown protected field name, or a
            production deployment without a backend token.
    """
    from opsdesk.services.masking import ProtectedField

    known = sorted(f.value for f in ProtectedField)
    unknown = [name for name in settings.privacy.protected_fields if name not in known]
    if unknown:
        raise ConfigValidationError(
            f"Unknown protected field(s) {', '.join(unknown)}; choose from {', '.join(known)}",
            field="privacy.protected_fields",
        )

    if settings.is_production and settings.backend.api_token is None:
        raise ConfigValidationError(
            "OPSDESK_BACKEND__API_TOKEN must be set in production",
            field="backend.api_token",
        )

    logger.debug("Settings validated: policy_hash=%s", settings.get_policy_hash())
