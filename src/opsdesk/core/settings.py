"""Process-wide access to the OpsDesk settings.

    from opsdesk.core.settings import get_settings

    page_size = get_settings().view.page_size

Settings are read from the environment once. Tests call
``clear_settings_cache()`` after patching the environment.
"""

from __future__ import annotations

import logging
from functools import lru_cache

from pydantic import ValidationError

from opsdesk.core.config import (
    ConfigValidationError,
    Settings,
    validate_settings,
)

logger = logging.getLogger(__name__)


def _describe_errors(exc: ValidationError) -> str:
    lines = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error["loc"]) or "settings"
        lines.append(f"  - {location}: {error['msg']}")
    return "\n".join(lines)


def _load() -> Settings:
    settings = Settings()
    validate_settings(settings)
    logger.info(
        "Settings loaded: environment=%s, backend=%s, page_size=%d, poll_interval=%ss, "
        "policy=%s",
        settings.environment.value,
        settings.backend.base_url,
        settings.view.page_size,
        settings.view.poll_interval_seconds,
        settings.get_policy_hash()[:12],
    )
    return settings


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return the validated settings, loading them on first use.

    Invalid configuration is fatal: the problem is logged at critical
    level and the process exits with status 1.
    """
    try:
        return _load()
    except ValidationError as e:
        logger.critical("Invalid OpsDesk settings:\n%s", _describe_errors(e))
        raise SystemExit(1) from e
    except ConfigValidationError as e:
        logger.critical("Invalid OpsDesk settings: %s=%s", e.field or "settings", e.message)
        raise SystemExit(1) from e


def clear_settings_cache() -> None:
    """Forget the loaded settings so the next call re-reads the environment."""
    get_settings.cache_clear()


def get_settings_safe() -> Settings | None:
    """Like ``get_settings`` but answers None instead of exiting."""
    try:
        return get_settings()
    except SystemExit:
        return None
