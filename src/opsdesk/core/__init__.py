"""OpsDesk core module.

Shared components used across all services:
- Configuration management
- Error taxonomy
"""

from opsdesk.core.config import (
    ApiClientSettings,
    ConfigValidationError,
    Environment,
    PrivacySettings,
    Settings,
    ViewSettings,
)
from opsdesk.core.errors import (
    BulkValidationError,
    CrossDomainInconsistencyError,
    OpsDeskError,
    RecordNotFoundError,
    StepUpRejectedError,
    TransientFetchError,
    ValidationRejectedError,
)
from opsdesk.core.settings import (
    clear_settings_cache,
    get_settings,
    get_settings_safe,
)

__all__ = [
    "ApiClientSettings",
    "BulkValidationError",
    "ConfigValidationError",
    "CrossDomainInconsistencyError",
    "Environment",
    "OpsDeskError",
    "PrivacySettings",
    "RecordNotFoundError",
    "Settings",
    "StepUpRejectedError",
    "TransientFetchError",
    "ValidationRejectedError",
    "ViewSettings",
    "clear_settings_cache",
    "get_settings",
    "get_settings_safe",
]
