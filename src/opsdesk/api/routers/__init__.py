"""OpsDesk API routers.

- records: record view state, selection, actions and polling per domain
- privacy: protection policy and step-up authentication
"""

from opsdesk.api.routers.privacy import router as privacy_router
from opsdesk.api.routers.records import router as records_router

__all__ = [
    "privacy_router",
    "records_router",
]
