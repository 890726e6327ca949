"""OpsDesk API middleware components.

- Request ID tracking and log correlation
- Consistent error response formatting
"""

from opsdesk.api.middleware.errors import ErrorHandlerMiddleware
from opsdesk.api.middleware.request_id import RequestIDLogFilter, RequestIDMiddleware

__all__ = [
    "ErrorHandlerMiddleware",
    "RequestIDLogFilter",
    "RequestIDMiddleware",
]
