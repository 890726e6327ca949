"""JSON error bodies for every failure that leaves the API.

Each error response carries ``error`` (a code), ``message``, and when
available ``detail`` and the ``request_id`` of the failing request.

Core errors are reported, not crashed on: a rejected bulk action or
step-up submission answers 400, a missing record 404, and a failed
backend fetch 503 while the previous view stays intact.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

from fastapi import HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from opsdesk.api.middleware.request_id import get_request_id
from opsdesk.core.errors import (
    BulkValidationError,
    OpsDeskError,
    RecordNotFoundError,
    StepUpRejectedError,
    TransientFetchError,
    ValidationRejectedError,
)

logger = logging.getLogger(__name__)

# Most specific first; the first isinstance match wins.
CORE_ERROR_CODES: tuple[tuple[type[OpsDeskError], str, int], ...] = (
    (StepUpRejectedError, "step_up_rejected", 400),
    (ValidationRejectedError, "validation_error", 400),
    (RecordNotFoundError, "not_found", 404),
    (TransientFetchError, "fetch_failed", 503),
)


def build_error_response(
    error: str,
    message: str,
    status_code: int,
    detail: dict[str, Any] | None = None,
) -> JSONResponse:
    body: dict[str, Any] = {"error": error, "message": message}
    if detail:
        body["detail"] = detail
    request_id = get_request_id()
    if request_id:
        body["request_id"] = request_id
    return JSONResponse(status_code=status_code, content=body)


def core_error_response(exc: OpsDeskError) -> JSONResponse:
    """Translate a core error; anything unmapped is a degraded state (409)."""
    detail = {"action": exc.action} if isinstance(exc, BulkValidationError) else None
    for error_type, code, status_code in CORE_ERROR_CODES:
        if isinstance(exc, error_type):
            return build_error_response(code, str(exc), status_code, detail)
    return build_error_response("degraded", str(exc), 409)


class ErrorHandlerMiddleware(BaseHTTPMiddleware):
    """Turn exceptions escaping a route into JSON error responses.

    Unexpected exceptions are logged with their traceback and answer 500
    without leaking internals.
    """

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Response]
    ) -> Response:
        try:
            return await call_next(request)
        except OpsDeskError as exc:
            logger.info(
                "Request rejected: method=%s, path=%s, error=%s, reason=%s",
                request.method,
                request.url.path,
                type(exc).__name__,
                exc,
            )
            return core_error_response(exc)
        except HTTPException as exc:
            return build_error_response("http_error", str(exc.detail), exc.status_code)
        except ValidationError as exc:
            return build_error_response(
                "validation_error",
                "Request validation failed",
                422,
                detail={"errors": exc.errors()},
            )
        except Exception:
            logger.exception("Unhandled error: method=%s, path=%s", request.method, request.url.path)
            return build_error_response("internal_error", "An internal error occurred", 500)
