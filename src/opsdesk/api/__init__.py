"""OpsDesk HTTP API.

``create_app`` builds a FastAPI application whose lifespan owns one
record view and one access gate. Routes under ``/api/records`` drive the
view (filters, sort, paging, selection, bulk and single actions,
polling); routes under ``/api/privacy`` drive the protection policy and
step-up flow.
"""

from __future__ import annotations

import logging
from contextlib import AsyncExitStack, asynccontextmanager
from typing import TYPE_CHECKING

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from opsdesk.api.middleware import ErrorHandlerMiddleware, RequestIDMiddleware
from opsdesk.api.routers import privacy_router, records_router
from opsdesk.services.access_gate import AccessGate, ProtectionPolicy
from opsdesk.services.backend import BackendClient, BackendConfig
from opsdesk.services.masking import ProtectedField
from opsdesk.services.record_view import RecordView

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

    from opsdesk.core.config import Settings
    from opsdesk.services.backend import Backend

logger = logging.getLogger(__name__)

API_DESCRIPTION = """
Back-office record view and access-control service.

## Namespaces

- **/api/records/{domain}** - Filter, sort, page, select and act on records
- **/api/privacy/** - Field protection policy and step-up authentication

## Documentation

- OpenAPI spec: `/api/openapi.json`
- Swagger UI: `/api/docs`
- ReDoc: `/api/redoc`
"""


def build_gate(settings: Settings) -> AccessGate:
    """Create the access gate from the privacy settings."""
    policy = ProtectionPolicy({ProtectedField(name) for name in settings.privacy.protected_fields})
    return AccessGate(
        policy,
        confirmation_delay=settings.privacy.step_up_confirmation_delay,
        code_length=settings.privacy.verification_code_length,
    )


def create_app(settings: Settings | None = None, *, backend: Backend | None = None) -> FastAPI:
    """Build the application.

    ``settings`` defaults to the environment. Without ``backend`` the
    lifespan opens an httpx ``BackendClient`` and closes it on shutdown;
    tests pass an in-memory backend instead. View and gate live on
    ``app.state`` and are rebuilt on every startup.
    """
    if settings is None:
        from opsdesk.core.settings import get_settings

        settings = get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        async with AsyncExitStack() as stack:
            data_api = backend
            if data_api is None:
                data_api = await stack.enter_async_context(
                    BackendClient(BackendConfig.from_settings(settings.backend))
                )

            view = RecordView.from_settings(data_api, settings)
            gate = build_gate(settings)
            stack.push_async_callback(view.close)
            stack.callback(gate.close)

            app.state.view = view
            app.state.gate = gate

            if settings.view.realtime_updates:
                view.enable_polling()

            logger.info(
                "OpsDesk API started: environment=%s, backend=%s, realtime_updates=%s",
                settings.environment.value,
                settings.backend.base_url,
                settings.view.realtime_updates,
            )
            yield
            logger.info("Shutting down OpsDesk API")

    app = FastAPI(
        title=f"{settings.app_name} API",
        description=API_DESCRIPTION,
        version=settings.app_version,
        docs_url="/api/docs",
        redoc_url="/api/redoc",
        openapi_url="/api/openapi.json",
        lifespan=lifespan,
    )

    app.state.settings = settings

    _add_middleware(app, settings)
    _include_routers(app)

    @app.get("/health", tags=["health"])
    async def health_check() -> dict[str, str]:
        """Liveness probe; does not touch the backend."""
        return {"status": "healthy"}

    logger.debug("Application built: version=%s", settings.app_version)

    return app


def _add_middleware(app: FastAPI, settings: Settings) -> None:
    """Register middleware, innermost first.

    Error conversion runs inside the request-ID scope so error bodies
    carry the ID.
    """
    app.add_middleware(ErrorHandlerMiddleware)
    app.add_middleware(RequestIDMiddleware)

    # Local dashboards only; production serves same-origin
    allowed_origins = ["http://localhost:3000", "http://localhost:8000"]
    if settings.is_production:
        allowed_origins = []

    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID"],
    )


def _include_routers(app: FastAPI) -> None:
    app.include_router(records_router, prefix="/api")
    app.include_router(privacy_router, prefix="/api")
