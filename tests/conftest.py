"""Pytest configuration and shared fixtures.

The data API is never contacted: tests use the in-memory ``FakeBackend``
from ``tests.factories`` or an ``httpx.MockTransport``.
"""

from collections.abc import AsyncGenerator

import pytest
from httpx import ASGITransport, AsyncClient

from opsdesk.api import create_app
from opsdesk.core.config import PrivacySettings, Settings, ViewSettings
from opsdesk.core.settings import clear_settings_cache
from opsdesk.services.access_gate import AccessGate
from opsdesk.services.record_view import RecordView
from opsdesk.services.records import Domain, RecordStore
from tests.factories import FakeBackend, create_orders, create_return, create_user


@pytest.fixture(autouse=True)
def clean_settings_cache():
    """Clear settings cache before and after each test."""
    clear_settings_cache()
    yield
    clear_settings_cache()


# ---------------------------------------------------------------------------
# Core fixtures
# ---------------------------------------------------------------------------
@pytest.fixture
def backend() -> FakeBackend:
    """Fake data API seeded with 25 orders, one return and one user."""
    return FakeBackend(
        {
            Domain.ORDER: create_orders(25),
            Domain.RETURN: [create_return("ret-1", order_id="ord-3")],
            Domain.USER: [create_user("usr-1")],
        }
    )


@pytest.fixture
def store() -> RecordStore:
    return RecordStore()


@pytest.fixture
def record_view(backend: FakeBackend, store: RecordStore) -> RecordView:
    return RecordView(backend, store, domain=Domain.ORDER, page_size=10, poll_interval=30.0)


@pytest.fixture
def gate() -> AccessGate:
    """Access gate that reveals immediately after step-up."""
    return AccessGate(confirmation_delay=0)


# ---------------------------------------------------------------------------
# API fixtures
# ---------------------------------------------------------------------------
@pytest.fixture
def test_settings() -> Settings:
    """Settings with polling off and an immediate reveal, for API tests."""
    return Settings(
        view=ViewSettings(realtime_updates=False, page_size=10),
        privacy=PrivacySettings(step_up_confirmation_delay=0),
    )


@pytest.fixture
def test_app(test_settings: Settings, backend: FakeBackend):
    """Create a test FastAPI application instance backed by the fake API."""
    return create_app(test_settings, backend=backend)


@pytest.fixture
async def api_client(test_app) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client for testing the API.

    Uses httpx with ASGI transport for in-process testing. The lifespan
    is entered explicitly so the record view and gate exist.
    """
    async with test_app.router.lifespan_context(test_app):
        transport = ASGITransport(app=test_app)
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            yield client
