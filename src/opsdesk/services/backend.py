"""HTTP client for the back-office data API.

The core consumes, but does not implement, three operations:
- fetch_records(domain, query) -> records + total count
- mutate_record(domain, id, action, payload) -> success / record / error message
- fetch_statistics(domain) -> counts by status + derived rates

``Backend`` is the structural contract; ``BackendClient`` is the httpx
implementation. Tests and embedders can pass any object with the same
coroutine methods.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Protocol
from urllib.parse import quote

import httpx

from opsdesk.services.records import Domain, Record

if TYPE_CHECKING:
    from opsdesk.core.config import ApiClientSettings

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0

# Mutation action -> (HTTP method, path suffix) relative to the record URL.
ACTION_ROUTES: dict[str, tuple[str, str]] = {
    "approve": ("PUT", "accept"),
    "reject": ("PUT", "reject"),
    "reassign": ("PUT", "vendor"),
    "update_status": ("PUT", "status"),
}


@dataclass(frozen=True)
class BackendConfig:
    """Configuration for the backend client."""

    base_url: str
    api_token: str | None = None
    timeout: float = DEFAULT_TIMEOUT

    @classmethod
    def from_settings(cls, settings: ApiClientSettings) -> BackendConfig:
        token = settings.api_token.get_secret_value() if settings.api_token else None
        return cls(base_url=settings.base_url, api_token=token, timeout=settings.timeout)


@dataclass(frozen=True, slots=True)
class RecordQuery:
    """Query forwarded to the backend: current filters, sort and page."""

    filters: dict[str, Any] = field(default_factory=dict)
    sort_field: str = "created_at"
    sort_order: str = "desc"
    page: int = 1
    page_size: int = 10

    def to_params(self) -> dict[str, Any]:
        params: dict[str, Any] = {
            "page": self.page,
            "limit": self.page_size,
            "sortBy": self.sort_field,
            "sortOrder": self.sort_order,
        }
        for key, value in self.filters.items():
            if isinstance(value, dict):
                for sub_key, sub_value in value.items():
                    if sub_value not in (None, ""):
                        params[f"{key}[{sub_key}]"] = str(sub_value)
            elif value not in (None, "", "all"):
                params[key] = str(value).lower() if isinstance(value, bool) else value
        return params


@dataclass(frozen=True, slots=True)
class FetchResult:
    records: list[Record]
    total_count: int


@dataclass(frozen=True, slots=True)
class MutationResult:
    success: bool
    record: Record | None = None
    error_message: str | None = None


@dataclass(frozen=True, slots=True)
class Statistics:
    """Aggregate counts for a domain.

    Attributes:
        counts_by_status: Number of records per status.
        derived_rates: Percentages derived from the counts (0-100).
    """

    counts_by_status: dict[str, int]
    derived_rates: dict[str, float]

    @property
    def total(self) -> int:
        return sum(self.counts_by_status.values())


class BackendError(Exception):
    """Base exception for backend client errors."""

    pass


class BackendConnectionError(BackendError):
    """Failed to connect to the backend."""

    pass


class BackendNotFoundError(BackendError):
    """The backend answered 404."""

    pass


class Backend(Protocol):
    """Data-fetch collaborator consumed by the core."""

    async def fetch_records(self, domain: Domain, query: RecordQuery) -> FetchResult: ...

    async def mutate_record(
        self, domain: Domain, record_id: str, action: str, payload: dict[str, Any]
    ) -> MutationResult: ...

    async def fetch_statistics(self, domain: Domain) -> Statistics: ...


class BackendClient:
    """httpx implementation of the ``Backend`` contract.

    Example usage:
        config = BackendConfig(base_url="http://localhost:8080/api")
        async with BackendClient(config) as client:
            result = await client.fetch_records(Domain.ORDER, RecordQuery(page=2))
    """

    def __init__(
        self,
        config: BackendConfig,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._config = config
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> BackendClient:
        headers = {"Accept": "application/json"}
        if self._config.api_token:
            headers["Authorization"] = f"Bearer {self._config.api_token}"
        self._client = httpx.AsyncClient(
            base_url=self._config.base_url,
            timeout=self._config.timeout,
            headers=headers,
            transport=self._transport,
        )
        return self

    async def __aexit__(self, *args: object) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            msg = "BackendClient must be used as async context manager"
            raise RuntimeError(msg)
        return self._client

    @staticmethod
    def _record_url(domain: Domain, record_id: str) -> str:
        return f"/admin/{domain.collection}/{quote(record_id, safe='')}"

    async def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        client = self._get_client()
        try:
            response = await client.request(method, url, **kwargs)
        except httpx.ConnectError as e:
            raise BackendConnectionError(
                f"Cannot connect to backend at {self._config.base_url}"
            ) from e
        except httpx.TimeoutException as e:
            raise BackendConnectionError(f"Backend request timed out: {method} {url}") from e
        except httpx.RequestError as e:
            raise BackendConnectionError(
                f"Backend request failed: {method} {url}: {type(e).__name__}: {e}"
            ) from e
        if response.status_code == 404:
            raise BackendNotFoundError(f"Not found: {method} {url}")
        return response

    async def fetch_records(self, domain: Domain, query: RecordQuery) -> FetchResult:
        """Fetch one page of ``domain`` records.

        Accepts either a bare JSON list or an envelope
        ``{"data"|"records"|"<collection>": [...], "total"|"totalCount": n}``.

        Raises:
            BackendError: On non-2xx responses or unreadable payloads.
        """
        url = f"/admin/{domain.collection}"
        response = await self._request("GET", url, params=query.to_params())
        try:
            response.raise_for_status()
            body = response.json()
        except (httpx.HTTPStatusError, ValueError) as e:
            raise BackendError(f"Failed to fetch {domain.collection}: {e}") from e

        items, total = _unwrap_collection(body, domain)
        records: list[Record] = []
        for item in items:
            try:
                records.append(Record.from_payload(domain, item))
            except (ValueError, AttributeError):
                logger.warning("Skipping malformed %s payload: %r", domain.value, item)

        logger.debug(
            "Fetched records: domain=%s, count=%d, total=%d",
            domain.value,
            len(records),
            total if total is not None else len(records),
        )
        return FetchResult(records=records, total_count=total if total is not None else len(records))

    async def mutate_record(
        self, domain: Domain, record_id: str, action: str, payload: dict[str, Any]
    ) -> MutationResult:
        """Apply ``action`` to one record.

        HTTP failures are reported as ``MutationResult(success=False)``;
        only connection problems raise.

        Raises:
            BackendConnectionError: If the backend is unreachable.
            ValueError: If ``action`` has no route.
        """
        if action not in ACTION_ROUTES:
            msg = f"Unsupported action: {action}"
            raise ValueError(msg)
        method, suffix = ACTION_ROUTES[action]
        url = f"{self._record_url(domain, record_id)}/{suffix}"

        try:
            response = await self._request(method, url, json=payload)
        except BackendNotFoundError:
            return MutationResult(success=False, error_message=f"{domain.value} {record_id} not found")

        if response.is_error:
            return MutationResult(success=False, error_message=_error_message(response))

        record = None
        try:
            body = response.json()
        except ValueError:
            body = None
        if isinstance(body, dict):
            data = body.get("data", body)
            if isinstance(data, dict) and ("_id" in data or "id" in data):
                try:
                    record = Record.from_payload(domain, data)
                except ValueError:
                    record = None
        return MutationResult(success=True, record=record)

    async def fetch_statistics(self, domain: Domain) -> Statistics:
        """Fetch status counts and derived rates for ``domain``.

        Raises:
            BackendError: On non-2xx responses or unreadable payloads.
        """
        response = await self._request("GET", f"/admin/{domain.collection}/stats")
        try:
            response.raise_for_status()
            body = response.json()
        except (httpx.HTTPStatusError, ValueError) as e:
            raise BackendError(f"Failed to fetch {domain.collection} stats: {e}") from e

        data = body.get("data", body) if isinstance(body, dict) else {}
        if not isinstance(data, dict):
            raise BackendError(f"Unreadable {domain.collection} stats: {data!r}")
        counts = data.get("countsByStatus") or data.get("counts_by_status") or {}
        rates = data.get("derivedRates") or data.get("derived_rates") or {}
        try:
            return Statistics(
                counts_by_status={str(k): int(v) for k, v in counts.items()},
                derived_rates={str(k): float(v) for k, v in rates.items()},
            )
        except (TypeError, ValueError, AttributeError) as e:
            raise BackendError(f"Unreadable {domain.collection} stats: {e}") from e


def _unwrap_collection(body: Any, domain: Domain) -> tuple[list[dict[str, Any]], int | None]:
    if isinstance(body, list):
        return body, None
    if not isinstance(body, dict):
        return [], None
    container = body.get("data", body)
    if isinstance(container, list):
        items = container
    elif isinstance(container, dict):
        items = next(
            (
                container[key]
                for key in ("records", domain.collection, "items")
                if isinstance(container.get(key), list)
            ),
            [],
        )
    else:
        items = []
    total = body.get("totalCount", body.get("total"))
    if total is None and isinstance(container, dict):
        pagination = container.get("pagination") or {}
        total = pagination.get("totalItems", container.get("total"))
    if total is None:
        return items, None
    try:
        return items, int(total)
    except (TypeError, ValueError) as e:
        raise BackendError(f"Unreadable {domain.collection} total: {total!r}") from e


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict) and body.get("message"):
        return str(body["message"])
    return f"Backend returned {response.status_code}"
