"""Record view context: the owned state behind one back-office table.

A ``RecordView`` holds the active domain, filter criteria, sort spec,
page spec, selection and polling flag for one screen, and wires the
record store, the query engine, the bulk orchestrator and the polling
scheduler together:

    caller changes filters/sort/page or selection
        -> current_page() recomputes the page from the store
    bulk_apply() / refresh() / polling ticks
        -> write into the store -> next current_page() reflects them

Polling ticks call ``refresh()``, which builds the backend query from the
state current at that moment.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from opsdesk.core.errors import TransientFetchError
from opsdesk.services.backend import BackendError, RecordQuery
from opsdesk.services.polling import DEFAULT_POLL_INTERVAL, PollingScheduler
from opsdesk.services.query import (
    FilterCriteria,
    PageSpec,
    RecordPage,
    SortDirection,
    SortSpec,
    clamp_page,
    total_pages,
    view,
)
from opsdesk.services.records import Domain, RecordStore
from opsdesk.services.selection import BulkOrchestrator, BulkOutcome, BulkResult, SelectionSet
from opsdesk.services.statistics import compute_statistics

if TYPE_CHECKING:
    from opsdesk.core.config import Settings
    from opsdesk.services.backend import Backend, Statistics
    from opsdesk.services.selection import BulkAction

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 10


class RecordView:
    """Filter/sort/page/selection state for one record table.

    Example:
        view = RecordView(backend, domain=Domain.ORDER)
        await view.refresh()
        view.update_filters(status="pending", search="rajesh")
        page = view.current_page()
        view.select_all_visible()
        result = await view.bulk_apply("approve")
    """

    def __init__(
        self,
        backend: Backend,
        store: RecordStore | None = None,
        *,
        domain: Domain = Domain.ORDER,
        page_size: int = DEFAULT_PAGE_SIZE,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
    ) -> None:
        self._backend = backend
        self.store = store or RecordStore()
        self._domain = domain
        self._criteria = FilterCriteria()
        self._sort = SortSpec()
        self._page = PageSpec(page_size=page_size, current_page=1)
        self._remote_total: int | None = None
        self._fetched_query: RecordQuery | None = None
        self.selection = SelectionSet(domain)
        self.last_error: str | None = None
        self.last_bulk_result: BulkResult | None = None
        self._bulk = BulkOrchestrator(backend, self.store, refresh=self._recompute)
        self._poller = PollingScheduler(self.refresh, interval=poll_interval, name=domain.value)

    @classmethod
    def from_settings(
        cls,
        backend: Backend,
        settings: Settings,
        *,
        store: RecordStore | None = None,
        domain: Domain = Domain.ORDER,
    ) -> RecordView:
        return cls(
            backend,
            store,
            domain=domain,
            page_size=settings.view.page_size,
            poll_interval=settings.view.poll_interval_seconds,
        )

    # ------------------------------------------------------------------
    # State accessors
    # ------------------------------------------------------------------

    @property
    def domain(self) -> Domain:
        return self._domain

    @property
    def criteria(self) -> FilterCriteria:
        return self._criteria

    @property
    def sort(self) -> SortSpec:
        return self._sort

    @property
    def page_spec(self) -> PageSpec:
        return self._page

    @property
    def is_polling(self) -> bool:
        return self._poller.is_polling

    @property
    def poller(self) -> PollingScheduler:
        return self._poller

    # ------------------------------------------------------------------
    # Filter / sort / page changes
    # ------------------------------------------------------------------

    def update_filters(self, **changes: Any) -> None:
        """Merge filter changes and go back to the first page."""
        self._criteria = self._criteria.merged(**changes)
        self._page = PageSpec(self._page.page_size, 1)

    def replace_filters(self, criteria: FilterCriteria) -> None:
        self._criteria = criteria
        self._page = PageSpec(self._page.page_size, 1)

    def reset_filters(self) -> None:
        self.replace_filters(FilterCriteria())

    def set_sort(self, field: str, direction: SortDirection | str = SortDirection.DESC) -> None:
        self._sort = SortSpec(field=field, direction=SortDirection(direction))

    def set_page(self, current_page: int) -> None:
        self._page = PageSpec(self._page.page_size, current_page)

    def set_page_size(self, page_size: int) -> None:
        self._page = PageSpec(max(page_size, 1), 1)

    def set_active_domain(self, domain: Domain) -> None:
        """Switch tabs; the selection never carries across domains."""
        if domain == self._domain:
            return
        self._domain = domain
        self.selection.scope(domain)
        self._page = PageSpec(self._page.page_size, 1)
        self._remote_total = None
        self._fetched_query = None
        logger.debug("Active domain changed: domain=%s", domain.value)

    # ------------------------------------------------------------------
    # View computation and refresh
    # ------------------------------------------------------------------

    @property
    def is_server_paged(self) -> bool:
        """True when the store holds one server-side page, not the whole domain."""
        return self._remote_total is not None and self._remote_total > len(
            self.store.get_all(self._domain)
        )

    @property
    def needs_refetch(self) -> bool:
        """True when a server-paged view's filters, sort or page changed since the fetch."""
        return self.is_server_paged and self._fetched_query != self.query()

    def current_page(self) -> RecordPage:
        """Compute the visible page from the record store.

        When the last fetch returned a server-side page (fewer records than
        the backend total), the store already holds exactly that page: it is
        filtered and sorted locally and the totals come from the backend.
        Until ``page()`` refetches after a query change, that page is
        reported under the page number it was fetched for.
        """
        records = self.store.get_all(self._domain)
        if self.is_server_paged:
            local = view(records, self._criteria, self._sort, PageSpec(self._page.page_size, 1))
            pages = total_pages(self._remote_total, self._page.page_size)
            fetched = self._fetched_query.page if self._fetched_query else self._page.current_page
            return RecordPage(
                items=local.items,
                total_count=self._remote_total,
                current_page=clamp_page(fetched, pages),
                total_pages=pages,
                page_size=local.page_size,
            )
        return view(records, self._criteria, self._sort, self._page)

    async def page(self) -> RecordPage:
        """The visible page, refetching first when a server-paged query changed.

        Raises:
            TransientFetchError: If that refetch failed.
        """
        if self.needs_refetch:
            return await self.refresh()
        return self.current_page()

    def query(self) -> RecordQuery:
        """Backend query for the current filters, sort and page."""
        return RecordQuery(
            filters=dict(self._criteria.active()),
            sort_field=self._sort.field,
            sort_order=self._sort.direction.value,
            page=self._page.current_page,
            page_size=self._page.page_size,
        )

    async def refresh(self) -> RecordPage:
        """Refetch the current query and replace the domain collection.

        Raises:
            TransientFetchError: If the fetch failed; ``last_error`` is set
                and the store keeps its previous contents.
        """
        domain = self._domain
        query = self.query()
        try:
            result = await self._backend.fetch_records(domain, query)
        except BackendError as e:
            self.last_error = str(e)
            logger.warning("Refresh failed: domain=%s, error=%s", domain.value, e)
            raise TransientFetchError(f"Failed to refresh {domain.collection}: {e}") from e

        # Last write wins: whichever response lands last is kept.
        self.store.replace_all(domain, result.records)
        if domain == self._domain:
            self._remote_total = result.total_count
            self._fetched_query = query
        self.last_error = None
        return self.current_page()

    async def _recompute(self) -> RecordPage:
        return self.current_page()

    # ------------------------------------------------------------------
    # Selection and actions
    # ------------------------------------------------------------------

    def toggle_selection(self, record_id: str) -> bool:
        return self.selection.toggle(record_id)

    def select_all_visible(self) -> list[str]:
        """Select the ids of the current page only."""
        ids = self.current_page().ids
        self.selection.select_all_visible(ids)
        return ids

    def clear_selection(self) -> None:
        self.selection.clear()

    async def bulk_apply(
        self, action: BulkAction | str | None, data: dict[str, Any] | None = None
    ) -> BulkResult | None:
        """Apply an action to the selection; see ``BulkOrchestrator.apply``."""
        result = await self._bulk.apply(self.selection, action, data)
        if result is not None:
            self.last_bulk_result = result
        return result

    async def apply_action(
        self, record_id: str, action: BulkAction | str, data: dict[str, Any] | None = None
    ) -> BulkOutcome:
        """Apply an action to one record of the active domain."""
        return await self._bulk.apply_one(self._domain, record_id, action, data)

    async def statistics(self) -> Statistics:
        """Backend statistics, or counts from the store when the backend fails."""
        try:
            return await self._backend.fetch_statistics(self._domain)
        except BackendError as e:
            logger.warning(
                "Statistics unavailable, using local counts: domain=%s, error=%s",
                self._domain.value,
                e,
            )
            return compute_statistics(self.store.get_all(self._domain))

    # ------------------------------------------------------------------
    # Polling
    # ------------------------------------------------------------------

    def enable_polling(self) -> bool:
        return self._poller.enable()

    async def disable_polling(self) -> None:
        await self._poller.disable()

    async def set_polling(self, enabled: bool) -> None:
        if enabled:
            self.enable_polling()
        else:
            await self.disable_polling()

    async def close(self) -> None:
        """Tear the view down; no refetch fires after this returns."""
        await self._poller.close()
