"""Record view API router.

Endpoints for browsing one record domain at a time (orders, returns,
exchanges, users, vendors): filter/sort/page state, manual refresh,
selection, bulk and single-record actions, real-time updates and
statistics.

Every route under ``/records/{domain}`` makes that domain the active one,
the way switching tabs does; switching domains drops the selection.
Protected personal fields in returned records are masked unless the
record owner's identity has passed step-up authentication.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Query

from opsdesk.api.dependencies import GateDep, ViewDep
from opsdesk.api.schemas.records import (
    ActionRequest,
    BulkRequest,
    BulkResponse,
    FiltersUpdate,
    OutcomeResponse,
    PageResponse,
    PageUpdate,
    PollingResponse,
    PollingUpdate,
    SelectionResponse,
    SortUpdate,
    StatisticsResponse,
)
from opsdesk.core.errors import RecordNotFoundError
from opsdesk.services.access_gate import AccessGate, owner_identity
from opsdesk.services.query import FilterCriteria
from opsdesk.services.record_view import RecordView
from opsdesk.services.records import Domain, normalize_key

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/records",
    tags=["records"],
)


# ---------------------------------------------------------------------------
# Helper functions
# ---------------------------------------------------------------------------


def _activate(view: RecordView, domain: Domain) -> RecordView:
    view.set_active_domain(domain)
    return view


async def _page_response(view: RecordView, gate: AccessGate) -> PageResponse:
    """Render the visible page with protected fields masked per owner.

    A server-paged view refetches here when its query changed.
    """
    page = await view.page()
    items = [gate.render_record(owner_identity(record), record.to_dict()) for record in page.items]
    return PageResponse(
        domain=view.domain.value,
        items=items,
        total_count=page.total_count,
        current_page=page.current_page,
        total_pages=page.total_pages,
        page_size=page.page_size,
        selected=view.selection.ids,
        polling=view.is_polling,
        last_error=view.last_error,
    )


def _selection_response(view: RecordView) -> SelectionResponse:
    ids = view.selection.ids
    return SelectionResponse(domain=view.domain.value, selected=ids, count=len(ids))


# ---------------------------------------------------------------------------
# View state
# ---------------------------------------------------------------------------


@router.get("/{domain}", response_model=PageResponse)
async def get_page(
    domain: Domain,
    view: ViewDep,
    gate: GateDep,
    refresh: bool = Query(False, description="Refetch from the backend first"),
) -> PageResponse:
    """Return the visible page of a domain.

    With ``refresh=true`` the current query is refetched first; a failed
    refetch answers 503 and leaves the previous records in place.
    """
    _activate(view, domain)
    if refresh:
        await view.refresh()
    return await _page_response(view, gate)


@router.post("/{domain}/refresh", response_model=PageResponse)
async def refresh_page(domain: Domain, view: ViewDep, gate: GateDep) -> PageResponse:
    _activate(view, domain)
    await view.refresh()
    return await _page_response(view, gate)


@router.put("/{domain}/filters", response_model=PageResponse)
async def update_filters(
    domain: Domain,
    body: FiltersUpdate,
    view: ViewDep,
    gate: GateDep,
) -> PageResponse:
    """Merge (or replace) filter criteria; the page goes back to 1."""
    _activate(view, domain)
    changes = {normalize_key(name): value for name, value in body.filters.items()}
    if body.replace:
        view.replace_filters(FilterCriteria(changes))
    else:
        view.update_filters(**changes)
    logger.debug("Filters updated: domain=%s, active=%s", domain.value, sorted(view.criteria.active()))
    return await _page_response(view, gate)


@router.delete("/{domain}/filters", response_model=PageResponse)
async def reset_filters(domain: Domain, view: ViewDep, gate: GateDep) -> PageResponse:
    _activate(view, domain)
    view.reset_filters()
    return await _page_response(view, gate)


@router.put("/{domain}/sort", response_model=PageResponse)
async def update_sort(
    domain: Domain,
    body: SortUpdate,
    view: ViewDep,
    gate: GateDep,
) -> PageResponse:
    _activate(view, domain)
    view.set_sort(normalize_key(body.field), body.direction)
    return await _page_response(view, gate)


@router.put("/{domain}/page", response_model=PageResponse)
async def update_page(
    domain: Domain,
    body: PageUpdate,
    view: ViewDep,
    gate: GateDep,
) -> PageResponse:
    """Move to a page; a new page size also resets to page 1.

    Out-of-range page numbers are clamped rather than rejected.
    """
    _activate(view, domain)
    if body.page_size is not None and body.page_size != view.page_spec.page_size:
        view.set_page_size(body.page_size)
    else:
        view.set_page(body.page)
    return await _page_response(view, gate)


# ---------------------------------------------------------------------------
# Selection
# ---------------------------------------------------------------------------


@router.put("/{domain}/selection", response_model=SelectionResponse)
async def select_visible(domain: Domain, view: ViewDep) -> SelectionResponse:
    """Replace the selection with every record on the visible page (and only those)."""
    _activate(view, domain)
    await view.page()
    view.select_all_visible()
    return _selection_response(view)


@router.post("/{domain}/selection/{record_id}", response_model=SelectionResponse)
async def toggle_selection(domain: Domain, record_id: str, view: ViewDep) -> SelectionResponse:
    _activate(view, domain)
    view.toggle_selection(record_id)
    return _selection_response(view)


@router.delete("/{domain}/selection", response_model=SelectionResponse)
async def clear_selection(domain: Domain, view: ViewDep) -> SelectionResponse:
    _activate(view, domain)
    view.clear_selection()
    return _selection_response(view)


# ---------------------------------------------------------------------------
# Actions
# ---------------------------------------------------------------------------


@router.post("/{domain}/bulk", response_model=BulkResponse)
async def bulk_apply(domain: Domain, body: BulkRequest, view: ViewDep) -> BulkResponse:
    """Apply an action to every selected record.

    An unset action or an empty selection answers ``dispatched: false``.
    Missing required parameters answer 400 before any request is made.
    Per-id failures are reported in ``failed`` and never roll back the
    ids that succeeded.
    """
    _activate(view, domain)
    result = await view.bulk_apply(body.action, body.data)
    if result is None:
        return BulkResponse(dispatched=False, action=body.action or None)

    summary = result.summary()
    return BulkResponse(
        dispatched=True,
        action=summary["action"],
        succeeded=summary["succeeded"],
        failed=summary["failed"],
        warnings=summary["warnings"],
        partial_failure=summary["partial_failure"],
        total_failure=summary["total_failure"],
    )


@router.post("/{domain}/{record_id}/actions", response_model=OutcomeResponse)
async def apply_action(
    domain: Domain,
    record_id: str,
    body: ActionRequest,
    view: ViewDep,
    gate: GateDep,
) -> OutcomeResponse:
    """Apply an action to one record of the domain."""
    _activate(view, domain)
    if view.store.get(domain, record_id) is None:
        raise RecordNotFoundError(domain.value, record_id)

    outcome = await view.apply_action(record_id, body.action, body.data)
    record = None
    if outcome.record is not None:
        record = gate.render_record(owner_identity(outcome.record), outcome.record.to_dict())
    return OutcomeResponse(
        record_id=outcome.record_id,
        success=outcome.success,
        error_message=outcome.error_message,
        warning=outcome.warning,
        record=record,
    )


# ---------------------------------------------------------------------------
# Real-time updates and statistics
# ---------------------------------------------------------------------------


@router.put("/{domain}/polling", response_model=PollingResponse)
async def update_polling(domain: Domain, body: PollingUpdate, view: ViewDep) -> PollingResponse:
    """Turn real-time updates on or off.

    Once this returns with ``enabled: false`` no further refetch fires.
    """
    _activate(view, domain)
    await view.set_polling(body.enabled)
    poller = view.poller
    return PollingResponse(
        domain=view.domain.value,
        enabled=view.is_polling,
        interval_seconds=poller.interval,
        ticks=poller.ticks,
        failures=poller.failures,
    )


@router.get("/{domain}/statistics", response_model=StatisticsResponse)
async def get_statistics(domain: Domain, view: ViewDep) -> StatisticsResponse:
    """Status counts and derived rates, from the backend when it answers."""
    _activate(view, domain)
    stats = await view.statistics()
    return StatisticsResponse(
        domain=domain.value,
        counts_by_status=stats.counts_by_status,
        derived_rates=stats.derived_rates,
        total=stats.total,
    )
