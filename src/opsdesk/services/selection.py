"""Selection tracking and bulk actions over selected records.

A bulk action issues one mutation per selected id and reports every
outcome separately: a partial failure never rolls back the ids that
succeeded. The selection is cleared once the action has run, whatever
the outcome.

Approving a return or exchange also moves its parent order; that second
write is independent, and if it fails the outcome carries a
cross-domain inconsistency warning instead of being rolled back.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

from opsdesk.core.errors import BulkValidationError, CrossDomainInconsistencyError
from opsdesk.services.backend import BackendError
from opsdesk.services.records import Domain, Record

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Iterable

    from opsdesk.services.backend import Backend, MutationResult
    from opsdesk.services.records import RecordStore

logger = logging.getLogger(__name__)


class BulkAction(str, Enum):
    """Actions that can be applied to a selection."""

    APPROVE = "approve"
    REJECT = "reject"
    REASSIGN = "reassign"
    UPDATE_STATUS = "update_status"


# Parameters that must be present (and non-empty) before dispatch.
REQUIRED_PARAMS: dict[BulkAction, tuple[str, ...]] = {
    BulkAction.APPROVE: (),
    BulkAction.REJECT: (),
    BulkAction.REASSIGN: ("vendor_id",),
    BulkAction.UPDATE_STATUS: ("status",),
}

# Status a record takes after a successful approve/reject, per domain.
RESULT_STATUS: dict[tuple[Domain, BulkAction], str] = {
    (Domain.ORDER, BulkAction.APPROVE): "accepted",
    (Domain.ORDER, BulkAction.REJECT): "rejected",
    (Domain.RETURN, BulkAction.APPROVE): "approved",
    (Domain.RETURN, BulkAction.REJECT): "rejected",
    (Domain.EXCHANGE, BulkAction.APPROVE): "approved",
    (Domain.EXCHANGE, BulkAction.REJECT): "rejected",
    (Domain.USER, BulkAction.APPROVE): "active",
    (Domain.USER, BulkAction.REJECT): "blocked",
    (Domain.VENDOR, BulkAction.APPROVE): "approved",
    (Domain.VENDOR, BulkAction.REJECT): "rejected",
}

# Parent order status written after approving a return or exchange.
PARENT_ORDER_STATUS: dict[Domain, str] = {
    Domain.RETURN: "returned",
    Domain.EXCHANGE: "exchanged",
}


class SelectionSet:
    """Ids selected for a bulk action, scoped to one domain at a time."""

    def __init__(self, domain: Domain = Domain.ORDER) -> None:
        self._domain = domain
        self._ids: dict[str, None] = {}

    @property
    def domain(self) -> Domain:
        return self._domain

    @property
    def ids(self) -> list[str]:
        return list(self._ids)

    def __len__(self) -> int:
        return len(self._ids)

    def __contains__(self, record_id: object) -> bool:
        return record_id in self._ids

    def toggle(self, record_id: str) -> bool:
        """Add or remove an id; returns True when it is now selected."""
        if record_id in self._ids:
            del self._ids[record_id]
            return False
        self._ids[record_id] = None
        return True

    def select_all_visible(self, page_ids: Iterable[str]) -> None:
        """Select exactly the ids on the currently rendered page.

        Records matching the filters on other pages are not selected.
        """
        self._ids = dict.fromkeys(page_ids)

    def clear(self) -> None:
        self._ids.clear()

    def scope(self, domain: Domain) -> None:
        """Switch the active domain; a change of domain drops the selection."""
        if domain != self._domain:
            self._domain = domain
            self.clear()


@dataclass(frozen=True, slots=True)
class BulkOutcome:
    """Result of an action on one record.

    Attributes:
        record_id: Id the action was applied to.
        success: Whether the primary write succeeded.
        error_message: Failure reason when ``success`` is False.
        record: Updated record from the store, when available.
        warning: Degraded-state message (cross-domain inconsistency).
    """

    record_id: str
    success: bool
    error_message: str | None = None
    record: Record | None = None
    warning: str | None = None


@dataclass(frozen=True)
class BulkResult:
    """Aggregated per-id outcomes of a bulk action."""

    action: BulkAction
    domain: Domain
    outcomes: list[BulkOutcome] = field(default_factory=list)

    @property
    def succeeded(self) -> list[str]:
        return [o.record_id for o in self.outcomes if o.success]

    @property
    def failed(self) -> list[str]:
        return [o.record_id for o in self.outcomes if not o.success]

    @property
    def warnings(self) -> list[str]:
        return [o.warning for o in self.outcomes if o.warning]

    @property
    def is_partial_failure(self) -> bool:
        return bool(self.succeeded) and bool(self.failed)

    @property
    def is_total_failure(self) -> bool:
        return bool(self.outcomes) and not self.succeeded

    def summary(self) -> dict[str, Any]:
        return {
            "action": self.action.value,
            "domain": self.domain.value,
            "succeeded": self.succeeded,
            "failed": {o.record_id: o.error_message for o in self.outcomes if not o.success},
            "warnings": self.warnings,
            "partial_failure": self.is_partial_failure,
            "total_failure": self.is_total_failure,
        }


def parse_action(action: BulkAction | str | None) -> BulkAction | None:
    """Read an action name; None/empty means unset.

    Raises:
        BulkValidationError: For unknown action names.
    """
    if action is None or action == "":
        return None
    if isinstance(action, BulkAction):
        return action
    try:
        return BulkAction(action)
    except ValueError as e:
        raise BulkValidationError(str(action), f"Unknown bulk action: {action}") from e


def validate_params(action: BulkAction, data: dict[str, Any]) -> None:
    """Reject an action whose required parameters are missing.

    Raises:
        BulkValidationError: If a required parameter is absent or empty.
    """
    missing = [name for name in REQUIRED_PARAMS[action] if data.get(name) in (None, "")]
    if missing:
        raise BulkValidationError(
            action.value,
            f"Action '{action.value}' requires: {', '.join(missing)}",
        )


class BulkOrchestrator:
    """Applies actions to records through the backend and the store.

    Example:
        orchestrator = BulkOrchestrator(backend, store)
        result = await orchestrator.apply(selection, "reassign", {"vendor_id": "v-7"})
    """

    def __init__(
        self,
        backend: Backend,
        store: RecordStore,
        *,
        refresh: Callable[[], Awaitable[Any]] | None = None,
    ) -> None:
        self._backend = backend
        self._store = store
        self._refresh = refresh

    async def apply(
        self,
        selection: SelectionSet,
        action: BulkAction | str | None,
        data: dict[str, Any] | None = None,
    ) -> BulkResult | None:
        """Apply ``action`` to every selected id.

        Returns None without dispatching when the action is unset or the
        selection is empty.

        Raises:
            BulkValidationError: Unknown action or missing required parameter;
                raised before any request is issued.
        """
        data = dict(data or {})
        parsed = parse_action(action)
        if parsed is None or len(selection) == 0:
            logger.debug(
                "Bulk action skipped: action=%s, selected=%d",
                action,
                len(selection),
            )
            return None
        validate_params(parsed, data)

        domain = selection.domain
        ids = selection.ids
        logger.info(
            "Bulk action started: action=%s, domain=%s, count=%d",
            parsed.value,
            domain.value,
            len(ids),
        )

        outcomes: list[BulkOutcome] = []
        try:
            for record_id in ids:
                outcomes.append(await self.apply_one(domain, record_id, parsed, data))
        finally:
            selection.clear()

        result = BulkResult(action=parsed, domain=domain, outcomes=outcomes)
        log = logger.warning if result.failed else logger.info
        log(
            "Bulk action finished: action=%s, domain=%s, succeeded=%d, failed=%d, warnings=%d",
            parsed.value,
            domain.value,
            len(result.succeeded),
            len(result.failed),
            len(result.warnings),
        )

        if self._refresh is not None:
            await self._refresh()
        return result

    async def apply_one(
        self,
        domain: Domain,
        record_id: str,
        action: BulkAction | str,
        data: dict[str, Any] | None = None,
    ) -> BulkOutcome:
        """Apply ``action`` to a single record and patch the store.

        Raises:
            BulkValidationError: Unknown action or missing required parameter.
        """
        data = dict(data or {})
        parsed = parse_action(action)
        if parsed is None:
            raise BulkValidationError("", "No action selected")
        validate_params(parsed, data)

        try:
            result = await self._backend.mutate_record(domain, record_id, parsed.value, data)
        except BackendError as e:
            logger.warning(
                "Mutation failed: domain=%s, id=%s, action=%s, error=%s",
                domain.value,
                record_id,
                parsed.value,
                e,
            )
            return BulkOutcome(record_id=record_id, success=False, error_message=str(e))

        if not result.success:
            return BulkOutcome(
                record_id=record_id,
                success=False,
                error_message=result.error_message or "Mutation rejected",
            )

        updated = self._store.patch_one(domain, record_id, self._partial_for(domain, parsed, data, result))
        warning = None
        if parsed == BulkAction.APPROVE and domain in PARENT_ORDER_STATUS:
            warning = await self._update_parent_order(domain, record_id, updated, data)

        return BulkOutcome(record_id=record_id, success=True, record=updated, warning=warning)

    @staticmethod
    def _partial_for(
        domain: Domain,
        action: BulkAction,
        data: dict[str, Any],
        result: MutationResult,
    ) -> dict[str, Any]:
        if result.record is not None:
            return {**result.record.attributes, "status": result.record.status}
        if action == BulkAction.REASSIGN:
            return {"vendor_id": data["vendor_id"], "vendor_allotted": True}
        if action == BulkAction.UPDATE_STATUS:
            return {"status": data["status"]}
        partial: dict[str, Any] = {"status": RESULT_STATUS[(domain, action)]}
        if data.get("reason"):
            partial["rejection_reason" if action == BulkAction.REJECT else "reason"] = data["reason"]
        return partial

    async def _update_parent_order(
        self,
        domain: Domain,
        record_id: str,
        record: Record | None,
        data: dict[str, Any],
    ) -> str | None:
        """Write the parent order after a return/exchange approval.

        Returns:
            A warning message when the order write failed, else None.
        """
        order_id = data.get("order_id") or (record.get("order_id") if record else None)
        if not order_id:
            return None

        status = PARENT_ORDER_STATUS[domain]
        reason: str | None = None
        try:
            result = await self._backend.mutate_record(
                Domain.ORDER, str(order_id), BulkAction.UPDATE_STATUS.value, {"status": status}
            )
            if not result.success:
                reason = result.error_message or "Mutation rejected"
        except BackendError as e:
            reason = str(e)

        if reason is not None:
            inconsistency = CrossDomainInconsistencyError(
                domain.value, Domain.ORDER.value, record_id, reason
            )
            logger.warning("Cross-domain write incomplete: %s", inconsistency)
            return str(inconsistency)

        self._store.patch_one(Domain.ORDER, str(order_id), {"status": status})
        return None
