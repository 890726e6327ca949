"""Error taxonomy for the record view and access-control core.

Every failure in the core degrades to one of these reported states;
none of them is allowed to take the process down.
"""

from __future__ import annotations


class OpsDeskError(Exception):
    """Base exception for OpsDesk core errors."""

    pass


class RecordNotFoundError(OpsDeskError):
    """A record id is absent from the store."""

    def __init__(self, domain: str, record_id: str) -> None:
        self.domain = domain
        self.record_id = record_id
        super().__init__(f"{domain} record not found: {record_id}")


class ValidationRejectedError(OpsDeskError):
    """A request was rejected client-side before anything was dispatched."""

    pass


class BulkValidationError(ValidationRejectedError):
    """A bulk action is missing a required parameter or is unknown."""

    def __init__(self, action: str, message: str) -> None:
        self.action = action
        super().__init__(message)


class StepUpRejectedError(ValidationRejectedError):
    """Step-up credentials were malformed; the caller must re-prompt."""

    pass


class TransientFetchError(OpsDeskError):
    """A fetch or refetch against the backend failed."""

    pass


class CrossDomainInconsistencyError(OpsDeskError):
    """A two-domain write landed on the first domain but not the second."""

    def __init__(self, primary: str, secondary: str, record_id: str, reason: str) -> None:
        self.primary = primary
        self.secondary = secondary
        self.record_id = record_id
        self.reason = reason
        super().__init__(
            f"{primary} {record_id} updated but {secondary} write failed: {reason}"
        )
