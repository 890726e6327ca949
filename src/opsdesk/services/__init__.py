"""OpsDesk service layer.

- RecordStore: in-memory record collections per domain
- view(): filter/sort/paginate engine
- SelectionSet / BulkOrchestrator: selection and bulk actions
- PollingScheduler: fixed-interval refresh while real-time updates are on
- AccessGate: step-up authentication and masking of protected fields
- BackendClient: httpx client for the back-office data API
- RecordView: owned state tying the above together for one table
"""

from opsdesk.services.access_gate import (
    AccessGate,
    AuthState,
    ProtectionPolicy,
    StepUpCredentials,
)
from opsdesk.services.backend import (
    Backend,
    BackendClient,
    BackendConfig,
    BackendError,
    RecordQuery,
)
from opsdesk.services.masking import (
    ProtectedField,
    mask_address,
    mask_date_of_birth,
    mask_email,
    mask_phone,
)
from opsdesk.services.polling import PollingScheduler
from opsdesk.services.query import FilterCriteria, PageSpec, SortSpec, view
from opsdesk.services.record_view import RecordView
from opsdesk.services.records import Domain, Record, RecordStore
from opsdesk.services.selection import BulkAction, BulkOrchestrator, BulkResult, SelectionSet

__all__ = [
    "AccessGate",
    "AuthState",
    "Backend",
    "BackendClient",
    "BackendConfig",
    "BackendError",
    "BulkAction",
    "BulkOrchestrator",
    "BulkResult",
    "Domain",
    "FilterCriteria",
    "PageSpec",
    "PollingScheduler",
    "ProtectedField",
    "ProtectionPolicy",
    "Record",
    "RecordQuery",
    "RecordStore",
    "RecordView",
    "SelectionSet",
    "SortSpec",
    "StepUpCredentials",
    "mask_address",
    "mask_date_of_birth",
    "mask_email",
    "mask_phone",
    "view",
]
