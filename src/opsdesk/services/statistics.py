"""Status counts and derived rates computed from the record store.

Used when the backend statistics endpoint is unavailable, so the
dashboard counters degrade to locally known data instead of failing.
"""

from __future__ import annotations

from collections import Counter
from typing import TYPE_CHECKING

from opsdesk.services.backend import Statistics

if TYPE_CHECKING:
    from collections.abc import Iterable

    from opsdesk.services.records import Record

# Rate name -> statuses counted in the numerator.
RATE_STATUSES: dict[str, frozenset[str]] = {
    "approval_rate": frozenset({"approved", "accepted"}),
    "rejection_rate": frozenset({"rejected"}),
    "pending_rate": frozenset({"pending"}),
    "completion_rate": frozenset({"completed", "delivered"}),
}


def compute_statistics(records: Iterable[Record]) -> Statistics:
    """Count records by status and derive percentage rates.

    Rates are percentages of the total rounded to two decimals; an empty
    collection yields 0.0 for every rate.
    """
    counts = Counter(record.status or "unknown" for record in records)
    total = sum(counts.values())
    rates = {
        name: round(100.0 * sum(counts[s] for s in statuses) / total, 2) if total else 0.0
        for name, statuses in RATE_STATUSES.items()
    }
    return Statistics(counts_by_status=dict(counts), derived_rates=rates)
