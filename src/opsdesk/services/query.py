"""Filter/sort/paginate engine for record collections.

``view()`` is a pure function: it turns a record list plus the current
filter criteria, sort spec and page spec into one page of records and the
filtered total. It never raises; criteria it cannot interpret are treated
as no constraint.

Criterion kinds:
- ``search``: free text, case-insensitive substring over a fixed per-domain
  field set, fields combined with OR
- ``date_range``: inclusive ``created_at`` range, applied only when both
  bounds are present; also accepts the presets today/week/month
- ``vendor_assigned``: "true"/"false" on whether an order has a vendor
- exact fields (status-like) and non-string values: equality
- any other string: case-insensitive substring

All criteria are combined with AND. ``"all"``, ``""`` and None are no-ops.
"""

from __future__ import annotations

import calendar
import logging
import math
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import UTC, date, datetime, timedelta
from enum import Enum
from functools import cmp_to_key
from types import MappingProxyType
from typing import Any

from opsdesk.services.records import Domain, Record, parse_timestamp

logger = logging.getLogger(__name__)

ALL = "all"
NO_OP_VALUES = (None, "", ALL)

SEARCH_FIELDS: dict[Domain, tuple[str, ...]] = {
    Domain.ORDER: ("order_id", "customer_name", "customer_email"),
    Domain.RETURN: ("order_number", "customer_name", "product_name"),
    Domain.EXCHANGE: ("order_number", "customer_name", "product_name"),
    Domain.USER: ("name", "email"),
    Domain.VENDOR: ("name",),
}

EXACT_FIELDS = frozenset(
    {
        "status",
        "payment_status",
        "courier_status",
        "delivery_status",
        "gender",
        "reason",
        "vendor_id",
    }
)

DATE_PRESETS = ("today", "week", "month")


class SortDirection(str, Enum):
    """Sort direction."""

    ASC = "asc"
    DESC = "desc"


@dataclass(frozen=True, slots=True)
class DateRange:
    """Inclusive creation-date range; both bounds are required to filter."""

    start: datetime | None = None
    end: datetime | None = None

    @property
    def is_complete(self) -> bool:
        return self.start is not None and self.end is not None


@dataclass(frozen=True)
class FilterCriteria:
    """Immutable mapping of field name to criterion value.

    Replaced wholesale on change; use ``merged()`` to derive a new one.
    """

    values: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "values", MappingProxyType(dict(self.values)))

    def merged(self, **changes: Any) -> FilterCriteria:
        return FilterCriteria({**self.values, **changes})

    def active(self) -> dict[str, Any]:
        """Criteria that actually constrain the result."""
        return {k: v for k, v in self.values.items() if not _is_no_op(v)}


@dataclass(frozen=True, slots=True)
class SortSpec:
    field: str = "created_at"
    direction: SortDirection = SortDirection.DESC


@dataclass(frozen=True, slots=True)
class PageSpec:
    page_size: int = 10
    current_page: int = 1


@dataclass(frozen=True, slots=True)
class RecordPage:
    """One page of a filtered, sorted view.

    Attributes:
        items: Records on the page.
        total_count: Filtered length before slicing.
        current_page: Page number after clamping.
        total_pages: ceil(total_count / page_size).
        page_size: Page size used for slicing.
    """

    items: list[Record]
    total_count: int
    current_page: int
    total_pages: int
    page_size: int

    @property
    def ids(self) -> list[str]:
        return [record.id for record in self.items]


def _is_no_op(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip() in ("", ALL)
    return value is None


# ---------------------------------------------------------------------------
# Matching
# ---------------------------------------------------------------------------


def coerce_date_range(value: Any) -> DateRange | None:
    """Read a date range from a DateRange, a mapping or a (from, to) pair."""
    if isinstance(value, DateRange):
        start, end = value.start, value.end
    elif isinstance(value, Mapping):
        start = value.get("from", value.get("start"))
        end = value.get("to", value.get("end"))
    elif isinstance(value, (list, tuple)) and len(value) == 2:
        start, end = value
    else:
        return None
    return DateRange(start=_to_instant(start), end=_to_instant(end))


def _to_instant(value: Any) -> datetime | None:
    if isinstance(value, date) and not isinstance(value, datetime):
        return datetime(value.year, value.month, value.day, tzinfo=UTC)
    return parse_timestamp(value)


def _subtract_month(moment: datetime) -> datetime:
    year, month = (moment.year, moment.month - 1) if moment.month > 1 else (moment.year - 1, 12)
    day = min(moment.day, calendar.monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)


def preset_start(preset: str, now: datetime) -> datetime | None:
    """Lower bound for a relative date preset, None for unknown presets."""
    if preset == "today":
        return now.replace(hour=0, minute=0, second=0, microsecond=0)
    if preset == "week":
        return now - timedelta(days=7)
    if preset == "month":
        return _subtract_month(now)
    return None


def _matches_date_range(record: Record, value: Any, now: datetime) -> bool:
    if isinstance(value, str):
        start = preset_start(value, now)
        if start is None:
            return True
        return record.created_at is not None and record.created_at >= start

    date_range = coerce_date_range(value)
    if date_range is None or not date_range.is_complete:
        # A single bound is ignored, never treated as open-ended.
        return True
    if record.created_at is None:
        return False
    return date_range.start <= record.created_at <= date_range.end


def _matches_search(record: Record, query: Any) -> bool:
    if not isinstance(query, str):
        return True
    needle = query.lower()
    for name in SEARCH_FIELDS.get(record.domain, ()):
        value = record.get(name)
        if isinstance(value, str) and needle in value.lower():
            return True
    return False


def _parse_flag(value: Any) -> bool | None:
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.lower() in ("true", "false"):
        return value.lower() == "true"
    return None


def _matches_vendor_assigned(record: Record, value: Any) -> bool:
    wanted = _parse_flag(value)
    if wanted is None:
        return True
    has_vendor = bool(record.get("vendor_allotted") or record.get("vendor_id"))
    return has_vendor == wanted


def _matches_field(record: Record, name: str, value: Any) -> bool:
    actual = record.get(name)
    if name in EXACT_FIELDS:
        return actual == value
    if isinstance(value, bool):
        flag = _parse_flag(actual)
        return flag == value
    if isinstance(value, (int, float)):
        return actual == value
    if isinstance(value, str):
        return isinstance(actual, str) and value.lower() in actual.lower()
    # Unsupported criterion shapes constrain nothing.
    return True


def matches(record: Record, criteria: FilterCriteria, now: datetime | None = None) -> bool:
    """Check a record against every active criterion (AND semantics)."""
    now = now or datetime.now(UTC)
    for name, value in criteria.active().items():
        if name == "search":
            ok = _matches_search(record, value)
        elif name == "date_range":
            ok = _matches_date_range(record, value, now)
        elif name == "vendor_assigned":
            ok = _matches_vendor_assigned(record, value)
        else:
            ok = _matches_field(record, name, value)
        if not ok:
            return False
    return True


# ---------------------------------------------------------------------------
# Sorting
# ---------------------------------------------------------------------------


def _is_date_like(name: str) -> bool:
    return name.endswith("_at") or "date" in name


def compare_values(a: Any, b: Any, field_name: str = "") -> int:
    """Type-aware three-way comparison; None is greater than anything."""
    if a is None and b is None:
        return 0
    if a is None:
        return 1
    if b is None:
        return -1

    if isinstance(a, (int, float)) and isinstance(b, (int, float)):
        return (a > b) - (a < b)

    if _is_date_like(field_name) or (isinstance(a, datetime) and isinstance(b, datetime)):
        a_instant, b_instant = _to_instant(a), _to_instant(b)
        if a_instant is not None and b_instant is not None:
            return (a_instant > b_instant) - (a_instant < b_instant)

    if isinstance(a, str) and isinstance(b, str):
        return (a > b) - (a < b)

    a_str, b_str = str(a), str(b)
    return (a_str > b_str) - (a_str < b_str)


def sort_records(records: list[Record], sort: SortSpec) -> list[Record]:
    """Stable sort by ``sort.field`` in ``sort.direction``."""
    sign = -1 if sort.direction == SortDirection.DESC else 1

    def comparator(left: Record, right: Record) -> int:
        return sign * compare_values(left.get(sort.field), right.get(sort.field), sort.field)

    return sorted(records, key=cmp_to_key(comparator))


# ---------------------------------------------------------------------------
# Pagination
# ---------------------------------------------------------------------------


def total_pages(total_count: int, page_size: int) -> int:
    return math.ceil(total_count / page_size) if page_size > 0 else 0


def clamp_page(current_page: int, pages: int) -> int:
    return min(max(current_page, 1), max(pages, 1))


def view(
    records: list[Record],
    criteria: FilterCriteria,
    sort: SortSpec,
    page: PageSpec,
    *,
    now: datetime | None = None,
) -> RecordPage:
    """Filter, sort and slice ``records`` into one page.

    Args:
        records: Source collection (not modified).
        criteria: Filter criteria, AND-combined.
        sort: Sort field and direction.
        page: Requested page size and page number.
        now: Reference instant for relative date presets.

    Returns:
        RecordPage with at most ``page_size`` items and the filtered total.
    """
    now = now or datetime.now(UTC)
    filtered = [record for record in records if matches(record, criteria, now)]
    ordered = sort_records(filtered, sort)

    size = max(page.page_size, 1)
    pages = total_pages(len(ordered), size)
    current = clamp_page(page.current_page, pages)
    start = (current - 1) * size

    logger.debug(
        "View computed: source=%d, filtered=%d, page=%d/%d, sort=%s:%s",
        len(records),
        len(ordered),
        current,
        max(pages, 1),
        sort.field,
        sort.direction.value,
    )

    return RecordPage(
        items=ordered[start : start + size],
        total_count=len(ordered),
        current_page=current,
        total_pages=pages,
        page_size=size,
    )
