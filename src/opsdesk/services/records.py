"""In-memory record store.

The store holds one typed collection per domain (orders, returns,
exchanges, users, vendors) and is the single source of truth every view
is computed from. Records are immutable values; writes replace them.

Writes are last-write-wins: two async operations racing on the same
domain simply leave whichever response landed last. There is no ordering
token and no cross-domain transaction.
"""

from __future__ import annotations

import dataclasses
import logging
import re
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

logger = logging.getLogger(__name__)

_CAMEL_BOUNDARY = re.compile(r"(?<!^)(?=[A-Z])")


class Domain(str, Enum):
    """Record domains handled by the back office."""

    ORDER = "order"
    RETURN = "return"
    EXCHANGE = "exchange"
    USER = "user"
    VENDOR = "vendor"

    @property
    def collection(self) -> str:
        """Plural collection name used in backend URLs."""
        return f"{self.value}s"


def normalize_key(key: str) -> str:
    """Convert a backend camelCase key to the snake_case used internally."""
    if key == "_id":
        return "id"
    return _CAMEL_BOUNDARY.sub("_", key).lower()


def parse_timestamp(value: Any) -> datetime | None:
    """Parse an ISO-8601 string (or datetime) into an aware datetime.

    Returns None for anything that cannot be read as an instant.
    """
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=UTC)
    if not isinstance(value, str) or not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=UTC)


@dataclass(frozen=True, slots=True)
class Record:
    """One entity of a domain collection.

    Attributes:
        id: Identifier, unique within its domain.
        domain: Domain the record belongs to.
        status: Mutable lifecycle status (pending, approved, ...).
        created_at: Creation instant, None when the backend omitted it.
        attributes: Every other field, protected ones included.
    """

    id: str
    domain: Domain
    status: str = ""
    created_at: datetime | None = None
    attributes: dict[str, Any] = field(default_factory=dict)

    def get(self, name: str, default: Any = None) -> Any:
        """Read a field by name, core fields first."""
        if name in ("id", "status", "created_at", "domain"):
            return getattr(self, name)
        return self.attributes.get(name, default)

    def patched(self, partial: dict[str, Any]) -> Record:
        """Return a copy with ``partial`` applied."""
        changes: dict[str, Any] = {}
        attributes = dict(self.attributes)
        for key, value in partial.items():
            if key == "status":
                changes["status"] = str(value)
            elif key == "created_at":
                changes["created_at"] = parse_timestamp(value)
            elif key in ("id", "domain"):
                continue
            else:
                attributes[key] = value
        changes["attributes"] = attributes
        return dataclasses.replace(self, **changes)

    def to_dict(self) -> dict[str, Any]:
        """Flatten the record for JSON responses."""
        return {
            **self.attributes,
            "id": self.id,
            "domain": self.domain.value,
            "status": self.status,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    @classmethod
    def from_payload(cls, domain: Domain, payload: dict[str, Any]) -> Record:
        """Build a record from a backend JSON object.

        Keys are normalized to snake_case; ``_id`` becomes ``id``.

        Raises:
            ValueError: If the payload carries no identifier.
        """
        data = {normalize_key(k): v for k, v in payload.items()}
        record_id = data.pop("id", None)
        if record_id in (None, ""):
            msg = f"{domain.value} payload has no id"
            raise ValueError(msg)
        status = data.pop("status", "") or ""
        created_at = parse_timestamp(data.pop("created_at", None))
        data.pop("domain", None)
        return cls(
            id=str(record_id),
            domain=domain,
            status=str(status),
            created_at=created_at,
            attributes=data,
        )


class RecordStore:
    """Holds the record collections for every domain.

    Example:
        store = RecordStore()
        store.replace_all(Domain.ORDER, records)
        store.patch_one(Domain.ORDER, "ord-1", {"status": "accepted"})
    """

    def __init__(self) -> None:
        self._collections: dict[Domain, list[Record]] = {d: [] for d in Domain}
        self._last_updated: dict[Domain, datetime | None] = dict.fromkeys(Domain)

    def get_all(self, domain: Domain) -> list[Record]:
        """Return a snapshot of every record in ``domain``."""
        return list(self._collections[domain])

    def get(self, domain: Domain, record_id: str) -> Record | None:
        """Return one record, or None when absent."""
        for record in self._collections[domain]:
            if record.id == record_id:
                return record
        return None

    def replace_all(self, domain: Domain, records: list[Record]) -> None:
        """Replace the whole collection for ``domain``."""
        self._collections[domain] = list(records)
        self._touch(domain)
        logger.debug("Replaced collection: domain=%s, count=%d", domain.value, len(records))

    def patch_one(self, domain: Domain, record_id: str, partial: dict[str, Any]) -> Record | None:
        """Apply a partial update to one record.

        A missing id is a silent no-op: it is logged and None is returned.
        Callers that care must check existence against their current view.
        """
        collection = self._collections[domain]
        for index, record in enumerate(collection):
            if record.id == record_id:
                updated = record.patched(partial)
                collection[index] = updated
                self._touch(domain)
                logger.debug(
                    "Patched record: domain=%s, id=%s, fields=%s",
                    domain.value,
                    record_id,
                    sorted(partial),
                )
                return updated

        logger.warning(
            "Patch target not found, ignoring: domain=%s, id=%s",
            domain.value,
            record_id,
        )
        return None

    def upsert(self, domain: Domain, record: Record) -> None:
        """Insert a pushed record at the head, or replace it in place."""
        collection = self._collections[domain]
        for index, existing in enumerate(collection):
            if existing.id == record.id:
                collection[index] = record
                break
        else:
            collection.insert(0, record)
        self._touch(domain)

    def last_updated(self, domain: Domain) -> datetime | None:
        """When ``domain`` was last written, or None if never."""
        return self._last_updated[domain]

    def _touch(self, domain: Domain) -> None:
        self._last_updated[domain] = datetime.now(UTC)
