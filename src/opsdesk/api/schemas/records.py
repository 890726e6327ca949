"""Pydantic schemas for the record view endpoints.

These schemas define the request/response models for browsing a record
domain, changing its filter/sort/page state, managing the selection and
running bulk actions.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from opsdesk.services.query import SortDirection

# -----------------------------------------------------------------------------
# View state
# -----------------------------------------------------------------------------


class FiltersUpdate(BaseModel):
    """Filter criteria change for the active domain.

    Criteria are merged into the current ones unless ``replace`` is set.
    Use ``"all"`` or an empty string to clear a single criterion.
    """

    filters: dict[str, Any] = Field(default_factory=dict, description="Field -> criterion")
    replace: bool = Field(False, description="Replace all criteria instead of merging")

    model_config = ConfigDict(extra="forbid")


class SortUpdate(BaseModel):
    field: str = Field(..., min_length=1, max_length=64, description="Field to sort on")
    direction: SortDirection = Field(SortDirection.DESC, description="asc or desc")

    model_config = ConfigDict(extra="forbid")


class PageUpdate(BaseModel):
    page: int = Field(1, ge=1, description="Requested page number (1-based)")
    page_size: int | None = Field(None, ge=1, le=500, description="New page size")

    model_config = ConfigDict(extra="forbid")


class PollingUpdate(BaseModel):
    enabled: bool = Field(..., description="Turn real-time updates on or off")

    model_config = ConfigDict(extra="forbid")


class PageResponse(BaseModel):
    """Current visible page plus the state a table needs to render."""

    domain: str = Field(..., description="Active record domain")
    items: list[dict[str, Any]] = Field(default_factory=list, description="Records on the page")
    total_count: int = Field(..., description="Filtered record count before slicing")
    current_page: int = Field(..., description="Page number after clamping")
    total_pages: int = Field(..., description="Number of pages for the filtered set")
    page_size: int = Field(..., description="Records per page")
    selected: list[str] = Field(default_factory=list, description="Selected record ids")
    polling: bool = Field(..., description="Whether real-time updates are on")
    last_error: str | None = Field(None, description="Last refresh failure, if any")


# -----------------------------------------------------------------------------
# Actions
# -----------------------------------------------------------------------------


class BulkRequest(BaseModel):
    """Bulk action over the current selection.

    An unset action is accepted and results in no dispatch.
    """

    action: str | None = Field(None, description="approve, reject, reassign or update_status")
    data: dict[str, Any] = Field(default_factory=dict, description="Action parameters")

    model_config = ConfigDict(extra="forbid")


class ActionRequest(BaseModel):
    """Action on a single record."""

    action: str = Field(..., min_length=1, description="approve, reject, reassign or update_status")
    data: dict[str, Any] = Field(default_factory=dict, description="Action parameters")

    model_config = ConfigDict(extra="forbid")

    @field_validator("action")
    @classmethod
    def strip_action(cls, v: str) -> str:
        return v.strip()


class OutcomeResponse(BaseModel):
    record_id: str
    success: bool
    error_message: str | None = None
    warning: str | None = None
    record: dict[str, Any] | None = None


class BulkResponse(BaseModel):
    """Per-id outcomes of a bulk action."""

    dispatched: bool = Field(..., description="False when nothing was sent")
    action: str | None = None
    succeeded: list[str] = Field(default_factory=list)
    failed: dict[str, str | None] = Field(default_factory=dict)
    warnings: list[str] = Field(default_factory=list)
    partial_failure: bool = False
    total_failure: bool = False


class StatisticsResponse(BaseModel):
    domain: str
    counts_by_status: dict[str, int]
    derived_rates: dict[str, float]
    total: int


class SelectionResponse(BaseModel):
    domain: str
    selected: list[str] = Field(default_factory=list, description="Selected record ids")
    count: int = 0


class PollingResponse(BaseModel):
    domain: str
    enabled: bool
    interval_seconds: float
    ticks: int = 0
    failures: int = 0
