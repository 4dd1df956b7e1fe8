"""Prospect Pydantic models.

This module contains the prospect lifecycle enum, the create payload and
the list filter/sort parameters sent to the prospects table.
"""

from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from pipeline_crm.core.validation import parse_int_or_none


class ProspectStatus(str, Enum):
    """Lifecycle status of a prospect."""

    UNCONTACTED = "uncontacted"
    RESEARCHING = "researching"
    ATTEMPTED = "attempted"
    CONTACTED = "contacted"
    DISQUALIFIED = "disqualified"
    CONVERTED = "converted"


# Statuses shown when the caller does not pick any
DEFAULT_LIST_STATUSES: list[str] = [
    ProspectStatus.UNCONTACTED.value,
    ProspectStatus.RESEARCHING.value,
    ProspectStatus.ATTEMPTED.value,
    ProspectStatus.CONTACTED.value,
]

PROSPECT_SORT_COLUMNS = ("icp_fit_score", "name", "created_at", "last_activity_at")


class ProspectCreate(BaseModel):
    """Payload for creating a prospect from the add-prospect form."""

    name: str = Field(..., min_length=1, description="Company name")
    domain: str | None = Field(None, description="Company domain")
    phone: str | None = Field(None, description="Main phone number")
    website: str | None = Field(None, description="Website URL")
    address: str | None = Field(None, description="Street address")
    city: str | None = Field(None, description="City")
    state: str | None = Field(None, description="State")
    zip_code: str | None = Field(None, description="ZIP code")
    company_type: str | None = Field(None, description="Company classification")
    employee_count: int | None = Field(None, ge=0, description="Headcount")
    property_count_estimate: int | None = Field(None, ge=0, description="Estimated properties")
    sqft_estimate: int | None = Field(None, ge=0, description="Estimated square footage")
    building_types: list[str] = Field(default_factory=list, description="Building types")
    icp_fit_score: int | None = Field(None, ge=0, le=100, description="ICP fit score")
    source: str | None = Field(None, description="Where the prospect came from")
    tags: list[str] = Field(default_factory=list, description="Free-form tags")
    notes: str | None = Field(None, description="Research notes")

    @field_validator(
        "employee_count",
        "property_count_estimate",
        "sqft_estimate",
        "icp_fit_score",
        mode="before",
    )
    @classmethod
    def blank_to_none(cls, v: Any) -> int | None:
        """Form inputs arrive as strings; blanks and junk become None."""
        return parse_int_or_none(v)


class ProspectFilters(BaseModel):
    """Server-side filters for the prospects list."""

    model_config = ConfigDict(validate_assignment=True)

    status: list[str] = Field(default_factory=lambda: list(DEFAULT_LIST_STATUSES))
    min_icp_score: int = Field(0, ge=0, le=100)
    state: str | None = None
    city: str | None = None
    source: str | None = None
    assigned_to: str | None = Field(
        None, description="'me', 'unassigned', 'any', or a user id"
    )
    search: str | None = None


class ProspectSort(BaseModel):
    """Sort parameters for the prospects list."""

    column: str = "created_at"
    direction: Literal["asc", "desc"] = "desc"

    @property
    def safe_column(self) -> str:
        """Whitelisted sort column; unknown columns fall back to created_at."""
        return self.column if self.column in PROSPECT_SORT_COLUMNS else "created_at"
