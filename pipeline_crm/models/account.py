"""Account Pydantic models."""

from pydantic import BaseModel, Field

COMPANY_TYPES: list[str] = [
    "Property Management",
    "General Contractor",
    "Developer",
    "REIT/Institutional Investor",
    "Asset Manager",
    "Building Owner",
    "Facility Manager",
    "Roofing Contractor",
    "Insurance",
    "Architecture/Engineering",
    "Commercial Office",
    "Retail",
    "Healthcare",
    "Affiliate: Manufacturer",
    "Affiliate: Real Estate",
]

DEFAULT_COMPANY_TYPE = "Property Management"

ACCOUNT_STAGES: list[str] = [
    "Prospect",
    "Contacted",
    "Vendor Packet Request",
    "Vendor Packet Submitted",
    "Approved for Work",
    "Actively Engaged",
]


class AccountFilters(BaseModel):
    """Filters applied locally over the unfiltered accounts snapshot."""

    search: str | None = Field(None, description="Case-insensitive name substring")
    company_type: str | None = None
    stage: str | None = None
    assigned_rep: str | None = Field(None, description="assigned_rep_id to match")
    show_inactive: bool = False


class AccountStats(BaseModel):
    """Account counts for the list header."""

    total: int = 0
    by_stage: dict[str, int] = Field(default_factory=dict)
    by_company_type: dict[str, int] = Field(default_factory=dict)
