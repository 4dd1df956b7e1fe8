"""Opportunity Pydantic models.

This module contains the opportunity type and stage enums, the labels the
list and detail views show for them, and the create/filter payloads.
"""

from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator

from pipeline_crm.core.validation import parse_decimal_or_none, parse_int_or_none


class OpportunityType(str, Enum):
    """Kind of roofing work being bid."""

    NEW_CONSTRUCTION = "new_construction"
    INSPECTION = "inspection"
    REPAIR = "repair"
    MAINTENANCE = "maintenance"
    RE_ROOF = "re_roof"


class OpportunityStage(str, Enum):
    """Pipeline stage. Transitions are advisory; any stage may follow any other."""

    IDENTIFIED = "identified"
    QUALIFIED = "qualified"
    PROPOSAL_SENT = "proposal_sent"
    NEGOTIATION = "negotiation"
    WON = "won"
    LOST = "lost"


OPPORTUNITY_TYPE_LABELS: dict[OpportunityType, str] = {
    OpportunityType.NEW_CONSTRUCTION: "New Construction",
    OpportunityType.INSPECTION: "Inspection",
    OpportunityType.REPAIR: "Repair",
    OpportunityType.MAINTENANCE: "Maintenance",
    OpportunityType.RE_ROOF: "Re-roof",
}

OPPORTUNITY_STAGE_LABELS: dict[OpportunityStage, str] = {
    OpportunityStage.IDENTIFIED: "Identified",
    OpportunityStage.QUALIFIED: "Qualified",
    OpportunityStage.PROPOSAL_SENT: "Proposal Sent",
    OpportunityStage.NEGOTIATION: "Negotiation",
    OpportunityStage.WON: "Won",
    OpportunityStage.LOST: "Lost",
}

STAGE_PROGRESS: dict[str, int] = {
    "identified": 20,
    "qualified": 40,
    "proposal_sent": 60,
    "negotiation": 80,
    "won": 100,
    "lost": 0,
}

OPPORTUNITY_SORT_COLUMNS = (
    "name",
    "stage",
    "bid_value",
    "created_at",
    "updated_at",
    "expected_close_date",
)


class OpportunityCreate(BaseModel):
    """Payload for the add-opportunity form."""

    name: str = Field(..., min_length=1, description="Opportunity name")
    opportunity_type: OpportunityType = Field(..., description="Kind of work")
    stage: OpportunityStage = Field(OpportunityStage.IDENTIFIED, description="Initial stage")
    bid_value: Decimal | None = Field(None, ge=0, description="Bid amount")
    currency: str = Field("USD", description="ISO currency code")
    probability: int | None = Field(None, ge=0, le=100, description="Win probability")
    expected_close_date: date | None = Field(None, description="Expected close date")
    account_id: str | None = Field(None, description="Linked account")
    property_id: str | None = Field(None, description="Linked property")
    assigned_to: str | None = Field(None, description="Assigned rep")
    description: str | None = Field(None, description="Notes")

    @field_validator("bid_value", mode="before")
    @classmethod
    def parse_bid(cls, v: Any) -> Decimal | None:
        """Blank bid inputs become None."""
        return parse_decimal_or_none(v)

    @field_validator("probability", mode="before")
    @classmethod
    def parse_probability(cls, v: Any) -> int | None:
        """Blank probability inputs become None."""
        return parse_int_or_none(v)


class OpportunityFilters(BaseModel):
    """Server-side filters for the opportunities list."""

    stage: str | None = None
    opportunity_type: str | None = None
    search: str | None = None
    account_id: str | None = None
    property_id: str | None = None
    assigned_to: str | None = None
    min_bid_value: Decimal | None = None
    max_bid_value: Decimal | None = None

    @field_validator("min_bid_value", "max_bid_value", mode="before")
    @classmethod
    def parse_bounds(cls, v: Any) -> Decimal | None:
        """Non-numeric bounds are ignored."""
        return parse_decimal_or_none(v)


class OpportunitySort(BaseModel):
    """Sort parameters for the opportunities list."""

    column: str = "created_at"
    direction: Literal["asc", "desc"] = "desc"

    @property
    def is_default(self) -> bool:
        return self.column == "created_at" and self.direction == "desc"


class PipelineMetric(BaseModel):
    """Aggregated pipeline numbers for one stage."""

    stage: str
    label: str
    count_opportunities: int = 0
    total_value: float = 0.0
    avg_probability: float = 0.0
