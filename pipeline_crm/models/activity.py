"""Activity Pydantic models."""

from datetime import date, datetime

from pydantic import BaseModel, Field


class ActivityCreate(BaseModel):
    """Activity logged from a detail view."""

    activity_type: str = Field(..., min_length=1, description="call, email, site_visit, ...")
    subject: str = Field(..., min_length=1, description="Short summary")
    activity_date: datetime | date = Field(..., description="When it happened")
    outcome: str | None = Field(None, description="Result of the touch")
    notes: str | None = Field(None, description="Free-form notes")
    follow_up_date: datetime | date | None = Field(None, description="Next touch")
    account_id: str | None = None
    contact_id: str | None = None
    property_id: str | None = None
    opportunity_id: str | None = None
