"""Prospect-to-account conversion models."""

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, field_validator


class MatchType(str, Enum):
    """Why the server thinks an account duplicates the prospect."""

    DOMAIN = "domain"
    PHONE = "phone"
    NAME_SIMILARITY = "name_similarity"
    FUZZY = "fuzzy"


MATCH_TYPE_LABELS: dict[MatchType, str] = {
    MatchType.DOMAIN: "Domain Match",
    MatchType.PHONE: "Phone Match",
    MatchType.NAME_SIMILARITY: "Name Similar",
    MatchType.FUZZY: "Fuzzy Match",
}


class DuplicateMatch(BaseModel):
    """One candidate account returned by the duplicate finder.

    The score is produced server-side and treated as opaque; the client
    only clamps it into [0, 1] and sorts by it.
    """

    account_id: str = Field(..., description="Candidate account ID")
    account_name: str = Field("", description="Candidate account name")
    match_type: MatchType = Field(MatchType.FUZZY, description="Match reason")
    similarity_score: float = Field(0.0, ge=0.0, le=1.0, description="Server score")

    @field_validator("match_type", mode="before")
    @classmethod
    def unknown_match_is_fuzzy(cls, v: Any) -> Any:
        """Unrecognized match reasons are shown as fuzzy."""
        if v in {m.value for m in MatchType} or isinstance(v, MatchType):
            return v
        return MatchType.FUZZY

    @field_validator("similarity_score", mode="before")
    @classmethod
    def clamp_score(cls, v: Any) -> float:
        """Coerce and clamp the score into [0, 1]."""
        try:
            score = float(v or 0)
        except (TypeError, ValueError):
            return 0.0
        return min(1.0, max(0.0, score))

    @property
    def match_label(self) -> str:
        return MATCH_TYPE_LABELS[self.match_type]

    @property
    def similarity_percent(self) -> str:
        return f"{round(self.similarity_score * 100)}%"


class ConversionResult(BaseModel):
    """Outcome returned by the convert_prospect_to_account procedure."""

    success: bool = True
    message: str | None = None
    account_id: str | None = None
    prospect_id: str | None = None


class AccountDraft(BaseModel):
    """Account fields collected on the conversion form."""

    name: str = Field("", description="Company name")
    company_type: str = Field(..., description="Account company type")
    stage: str = Field("Prospect", description="Initial account stage")
    email: str | None = None
    phone: str | None = None
    website: str | None = None
    domain: str | None = None
    address: str | None = None
    city: str | None = None
    state: str | None = None
    zip_code: str | None = None
    notes: str | None = None
