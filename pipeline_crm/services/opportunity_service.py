"""Opportunity data-access service.

Stage changes go through the ``update_opportunity_stage`` procedure, which
records stage history server-side. The client does not restrict which stage
may follow which; the backend is the authority.
"""

import asyncio
import logging
from collections.abc import Mapping
from decimal import Decimal
from typing import Any

from pipeline_crm.core.config import get_settings
from pipeline_crm.core.exceptions import CRMException, DatabaseError, NotFoundError, ValidationError
from pipeline_crm.core.result import ServiceResult, service_result
from pipeline_crm.core.session import Session, require_session
from pipeline_crm.core.validation import (
    is_valid_uuid,
    parse_decimal_or_none,
    parse_payload,
    require_percentage,
    require_uuid,
)
from pipeline_crm.db.supabase import SupabaseClient
from pipeline_crm.models.opportunity import (
    OPPORTUNITY_SORT_COLUMNS,
    OPPORTUNITY_STAGE_LABELS,
    OPPORTUNITY_TYPE_LABELS,
    STAGE_PROGRESS,
    OpportunityCreate,
    OpportunityFilters,
    OpportunitySort,
    OpportunityStage,
    PipelineMetric,
)

logger = logging.getLogger(__name__)

OPPORTUNITY_LIST_SELECT = (
    "*, account:accounts(id, name, company_type, email, phone), "
    "property:properties(id, name, building_type, address, square_footage), "
    "assigned_to:user_profiles!assigned_to(id, full_name, email)"
)
OPPORTUNITY_DETAIL_SELECT = (
    "*, account:accounts(id, name, company_type, email, phone), "
    "property:properties(id, name, building_type, address, square_footage), "
    "assigned_rep:user_profiles!assigned_to(id, full_name, email)"
)

CURRENCY_SYMBOLS = {"USD": "$", "CAD": "CA$", "EUR": "€", "GBP": "£"}

# Public label lists for pickers
OPPORTUNITY_TYPES: list[dict[str, str]] = [
    {"value": t.value, "label": label} for t, label in OPPORTUNITY_TYPE_LABELS.items()
]
OPPORTUNITY_STAGES: list[dict[str, str]] = [
    {"value": s.value, "label": label} for s, label in OPPORTUNITY_STAGE_LABELS.items()
]


def _require_stage(stage: str) -> str:
    if stage not in {s.value for s in OpportunityStage}:
        raise ValidationError(f"Unknown opportunity stage '{stage}'", field="stage")
    return stage


def _stage_label(stage: str | None) -> str:
    try:
        return OPPORTUNITY_STAGE_LABELS[OpportunityStage(stage)]
    except ValueError:
        return (stage or "").replace("_", " ").title()


def _first_row(data: Any) -> dict[str, Any] | None:
    if isinstance(data, list):
        return data[0] if data else None
    return data


def _from_details_row(opp: dict[str, Any]) -> dict[str, Any]:
    """Reshape a flat get_opportunities_with_details row into nested objects."""
    return {
        "id": opp.get("id"),
        "name": opp.get("name") or "Unnamed Opportunity",
        "opportunity_type": opp.get("opportunity_type"),
        "stage": opp.get("stage"),
        "bid_value": opp.get("bid_value") or 0,
        "currency": opp.get("currency") or "USD",
        "expected_close_date": opp.get("expected_close_date"),
        "probability": opp.get("probability") or 0,
        "description": opp.get("description"),
        "created_at": opp.get("created_at"),
        "updated_at": opp.get("updated_at"),
        "account": {
            "id": opp.get("account_id"),
            "name": opp.get("account_name"),
            "company_type": opp.get("account_company_type") or "",
        }
        if opp.get("account_name")
        else None,
        "property": {
            "id": opp.get("property_id"),
            "name": opp.get("property_name"),
            "building_type": opp.get("property_building_type") or "",
            "address": opp.get("property_address") or "",
        }
        if opp.get("property_name")
        else None,
        "assigned_to": {
            "id": opp.get("assigned_to_id"),
            "full_name": opp.get("assigned_to_name"),
            "email": opp.get("assigned_to_email") or "",
        }
        if opp.get("assigned_to_name")
        else None,
    }


class OpportunityService:
    """Service for opportunities, pipeline metrics and their pickers."""

    OPPORTUNITY_TYPES = OPPORTUNITY_TYPES
    OPPORTUNITY_STAGES = OPPORTUNITY_STAGES

    def __init__(self, db: SupabaseClient) -> None:
        """Initialize OpportunityService.

        Args:
            db: Session-bound Supabase client.
        """
        self.db = db

    @staticmethod
    def calculate_weighted_value(bid_value: Any, probability: Any) -> Decimal:
        """Bid value weighted by win probability.

        Missing or unparseable inputs count as zero.

        Args:
            bid_value: Bid amount (number, numeric string, or None).
            probability: Percentage 0-100.

        Returns:
            bid_value * probability / 100.
        """
        value = parse_decimal_or_none(bid_value) or Decimal(0)
        prob = parse_decimal_or_none(probability)
        prob_int = int(prob) if prob is not None else 0
        if not value or not prob_int:
            return Decimal(0)
        return value * prob_int / 100

    @staticmethod
    def format_bid_value(value: Any, currency: str | None = "USD") -> str:
        """Whole-unit currency string, e.g. "$12,500"."""
        amount = parse_decimal_or_none(value) or Decimal(0)
        code = (currency or "USD").upper()
        symbol = CURRENCY_SYMBOLS.get(code)
        if amount == 0:
            return f"{symbol}0" if symbol else f"{code} 0"
        formatted = f"{amount:,.0f}"
        return f"{symbol}{formatted}" if symbol else f"{code} {formatted}"

    @staticmethod
    def get_stage_progress(stage: str | None) -> int:
        """Percent of the pipeline a stage represents."""
        return STAGE_PROGRESS.get(stage or "", 0)

    @service_result("Failed to load opportunities. Please check your connection and try again.")
    async def get_opportunities(
        self,
        session: Session,
        filters: OpportunityFilters | Mapping[str, Any] | None = None,
        sort: OpportunitySort | Mapping[str, Any] | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> ServiceResult[list[dict[str, Any]]]:
        """List opportunities.

        The plain listing (stage/type filters only, newest first) goes
        through the ``get_opportunities_with_details`` procedure; anything
        richer is a direct table query with an exact count. Id filters that
        are not valid UUIDs are dropped rather than sent.

        Returns:
            Rows, with count set to the total matching rows when known.
        """
        require_session(session)
        f = filters if isinstance(filters, OpportunityFilters) else parse_payload(
            OpportunityFilters, filters or {}
        )
        s = sort if isinstance(sort, OpportunitySort) else parse_payload(
            OpportunitySort, sort or {}
        )

        account_id = f.account_id if is_valid_uuid(f.account_id) else None
        property_id = f.property_id if is_valid_uuid(f.property_id) else None
        assigned_to = f.assigned_to if is_valid_uuid(f.assigned_to) else None
        search = (f.search or "").strip()

        is_simple = not (
            search
            or account_id
            or property_id
            or assigned_to
            or f.min_bid_value
            or f.max_bid_value
        ) and s.is_default

        if is_simple:
            response = await self.db.execute(
                self.db.rpc(
                    "get_opportunities_with_details",
                    {
                        "filter_stage": f.stage or None,
                        "filter_type": f.opportunity_type or None,
                        "limit_count": limit or 50,
                        "offset_count": offset or 0,
                    },
                ),
                resource="Opportunity",
            )
            rows = [_from_details_row(r) for r in response.data or []]
            return ServiceResult.ok(rows)

        query = self.db.table("opportunities").select(OPPORTUNITY_LIST_SELECT, count="exact")
        if f.stage:
            query = query.eq("stage", f.stage)
        if f.opportunity_type:
            query = query.eq("opportunity_type", f.opportunity_type)
        if account_id:
            query = query.eq("account_id", account_id)
        if property_id:
            query = query.eq("property_id", property_id)
        if assigned_to:
            query = query.eq("assigned_to", assigned_to)
        if search:
            query = query.or_(f"name.ilike.%{search}%,description.ilike.%{search}%")
        if f.min_bid_value:
            query = query.gte("bid_value", str(f.min_bid_value))
        if f.max_bid_value:
            query = query.lte("bid_value", str(f.max_bid_value))

        if s.column in OPPORTUNITY_SORT_COLUMNS:
            query = query.order(s.column, desc=s.direction == "desc")
        else:
            query = query.order("created_at", desc=True)

        max_limit = get_settings().OPPORTUNITY_MAX_PAGE_SIZE
        safe_limit = max(1, min(limit or 50, max_limit))
        safe_offset = max(0, offset or 0)
        query = query.range(safe_offset, safe_offset + safe_limit - 1)

        response = await self.db.execute(query, resource="Opportunity")
        rows = [
            {
                **opp,
                "bid_value": opp.get("bid_value") or 0,
                "probability": opp.get("probability") or 0,
                "currency": opp.get("currency") or "USD",
            }
            for opp in response.data or []
        ]
        return ServiceResult.ok(rows, count=response.count or 0)

    @service_result("Failed to load pipeline metrics")
    async def get_pipeline_metrics(self, session: Session) -> list[PipelineMetric]:
        """Per-stage count, total value and average probability, every stage present."""
        require_session(session)
        response = await self.db.execute(
            self.db.rpc("get_opportunity_pipeline_metrics"), resource="Opportunity"
        )
        by_stage: dict[str, PipelineMetric] = {}
        for metric in response.data or []:
            stage = metric.get("stage")
            by_stage[stage] = PipelineMetric(
                stage=stage,
                label=_stage_label(stage),
                count_opportunities=int(metric.get("count_opportunities") or 0),
                total_value=float(metric.get("total_value") or 0),
                avg_probability=float(metric.get("avg_probability") or 0),
            )
        return [
            by_stage.get(s.value) or PipelineMetric(stage=s.value, label=label)
            for s, label in OPPORTUNITY_STAGE_LABELS.items()
        ]

    @service_result("Opportunity not found")
    async def get_opportunity_by_id(self, session: Session, opportunity_id: str) -> dict[str, Any]:
        """Fetch one opportunity with account, property and rep."""
        require_session(session)
        require_uuid(opportunity_id, "Opportunity")
        response = await self.db.execute(
            self.db.table("opportunities")
            .select(OPPORTUNITY_DETAIL_SELECT)
            .eq("id", opportunity_id)
            .single(),
            resource="Opportunity",
        )
        if not response.data:
            raise NotFoundError("Opportunity", opportunity_id)
        return response.data

    @service_result("Failed to create opportunity")
    async def create_opportunity(
        self, session: Session, data: OpportunityCreate | Mapping[str, Any]
    ) -> dict[str, Any]:
        """Create an opportunity.

        Raises (as a failed result):
            ValidationError: If name or type is missing, or probability is out of range.
        """
        require_session(session)
        if isinstance(data, Mapping) and not (data.get("name") and data.get("opportunity_type")):
            raise ValidationError("Opportunity name and type are required")
        payload = parse_payload(OpportunityCreate, data)
        row = payload.model_dump(mode="json", exclude_none=True)
        if "assigned_to" not in row:
            row["assigned_to"] = session.user_id

        response = await self.db.execute(
            self.db.table("opportunities").insert(row), resource="Opportunity"
        )
        if not response.data:
            raise DatabaseError("Failed to create opportunity")
        logger.info(
            "Opportunity created",
            extra={"opportunity_id": response.data[0].get("id"), "user_id": session.user_id},
        )
        return response.data[0]

    @service_result("Failed to update opportunity")
    async def update_opportunity(
        self, session: Session, opportunity_id: str, updates: Mapping[str, Any]
    ) -> dict[str, Any]:
        """Update opportunity fields, normalizing bid and probability inputs."""
        require_session(session)
        require_uuid(opportunity_id, "Opportunity")
        processed = dict(updates)
        if "bid_value" in processed:
            bid = parse_decimal_or_none(processed["bid_value"])
            processed["bid_value"] = str(bid) if bid is not None else None
        if "probability" in processed:
            processed["probability"] = require_percentage(processed["probability"], "probability")
        if processed.get("stage") is not None:
            _require_stage(processed["stage"])

        response = await self.db.execute(
            self.db.table("opportunities").update(processed).eq("id", opportunity_id),
            resource="Opportunity",
        )
        if not response.data:
            raise NotFoundError("Opportunity", opportunity_id)
        return response.data[0]

    @service_result("Failed to update opportunity stage")
    async def update_opportunity_stage(
        self,
        session: Session,
        opportunity_id: str,
        new_stage: str,
        notes: str | None = None,
    ) -> dict[str, Any]:
        """Move an opportunity to any stage through the stage procedure."""
        require_session(session)
        require_uuid(opportunity_id, "Opportunity")
        _require_stage(new_stage)

        response = await self.db.execute(
            self.db.rpc(
                "update_opportunity_stage",
                {
                    "opportunity_uuid": opportunity_id,
                    "new_stage": new_stage,
                    "stage_notes": notes,
                },
            ),
            resource="Opportunity",
        )
        row = _first_row(response.data)
        if not row or not row.get("success"):
            raise CRMException(
                message=(row or {}).get("message") or "Failed to update opportunity stage",
                code="STAGE_UPDATE_FAILED",
            )
        logger.info(
            "Opportunity stage updated",
            extra={"opportunity_id": opportunity_id, "new_stage": new_stage},
        )
        return row

    @service_result("Failed to delete opportunity")
    async def delete_opportunity(self, session: Session, opportunity_id: str) -> None:
        """Delete an opportunity."""
        require_session(session)
        require_uuid(opportunity_id, "Opportunity")
        await self.db.execute(
            self.db.table("opportunities").delete().eq("id", opportunity_id),
            resource="Opportunity",
        )

    async def _active_accounts(self) -> list[dict[str, Any]]:
        response = await self.db.execute(
            self.db.table("accounts")
            .select("id, name, company_type, city, state")
            .eq("is_active", True)
            .order("name"),
            resource="Account",
        )
        return response.data or []

    async def _properties(self) -> list[dict[str, Any]]:
        response = await self.db.execute(
            self.db.table("properties")
            .select("id, name, building_type, address, city, state, account:accounts(id, name)")
            .order("name"),
            resource="Property",
        )
        return response.data or []

    async def _reps(self) -> list[dict[str, Any]]:
        response = await self.db.execute(
            self.db.table("user_profiles")
            .select("id, full_name, email, role")
            .in_("role", ["rep", "manager"])
            .eq("is_active", True)
            .order("full_name"),
            resource="User profile",
        )
        return response.data or []

    @service_result("Failed to fetch accounts")
    async def get_available_accounts(self, session: Session) -> list[dict[str, Any]]:
        """Active accounts for the account picker."""
        require_session(session)
        return await self._active_accounts()

    @service_result("Failed to fetch properties")
    async def get_available_properties(self, session: Session) -> list[dict[str, Any]]:
        """Properties for the property picker."""
        require_session(session)
        return await self._properties()

    @service_result("Failed to fetch representatives")
    async def get_available_reps(self, session: Session) -> list[dict[str, Any]]:
        """Active reps and managers for assignment."""
        require_session(session)
        return await self._reps()

    @service_result("Failed to load form data")
    async def get_reference_data(self, session: Session) -> dict[str, list[dict[str, Any]]]:
        """Load accounts, properties and team members in parallel."""
        require_session(session)
        accounts, properties, reps = await asyncio.gather(
            self._active_accounts(), self._properties(), self._reps()
        )
        return {"accounts": accounts, "properties": properties, "reps": reps}

    @service_result("Failed to fetch account opportunities")
    async def get_opportunities_by_account(
        self, session: Session, account_id: str
    ) -> list[dict[str, Any]]:
        """Opportunities for an account, newest first."""
        require_session(session)
        require_uuid(account_id, "Account")
        response = await self.db.execute(
            self.db.table("opportunities")
            .select(
                "*, property:properties(id, name, building_type, address), "
                "assigned_rep:user_profiles!assigned_to(id, full_name, email)"
            )
            .eq("account_id", account_id)
            .order("created_at", desc=True),
            resource="Opportunity",
        )
        return response.data or []

    @service_result("Failed to fetch property opportunities")
    async def get_opportunities_by_property(
        self, session: Session, property_id: str
    ) -> list[dict[str, Any]]:
        """Opportunities for a property, newest first."""
        require_session(session)
        require_uuid(property_id, "Property")
        response = await self.db.execute(
            self.db.table("opportunities")
            .select(
                "*, account:accounts(id, name, company_type), "
                "assigned_rep:user_profiles!assigned_to(id, full_name, email)"
            )
            .eq("property_id", property_id)
            .order("created_at", desc=True),
            resource="Opportunity",
        )
        return response.data or []
