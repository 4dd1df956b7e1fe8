"""Prospect data-access service.

Provides functionality for:
- Filtered, sorted, paginated prospect lists and status counts
- Prospect CRUD, claiming and status updates
- Duplicate-account search ahead of conversion
- Prospect-to-account conversion through the server procedure
- Follow-up task creation (first touch, route visits)
- Bulk assignment and status updates
- CSV export rows
"""

import logging
from collections.abc import Mapping, Sequence
from datetime import UTC, date, datetime
from typing import Any

from pipeline_crm.core.config import get_settings
from pipeline_crm.core.exceptions import (
    PG_UNDEFINED_FUNCTION,
    CRMException,
    DatabaseError,
    NotFoundError,
    ProspectAlreadyConvertedError,
    ValidationError,
)
from pipeline_crm.core.result import ServiceResult, service_result
from pipeline_crm.core.session import Session, require_session
from pipeline_crm.core.validation import parse_payload, require_uuid
from pipeline_crm.db.supabase import SupabaseClient
from pipeline_crm.models.conversion import ConversionResult, DuplicateMatch
from pipeline_crm.models.prospect import (
    ProspectCreate,
    ProspectFilters,
    ProspectSort,
    ProspectStatus,
)

logger = logging.getLogger(__name__)

PROSPECT_LIST_SELECT = (
    "*, assigned_user:user_profiles!prospects_assigned_to_fkey(id, full_name, email)"
)
PROSPECT_DETAIL_SELECT = (
    "*, assigned_user:user_profiles!prospects_assigned_to_fkey(id, full_name, email), "
    "creator:user_profiles!prospects_created_by_fkey(id, full_name, email), "
    "linked_account:accounts(id, name, stage)"
)

# Column order of the prospects CSV download
EXPORT_COLUMNS: list[str] = [
    "Name",
    "Domain",
    "Phone",
    "City",
    "State",
    "Company Type",
    "ICP Score",
    "Status",
    "Source",
    "Assigned To",
    "Created",
]


def _now_iso() -> str:
    return datetime.now(UTC).isoformat()


def _format_created(value: Any) -> str:
    if not value:
        return ""
    try:
        return datetime.fromisoformat(str(value)).strftime("%m/%d/%Y")
    except ValueError:
        return str(value)


def _with_derived_fields(row: dict[str, Any]) -> dict[str, Any]:
    assigned = row.get("assigned_user") or {}
    return {
        **row,
        "assigned_to_name": assigned.get("full_name"),
        "has_phone": bool(row.get("phone")),
        "has_website": bool(row.get("website")),
    }


def _coerce_filters(filters: ProspectFilters | Mapping[str, Any] | None) -> ProspectFilters:
    if filters is None:
        return ProspectFilters()
    if isinstance(filters, ProspectFilters):
        return filters
    return parse_payload(ProspectFilters, filters)


def _coerce_sort(sort: ProspectSort | Mapping[str, Any] | None) -> ProspectSort:
    if sort is None:
        return ProspectSort()
    if isinstance(sort, ProspectSort):
        return sort
    return parse_payload(ProspectSort, sort)


def _require_status(status: str) -> str:
    valid = {s.value for s in ProspectStatus}
    if status not in valid:
        raise ValidationError(f"Unknown prospect status '{status}'", field="status")
    if status == ProspectStatus.CONVERTED.value:
        raise ValidationError(
            "Use the conversion workflow to convert a prospect", field="status"
        )
    return status


def _require_ids(ids: Sequence[str]) -> list[str]:
    if not ids:
        raise ValidationError("No prospects selected", field="ids")
    return [require_uuid(i, "Prospect") for i in ids]


class ProspectService:
    """Service for prospect records and their conversion to accounts."""

    def __init__(self, db: SupabaseClient) -> None:
        """Initialize ProspectService.

        Args:
            db: Session-bound Supabase client.
        """
        self.db = db

    async def _fetch_prospects(
        self,
        session: Session,
        filters: ProspectFilters,
        sort: ProspectSort,
        limit: int,
        offset: int,
    ) -> tuple[list[dict[str, Any]], int | None]:
        query = self.db.table("prospects").select(PROSPECT_LIST_SELECT, count="exact")

        if filters.status:
            query = query.in_("status", filters.status)
        if filters.min_icp_score > 0:
            query = query.gte("icp_fit_score", filters.min_icp_score)
        if filters.state:
            query = query.ilike("state", f"%{filters.state}%")
        if filters.city:
            query = query.ilike("city", f"%{filters.city}%")
        if filters.source:
            query = query.ilike("source", f"%{filters.source}%")

        if filters.assigned_to == "me":
            query = query.eq("assigned_to", session.user_id)
        elif filters.assigned_to == "unassigned":
            query = query.is_("assigned_to", "null")
        elif filters.assigned_to and filters.assigned_to != "any":
            query = query.eq("assigned_to", filters.assigned_to)

        if filters.search:
            term = filters.search.strip()
            query = query.or_(f"name.ilike.%{term}%,domain.ilike.%{term}%")

        query = query.order(sort.safe_column, desc=sort.direction == "desc")
        query = query.range(offset, offset + limit - 1)

        response = await self.db.execute(query, resource="Prospect")
        return [_with_derived_fields(row) for row in response.data or []], response.count

    async def _update_row(self, prospect_id: str, updates: dict[str, Any]) -> dict[str, Any]:
        response = await self.db.execute(
            self.db.table("prospects")
            .update({**updates, "last_activity_at": _now_iso()})
            .eq("id", prospect_id),
            resource="Prospect",
        )
        if not response.data:
            raise NotFoundError("Prospect", prospect_id)
        return response.data[0]

    async def _create_task(self, task: dict[str, Any]) -> dict[str, Any]:
        response = await self.db.execute(self.db.table("tasks").insert(task), resource="Task")
        if not response.data:
            raise DatabaseError("Failed to create task")
        return response.data[0]

    @service_result("Failed to load prospects. Please try again.")
    async def list_prospects(
        self,
        session: Session,
        filters: ProspectFilters | Mapping[str, Any] | None = None,
        sort: ProspectSort | Mapping[str, Any] | None = None,
        limit: int | None = None,
        offset: int = 0,
    ) -> ServiceResult[list[dict[str, Any]]]:
        """List prospects matching the filters.

        Args:
            session: Caller session.
            filters: Status, score, location, source, assignment and search filters.
            sort: Sort column and direction.
            limit: Page size (defaults to PROSPECT_PAGE_SIZE).
            offset: Row offset.

        Returns:
            Prospect rows with assigned_to_name, has_phone and has_website
            added, with count set to the total matching rows.
        """
        require_session(session)
        page_size = limit or get_settings().PROSPECT_PAGE_SIZE
        rows, total = await self._fetch_prospects(
            session, _coerce_filters(filters), _coerce_sort(sort), page_size, max(0, offset)
        )
        return ServiceResult.ok(rows, count=total)

    @service_result("Failed to get prospect statistics.")
    async def get_prospect_stats(self, session: Session) -> dict[str, int]:
        """Count prospects by status, plus a total."""
        require_session(session)
        response = await self.db.execute(
            self.db.table("prospects").select("status, id"), resource="Prospect"
        )
        counts: dict[str, int] = {"total": 0}
        for row in response.data or []:
            status = row.get("status")
            counts[status] = counts.get(status, 0) + 1
            counts["total"] += 1
        return counts

    @service_result("Failed to load prospect details.")
    async def get_prospect(self, session: Session, prospect_id: str) -> dict[str, Any]:
        """Fetch one prospect with its assignee, creator and linked account."""
        require_session(session)
        require_uuid(prospect_id, "Prospect")
        response = await self.db.execute(
            self.db.table("prospects")
            .select(PROSPECT_DETAIL_SELECT)
            .eq("id", prospect_id)
            .single(),
            resource="Prospect",
        )
        if not response.data:
            raise NotFoundError("Prospect", prospect_id)
        return response.data

    @service_result("Failed to create prospect.")
    async def create_prospect(
        self, session: Session, data: ProspectCreate | Mapping[str, Any]
    ) -> dict[str, Any]:
        """Create a prospect owned by the caller's tenant.

        Raises (as a failed result):
            ValidationError: On missing name or out-of-range numbers.
            AuthenticationError: If the caller has no tenant.
        """
        require_session(session)
        payload = parse_payload(ProspectCreate, data)
        tenant_id = await self.db.resolve_tenant_id(session)

        row = {
            **payload.model_dump(),
            "tenant_id": tenant_id,
            "created_by": session.user_id,
        }
        response = await self.db.execute(
            self.db.table("prospects").insert(row), resource="Prospect"
        )
        if not response.data:
            raise DatabaseError("Failed to create prospect")
        logger.info(
            "Prospect created",
            extra={"prospect_id": response.data[0].get("id"), "user_id": session.user_id},
        )
        return response.data[0]

    @service_result("Failed to update prospect.")
    async def update_prospect(
        self, session: Session, prospect_id: str, updates: Mapping[str, Any]
    ) -> dict[str, Any]:
        """Update prospect fields and stamp last_activity_at."""
        require_session(session)
        require_uuid(prospect_id, "Prospect")
        if updates.get("status") is not None:
            _require_status(str(updates["status"]))
        return await self._update_row(prospect_id, dict(updates))

    @service_result("Failed to claim prospect.")
    async def claim_prospect(self, session: Session, prospect_id: str) -> dict[str, Any]:
        """Assign the prospect to the caller."""
        require_session(session)
        require_uuid(prospect_id, "Prospect")
        return await self._update_row(prospect_id, {"assigned_to": session.user_id})

    @service_result("Failed to update prospect status.")
    async def update_status(
        self,
        session: Session,
        prospect_id: str,
        status: str,
        notes: str | None = None,
    ) -> dict[str, Any]:
        """Move a prospect to a new status, optionally replacing its notes."""
        require_session(session)
        require_uuid(prospect_id, "Prospect")
        updates: dict[str, Any] = {"status": _require_status(status)}
        if notes:
            updates["notes"] = notes
        return await self._update_row(prospect_id, updates)

    @service_result("Failed to check for duplicate accounts.")
    async def find_duplicate_accounts(
        self, session: Session, prospect_data: Mapping[str, Any]
    ) -> list[DuplicateMatch]:
        """Ask the server for accounts that may duplicate this prospect.

        Search is scoped to the caller's tenant and keyed by name, domain and
        phone (city and state refine it). Results come back ranked by
        descending similarity. When the server's similarity function is
        unavailable the check is skipped and an empty list is returned.

        Args:
            session: Caller session.
            prospect_data: Mapping with name, domain, phone, city, state.

        Returns:
            Candidate accounts, best match first.
        """
        require_session(session)
        if not isinstance(prospect_data, Mapping):
            raise ValidationError("Invalid prospect data")
        if not (prospect_data.get("name") or "").strip():
            raise ValidationError("Company name is required", field="name")

        tenant_id = await self.db.resolve_tenant_id(session)
        params = {
            "prospect_name": prospect_data.get("name") or "",
            "prospect_domain": prospect_data.get("domain") or "",
            "prospect_phone": prospect_data.get("phone") or "",
            "prospect_city": prospect_data.get("city") or "",
            "prospect_state": prospect_data.get("state") or "",
            "current_tenant_id": tenant_id,
        }

        try:
            response = await self.db.execute(
                self.db.rpc("find_account_duplicates", params), resource="Account"
            )
        except DatabaseError as e:
            backend_message = str(e.details.get("backend_message", "")).lower()
            if e.backend_code == PG_UNDEFINED_FUNCTION or "similarity" in backend_message:
                logger.warning(
                    "Similarity function unavailable, skipping duplicate check",
                    extra={"backend_code": e.backend_code},
                )
                return []
            raise

        matches = [
            DuplicateMatch.model_validate(row)
            for row in response.data or []
            if row.get("account_id")
        ]
        matches.sort(key=lambda m: m.similarity_score, reverse=True)
        return matches

    @service_result("Failed to convert prospect to account.")
    async def convert_to_account(
        self,
        session: Session,
        prospect_id: str,
        link_account_id: str | None = None,
    ) -> ConversionResult:
        """Convert a prospect into a new account or link it to an existing one.

        The server procedure performs the conversion in one transaction. A
        prospect already in ``converted`` status is refused before the
        procedure is called, so no second account can be created.

        Args:
            session: Caller session.
            prospect_id: Prospect UUID.
            link_account_id: Existing account to link to; None creates a new one.

        Returns:
            The conversion outcome, including the account id.
        """
        require_session(session)
        require_uuid(prospect_id, "Prospect")
        if link_account_id is not None:
            require_uuid(link_account_id, "Account")

        current = await self.db.execute(
            self.db.table("prospects").select("id, status").eq("id", prospect_id).single(),
            resource="Prospect",
        )
        if not current.data:
            raise NotFoundError("Prospect", prospect_id)
        if current.data.get("status") == ProspectStatus.CONVERTED.value:
            raise ProspectAlreadyConvertedError(prospect_id)

        logger.info(
            "Converting prospect",
            extra={"prospect_id": prospect_id, "link_account_id": link_account_id},
        )
        response = await self.db.execute(
            self.db.rpc(
                "convert_prospect_to_account",
                {
                    "prospect_uuid": prospect_id,
                    "link_to_existing_account_id": link_account_id,
                },
            ),
            resource="Prospect",
        )

        rows = response.data
        row = (rows[0] if rows else None) if isinstance(rows, list) else rows
        if not row or not row.get("success"):
            message = (row or {}).get("message") or "Conversion failed."
            raise CRMException(message=message, code="CONVERSION_FAILED")

        return ConversionResult(
            success=True,
            message=row.get("message"),
            account_id=row.get("account_id"),
            prospect_id=row.get("prospect_id") or prospect_id,
        )

    @service_result("Failed to start sequence.")
    async def start_sequence_or_task(self, session: Session, prospect_id: str) -> dict[str, Any]:
        """Create a first-outreach task and mark the prospect attempted."""
        require_session(session)
        require_uuid(prospect_id, "Prospect")
        task = await self._create_task(
            {
                "title": "First outreach to prospect",
                "description": "Initial contact attempt for prospect",
                "category": "other",
                "priority": "medium",
                "status": "pending",
                "due_date": date.today().isoformat(),
                "prospect_id": prospect_id,
                "assigned_to": session.user_id,
            }
        )
        await self._update_row(prospect_id, {"status": ProspectStatus.ATTEMPTED.value})
        return task

    @service_result("Failed to add prospect to route.")
    async def add_to_route(
        self,
        session: Session,
        prospect_id: str,
        route_date: date | str,
        notes: str | None = None,
    ) -> dict[str, Any]:
        """Schedule a route visit as a task due on the route date."""
        require_session(session)
        require_uuid(prospect_id, "Prospect")
        if not route_date:
            raise ValidationError("Route date is required", field="route_date")

        description = "Route visit for prospect."
        if notes:
            description = f"{description} Notes: {notes}"
        task = await self._create_task(
            {
                "title": "Follow up with prospect",
                "description": description,
                "category": "other",
                "priority": "medium",
                "status": "pending",
                "due_date": route_date.isoformat()
                if isinstance(route_date, date)
                else route_date,
                "prospect_id": prospect_id,
                "assigned_to": session.user_id,
            }
        )
        await self._update_row(
            prospect_id, {"notes": f"Route added: {notes}" if notes else "Added to route"}
        )
        return task

    @service_result("Failed to bulk assign prospects.")
    async def bulk_assign(
        self, session: Session, prospect_ids: Sequence[str], user_id: str | None
    ) -> ServiceResult[list[dict[str, Any]]]:
        """Assign (or unassign, with None) many prospects in one request."""
        require_session(session)
        ids = _require_ids(prospect_ids)
        if user_id is not None:
            require_uuid(user_id, "User")
        response = await self.db.execute(
            self.db.table("prospects")
            .update({"assigned_to": user_id, "last_activity_at": _now_iso()})
            .in_("id", ids),
            resource="Prospect",
        )
        rows = response.data or []
        return ServiceResult.ok(rows, count=len(rows))

    @service_result("Failed to bulk update prospect status.")
    async def bulk_update_status(
        self, session: Session, prospect_ids: Sequence[str], status: str
    ) -> ServiceResult[list[dict[str, Any]]]:
        """Set one status on many prospects in one request."""
        require_session(session)
        ids = _require_ids(prospect_ids)
        response = await self.db.execute(
            self.db.table("prospects")
            .update({"status": _require_status(status), "last_activity_at": _now_iso()})
            .in_("id", ids),
            resource="Prospect",
        )
        rows = response.data or []
        return ServiceResult.ok(rows, count=len(rows))

    @service_result("Failed to delete prospect.")
    async def delete_prospect(self, session: Session, prospect_id: str) -> None:
        """Delete a prospect."""
        require_session(session)
        require_uuid(prospect_id, "Prospect")
        await self.db.execute(
            self.db.table("prospects").delete().eq("id", prospect_id), resource="Prospect"
        )
        logger.info("Prospect deleted", extra={"prospect_id": prospect_id})

    @service_result("Failed to export prospects.")
    async def export_prospects(
        self,
        session: Session,
        filters: ProspectFilters | Mapping[str, Any] | None = None,
    ) -> list[dict[str, Any]]:
        """Build CSV-ready rows for every prospect matching the filters.

        Pagination is not applied; the fetch is capped at EXPORT_MAX_ROWS.
        """
        require_session(session)
        rows, _ = await self._fetch_prospects(
            session,
            _coerce_filters(filters),
            ProspectSort(),
            get_settings().EXPORT_MAX_ROWS,
            0,
        )
        return [
            {
                "Name": p.get("name") or "",
                "Domain": p.get("domain") or "",
                "Phone": p.get("phone") or "",
                "City": p.get("city") or "",
                "State": p.get("state") or "",
                "Company Type": p.get("company_type") or "",
                "ICP Score": p.get("icp_fit_score") if p.get("icp_fit_score") is not None else "",
                "Status": p.get("status") or "",
                "Source": p.get("source") or "",
                "Assigned To": p.get("assigned_to_name") or "Unassigned",
                "Created": _format_created(p.get("created_at")),
            }
            for p in rows
        ]
