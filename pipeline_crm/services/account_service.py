"""Account data-access service."""

import logging
from collections.abc import Mapping, Sequence
from datetime import UTC, datetime
from typing import Any

from pipeline_crm.core.exceptions import (
    AuthorizationError,
    ConflictError,
    DatabaseError,
    NotFoundError,
    ValidationError,
)
from pipeline_crm.core.result import ServiceResult, service_result
from pipeline_crm.core.session import Session, require_session
from pipeline_crm.core.validation import require_fields, require_uuid
from pipeline_crm.db.supabase import SupabaseClient
from pipeline_crm.models.account import AccountStats

logger = logging.getLogger(__name__)

ACCOUNT_LIST_SELECT = (
    "*, assigned_rep:user_profiles!assigned_rep_id(id, full_name, email), "
    "properties(id, name, stage), "
    "contacts(id, first_name, last_name, is_primary_contact)"
)
ACCOUNT_DETAIL_SELECT = (
    "*, assigned_rep:user_profiles!assigned_rep_id(id, full_name, email), "
    "properties(*), contacts(*), activities(*)"
)

ACCOUNT_SORT_COLUMNS = ("name", "company_type", "stage", "city", "created_at", "updated_at")


def _with_derived_fields(account: dict[str, Any]) -> dict[str, Any]:
    contacts = account.get("contacts") or []
    return {
        **account,
        "properties_count": len(account.get("properties") or []),
        "primary_contact": next((c for c in contacts if c.get("is_primary_contact")), None),
    }


class AccountService:
    """Service for account records."""

    def __init__(self, db: SupabaseClient) -> None:
        """Initialize AccountService.

        Args:
            db: Session-bound Supabase client.
        """
        self.db = db

    @service_result("Failed to load accounts")
    async def get_accounts(
        self,
        session: Session,
        show_inactive: bool = False,
        sort_by: str = "name",
        sort_direction: str = "asc",
    ) -> list[dict[str, Any]]:
        """Fetch the caller's accounts in one unfiltered snapshot.

        The list view filters this snapshot locally, so only the active flag
        and the sort order are applied server-side.

        Args:
            session: Caller session.
            show_inactive: Include accounts with is_active = false.
            sort_by: Sort column.
            sort_direction: "asc" or "desc".

        Returns:
            Account rows with properties_count and primary_contact added.
        """
        require_session(session)
        query = self.db.table("accounts").select(ACCOUNT_LIST_SELECT)
        if not show_inactive:
            query = query.eq("is_active", True)

        column = sort_by if sort_by in ACCOUNT_SORT_COLUMNS else "name"
        query = query.order(column, desc=sort_direction == "desc")

        try:
            response = await self.db.execute(query, resource="Account")
        except AuthorizationError as e:
            raise AuthorizationError(
                "Access denied. Please contact your administrator for account access."
            ) from e
        return [_with_derived_fields(a) for a in response.data or []]

    @service_result("Failed to load account")
    async def get_account(self, session: Session, account_id: str) -> dict[str, Any]:
        """Fetch one account with its properties, contacts and activities."""
        require_session(session)
        require_uuid(account_id, "Account")
        response = await self.db.execute(
            self.db.table("accounts").select(ACCOUNT_DETAIL_SELECT).eq("id", account_id).single(),
            resource="Account",
        )
        if not response.data:
            raise NotFoundError("Account", account_id)
        return response.data

    @service_result("Failed to create account")
    async def create_account(
        self, session: Session, account_data: Mapping[str, Any]
    ) -> dict[str, Any]:
        """Create an account, assigning the caller as rep unless one is given.

        Raises (as a failed result):
            ValidationError: If name or company_type is missing, or the rep is unknown.
            ConflictError: If an account with this name already exists.
        """
        require_session(session)
        require_fields(account_data, ("name", "company_type"))

        row = dict(account_data)
        if not row.get("assigned_rep_id"):
            row["assigned_rep_id"] = session.user_id

        try:
            response = await self.db.execute(
                self.db.table("accounts").insert(row), resource="Account"
            )
        except ConflictError as e:
            raise ConflictError(
                "An account with this name already exists", resource="Account"
            ) from e
        except ValidationError as e:
            if e.field is None:
                raise ValidationError(
                    "Invalid assigned representative", field="assigned_rep_id"
                ) from e
            raise
        if not response.data:
            raise DatabaseError("Failed to create account")
        logger.info(
            "Account created",
            extra={"account_id": response.data[0].get("id"), "user_id": session.user_id},
        )
        return response.data[0]

    @service_result("Failed to update account")
    async def update_account(
        self, session: Session, account_id: str, updates: Mapping[str, Any]
    ) -> dict[str, Any]:
        """Update account fields and stamp updated_at."""
        require_session(session)
        require_uuid(account_id, "Account")
        response = await self.db.execute(
            self.db.table("accounts")
            .update({**updates, "updated_at": datetime.now(UTC).isoformat()})
            .eq("id", account_id),
            resource="Account",
        )
        if not response.data:
            raise NotFoundError("Account", account_id)
        return response.data[0]

    @service_result("Failed to delete account")
    async def delete_account(self, session: Session, account_id: str) -> None:
        """Delete an account."""
        require_session(session)
        require_uuid(account_id, "Account")
        await self.db.execute(
            self.db.table("accounts").delete().eq("id", account_id), resource="Account"
        )
        logger.info("Account deleted", extra={"account_id": account_id})

    @service_result("Failed to update accounts")
    async def bulk_update_accounts(
        self, session: Session, account_ids: Sequence[str], updates: Mapping[str, Any]
    ) -> ServiceResult[list[dict[str, Any]]]:
        """Apply the same update to many accounts in one request.

        Returns:
            Updated rows, with count set to the number updated.
        """
        require_session(session)
        if not account_ids:
            raise ValidationError("No accounts selected", field="ids")
        ids = [require_uuid(i, "Account") for i in account_ids]
        response = await self.db.execute(
            self.db.table("accounts")
            .update({**updates, "updated_at": datetime.now(UTC).isoformat()})
            .in_("id", ids),
            resource="Account",
        )
        rows = response.data or []
        return ServiceResult.ok(rows, count=len(rows))

    @service_result("Failed to load account statistics")
    async def get_account_stats(
        self, session: Session, show_inactive: bool = False
    ) -> AccountStats:
        """Count accounts by stage and company type."""
        require_session(session)
        query = self.db.table("accounts").select("stage, company_type")
        if not show_inactive:
            query = query.eq("is_active", True)
        response = await self.db.execute(query, resource="Account")

        stats = AccountStats()
        for account in response.data or []:
            stats.total += 1
            if stage := account.get("stage"):
                stats.by_stage[stage] = stats.by_stage.get(stage, 0) + 1
            if company_type := account.get("company_type"):
                stats.by_company_type[company_type] = (
                    stats.by_company_type.get(company_type, 0) + 1
                )
        return stats
