"""Activity logging for account and opportunity detail views."""

import logging
from collections.abc import Mapping
from typing import Any

from pipeline_crm.core.exceptions import AuthorizationError, DatabaseError, ValidationError
from pipeline_crm.core.result import service_result
from pipeline_crm.core.session import Session, require_session
from pipeline_crm.core.validation import parse_payload, require_fields, require_uuid
from pipeline_crm.db.supabase import SupabaseClient
from pipeline_crm.models.activity import ActivityCreate

logger = logging.getLogger(__name__)

ACTIVITY_SELECT = (
    "*, user:user_profiles!user_id(id, full_name, email), "
    "account:accounts(id, name, company_type), "
    "contact:contacts(id, first_name, last_name, email), "
    "property:properties(id, name, address)"
)


class ActivityService:
    """Service for logged activities (calls, visits, emails)."""

    def __init__(self, db: SupabaseClient) -> None:
        self.db = db

    @service_result("Failed to log activity")
    async def create_activity(
        self, session: Session, data: ActivityCreate | Mapping[str, Any]
    ) -> dict[str, Any]:
        """Log an activity as the caller, in the caller's tenant.

        Raises (as a failed result):
            ValidationError: If activity_type, subject or activity_date is
                missing, or a linked record does not exist.
            AuthorizationError: If a linked record belongs to another tenant.
        """
        require_session(session)
        if isinstance(data, Mapping):
            require_fields(data, ("activity_type", "subject", "activity_date"))
        payload = parse_payload(ActivityCreate, data)
        for key in ("account_id", "contact_id", "property_id", "opportunity_id"):
            value = getattr(payload, key)
            if value is not None:
                require_uuid(value, key.removesuffix("_id").title())

        tenant_id = await self.db.resolve_tenant_id(session)
        row = {
            **payload.model_dump(mode="json", exclude_none=True),
            "user_id": session.user_id,
            "tenant_id": tenant_id,
        }
        try:
            response = await self.db.execute(
                self.db.table("activities").insert(row), resource="Activity"
            )
        except ValidationError as e:
            if e.field is None:
                raise ValidationError(
                    "Invalid reference - check account, contact, or property selection"
                ) from e
            raise
        except DatabaseError as e:
            if "does not belong to tenant" in str(e.details.get("backend_message", "")):
                raise AuthorizationError("Access denied - invalid tenant permissions") from e
            raise
        if not response.data:
            raise DatabaseError("Failed to log activity")
        logger.info(
            "Activity logged",
            extra={
                "activity_id": response.data[0].get("id"),
                "activity_type": payload.activity_type,
            },
        )
        return response.data[0]

    async def _activities_for(self, column: str, record_id: str, limit: int | None) -> list[Any]:
        query = (
            self.db.table("activities")
            .select(ACTIVITY_SELECT)
            .eq(column, record_id)
            .order("activity_date", desc=True)
        )
        if limit:
            query = query.limit(limit)
        response = await self.db.execute(query, resource="Activity")
        return response.data or []

    @service_result("Failed to load activities")
    async def get_activities_for_account(
        self, session: Session, account_id: str, limit: int | None = None
    ) -> list[dict[str, Any]]:
        """Activities logged against an account, most recent first."""
        require_session(session)
        require_uuid(account_id, "Account")
        return await self._activities_for("account_id", account_id, limit)

    @service_result("Failed to load activities")
    async def get_activities_for_opportunity(
        self, session: Session, opportunity_id: str, limit: int | None = None
    ) -> list[dict[str, Any]]:
        """Activities logged against an opportunity, most recent first."""
        require_session(session)
        require_uuid(opportunity_id, "Opportunity")
        return await self._activities_for("opportunity_id", opportunity_id, limit)
