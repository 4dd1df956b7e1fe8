"""Tests for ActivityService.

Tests cover:
- create_activity: required fields, user/tenant stamping, reference errors
- get_activities_for_account / get_activities_for_opportunity: feed queries
"""

from typing import Any
from unittest.mock import MagicMock

import pytest

from pipeline_crm.core.session import Session
from pipeline_crm.db.supabase import SupabaseClient
from pipeline_crm.services.activity_service import ActivityService
from tests.fakes import USER_ID, api_error, make_uuid

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

ACCOUNT_ID = make_uuid(500)
OPP_ID = make_uuid(501)


def _mock_db() -> MagicMock:
    """Create a mock Supabase client."""
    return MagicMock()


def _chain(mock: MagicMock, data: list[dict[str, Any]]) -> MagicMock:
    """Make a fluent mock chain return data on .execute()."""
    execute_result = MagicMock()
    execute_result.data = data
    execute_result.count = len(data)
    mock.execute.return_value = execute_result
    for method in ("select", "eq", "order", "limit", "insert"):
        getattr(mock, method).return_value = mock
    return mock


def _make_service(db: MagicMock) -> ActivityService:
    return ActivityService(SupabaseClient(db))


def _payload(**overrides: object) -> dict[str, object]:
    data: dict[str, object] = {
        "activity_type": "call",
        "subject": "Intro call",
        "activity_date": "2026-04-02",
        "account_id": ACCOUNT_ID,
    }
    data.update(overrides)
    return data


# ---------------------------------------------------------------------------
# create_activity
# ---------------------------------------------------------------------------


class TestCreateActivity:
    """Test ActivityService.create_activity."""

    @pytest.mark.asyncio
    async def test_stamps_user_and_tenant(self, session: Session) -> None:
        db = _mock_db()
        mock_table = _chain(MagicMock(), [{"id": "act-1"}])
        db.table.return_value = mock_table

        result = await _make_service(db).create_activity(
            session, _payload(notes="Left voicemail")
        )

        assert result.success
        assert result.data == {"id": "act-1"}
        db.table.assert_called_once_with("activities")
        row = mock_table.insert.call_args.args[0]
        assert row["user_id"] == USER_ID
        assert row["tenant_id"] == session.tenant_id
        assert str(row["activity_date"]).startswith("2026-04-02")
        assert row["notes"] == "Left voicemail"
        assert "contact_id" not in row

    @pytest.mark.asyncio
    @pytest.mark.parametrize("missing", ["activity_type", "subject", "activity_date"])
    async def test_required_fields(self, session: Session, missing: str) -> None:
        db = _mock_db()

        result = await _make_service(db).create_activity(session, _payload(**{missing: ""}))

        assert result.field == missing
        db.table.assert_not_called()

    @pytest.mark.asyncio
    async def test_invalid_linked_id(self, session: Session) -> None:
        db = _mock_db()

        result = await _make_service(db).create_activity(
            session, _payload(contact_id="undefined")
        )

        assert result.error == "Invalid contact ID format"
        db.table.assert_not_called()

    @pytest.mark.asyncio
    async def test_missing_reference(self, session: Session) -> None:
        db = _mock_db()
        mock_table = _chain(MagicMock(), [])
        mock_table.execute.side_effect = api_error("23503", "violates foreign key constraint")
        db.table.return_value = mock_table

        result = await _make_service(db).create_activity(session, _payload())

        assert result.error == "Invalid reference - check account, contact, or property selection"

    @pytest.mark.asyncio
    async def test_cross_tenant_reference(self, session: Session) -> None:
        db = _mock_db()
        mock_table = _chain(MagicMock(), [])
        mock_table.execute.side_effect = api_error(
            "P0001", "Account does not belong to tenant"
        )
        db.table.return_value = mock_table

        result = await _make_service(db).create_activity(session, _payload())

        assert result.error_code == "AUTHORIZATION_ERROR"
        assert result.error == "Access denied - invalid tenant permissions"

    @pytest.mark.asyncio
    async def test_empty_insert_response_fails(self, session: Session) -> None:
        db = _mock_db()
        db.table.return_value = _chain(MagicMock(), [])

        result = await _make_service(db).create_activity(session, _payload())

        assert not result.success
        assert result.error == "Failed to log activity"


# ---------------------------------------------------------------------------
# Activity feeds
# ---------------------------------------------------------------------------


class TestListActivities:
    """Test the per-record activity feeds."""

    @pytest.mark.asyncio
    async def test_for_account(self, session: Session) -> None:
        db = _mock_db()
        mock_table = _chain(MagicMock(), [{"id": "a2"}, {"id": "a1"}])
        db.table.return_value = mock_table

        result = await _make_service(db).get_activities_for_account(
            session, ACCOUNT_ID, limit=5
        )

        assert [a["id"] for a in result.data] == ["a2", "a1"]
        mock_table.eq.assert_called_once_with("account_id", ACCOUNT_ID)
        mock_table.order.assert_called_once_with("activity_date", desc=True)
        mock_table.limit.assert_called_once_with(5)

    @pytest.mark.asyncio
    async def test_for_opportunity_unlimited(self, session: Session) -> None:
        db = _mock_db()
        mock_table = _chain(MagicMock(), [])
        db.table.return_value = mock_table

        result = await _make_service(db).get_activities_for_opportunity(session, OPP_ID)

        assert result.data == []
        mock_table.eq.assert_called_once_with("opportunity_id", OPP_ID)
        mock_table.limit.assert_not_called()

    @pytest.mark.asyncio
    async def test_invalid_account_id(self, session: Session) -> None:
        db = _mock_db()

        result = await _make_service(db).get_activities_for_account(session, "undefined")

        assert not result.success
        db.table.assert_not_called()
