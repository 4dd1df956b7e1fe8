"""Tests for NotificationService.

Tests cover:
- Cursor pagination (strictly older pages, no overlap, fetches limit + 1 rows)
- Unread count
- Marking one, many and all as read
- Create, delete and display formatting
"""

from datetime import UTC, datetime, timedelta
from typing import Any

import pytest

from pipeline_crm.core.session import Session
from pipeline_crm.db.supabase import SupabaseClient
from pipeline_crm.services.notification_service import NotificationService, time_ago
from tests.fakes import USER_ID, FakeQuery, FakeResponse, FakeSupabase, make_uuid

NOW = datetime(2026, 5, 1, 12, 0, tzinfo=UTC)


def _notification(n: int, *, read: bool = False, minutes_ago: int | None = None) -> dict[str, Any]:
    created = NOW - timedelta(minutes=n if minutes_ago is None else minutes_ago)
    return {
        "id": make_uuid(n),
        "user_id": USER_ID,
        "type": "task_due",
        "title": f"Task {n} due",
        "message": None,
        "read_at": created.isoformat() if read else None,
        "created_at": created.isoformat(),
    }


class NotificationTable:
    """Answers notification list queries the way PostgREST would."""

    def __init__(self, rows: list[dict[str, Any]]) -> None:
        self.rows = rows

    def __call__(self, query: FakeQuery) -> FakeResponse:
        rows = sorted(self.rows, key=lambda r: r["created_at"], reverse=True)
        if query.called("is_", "read_at", "null"):
            rows = [r for r in rows if r["read_at"] is None]
        if "lt" in query.methods:
            _, cursor = query.args_of("lt")
            rows = [
                r
                for r in rows
                if datetime.fromisoformat(r["created_at"]) < datetime.fromisoformat(cursor)
            ]
        (limit,) = query.args_of("limit")
        return FakeResponse(data=rows[:limit])


@pytest.fixture
def service(db: SupabaseClient) -> NotificationService:
    return NotificationService(db)


# ---------------------------------------------------------------------------
# Cursor pagination
# ---------------------------------------------------------------------------


class TestPaginated:
    """Tests for NotificationService.get_notifications_paginated."""

    @pytest.mark.asyncio
    async def test_walks_all_pages_without_overlap(
        self, service: NotificationService, fake_db: FakeSupabase, session: Session
    ) -> None:
        fake_db.on_table("notifications", NotificationTable([_notification(n) for n in range(45)]))

        seen: list[str] = []
        pages = 0
        cursor = None
        while True:
            result = await service.get_notifications_paginated(session, cursor=cursor, limit=20)
            assert result.success
            page = result.data
            pages += 1
            if cursor is not None:
                assert all(item.created_at < cursor for item in page.items)
            seen.extend(item.id for item in page.items)
            if not page.has_more:
                assert page.next_cursor is None
                break
            assert page.next_cursor == page.items[-1].created_at
            cursor = page.next_cursor

        assert pages == 3
        assert len(seen) == 45
        assert len(set(seen)) == 45

    @pytest.mark.asyncio
    async def test_requests_one_extra_row(
        self, service: NotificationService, fake_db: FakeSupabase, session: Session
    ) -> None:
        fake_db.on_table("notifications", NotificationTable([_notification(n) for n in range(5)]))

        result = await service.get_notifications_paginated(session, limit=5)

        assert len(result.data.items) == 5
        assert result.data.has_more is False
        query = fake_db.last("notifications")
        assert query.args_of("limit") == (6,)
        assert query.called("eq", "user_id", USER_ID)
        assert query.kwargs_of("order") == {"desc": True}
        assert "lt" not in query.methods

    @pytest.mark.asyncio
    async def test_string_cursor_and_unread_only(
        self, service: NotificationService, fake_db: FakeSupabase, session: Session
    ) -> None:
        rows = [_notification(n, read=n % 2 == 0) for n in range(10)]
        fake_db.on_table("notifications", NotificationTable(rows))
        cursor = (NOW - timedelta(minutes=4)).isoformat()

        result = await service.get_notifications_paginated(
            session, cursor=cursor, limit=10, unread_only=True
        )

        assert [n.id for n in result.data.items] == [make_uuid(5), make_uuid(7), make_uuid(9)]
        assert all(n.is_unread for n in result.data.items)
        assert fake_db.last("notifications").args_of("lt") == ("created_at", cursor)

    @pytest.mark.asyncio
    async def test_bad_page_size(
        self, service: NotificationService, fake_db: FakeSupabase, session: Session
    ) -> None:
        result = await service.get_notifications_paginated(session, limit=-1)
        assert result.field == "limit"
        assert fake_db.executed == []


# ---------------------------------------------------------------------------
# Offset listing and counts
# ---------------------------------------------------------------------------


class TestListingAndCount:
    """Tests for get_notifications and get_unread_count."""

    @pytest.mark.asyncio
    async def test_offset_listing_filters(
        self, service: NotificationService, fake_db: FakeSupabase, session: Session
    ) -> None:
        fake_db.on_table("notifications", FakeResponse(data=[_notification(1)]))

        result = await service.get_notifications(
            session, unread_only=True, limit=10, offset=10, notification_type="task_due"
        )

        assert result.data[0].title == "Task 1 due"
        query = fake_db.last("notifications")
        assert query.called("is_", "read_at", "null")
        assert query.called("eq", "type", "task_due")
        assert query.args_of("range") == (10, 19)

    @pytest.mark.asyncio
    async def test_unread_count_uses_exact_count(
        self, service: NotificationService, fake_db: FakeSupabase, session: Session
    ) -> None:
        fake_db.on_table("notifications", FakeResponse(data=[], count=7))

        result = await service.get_unread_count(session)

        assert result.data == 7
        query = fake_db.last("notifications")
        assert query.args_of("select") == ("id",)
        assert query.kwargs_of("select") == {"count": "exact"}
        assert query.called("is_", "read_at", "null")

    @pytest.mark.asyncio
    async def test_unread_count_without_count_header(
        self, service: NotificationService, fake_db: FakeSupabase, session: Session
    ) -> None:
        fake_db.on_table("notifications", FakeResponse(data=[{"id": "a"}, {"id": "b"}]))
        result = await service.get_unread_count(session)
        assert result.data == 2


# ---------------------------------------------------------------------------
# Marking read
# ---------------------------------------------------------------------------


class TestMarkRead:
    """Tests for the mark-as-read operations."""

    @pytest.mark.asyncio
    async def test_mark_one(
        self, service: NotificationService, fake_db: FakeSupabase, session: Session
    ) -> None:
        fake_db.on_table("notifications", FakeResponse(data=[_notification(1, read=True)]))

        result = await service.mark_as_read(session, make_uuid(1))

        assert result.success
        assert not result.data.is_unread
        query = fake_db.last("notifications")
        (updates,) = query.args_of("update")
        assert updates["read_at"] == updates["updated_at"]
        assert query.called("eq", "id", make_uuid(1))
        assert query.called("eq", "user_id", USER_ID)

    @pytest.mark.asyncio
    async def test_mark_one_not_found(
        self, service: NotificationService, fake_db: FakeSupabase, session: Session
    ) -> None:
        result = await service.mark_as_read(session, make_uuid(1))
        assert result.error_code == "NOT_FOUND"

    @pytest.mark.asyncio
    async def test_mark_many(
        self, service: NotificationService, fake_db: FakeSupabase, session: Session
    ) -> None:
        ids = [make_uuid(1), make_uuid(2)]
        fake_db.on_table(
            "notifications",
            FakeResponse(data=[_notification(1, read=True), _notification(2, read=True)]),
        )

        result = await service.mark_many_as_read(session, ids)

        assert result.count == 2
        assert fake_db.last("notifications").args_of("in_") == ("id", ids)

    @pytest.mark.asyncio
    async def test_mark_many_requires_ids(
        self, service: NotificationService, session: Session
    ) -> None:
        result = await service.mark_many_as_read(session, [])
        assert result.error == "No notifications selected"

    @pytest.mark.asyncio
    async def test_mark_all_targets_unread_only(
        self, service: NotificationService, fake_db: FakeSupabase, session: Session
    ) -> None:
        await service.mark_all_as_read(session)
        query = fake_db.last("notifications")
        assert query.called("eq", "user_id", USER_ID)
        assert query.called("is_", "read_at", "null")


# ---------------------------------------------------------------------------
# Create / delete / format
# ---------------------------------------------------------------------------


class TestCreateAndDelete:
    """Tests for create_notification and delete_notification."""

    @pytest.mark.asyncio
    async def test_create_defaults_recipient(
        self, service: NotificationService, fake_db: FakeSupabase, session: Session
    ) -> None:
        fake_db.on_table("notifications", FakeResponse(data=[_notification(1)]))

        result = await service.create_notification(
            session, {"type": "system_alert", "title": "Maintenance tonight"}
        )

        assert result.success
        (row,) = fake_db.last("notifications").args_of("insert")
        assert row["user_id"] == USER_ID
        assert row["tenant_id"] == session.tenant_id
        assert row["type"] == "system_alert"

    @pytest.mark.asyncio
    async def test_create_rejects_unknown_type(
        self, service: NotificationService, fake_db: FakeSupabase, session: Session
    ) -> None:
        result = await service.create_notification(session, {"type": "party", "title": "x"})
        assert result.field == "type"
        assert fake_db.executed == []

    @pytest.mark.asyncio
    async def test_delete(
        self, service: NotificationService, fake_db: FakeSupabase, session: Session
    ) -> None:
        result = await service.delete_notification(session, make_uuid(3))
        assert result.data is True
        assert fake_db.last("notifications").called("eq", "user_id", USER_ID)


class TestFormatting:
    """Tests for time_ago and format_notification."""

    @pytest.mark.parametrize(
        ("minutes", "label"),
        [(0, "Just now"), (5, "5m ago"), (59, "59m ago"), (180, "3h ago"), (2 * 1440, "2d ago")],
    )
    def test_time_ago(self, minutes: int, label: str) -> None:
        assert time_ago(NOW - timedelta(minutes=minutes), NOW) == label

    def test_naive_timestamp_treated_as_utc(self) -> None:
        assert time_ago(datetime(2026, 5, 1, 11, 0), NOW) == "1h ago"

    def test_known_type(self) -> None:
        formatted = NotificationService.format_notification(
            {**_notification(1), "type": "task_overdue"}, now=NOW
        )
        assert formatted.icon == "AlertTriangle"
        assert formatted.priority == "high"
        assert formatted.is_unread
        assert formatted.time_ago == "1m ago"

    def test_unknown_type_falls_back(self) -> None:
        formatted = NotificationService.format_notification(
            {**_notification(1, read=True), "type": "mystery"}, now=NOW
        )
        assert formatted.icon == "Bell"
        assert formatted.priority == "low"
        assert not formatted.is_unread
