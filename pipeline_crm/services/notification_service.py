"""Notification data-access service.

Notifications are always scoped to the session's user. A notification is
unread exactly when its read_at column is null.
"""

import logging
from collections.abc import Mapping, Sequence
from datetime import UTC, datetime
from typing import Any

from pipeline_crm.core.config import get_settings
from pipeline_crm.core.exceptions import DatabaseError, NotFoundError, ValidationError
from pipeline_crm.core.result import ServiceResult, service_result
from pipeline_crm.core.session import Session, require_session
from pipeline_crm.core.validation import parse_payload, require_uuid
from pipeline_crm.db.supabase import SupabaseClient
from pipeline_crm.models.notification import (
    NOTIFICATION_ICONS,
    NOTIFICATION_PRIORITIES,
    FormattedNotification,
    Notification,
    NotificationCreate,
    NotificationPage,
)

logger = logging.getLogger(__name__)


def _now_iso() -> str:
    return datetime.now(UTC).isoformat()


def _cursor_value(cursor: datetime | str) -> str:
    return cursor.isoformat() if isinstance(cursor, datetime) else cursor


def time_ago(created_at: datetime, now: datetime | None = None) -> str:
    """Short relative label: "Just now", "5m ago", "3h ago", "2d ago"."""
    now = now or datetime.now(UTC)
    if created_at.tzinfo is None:
        created_at = created_at.replace(tzinfo=UTC)
    minutes = int((now - created_at).total_seconds() // 60)
    if minutes < 1:
        return "Just now"
    if minutes < 60:
        return f"{minutes}m ago"
    if minutes < 1440:
        return f"{minutes // 60}h ago"
    return f"{minutes // 1440}d ago"


class NotificationService:
    """Service for the caller's notifications."""

    def __init__(self, db: SupabaseClient) -> None:
        """Initialize NotificationService.

        Args:
            db: Session-bound Supabase client.
        """
        self.db = db

    def _own(self, session: Session) -> Any:
        return self.db.table("notifications").select("*").eq("user_id", session.user_id)

    @service_result("Failed to load notifications")
    async def get_notifications(
        self,
        session: Session,
        unread_only: bool = False,
        limit: int | None = None,
        offset: int = 0,
        notification_type: str | None = None,
    ) -> list[Notification]:
        """Offset-paginated notifications, newest first."""
        require_session(session)
        page_size = limit or get_settings().NOTIFICATION_PAGE_SIZE
        query = self._own(session).order("created_at", desc=True)
        if unread_only:
            query = query.is_("read_at", "null")
        if notification_type:
            query = query.eq("type", notification_type)
        query = query.range(offset, offset + page_size - 1)

        response = await self.db.execute(query, resource="Notification")
        return [Notification.model_validate(row) for row in response.data or []]

    @service_result("Failed to load unread count")
    async def get_unread_count(self, session: Session) -> int:
        """Number of notifications with read_at null."""
        require_session(session)
        response = await self.db.execute(
            self.db.table("notifications")
            .select("id", count="exact")
            .eq("user_id", session.user_id)
            .is_("read_at", "null"),
            resource="Notification",
        )
        if response.count is not None:
            return response.count
        return len(response.data or [])

    @service_result("Failed to mark notification as read")
    async def mark_as_read(self, session: Session, notification_id: str) -> Notification:
        """Stamp read_at on one notification."""
        require_session(session)
        require_uuid(notification_id, "Notification")
        now = _now_iso()
        response = await self.db.execute(
            self.db.table("notifications")
            .update({"read_at": now, "updated_at": now})
            .eq("id", notification_id)
            .eq("user_id", session.user_id),
            resource="Notification",
        )
        if not response.data:
            raise NotFoundError("Notification", notification_id)
        return Notification.model_validate(response.data[0])

    @service_result("Failed to mark notifications as read")
    async def mark_many_as_read(
        self, session: Session, notification_ids: Sequence[str]
    ) -> ServiceResult[list[Notification]]:
        """Stamp read_at on several notifications in one request."""
        require_session(session)
        if not notification_ids:
            raise ValidationError("No notifications selected", field="ids")
        ids = [require_uuid(i, "Notification") for i in notification_ids]
        now = _now_iso()
        response = await self.db.execute(
            self.db.table("notifications")
            .update({"read_at": now, "updated_at": now})
            .in_("id", ids)
            .eq("user_id", session.user_id),
            resource="Notification",
        )
        updated = [Notification.model_validate(r) for r in response.data or []]
        return ServiceResult.ok(updated, count=len(updated))

    @service_result("Failed to mark all notifications as read")
    async def mark_all_as_read(self, session: Session) -> ServiceResult[list[Notification]]:
        """Stamp read_at on every unread notification of the caller."""
        require_session(session)
        now = _now_iso()
        response = await self.db.execute(
            self.db.table("notifications")
            .update({"read_at": now, "updated_at": now})
            .eq("user_id", session.user_id)
            .is_("read_at", "null"),
            resource="Notification",
        )
        updated = [Notification.model_validate(r) for r in response.data or []]
        return ServiceResult.ok(updated, count=len(updated))

    @service_result("Failed to create notification")
    async def create_notification(
        self, session: Session, data: NotificationCreate | Mapping[str, Any]
    ) -> Notification:
        """Create a notification in the caller's tenant.

        The recipient defaults to the caller.
        """
        require_session(session)
        payload = parse_payload(NotificationCreate, data)
        tenant_id = await self.db.resolve_tenant_id(session)
        row = {
            **payload.model_dump(mode="json"),
            "user_id": payload.user_id or session.user_id,
            "tenant_id": tenant_id,
        }
        response = await self.db.execute(
            self.db.table("notifications").insert(row), resource="Notification"
        )
        if not response.data:
            raise DatabaseError("Failed to create notification")
        return Notification.model_validate(response.data[0])

    @service_result("Failed to delete notification")
    async def delete_notification(self, session: Session, notification_id: str) -> bool:
        """Delete one of the caller's notifications."""
        require_session(session)
        require_uuid(notification_id, "Notification")
        await self.db.execute(
            self.db.table("notifications")
            .delete()
            .eq("id", notification_id)
            .eq("user_id", session.user_id),
            resource="Notification",
        )
        return True

    @service_result("Failed to load notifications")
    async def get_notifications_paginated(
        self,
        session: Session,
        cursor: datetime | str | None = None,
        limit: int | None = None,
        unread_only: bool = False,
    ) -> NotificationPage:
        """Cursor-paginated notifications, newest first.

        One extra row is requested to learn whether an older page exists.
        The extra row is dropped, and the created_at of the last kept row
        becomes the cursor for the next page. Pages therefore hold strictly
        older rows and never overlap.

        Args:
            session: Caller session.
            cursor: Only rows created strictly before this instant.
            limit: Page size (defaults to NOTIFICATION_PAGE_SIZE).
            unread_only: Restrict to read_at null.

        Returns:
            A NotificationPage.
        """
        require_session(session)
        page_size = limit or get_settings().NOTIFICATION_PAGE_SIZE
        if page_size < 1:
            raise ValidationError("Page size must be positive", field="limit")

        query = self._own(session).order("created_at", desc=True).limit(page_size + 1)
        if unread_only:
            query = query.is_("read_at", "null")
        if cursor:
            query = query.lt("created_at", _cursor_value(cursor))

        response = await self.db.execute(query, resource="Notification")
        rows = [Notification.model_validate(row) for row in response.data or []]
        has_more = len(rows) > page_size
        items = rows[:page_size]
        return NotificationPage(
            items=items,
            has_more=has_more,
            next_cursor=items[-1].created_at if has_more else None,
        )

    @staticmethod
    def format_notification(
        notification: Notification | Mapping[str, Any], now: datetime | None = None
    ) -> FormattedNotification:
        """Attach the relative time, unread flag, icon and priority."""
        if not isinstance(notification, Notification):
            notification = Notification.model_validate(notification)
        return FormattedNotification(
            notification=notification,
            time_ago=time_ago(notification.created_at, now),
            is_unread=notification.is_unread,
            icon=NOTIFICATION_ICONS.get(notification.type, "Bell"),
            priority=NOTIFICATION_PRIORITIES.get(notification.type, "low"),
        )
