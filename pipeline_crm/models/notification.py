"""Notification Pydantic models.

This module contains all models related to user notifications.
"""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class NotificationType(str, Enum):
    """Type of notification."""

    TASK_ASSIGNED = "task_assigned"
    TASK_DUE = "task_due"
    TASK_OVERDUE = "task_overdue"
    ACTIVITY_ASSESSMENT = "activity_assessment"
    ACTIVITY_CONTRACT_SIGNED = "activity_contract_signed"
    SYSTEM_ALERT = "system_alert"


NOTIFICATION_ICONS: dict[str, str] = {
    NotificationType.TASK_ASSIGNED.value: "UserPlus",
    NotificationType.TASK_DUE.value: "Clock",
    NotificationType.TASK_OVERDUE.value: "AlertTriangle",
    NotificationType.ACTIVITY_ASSESSMENT.value: "CheckCircle",
    NotificationType.ACTIVITY_CONTRACT_SIGNED.value: "FileCheck",
    NotificationType.SYSTEM_ALERT.value: "Info",
}

NOTIFICATION_PRIORITIES: dict[str, str] = {
    NotificationType.TASK_OVERDUE.value: "high",
    NotificationType.ACTIVITY_CONTRACT_SIGNED.value: "high",
    NotificationType.TASK_DUE.value: "medium",
    NotificationType.TASK_ASSIGNED.value: "medium",
    NotificationType.ACTIVITY_ASSESSMENT.value: "medium",
    NotificationType.SYSTEM_ALERT.value: "low",
}


class Notification(BaseModel):
    """A notification row."""

    model_config = ConfigDict(extra="allow")

    id: str = Field(..., description="Notification ID")
    user_id: str = Field(..., description="User ID who owns the notification")
    type: str = Field(..., description="Type of notification")
    title: str | None = Field(None, description="Notification title")
    message: str | None = Field(None, description="Notification message")
    read_at: datetime | None = Field(None, description="When the notification was read")
    created_at: datetime = Field(..., description="When the notification was created")

    @property
    def is_unread(self) -> bool:
        """Unread means read_at is null, nothing else."""
        return self.read_at is None


class NotificationCreate(BaseModel):
    """Request model for creating a notification."""

    type: NotificationType = Field(..., description="Type of notification")
    title: str = Field(..., description="Notification title")
    message: str | None = Field(None, description="Notification message")
    user_id: str | None = Field(None, description="Recipient; defaults to the caller")
    metadata: dict[str, Any] = Field(default_factory=dict, description="Additional metadata")


class NotificationPage(BaseModel):
    """One page of cursor-paginated notifications."""

    items: list[Notification] = Field(..., description="Notifications, newest first")
    has_more: bool = Field(..., description="Whether an older page exists")
    next_cursor: datetime | None = Field(
        None, description="created_at to pass as the cursor for the next page"
    )


class FormattedNotification(BaseModel):
    """Notification with the display fields the bell panel renders."""

    notification: Notification
    time_ago: str
    is_unread: bool
    icon: str
    priority: str
