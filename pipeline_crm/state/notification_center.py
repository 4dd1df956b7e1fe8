"""State behind the notification bell and panel."""

import asyncio
import logging
from collections.abc import Sequence
from datetime import datetime
from typing import Any

from supabase import AsyncClient

from pipeline_crm.core.config import get_settings
from pipeline_crm.core.result import ServiceResult
from pipeline_crm.core.session import Session
from pipeline_crm.models.notification import FormattedNotification, Notification
from pipeline_crm.services.notification_service import NotificationService
from pipeline_crm.services.realtime import NotificationSubscription, subscribe_to_notifications
from pipeline_crm.state.optimistic import OptimisticCounter, OptimisticValue

logger = logging.getLogger(__name__)


class NotificationCenter:
    """Unread counter plus a cursor-paginated notification list.

    Read-state changes are shown immediately and rolled back if the backend
    rejects them. While subscribed, every change event on the user's
    notifications reloads the unread count. ``close()`` (or leaving an
    ``async with`` block) releases the subscription.
    """

    def __init__(
        self,
        service: NotificationService,
        session: Session,
        page_size: int | None = None,
    ) -> None:
        self.service = service
        self.session = session
        self.page_size = page_size or get_settings().NOTIFICATION_PAGE_SIZE
        self.items: list[Notification] = []
        self.unread_count = OptimisticCounter(0)
        self.has_more = False
        self.next_cursor: datetime | None = None
        self.unread_only = False
        self.loading = False
        self.error: str | None = None
        self._unread: dict[str, OptimisticValue[bool]] = {}
        self._subscription: NotificationSubscription | None = None
        self._tasks: set[asyncio.Task[Any]] = set()

    # Read state

    def is_unread(self, notification_id: str) -> bool:
        state = self._unread.get(notification_id)
        return state.value if state is not None else False

    def formatted(self) -> list[FormattedNotification]:
        """Loaded notifications with display fields, reflecting optimistic read state."""
        formatted = []
        for n in self.items:
            item = self.service.format_notification(n)
            formatted.append(item.model_copy(update={"is_unread": self.is_unread(n.id)}))
        return formatted

    def _track(self, notifications: Sequence[Notification]) -> None:
        for n in notifications:
            self._unread[n.id] = OptimisticValue(n.is_unread)

    # Loading

    async def load_first_page(self, unread_only: bool = False) -> ServiceResult[Any]:
        """Replace the list with the newest page."""
        self.unread_only = unread_only
        self.loading = True
        try:
            result = await self.service.get_notifications_paginated(
                self.session, None, self.page_size, unread_only
            )
        finally:
            self.loading = False
        if not result.success:
            self.error = result.error
            return result

        page = result.data
        self.items = list(page.items)
        self._unread = {}
        self._track(page.items)
        self.has_more = page.has_more
        self.next_cursor = page.next_cursor
        self.error = None
        return result

    async def load_more(self) -> ServiceResult[Any]:
        """Append the next older page, if any."""
        if not self.has_more or self.loading:
            return ServiceResult.ok([])
        self.loading = True
        try:
            result = await self.service.get_notifications_paginated(
                self.session, self.next_cursor, self.page_size, self.unread_only
            )
        finally:
            self.loading = False
        if not result.success:
            self.error = result.error
            return result

        page = result.data
        seen = {n.id for n in self.items}
        fresh = [n for n in page.items if n.id not in seen]
        self.items.extend(fresh)
        self._track(fresh)
        self.has_more = page.has_more
        self.next_cursor = page.next_cursor
        return result

    async def refresh_unread_count(self) -> ServiceResult[Any]:
        result = await self.service.get_unread_count(self.session)
        if result.success:
            self.unread_count.reset(int(result.data or 0))
        return result

    # Optimistic read updates

    async def mark_as_read(self, notification_id: str) -> ServiceResult[Any]:
        """Mark one notification read, rolling back if the backend call fails."""
        state = self._unread.get(notification_id)
        if state is None or not state.value:
            return ServiceResult.ok(None)

        state.set_pending(False)
        token = self.unread_count.adjust(-1)
        result = await self.service.mark_as_read(self.session, notification_id)
        self._settle([state], token, result)
        return result

    async def mark_many_as_read(self, notification_ids: Sequence[str]) -> ServiceResult[Any]:
        states = {
            i: self._unread[i]
            for i in notification_ids
            if i in self._unread and self._unread[i].value
        }
        if not states:
            return ServiceResult.ok([])

        for state in states.values():
            state.set_pending(False)
        token = self.unread_count.adjust(-len(states))
        result = await self.service.mark_many_as_read(self.session, list(states))
        self._settle(list(states.values()), token, result)
        return result

    async def mark_all_as_read(self) -> ServiceResult[Any]:
        states = [s for s in self._unread.values() if s.value]
        for state in states:
            state.set_pending(False)
        token = self.unread_count.adjust(-self.unread_count.value)
        result = await self.service.mark_all_as_read(self.session)
        self._settle(states, token, result)
        return result

    def _settle(
        self,
        states: list[OptimisticValue[bool]],
        token: int,
        result: ServiceResult[Any],
    ) -> None:
        if result.success:
            for state in states:
                state.commit()
            self.unread_count.commit(token)
            return

        for state in states:
            state.rollback()
        self.unread_count.rollback(token)
        self.error = result.error
        logger.warning(
            "Read-state update rolled back",
            extra={"count": len(states), "error": result.error},
        )

    # Realtime

    @property
    def subscribed(self) -> bool:
        return self._subscription is not None and not self._subscription.disposed

    async def subscribe(self, realtime_client: AsyncClient) -> NotificationSubscription:
        """Reload the unread count whenever the user's notifications change."""
        if self._subscription is not None and not self._subscription.disposed:
            return self._subscription
        self._subscription = await subscribe_to_notifications(
            realtime_client, self.session, self._on_change
        )
        return self._subscription

    def _on_change(self, payload: dict[str, Any]) -> None:
        task = asyncio.get_running_loop().create_task(self.refresh_unread_count())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def close(self) -> None:
        """Release the subscription and drop pending count reloads."""
        if self._subscription is not None:
            await self._subscription.dispose()
            self._subscription = None
        for task in list(self._tasks):
            task.cancel()
        self._tasks.clear()

    async def __aenter__(self) -> "NotificationCenter":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()
