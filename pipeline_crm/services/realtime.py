"""Realtime subscription to the caller's notification changes."""

import logging
from collections.abc import Callable
from typing import Any

from supabase import AsyncClient

from pipeline_crm.core.session import Session, require_session

logger = logging.getLogger(__name__)

ChangeCallback = Callable[[dict[str, Any]], None]


class NotificationSubscription:
    """Handle for one realtime channel.

    ``dispose()`` removes the channel from the client. It is safe to call
    more than once, and ``async with`` calls it on exit.
    """

    def __init__(self, client: AsyncClient, channel: Any, topic: str) -> None:
        self._client = client
        self._channel = channel
        self.topic = topic
        self._disposed = False

    @property
    def disposed(self) -> bool:
        return self._disposed

    async def dispose(self) -> None:
        """Unsubscribe and release the channel."""
        if self._disposed:
            return
        self._disposed = True
        await self._client.remove_channel(self._channel)
        logger.info("Realtime channel removed", extra={"topic": self.topic})

    async def __aenter__(self) -> "NotificationSubscription":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.dispose()


async def subscribe_to_notifications(
    realtime_client: AsyncClient,
    session: Session,
    callback: ChangeCallback,
) -> NotificationSubscription:
    """Listen for inserts, updates and deletes on the caller's notifications.

    Args:
        realtime_client: Async Supabase client (see create_realtime_client).
        session: Caller session; the channel is filtered to its user.
        callback: Called with each change payload.

    Returns:
        Subscription handle; dispose it when the listener goes away.

    Raises:
        AuthenticationError: If the session is invalid.
    """
    require_session(session)
    topic = f"notifications_{session.user_id}"
    channel = realtime_client.channel(topic)
    channel.on_postgres_changes(
        "*",
        schema="public",
        table="notifications",
        filter=f"user_id=eq.{session.user_id}",
        callback=callback,
    )
    await channel.subscribe()
    logger.info("Subscribed to notification changes", extra={"topic": topic})
    return NotificationSubscription(realtime_client, channel, topic)
