"""Notification dispatch: in-app rows plus optional push channels.

From the engine's side dispatch is fire-and-forget. Components return the
notifications an action owes; the service hands them to a NotificationOutbox
only after the transaction commits, so a rolled-back action never notifies
anyone.
Dispatch failures are logged and never propagated.
"""

from __future__ import annotations

import logging
from collections import deque
from typing import Iterable, Protocol

from discrecovery.errors import DependencyFailure
from discrecovery.models.notification import Notification
from discrecovery.persistence.store import RecoveryStore

logger = logging.getLogger(__name__)


class NotificationDispatcher(Protocol):
    def dispatch(self, notification: Notification) -> None:
        """Deliver one notification. May raise; callers log and continue."""
        ...


class PushChannel(Protocol):
    """An external delivery channel (push, SMS, email)."""

    name: str

    def send(self, notification: Notification) -> None:
        ...


class StoreNotificationDispatcher:
    """Writes the in-app notification row, then fans out to channels.

    The row is written in its own transaction. A failing channel is logged
    and does not stop the remaining channels.
    """

    def __init__(
        self,
        store: RecoveryStore,
        channels: Iterable[PushChannel] = (),
    ) -> None:
        self._store = store
        self._channels = list(channels)

    def dispatch(self, notification: Notification) -> None:
        with self._store.transaction() as tx:
            tx.add_notification(notification)

        for channel in self._channels:
            try:
                channel.send(notification)
            except Exception:
                logger.warning(
                    "Channel %s failed to deliver %s to user %s",
                    getattr(channel, "name", type(channel).__name__),
                    notification.type.value,
                    notification.user_id,
                    exc_info=True,
                )


class NotificationOutbox:
    """Notifications owed by a committed action, held until flush."""

    def __init__(self, dispatcher: NotificationDispatcher) -> None:
        self._dispatcher = dispatcher
        self._pending: deque[Notification] = deque()

    def extend(self, notifications: Iterable[Notification]) -> None:
        self._pending.extend(notifications)

    def flush(self) -> int:
        """Dispatch everything queued. Returns the number delivered."""
        delivered = 0
        while self._pending:
            notification = self._pending.popleft()
            try:
                self._dispatcher.dispatch(notification)
                delivered += 1
            except DependencyFailure as e:
                logger.warning(
                    "Notification %s for user %s not stored: %s",
                    notification.type.value, notification.user_id, e.message,
                )
            except Exception:
                logger.exception(
                    "Notification %s for user %s failed",
                    notification.type.value, notification.user_id,
                )
        return delivered
