"""Notification module: templated in-app notifications and dispatch."""

from discrecovery.notifications.dispatcher import (
    NotificationDispatcher,
    NotificationOutbox,
    PushChannel,
    StoreNotificationDispatcher,
)
from discrecovery.notifications.templates import build_notification

__all__ = [
    "NotificationDispatcher",
    "NotificationOutbox",
    "PushChannel",
    "StoreNotificationDispatcher",
    "build_notification",
]
