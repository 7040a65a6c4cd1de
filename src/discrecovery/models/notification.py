"""Notification records written by the engine for the dispatcher."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional


class NotificationType(str, enum.Enum):
    """Kinds of notification the lifecycle emits."""
    DISC_FOUND = "disc_found"
    MEETUP_PROPOSED = "meetup_proposed"
    MEETUP_COUNTERED = "meetup_countered"
    MEETUP_ACCEPTED = "meetup_accepted"
    MEETUP_DECLINED = "meetup_declined"
    DISC_DROPPED_OFF = "disc_dropped_off"
    DISC_RETRIEVED = "disc_retrieved"
    DISC_RECOVERED = "disc_recovered"
    DISC_SURRENDERED = "disc_surrendered"
    DISC_ABANDONED = "disc_abandoned"
    DISC_RELINQUISHED = "disc_relinquished"


@dataclass
class Notification:
    """An in-app notification for one user.

    data is an opaque payload referencing the triggering recovery event
    and disc, e.g. {"recovery_event_id": ..., "disc_id": ...}.
    """
    user_id: str
    type: NotificationType
    title: str
    body: str
    data: dict[str, Any] = field(default_factory=dict)
    id: Optional[str] = None
    created_at: Optional[datetime] = None
    read_at: Optional[datetime] = None
