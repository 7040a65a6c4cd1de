"""Render notification text from the policy templates."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from discrecovery.models.disc import Disc
from discrecovery.models.notification import Notification, NotificationType
from discrecovery.policy.resolver import PolicyResolver


def build_notification(
    policy: PolicyResolver,
    kind: NotificationType,
    recipient_id: str,
    actor_role: str,
    disc: Disc,
    recovery_event_id: str,
    now: datetime,
    reason: Optional[str] = None,
    extra: Optional[dict[str, Any]] = None,
) -> Notification:
    """Build a notification addressed to recipient_id.

    actor_role is one of "owner", "finder" or "participant" and is rendered
    through the policy's role names, never the actor's identity.
    """
    template = policy.notification_template(kind)
    values = {
        "actor": policy.role_name(actor_role),
        "disc_name": disc.display_name(policy.fallback_disc_name()),
        "reason": f": {reason}" if reason else "",
    }
    data: dict[str, Any] = {
        "recovery_event_id": recovery_event_id,
        "disc_id": disc.id,
    }
    if extra:
        data.update(extra)
    return Notification(
        user_id=recipient_id,
        type=kind,
        title=template.title.format(**values),
        body=template.body.format(**values),
        data=data,
        created_at=now,
    )
