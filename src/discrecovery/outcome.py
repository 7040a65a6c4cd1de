"""What a component hands back to the service after a committed action."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional

from discrecovery.models.notification import Notification
from discrecovery.persistence.audit_log import AuditKind


@dataclass
class ActionOutcome:
    """Result data plus the secondary effects still owed after commit.

    notifications are flushed through the outbox; audit_kind, when set,
    becomes one audit record attributed to actor_id with audit_payload.
    """
    data: dict[str, Any]
    actor_id: str
    audit_kind: Optional[AuditKind] = None
    audit_payload: dict[str, Any] = field(default_factory=dict)
    notifications: list[Notification] = field(default_factory=list)
    http_status: int = 200
