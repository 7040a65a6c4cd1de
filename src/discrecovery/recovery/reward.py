"""Reward acknowledgment: the finder confirms the owner's reward arrived.

Idempotent. The first successful write stamps reward_paid_at; every later
call, including one that lost a race to a concurrent retry, returns the
stored timestamp rather than its own clock reading.
"""

from __future__ import annotations

import logging

from discrecovery.clock import Clock
from discrecovery.errors import InvalidRequest, InvalidState
from discrecovery.models.recovery import RecoveryStatus
from discrecovery.outcome import ActionOutcome
from discrecovery.persistence.audit_log import AuditKind
from discrecovery.persistence.store import RecoveryStore
from discrecovery.recovery.lifecycle import conflict
from discrecovery.recovery.participants import load_participants
from discrecovery.views import iso

logger = logging.getLogger(__name__)


class RewardAcknowledgment:

    def __init__(self, store: RecoveryStore, clock: Clock) -> None:
        self._store = store
        self._clock = clock

    def mark_paid(self, event_id: str, caller_id: str) -> ActionOutcome:
        now = self._clock.now()
        with self._store.transaction() as tx:
            parts = load_participants(tx, event_id)
            parts.require_finder(caller_id, "mark the reward as received")
            if parts.event.status != RecoveryStatus.RECOVERED:
                raise InvalidState(
                    "Reward can only be acknowledged after recovery",
                    current_status=parts.event.status.value,
                )
            if not parts.disc.has_reward():
                raise InvalidRequest("This disc has no reward")

            newly_paid = False
            if parts.event.reward_paid_at is None:
                newly_paid = tx.set_reward_paid(event_id, now)
                if not newly_paid:
                    logger.info("Reward for %s already stamped by a concurrent call", event_id)
            current = tx.get_recovery_event(event_id)
            if current.reward_paid_at is None:
                raise conflict(tx, event_id)

        return ActionOutcome(
            data={
                "reward_paid_at": iso(current.reward_paid_at),
                "already_paid": not newly_paid,
            },
            actor_id=caller_id,
            audit_kind=AuditKind.REWARD_PAID if newly_paid else None,
            audit_payload={"recovery_event_id": event_id},
        )
