"""Recovery lifecycle: owns RecoveryEvent.status and its guarded transitions.

Each action follows the same shape:
1. Load the event joined with its disc and authorise the caller.
2. Check the move against the state machine (InvalidState carries the
   current status).
3. Apply it as a conditional write; zero rows affected is a Conflict
   reporting the status read back after the failed write.
4. Return the notifications owed to the other party; the service
   dispatches them after commit.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Iterable, Optional

from discrecovery.clock import Clock
from discrecovery.errors import (
    Conflict,
    DropOffMissing,
    InvalidRequest,
    InvalidState,
    NotFound,
)
from discrecovery.models.disc import QRCodeStatus
from discrecovery.models.notification import NotificationType
from discrecovery.models.recovery import RecoveryEvent, RecoveryStatus
from discrecovery.notifications.templates import build_notification
from discrecovery.outcome import ActionOutcome
from discrecovery.ownership.transfer import OwnershipTransferManager
from discrecovery.persistence.audit_log import AuditKind
from discrecovery.persistence.store import RecoveryStore, StoreTransaction, new_id
from discrecovery.policy.resolver import PolicyResolver
from discrecovery.recovery.participants import FINDER, OWNER, load_participants
from discrecovery.recovery.state_machine import ACTIVE_STATUSES, RecoveryStateMachine
from discrecovery.views import event_view

logger = logging.getLogger(__name__)

SURRENDERABLE = frozenset({
    RecoveryStatus.FOUND,
    RecoveryStatus.MEETUP_PROPOSED,
    RecoveryStatus.MEETUP_CONFIRMED,
})

REPORTABLE_QR_STATUSES = (QRCodeStatus.ASSIGNED, QRCodeStatus.ACTIVE)


def conflict(tx: StoreTransaction, event_id: str) -> Conflict:
    """Build the Conflict for a lost CAS, with the status as it is now."""
    current = tx.get_recovery_event(event_id)
    return Conflict(
        "Recovery was modified by another request",
        current_status=current.status.value if current else None,
    )


def apply_transition(
    tx: StoreTransaction,
    event: RecoveryEvent,
    target: RecoveryStatus,
    now: datetime,
    allowed_from: Optional[Iterable[RecoveryStatus]] = None,
    **fields: Any,
) -> None:
    """Move event to target with a CAS on the allowed source statuses.

    allowed_from narrows the state machine's sources for actions that are
    stricter than the table (e.g. mark-retrieved only from DROPPED_OFF).
    """
    sources = RecoveryStateMachine.sources_for(target)
    if allowed_from is not None:
        sources = sources & frozenset(allowed_from)
    if event.status not in sources:
        errors = RecoveryStateMachine.check_transition(event.status, target) or [
            f"Recovery in {event.status.value} cannot move to {target.value} this way"
        ]
        raise InvalidState("; ".join(errors), current_status=event.status.value)
    if not tx.transition_recovery_event(event.id, sources, target, now, **fields):
        raise conflict(tx, event.id)


class RecoveryLifecycle:
    """Report, surrender, retrieve, complete, abandon and relinquish recoveries.

    Usage:
        lifecycle = RecoveryLifecycle(store, policy, clock, transfers)
        outcome = lifecycle.surrender(event_id, owner_id)
    """

    def __init__(
        self,
        store: RecoveryStore,
        policy: PolicyResolver,
        clock: Clock,
        transfers: OwnershipTransferManager,
    ) -> None:
        self._store = store
        self._policy = policy
        self._clock = clock
        self._transfers = transfers

    # ------------------------------------------------------------------
    # Opening a recovery
    # ------------------------------------------------------------------

    def report_found(
        self,
        short_code: str,
        finder_id: str,
        message: Optional[str] = None,
    ) -> ActionOutcome:
        """Open a FOUND recovery for the disc behind a scanned code."""
        now = self._clock.now()
        with self._store.transaction() as tx:
            qr = tx.find_qr_code(short_code)
            if qr is None:
                raise NotFound("QR code not found")
            if qr.status not in REPORTABLE_QR_STATUSES:
                raise InvalidState(
                    "QR code is not linked to a disc", current_status=qr.status.value,
                )
            disc = tx.disc_for_qr_code(qr.id)
            if disc is None:
                raise NotFound("No disc is linked to this QR code")
            if disc.owner_id is None:
                raise InvalidRequest("This disc has no owner and can be claimed instead")
            if disc.owner_id == finder_id:
                raise InvalidRequest("You cannot report your own disc as found")

            active = tx.recovery_events_for_disc(disc.id, ACTIVE_STATUSES)
            if active:
                raise InvalidState(
                    "This disc already has an active recovery",
                    current_status=active[0].status.value,
                )

            event = tx.add_recovery_event(RecoveryEvent(
                id=new_id(),
                disc_id=disc.id,
                finder_id=finder_id,
                status=RecoveryStatus.FOUND,
                finder_message=message,
                found_at=now,
                updated_at=now,
            ))

        notification = build_notification(
            self._policy, NotificationType.DISC_FOUND, disc.owner_id, FINDER,
            disc, event.id, now,
        )
        return ActionOutcome(
            data={"recovery_event": event_view(event)},
            actor_id=finder_id,
            audit_kind=AuditKind.DISC_REPORTED_FOUND,
            audit_payload={"recovery_event_id": event.id, "disc_id": disc.id},
            notifications=[notification],
            http_status=201,
        )

    # ------------------------------------------------------------------
    # Surrender
    # ------------------------------------------------------------------

    def surrender(self, event_id: str, caller_id: str) -> ActionOutcome:
        """Owner gives the disc to the finder. Ownership and status move together."""
        now = self._clock.now()
        with self._store.transaction() as tx:
            parts = load_participants(tx, event_id)
            parts.require_owner(caller_id, "surrender the disc")
            apply_transition(
                tx, parts.event, RecoveryStatus.SURRENDERED, now,
                allowed_from=SURRENDERABLE,
                surrendered_at=now,
                original_owner_id=caller_id,
            )
            self._transfers.transfer(tx, parts.disc, parts.finder_id, now)
            event = tx.get_recovery_event(event_id)

        notification = build_notification(
            self._policy, NotificationType.DISC_SURRENDERED, parts.finder_id, OWNER,
            parts.disc, event_id, now,
        )
        return ActionOutcome(
            data={
                "recovery_event": event_view(event),
                "new_owner_id": parts.finder_id,
            },
            actor_id=caller_id,
            audit_kind=AuditKind.DISC_SURRENDERED,
            audit_payload={
                "recovery_event_id": event_id,
                "disc_id": parts.disc.id,
                "new_owner_id": parts.finder_id,
            },
            notifications=[notification],
        )

    # ------------------------------------------------------------------
    # Drop-off pickup and abandonment
    # ------------------------------------------------------------------

    def mark_retrieved(self, event_id: str, caller_id: str) -> ActionOutcome:
        """Owner confirms they picked up a dropped-off disc."""
        now = self._clock.now()
        with self._store.transaction() as tx:
            parts = load_participants(tx, event_id)
            parts.require_owner(caller_id, "mark the disc as retrieved")
            if parts.event.status != RecoveryStatus.DROPPED_OFF:
                raise InvalidState(
                    "Disc has not been dropped off",
                    current_status=parts.event.status.value,
                )
            drop_off = tx.latest_drop_off(event_id)
            if drop_off is None:
                raise DropOffMissing(
                    "No drop-off recorded for this recovery",
                    current_status=parts.event.status.value,
                )
            apply_transition(
                tx, parts.event, RecoveryStatus.RECOVERED, now,
                allowed_from={RecoveryStatus.DROPPED_OFF},
                recovered_at=now,
            )
            if not tx.mark_drop_off_retrieved(drop_off.id, now):
                logger.warning("Drop-off %s was already marked retrieved", drop_off.id)
            event = tx.get_recovery_event(event_id)

        notification = build_notification(
            self._policy, NotificationType.DISC_RETRIEVED, parts.finder_id, OWNER,
            parts.disc, event_id, now,
        )
        return ActionOutcome(
            data={"success": True, "recovery_event": event_view(event)},
            actor_id=caller_id,
            audit_kind=AuditKind.DROP_OFF_RETRIEVED,
            audit_payload={"recovery_event_id": event_id, "drop_off_id": drop_off.id},
            notifications=[notification],
        )

    def abandon(self, event_id: str, caller_id: str) -> ActionOutcome:
        """Owner gives up on a dropped-off disc; it becomes claimable."""
        now = self._clock.now()
        with self._store.transaction() as tx:
            parts = load_participants(tx, event_id)
            parts.require_owner(caller_id, "abandon the disc")
            apply_transition(
                tx, parts.event, RecoveryStatus.ABANDONED, now,
                allowed_from={RecoveryStatus.DROPPED_OFF},
            )
            self._transfers.transfer(tx, parts.disc, None, now)
            event = tx.get_recovery_event(event_id)

        notification = build_notification(
            self._policy, NotificationType.DISC_ABANDONED, parts.finder_id, OWNER,
            parts.disc, event_id, now,
        )
        return ActionOutcome(
            data={"recovery_event": event_view(event)},
            actor_id=caller_id,
            audit_kind=AuditKind.DISC_ABANDONED,
            audit_payload={"recovery_event_id": event_id, "disc_id": parts.disc.id},
            notifications=[notification],
        )

    def relinquish(self, event_id: str, caller_id: str) -> ActionOutcome:
        """Owner hands a dropped-off disc to the finder instead of picking it up.

        Ends as SURRENDERED: unlike abandon, the disc gets a new owner at
        once and never becomes claimable.
        """
        now = self._clock.now()
        with self._store.transaction() as tx:
            parts = load_participants(tx, event_id)
            parts.require_owner(caller_id, "relinquish the disc")
            if parts.event.status != RecoveryStatus.DROPPED_OFF:
                raise InvalidState(
                    "Can only relinquish a disc in drop-off status",
                    current_status=parts.event.status.value,
                )
            apply_transition(
                tx, parts.event, RecoveryStatus.SURRENDERED, now,
                allowed_from={RecoveryStatus.DROPPED_OFF},
                surrendered_at=now,
                original_owner_id=caller_id,
            )
            self._transfers.transfer(tx, parts.disc, parts.finder_id, now)
            event = tx.get_recovery_event(event_id)

        notification = build_notification(
            self._policy, NotificationType.DISC_RELINQUISHED, parts.finder_id, OWNER,
            parts.disc, event_id, now,
        )
        return ActionOutcome(
            data={
                "recovery_event": event_view(event),
                "new_owner_id": parts.finder_id,
            },
            actor_id=caller_id,
            audit_kind=AuditKind.DISC_RELINQUISHED,
            audit_payload={
                "recovery_event_id": event_id,
                "disc_id": parts.disc.id,
                "new_owner_id": parts.finder_id,
            },
            notifications=[notification],
        )

    # ------------------------------------------------------------------
    # Completion
    # ------------------------------------------------------------------

    def complete_recovery(self, event_id: str, caller_id: str) -> ActionOutcome:
        """Either participant records that a confirmed meetup returned the disc."""
        now = self._clock.now()
        with self._store.transaction() as tx:
            parts = load_participants(tx, event_id)
            role = parts.require_participant(caller_id)
            apply_transition(
                tx, parts.event, RecoveryStatus.RECOVERED, now,
                allowed_from={RecoveryStatus.MEETUP_CONFIRMED},
                recovered_at=now,
            )
            event = tx.get_recovery_event(event_id)

        notifications = []
        recipient = parts.other_party(caller_id)
        if recipient is not None:
            notifications.append(build_notification(
                self._policy, NotificationType.DISC_RECOVERED, recipient, role,
                parts.disc, event_id, now,
            ))
        return ActionOutcome(
            data={"recovery_event": event_view(event)},
            actor_id=caller_id,
            audit_kind=AuditKind.RECOVERY_COMPLETED,
            audit_payload={"recovery_event_id": event_id, "disc_id": parts.disc.id},
            notifications=notifications,
        )

    # ------------------------------------------------------------------
    # Reclamation (inside Claim's transaction)
    # ------------------------------------------------------------------

    def close_abandoned(
        self,
        tx: StoreTransaction,
        disc_id: str,
        now: datetime,
    ) -> int:
        """Close every ABANDONED recovery for the disc. Returns the count."""
        closure = self._policy.reclaim_closure_status()
        errors = RecoveryStateMachine.check_transition(RecoveryStatus.ABANDONED, closure)
        if errors:
            raise ValueError("; ".join(errors))
        closed = tx.close_abandoned_events(disc_id, closure, now)
        if closed:
            logger.info(
                "Closed %d abandoned recovery event(s) for disc %s as %s",
                closed, disc_id, closure.value,
            )
        return closed
