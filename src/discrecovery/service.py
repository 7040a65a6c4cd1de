"""Recovery service: unified facade for the disc recovery engine.

This is the interface every inbound action goes through. It wires the
components together and gives each call the same shape:

1. Run the component. Authorisation, state validation and conditional
   writes happen inside one datastore transaction there.
2. After commit, flush queued notifications through the outbox.
3. Append an audit record. A failed append is reported as a warning and
   sets the audit_degraded flag; the committed action stands.
4. Return a typed ServiceResult. Expected outcomes (not found, forbidden,
   wrong state, lost race) are failed results, never exceptions.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

from discrecovery.clock import Clock, SystemClock
from discrecovery.errors import RecoveryError
from discrecovery.models.recovery import (
    DropOffLocation,
    DropOffPhoto,
    MeetupStatus,
    ProposalRequest,
)
from discrecovery.notifications.dispatcher import (
    NotificationDispatcher,
    NotificationOutbox,
    StoreNotificationDispatcher,
)
from discrecovery.outcome import ActionOutcome
from discrecovery.ownership.claim import ClaimReclamation
from discrecovery.ownership.codes import QRCodeIssuer
from discrecovery.ownership.lookup import QRCodeLookup
from discrecovery.ownership.transfer import OwnershipTransferManager
from discrecovery.persistence.audit_log import AuditLog, AuditRecord
from discrecovery.persistence.store import RecoveryStore
from discrecovery.policy.resolver import PolicyResolver
from discrecovery.recovery.dropoff import DropOffFlow
from discrecovery.recovery.lifecycle import RecoveryLifecycle
from discrecovery.recovery.meetup import MeetupNegotiation
from discrecovery.recovery.participants import load_participants
from discrecovery.recovery.reward import RewardAcknowledgment
from discrecovery.views import (
    disc_view,
    drop_off_view,
    event_view,
    notification_view,
    proposal_view,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ServiceResult:
    """Result of a service operation."""
    success: bool
    errors: list[str] = field(default_factory=list)
    data: dict[str, Any] = field(default_factory=dict)
    error_kind: Optional[str] = None
    http_status: int = 200


class RecoveryService:
    """Disc recovery engine facade.

    Usage:
        policy = PolicyResolver.from_config_dir(config_dir)
        store = RecoveryStore.from_url("sqlite:///recovery.db")
        service = RecoveryService(store, policy)

        result = service.report_found("ABCD2345EFGH", finder_id)
        event_id = result.data["recovery_event"]["id"]
        result = service.propose_meetup(event_id, owner_id, ProposalRequest(...))
        result = service.accept_meetup(proposal_id, finder_id)
        result = service.complete_recovery(event_id, owner_id)

    Audit (optional):
        service = RecoveryService(store, policy, audit_log=AuditLog(path))
    """

    def __init__(
        self,
        store: RecoveryStore,
        policy: PolicyResolver,
        clock: Optional[Clock] = None,
        dispatcher: Optional[NotificationDispatcher] = None,
        audit_log: Optional[AuditLog] = None,
    ) -> None:
        self._store = store
        self._policy = policy
        self._clock = clock or SystemClock()
        self._dispatcher = dispatcher or StoreNotificationDispatcher(store)
        self._audit_log = audit_log

        self._transfers = OwnershipTransferManager(store, self._clock)
        self._lifecycle = RecoveryLifecycle(store, policy, self._clock, self._transfers)
        self._meetups = MeetupNegotiation(store, policy, self._clock)
        self._drop_offs = DropOffFlow(store, policy, self._clock)
        self._rewards = RewardAcknowledgment(store, self._clock)
        self._claims = ClaimReclamation(store, self._clock, self._transfers, self._lifecycle)
        self._issuer = QRCodeIssuer(store, policy, self._clock)
        self._lookup = QRCodeLookup(store)

        # Audit health flag: set to True if an audit append fails after the
        # datastore transaction committed. The datastore is correct; the
        # audit trail is missing records and needs operator attention.
        self._audit_degraded: bool = False

    @property
    def audit_degraded(self) -> bool:
        return self._audit_degraded

    # ------------------------------------------------------------------
    # Ownership
    # ------------------------------------------------------------------

    def claim_disc(self, disc_id: str, caller_id: str) -> ServiceResult:
        """Take ownership of an unowned disc; closes abandoned recoveries."""
        return self._run(lambda: self._claims.claim(disc_id, caller_id))

    def issue_qr_codes(self, count: int, actor_id: str) -> ServiceResult:
        """Create count fresh GENERATED codes."""
        return self._run(lambda: self._issuer.issue(count, actor_id))

    def assign_qr_code(self, short_code: str, caller_id: str) -> ServiceResult:
        return self._run(lambda: self._transfers.assign_qr_code(short_code, caller_id))

    def link_qr_code(self, short_code: str, disc_id: str, caller_id: str) -> ServiceResult:
        return self._run(
            lambda: self._transfers.link_qr_code(short_code, disc_id, caller_id)
        )

    def unlink_qr_code(self, disc_id: str, caller_id: str) -> ServiceResult:
        """Detach and delete the disc's QR code, compensating on failure."""
        return self._run(lambda: self._transfers.unlink(disc_id, caller_id))

    def lookup_qr_code(self, short_code: str, viewer_id: Optional[str] = None) -> ServiceResult:
        """Public lookup. Always succeeds unless the datastore is down."""
        try:
            data = self._lookup.lookup(short_code, viewer_id)
        except RecoveryError as e:
            return self._failure(e)
        return ServiceResult(success=True, data=data)

    # ------------------------------------------------------------------
    # Recovery lifecycle
    # ------------------------------------------------------------------

    def report_found(
        self,
        short_code: str,
        finder_id: str,
        message: Optional[str] = None,
    ) -> ServiceResult:
        return self._run(lambda: self._lifecycle.report_found(short_code, finder_id, message))

    def surrender_disc(self, recovery_event_id: str, caller_id: str) -> ServiceResult:
        """Owner gives the disc to the finder."""
        return self._run(lambda: self._lifecycle.surrender(recovery_event_id, caller_id))

    def mark_retrieved(self, recovery_event_id: str, caller_id: str) -> ServiceResult:
        return self._run(lambda: self._lifecycle.mark_retrieved(recovery_event_id, caller_id))

    def complete_recovery(self, recovery_event_id: str, caller_id: str) -> ServiceResult:
        return self._run(
            lambda: self._lifecycle.complete_recovery(recovery_event_id, caller_id)
        )

    def abandon_disc(self, recovery_event_id: str, caller_id: str) -> ServiceResult:
        return self._run(lambda: self._lifecycle.abandon(recovery_event_id, caller_id))

    def relinquish_disc(self, recovery_event_id: str, caller_id: str) -> ServiceResult:
        return self._run(lambda: self._lifecycle.relinquish(recovery_event_id, caller_id))

    # ------------------------------------------------------------------
    # Meetups
    # ------------------------------------------------------------------

    def propose_meetup(
        self,
        recovery_event_id: str,
        caller_id: str,
        proposal: ProposalRequest,
    ) -> ServiceResult:
        """Propose (or counter-propose) a meetup; supersedes any pending one."""
        return self._run(
            lambda: self._meetups.propose(recovery_event_id, caller_id, proposal)
        )

    def accept_meetup(self, proposal_id: str, caller_id: str) -> ServiceResult:
        return self._run(lambda: self._meetups.accept(proposal_id, caller_id))

    def decline_meetup(
        self,
        proposal_id: str,
        caller_id: str,
        reason: Optional[str] = None,
    ) -> ServiceResult:
        return self._run(lambda: self._meetups.decline(proposal_id, caller_id, reason))

    # ------------------------------------------------------------------
    # Drop-off and reward
    # ------------------------------------------------------------------

    def record_drop_off(
        self,
        recovery_event_id: str,
        caller_id: str,
        photo: DropOffPhoto,
        location: DropOffLocation,
    ) -> ServiceResult:
        return self._run(
            lambda: self._drop_offs.record(recovery_event_id, caller_id, photo, location)
        )

    def mark_reward_paid(self, recovery_event_id: str, caller_id: str) -> ServiceResult:
        """Finder acknowledges the reward. Idempotent."""
        return self._run(lambda: self._rewards.mark_paid(recovery_event_id, caller_id))

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_disc(self, disc_id: str) -> Optional[dict[str, Any]]:
        with self._store.transaction() as tx:
            disc = tx.get_disc(disc_id)
        return disc_view(disc) if disc is not None else None

    def get_recovery_event(
        self,
        recovery_event_id: str,
        viewer_id: str,
    ) -> Optional[dict[str, Any]]:
        """The event as seen by a participant; None for everyone else."""
        with self._store.transaction() as tx:
            try:
                parts = load_participants(tx, recovery_event_id)
                parts.require_participant(viewer_id)
            except RecoveryError:
                return None
        return event_view(parts.event)

    def get_proposals(
        self,
        recovery_event_id: str,
        viewer_id: str,
        status: Optional[MeetupStatus] = None,
    ) -> list[dict[str, Any]]:
        """Proposals for the event, newest last; empty for non-participants."""
        with self._store.transaction() as tx:
            try:
                load_participants(tx, recovery_event_id).require_participant(viewer_id)
            except RecoveryError:
                return []
            proposals = tx.proposals_for_event(recovery_event_id, status)
        return [proposal_view(p) for p in proposals]

    def get_drop_off(
        self,
        recovery_event_id: str,
        viewer_id: str,
    ) -> Optional[dict[str, Any]]:
        with self._store.transaction() as tx:
            try:
                load_participants(tx, recovery_event_id).require_participant(viewer_id)
            except RecoveryError:
                return None
            drop_off = tx.latest_drop_off(recovery_event_id)
        return drop_off_view(drop_off) if drop_off is not None else None

    def get_notifications(self, user_id: str) -> list[dict[str, Any]]:
        with self._store.transaction() as tx:
            notifications = tx.notifications_for(user_id)
        return [notification_view(n) for n in notifications]

    def status(self) -> dict[str, Any]:
        """Return system-wide status summary."""
        with self._store.transaction() as tx:
            discs = tx.disc_counts()
            recoveries = tx.recovery_status_counts()
        return {
            "version": "0.1.0",
            "policy_version": self._policy.version,
            "discs": discs,
            "recoveries": {
                "total": sum(recoveries.values()),
                "by_status": recoveries,
            },
            "audit": {
                "records": self._audit_log.count if self._audit_log else 0,
                "degraded": self._audit_degraded,
            },
        }

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _run(self, action: Callable[[], ActionOutcome]) -> ServiceResult:
        """Run one component action and settle its secondary effects."""
        try:
            outcome = action()
        except RecoveryError as e:
            return self._failure(e)

        outbox = NotificationOutbox(self._dispatcher)
        outbox.extend(outcome.notifications)
        outbox.flush()

        data = dict(outcome.data)
        warning = self._safe_audit(outcome)
        if warning:
            data["warning"] = warning
        return ServiceResult(success=True, data=data, http_status=outcome.http_status)

    def _failure(self, error: RecoveryError) -> ServiceResult:
        if error.http_status >= 500:
            logger.error("Recovery action failed: %s", error.message)
        else:
            logger.info("Recovery action rejected (%s): %s", error.kind.value, error.message)
        return ServiceResult(
            success=False,
            errors=[error.message],
            data=error.details(),
            error_kind=error.kind.value,
            http_status=error.http_status,
        )

    def _safe_audit(self, outcome: ActionOutcome) -> Optional[str]:
        """Append the audit record after the datastore has committed.

        MUST NOT undo the committed action. If the append fails, sets the
        _audit_degraded flag and returns a warning string (not an error).
        """
        if self._audit_log is None or outcome.audit_kind is None:
            return None
        record = AuditRecord.create(
            kind=outcome.audit_kind,
            actor_id=outcome.actor_id,
            payload=outcome.audit_payload,
            timestamp_utc=self._clock.now(),
        )
        try:
            self._audit_log.append(record)
            return None
        except (OSError, ValueError) as e:
            self._audit_degraded = True
            logger.warning("Audit append failed for %s: %s", record.kind.value, e)
            return f"Audit degraded: {e}; action committed but audit record missing"
