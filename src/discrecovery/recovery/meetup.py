"""Meetup negotiation: proposals, counter-proposals, accept and decline.

Counter-proposal rule: a new proposal declines every pending one on the
event, so at most one proposal is ever pending. Authors other than the
caller are told their proposal was countered. Ties are last-write-wins;
the event CAS at the start of propose() serialises concurrent proposers
on the event row.
"""

from __future__ import annotations

from typing import Optional

from discrecovery.clock import Clock
from discrecovery.errors import Conflict, Forbidden, InvalidRequest, InvalidState, NotFound
from discrecovery.models.notification import Notification, NotificationType
from discrecovery.models.recovery import (
    MeetupProposal,
    MeetupStatus,
    ProposalRequest,
    RecoveryStatus,
)
from discrecovery.notifications.templates import build_notification
from discrecovery.outcome import ActionOutcome
from discrecovery.persistence.audit_log import AuditKind
from discrecovery.persistence.store import RecoveryStore, StoreTransaction, new_id
from discrecovery.policy.resolver import PolicyResolver
from discrecovery.recovery.lifecycle import apply_transition
from discrecovery.recovery.participants import Participants, load_participants
from discrecovery.views import event_view, proposal_view


def validate_coordinates(latitude: Optional[float], longitude: Optional[float]) -> list[str]:
    errors = []
    if latitude is not None and not -90 <= latitude <= 90:
        errors.append(f"latitude out of range: {latitude}")
    if longitude is not None and not -180 <= longitude <= 180:
        errors.append(f"longitude out of range: {longitude}")
    return errors


def validate_proposal(request: ProposalRequest) -> list[str]:
    """Return input errors for a proposal; empty means valid."""
    errors = []
    if not request.location_name or not request.location_name.strip():
        errors.append("location_name is required")
    if request.proposed_datetime is None:
        errors.append("proposed_datetime is required")
    elif request.proposed_datetime.tzinfo is None:
        errors.append("proposed_datetime must be timezone-aware")
    errors.extend(validate_coordinates(request.latitude, request.longitude))
    return errors


class MeetupNegotiation:
    """Creates and resolves MeetupProposal rows on top of the lifecycle."""

    def __init__(
        self,
        store: RecoveryStore,
        policy: PolicyResolver,
        clock: Clock,
    ) -> None:
        self._store = store
        self._policy = policy
        self._clock = clock

    def propose(
        self,
        event_id: str,
        caller_id: str,
        request: ProposalRequest,
    ) -> ActionOutcome:
        errors = validate_proposal(request)
        if errors:
            raise InvalidRequest("; ".join(errors))

        now = self._clock.now()
        notifications: list[Notification] = []
        with self._store.transaction() as tx:
            parts = load_participants(tx, event_id)
            role = parts.require_participant(caller_id)
            apply_transition(tx, parts.event, RecoveryStatus.MEETUP_PROPOSED, now)

            for pending in tx.proposals_for_event(event_id, MeetupStatus.PENDING):
                if not tx.transition_proposal(
                    pending.id, MeetupStatus.PENDING, MeetupStatus.DECLINED,
                ):
                    raise Conflict("Meetup proposal was modified by another request")
                if pending.proposed_by != caller_id:
                    notifications.append(build_notification(
                        self._policy, NotificationType.MEETUP_COUNTERED,
                        pending.proposed_by, role, parts.disc, event_id, now,
                        extra={"proposal_id": pending.id},
                    ))

            proposal = tx.add_proposal(MeetupProposal(
                id=new_id(),
                recovery_event_id=event_id,
                proposed_by=caller_id,
                location_name=request.location_name.strip(),
                proposed_datetime=request.proposed_datetime,
                latitude=request.latitude,
                longitude=request.longitude,
                status=MeetupStatus.PENDING,
                message=request.message,
                created_at=now,
            ))

        recipient = parts.other_party(caller_id)
        if recipient is not None:
            notifications.append(build_notification(
                self._policy, NotificationType.MEETUP_PROPOSED, recipient, role,
                parts.disc, event_id, now,
                extra={"proposal_id": proposal.id},
            ))
        return ActionOutcome(
            data={"proposal": proposal_view(proposal)},
            actor_id=caller_id,
            audit_kind=AuditKind.MEETUP_PROPOSED,
            audit_payload={"recovery_event_id": event_id, "proposal_id": proposal.id},
            notifications=notifications,
            http_status=201,
        )

    def accept(self, proposal_id: str, caller_id: str) -> ActionOutcome:
        """The non-author participant confirms the meetup."""
        now = self._clock.now()
        with self._store.transaction() as tx:
            proposal, parts, role = self._load_for_response(tx, proposal_id, caller_id, "accept")
            if not tx.transition_proposal(
                proposal_id, MeetupStatus.PENDING, MeetupStatus.ACCEPTED,
            ):
                raise _proposal_conflict(tx, proposal_id)
            apply_transition(
                tx, parts.event, RecoveryStatus.MEETUP_CONFIRMED, now,
                allowed_from={RecoveryStatus.MEETUP_PROPOSED},
            )
            accepted = tx.get_proposal(proposal_id)
            event = tx.get_recovery_event(parts.event.id)

        notification = build_notification(
            self._policy, NotificationType.MEETUP_ACCEPTED, proposal.proposed_by, role,
            parts.disc, parts.event.id, now,
            extra={"proposal_id": proposal_id},
        )
        return ActionOutcome(
            data={"proposal": proposal_view(accepted), "recovery_event": event_view(event)},
            actor_id=caller_id,
            audit_kind=AuditKind.MEETUP_ACCEPTED,
            audit_payload={"recovery_event_id": parts.event.id, "proposal_id": proposal_id},
            notifications=[notification],
        )

    def decline(
        self,
        proposal_id: str,
        caller_id: str,
        reason: Optional[str] = None,
    ) -> ActionOutcome:
        """The non-author participant rejects the meetup; the event returns to FOUND."""
        now = self._clock.now()
        with self._store.transaction() as tx:
            proposal, parts, role = self._load_for_response(tx, proposal_id, caller_id, "decline")
            if not tx.transition_proposal(
                proposal_id, MeetupStatus.PENDING, MeetupStatus.DECLINED,
            ):
                raise _proposal_conflict(tx, proposal_id)
            apply_transition(
                tx, parts.event, RecoveryStatus.FOUND, now,
                allowed_from={RecoveryStatus.MEETUP_PROPOSED},
            )
            declined = tx.get_proposal(proposal_id)
            event = tx.get_recovery_event(parts.event.id)

        notification = build_notification(
            self._policy, NotificationType.MEETUP_DECLINED, proposal.proposed_by, role,
            parts.disc, parts.event.id, now,
            reason=reason,
            extra={"proposal_id": proposal_id},
        )
        return ActionOutcome(
            data={"proposal": proposal_view(declined), "recovery_event": event_view(event)},
            actor_id=caller_id,
            audit_kind=AuditKind.MEETUP_DECLINED,
            audit_payload={
                "recovery_event_id": parts.event.id,
                "proposal_id": proposal_id,
                "reason": reason,
            },
            notifications=[notification],
        )

    def _load_for_response(
        self,
        tx: StoreTransaction,
        proposal_id: str,
        caller_id: str,
        action: str,
    ) -> tuple[MeetupProposal, Participants, str]:
        proposal = tx.get_proposal(proposal_id)
        if proposal is None:
            raise NotFound("Meetup proposal not found")
        parts = load_participants(tx, proposal.recovery_event_id)
        role = parts.require_participant(caller_id)
        if proposal.proposed_by == caller_id:
            raise Forbidden(f"You cannot {action} your own proposal")
        if proposal.status != MeetupStatus.PENDING:
            raise InvalidState(
                f"Proposal is {proposal.status.value}, not pending",
                current_status=proposal.status.value,
            )
        return proposal, parts, role


def _proposal_conflict(tx: StoreTransaction, proposal_id: str) -> Conflict:
    current = tx.get_proposal(proposal_id)
    return Conflict(
        "Meetup proposal was modified by another request",
        current_status=current.status.value if current else None,
    )
