"""Recovery state machine: the transition table for RecoveryEvent.status.

Pure computation: no I/O. The lifecycle components read the current
status, ask the machine whether a move is legal, and then perform the
move as a conditional write guarded by the same table.
"""

from __future__ import annotations

from discrecovery.models.recovery import RecoveryStatus

TRANSITIONS: dict[RecoveryStatus, frozenset[RecoveryStatus]] = {
    RecoveryStatus.FOUND: frozenset({
        RecoveryStatus.MEETUP_PROPOSED,
        RecoveryStatus.DROPPED_OFF,
        RecoveryStatus.SURRENDERED,
        RecoveryStatus.CANCELLED,
    }),
    RecoveryStatus.MEETUP_PROPOSED: frozenset({
        RecoveryStatus.MEETUP_PROPOSED,  # counter-proposal
        RecoveryStatus.MEETUP_CONFIRMED,
        RecoveryStatus.FOUND,  # decline
        RecoveryStatus.SURRENDERED,
        RecoveryStatus.CANCELLED,
    }),
    RecoveryStatus.MEETUP_CONFIRMED: frozenset({
        RecoveryStatus.MEETUP_PROPOSED,
        RecoveryStatus.RECOVERED,
        RecoveryStatus.SURRENDERED,
        RecoveryStatus.CANCELLED,
    }),
    RecoveryStatus.DROPPED_OFF: frozenset({
        RecoveryStatus.MEETUP_PROPOSED,
        RecoveryStatus.RECOVERED,
        RecoveryStatus.ABANDONED,
        RecoveryStatus.SURRENDERED,  # relinquish
        RecoveryStatus.CANCELLED,
    }),
    RecoveryStatus.ABANDONED: frozenset({
        RecoveryStatus.RECOVERED,
        RecoveryStatus.CLOSED_ON_RECLAIM,
    }),
    RecoveryStatus.RECOVERED: frozenset(),
    RecoveryStatus.SURRENDERED: frozenset(),
    RecoveryStatus.CANCELLED: frozenset(),
    RecoveryStatus.CLOSED_ON_RECLAIM: frozenset(),
}

# Statuses that block a new recovery on the same disc. ABANDONED is absent:
# the disc has no owner, so it is claimed rather than reported.
ACTIVE_STATUSES: frozenset[RecoveryStatus] = frozenset({
    RecoveryStatus.FOUND,
    RecoveryStatus.MEETUP_PROPOSED,
    RecoveryStatus.MEETUP_CONFIRMED,
    RecoveryStatus.DROPPED_OFF,
})


class RecoveryStateMachine:
    """Validates RecoveryEvent status transitions."""

    @staticmethod
    def check_transition(
        current: RecoveryStatus,
        target: RecoveryStatus,
    ) -> list[str]:
        """Return errors for current → target; empty means the move is legal."""
        allowed = TRANSITIONS.get(current, frozenset())
        if target not in allowed:
            return [
                f"Cannot move recovery from {current.value} to {target.value}"
            ]
        return []

    @staticmethod
    def sources_for(target: RecoveryStatus) -> frozenset[RecoveryStatus]:
        """Every status from which target is reachable in one step.

        Used as the expected-state set of a conditional write.
        """
        return frozenset(s for s, targets in TRANSITIONS.items() if target in targets)

    @staticmethod
    def is_terminal(status: RecoveryStatus) -> bool:
        return not TRANSITIONS.get(status)

    @staticmethod
    def is_active(status: RecoveryStatus) -> bool:
        return status in ACTIVE_STATUSES
