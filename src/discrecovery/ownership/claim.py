"""Claim reclamation: taking ownership of a disc nobody owns.

The ownership write is a single CAS on owner_id IS NULL, so of any number
of concurrent claimants at most one succeeds. Abandoned recoveries for the
disc are closed in the same transaction.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from discrecovery.clock import Clock
from discrecovery.errors import AlreadyOwned, NotFound
from discrecovery.outcome import ActionOutcome
from discrecovery.ownership.transfer import OwnershipTransferManager
from discrecovery.persistence.audit_log import AuditKind
from discrecovery.persistence.store import RecoveryStore
from discrecovery.views import disc_view

if TYPE_CHECKING:
    from discrecovery.recovery.lifecycle import RecoveryLifecycle


class ClaimReclamation:

    def __init__(
        self,
        store: RecoveryStore,
        clock: Clock,
        transfers: OwnershipTransferManager,
        lifecycle: RecoveryLifecycle,
    ) -> None:
        self._store = store
        self._clock = clock
        self._transfers = transfers
        self._lifecycle = lifecycle

    def claim(self, disc_id: str, caller_id: str) -> ActionOutcome:
        now = self._clock.now()
        with self._store.transaction() as tx:
            if not tx.set_disc_owner(disc_id, None, caller_id, now):
                if tx.get_disc(disc_id) is None:
                    raise NotFound("Disc not found")
                raise AlreadyOwned("This disc already has an owner and cannot be claimed")
            closed = self._lifecycle.close_abandoned(tx, disc_id, now)
            disc = tx.get_disc(disc_id)
            self._transfers.rebind_qr_code(tx, disc, caller_id, now)

        return ActionOutcome(
            data={"disc": disc_view(disc), "closed_recoveries": closed},
            actor_id=caller_id,
            audit_kind=AuditKind.DISC_CLAIMED,
            audit_payload={"disc_id": disc_id, "closed_recoveries": closed},
        )
