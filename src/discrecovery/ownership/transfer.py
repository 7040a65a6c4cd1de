"""Ownership transfer: keeps Disc.owner_id and the QR code binding in step.

Two kinds of multi-step write live here:

- transfer() runs inside the caller's transaction. The ownership CAS is
  primary; the QR reassignment runs in a savepoint and a failure there
  rolls back only the savepoint. The new owner stands either way.
- unlink() and link() span two transactions. If the second step fails,
  the first is undone by a compensating CAS. A failed compensation is
  logged at ERROR and the caller still gets DependencyFailure.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

from discrecovery.clock import Clock
from discrecovery.errors import (
    Conflict,
    DependencyFailure,
    Forbidden,
    InvalidState,
    NotFound,
)
from discrecovery.models.disc import Disc, QRCodeStatus
from discrecovery.outcome import ActionOutcome
from discrecovery.persistence.audit_log import AuditKind
from discrecovery.persistence.store import RecoveryStore, StoreTransaction
from discrecovery.views import disc_view, qr_code_view

logger = logging.getLogger(__name__)


class OwnershipTransferManager:
    """Owns every write to Disc.owner_id and Disc.qr_code_id."""

    def __init__(self, store: RecoveryStore, clock: Clock) -> None:
        self._store = store
        self._clock = clock

    # ------------------------------------------------------------------
    # Owner transfer (inside a caller's transaction)
    # ------------------------------------------------------------------

    def transfer(
        self,
        tx: StoreTransaction,
        disc: Disc,
        new_owner_id: Optional[str],
        now: datetime,
    ) -> None:
        """Move the disc from disc.owner_id to new_owner_id.

        Raises Conflict if the owner changed since disc was read. When
        new_owner_id is None the QR binding is left alone.
        """
        if not tx.set_disc_owner(disc.id, disc.owner_id, new_owner_id, now):
            raise Conflict("Disc ownership changed concurrently")
        if new_owner_id is not None:
            self.rebind_qr_code(tx, disc, new_owner_id, now)

    def rebind_qr_code(
        self,
        tx: StoreTransaction,
        disc: Disc,
        new_owner_id: str,
        now: datetime,
    ) -> None:
        """Best-effort: point the disc's code at its new owner, in a savepoint."""
        if disc.qr_code_id is None:
            return
        try:
            with tx.savepoint() as sp:
                if not sp.reassign_qr_code(disc.qr_code_id, new_owner_id, now):
                    logger.warning(
                        "QR code %s for disc %s not found during transfer",
                        disc.qr_code_id, disc.id,
                    )
        except DependencyFailure as e:
            logger.warning(
                "QR code %s not reassigned to %s after transfer of disc %s: %s",
                disc.qr_code_id, new_owner_id, disc.id, e.message,
            )

    # ------------------------------------------------------------------
    # QR code assignment and linking
    # ------------------------------------------------------------------

    def assign_qr_code(self, short_code: str, caller_id: str) -> ActionOutcome:
        """Claim a freshly generated code for the caller."""
        now = self._clock.now()
        with self._store.transaction() as tx:
            qr = tx.find_qr_code(short_code)
            if qr is None:
                raise NotFound("QR code not found")
            if qr.status != QRCodeStatus.GENERATED:
                raise InvalidState(
                    "QR code is already assigned", current_status=qr.status.value,
                )
            if not tx.transition_qr_code(
                qr.id, QRCodeStatus.GENERATED, QRCodeStatus.ASSIGNED, now,
                assigned_to=caller_id,
            ):
                raise _qr_conflict(tx, qr.id)
            assigned = tx.get_qr_code(qr.id)

        return ActionOutcome(
            data={"qr_code": qr_code_view(assigned)},
            actor_id=caller_id,
            audit_kind=AuditKind.QR_CODE_ASSIGNED,
            audit_payload={"qr_code_id": qr.id},
        )

    def link_qr_code(
        self,
        short_code: str,
        disc_id: str,
        caller_id: str,
    ) -> ActionOutcome:
        """Bind an assigned code to one of the caller's discs and activate it."""
        now = self._clock.now()
        with self._store.transaction() as tx:
            qr = tx.find_qr_code(short_code)
            if qr is None:
                raise NotFound("QR code not found")
            if qr.assigned_to != caller_id:
                raise Forbidden("QR code is not assigned to you")
            if qr.status != QRCodeStatus.ASSIGNED:
                raise InvalidState(
                    "QR code cannot be linked", current_status=qr.status.value,
                )
            disc = tx.get_disc(disc_id)
            if disc is None:
                raise NotFound("Disc not found")
            if disc.owner_id != caller_id:
                raise Forbidden("You do not own this disc")
            if disc.qr_code_id is not None:
                raise InvalidState("Disc already has a QR code linked")
            if not tx.set_disc_qr_code(disc_id, None, qr.id, now):
                raise Conflict("Disc QR code changed concurrently")

        try:
            with self._store.transaction() as tx:
                activated = tx.transition_qr_code(
                    qr.id, QRCodeStatus.ASSIGNED, QRCodeStatus.ACTIVE, now,
                )
                current = tx.get_qr_code(qr.id)
        except DependencyFailure:
            self._restore_disc_qr_code(disc_id, qr.id, None)
            raise DependencyFailure("Failed to activate QR code; link rolled back")
        if not activated:
            self._restore_disc_qr_code(disc_id, qr.id, None)
            raise Conflict(
                "QR code changed concurrently",
                current_status=current.status.value if current else None,
            )

        return ActionOutcome(
            data={"disc_id": disc_id, "qr_code": qr_code_view(current)},
            actor_id=caller_id,
            audit_kind=AuditKind.QR_CODE_LINKED,
            audit_payload={"disc_id": disc_id, "qr_code_id": qr.id},
        )

    def unlink(self, disc_id: str, caller_id: str) -> ActionOutcome:
        """Detach and delete the disc's QR code; both sides or neither."""
        now = self._clock.now()
        with self._store.transaction() as tx:
            disc = tx.get_disc(disc_id)
            if disc is None:
                raise NotFound("Disc not found")
            if disc.owner_id != caller_id:
                raise Forbidden("You do not own this disc")
            if disc.qr_code_id is None:
                raise InvalidState("Disc has no QR code linked")
            qr_code_id = disc.qr_code_id
            if not tx.set_disc_qr_code(disc_id, qr_code_id, None, now):
                raise Conflict("Disc QR code changed concurrently")

        try:
            with self._store.transaction() as tx:
                if not tx.delete_qr_code(qr_code_id):
                    logger.warning("QR code %s already deleted", qr_code_id)
        except DependencyFailure:
            self._restore_disc_qr_code(disc_id, None, qr_code_id)
            raise DependencyFailure("Failed to delete QR code; link restored")

        with self._store.transaction() as tx:
            unlinked = tx.get_disc(disc_id)

        return ActionOutcome(
            data={"disc": disc_view(unlinked)},
            actor_id=caller_id,
            audit_kind=AuditKind.QR_CODE_UNLINKED,
            audit_payload={"disc_id": disc_id, "qr_code_id": qr_code_id},
        )

    def _restore_disc_qr_code(
        self,
        disc_id: str,
        expected: Optional[str],
        restore_to: Optional[str],
    ) -> None:
        """Compensating CAS: put Disc.qr_code_id back to restore_to."""
        try:
            with self._store.transaction() as tx:
                restored = tx.set_disc_qr_code(
                    disc_id, expected, restore_to, self._clock.now(),
                )
        except DependencyFailure as e:
            logger.error(
                "Compensation failed for disc %s: qr_code_id not restored to %s: %s",
                disc_id, restore_to, e.message,
            )
            return
        if restored:
            logger.info("Restored qr_code_id=%s on disc %s", restore_to, disc_id)
        else:
            logger.error(
                "Compensation skipped for disc %s: qr_code_id no longer %s",
                disc_id, expected,
            )


def _qr_conflict(tx: StoreTransaction, qr_code_id: str) -> Conflict:
    current = tx.get_qr_code(qr_code_id)
    return Conflict(
        "QR code changed concurrently",
        current_status=current.status.value if current else None,
    )
