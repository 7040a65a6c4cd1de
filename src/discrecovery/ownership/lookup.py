"""Public QR lookup: what a scanner learns from a short code.

Unauthenticated and soft-failing: every outcome is a 200 with a shape that
says how far the lookup got. owner_id is never exposed.
"""

from __future__ import annotations

from typing import Any, Optional

from discrecovery.models.disc import QRCodeStatus
from discrecovery.persistence.store import RecoveryStore
from discrecovery.recovery.state_machine import ACTIVE_STATUSES
from discrecovery.views import public_disc_view


class QRCodeLookup:

    def __init__(self, store: RecoveryStore) -> None:
        self._store = store

    def lookup(self, short_code: str, viewer_id: Optional[str] = None) -> dict[str, Any]:
        with self._store.transaction() as tx:
            qr = tx.find_qr_code(short_code) if short_code.strip() else None
            if qr is None:
                return {"found": False, "qr_exists": False}

            if qr.status == QRCodeStatus.DEACTIVATED:
                return {"found": False, "qr_exists": True, "qr_status": qr.status.value}

            if qr.status == QRCodeStatus.GENERATED:
                return {
                    "found": False,
                    "qr_exists": True,
                    "qr_status": qr.status.value,
                    "qr_code": qr.short_code,
                }

            if qr.status == QRCodeStatus.ASSIGNED:
                is_assignee = viewer_id is not None and viewer_id == qr.assigned_to
                result = {
                    "found": False,
                    "qr_exists": True,
                    "qr_status": qr.status.value,
                    "qr_code": qr.short_code,
                    "is_assignee": is_assignee,
                }
                if is_assignee:
                    result["qr_code_id"] = qr.id
                return result

            disc = tx.disc_for_qr_code(qr.id)
            if disc is None:
                return {"found": False, "qr_exists": True, "qr_status": qr.status.value}
            active = tx.recovery_events_for_disc(disc.id, ACTIVE_STATUSES)

        return {
            "found": True,
            "disc": public_disc_view(disc),
            "has_active_recovery": bool(active),
            "is_owner": viewer_id is not None and viewer_id == disc.owner_id,
            "is_claimable": disc.is_claimable,
        }
