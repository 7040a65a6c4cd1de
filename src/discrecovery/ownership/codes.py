"""QR short-code generation and issuance of fresh codes."""

from __future__ import annotations

import logging
import secrets

from discrecovery.clock import Clock
from discrecovery.errors import InvalidRequest
from discrecovery.models.disc import QRCode, QRCodeStatus
from discrecovery.outcome import ActionOutcome
from discrecovery.persistence.audit_log import AuditKind
from discrecovery.persistence.store import RecoveryStore, new_id
from discrecovery.policy.resolver import PolicyResolver
from discrecovery.views import qr_code_view

logger = logging.getLogger(__name__)

MAX_BATCH = 1000


def generate_short_code(alphabet: str, length: int) -> str:
    """Cryptographically random code drawn from alphabet."""
    return "".join(secrets.choice(alphabet) for _ in range(length))


def generate_short_codes(alphabet: str, length: int, count: int) -> list[str]:
    """count distinct codes."""
    codes: set[str] = set()
    while len(codes) < count:
        codes.add(generate_short_code(alphabet, length))
    return sorted(codes)


class QRCodeIssuer:
    """Creates GENERATED codes ready to be printed and assigned."""

    def __init__(
        self,
        store: RecoveryStore,
        policy: PolicyResolver,
        clock: Clock,
    ) -> None:
        self._store = store
        self._policy = policy
        self._clock = clock

    def issue(self, count: int, actor_id: str) -> ActionOutcome:
        if not 1 <= count <= MAX_BATCH:
            raise InvalidRequest(f"count must be between 1 and {MAX_BATCH}")

        alphabet, length = self._policy.short_code_format()
        now = self._clock.now()
        issued = []
        with self._store.transaction() as tx:
            for code in generate_short_codes(alphabet, length, count):
                if tx.short_code_exists(code):
                    # Vanishingly rare at the default length; skip rather than retry
                    logger.warning("Generated short code %s already exists", code)
                    continue
                issued.append(tx.add_qr_code(QRCode(
                    id=new_id(),
                    short_code=code,
                    status=QRCodeStatus.GENERATED,
                    created_at=now,
                    updated_at=now,
                )))

        return ActionOutcome(
            data={"qr_codes": [qr_code_view(qr) for qr in issued]},
            actor_id=actor_id,
            audit_kind=AuditKind.QR_CODES_ISSUED,
            audit_payload={"count": len(issued)},
            http_status=201,
        )
