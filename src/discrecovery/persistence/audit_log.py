"""Append-only audit log of recovery actions.

Every committed lifecycle or ownership change produces one audit record.
Records are immutable once written and hashed over their canonical JSON,
so a tampered line is detected when the log is loaded back.

The audit log is a secondary effect: it is appended only after the
datastore transaction has committed. If an append fails, the primary
write stands and the service reports the failure as a warning.
"""

from __future__ import annotations

import enum
import hashlib
import json
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

logger = logging.getLogger(__name__)


class AuditKind(str, enum.Enum):
    """Classification of audited actions."""
    # Lifecycle
    DISC_REPORTED_FOUND = "disc_reported_found"
    MEETUP_PROPOSED = "meetup_proposed"
    MEETUP_ACCEPTED = "meetup_accepted"
    MEETUP_DECLINED = "meetup_declined"
    DROP_OFF_RECORDED = "drop_off_recorded"
    DROP_OFF_RETRIEVED = "drop_off_retrieved"
    RECOVERY_COMPLETED = "recovery_completed"
    DISC_SURRENDERED = "disc_surrendered"
    DISC_ABANDONED = "disc_abandoned"
    DISC_RELINQUISHED = "disc_relinquished"
    REWARD_PAID = "reward_paid"
    # Ownership
    DISC_CLAIMED = "disc_claimed"
    QR_CODE_ASSIGNED = "qr_code_assigned"
    QR_CODE_LINKED = "qr_code_linked"
    QR_CODE_UNLINKED = "qr_code_unlinked"
    QR_CODES_ISSUED = "qr_codes_issued"


def _canonical_digest(
    record_id: str,
    kind: str,
    timestamp_utc: str,
    actor_id: str,
    payload: dict[str, Any],
) -> str:
    canonical = json.dumps(
        {
            "record_id": record_id,
            "kind": kind,
            "timestamp_utc": timestamp_utc,
            "actor_id": actor_id,
            "payload": payload,
        },
        sort_keys=True,
        ensure_ascii=False,
    ).encode("utf-8")
    return f"sha256:{hashlib.sha256(canonical).hexdigest()}"


@dataclass(frozen=True)
class AuditRecord:
    """A single immutable audit entry."""
    record_id: str
    kind: AuditKind
    timestamp_utc: str
    actor_id: str
    payload: dict[str, Any]
    record_hash: str  # SHA-256 of canonical JSON

    @staticmethod
    def create(
        kind: AuditKind,
        actor_id: str,
        payload: dict[str, Any],
        timestamp_utc: Optional[datetime] = None,
        record_id: Optional[str] = None,
    ) -> AuditRecord:
        """Create a new audit record with computed hash."""
        rid = record_id or str(uuid.uuid4())
        ts = timestamp_utc or datetime.now(timezone.utc)
        ts_str = ts.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")
        return AuditRecord(
            record_id=rid,
            kind=kind,
            timestamp_utc=ts_str,
            actor_id=actor_id,
            payload=payload,
            record_hash=_canonical_digest(rid, kind.value, ts_str, actor_id, payload),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "record_id": self.record_id,
            "kind": self.kind.value,
            "timestamp_utc": self.timestamp_utc,
            "actor_id": self.actor_id,
            "payload": self.payload,
            "record_hash": self.record_hash,
        }


class AuditLog:
    """Append-only audit log with optional JSONL file persistence.

    Records can only be appended, never modified or deleted.
    """

    def __init__(self, storage_path: Optional[Path] = None) -> None:
        self._records: list[AuditRecord] = []
        self._record_ids: set[str] = set()
        self._storage_path = storage_path

        if storage_path and storage_path.exists():
            self._load_from_file(storage_path)

    def append(self, record: AuditRecord) -> None:
        """Append a record to the log.

        Raises ValueError if record_id is a duplicate (replay protection).
        Raises OSError if the backing file cannot be written.
        """
        if record.record_id in self._record_ids:
            raise ValueError(f"Duplicate audit record ID: {record.record_id}")

        if self._storage_path:
            self._append_to_file(record)

        self._records.append(record)
        self._record_ids.add(record.record_id)

    def records(self, kind: Optional[AuditKind] = None) -> list[AuditRecord]:
        """Return records, optionally filtered by kind."""
        if kind is None:
            return list(self._records)
        return [r for r in self._records if r.kind == kind]

    def records_for(self, subject_id: str) -> list[AuditRecord]:
        """Records whose payload references the given event or disc id."""
        return [
            r for r in self._records
            if subject_id in (
                r.payload.get("recovery_event_id"),
                r.payload.get("disc_id"),
            )
        ]

    @property
    def count(self) -> int:
        return len(self._records)

    @property
    def last_record(self) -> Optional[AuditRecord]:
        return self._records[-1] if self._records else None

    def _append_to_file(self, record: AuditRecord) -> None:
        self._storage_path.parent.mkdir(parents=True, exist_ok=True)
        with self._storage_path.open("a", encoding="utf-8") as f:
            f.write(json.dumps(record.to_dict(), sort_keys=True, ensure_ascii=False) + "\n")

    def _load_from_file(self, path: Path) -> None:
        """Load records from a JSONL file with integrity verification.

        Fail-closed: rejects tampered records (hash mismatch) and
        duplicate record IDs.
        """
        with path.open("r", encoding="utf-8") as f:
            for line_num, line in enumerate(f, 1):
                line = line.strip()
                if not line:
                    continue
                data = json.loads(line)
                record_id = data["record_id"]

                if record_id in self._record_ids:
                    raise ValueError(
                        f"Duplicate audit record ID on load (line {line_num}): {record_id}"
                    )

                expected_hash = _canonical_digest(
                    record_id,
                    data["kind"],
                    data["timestamp_utc"],
                    data["actor_id"],
                    data["payload"],
                )
                if data["record_hash"] != expected_hash:
                    raise ValueError(
                        f"Integrity check failed (line {line_num}): record {record_id} "
                        f"stored hash {data['record_hash']} != computed {expected_hash}"
                    )

                record = AuditRecord(
                    record_id=record_id,
                    kind=AuditKind(data["kind"]),
                    timestamp_utc=data["timestamp_utc"],
                    actor_id=data["actor_id"],
                    payload=data["payload"],
                    record_hash=data["record_hash"],
                )
                self._records.append(record)
                self._record_ids.add(record_id)

        logger.info("Loaded %d audit records from %s", len(self._records), path)
