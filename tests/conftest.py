"""Shared fixtures: a SQLite-file store, a fixed clock and a wired service."""

from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path
from typing import Callable, Optional

import pytest

from discrecovery.clock import FixedClock
from discrecovery.models.disc import Disc, QRCode, QRCodeStatus
from discrecovery.models.recovery import DropOffLocation, DropOffPhoto, ProposalRequest
from discrecovery.persistence.audit_log import AuditLog
from discrecovery.persistence.store import RecoveryStore, new_id
from discrecovery.policy.resolver import PolicyResolver
from discrecovery.service import RecoveryService


CONFIG_DIR = Path(__file__).resolve().parents[1] / "config"

OWNER = "owner-1"
FINDER = "finder-1"
STRANGER = "stranger-1"


@dataclass
class SeededDisc:
    disc: Disc
    qr: Optional[QRCode]

    @property
    def id(self) -> str:
        return self.disc.id

    @property
    def short_code(self) -> str:
        return self.qr.short_code


@pytest.fixture
def policy() -> PolicyResolver:
    return PolicyResolver.from_config_dir(CONFIG_DIR)


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock()


@pytest.fixture
def store(tmp_path: Path):
    s = RecoveryStore.from_url(f"sqlite:///{tmp_path / 'recovery.db'}")
    s.create_schema()
    yield s
    s.dispose()


@pytest.fixture
def audit_log() -> AuditLog:
    return AuditLog()


@pytest.fixture
def service(
    store: RecoveryStore,
    policy: PolicyResolver,
    clock: FixedClock,
    audit_log: AuditLog,
) -> RecoveryService:
    return RecoveryService(store, policy, clock=clock, audit_log=audit_log)


@pytest.fixture
def make_disc(store: RecoveryStore, clock: FixedClock) -> Callable[..., SeededDisc]:
    """Insert a disc, by default owned by OWNER with an active QR code."""
    counter = {"n": 0}

    def _make(
        owner_id: Optional[str] = OWNER,
        with_qr: bool = True,
        reward_amount: Optional[float] = None,
        name: str = "Destroyer",
    ) -> SeededDisc:
        counter["n"] += 1
        now = clock.now()
        qr = None
        with store.transaction() as tx:
            if with_qr:
                qr = tx.add_qr_code(QRCode(
                    id=new_id(),
                    short_code=f"TESTCODE{counter['n']:04d}",
                    status=QRCodeStatus.ACTIVE,
                    assigned_to=owner_id,
                    created_at=now,
                    updated_at=now,
                ))
            disc = tx.add_disc(Disc(
                id=new_id(),
                owner_id=owner_id,
                qr_code_id=qr.id if qr else None,
                name=name,
                manufacturer="Innova",
                mold="Destroyer",
                plastic="Star",
                color="Blue",
                speed=12, glide=5, turn=-1, fade=3,
                reward_amount=reward_amount,
                created_at=now,
                updated_at=now,
            ))
        return SeededDisc(disc=disc, qr=qr)

    return _make


@pytest.fixture
def open_recovery(service: RecoveryService) -> Callable[[SeededDisc], str]:
    """Report the disc found by FINDER; returns the recovery event id."""
    def _open(seeded: SeededDisc, finder_id: str = FINDER) -> str:
        result = service.report_found(seeded.short_code, finder_id, "Found it on hole 7")
        assert result.success, result.errors
        return result.data["recovery_event"]["id"]

    return _open


def proposal_request(clock: FixedClock, location: str = "Maple Hill parking lot") -> ProposalRequest:
    return ProposalRequest(
        location_name=location,
        proposed_datetime=clock.now() + timedelta(days=1),
        latitude=42.36,
        longitude=-71.06,
    )


def drop_off_photo(content_type: str = "image/jpeg", size_bytes: int = 250_000) -> DropOffPhoto:
    return DropOffPhoto(
        photo_url="https://storage.example.com/drop-offs/photo.jpg",
        storage_path="drop-offs/photo.jpg",
        content_type=content_type,
        size_bytes=size_bytes,
    )


def drop_off_location() -> DropOffLocation:
    return DropOffLocation(latitude=42.36, longitude=-71.06, notes="Behind the pro shop")
