"""Recovery store: SQLAlchemy-backed datastore for the recovery engine.

Provides:
- Row reads returning plain domain dataclasses (never live ORM objects).
- Conditional updates (compare-and-swap): every guarded write is a single
  UPDATE ... WHERE id = ? AND <expected state>, and reports whether it
  affected a row. Zero rows means another request won the race.
- Transactions and savepoints. Any SQLAlchemyError escaping a transaction
  or savepoint is re-raised as DependencyFailure.

SQLite is supported for tests and single-node deployments. The driver's
implicit transaction handling is switched off and every transaction opens
with BEGIN IMMEDIATE, so writers serialise and SAVEPOINT nests correctly.
"""

from __future__ import annotations

import logging
import uuid
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Iterable, Iterator, Optional

from sqlalchemy import create_engine, delete, event, func, select, update
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from discrecovery.errors import DependencyFailure
from discrecovery.models.disc import Disc, QRCode, QRCodeStatus, normalize_short_code
from discrecovery.models.notification import Notification, NotificationType
from discrecovery.models.recovery import (
    DropOff,
    MeetupProposal,
    MeetupStatus,
    RecoveryEvent,
    RecoveryStatus,
)
from discrecovery.persistence.tables import (
    Base,
    DiscRow,
    DropOffRow,
    MeetupProposalRow,
    NotificationRow,
    QRCodeRow,
    RecoveryEventRow,
)

logger = logging.getLogger(__name__)

_MEMORY_URLS = ("sqlite://", "sqlite:///:memory:")


def new_id() -> str:
    return str(uuid.uuid4())


class RecoveryStore:
    """Owns the engine and hands out transactions.

    Usage:
        store = RecoveryStore.from_url("sqlite:///data/recovery.db")
        store.create_schema()

        with store.transaction() as tx:
            disc = tx.get_disc(disc_id)
            if not tx.set_disc_owner(disc_id, None, user_id, now):
                ...  # lost the race
    """

    def __init__(self, engine: Engine) -> None:
        self._engine = engine
        self._session_factory = sessionmaker(
            bind=engine,
            autoflush=False,
            expire_on_commit=False,
        )

    @classmethod
    def from_url(cls, url: str, **engine_kwargs: Any) -> RecoveryStore:
        """Build a store from a SQLAlchemy database URL."""
        if url.startswith("sqlite"):
            connect_args = dict(engine_kwargs.pop("connect_args", {}))
            connect_args.setdefault("check_same_thread", False)
            engine_kwargs["connect_args"] = connect_args
            if url in _MEMORY_URLS:
                # One shared connection, otherwise each session sees an empty db
                engine_kwargs.setdefault("poolclass", StaticPool)
        engine = create_engine(url, **engine_kwargs)
        if engine.dialect.name == "sqlite":
            _configure_sqlite(engine)
        return cls(engine)

    @property
    def engine(self) -> Engine:
        return self._engine

    def create_schema(self) -> None:
        Base.metadata.create_all(self._engine)

    def dispose(self) -> None:
        self._engine.dispose()
        logger.info("Recovery store engine disposed")

    @contextmanager
    def transaction(self) -> Iterator[StoreTransaction]:
        """Run a unit of work; commits on success, rolls back on any error."""
        session = self._session_factory()
        try:
            with session.begin():
                yield StoreTransaction(session)
        except SQLAlchemyError as e:
            raise DependencyFailure(f"Datastore failure: {e}") from e
        finally:
            session.close()


def _configure_sqlite(engine: Engine) -> None:
    @event.listens_for(engine, "connect")
    def receive_connect(dbapi_connection, connection_record):
        # Stop pysqlite from emitting its own BEGIN/COMMIT
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys = ON")
        cursor.execute("PRAGMA busy_timeout = 30000")
        cursor.close()

    @event.listens_for(engine, "begin")
    def receive_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


class StoreTransaction:
    """Typed reads and conditional writes within one datastore transaction.

    Every CAS method returns True only if exactly the targeted row matched
    its expected state and was written.
    """

    def __init__(self, session: Session) -> None:
        self._session = session

    @contextmanager
    def savepoint(self) -> Iterator[StoreTransaction]:
        """Nested unit of work; a failure rolls back only the savepoint."""
        try:
            with self._session.begin_nested():
                yield self
        except SQLAlchemyError as e:
            raise DependencyFailure(f"Datastore failure: {e}") from e

    def _first(self, stmt):
        # populate_existing: CAS updates bypass the identity map, so always
        # refresh from the row rather than serving a stale cached object
        return self._session.execute(
            stmt.execution_options(populate_existing=True)
        ).scalars().first()

    def _all(self, stmt) -> list:
        return list(
            self._session.execute(
                stmt.execution_options(populate_existing=True)
            ).scalars()
        )

    def _cas(self, stmt) -> int:
        result = self._session.execute(
            stmt.execution_options(synchronize_session=False)
        )
        return result.rowcount

    def _add(self, row: Any) -> None:
        self._session.add(row)
        self._session.flush()

    # ------------------------------------------------------------------
    # Discs
    # ------------------------------------------------------------------

    def get_disc(self, disc_id: str) -> Optional[Disc]:
        row = self._first(select(DiscRow).where(DiscRow.id == disc_id))
        return _disc_from_row(row) if row is not None else None

    def owner_of(self, disc_id: str) -> Optional[str]:
        """Read-through accessor for the disc's current owner."""
        return self._session.execute(
            select(DiscRow.owner_id).where(DiscRow.id == disc_id)
        ).scalar_one_or_none()

    def disc_for_qr_code(self, qr_code_id: str) -> Optional[Disc]:
        row = self._first(select(DiscRow).where(DiscRow.qr_code_id == qr_code_id))
        return _disc_from_row(row) if row is not None else None

    def add_disc(self, disc: Disc) -> Disc:
        self._add(DiscRow(
            id=disc.id,
            owner_id=disc.owner_id,
            qr_code_id=disc.qr_code_id,
            name=disc.name,
            manufacturer=disc.manufacturer,
            mold=disc.mold,
            plastic=disc.plastic,
            color=disc.color,
            speed=disc.speed,
            glide=disc.glide,
            turn=disc.turn,
            fade=disc.fade,
            reward_amount=disc.reward_amount,
            created_at=disc.created_at,
            updated_at=disc.updated_at,
        ))
        return disc

    def set_disc_owner(
        self,
        disc_id: str,
        expected_owner: Optional[str],
        new_owner: Optional[str],
        now: datetime,
    ) -> bool:
        """CAS Disc.owner_id from expected_owner (None = unowned) to new_owner."""
        current = (
            DiscRow.owner_id.is_(None) if expected_owner is None
            else DiscRow.owner_id == expected_owner
        )
        return self._cas(
            update(DiscRow)
            .where(DiscRow.id == disc_id, current)
            .values(owner_id=new_owner, updated_at=now)
        ) == 1

    def set_disc_qr_code(
        self,
        disc_id: str,
        expected_qr_code_id: Optional[str],
        new_qr_code_id: Optional[str],
        now: datetime,
    ) -> bool:
        """CAS Disc.qr_code_id from its expected value to a new one."""
        current = (
            DiscRow.qr_code_id.is_(None) if expected_qr_code_id is None
            else DiscRow.qr_code_id == expected_qr_code_id
        )
        return self._cas(
            update(DiscRow)
            .where(DiscRow.id == disc_id, current)
            .values(qr_code_id=new_qr_code_id, updated_at=now)
        ) == 1

    # ------------------------------------------------------------------
    # QR codes
    # ------------------------------------------------------------------

    def get_qr_code(self, qr_code_id: str) -> Optional[QRCode]:
        row = self._first(select(QRCodeRow).where(QRCodeRow.id == qr_code_id))
        return _qr_from_row(row) if row is not None else None

    def find_qr_code(self, short_code: str) -> Optional[QRCode]:
        row = self._first(
            select(QRCodeRow).where(
                QRCodeRow.short_code == normalize_short_code(short_code),
            )
        )
        return _qr_from_row(row) if row is not None else None

    def short_code_exists(self, short_code: str) -> bool:
        return self.find_qr_code(short_code) is not None

    def add_qr_code(self, qr: QRCode) -> QRCode:
        qr.short_code = normalize_short_code(qr.short_code)
        self._add(QRCodeRow(
            id=qr.id,
            short_code=qr.short_code,
            status=qr.status.value,
            assigned_to=qr.assigned_to,
            created_at=qr.created_at,
            updated_at=qr.updated_at,
        ))
        return qr

    def transition_qr_code(
        self,
        qr_code_id: str,
        from_status: QRCodeStatus,
        to_status: QRCodeStatus,
        now: datetime,
        assigned_to: Optional[str] = None,
    ) -> bool:
        """CAS a code's status; optionally (re)sets the assignee as well."""
        values: dict[str, Any] = {"status": to_status.value, "updated_at": now}
        if assigned_to is not None:
            values["assigned_to"] = assigned_to
        return self._cas(
            update(QRCodeRow)
            .where(QRCodeRow.id == qr_code_id, QRCodeRow.status == from_status.value)
            .values(**values)
        ) == 1

    def reassign_qr_code(self, qr_code_id: str, assigned_to: str, now: datetime) -> bool:
        """Point an affixed code at a new owner; it stays ACTIVE."""
        return self._cas(
            update(QRCodeRow)
            .where(QRCodeRow.id == qr_code_id)
            .values(
                assigned_to=assigned_to,
                status=QRCodeStatus.ACTIVE.value,
                updated_at=now,
            )
        ) == 1

    def delete_qr_code(self, qr_code_id: str) -> bool:
        return self._cas(delete(QRCodeRow).where(QRCodeRow.id == qr_code_id)) == 1

    # ------------------------------------------------------------------
    # Recovery events
    # ------------------------------------------------------------------

    def get_recovery_event(self, event_id: str) -> Optional[RecoveryEvent]:
        row = self._first(
            select(RecoveryEventRow).where(RecoveryEventRow.id == event_id)
        )
        return _event_from_row(row) if row is not None else None

    def recovery_events_for_disc(
        self,
        disc_id: str,
        statuses: Optional[Iterable[RecoveryStatus]] = None,
    ) -> list[RecoveryEvent]:
        stmt = select(RecoveryEventRow).where(RecoveryEventRow.disc_id == disc_id)
        if statuses is not None:
            stmt = stmt.where(RecoveryEventRow.status.in_([s.value for s in statuses]))
        stmt = stmt.order_by(RecoveryEventRow.found_at)
        return [_event_from_row(r) for r in self._all(stmt)]

    def add_recovery_event(self, recovery: RecoveryEvent) -> RecoveryEvent:
        self._add(RecoveryEventRow(
            id=recovery.id,
            disc_id=recovery.disc_id,
            finder_id=recovery.finder_id,
            status=recovery.status.value,
            finder_message=recovery.finder_message,
            found_at=recovery.found_at,
            surrendered_at=recovery.surrendered_at,
            recovered_at=recovery.recovered_at,
            original_owner_id=recovery.original_owner_id,
            reward_paid_at=recovery.reward_paid_at,
            updated_at=recovery.updated_at,
        ))
        return recovery

    def transition_recovery_event(
        self,
        event_id: str,
        from_statuses: Iterable[RecoveryStatus],
        to_status: RecoveryStatus,
        now: datetime,
        **fields: Any,
    ) -> bool:
        """CAS RecoveryEvent.status; extra fields are written alongside."""
        allowed = [s.value for s in from_statuses]
        return self._cas(
            update(RecoveryEventRow)
            .where(
                RecoveryEventRow.id == event_id,
                RecoveryEventRow.status.in_(allowed),
            )
            .values(status=to_status.value, updated_at=now, **fields)
        ) == 1

    def set_reward_paid(self, event_id: str, paid_at: datetime) -> bool:
        """Stamp reward_paid_at once, only on a recovered event."""
        return self._cas(
            update(RecoveryEventRow)
            .where(
                RecoveryEventRow.id == event_id,
                RecoveryEventRow.status == RecoveryStatus.RECOVERED.value,
                RecoveryEventRow.reward_paid_at.is_(None),
            )
            .values(reward_paid_at=paid_at, updated_at=paid_at)
        ) == 1

    def close_abandoned_events(
        self,
        disc_id: str,
        closure_status: RecoveryStatus,
        now: datetime,
    ) -> int:
        """Move every ABANDONED event for the disc to closure_status."""
        return self._cas(
            update(RecoveryEventRow)
            .where(
                RecoveryEventRow.disc_id == disc_id,
                RecoveryEventRow.status == RecoveryStatus.ABANDONED.value,
            )
            .values(status=closure_status.value, recovered_at=now, updated_at=now)
        )

    # ------------------------------------------------------------------
    # Meetup proposals
    # ------------------------------------------------------------------

    def get_proposal(self, proposal_id: str) -> Optional[MeetupProposal]:
        row = self._first(
            select(MeetupProposalRow).where(MeetupProposalRow.id == proposal_id)
        )
        return _proposal_from_row(row) if row is not None else None

    def proposals_for_event(
        self,
        event_id: str,
        status: Optional[MeetupStatus] = None,
    ) -> list[MeetupProposal]:
        stmt = select(MeetupProposalRow).where(
            MeetupProposalRow.recovery_event_id == event_id,
        )
        if status is not None:
            stmt = stmt.where(MeetupProposalRow.status == status.value)
        stmt = stmt.order_by(MeetupProposalRow.created_at, MeetupProposalRow.id)
        return [_proposal_from_row(r) for r in self._all(stmt)]

    def add_proposal(self, proposal: MeetupProposal) -> MeetupProposal:
        self._add(MeetupProposalRow(
            id=proposal.id,
            recovery_event_id=proposal.recovery_event_id,
            proposed_by=proposal.proposed_by,
            location_name=proposal.location_name,
            latitude=proposal.latitude,
            longitude=proposal.longitude,
            proposed_datetime=proposal.proposed_datetime,
            status=proposal.status.value,
            message=proposal.message,
            created_at=proposal.created_at,
        ))
        return proposal

    def transition_proposal(
        self,
        proposal_id: str,
        from_status: MeetupStatus,
        to_status: MeetupStatus,
    ) -> bool:
        return self._cas(
            update(MeetupProposalRow)
            .where(
                MeetupProposalRow.id == proposal_id,
                MeetupProposalRow.status == from_status.value,
            )
            .values(status=to_status.value)
        ) == 1

    # ------------------------------------------------------------------
    # Drop-offs
    # ------------------------------------------------------------------

    def latest_drop_off(self, event_id: str) -> Optional[DropOff]:
        row = self._first(
            select(DropOffRow)
            .where(DropOffRow.recovery_event_id == event_id)
            .order_by(DropOffRow.dropped_off_at.desc())
        )
        return _drop_off_from_row(row) if row is not None else None

    def add_drop_off(self, drop_off: DropOff) -> DropOff:
        self._add(DropOffRow(
            id=drop_off.id,
            recovery_event_id=drop_off.recovery_event_id,
            photo_url=drop_off.photo_url,
            storage_path=drop_off.storage_path,
            latitude=drop_off.latitude,
            longitude=drop_off.longitude,
            location_notes=drop_off.location_notes,
            dropped_off_at=drop_off.dropped_off_at,
            retrieved_at=drop_off.retrieved_at,
        ))
        return drop_off

    def mark_drop_off_retrieved(self, drop_off_id: str, now: datetime) -> bool:
        return self._cas(
            update(DropOffRow)
            .where(DropOffRow.id == drop_off_id, DropOffRow.retrieved_at.is_(None))
            .values(retrieved_at=now)
        ) == 1

    # ------------------------------------------------------------------
    # Notifications
    # ------------------------------------------------------------------

    def add_notification(self, notification: Notification) -> Notification:
        if notification.id is None:
            notification.id = new_id()
        self._add(NotificationRow(
            id=notification.id,
            user_id=notification.user_id,
            type=notification.type.value,
            title=notification.title,
            body=notification.body,
            data=notification.data,
            created_at=notification.created_at,
            read_at=notification.read_at,
        ))
        return notification

    def notifications_for(self, user_id: str) -> list[Notification]:
        stmt = (
            select(NotificationRow)
            .where(NotificationRow.user_id == user_id)
            .order_by(NotificationRow.seq)
        )
        return [_notification_from_row(r) for r in self._all(stmt)]

    # ------------------------------------------------------------------
    # Summaries
    # ------------------------------------------------------------------

    def recovery_status_counts(self) -> dict[str, int]:
        rows = self._session.execute(
            select(RecoveryEventRow.status, func.count())
            .group_by(RecoveryEventRow.status)
        ).all()
        return {status: count for status, count in rows}

    def disc_counts(self) -> dict[str, int]:
        total = self._session.execute(select(func.count()).select_from(DiscRow)).scalar_one()
        unowned = self._session.execute(
            select(func.count()).select_from(DiscRow).where(DiscRow.owner_id.is_(None))
        ).scalar_one()
        return {"total": total, "unowned": unowned}


# ----------------------------------------------------------------------
# Row → dataclass conversion
# ----------------------------------------------------------------------

def _disc_from_row(row: DiscRow) -> Disc:
    return Disc(
        id=row.id,
        owner_id=row.owner_id,
        qr_code_id=row.qr_code_id,
        name=row.name or "",
        manufacturer=row.manufacturer,
        mold=row.mold,
        plastic=row.plastic,
        color=row.color,
        speed=row.speed,
        glide=row.glide,
        turn=row.turn,
        fade=row.fade,
        reward_amount=row.reward_amount,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _qr_from_row(row: QRCodeRow) -> QRCode:
    return QRCode(
        id=row.id,
        short_code=row.short_code,
        status=QRCodeStatus(row.status),
        assigned_to=row.assigned_to,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _event_from_row(row: RecoveryEventRow) -> RecoveryEvent:
    return RecoveryEvent(
        id=row.id,
        disc_id=row.disc_id,
        finder_id=row.finder_id,
        status=RecoveryStatus(row.status),
        finder_message=row.finder_message,
        found_at=row.found_at,
        surrendered_at=row.surrendered_at,
        recovered_at=row.recovered_at,
        original_owner_id=row.original_owner_id,
        reward_paid_at=row.reward_paid_at,
        updated_at=row.updated_at,
    )


def _proposal_from_row(row: MeetupProposalRow) -> MeetupProposal:
    return MeetupProposal(
        id=row.id,
        recovery_event_id=row.recovery_event_id,
        proposed_by=row.proposed_by,
        location_name=row.location_name,
        proposed_datetime=row.proposed_datetime,
        latitude=row.latitude,
        longitude=row.longitude,
        status=MeetupStatus(row.status),
        message=row.message,
        created_at=row.created_at,
    )


def _drop_off_from_row(row: DropOffRow) -> DropOff:
    return DropOff(
        id=row.id,
        recovery_event_id=row.recovery_event_id,
        photo_url=row.photo_url,
        latitude=row.latitude,
        longitude=row.longitude,
        storage_path=row.storage_path,
        location_notes=row.location_notes,
        dropped_off_at=row.dropped_off_at,
        retrieved_at=row.retrieved_at,
    )


def _notification_from_row(row: NotificationRow) -> Notification:
    return Notification(
        user_id=row.user_id,
        type=NotificationType(row.type),
        title=row.title,
        body=row.body,
        data=dict(row.data or {}),
        id=row.id,
        created_at=row.created_at,
        read_at=row.read_at,
    )
