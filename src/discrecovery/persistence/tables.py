"""SQLAlchemy table definitions for the recovery schema.

Statuses are stored as plain strings; the store converts them to and from
the enums in discrecovery.models.
"""

from __future__ import annotations

from datetime import timezone

from sqlalchemy import (
    JSON,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import declarative_base
from sqlalchemy.types import TypeDecorator

Base = declarative_base()


class UtcDateTime(TypeDecorator):
    """DateTime column that always hands back timezone-aware UTC values.

    SQLite drops tzinfo on the way in; PostgreSQL keeps it. Normalising
    here means a timestamp written and then read back compares equal.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            raise ValueError(f"Naive datetime not allowed: {value!r}")
        return value.astimezone(timezone.utc).replace(tzinfo=None)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


class QRCodeRow(Base):
    __tablename__ = "qr_codes"

    id = Column(String(36), primary_key=True)
    short_code = Column(String(32), nullable=False, unique=True)
    status = Column(String(20), nullable=False, default="generated")
    assigned_to = Column(String(36))
    created_at = Column(UtcDateTime)
    updated_at = Column(UtcDateTime)

    def __repr__(self):
        return f"<QRCodeRow(id={self.id}, short_code='{self.short_code}', status='{self.status}')>"


class DiscRow(Base):
    __tablename__ = "discs"

    id = Column(String(36), primary_key=True)
    owner_id = Column(String(36), index=True)
    qr_code_id = Column(String(36), ForeignKey("qr_codes.id", ondelete="SET NULL"), unique=True)
    name = Column(String(255), nullable=False, default="")
    manufacturer = Column(String(100))
    mold = Column(String(100))
    plastic = Column(String(100))
    color = Column(String(50))
    speed = Column(Float)
    glide = Column(Float)
    turn = Column(Float)
    fade = Column(Float)
    reward_amount = Column(Float)
    created_at = Column(UtcDateTime)
    updated_at = Column(UtcDateTime)

    def __repr__(self):
        return f"<DiscRow(id={self.id}, owner_id={self.owner_id}, name='{self.name}')>"


class RecoveryEventRow(Base):
    __tablename__ = "recovery_events"
    __table_args__ = (
        Index("ix_recovery_events_disc_status", "disc_id", "status"),
    )

    id = Column(String(36), primary_key=True)
    disc_id = Column(String(36), ForeignKey("discs.id", ondelete="CASCADE"), nullable=False)
    finder_id = Column(String(36), nullable=False, index=True)
    status = Column(String(30), nullable=False, default="found")
    finder_message = Column(Text)
    found_at = Column(UtcDateTime)
    surrendered_at = Column(UtcDateTime)
    recovered_at = Column(UtcDateTime)
    original_owner_id = Column(String(36))
    reward_paid_at = Column(UtcDateTime)
    updated_at = Column(UtcDateTime)


class MeetupProposalRow(Base):
    __tablename__ = "meetup_proposals"
    __table_args__ = (
        Index("ix_meetup_proposals_event_status", "recovery_event_id", "status"),
    )

    id = Column(String(36), primary_key=True)
    recovery_event_id = Column(
        String(36), ForeignKey("recovery_events.id", ondelete="CASCADE"), nullable=False,
    )
    proposed_by = Column(String(36), nullable=False)
    location_name = Column(Text, nullable=False)
    latitude = Column(Float)
    longitude = Column(Float)
    proposed_datetime = Column(UtcDateTime, nullable=False)
    status = Column(String(20), nullable=False, default="pending")
    message = Column(Text)
    created_at = Column(UtcDateTime)


class DropOffRow(Base):
    __tablename__ = "drop_offs"

    id = Column(String(36), primary_key=True)
    recovery_event_id = Column(
        String(36), ForeignKey("recovery_events.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    photo_url = Column(Text, nullable=False)
    storage_path = Column(Text)
    latitude = Column(Float, nullable=False)
    longitude = Column(Float, nullable=False)
    location_notes = Column(Text)
    dropped_off_at = Column(UtcDateTime)
    retrieved_at = Column(UtcDateTime)


class NotificationRow(Base):
    __tablename__ = "notifications"

    # Surrogate key gives a stable delivery order within one timestamp
    seq = Column(Integer, primary_key=True, autoincrement=True)
    id = Column(String(36), nullable=False, unique=True)
    user_id = Column(String(36), nullable=False, index=True)
    type = Column(String(40), nullable=False)
    title = Column(String(255), nullable=False)
    body = Column(Text, nullable=False)
    data = Column(JSON)
    created_at = Column(UtcDateTime)
    read_at = Column(UtcDateTime)
