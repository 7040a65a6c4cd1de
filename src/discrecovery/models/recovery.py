"""Recovery event, meetup proposal and drop-off data models.

A RecoveryEvent is one attempt to return a specific disc found by a
specific finder. It is created in FOUND, mutated only by lifecycle
transitions, and never deleted; it only ever reaches a terminal status.

Satellite records:
- MeetupProposal: many per event, at most one PENDING at a time.
- DropOff: the finder left the disc somewhere; retrieved_at is set when
  the owner confirms pickup.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from datetime import datetime
from typing import Optional


class RecoveryStatus(str, enum.Enum):
    """Finite state machine states for a recovery event.

    FOUND → MEETUP_PROPOSED → MEETUP_CONFIRMED → RECOVERED
    FOUND → DROPPED_OFF → RECOVERED | ABANDONED
    FOUND/MEETUP_* → SURRENDERED
    DROPPED_OFF → SURRENDERED (owner relinquishes the disc to the finder)
    ABANDONED → CLOSED_ON_RECLAIM (when a new owner claims the disc)
    """
    FOUND = "found"
    MEETUP_PROPOSED = "meetup_proposed"
    MEETUP_CONFIRMED = "meetup_confirmed"
    DROPPED_OFF = "dropped_off"
    RECOVERED = "recovered"
    SURRENDERED = "surrendered"
    CANCELLED = "cancelled"
    ABANDONED = "abandoned"
    CLOSED_ON_RECLAIM = "closed_on_reclaim"


class MeetupStatus(str, enum.Enum):
    """Status of a single meetup proposal."""
    PENDING = "pending"
    DECLINED = "declined"
    ACCEPTED = "accepted"


@dataclass
class RecoveryEvent:
    """One attempt to return a disc to its owner.

    original_owner_id is captured at surrender time, because the disc's
    owner changes as part of that transition. The current owner is never
    stored here; it is read from the disc on every call.
    """
    id: str
    disc_id: str
    finder_id: str
    status: RecoveryStatus = RecoveryStatus.FOUND
    finder_message: Optional[str] = None
    found_at: Optional[datetime] = None
    surrendered_at: Optional[datetime] = None
    recovered_at: Optional[datetime] = None
    original_owner_id: Optional[str] = None
    reward_paid_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@dataclass
class MeetupProposal:
    """A single proposed meeting between owner and finder."""
    id: str
    recovery_event_id: str
    proposed_by: str
    location_name: str
    proposed_datetime: datetime
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    status: MeetupStatus = MeetupStatus.PENDING
    message: Optional[str] = None
    created_at: Optional[datetime] = None


@dataclass
class DropOff:
    """The finder left the disc at a location for the owner to collect."""
    id: str
    recovery_event_id: str
    photo_url: str
    latitude: float
    longitude: float
    storage_path: Optional[str] = None
    location_notes: Optional[str] = None
    dropped_off_at: Optional[datetime] = None
    retrieved_at: Optional[datetime] = None


@dataclass(frozen=True)
class ProposalRequest:
    """Caller-supplied fields for a new meetup proposal."""
    location_name: str
    proposed_datetime: datetime
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    message: Optional[str] = None


@dataclass(frozen=True)
class DropOffPhoto:
    """Reference to a photo already written to external storage."""
    photo_url: str
    storage_path: str
    content_type: str
    size_bytes: int


@dataclass(frozen=True)
class DropOffLocation:
    latitude: float
    longitude: float
    notes: Optional[str] = None
