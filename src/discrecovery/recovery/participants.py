"""Typed join of a recovery event with its disc, plus caller authorisation.

The owner is always read from the disc row at call time, never cached on
the event: a surrender changes it mid-lifecycle.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from discrecovery.errors import Forbidden, NotFound
from discrecovery.models.disc import Disc
from discrecovery.models.recovery import RecoveryEvent
from discrecovery.persistence.store import StoreTransaction

OWNER = "owner"
FINDER = "finder"


@dataclass(frozen=True)
class Participants:
    """A recovery event joined with its disc."""
    event: RecoveryEvent
    disc: Disc

    @property
    def owner_id(self) -> Optional[str]:
        return self.disc.owner_id

    @property
    def finder_id(self) -> str:
        return self.event.finder_id

    def role_of(self, user_id: str) -> Optional[str]:
        """Finder first: after a surrender the finder also owns the disc,
        and the owner of record is the one captured on the event."""
        if user_id == self.finder_id:
            return FINDER
        if user_id in (self.owner_id, self.event.original_owner_id):
            return OWNER
        return None

    def other_party(self, user_id: str) -> Optional[str]:
        """The participant who is not user_id; None if that seat is empty."""
        role = self.role_of(user_id)
        if role == OWNER:
            return self.finder_id
        if role == FINDER and self.owner_id != user_id:
            return self.owner_id
        return None

    def require_participant(self, user_id: str) -> str:
        """Return the caller's role; outsiders get NotFound, not Forbidden."""
        role = self.role_of(user_id)
        if role is None:
            raise NotFound("Recovery event not found")
        return role

    def require_owner(self, user_id: str, action: str) -> None:
        if self.require_participant(user_id) != OWNER:
            raise Forbidden(f"Only the disc owner can {action}")

    def require_finder(self, user_id: str, action: str) -> None:
        if self.require_participant(user_id) != FINDER:
            raise Forbidden(f"Only the finder can {action}")


def load_participants(tx: StoreTransaction, event_id: str) -> Participants:
    """Load the event and its disc; NotFound if either is missing."""
    event = tx.get_recovery_event(event_id)
    if event is None:
        raise NotFound("Recovery event not found")
    disc = tx.get_disc(event.disc_id)
    if disc is None:
        raise NotFound("Disc not found")
    return Participants(event=event, disc=disc)
