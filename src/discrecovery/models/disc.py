"""Disc and QR code data models.

A disc is the tracked item. A QR code is the physical sticker that lets a
finder reach the owner. The binding between the two is the ownership record
the recovery engine keeps consistent:

- Disc.owner_id is nullable. A null owner means the disc is reclaimable.
- Disc.qr_code_id points to at most one code.
- QRCode.status == ACTIVE implies some disc points at the code.
- Short codes are case-insensitive and stored upper-case.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from datetime import datetime
from typing import Optional


class QRCodeStatus(str, enum.Enum):
    """Lifecycle of a printed code.

    GENERATED → ASSIGNED (claimed by a user) → ACTIVE (linked to a disc).
    DEACTIVATED codes resolve to nothing.
    """
    GENERATED = "generated"
    ASSIGNED = "assigned"
    ACTIVE = "active"
    DEACTIVATED = "deactivated"


def normalize_short_code(code: str) -> str:
    """Canonical form of a short code: stripped and upper-cased."""
    return code.strip().upper()


@dataclass
class QRCode:
    """A scannable token, optionally assigned to a user."""
    id: str
    short_code: str
    status: QRCodeStatus = QRCodeStatus.GENERATED
    assigned_to: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@dataclass
class Disc:
    """A tracked disc.

    Descriptive fields are opaque to the engine; they are carried through
    to lookups and notification text only.
    """
    id: str
    owner_id: Optional[str] = None
    qr_code_id: Optional[str] = None
    name: str = ""
    manufacturer: Optional[str] = None
    mold: Optional[str] = None
    plastic: Optional[str] = None
    color: Optional[str] = None
    speed: Optional[float] = None
    glide: Optional[float] = None
    turn: Optional[float] = None
    fade: Optional[float] = None
    reward_amount: Optional[float] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def is_claimable(self) -> bool:
        return self.owner_id is None

    def has_reward(self) -> bool:
        """A reward exists only when the amount is set and positive."""
        return self.reward_amount is not None and self.reward_amount > 0

    def display_name(self, fallback: str) -> str:
        return self.name or fallback
