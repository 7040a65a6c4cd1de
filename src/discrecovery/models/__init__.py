"""Domain records for discs, QR codes, recovery events and notifications."""

from discrecovery.models.disc import Disc, QRCode, QRCodeStatus, normalize_short_code
from discrecovery.models.notification import Notification, NotificationType
from discrecovery.models.recovery import (
    DropOff,
    DropOffLocation,
    DropOffPhoto,
    MeetupProposal,
    MeetupStatus,
    ProposalRequest,
    RecoveryEvent,
    RecoveryStatus,
)

__all__ = [
    "Disc",
    "DropOff",
    "DropOffLocation",
    "DropOffPhoto",
    "MeetupProposal",
    "MeetupStatus",
    "Notification",
    "NotificationType",
    "ProposalRequest",
    "QRCode",
    "QRCodeStatus",
    "RecoveryEvent",
    "RecoveryStatus",
    "normalize_short_code",
]
