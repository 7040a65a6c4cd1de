"""Plain-dict renderings of domain records for ServiceResult.data."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from discrecovery.models.disc import Disc, QRCode
from discrecovery.models.notification import Notification
from discrecovery.models.recovery import DropOff, MeetupProposal, RecoveryEvent


def iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def disc_view(disc: Disc) -> dict[str, Any]:
    return {
        "id": disc.id,
        "owner_id": disc.owner_id,
        "qr_code_id": disc.qr_code_id,
        "name": disc.name,
        "manufacturer": disc.manufacturer,
        "mold": disc.mold,
        "plastic": disc.plastic,
        "color": disc.color,
        "speed": disc.speed,
        "glide": disc.glide,
        "turn": disc.turn,
        "fade": disc.fade,
        "reward_amount": disc.reward_amount,
    }


def public_disc_view(disc: Disc) -> dict[str, Any]:
    """What an anonymous scanner may see. Never includes owner_id."""
    return {
        "id": disc.id,
        "name": disc.name,
        "manufacturer": disc.manufacturer,
        "mold": disc.mold,
        "plastic": disc.plastic,
        "color": disc.color,
        "reward_amount": disc.reward_amount,
    }


def qr_code_view(qr: QRCode) -> dict[str, Any]:
    return {
        "id": qr.id,
        "short_code": qr.short_code,
        "status": qr.status.value,
        "assigned_to": qr.assigned_to,
    }


def event_view(event: RecoveryEvent) -> dict[str, Any]:
    return {
        "id": event.id,
        "disc_id": event.disc_id,
        "finder_id": event.finder_id,
        "status": event.status.value,
        "finder_message": event.finder_message,
        "found_at": iso(event.found_at),
        "surrendered_at": iso(event.surrendered_at),
        "recovered_at": iso(event.recovered_at),
        "original_owner_id": event.original_owner_id,
        "reward_paid_at": iso(event.reward_paid_at),
    }


def proposal_view(proposal: MeetupProposal) -> dict[str, Any]:
    return {
        "id": proposal.id,
        "recovery_event_id": proposal.recovery_event_id,
        "proposed_by": proposal.proposed_by,
        "location_name": proposal.location_name,
        "latitude": proposal.latitude,
        "longitude": proposal.longitude,
        "proposed_datetime": iso(proposal.proposed_datetime),
        "status": proposal.status.value,
        "message": proposal.message,
        "created_at": iso(proposal.created_at),
    }


def drop_off_view(drop_off: DropOff) -> dict[str, Any]:
    return {
        "id": drop_off.id,
        "recovery_event_id": drop_off.recovery_event_id,
        "photo_url": drop_off.photo_url,
        "storage_path": drop_off.storage_path,
        "latitude": drop_off.latitude,
        "longitude": drop_off.longitude,
        "location_notes": drop_off.location_notes,
        "dropped_off_at": iso(drop_off.dropped_off_at),
        "retrieved_at": iso(drop_off.retrieved_at),
    }


def notification_view(notification: Notification) -> dict[str, Any]:
    return {
        "id": notification.id,
        "user_id": notification.user_id,
        "type": notification.type.value,
        "title": notification.title,
        "body": notification.body,
        "data": dict(notification.data),
        "created_at": iso(notification.created_at),
        "read_at": iso(notification.read_at),
    }
