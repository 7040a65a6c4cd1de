"""Drop-off flow: the finder leaves the disc somewhere for the owner.

The photo is uploaded to external storage before this is called; the
flow only checks the reference against the policy's type and size limits.
"""

from __future__ import annotations

from discrecovery.clock import Clock
from discrecovery.errors import InvalidRequest
from discrecovery.models.notification import NotificationType
from discrecovery.models.recovery import (
    DropOff,
    DropOffLocation,
    DropOffPhoto,
    RecoveryStatus,
)
from discrecovery.notifications.templates import build_notification
from discrecovery.outcome import ActionOutcome
from discrecovery.persistence.audit_log import AuditKind
from discrecovery.persistence.store import RecoveryStore, new_id
from discrecovery.policy.resolver import PhotoPolicy, PolicyResolver
from discrecovery.recovery.lifecycle import apply_transition
from discrecovery.recovery.meetup import validate_coordinates
from discrecovery.recovery.participants import FINDER, load_participants
from discrecovery.views import drop_off_view


def validate_drop_off(
    photo: DropOffPhoto,
    location: DropOffLocation,
    limits: PhotoPolicy,
) -> list[str]:
    errors = []
    if not photo.photo_url or not photo.photo_url.strip():
        errors.append("photo_url is required")
    if photo.content_type not in limits.allowed_types:
        errors.append(
            f"Photo type {photo.content_type} not allowed; "
            f"use one of {', '.join(limits.allowed_types)}"
        )
    if photo.size_bytes <= 0:
        errors.append("Photo is empty")
    elif photo.size_bytes > limits.max_bytes:
        errors.append(
            f"Photo is {photo.size_bytes} bytes; the limit is {limits.max_bytes}"
        )
    if location.latitude is None or location.longitude is None:
        errors.append("latitude and longitude are required")
    else:
        errors.extend(validate_coordinates(location.latitude, location.longitude))
    return errors


class DropOffFlow:

    def __init__(
        self,
        store: RecoveryStore,
        policy: PolicyResolver,
        clock: Clock,
    ) -> None:
        self._store = store
        self._policy = policy
        self._clock = clock

    def record(
        self,
        event_id: str,
        caller_id: str,
        photo: DropOffPhoto,
        location: DropOffLocation,
    ) -> ActionOutcome:
        """Finder records a drop-off; the event moves FOUND → DROPPED_OFF."""
        errors = validate_drop_off(photo, location, self._policy.photo_policy())
        if errors:
            raise InvalidRequest("; ".join(errors))

        now = self._clock.now()
        with self._store.transaction() as tx:
            parts = load_participants(tx, event_id)
            parts.require_finder(caller_id, "record a drop-off")
            apply_transition(
                tx, parts.event, RecoveryStatus.DROPPED_OFF, now,
                allowed_from={RecoveryStatus.FOUND},
            )
            drop_off = tx.add_drop_off(DropOff(
                id=new_id(),
                recovery_event_id=event_id,
                photo_url=photo.photo_url,
                storage_path=photo.storage_path,
                latitude=location.latitude,
                longitude=location.longitude,
                location_notes=location.notes,
                dropped_off_at=now,
            ))

        notifications = []
        if parts.owner_id is not None:
            notifications.append(build_notification(
                self._policy, NotificationType.DISC_DROPPED_OFF, parts.owner_id, FINDER,
                parts.disc, event_id, now,
                extra={"drop_off_id": drop_off.id},
            ))
        return ActionOutcome(
            data={
                "drop_off": drop_off_view(drop_off),
                "photo_url": drop_off.photo_url,
                "storage_path": drop_off.storage_path,
            },
            actor_id=caller_id,
            audit_kind=AuditKind.DROP_OFF_RECORDED,
            audit_payload={"recovery_event_id": event_id, "drop_off_id": drop_off.id},
            notifications=notifications,
            http_status=201,
        )
