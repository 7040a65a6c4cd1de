"""Policy resolver: loads recovery_policy.json and exposes every runtime
decision as a typed method call.

No silent defaults. If a value is missing from the config, it fails loud.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from discrecovery.models.notification import NotificationType
from discrecovery.models.recovery import RecoveryStatus

# The two statuses an abandoned recovery may be closed into when the disc
# is reclaimed. RECOVERED reproduces the legacy behaviour.
RECLAIM_CLOSURE_STATUSES = (
    RecoveryStatus.CLOSED_ON_RECLAIM,
    RecoveryStatus.RECOVERED,
)


@dataclass(frozen=True)
class PhotoPolicy:
    """Resolved limits for drop-off photos."""
    allowed_types: tuple[str, ...]
    max_bytes: int


@dataclass(frozen=True)
class NotificationTemplate:
    title: str
    body: str


class PolicyResolver:
    """Loads and resolves recovery policy.

    Usage:
        resolver = PolicyResolver.from_config_dir(Path("config"))
        status = resolver.reclaim_closure_status()
        template = resolver.notification_template(NotificationType.DISC_FOUND)
    """

    def __init__(self, policy: dict[str, Any]) -> None:
        self._policy = policy
        self._validate()

    @classmethod
    def from_config_dir(cls, config_dir: Path) -> PolicyResolver:
        """Load from the canonical config directory."""
        return cls(_load_json(config_dir / "recovery_policy.json"))

    def _validate(self) -> None:
        if "version" not in self._policy:
            raise ValueError("recovery_policy.json missing version")
        # Resolve eagerly so a bad file fails at startup, not mid-request
        self.reclaim_closure_status()
        self.photo_policy()
        for kind in NotificationType:
            self.notification_template(kind)

    @property
    def version(self) -> str:
        return self._policy["version"]

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def reclaim_closure_status(self) -> RecoveryStatus:
        """Status written to abandoned recoveries when the disc is claimed."""
        raw = self._policy["lifecycle"]["reclaim_closure_status"]
        try:
            status = RecoveryStatus(raw)
        except ValueError:
            raise ValueError(f"Unknown reclaim closure status: {raw}") from None
        if status not in RECLAIM_CLOSURE_STATUSES:
            raise ValueError(
                f"Reclaim closure status must be one of "
                f"{[s.value for s in RECLAIM_CLOSURE_STATUSES]}, got {raw}"
            )
        return status

    # ------------------------------------------------------------------
    # Drop-off
    # ------------------------------------------------------------------

    def photo_policy(self) -> PhotoPolicy:
        d = self._policy["drop_off"]
        max_bytes = d["max_photo_bytes"]
        if max_bytes <= 0:
            raise ValueError(f"max_photo_bytes must be positive, got {max_bytes}")
        return PhotoPolicy(
            allowed_types=tuple(d["allowed_photo_types"]),
            max_bytes=max_bytes,
        )

    # ------------------------------------------------------------------
    # QR codes
    # ------------------------------------------------------------------

    def short_code_format(self) -> tuple[str, int]:
        """Return (alphabet, length) for generated short codes."""
        q = self._policy["qr_codes"]
        return q["alphabet"], q["length"]

    # ------------------------------------------------------------------
    # Notifications
    # ------------------------------------------------------------------

    def notification_template(self, kind: NotificationType) -> NotificationTemplate:
        templates = self._policy["notifications"]["templates"]
        t = templates.get(kind.value)
        if t is None:
            raise ValueError(f"No notification template for: {kind.value}")
        return NotificationTemplate(title=t["title"], body=t["body"])

    def role_name(self, role: str) -> str:
        """Display label for a participant role (owner/finder/participant)."""
        names = self._policy["notifications"]["role_names"]
        if role not in names:
            raise ValueError(f"Unknown participant role: {role}")
        return names[role]

    def fallback_disc_name(self) -> str:
        return self._policy["notifications"]["fallback_disc_name"]


def _load_json(path: Path) -> dict[str, Any]:
    with path.open("r", encoding="utf-8") as f:
        return json.load(f)
