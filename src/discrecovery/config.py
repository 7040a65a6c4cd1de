"""Deployment settings and service wiring.

Settings come from the environment, optionally seeded from a .env file:

    RECOVERY_DATABASE_URL   SQLAlchemy URL (default: sqlite:///recovery.db)
    RECOVERY_CONFIG_DIR     directory holding recovery_policy.json (default: ./config)
    RECOVERY_AUDIT_LOG      JSONL audit log path; unset disables the audit log
    RECOVERY_LOG_LEVEL      logging level name (default: INFO)
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from discrecovery.clock import Clock
from discrecovery.notifications.dispatcher import NotificationDispatcher
from discrecovery.persistence.audit_log import AuditLog
from discrecovery.persistence.store import RecoveryStore
from discrecovery.policy.resolver import PolicyResolver
from discrecovery.service import RecoveryService

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Settings:
    database_url: str = "sqlite:///recovery.db"
    config_dir: Path = Path("config")
    audit_log_path: Optional[Path] = None
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, dotenv_path: Optional[Path] = None) -> Settings:
        """Read settings from the environment after loading .env.

        Variables already set in the environment win over the .env file.
        """
        load_dotenv(dotenv_path)
        audit_log = os.getenv("RECOVERY_AUDIT_LOG")
        return cls(
            database_url=os.getenv("RECOVERY_DATABASE_URL", cls.database_url),
            config_dir=Path(os.getenv("RECOVERY_CONFIG_DIR", str(cls.config_dir))),
            audit_log_path=Path(audit_log) if audit_log else None,
            log_level=os.getenv("RECOVERY_LOG_LEVEL", cls.log_level).upper(),
        )


def configure_logging(level: str = "INFO") -> None:
    numeric = logging.getLevelName(level.upper())
    if not isinstance(numeric, int):
        raise ValueError(f"Unknown log level: {level}")
    logging.basicConfig(level=numeric, format=LOG_FORMAT)


def create_service(
    settings: Settings,
    clock: Optional[Clock] = None,
    dispatcher: Optional[NotificationDispatcher] = None,
) -> RecoveryService:
    """Build a ready-to-use service: policy loaded, schema created."""
    policy = PolicyResolver.from_config_dir(settings.config_dir)
    store = RecoveryStore.from_url(settings.database_url)
    store.create_schema()
    audit_log = AuditLog(settings.audit_log_path) if settings.audit_log_path else None
    logger.info(
        "Recovery service ready (policy %s, audit log %s)",
        policy.version,
        settings.audit_log_path or "disabled",
    )
    return RecoveryService(
        store,
        policy,
        clock=clock,
        dispatcher=dispatcher,
        audit_log=audit_log,
    )
