"""Persistence layer: relational store and audit log."""

from discrecovery.persistence.audit_log import AuditKind, AuditLog, AuditRecord
from discrecovery.persistence.store import RecoveryStore, StoreTransaction, new_id

__all__ = [
    "AuditKind",
    "AuditLog",
    "AuditRecord",
    "RecoveryStore",
    "StoreTransaction",
    "new_id",
]
