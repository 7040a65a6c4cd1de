"""Disc recovery engine: lifecycle, negotiation and ownership for lost discs."""

from discrecovery.service import RecoveryService, ServiceResult

__version__ = "0.1.0"

__all__ = ["RecoveryService", "ServiceResult", "__version__"]
