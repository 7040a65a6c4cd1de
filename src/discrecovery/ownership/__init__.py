"""Ownership module: disc ownership, QR binding, claims and lookup."""

from discrecovery.ownership.claim import ClaimReclamation
from discrecovery.ownership.codes import QRCodeIssuer, generate_short_code
from discrecovery.ownership.lookup import QRCodeLookup
from discrecovery.ownership.transfer import OwnershipTransferManager

__all__ = [
    "ClaimReclamation",
    "OwnershipTransferManager",
    "QRCodeIssuer",
    "QRCodeLookup",
    "generate_short_code",
]
