"""
Peertrade core: identities, the order model, claims, signatures, errors.
"""

from peertrade.core.claim import compute_claim, get_transfer_data_claim
from peertrade.core.crypto import (
    Secp256k1KeyManager,
    is_valid_signature,
    recover_signer,
)
from peertrade.core.identity import NULL_IDENTITY, UINT256_MAX
from peertrade.core.models import (
    EventType,
    Order,
    Signature,
    TransferEvent,
    TransferStatus,
)

__all__ = [
    "compute_claim",
    "get_transfer_data_claim",
    "Secp256k1KeyManager",
    "is_valid_signature",
    "recover_signer",
    "NULL_IDENTITY",
    "UINT256_MAX",
    "EventType",
    "Order",
    "Signature",
    "TransferEvent",
    "TransferStatus",
]
