"""
peertrade/__init__.py

Peertrade: signature-authorized peer-to-peer asset transfer settlement.

A sender signs an order's claim off-line. The receiver submits it; the
executor verifies the signature, enforces at-most-once execution and
sender cancellation, and moves the asset plus any fees atomically through
pre-authorized delegates.
"""

__version__ = "0.3.0"

from peertrade.config import SettlementConfig
from peertrade.core.claim import compute_claim, get_transfer_data_claim
from peertrade.core.crypto import Secp256k1KeyManager, is_valid_signature
from peertrade.core.exceptions import PeertradeError
from peertrade.core.identity import NULL_IDENTITY
from peertrade.core.models import Order, Signature, TransferEvent, TransferStatus
from peertrade.settlement import AddressBook, TransferExecutor
from peertrade.state import TransferStateStore

__all__ = [
    # Settlement
    "TransferExecutor",
    "TransferStateStore",
    "AddressBook",
    "SettlementConfig",
    # Model
    "Order",
    "Signature",
    "TransferEvent",
    "TransferStatus",
    # Crypto
    "Secp256k1KeyManager",
    "compute_claim",
    "get_transfer_data_claim",
    "is_valid_signature",
    # Errors
    "PeertradeError",
    # Constants
    "NULL_IDENTITY",
]
