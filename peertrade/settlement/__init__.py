"""
Peertrade Settlement

The executor settles one bilateral order per call:
- verifies the sender's signature over the order's claim
- enforces at-most-once execution and sender cancellation
- moves the asset and the fees atomically through delegates

Design Philosophy:
- The core holds no transfer rights; delegates do
- State that gates replay is written before any external call
- All-or-nothing: every failure rolls back every participant
"""

from peertrade.settlement.executor import TransferExecutor
from peertrade.settlement.fees import FeeDistributor, fee_sum
from peertrade.settlement.interfaces import (
    AddressBook,
    AssetRegistry,
    AssetTransferDelegate,
    FungibleLedger,
    FungibleLedgerView,
    FungibleTransferDelegate,
    ReadOnlyLedgerView,
    Savepoints,
)

__all__ = [
    "TransferExecutor",
    "FeeDistributor",
    "fee_sum",
    "AddressBook",
    "AssetRegistry",
    "AssetTransferDelegate",
    "FungibleLedger",
    "FungibleLedgerView",
    "FungibleTransferDelegate",
    "ReadOnlyLedgerView",
    "Savepoints",
]
