"""
Fee distribution for settlements.

Fees are paid by the order's receiver, in the configured fungible ledger,
through the fungible transfer delegate. Entries with the null recipient
or a zero amount are skipped without a ledger call.
"""

import logging
from typing import Sequence

from peertrade.core.exceptions import (
    CollaboratorError,
    FeeOverflowError,
    PeertradeError,
)
from peertrade.core.identity import NULL_IDENTITY, UINT256_MAX
from peertrade.settlement.interfaces import (
    FungibleLedger,
    FungibleTransferDelegate,
    ReadOnlyLedgerView,
)
from peertrade.state.store import TransferStateStore

logger = logging.getLogger(__name__)


def fee_sum(fee_amounts: Sequence[int]) -> int:
    """
    Sum of fee amounts with uint256 overflow checking.
    Raises FeeOverflowError instead of wrapping.
    """
    total = 0
    for index, amount in enumerate(fee_amounts):
        total += amount
        if total > UINT256_MAX:
            raise FeeOverflowError(
                "Fee sum exceeds uint256 range",
                {"index": index},
            )
    return total


class FeeDistributor:
    """
    Checks and pays the fees of an order.

    can_pay_fee() reads through a ReadOnlyLedgerView inside the store's
    read-only guard. pay_fee_amounts() goes through the delegate and
    raises CollaboratorError on the first failed transfer; the caller's
    rollback undoes the fees already paid.
    """

    def __init__(
        self,
        ledger:   FungibleLedger,
        delegate: FungibleTransferDelegate,
        store:    TransferStateStore,
    ):
        self.ledger   = ledger
        self.delegate = delegate
        self.store    = store
        self._view    = ReadOnlyLedgerView(ledger)

    def can_pay_fee(self, payer: str, fee_amounts: Sequence[int]) -> bool:
        """True iff payer's balance and delegate allowance both cover the fee sum."""
        total = fee_sum(fee_amounts)
        with self.store.read_only():
            balance   = self._view.balance_of(payer)
            allowance = self._view.allowance(payer, self.delegate.address)
        return balance >= total and allowance >= total

    def pay_fee_amounts(
        self,
        fee_recipients: Sequence[str],
        fee_amounts:    Sequence[int],
        payer:          str,
    ) -> int:
        """
        Pay every index-aligned (recipient, amount) pair from payer.

        Returns:
            Total amount moved.
        """
        paid = 0
        for index, (recipient, amount) in enumerate(zip(fee_recipients, fee_amounts)):
            if recipient == NULL_IDENTITY or amount == 0:
                continue
            try:
                ok = self.delegate.transfer_from(self.ledger, payer, recipient, amount)
            except PeertradeError:
                raise
            except Exception as exc:
                raise CollaboratorError(
                    f"Fee transfer raised: {exc}",
                    {"index": index, "recipient": recipient, "amount": amount},
                ) from exc
            if not ok:
                raise CollaboratorError(
                    "Fee transfer was rejected by the ledger",
                    {"index": index, "recipient": recipient, "amount": amount},
                )
            paid += amount
            logger.debug("Fee %d paid: %s -> %s (%d)", index, payer, recipient, amount)
        return paid
