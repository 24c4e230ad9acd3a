"""
peertrade/settlement/executor.py

Transfer Executor — settles and cancels signed orders.

perform_transfer() MUST, in this exact order:
  1.  Decode the order           — equal-length sequences, valid fields
  2.  Compute the claim
  3.  Require caller == to       — only the receiver settles
  4.  Require from != to
  5.  Require expiration >= now
  6.  Require a valid signature by from
  7.  Require claim not performed
  8.  Require claim not cancelled
  9.  Strict mode only: fee affordability, then asset approval
  10. Mark performed             — BEFORE any mutating external call
  11. Move the asset through the asset delegate
  12. Pay fees from the receiver
  13. Emit PerformTransfer

Steps 10–13 run inside one store transaction: the store, the fungible
ledger and the asset registry are rolled back to their entry savepoints on
any failure. Nothing is partially committed. Events are published only
after the outermost transaction commits.

Concurrency:
    Every public operation runs under the store's lock, which all executors
    sharing that store hold in common. A collaborator calling back into an
    executor on the same thread gets in. The same order finds its claim
    already performed (step 10 precedes step 11) and is rejected at step 7.
    A different order settles as part of the enclosing transaction and is
    undone with it. Calls arriving from inside a read-only query are
    rejected with StaticCallViolation.
"""

import logging
from typing import Callable, List, Optional, Sequence

from peertrade.config import SettlementConfig
from peertrade.core.claim import claim_for_order
from peertrade.core.crypto import is_valid_signature as _is_valid_signature
from peertrade.core.exceptions import (
    AssetNotAllowedError,
    AuthorizationError,
    CollaboratorError,
    ConfigurationError,
    InsufficientBalanceOrAllowanceError,
    OrderExpiredError,
    PeertradeError,
    StaticCallViolation,
    TransferAlreadyPerformedError,
    TransferCancelledError,
)
from peertrade.core.identity import normalize_identity
from peertrade.core.models import EventType, Order, TransferEvent
from peertrade.core.time import unix_now
from peertrade.registry.capability import SETTLEMENT_INTERFACE_ID, CapabilityRegistry
from peertrade.settlement.fees import FeeDistributor
from peertrade.settlement.interfaces import (
    AddressBook,
    AssetRegistry,
    AssetTransferDelegate,
    FungibleLedger,
    FungibleTransferDelegate,
    Savepoints,
)
from peertrade.state.store import TransferStateStore

logger = logging.getLogger(__name__)

EventCallback = Callable[[TransferEvent], None]


class TransferExecutor:
    """
    Settlement instance.

    Collaborator identities come from SettlementConfig and are resolved
    once, at construction, through the AddressBook. The order's asset
    registry is resolved on every call.
    """

    def __init__(
        self,
        config:       SettlementConfig,
        address_book: AddressBook,
        store:        Optional[TransferStateStore] = None,
        clock:        Callable[[], int] = unix_now,
    ) -> None:
        self.config       = config
        self.address_book = address_book
        self.store        = store if store is not None else TransferStateStore(config.journal)
        self.clock        = clock

        self._token: FungibleLedger = self._resolve(
            config.token, FungibleLedger, "token"
        )
        self._token_proxy: FungibleTransferDelegate = self._resolve(
            config.token_transfer_proxy, FungibleTransferDelegate, "token_transfer_proxy"
        )
        self._nftoken_proxy: AssetTransferDelegate = self._resolve(
            config.nftoken_transfer_proxy, AssetTransferDelegate, "nftoken_transfer_proxy"
        )
        if not isinstance(self._token, Savepoints):
            raise ConfigurationError(
                "Fungible ledger must support savepoint()/rollback()",
                {"token": config.token},
            )

        self.fees         = FeeDistributor(self._token, self._token_proxy, self.store)
        self.capabilities = CapabilityRegistry()
        self.capabilities.register_interface(SETTLEMENT_INTERFACE_ID)

        self.events:       List[TransferEvent] = []
        self._subscribers: List[EventCallback] = []
        self._lock = self.store.lock

    # ── Configuration getters ─────────────────────────────────

    @property
    def token_address(self) -> str:
        return self.config.token

    @property
    def token_transfer_proxy_address(self) -> str:
        return self.config.token_transfer_proxy

    @property
    def nftoken_transfer_proxy_address(self) -> str:
        return self.config.nftoken_transfer_proxy

    # ── Public API ────────────────────────────────────────────

    def perform_transfer(
        self,
        caller:    str,
        addresses: Sequence[str],
        uints:     Sequence[int],
        v:         int,
        r:         int,
        s:         int,
        throw_if_not_transferable: bool = False,
    ) -> str:
        """
        Settle a signed order. Only the order's receiver may call.

        Returns:
            The settled claim.

        Raises a PeertradeError subclass on any failure; no state changes.
        """
        with self._lock:
            try:
                self._assert_not_static()
                caller = normalize_identity(caller, "caller")
                order  = Order.from_encoded(addresses, uints)
                claim  = claim_for_order(self.config.instance, order)

                if order.to != caller:
                    raise AuthorizationError(
                        "Only the order's receiver can perform the transfer",
                        {"caller": caller, "to": order.to},
                        code="NOT_RECEIVER",
                    )
                if order.from_ == order.to:
                    raise AuthorizationError(
                        "Sender and receiver must differ",
                        {"identity": order.from_},
                        code="SAME_PARTIES",
                    )
                now = self.clock()
                if order.expiration < now:
                    raise OrderExpiredError(
                        "Order has expired",
                        {"expiration": order.expiration, "now": now},
                    )
                if not self.is_valid_signature(order.from_, claim, v, r, s):
                    raise AuthorizationError(
                        "Signature does not recover to the order's sender",
                        {"from": order.from_, "claim": claim},
                        code="INVALID_SIGNATURE",
                    )
                self._require_unsettled(claim)

                registry = self._resolve_registry(order.asset)

                if throw_if_not_transferable:
                    if not self.fees.can_pay_fee(order.to, order.fee_amounts):
                        raise InsufficientBalanceOrAllowanceError(
                            "Receiver cannot cover the fees",
                            {"payer": order.to, "claim": claim},
                        )
                    if not self._is_allowed(order.from_, registry, order.asset_id):
                        raise AssetNotAllowedError(
                            "Asset delegate is not approved for the asset",
                            {"asset": order.asset, "asset_id": order.asset_id},
                        )

                with self.store.transaction(self._token, registry):
                    if not self.store.try_mark_performed(claim):
                        # Marked since the check above; report which way
                        self._require_unsettled(claim)
                    self._move_asset(registry, order)
                    self.fees.pay_fee_amounts(
                        order.fee_recipients, order.fee_amounts, order.to
                    )
                    self._emit(EventType.PERFORM_TRANSFER, order, claim)

            except PeertradeError as exc:
                logger.warning("perform_transfer aborted: %s", exc)
                raise

        return claim

    def cancel_transfer(
        self,
        caller:    str,
        addresses: Sequence[str],
        uints:     Sequence[int],
    ) -> str:
        """
        Cancel an unsettled order. Only the order's sender may call.

        Returns:
            The cancelled claim.
        """
        with self._lock:
            try:
                self._assert_not_static()
                caller = normalize_identity(caller, "caller")
                if not addresses or normalize_identity(addresses[0], "from") != caller:
                    raise AuthorizationError(
                        "Only the order's sender can cancel the transfer",
                        {"caller": caller},
                        code="NOT_SENDER",
                    )
                order = Order.from_encoded(addresses, uints)
                claim = claim_for_order(self.config.instance, order)
                self._require_unsettled(claim)

                with self.store.transaction():
                    if not self.store.try_mark_cancelled(claim, caller, order.from_):
                        self._require_unsettled(claim)
                    self._emit(EventType.CANCEL_TRANSFER, order, claim)

            except PeertradeError as exc:
                logger.warning("cancel_transfer aborted: %s", exc)
                raise

        return claim

    def get_transfer_data_claim(
        self,
        addresses: Sequence[str],
        uints:     Sequence[int],
    ) -> str:
        """Claim the sender must sign for this encoding."""
        return claim_for_order(self.config.instance, Order.from_encoded(addresses, uints))

    def is_valid_signature(self, signer: str, claim: str, v: int, r: int, s: int) -> bool:
        return _is_valid_signature(signer, claim, v, r, s)

    def supports_interface(self, interface_id: str) -> bool:
        return self.capabilities.supports_interface(interface_id)

    def subscribe(self, callback: EventCallback) -> None:
        """Register a callback for committed events."""
        self._subscribers.append(callback)

    # ── Internal ──────────────────────────────────────────────

    def _resolve(self, identity: str, protocol, role: str):
        try:
            collaborator = self.address_book.resolve(identity)
        except CollaboratorError as exc:
            raise ConfigurationError(
                f"No collaborator registered for {role}",
                {"identity": identity},
            ) from exc
        if not isinstance(collaborator, protocol):
            raise ConfigurationError(
                f"Collaborator for {role} does not implement {protocol.__name__}",
                {"identity": identity},
            )
        return collaborator

    def _resolve_registry(self, asset: str) -> AssetRegistry:
        registry = self.address_book.resolve(asset)
        if not isinstance(registry, AssetRegistry):
            raise CollaboratorError(
                "Asset identity is not an asset registry",
                {"asset": asset},
            )
        if not isinstance(registry, Savepoints):
            raise ConfigurationError(
                "Asset registry must support savepoint()/rollback()",
                {"asset": asset},
            )
        return registry

    def _assert_not_static(self) -> None:
        if self.store.is_read_only:
            raise StaticCallViolation(
                "Settlement cannot be entered from a read-only query"
            )

    def _require_unsettled(self, claim: str) -> None:
        if self.store.is_performed(claim):
            raise TransferAlreadyPerformedError(
                "Transfer already performed", {"claim": claim}
            )
        if self.store.is_cancelled(claim):
            raise TransferCancelledError(
                "Transfer was cancelled", {"claim": claim}
            )

    def _is_allowed(self, from_: str, registry: AssetRegistry, asset_id: int) -> bool:
        """Delegate is approved for asset_id, or is an operator for all of from_'s assets."""
        proxy = self.config.nftoken_transfer_proxy
        try:
            with self.store.read_only():
                approved = registry.get_approved(asset_id)
                if isinstance(approved, str) and approved.lower() == proxy:
                    return True
                return bool(registry.is_approved_for_all(from_, proxy))
        except PeertradeError:
            raise
        except Exception as exc:
            raise CollaboratorError(
                f"Asset registry approval query raised: {exc}",
                {"asset_id": asset_id},
            ) from exc

    def _move_asset(self, registry: AssetRegistry, order: Order) -> None:
        try:
            self._nftoken_proxy.transfer_from(
                registry, order.from_, order.to, order.asset_id
            )
        except PeertradeError:
            raise
        except Exception as exc:
            raise CollaboratorError(
                f"Asset transfer raised: {exc}",
                {"asset": order.asset, "asset_id": order.asset_id},
            ) from exc

    def _emit(self, event_type: EventType, order: Order, claim: str) -> None:
        event = TransferEvent(event_type=event_type, from_=order.from_, to=order.to, claim=claim)
        self.store.on_commit(lambda: self._publish(event))

    def _publish(self, event: TransferEvent) -> None:
        self.events.append(event)
        logger.info(
            "%s from=%s to=%s claim=%s",
            event.event_type.value, event.from_, event.to, event.claim,
        )
        for callback in self._subscribers:
            try:
                callback(event)
            except Exception:
                logger.exception("Event subscriber failed for claim %s", event.claim)
