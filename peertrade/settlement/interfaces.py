"""
peertrade/settlement/interfaces.py

Collaborator contracts.

The settlement core never holds transfer rights. It moves value by calling
delegates that asset owners have pre-authorized:

    FungibleTransferDelegate.transfer_from(ledger, from_, to, amount)
        → ledger.transfer_from(delegate.address, from_, to, amount)

    AssetTransferDelegate.transfer_from(registry, from_, to, asset_id)
        → registry.transfer_from(delegate.address, from_, to, asset_id)

Affordability is read through FungibleLedgerView, which exposes only
balance_of() and allowance(). The executor wraps the configured ledger in
ReadOnlyLedgerView so fee checks can never reach a mutating method.

Every ledger and registry the executor moves value through must implement
Savepoints. A failed settlement rolls each of them back to the savepoint
taken on entry.
"""

from typing import Any, Dict, Hashable, Protocol, runtime_checkable

from peertrade.core.exceptions import CollaboratorError, ConfigurationError
from peertrade.core.identity import normalize_identity


@runtime_checkable
class Savepoints(Protocol):
    def savepoint(self) -> Hashable: ...

    def rollback(self, savepoint: Hashable) -> None: ...


@runtime_checkable
class FungibleLedgerView(Protocol):
    def balance_of(self, owner: str) -> int: ...

    def allowance(self, owner: str, spender: str) -> int: ...


@runtime_checkable
class FungibleLedger(FungibleLedgerView, Protocol):
    address: str

    def transfer_from(self, spender: str, from_: str, to: str, amount: int) -> bool: ...


@runtime_checkable
class FungibleTransferDelegate(Protocol):
    address: str

    def transfer_from(
        self, ledger: FungibleLedger, from_: str, to: str, amount: int
    ) -> bool: ...


@runtime_checkable
class AssetRegistry(Protocol):
    address: str

    def get_approved(self, asset_id: int) -> str: ...

    def is_approved_for_all(self, owner: str, operator: str) -> bool: ...

    def transfer_from(self, spender: str, from_: str, to: str, asset_id: int) -> None: ...


@runtime_checkable
class AssetTransferDelegate(Protocol):
    address: str

    def transfer_from(
        self, registry: AssetRegistry, from_: str, to: str, asset_id: int
    ) -> None: ...


class ReadOnlyLedgerView:
    """Exposes only the read methods of a fungible ledger."""

    __slots__ = ("_ledger",)

    def __init__(self, ledger: FungibleLedgerView) -> None:
        self._ledger = ledger

    def balance_of(self, owner: str) -> int:
        return self._ledger.balance_of(owner)

    def allowance(self, owner: str, spender: str) -> int:
        return self._ledger.allowance(owner, spender)

    def __repr__(self) -> str:
        return f"ReadOnlyLedgerView({self._ledger!r})"


class AddressBook:
    """
    Identity → collaborator object.

    Collaborators register under their `address` attribute. The executor
    resolves the configured ledger and delegates once at construction and
    the order's asset registry on every call.
    """

    def __init__(self) -> None:
        self._entries: Dict[str, Any] = {}

    def register(self, collaborator: Any) -> str:
        address = getattr(collaborator, "address", None)
        if address is None:
            raise ConfigurationError(
                "Collaborator has no address attribute",
                {"collaborator": repr(collaborator)},
            )
        address = normalize_identity(address, "collaborator address")
        if address in self._entries and self._entries[address] is not collaborator:
            raise ConfigurationError(
                "Address already registered to another collaborator",
                {"address": address},
            )
        self._entries[address] = collaborator
        return address

    def resolve(self, identity: str) -> Any:
        """Raises CollaboratorError if nothing is registered at identity."""
        try:
            return self._entries[identity.lower()]
        except KeyError:
            raise CollaboratorError(
                "No collaborator registered at identity",
                {"identity": identity},
            ) from None

    def __contains__(self, identity: str) -> bool:
        return identity.lower() in self._entries
