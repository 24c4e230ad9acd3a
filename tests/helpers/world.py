"""
A complete settlement world with in-memory collaborators.

    sender    owns asset 1 in the registry, signs orders
    receiver  holds 1_000 fee tokens, approved to the token proxy
    feeman    fee recipient
"""

from dataclasses import dataclass
from typing import List, Optional, Tuple

from peertrade import (
    AddressBook,
    Secp256k1KeyManager,
    SettlementConfig,
    Signature,
    TransferExecutor,
    TransferStateStore,
)

from .ledgers import (
    AssetTransferProxy,
    InMemoryAssetRegistry,
    InMemoryTokenLedger,
    TokenTransferProxy,
    ident,
)

NOW      = 1_700_000_000
FUTURE   = NOW + 3_600
ASSET_ID = 1

INSTANCE    = ident(0x1001)
TOKEN       = ident(0x1002)
TOKEN_PROXY = ident(0x1003)
NFT_PROXY   = ident(0x1004)
REGISTRY    = ident(0x1005)


@dataclass
class World:
    executor:    TransferExecutor
    store:       TransferStateStore
    ledger:      InMemoryTokenLedger
    registry:    InMemoryAssetRegistry
    book:        AddressBook
    config:      SettlementConfig
    sender:      Secp256k1KeyManager
    receiver:    Secp256k1KeyManager
    feeman:      str
    clock:       List[int]

    def order(
        self,
        fees: Optional[List[Tuple[str, int]]] = None,
        seed: int = 42,
        expiration: int = FUTURE,
        asset_id: int = ASSET_ID,
        to: Optional[str] = None,
        from_: Optional[str] = None,
        asset: str = REGISTRY,
    ) -> Tuple[List[str], List[int]]:
        """Encoded order; default fee is 10 to feeman."""
        if fees is None:
            fees = [(self.feeman, 10)]
        addresses = [from_ or self.sender.identity, to or self.receiver.identity, asset]
        uints     = [asset_id, seed, expiration]
        for recipient, amount in fees:
            addresses.append(recipient)
            uints.append(amount)
        return addresses, uints

    def sign(self, addresses, uints, key: Optional[Secp256k1KeyManager] = None) -> Signature:
        claim = self.executor.get_transfer_data_claim(addresses, uints)
        return (key or self.sender).sign_claim(claim)

    def perform(self, addresses, uints, signature=None, caller=None, strict=False) -> str:
        sig = signature or self.sign(addresses, uints)
        return self.executor.perform_transfer(
            caller or self.receiver.identity,
            addresses, uints, sig.v, sig.r, sig.s, strict,
        )


def build_world(journal=None) -> World:
    sender   = Secp256k1KeyManager.generate()
    receiver = Secp256k1KeyManager.generate()
    feeman   = ident(0xFEE)

    ledger   = InMemoryTokenLedger(TOKEN)
    registry = InMemoryAssetRegistry(REGISTRY)
    ledger.mint(receiver.identity, 1_000)
    ledger.approve(receiver.identity, TOKEN_PROXY, 1_000)
    registry.mint(sender.identity, ASSET_ID)
    registry.approve(sender.identity, NFT_PROXY, ASSET_ID)

    book = AddressBook()
    for collaborator in (
        ledger,
        registry,
        TokenTransferProxy(TOKEN_PROXY),
        AssetTransferProxy(NFT_PROXY),
    ):
        book.register(collaborator)

    config = SettlementConfig(
        instance=               INSTANCE,
        token=                  TOKEN,
        token_transfer_proxy=   TOKEN_PROXY,
        nftoken_transfer_proxy= NFT_PROXY,
        journal=                journal,
    )
    clock = [NOW]
    executor = TransferExecutor(config, book, clock=lambda: clock[0])

    return World(
        executor= executor,
        store=    executor.store,
        ledger=   ledger,
        registry= registry,
        book=     book,
        config=   config,
        sender=   sender,
        receiver= receiver,
        feeman=   feeman,
        clock=    clock,
    )
