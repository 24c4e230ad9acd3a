"""
tests/test_executor.py

Settlement laws. These hold for every order, every caller.

  LIFECYCLE
    Happy path moves the asset and the fees, marks performed, emits once
    Idempotence: second perform fails TRANSFER_ALREADY_PERFORMED
    Cancel-then-perform fails TRANSFER_CANCELLED
    Perform-then-cancel fails
    Only the sender cancels; cancelling twice fails

  GATES
    Only the receiver performs, even with a valid signature
    Sender and receiver must differ
    Expired orders fail regardless of signature
    Signature must recover to the sender
    A claim is bound to one instance

  STRICT MODE
    Short balance / allowance aborts before any mutation
    Missing approval aborts before any mutation
    Without strict mode the same conditions surface as collaborator failures

  ATOMICITY
    Any failure rolls back store, ledger, registry and events
    Reentrant perform from a collaborator is rejected
    Executors sharing a store: nested settlements commit or roll back with
    the enclosing transfer, and concurrent calls serialize
    Core mutation from inside an affordability query is rejected
    Journal makes settlement survive a restart
"""

import dataclasses
import threading

import pytest

from helpers.ledgers import (
    AssetTransferProxy,
    InMemoryAssetRegistry,
    InMemoryTokenLedger,
    TokenTransferProxy,
    ident,
)
from helpers.world import (
    ASSET_ID,
    FUTURE,
    NFT_PROXY,
    NOW,
    REGISTRY,
    TOKEN,
    TOKEN_PROXY,
    build_world,
)
from peertrade import AddressBook, NULL_IDENTITY, TransferExecutor, TransferStatus
from peertrade.core.exceptions import (
    AssetNotAllowedError,
    AuthorizationError,
    CollaboratorError,
    ConfigurationError,
    InsufficientBalanceOrAllowanceError,
    OrderExpiredError,
    StaticCallViolation,
    TransferAlreadyPerformedError,
    TransferCancelledError,
    ValidationError,
)
from peertrade.core.models import EventType
from peertrade.registry import CAPABILITY_INTERFACE_ID, SETTLEMENT_INTERFACE_ID


def snapshot(world):
    return (
        dict(world.ledger.balances),
        dict(world.ledger.allowances),
        dict(world.registry.owners),
        dict(world.registry.approvals),
        len(world.store),
        list(world.executor.events),
    )


# ─────────────────────────────────────────────────────────────
# Lifecycle
# ─────────────────────────────────────────────────────────────

class TestLifecycle:

    def test_happy_path(self, world):
        addresses, uints = world.order()
        received = []
        world.executor.subscribe(received.append)

        claim = world.perform(addresses, uints)

        assert world.store.status(claim) is TransferStatus.PERFORMED
        assert world.registry.owner_of(ASSET_ID) == world.receiver.identity
        assert world.ledger.balance_of(world.receiver.identity) == 990
        assert world.ledger.balance_of(world.feeman) == 10
        assert len(received) == 1
        event = received[0]
        assert event.event_type is EventType.PERFORM_TRANSFER
        assert (event.from_, event.to, event.claim) == (
            world.sender.identity, world.receiver.identity, claim,
        )
        assert world.executor.events == received

    def test_claim_matches_get_transfer_data_claim(self, world):
        addresses, uints = world.order()
        assert world.perform(addresses, uints) == world.executor.get_transfer_data_claim(addresses, uints)

    def test_second_perform_is_replay(self, world):
        addresses, uints = world.order()
        sig = world.sign(addresses, uints)
        world.perform(addresses, uints, sig)

        with pytest.raises(TransferAlreadyPerformedError) as exc_info:
            world.perform(addresses, uints, sig)
        assert exc_info.value.code == "TRANSFER_ALREADY_PERFORMED"
        assert len(world.executor.events) == 1

    def test_cancel_then_perform(self, world):
        addresses, uints = world.order()
        sig = world.sign(addresses, uints)
        claim = world.executor.cancel_transfer(world.sender.identity, addresses, uints)

        assert world.store.is_cancelled(claim)
        assert world.executor.events[-1].event_type is EventType.CANCEL_TRANSFER

        with pytest.raises(TransferCancelledError) as exc_info:
            world.perform(addresses, uints, sig)
        assert exc_info.value.code == "TRANSFER_CANCELLED"
        assert world.registry.owner_of(ASSET_ID) == world.sender.identity

    def test_perform_then_cancel(self, world):
        addresses, uints = world.order()
        claim = world.perform(addresses, uints)

        with pytest.raises(TransferAlreadyPerformedError):
            world.executor.cancel_transfer(world.sender.identity, addresses, uints)
        assert world.store.status(claim) is TransferStatus.PERFORMED

    def test_only_sender_cancels(self, world):
        addresses, uints = world.order()
        with pytest.raises(AuthorizationError) as exc_info:
            world.executor.cancel_transfer(world.receiver.identity, addresses, uints)
        assert exc_info.value.code == "NOT_SENDER"
        assert len(world.store) == 0

    def test_cancel_twice(self, world):
        addresses, uints = world.order()
        world.executor.cancel_transfer(world.sender.identity, addresses, uints)
        with pytest.raises(TransferCancelledError):
            world.executor.cancel_transfer(world.sender.identity, addresses, uints)

    def test_new_seed_reissues_transfer(self, world):
        """After a cancel, the same terms with a new seed are a fresh order."""
        addresses, uints = world.order(seed=1)
        world.executor.cancel_transfer(world.sender.identity, addresses, uints)

        addresses, uints = world.order(seed=2)
        world.perform(addresses, uints)
        assert world.registry.owner_of(ASSET_ID) == world.receiver.identity

    def test_order_without_fees(self, world):
        addresses, uints = world.order(fees=[])
        world.perform(addresses, uints)
        assert world.ledger.balance_of(world.receiver.identity) == 1_000
        assert world.ledger.transfer_calls == 0

    def test_null_and_zero_fees_skipped(self, world):
        addresses, uints = world.order(fees=[(NULL_IDENTITY, 50), (world.feeman, 0)])
        world.perform(addresses, uints)
        assert world.ledger.transfer_calls == 0
        assert world.ledger.balance_of(world.receiver.identity) == 1_000


# ─────────────────────────────────────────────────────────────
# Gates
# ─────────────────────────────────────────────────────────────

class TestGates:

    @pytest.mark.parametrize("who", ["sender", "third_party"])
    def test_only_receiver_performs(self, world, who):
        addresses, uints = world.order()
        caller = world.sender.identity if who == "sender" else ident(0xBAD)
        before = snapshot(world)

        with pytest.raises(AuthorizationError) as exc_info:
            world.perform(addresses, uints, caller=caller)
        assert exc_info.value.code == "NOT_RECEIVER"
        assert snapshot(world) == before

    def test_same_parties_rejected(self, world):
        addresses, uints = world.order(to=world.sender.identity)
        with pytest.raises(AuthorizationError) as exc_info:
            world.perform(addresses, uints, caller=world.sender.identity)
        assert exc_info.value.code == "SAME_PARTIES"

    def test_expired_rejected(self, world):
        addresses, uints = world.order(expiration=NOW - 1)
        with pytest.raises(OrderExpiredError) as exc_info:
            world.perform(addresses, uints)
        assert exc_info.value.code == "TRANSFER_EXPIRED"
        assert len(world.store) == 0

    def test_expiration_is_inclusive(self, world):
        addresses, uints = world.order(expiration=NOW)
        world.perform(addresses, uints)

    def test_order_expires_as_clock_advances(self, world):
        addresses, uints = world.order()
        sig = world.sign(addresses, uints)
        world.clock[0] = FUTURE + 1
        with pytest.raises(OrderExpiredError):
            world.perform(addresses, uints, sig)

    def test_wrong_signer_rejected(self, world, key):
        addresses, uints = world.order()
        with pytest.raises(AuthorizationError) as exc_info:
            world.perform(addresses, uints, world.sign(addresses, uints, key=key))
        assert exc_info.value.code == "INVALID_SIGNATURE"

    def test_signature_over_other_terms_rejected(self, world):
        addresses, uints = world.order(seed=1)
        sig = world.sign(addresses, uints)
        addresses, uints = world.order(seed=2)
        with pytest.raises(AuthorizationError):
            world.perform(addresses, uints, sig)

    def test_claim_bound_to_instance(self, world):
        addresses, uints = world.order()
        sig = world.sign(addresses, uints)
        other = TransferExecutor(
            dataclasses.replace(world.config, instance=ident(0x2001)),
            world.book,
            clock=lambda: NOW,
        )
        with pytest.raises(AuthorizationError) as exc_info:
            other.perform_transfer(
                world.receiver.identity, addresses, uints, sig.v, sig.r, sig.s
            )
        assert exc_info.value.code == "INVALID_SIGNATURE"

    def test_length_mismatch_rejected(self, world):
        addresses, uints = world.order()
        sig = world.sign(addresses, uints)
        with pytest.raises(ValidationError):
            world.perform(addresses, uints[:-1], sig)

    def test_unknown_asset_registry(self, world):
        addresses, uints = world.order(asset=ident(0x7777))
        before = snapshot(world)
        with pytest.raises(CollaboratorError):
            world.perform(addresses, uints)
        assert snapshot(world) == before


# ─────────────────────────────────────────────────────────────
# Strict mode
# ─────────────────────────────────────────────────────────────

class TestStrictMode:

    def test_strict_success(self, world):
        addresses, uints = world.order()
        world.perform(addresses, uints, strict=True)
        assert world.registry.owner_of(ASSET_ID) == world.receiver.identity

    def test_insufficient_balance_aborts_early(self, world):
        addresses, uints = world.order(fees=[(world.feeman, 1_001)])
        before = snapshot(world)
        with pytest.raises(InsufficientBalanceOrAllowanceError) as exc_info:
            world.perform(addresses, uints, strict=True)
        assert exc_info.value.code == "INSUFFICIENT_BALANCE_OR_ALLOWANCE"
        assert snapshot(world) == before
        assert world.ledger.transfer_calls == 0

    def test_insufficient_allowance_aborts_early(self, world):
        world.ledger.approve(world.receiver.identity, TOKEN_PROXY, 5)
        addresses, uints = world.order()
        with pytest.raises(InsufficientBalanceOrAllowanceError):
            world.perform(addresses, uints, strict=True)
        assert len(world.store) == 0

    def test_missing_approval_aborts_early(self, world):
        world.registry.approvals.clear()
        addresses, uints = world.order()
        before = snapshot(world)
        with pytest.raises(AssetNotAllowedError) as exc_info:
            world.perform(addresses, uints, strict=True)
        assert exc_info.value.code == "NFTOKEN_NOT_ALLOWED"
        assert snapshot(world) == before

    def test_operator_approval_is_enough(self, world):
        world.registry.approvals.clear()
        world.registry.set_approval_for_all(world.sender.identity, NFT_PROXY, True)
        addresses, uints = world.order()
        world.perform(addresses, uints, strict=True)
        assert world.registry.owner_of(ASSET_ID) == world.receiver.identity

    def test_missing_approval_without_strict_is_collaborator_failure(self, world):
        world.registry.approvals.clear()
        addresses, uints = world.order()
        before = snapshot(world)
        with pytest.raises(CollaboratorError) as exc_info:
            world.perform(addresses, uints)
        assert exc_info.value.code == "COLLABORATOR_FAILURE"
        assert snapshot(world) == before

    def test_unaffordable_fee_without_strict_rolls_back_asset(self, world):
        addresses, uints = world.order(fees=[(world.feeman, 1_001)])
        before = snapshot(world)
        with pytest.raises(CollaboratorError):
            world.perform(addresses, uints)
        assert snapshot(world) == before
        assert world.registry.owner_of(ASSET_ID) == world.sender.identity

    def test_failed_order_can_be_retried(self, world):
        addresses, uints = world.order(fees=[(world.feeman, 1_001)])
        sig = world.sign(addresses, uints)
        with pytest.raises(CollaboratorError):
            world.perform(addresses, uints, sig)

        world.ledger.mint(world.receiver.identity, 1)
        world.ledger.approve(world.receiver.identity, TOKEN_PROXY, 1_001)
        world.perform(addresses, uints, sig)
        assert world.ledger.balance_of(world.feeman) == 1_001


# ─────────────────────────────────────────────────────────────
# Atomicity
# ─────────────────────────────────────────────────────────────

class TestAtomicity:

    def test_partial_fees_rolled_back(self, world):
        other = ident(0xFEF)
        addresses, uints = world.order(fees=[(world.feeman, 600), (other, 600)])
        before = snapshot(world)
        with pytest.raises(CollaboratorError) as exc_info:
            world.perform(addresses, uints)
        assert exc_info.value.details["index"] == 1
        assert snapshot(world) == before
        assert world.ledger.balance_of(world.feeman) == 0

    def test_failed_perform_emits_nothing(self, world):
        received = []
        world.executor.subscribe(received.append)
        world.registry.approvals.clear()
        addresses, uints = world.order()
        with pytest.raises(CollaboratorError):
            world.perform(addresses, uints)
        assert received == []

    def test_failing_subscriber_does_not_undo_settlement(self, world):
        def explode(event):
            raise RuntimeError("subscriber down")

        world.executor.subscribe(explode)
        addresses, uints = world.order()
        claim = world.perform(addresses, uints)
        assert world.store.is_performed(claim)

    def test_reentrant_perform_rejected(self, world):
        inner_errors = []
        addresses, uints = world.order(asset=ident(0x1006))
        sig = world.sign(addresses, uints)

        class ReentrantRegistry(InMemoryAssetRegistry):
            def transfer_from(self, spender, from_, to, asset_id):
                try:
                    world.executor.perform_transfer(
                        world.receiver.identity, addresses, uints, sig.v, sig.r, sig.s
                    )
                except TransferAlreadyPerformedError as exc:
                    inner_errors.append(exc)
                super().transfer_from(spender, from_, to, asset_id)

        registry = ReentrantRegistry(ident(0x1006))
        registry.mint(world.sender.identity, ASSET_ID)
        registry.approve(world.sender.identity, NFT_PROXY, ASSET_ID)
        world.book.register(registry)

        world.perform(addresses, uints, sig)

        assert len(inner_errors) == 1
        assert registry.owner_of(ASSET_ID) == world.receiver.identity
        assert world.ledger.balance_of(world.feeman) == 10
        assert len(world.executor.events) == 1

    def test_mutation_from_affordability_query_rejected(self, world):
        victim_addresses, victim_uints = world.order(seed=99)

        class MeddlingLedger(InMemoryTokenLedger):
            def balance_of(self, owner):
                world_executor.cancel_transfer(
                    world.sender.identity, victim_addresses, victim_uints
                )
                return super().balance_of(owner)

        ledger = MeddlingLedger(TOKEN)
        ledger.balances, ledger.allowances = world.ledger.balances, world.ledger.allowances
        book = AddressBook()
        for collaborator in (
            ledger, world.registry, TokenTransferProxy(TOKEN_PROXY), AssetTransferProxy(NFT_PROXY),
        ):
            book.register(collaborator)
        world_executor = TransferExecutor(world.config, book, clock=lambda: NOW)

        addresses, uints = world.order()
        sig = world.sign(addresses, uints)
        with pytest.raises(StaticCallViolation):
            world_executor.perform_transfer(
                world.receiver.identity, addresses, uints, sig.v, sig.r, sig.s, True
            )
        assert len(world_executor.store) == 0
        assert world.registry.owner_of(ASSET_ID) == world.sender.identity

    def test_concurrent_performs_single_winner(self, world):
        addresses, uints = world.order()
        sig = world.sign(addresses, uints)
        outcomes = []
        lock = threading.Lock()
        barrier = threading.Barrier(4)

        def attempt():
            barrier.wait()
            try:
                world.perform(addresses, uints, sig)
                result = "ok"
            except TransferAlreadyPerformedError:
                result = "replay"
            with lock:
                outcomes.append(result)

        threads = [threading.Thread(target=attempt) for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert sorted(outcomes) == ["ok", "replay", "replay", "replay"]
        assert world.ledger.balance_of(world.feeman) == 10

    def _settling_registry(self, world, peer, inner_addresses, inner_uints):
        """Registry at 0x1006 whose transfer settles another order through peer."""
        inner_sig = world.sign(inner_addresses, inner_uints)

        class SettlingRegistry(InMemoryAssetRegistry):
            def transfer_from(self, spender, from_, to, asset_id):
                peer.perform_transfer(
                    world.receiver.identity, inner_addresses, inner_uints,
                    inner_sig.v, inner_sig.r, inner_sig.s,
                )
                super().transfer_from(spender, from_, to, asset_id)

        registry = SettlingRegistry(ident(0x1006))
        registry.mint(world.sender.identity, ASSET_ID)
        registry.approve(world.sender.identity, NFT_PROXY, ASSET_ID)
        world.book.register(registry)
        return registry

    def test_shared_store_nested_settlement_undone_with_outer(self, tmp_path):
        world = build_world(journal=tmp_path / "transfers.jsonl")
        peer  = TransferExecutor(world.config, world.book, store=world.store, clock=lambda: NOW)
        peer_events = []
        peer.subscribe(peer_events.append)

        inner_addresses, inner_uints = world.order(seed=7)
        registry = self._settling_registry(world, peer, inner_addresses, inner_uints)
        outer_addresses, outer_uints = world.order(
            seed=8, asset=registry.address, fees=[(world.feeman, 5_000)]
        )
        outer_claim = world.executor.get_transfer_data_claim(outer_addresses, outer_uints)
        inner_claim = world.executor.get_transfer_data_claim(inner_addresses, inner_uints)
        before = snapshot(world)

        with pytest.raises(CollaboratorError):
            world.perform(outer_addresses, outer_uints)

        assert world.store.status(outer_claim) is TransferStatus.UNSET
        assert world.store.status(inner_claim) is TransferStatus.UNSET
        assert registry.owner_of(ASSET_ID) == world.sender.identity
        assert snapshot(world) == before
        assert peer_events == []

        restarted = TransferExecutor(world.config, world.book, clock=lambda: NOW)
        assert len(restarted.store) == 0

    def test_shared_store_nested_settlement_commits_with_outer(self, tmp_path):
        world = build_world(journal=tmp_path / "transfers.jsonl")
        peer  = TransferExecutor(world.config, world.book, store=world.store, clock=lambda: NOW)

        inner_addresses, inner_uints = world.order(seed=7)
        registry = self._settling_registry(world, peer, inner_addresses, inner_uints)
        outer_addresses, outer_uints = world.order(seed=8, asset=registry.address)

        outer_claim = world.perform(outer_addresses, outer_uints)
        inner_claim = peer.get_transfer_data_claim(inner_addresses, inner_uints)

        assert world.store.is_performed(outer_claim)
        assert world.store.is_performed(inner_claim)
        assert world.registry.owner_of(ASSET_ID) == world.receiver.identity
        assert registry.owner_of(ASSET_ID) == world.receiver.identity
        assert world.ledger.balance_of(world.feeman) == 20
        assert [e.claim for e in peer.events] == [inner_claim]

        restarted = TransferExecutor(world.config, world.book, clock=lambda: NOW)
        assert restarted.store.is_performed(outer_claim)
        assert restarted.store.is_performed(inner_claim)

    def test_shared_store_executors_serialize_across_threads(self, world):
        peer = TransferExecutor(world.config, world.book, store=world.store, clock=lambda: NOW)
        executors = [world.executor, peer]
        orders = []
        for asset_id in range(2, 10):
            world.registry.mint(world.sender.identity, asset_id)
            world.registry.approve(world.sender.identity, NFT_PROXY, asset_id)
            addresses, uints = world.order(seed=asset_id, asset_id=asset_id)
            orders.append((addresses, uints, world.sign(addresses, uints)))
        orders.append(orders[0])  # one replay
        outcomes = []
        lock = threading.Lock()
        barrier = threading.Barrier(len(orders))

        def attempt(i, addresses, uints, sig):
            barrier.wait()
            try:
                executors[i % 2].perform_transfer(
                    world.receiver.identity, addresses, uints, sig.v, sig.r, sig.s
                )
                result = "ok"
            except TransferAlreadyPerformedError:
                result = "replay"
            with lock:
                outcomes.append(result)

        threads = [
            threading.Thread(target=attempt, args=(i, *order))
            for i, order in enumerate(orders)
        ]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert outcomes.count("ok") == 8
        assert outcomes.count("replay") == 1
        assert len(world.store) == 8
        assert world.ledger.balance_of(world.feeman) == 80
        assert all(world.registry.owner_of(a) == world.receiver.identity for a in range(2, 10))

    def test_journal_survives_restart(self, tmp_path):
        world = build_world(journal=tmp_path / "transfers.jsonl")
        addresses, uints = world.order()
        sig = world.sign(addresses, uints)
        world.perform(addresses, uints, sig)

        restarted = TransferExecutor(world.config, world.book, clock=lambda: NOW)
        with pytest.raises(TransferAlreadyPerformedError):
            restarted.perform_transfer(
                world.receiver.identity, addresses, uints, sig.v, sig.r, sig.s
            )

    def test_rolled_back_perform_not_journaled(self, tmp_path):
        world = build_world(journal=tmp_path / "transfers.jsonl")
        world.registry.approvals.clear()
        addresses, uints = world.order()
        with pytest.raises(CollaboratorError):
            world.perform(addresses, uints)

        restarted = TransferExecutor(world.config, world.book, clock=lambda: NOW)
        claim = restarted.get_transfer_data_claim(addresses, uints)
        assert restarted.store.status(claim) is TransferStatus.UNSET


# ─────────────────────────────────────────────────────────────
# Configuration and capabilities
# ─────────────────────────────────────────────────────────────

class TestConfiguration:

    def test_getters(self, world):
        assert world.executor.token_address == TOKEN
        assert world.executor.token_transfer_proxy_address == TOKEN_PROXY
        assert world.executor.nftoken_transfer_proxy_address == NFT_PROXY

    def test_capabilities(self, world):
        assert world.executor.supports_interface(CAPABILITY_INTERFACE_ID)
        assert world.executor.supports_interface(SETTLEMENT_INTERFACE_ID)
        assert not world.executor.supports_interface("0xffffffff")
        assert not world.executor.supports_interface("0x12345678")

    def test_missing_collaborator(self, world):
        book = AddressBook()
        book.register(world.ledger)
        with pytest.raises(ConfigurationError):
            TransferExecutor(world.config, book)

    def test_wrong_collaborator_kind(self, world):
        class NotADelegate:
            address = NFT_PROXY

        book = AddressBook()
        book.register(world.ledger)
        book.register(TokenTransferProxy(TOKEN_PROXY))
        book.register(NotADelegate())
        with pytest.raises(ConfigurationError):
            TransferExecutor(world.config, book)

    def test_address_collision_rejected(self, world):
        with pytest.raises(ConfigurationError):
            world.book.register(InMemoryAssetRegistry(REGISTRY))
