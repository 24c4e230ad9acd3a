"""
peertrade/core/claim.py

Claim computation — the canonical fingerprint of an order.

CONTRACT — packing (fixed field order, never reordered):

    instance        20 bytes
    from            20 bytes
    to              20 bytes
    asset           20 bytes
    asset_id        32 bytes big-endian
    fee_recipients  32 bytes each (identity left-padded)
    fee_amounts     32 bytes each big-endian
    seed            32 bytes big-endian
    expiration      32 bytes big-endian

    claim = SHA-256(packing), 64-char lowercase hex

The instance identity binds a claim to one settlement deployment, so an
order signed for one instance cannot be replayed on another. Sequence
lengths are implicit; their positions are fixed by the surrounding
fields and the index-parallel invariant.
"""

import hashlib
from typing import Sequence

from peertrade.core.identity import (
    identity_bytes,
    identity_word,
    normalize_identity,
    uint_word,
)
from peertrade.core.models import Order


def pack_claim_fields(
    instance:       str,
    from_:          str,
    to:             str,
    asset:          str,
    asset_id:       int,
    fee_recipients: Sequence[str],
    fee_amounts:    Sequence[int],
    seed:           int,
    expiration:     int,
) -> bytes:
    """Binary packing hashed by compute_claim(). Inputs must be validated."""
    parts = [
        identity_bytes(instance),
        identity_bytes(from_),
        identity_bytes(to),
        identity_bytes(asset),
        uint_word(asset_id),
    ]
    parts.extend(identity_word(r) for r in fee_recipients)
    parts.extend(uint_word(a) for a in fee_amounts)
    parts.append(uint_word(seed))
    parts.append(uint_word(expiration))
    return b"".join(parts)


def compute_claim(
    instance:       str,
    from_:          str,
    to:             str,
    asset:          str,
    asset_id:       int,
    fee_recipients: Sequence[str],
    fee_amounts:    Sequence[int],
    seed:           int,
    expiration:     int,
) -> str:
    """
    Deterministic claim over all order fields plus the instance identity.

    Returns:
        Lowercase hex SHA-256 digest (64 characters).
    """
    packed = pack_claim_fields(
        instance, from_, to, asset, asset_id,
        fee_recipients, fee_amounts, seed, expiration,
    )
    return hashlib.sha256(packed).hexdigest()


def claim_for_order(instance: str, order: Order) -> str:
    """compute_claim() for a decoded Order."""
    return compute_claim(
        normalize_identity(instance, "instance"),
        order.from_,
        order.to,
        order.asset,
        order.asset_id,
        order.fee_recipients,
        order.fee_amounts,
        order.seed,
        order.expiration,
    )


def get_transfer_data_claim(
    instance:  str,
    addresses: Sequence[str],
    uints:     Sequence[int],
) -> str:
    """Claim for the parallel-sequence wire encoding."""
    return claim_for_order(instance, Order.from_encoded(addresses, uints))
