"""
peertrade/core/models.py

Settlement data model.

ORDER WIRE ENCODING — two index-parallel sequences:

    addresses = [from, to, asset, fee_recipient_0, fee_recipient_1, ...]
    uints     = [asset_id, seed, expiration, fee_amount_0, fee_amount_1, ...]

    len(addresses) == len(uints) >= 3
    positions 3.. are index-aligned fee pairs

Order.from_encoded() is the only decoder. It validates every identity and
every uint before an Order exists, so a constructed Order is always
well-formed. The claim is not stored on the Order: it depends on the
settlement instance identity and is computed by peertrade.core.claim.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Sequence, Tuple

from peertrade.core.exceptions import ValidationError
from peertrade.core.identity import check_uint, normalize_identity

# Fixed leading positions in the encoded sequences
_HEADER_LENGTH = 3

# Signature wire form: r(32) || s(32) || v(1)
_SIGNATURE_BYTES = 65


class TransferStatus(str, Enum):
    """Lifecycle of a claim. PERFORMED and CANCELLED are terminal."""
    UNSET     = "unset"
    PERFORMED = "performed"
    CANCELLED = "cancelled"


class EventType(str, Enum):
    PERFORM_TRANSFER = "PerformTransfer"
    CANCEL_TRANSFER  = "CancelTransfer"


@dataclass(frozen=True)
class Order:
    """The transfer terms a sender authorizes."""

    from_:          str
    to:             str
    asset:          str
    asset_id:       int
    seed:           int
    expiration:     int
    fee_recipients: Tuple[str, ...] = ()
    fee_amounts:    Tuple[int, ...] = ()

    @classmethod
    def from_encoded(
        cls,
        addresses: Sequence[str],
        uints:     Sequence[int],
    ) -> "Order":
        """
        Decode the parallel-sequence encoding.

        Raises ValidationError if the sequences differ in length, are
        shorter than the fixed header, or hold malformed values.
        """
        if len(addresses) != len(uints):
            raise ValidationError(
                "addresses and uints must have equal length",
                {"addresses": len(addresses), "uints": len(uints)},
            )
        if len(addresses) < _HEADER_LENGTH:
            raise ValidationError(
                "order encoding is missing header fields",
                {"length": len(addresses), "required": _HEADER_LENGTH},
            )

        fee_recipients = tuple(
            normalize_identity(a, f"fee_recipient[{i}]")
            for i, a in enumerate(addresses[_HEADER_LENGTH:])
        )
        fee_amounts = tuple(
            check_uint(u, f"fee_amount[{i}]")
            for i, u in enumerate(uints[_HEADER_LENGTH:])
        )

        return cls(
            from_=          normalize_identity(addresses[0], "from"),
            to=             normalize_identity(addresses[1], "to"),
            asset=          normalize_identity(addresses[2], "asset"),
            asset_id=       check_uint(uints[0], "asset_id"),
            seed=           check_uint(uints[1], "seed"),
            expiration=     check_uint(uints[2], "expiration"),
            fee_recipients= fee_recipients,
            fee_amounts=    fee_amounts,
        )

    def to_encoded(self) -> Tuple[List[str], List[int]]:
        """Inverse of from_encoded()."""
        addresses = [self.from_, self.to, self.asset, *self.fee_recipients]
        uints     = [self.asset_id, self.seed, self.expiration, *self.fee_amounts]
        return addresses, uints

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Order":
        """
        Build from a mapping using the field names of the order file format:
        from, to, asset, asset_id, seed, expiration, fees: [{recipient, amount}].
        """
        try:
            fees = data.get("fees") or []
            addresses = [data["from"], data["to"], data["asset"]]
            uints     = [data["asset_id"], data["seed"], data["expiration"]]
            for fee in fees:
                addresses.append(fee["recipient"])
                uints.append(fee["amount"])
        except (KeyError, TypeError, AttributeError) as exc:
            raise ValidationError(
                f"Order document is missing a field: {exc}"
            ) from exc
        return cls.from_encoded(addresses, uints)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "from":       self.from_,
            "to":         self.to,
            "asset":      self.asset,
            "asset_id":   self.asset_id,
            "seed":       self.seed,
            "expiration": self.expiration,
            "fees": [
                {"recipient": r, "amount": a}
                for r, a in zip(self.fee_recipients, self.fee_amounts)
            ],
        }


@dataclass(frozen=True)
class Signature:
    """ECDSA secp256k1 signature with recovery id: v in {27, 28}."""

    v: int
    r: int
    s: int

    def to_hex(self) -> str:
        raw = (
            self.r.to_bytes(32, "big")
            + self.s.to_bytes(32, "big")
            + bytes([self.v])
        )
        return "0x" + raw.hex()

    @classmethod
    def from_hex(cls, value: str) -> "Signature":
        """Parse r(32) || s(32) || v(1). Raises ValidationError on bad input."""
        text = value[2:] if value.startswith(("0x", "0X")) else value
        try:
            raw = bytes.fromhex(text)
        except ValueError as exc:
            raise ValidationError("Signature is not valid hex") from exc
        if len(raw) != _SIGNATURE_BYTES:
            raise ValidationError(
                "Signature must be 65 bytes",
                {"length": len(raw)},
            )
        return cls(
            v=raw[64],
            r=int.from_bytes(raw[:32], "big"),
            s=int.from_bytes(raw[32:64], "big"),
        )


@dataclass(frozen=True)
class TransferEvent:
    """Observation emitted by a committed settlement or cancellation."""

    event_type: EventType
    from_:      str
    to:         str
    claim:      str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event": self.event_type.value,
            "from":  self.from_,
            "to":    self.to,
            "claim": self.claim,
        }
