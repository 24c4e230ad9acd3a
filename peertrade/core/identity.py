"""
peertrade/core/identity.py

Identity and integer wire rules.

    identity  : "0x" + 40 lowercase hex characters (20 bytes)
    null      : NULL_IDENTITY — "0x" + 40 zeros
    uint      : int in [0, UINT256_MAX]; bool is rejected

normalize_identity() lowercases and validates. Every identity entering
the core passes through it, so equality checks are plain string equality.
"""

import re

from peertrade.core.exceptions import ValidationError

IDENTITY_BYTES = 20
WORD_BYTES     = 32
UINT256_MAX    = 2 ** 256 - 1

NULL_IDENTITY = "0x" + "0" * (IDENTITY_BYTES * 2)

_IDENTITY_RE = re.compile(r"^0x[0-9a-f]{40}$")


def is_identity(value) -> bool:
    """True iff value is a well-formed identity (any hex case)."""
    return isinstance(value, str) and bool(_IDENTITY_RE.match(value.lower()))


def normalize_identity(value, field: str = "identity") -> str:
    """
    Return the lowercase form of an identity.
    Raises ValidationError if value is not "0x" + 40 hex characters.
    """
    if not is_identity(value):
        raise ValidationError(
            f"Malformed {field}: expected 0x-prefixed 20-byte hex",
            {"field": field, "value": value},
        )
    return value.lower()


def check_uint(value, field: str = "uint") -> int:
    """
    Validate an unsigned 256-bit integer.
    Raises ValidationError on non-int, bool, negative or oversized values.
    """
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(
            f"Malformed {field}: expected int",
            {"field": field, "type": type(value).__name__},
        )
    if value < 0 or value > UINT256_MAX:
        raise ValidationError(
            f"{field} out of uint256 range",
            {"field": field, "value": value},
        )
    return value


def identity_bytes(identity: str) -> bytes:
    """Raw 20-byte form of a normalized identity."""
    return bytes.fromhex(identity[2:])


def uint_word(value: int) -> bytes:
    """32-byte big-endian word."""
    return value.to_bytes(WORD_BYTES, "big")


def identity_word(identity: str) -> bytes:
    """Identity left-padded to a 32-byte word."""
    return identity_bytes(identity).rjust(WORD_BYTES, b"\x00")
