"""
Capability advertisement.

An interface id is the XOR of the selectors of the interface's methods;
a selector is the first 4 bytes of SHA-256 over the method signature.
Ids are rendered "0x%08x". INVALID_INTERFACE_ID is never supported.
"""

import hashlib
from functools import reduce
from typing import Dict, Iterable

from peertrade.core.exceptions import ValidationError

INVALID_INTERFACE_ID = "0xffffffff"


def selector(method_signature: str) -> int:
    return int.from_bytes(hashlib.sha256(method_signature.encode("utf-8")).digest()[:4], "big")


def interface_id(method_signatures: Iterable[str]) -> str:
    return "0x%08x" % reduce(lambda acc, sig: acc ^ selector(sig), method_signatures, 0)


CAPABILITY_METHODS = (
    "supports_interface(interface_id)",
)

SETTLEMENT_METHODS = (
    "perform_transfer(caller,addresses,uints,v,r,s,throw_if_not_transferable)",
    "cancel_transfer(caller,addresses,uints)",
    "get_transfer_data_claim(addresses,uints)",
    "is_valid_signature(signer,claim,v,r,s)",
    "token_address()",
    "token_transfer_proxy_address()",
    "nftoken_transfer_proxy_address()",
)

CAPABILITY_INTERFACE_ID = interface_id(CAPABILITY_METHODS)
SETTLEMENT_INTERFACE_ID = interface_id(SETTLEMENT_METHODS)


def _normalize(interface_id_value: str) -> str:
    text = str(interface_id_value).lower()
    if not (text.startswith("0x") and len(text) == 10):
        raise ValidationError(
            "Interface id must be 0x-prefixed 4-byte hex",
            {"interface_id": interface_id_value},
        )
    try:
        int(text, 16)
    except ValueError as exc:
        raise ValidationError(
            "Interface id must be 0x-prefixed 4-byte hex",
            {"interface_id": interface_id_value},
        ) from exc
    return text


class CapabilityRegistry:
    """Interface id → supported flag. Advertises its own interface."""

    def __init__(self) -> None:
        self._supported: Dict[str, bool] = {}
        self.register_interface(CAPABILITY_INTERFACE_ID)

    def register_interface(self, interface_id_value: str) -> None:
        interface_id_value = _normalize(interface_id_value)
        if interface_id_value == INVALID_INTERFACE_ID:
            raise ValidationError(
                "0xffffffff cannot be registered",
                {"interface_id": interface_id_value},
            )
        self._supported[interface_id_value] = True

    def supports_interface(self, interface_id_value: str) -> bool:
        try:
            return self._supported.get(_normalize(interface_id_value), False)
        except ValidationError:
            return False
