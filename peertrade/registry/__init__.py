"""
Peertrade capability registry.
"""

from peertrade.registry.capability import (
    CAPABILITY_INTERFACE_ID,
    SETTLEMENT_INTERFACE_ID,
    CapabilityRegistry,
    interface_id,
)

__all__ = [
    "CAPABILITY_INTERFACE_ID",
    "SETTLEMENT_INTERFACE_ID",
    "CapabilityRegistry",
    "interface_id",
]
