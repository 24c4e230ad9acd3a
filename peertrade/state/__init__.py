"""
Peertrade State — the claim status store.

The store is the only persistent state owned by the settlement core.
"""

from peertrade.state.store import TransferStateStore

__all__ = ["TransferStateStore"]
