"""
Shared fixtures. The settlement world itself lives in helpers/world.py.
"""

import pytest

from helpers.world import World, build_world
from peertrade import Secp256k1KeyManager


@pytest.fixture
def world() -> World:
    """Fresh in-memory settlement world, clock at NOW."""
    return build_world()


@pytest.fixture
def key():
    """A fresh secp256k1 key manager for each test."""
    return Secp256k1KeyManager.generate()
