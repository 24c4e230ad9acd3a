"""
peertrade/core/crypto.py

Peertrade Cryptographic Layer

Key contracts:
    identity                 : @property → "0x" + 40-char lowercase hex
    sign_claim(claim)        : claim hex → Signature(v, r, s), low-s
    recover_signer(...)      : identity recovered from (v, r, s), or None
    is_valid_signature(...)  : recovered identity == signer. Never raises.

SIGNED MESSAGE:
    digest = SHA-256(CLAIM_MESSAGE_PREFIX || claim_bytes)

The prefix separates claim signatures from any other payload a key might
sign: a signature over a raw 32-byte value is never a valid claim
authorization.

IDENTITY:
    identity = "0x" + SHA-256(X || Y)[-20:]   (uncompressed point, no 0x04)

Curve is secp256k1. Key generation, PEM persistence and signing use
`cryptography`; public key recovery uses `ecdsa`, which `cryptography`
does not provide.
"""

import hashlib
from pathlib import Path
from typing import Optional

from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.asymmetric.utils import (
    Prehashed,
    decode_dss_signature,
)
from cryptography.hazmat.primitives.serialization import (
    Encoding,
    NoEncryption,
    PrivateFormat,
    PublicFormat,
)
from ecdsa import SECP256k1, VerifyingKey
from ecdsa.util import sigdecode_string

from peertrade.core.models import Signature

CLAIM_MESSAGE_PREFIX = b"\x19Peertrade Signed Claim:\n32"

# secp256k1 group order
CURVE_ORDER = SECP256k1.order
_HALF_ORDER = CURVE_ORDER // 2

_V_BASE = 27
_CLAIM_BYTES = 32


def claim_message_digest(claim: str) -> bytes:
    """SHA-256 over the prefixed claim. Raises ValueError on a malformed claim."""
    raw = bytes.fromhex(claim)
    if len(raw) != _CLAIM_BYTES:
        raise ValueError(f"claim must be {_CLAIM_BYTES} bytes, got {len(raw)}")
    return hashlib.sha256(CLAIM_MESSAGE_PREFIX + raw).digest()


def identity_from_point(point_xy: bytes) -> str:
    """Identity of a 64-byte X || Y public point."""
    return "0x" + hashlib.sha256(point_xy).digest()[-20:].hex()


def _recover_points(digest: bytes, r: int, s: int):
    """Both candidate public points (X || Y), ordered by recovery id."""
    sig = r.to_bytes(32, "big") + s.to_bytes(32, "big")
    keys = VerifyingKey.from_public_key_recovery_with_digest(
        sig,
        digest,
        SECP256k1,
        hashfunc=hashlib.sha256,
        sigdecode=sigdecode_string,
    )
    return [k.to_string() for k in keys]


def recover_signer(claim: str, v: int, r: int, s: int) -> Optional[str]:
    """
    Identity that produced (v, r, s) over the prefixed claim.

    Returns None for ANY malformed input: v outside {27, 28}, r outside
    [1, n), s outside [1, n//2], bad claim hex, or a point that cannot be
    recovered. The high-s twin (v ^ 1, r, n - s) is rejected, so each
    signer has one accepted signature per claim.
    """
    try:
        if v not in (_V_BASE, _V_BASE + 1):
            return None
        if not (0 < r < CURVE_ORDER and 0 < s <= _HALF_ORDER):
            return None
        digest = claim_message_digest(claim)
        points = _recover_points(digest, r, s)
        return identity_from_point(points[v - _V_BASE])
    except Exception:
        return None


def is_valid_signature(signer: str, claim: str, v: int, r: int, s: int) -> bool:
    """
    True iff (v, r, s) over the prefixed claim recovers exactly `signer`.

    Comparison is exact string equality. Never raises.
    """
    recovered = recover_signer(claim, v, r, s)
    return recovered is not None and recovered == signer


class Secp256k1KeyManager:
    """
    secp256k1 key manager for order signers.

    Public surface:
        Secp256k1KeyManager.generate()                  → new random key
        Secp256k1KeyManager.from_file(path)             → load PEM private key
        Secp256k1KeyManager.from_private_bytes(secret)  → load 32-byte secret

        key.identity                 (@property) → signer identity
        key.sign_claim(claim)                    → Signature
        key.save(path)                           → write PEM private key
        key.private_bytes_raw()                  → raw 32-byte secret
    """

    def __init__(self, private_key: ec.EllipticCurvePrivateKey) -> None:
        if not isinstance(private_key.curve, ec.SECP256K1):
            raise ValueError(
                f"Expected a secp256k1 key, got {private_key.curve.name}"
            )
        self._private_key = private_key
        point = private_key.public_key().public_bytes(
            Encoding.X962, PublicFormat.UncompressedPoint
        )
        # Drop the 0x04 uncompressed marker
        self._point_xy: bytes = point[1:]
        self._identity: str = identity_from_point(self._point_xy)

    # ── Construction ──────────────────────────────────────────

    @classmethod
    def generate(cls) -> "Secp256k1KeyManager":
        """Generate a new random secp256k1 key pair."""
        return cls(ec.generate_private_key(ec.SECP256K1()))

    @classmethod
    def from_file(cls, path: Path) -> "Secp256k1KeyManager":
        """
        Load a secp256k1 private key from a PEM file.
        Raises FileNotFoundError if path does not exist.
        Raises ValueError if the file is not a valid secp256k1 PEM key.
        """
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Key file not found: {path}")
        pem_bytes = path.read_bytes()
        try:
            from cryptography.hazmat.primitives.serialization import (
                load_pem_private_key,
            )
            private_key = load_pem_private_key(pem_bytes, password=None)
            if not isinstance(private_key, ec.EllipticCurvePrivateKey):
                raise ValueError(
                    f"Key file {path} does not contain an EC private key"
                )
            return cls(private_key)
        except Exception as exc:
            raise ValueError(
                f"Failed to load secp256k1 key from {path}: {exc}"
            ) from exc

    @classmethod
    def from_private_bytes(cls, secret: bytes) -> "Secp256k1KeyManager":
        """
        Load a key from a raw 32-byte big-endian secret.
        Raises ValueError if secret is not 32 bytes or not in [1, n).
        """
        if len(secret) != 32:
            raise ValueError(
                f"secp256k1 secret must be 32 bytes, got {len(secret)}"
            )
        value = int.from_bytes(secret, "big")
        if not 0 < value < CURVE_ORDER:
            raise ValueError("secp256k1 secret out of range")
        return cls(ec.derive_private_key(value, ec.SECP256K1()))

    # ── Identity ──────────────────────────────────────────────

    @property
    def identity(self) -> str:
        """Signer identity. THIS IS A @property."""
        return self._identity

    # ── Signing ───────────────────────────────────────────────

    def sign_claim(self, claim: str) -> Signature:
        """
        Sign the prefixed claim.

        s is normalized to the lower half of the group order; v is chosen
        so that recover_signer() returns this key's identity.
        """
        digest = claim_message_digest(claim)
        der = self._private_key.sign(digest, ec.ECDSA(Prehashed(hashes.SHA256())))
        r, s = decode_dss_signature(der)
        if s > _HALF_ORDER:
            s = CURVE_ORDER - s

        for recovery_id, point in enumerate(_recover_points(digest, r, s)):
            if point == self._point_xy:
                return Signature(v=_V_BASE + recovery_id, r=r, s=s)

        raise RuntimeError("Signature does not recover to the signing key")

    # ── Persistence ───────────────────────────────────────────

    def save(self, path: Path) -> None:
        """
        Write the private key to disk as a PEM file.
        Creates parent directories if needed.
        Raises RuntimeError on write failure.
        """
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        try:
            pem = self._private_key.private_bytes(
                encoding=             Encoding.PEM,
                format=               PrivateFormat.PKCS8,
                encryption_algorithm= NoEncryption(),
            )
            path.write_bytes(pem)
        except Exception as exc:
            raise RuntimeError(
                f"Failed to save secp256k1 key to {path}: {exc}"
            ) from exc

    def private_bytes_raw(self) -> bytes:
        """
        Return the raw 32-byte secret.
        Use only for secure backup — never log or transmit.
        """
        return self._private_key.private_numbers().private_value.to_bytes(32, "big")

    def __repr__(self) -> str:
        return f"Secp256k1KeyManager(identity={self._identity})"
