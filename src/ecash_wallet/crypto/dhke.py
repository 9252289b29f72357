"""Blind Diffie-Hellman key exchange (BDHKE) over secp256k1.

Wallet side of the blind-signature scheme:

- ``hash_to_curve(secret)``  Y = HashToCurve(secret)
- ``blind_message(secret)``  B_ = Y + rG
- ``unblind_signature(C_, r, K)``  C = C_ - rK
"""

from __future__ import annotations

import secrets as _secrets

from ecdsa.ellipticcurve import PointJacobi

from ecash_wallet.crypto.curve import CURVE_ORDER, GENERATOR, point_from_bytes
from ecash_wallet.utils.crypto import sha256

DOMAIN_SEPARATOR = b"Secp256k1_HashToCurve_Cashu_"

_MAX_HASH_ATTEMPTS = 2**16


def hash_to_curve(message: bytes) -> PointJacobi:
    """Map *message* deterministically onto a curve point.

    Raises:
        ValueError: If no valid point is found within 2**16 attempts.
    """
    msg_hash = sha256(DOMAIN_SEPARATOR + message)
    for counter in range(_MAX_HASH_ATTEMPTS):
        candidate = sha256(msg_hash + counter.to_bytes(4, "little"))
        try:
            return point_from_bytes(b"\x02" + candidate)
        except ValueError:
            continue
    msg = "No valid point found"
    raise ValueError(msg)


def random_blinding_factor() -> int:
    """Return a uniformly random non-zero scalar."""
    return _secrets.randbelow(CURVE_ORDER - 1) + 1


def blind_message(secret: bytes, blinding_factor: int | None = None) -> tuple[PointJacobi, int]:
    """Blind *secret* for signing by the mint.

    Args:
        secret: The proof secret as bytes.
        blinding_factor: Scalar r; a random one is drawn when omitted.

    Returns:
        Tuple of (B_, r).
    """
    r = blinding_factor if blinding_factor is not None else random_blinding_factor()
    y_point = hash_to_curve(secret)
    return y_point + GENERATOR * r, r


def unblind_signature(c_blind: PointJacobi, blinding_factor: int, mint_pubkey: PointJacobi) -> PointJacobi:
    """Remove the blinding from a mint signature: C = C_ - rK."""
    # -rK == (n - r)K in the prime-order group
    return c_blind + mint_pubkey * (CURVE_ORDER - blinding_factor % CURVE_ORDER)
