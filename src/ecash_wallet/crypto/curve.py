"""secp256k1 point helpers on top of ``ecdsa`` curve arithmetic.

- Compressed SEC encoding / decoding (with on-curve validation)
- Private scalar → compressed public key
"""

from __future__ import annotations

from ecdsa import SECP256k1
from ecdsa.ellipticcurve import INFINITY, Point, PointJacobi

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

CURVE = SECP256k1
CURVE_ORDER: int = CURVE.order
GENERATOR: PointJacobi = CURVE.generator

_P: int = CURVE.curve.p()


# ---------------------------------------------------------------------------
# Encoding
# ---------------------------------------------------------------------------


def point_from_bytes(compressed: bytes) -> PointJacobi:
    """Decode a 33-byte compressed public key to a curve point.

    Raises:
        ValueError: If the encoding is malformed or the x coordinate is not
            on the curve.
    """
    if len(compressed) != 33:
        msg = f"Invalid compressed key length: {len(compressed)}"
        raise ValueError(msg)
    prefix = compressed[0]
    if prefix not in (0x02, 0x03):
        msg = f"Invalid compressed key prefix: {prefix:#x}"
        raise ValueError(msg)
    x = int.from_bytes(compressed[1:], "big")
    if x >= _P:
        msg = "x coordinate out of range"
        raise ValueError(msg)
    # y^2 = x^3 + 7  (mod p)  for secp256k1
    y_sq = (pow(x, 3, _P) + 7) % _P
    y = pow(y_sq, (_P + 1) // 4, _P)
    if (y * y) % _P != y_sq:
        msg = "x coordinate is not on the curve"
        raise ValueError(msg)
    if (y % 2 == 0) != (prefix == 0x02):
        y = _P - y
    return PointJacobi.from_affine(Point(CURVE.curve, x, y, CURVE_ORDER))


def point_from_hex(value: str) -> PointJacobi:
    """Decode a hex-encoded compressed public key."""
    return point_from_bytes(bytes.fromhex(value))


def point_to_bytes(point: PointJacobi) -> bytes:
    """Encode a curve point as a 33-byte compressed public key.

    Raises:
        ValueError: If *point* is the point at infinity.
    """
    if point == INFINITY:
        msg = "Cannot encode the point at infinity"
        raise ValueError(msg)
    x_bytes = point.x().to_bytes(32, "big")
    prefix = b"\x02" if point.y() % 2 == 0 else b"\x03"
    return prefix + x_bytes


def point_to_hex(point: PointJacobi) -> str:
    """Encode a curve point as compressed hex."""
    return point_to_bytes(point).hex()


def private_key_to_public_key(privkey: int | bytes) -> bytes:
    """Derive the 33-byte compressed public key for a private scalar."""
    scalar = int.from_bytes(privkey, "big") if isinstance(privkey, bytes) else privkey
    if not 0 < scalar < CURVE_ORDER:
        msg = "Private key out of range"
        raise ValueError(msg)
    return point_to_bytes(GENERATOR * scalar)
