"""Deterministic secret and blinding-factor derivation (NUT-13).

Version ``01`` keysets use an HMAC-SHA256 KDF keyed by the wallet seed;
version ``00`` keysets use the BIP32 path
``m/129372'/0'/{keyset_int}'/{counter}'/{0|1}``.
"""

from __future__ import annotations

import enum
import re

from ecash_wallet.crypto.bip32 import ExtendedKey
from ecash_wallet.crypto.curve import CURVE_ORDER
from ecash_wallet.utils.crypto import hmac_sha256

_KDF_PREFIX = b"Cashu_KDF_HMAC_SHA256"
_STANDARD_DERIVATION_PATH = "m/129372'/0'"
_HEX_RE = re.compile(r"^[a-fA-F0-9]+$")


class DerivationType(enum.IntEnum):
    """Which value a derivation produces."""

    SECRET = 0
    BLINDING_FACTOR = 1


def keyset_id_int(keyset_id: str) -> int:
    """Map a hex keyset id onto a hardened BIP32 index."""
    return int(keyset_id, 16) % (2**31 - 1)


def derive_secret(seed: bytes, keyset_id: str, counter: int) -> bytes:
    """Derive the 32-byte secret for *counter* on *keyset_id*."""
    return _derive(seed, keyset_id, counter, DerivationType.SECRET)


def derive_blinding_factor(seed: bytes, keyset_id: str, counter: int) -> int:
    """Derive the blinding scalar for *counter* on *keyset_id*."""
    return int.from_bytes(_derive(seed, keyset_id, counter, DerivationType.BLINDING_FACTOR), "big")


def _derive(seed: bytes, keyset_id: str, counter: int, kind: DerivationType) -> bytes:
    if counter < 0:
        msg = f"Counter must not be negative, got {counter}"
        raise ValueError(msg)
    if not _HEX_RE.match(keyset_id):
        msg = f"Unsupported keyset id format: {keyset_id!r}"
        raise ValueError(msg)
    if keyset_id.startswith("00"):
        return _derive_bip32(seed, keyset_id, counter, kind)
    if keyset_id.startswith("01"):
        return _derive_hmac(seed, keyset_id, counter, kind)
    msg = f"Unrecognized keyset id version {keyset_id[:2]}"
    raise ValueError(msg)


def _derive_hmac(seed: bytes, keyset_id: str, counter: int, kind: DerivationType) -> bytes:
    message = _KDF_PREFIX + bytes.fromhex(keyset_id) + counter.to_bytes(8, "big") + bytes([kind])
    digest = hmac_sha256(seed, message)
    if kind is DerivationType.SECRET:
        return digest
    value = int.from_bytes(digest, "big")
    # Single subtraction; an HMAC output >= n is vanishingly rare
    if value >= CURVE_ORDER:
        return (value - CURVE_ORDER).to_bytes(32, "big")
    if value == 0:
        msg = "Derived invalid blinding scalar r == 0"
        raise ValueError(msg)
    return digest


def _derive_bip32(seed: bytes, keyset_id: str, counter: int, kind: DerivationType) -> bytes:
    path = f"{_STANDARD_DERIVATION_PATH}/{keyset_id_int(keyset_id)}'/{counter}'/{int(kind)}"
    return ExtendedKey.from_seed(seed).derive_path(path).key
