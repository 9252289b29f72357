"""BIP32 HD key derivation for deterministic secrets on legacy keysets.

Only private derivation is needed: the wallet derives secrets and blinding
factors from its own seed, never from an extended public key.
"""

from __future__ import annotations

import struct
from dataclasses import dataclass

from ecash_wallet.crypto.curve import CURVE_ORDER, private_key_to_public_key
from ecash_wallet.utils.crypto import hmac_sha512

# BIP32 seed HMAC key
_MASTER_HMAC_KEY = b"Bitcoin seed"

HARDENED_OFFSET = 0x80000000


@dataclass(frozen=True)
class ExtendedKey:
    """A BIP32 extended private key.

    Attributes:
        key: 32-byte private key scalar.
        chain_code: 32-byte chain code.
        depth: Derivation depth (0 for master).
        child_index: Index used in derivation.
    """

    key: bytes
    chain_code: bytes
    depth: int = 0
    child_index: int = 0

    @property
    def private_key(self) -> int:
        """The private scalar as an integer."""
        return int.from_bytes(self.key, "big")

    def public_key(self) -> bytes:
        """Return the 33-byte compressed public key."""
        return private_key_to_public_key(self.key)

    def derive_child(self, index: int) -> ExtendedKey:
        """Derive a child key at the given index.

        Use ``index >= 0x80000000`` for hardened derivation.

        Raises:
            ValueError: If the derived key is invalid.
        """
        if index >= HARDENED_OFFSET:
            # Data = 0x00 || private_key || index
            data = b"\x00" + self.key + struct.pack(">I", index)
        else:
            # Data = compressed_pubkey || index
            data = self.public_key() + struct.pack(">I", index)

        hmac_result = hmac_sha512(self.chain_code, data)
        il, ir = hmac_result[:32], hmac_result[32:]

        il_int = int.from_bytes(il, "big")
        if il_int >= CURVE_ORDER:
            msg = "Derived key is invalid (il >= curve order)"
            raise ValueError(msg)

        key_int = (il_int + self.private_key) % CURVE_ORDER
        if key_int == 0:
            msg = "Derived key is invalid (key == 0)"
            raise ValueError(msg)
        return ExtendedKey(
            key=key_int.to_bytes(32, "big"),
            chain_code=ir,
            depth=self.depth + 1,
            child_index=index,
        )

    def derive_path(self, path: str) -> ExtendedKey:
        """Derive using a BIP32 path string like ``m/129372'/0'/1'/0'/0``.

        Apostrophe (') or h indicates hardened derivation.
        """
        parts = path.strip().split("/")
        key = self
        for part in parts:
            if part in ("m", "M", ""):
                continue
            hardened = part.endswith(("'", "h", "H"))
            idx = int(part.rstrip("'hH"))
            if hardened:
                idx += HARDENED_OFFSET
            key = key.derive_child(idx)
        return key

    @classmethod
    def from_seed(cls, seed: bytes) -> ExtendedKey:
        """Create a master private extended key from a BIP32 seed.

        Args:
            seed: 16-64 byte seed (typically the 64-byte BIP39 seed).

        Raises:
            ValueError: If seed length is out of range.
        """
        if not 16 <= len(seed) <= 64:
            msg = f"Seed must be 16-64 bytes, got {len(seed)}"
            raise ValueError(msg)
        hmac_result = hmac_sha512(_MASTER_HMAC_KEY, seed)
        il, ir = hmac_result[:32], hmac_result[32:]
        il_int = int.from_bytes(il, "big")
        if il_int == 0 or il_int >= CURVE_ORDER:
            msg = "Invalid seed (derived key out of range)"
            raise ValueError(msg)
        return cls(key=il, chain_code=ir)
