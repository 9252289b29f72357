"""Keyset and KeyChain: the registry of mint signing keys and fee rates."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING, Any

from ecash_wallet.errors.definitions import ErrKeyChainNotLoaded, ErrNoActiveKeyset
from ecash_wallet.errors.wallet_errors import KeysetNotFoundError

if TYPE_CHECKING:
    from ecash_wallet.mint.client import MintTransport

logger = logging.getLogger(__name__)

_HEX_RE = re.compile(r"^[a-fA-F0-9]+$")


@dataclass(frozen=True)
class Keyset:
    """A versioned set of mint keys, one per denomination.

    Attributes:
        id: Keyset identifier.
        unit: Currency unit (e.g. ``sat``).
        active: Whether the mint still signs with this keyset.
        input_fee_ppk: Fee per input in parts per thousand.
        final_expiry: Unix timestamp after which the keyset expires, if any.
        keys: Mapping of amount → compressed public key hex.
    """

    id: str
    unit: str = "sat"
    active: bool = True
    input_fee_ppk: int = 0
    final_expiry: int | None = None
    keys: dict[int, str] = field(default_factory=dict)

    @property
    def has_hex_id(self) -> bool:
        """True for hex keyset ids (legacy base64 ids are excluded)."""
        return bool(_HEX_RE.match(self.id))

    @property
    def has_keys(self) -> bool:
        """True once the public keys have been loaded."""
        return bool(self.keys)

    @property
    def amounts(self) -> list[int]:
        """Supported denominations, ascending."""
        return sorted(self.keys)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Keyset:
        """Create a Keyset from a ``/v1/keysets`` or ``/v1/keys`` entry."""
        keys = data.get("keys") or {}
        return cls(
            id=data["id"],
            unit=data.get("unit", "sat"),
            active=data.get("active", True),
            input_fee_ppk=int(data.get("input_fee_ppk", data.get("inputFeePpk", 0)) or 0),
            final_expiry=data.get("final_expiry", data.get("finalExpiry")),
            keys={int(amount): pubkey for amount, pubkey in keys.items()},
        )

    def with_keys(self, keys: dict[int, str]) -> Keyset:
        """Return a copy carrying *keys*."""
        return replace(self, keys=dict(keys))


class KeyChain:
    """Registry of the keysets a wallet knows for one mint and unit.

    Usage::

        chain = KeyChain(unit="sat")
        await chain.load(mint_client)
        keyset = chain.get_keyset()  # cheapest active keyset
    """

    def __init__(self, unit: str = "sat", keysets: list[Keyset] | None = None) -> None:
        self._unit = unit
        self._keysets: dict[str, Keyset] = {}
        for keyset in keysets or []:
            self.add_keyset(keyset)

    @property
    def unit(self) -> str:
        """The wallet unit this chain is filtered to."""
        return self._unit

    @property
    def is_loaded(self) -> bool:
        """True once at least one keyset is registered."""
        return bool(self._keysets)

    def add_keyset(self, keyset: Keyset) -> None:
        """Register (or replace) *keyset* if it matches the chain unit."""
        if keyset.unit != self._unit:
            logger.debug("Ignoring keyset %s with unit %s", keyset.id, keyset.unit)
            return
        self._keysets[keyset.id] = keyset

    async def load(self, transport: MintTransport) -> None:
        """Fetch keysets and the keys of every active keyset from the mint."""
        keysets = await transport.get_keysets()
        keys_by_id = {k.id: k.keys for k in await transport.get_keys()}
        for keyset in keysets:
            keys = keys_by_id.get(keyset.id)
            self.add_keyset(keyset.with_keys(keys) if keys else keyset)
        logger.debug("Loaded %d keysets for unit %s", len(self._keysets), self._unit)

    def get_keysets(self) -> list[Keyset]:
        """All registered keysets."""
        return list(self._keysets.values())

    def get_keyset(self, keyset_id: str | None = None) -> Keyset:
        """Look up a keyset by id, or the cheapest active keyset when omitted.

        Raises:
            KeysetNotFoundError: If the id is unknown or no keyset qualifies.
        """
        if not keyset_id:
            return self.get_cheapest_keyset()
        keyset = self._keysets.get(keyset_id)
        if keyset is None:
            msg = f"No keyset found with id {keyset_id}"
            raise KeysetNotFoundError(msg)
        return keyset

    def get_cheapest_keyset(self) -> Keyset:
        """Lowest-fee keyset among active, hex-identified keysets with keys.

        Raises:
            KeysetNotFoundError: If the chain is empty or nothing qualifies.
        """
        if not self._keysets:
            raise ErrKeyChainNotLoaded
        candidates = [k for k in self._keysets.values() if k.active and k.has_hex_id and k.has_keys]
        if not candidates:
            raise ErrNoActiveKeyset
        return min(candidates, key=lambda k: k.input_fee_ppk)
