"""OutputData: a blinded output request and the means to unblind its signature.

Every instance is single use: secrets and blinding factors are never shared
between operations.
"""

from __future__ import annotations

import json
import secrets as _secrets
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Protocol, runtime_checkable

from ecash_wallet.crypto.curve import point_from_hex, point_to_hex
from ecash_wallet.crypto.dhke import blind_message, unblind_signature
from ecash_wallet.crypto.secrets import derive_blinding_factor, derive_secret
from ecash_wallet.errors.definitions import ErrLockPubkeyRequired
from ecash_wallet.errors.mint_errors import MintError
from ecash_wallet.models.proof import DLEQ, BlindedMessage, BlindedSignature, Proof

if TYPE_CHECKING:
    from ecash_wallet.models.keyset import Keyset


@runtime_checkable
class OutputDataLike(Protocol):
    """Anything that can be sent as an output and turned into a proof."""

    @property
    def blinded_message(self) -> BlindedMessage: ...

    def to_proof(self, signature: BlindedSignature, keyset: Keyset) -> Proof: ...


# ---------------------------------------------------------------------------
# P2PK lock options
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class LockOptions:
    """Spending conditions for P2PK-locked outputs (NUT-11).

    Attributes:
        pubkeys: Public keys (hex) allowed to sign; the first is the primary.
        locktime: Unix time after which refund keys may spend.
        refund_keys: Keys that may spend after ``locktime``.
        required_signatures: Number of signatures required (n_sigs).
        required_refund_signatures: Refund multisig threshold.
        sig_flag: ``SIG_INPUTS`` or ``SIG_ALL``.
    """

    pubkeys: tuple[str, ...] = ()
    locktime: int | None = None
    refund_keys: tuple[str, ...] = ()
    required_signatures: int | None = None
    required_refund_signatures: int | None = None
    sig_flag: str | None = None
    additional_tags: tuple[tuple[str, ...], ...] = field(default_factory=tuple)

    def to_secret(self) -> str:
        """Build a fresh NUT-10 P2PK secret string for these conditions."""
        if not self.pubkeys:
            raise ErrLockPubkeyRequired
        tags: list[list[str]] = []
        if len(self.pubkeys) > 1:
            tags.append(["pubkeys", *self.pubkeys[1:]])
        if self.required_signatures is not None:
            tags.append(["n_sigs", str(self.required_signatures)])
        if self.locktime is not None:
            tags.append(["locktime", str(self.locktime)])
        if self.refund_keys:
            tags.append(["refund", *self.refund_keys])
            if self.required_refund_signatures is not None:
                tags.append(["n_sigs_refund", str(self.required_refund_signatures)])
        if self.sig_flag:
            tags.append(["sigflag", self.sig_flag])
        tags.extend(list(tag) for tag in self.additional_tags)
        body = {"nonce": _secrets.token_hex(32), "data": self.pubkeys[0], "tags": tags}
        return json.dumps(["P2PK", body], separators=(",", ":"))


# ---------------------------------------------------------------------------
# OutputData
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class OutputData:
    """A blinded message together with its secret and blinding factor."""

    blinded_message: BlindedMessage
    blinding_factor: int
    secret: bytes

    def to_proof(self, signature: BlindedSignature, keyset: Keyset) -> Proof:
        """Unblind *signature* into a spendable proof.

        Amount and keyset id come from the signature, so blanks (amount 0)
        resolve to the amount the mint actually signed.

        Raises:
            MintError: If the keyset has no key for the signed amount.
        """
        pubkey_hex = keyset.keys.get(signature.amount)
        if pubkey_hex is None:
            msg = f"Keyset {keyset.id} has no key for amount {signature.amount}"
            raise MintError(msg)
        c_point = unblind_signature(
            point_from_hex(signature.c_), self.blinding_factor, point_from_hex(pubkey_hex)
        )
        dleq = None
        if signature.dleq is not None:
            dleq = DLEQ(
                e=signature.dleq.e,
                s=signature.dleq.s,
                r=self.blinding_factor.to_bytes(32, "big").hex(),
            )
        return Proof(
            keyset_id=signature.keyset_id,
            amount=signature.amount,
            secret=self.secret.decode("utf-8"),
            c=point_to_hex(c_point),
            dleq=dleq,
        )

    # -- Constructors ------------------------------------------------------

    @classmethod
    def from_secret(
        cls, amount: int, keyset_id: str, secret: bytes, blinding_factor: int | None = None
    ) -> OutputData:
        """Blind *secret* for *amount* on *keyset_id*."""
        b_point, r = blind_message(secret, blinding_factor)
        return cls(
            blinded_message=BlindedMessage(amount=amount, keyset_id=keyset_id, b_=point_to_hex(b_point)),
            blinding_factor=r,
            secret=secret,
        )

    @classmethod
    def create_random(cls, amounts: list[int], keyset: Keyset) -> list[OutputData]:
        """One output per amount with a fresh random secret."""
        return [
            cls.from_secret(amount, keyset.id, _secrets.token_hex(32).encode("utf-8"))
            for amount in amounts
        ]

    @classmethod
    def create_deterministic(
        cls, amounts: list[int], seed: bytes, counter: int, keyset: Keyset
    ) -> list[OutputData]:
        """One output per amount using counters ``counter, counter+1, ...``."""
        outputs: list[OutputData] = []
        for offset, amount in enumerate(amounts):
            index = counter + offset
            secret = derive_secret(seed, keyset.id, index).hex().encode("utf-8")
            r = derive_blinding_factor(seed, keyset.id, index)
            outputs.append(cls.from_secret(amount, keyset.id, secret, r))
        return outputs

    @classmethod
    def create_locked(cls, amounts: list[int], options: LockOptions, keyset: Keyset) -> list[OutputData]:
        """One P2PK-locked output per amount, each with its own nonce."""
        return [cls.from_secret(amount, keyset.id, options.to_secret().encode("utf-8")) for amount in amounts]


def sum_output_amounts(outputs: list[OutputDataLike]) -> int:
    """Total amount requested by *outputs*."""
    return sum(o.blinded_message.amount for o in outputs)
