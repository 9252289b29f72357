"""Proof and blind-signature data models.

Wire names follow the mint API (``id``, ``C``, ``B_``, ``C_``); the Python
attributes use snake_case. ``from_dict`` accepts either spelling.
"""

from __future__ import annotations

import enum
import json
from dataclasses import dataclass, field, replace
from typing import Any

# ---------------------------------------------------------------------------
# DLEQ
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DLEQ:
    """Discrete-log equality proof attached to a signature or proof.

    Attributes:
        e: Challenge (hex).
        s: Response (hex).
        r: Blinding factor (hex); present only on proofs, never on signatures.
    """

    e: str
    s: str
    r: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> DLEQ:
        """Create a DLEQ from its JSON form."""
        return cls(e=data["e"], s=data["s"], r=data.get("r"))

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the JSON form."""
        out: dict[str, Any] = {"e": self.e, "s": self.s}
        if self.r is not None:
            out["r"] = self.r
        return out


# ---------------------------------------------------------------------------
# Proof
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Proof:
    """A spendable ecash token.

    Attributes:
        keyset_id: Id of the keyset that signed the proof.
        amount: Denomination in the keyset unit.
        secret: The proof secret (a UTF-8 string on the wire).
        c: Unblinded signature point ``C`` (compressed hex).
        dleq: Optional DLEQ proof.
        witness: Optional spending witness (string or structured JSON).
    """

    keyset_id: str
    amount: int
    secret: str
    c: str
    dleq: DLEQ | None = None
    witness: str | dict[str, Any] | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Proof:
        """Create a Proof from a mint/token JSON dict."""
        dleq = data.get("dleq")
        return cls(
            keyset_id=data.get("id", data.get("keyset_id", "")),
            amount=int(data["amount"]),
            secret=data["secret"],
            c=data.get("C", data.get("c", "")),
            dleq=DLEQ.from_dict(dleq) if dleq else None,
            witness=data.get("witness"),
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the mint JSON format."""
        out: dict[str, Any] = {
            "id": self.keyset_id,
            "amount": self.amount,
            "secret": self.secret,
            "C": self.c,
        }
        if self.dleq is not None:
            out["dleq"] = self.dleq.to_dict()
        if self.witness is not None:
            out["witness"] = self.witness
        return out

    def prepared_for_mint(self, *, keep_dleq: bool = False) -> Proof:
        """Return a copy ready to be sent as an input.

        The DLEQ is stripped for privacy unless *keep_dleq* is set, and a
        structured witness is serialized to its JSON string form.
        """
        witness = self.witness
        if witness is not None and not isinstance(witness, str):
            witness = json.dumps(witness, separators=(",", ":"))
        return replace(self, dleq=self.dleq if keep_dleq else None, witness=witness)


def sum_proofs(proofs: list[Proof]) -> int:
    """Total amount of *proofs*."""
    return sum(p.amount for p in proofs)


@dataclass
class SendResponse:
    """Partition of a proof set into proofs to keep and proofs to send."""

    keep: list[Proof] = field(default_factory=list)
    send: list[Proof] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Blinded messages and signatures
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class BlindedMessage:
    """An output request: amount, keyset and blinded point ``B_``."""

    amount: int
    keyset_id: str
    b_: str

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> BlindedMessage:
        """Create a BlindedMessage from its JSON form."""
        return cls(
            amount=int(data["amount"]),
            keyset_id=data.get("id", data.get("keyset_id", "")),
            b_=data.get("B_", data.get("b_", "")),
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the mint JSON format."""
        return {"amount": self.amount, "id": self.keyset_id, "B_": self.b_}


@dataclass(frozen=True)
class BlindedSignature:
    """The mint's blind signature ``C_`` over a blinded message."""

    amount: int
    keyset_id: str
    c_: str
    dleq: DLEQ | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> BlindedSignature:
        """Create a BlindedSignature from its JSON form."""
        dleq = data.get("dleq")
        return cls(
            amount=int(data["amount"]),
            keyset_id=data.get("id", data.get("keyset_id", "")),
            c_=data.get("C_", data.get("c_", "")),
            dleq=DLEQ.from_dict(dleq) if dleq else None,
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the mint JSON format."""
        out: dict[str, Any] = {"amount": self.amount, "id": self.keyset_id, "C_": self.c_}
        if self.dleq is not None:
            out["dleq"] = self.dleq.to_dict()
        return out


# ---------------------------------------------------------------------------
# Proof state (NUT-07)
# ---------------------------------------------------------------------------


class ProofState(enum.StrEnum):
    """Spend state of a proof as reported by the mint."""

    UNSPENT = "UNSPENT"
    PENDING = "PENDING"
    SPENT = "SPENT"


@dataclass(frozen=True)
class ProofStateInfo:
    """State entry returned by the check-state endpoint."""

    y: str
    state: ProofState
    witness: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ProofStateInfo:
        """Create a ProofStateInfo from its JSON form."""
        return cls(
            y=data.get("Y", data.get("y", "")),
            state=ProofState(data["state"]),
            witness=data.get("witness"),
        )
