"""Decoded token model."""

from __future__ import annotations

from dataclasses import dataclass, field

from ecash_wallet.models.proof import Proof, sum_proofs


@dataclass(frozen=True)
class Token:
    """Proofs from a single mint, as handed over by a sender."""

    mint: str
    proofs: list[Proof] = field(default_factory=list)
    unit: str = "sat"
    memo: str | None = None

    @property
    def amount(self) -> int:
        """Total face value of the token."""
        return sum_proofs(self.proofs)
