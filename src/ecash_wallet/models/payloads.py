"""Request payloads sent to the mint."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from ecash_wallet.models.proof import BlindedMessage, Proof

if TYPE_CHECKING:
    from ecash_wallet.models.keyset import Keyset
    from ecash_wallet.models.output_data import OutputDataLike
    from ecash_wallet.models.quotes import MeltQuote


@dataclass(frozen=True)
class SwapPayload:
    """``POST /v1/swap`` body: inputs and outputs in wire order."""

    inputs: list[Proof] = field(default_factory=list)
    outputs: list[BlindedMessage] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the mint JSON format."""
        return {
            "inputs": [p.to_dict() for p in self.inputs],
            "outputs": [o.to_dict() for o in self.outputs],
        }


@dataclass(frozen=True)
class MintPayload:
    """``POST /v1/mint/bolt11`` body."""

    quote: str
    outputs: list[BlindedMessage] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the mint JSON format."""
        return {"quote": self.quote, "outputs": [o.to_dict() for o in self.outputs]}


@dataclass(frozen=True)
class MeltPayload:
    """``POST /v1/melt/bolt11`` body; outputs are NUT-08 blanks."""

    quote: str
    inputs: list[Proof] = field(default_factory=list)
    outputs: list[BlindedMessage] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the mint JSON format."""
        return {
            "quote": self.quote,
            "inputs": [p.to_dict() for p in self.inputs],
            "outputs": [o.to_dict() for o in self.outputs],
        }


@dataclass(frozen=True)
class MeltBlanks:
    """Everything needed to finish a melt later (see ``complete_melt``)."""

    payload: MeltPayload
    output_data: list[OutputDataLike]
    keyset: Keyset
    quote: MeltQuote
