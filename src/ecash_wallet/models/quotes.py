"""Mint and melt quote models (bolt11)."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field, replace
from typing import Any

from ecash_wallet.models.proof import BlindedSignature, Proof


class MintQuoteState(enum.StrEnum):
    """Lifecycle of a mint quote."""

    UNPAID = "UNPAID"
    PAID = "PAID"
    ISSUED = "ISSUED"


class MeltQuoteState(enum.StrEnum):
    """Lifecycle of a melt quote."""

    UNPAID = "UNPAID"
    PENDING = "PENDING"
    PAID = "PAID"


@dataclass(frozen=True)
class MintQuote:
    """A request to mint ecash against a Lightning payment."""

    quote: str
    request: str = ""
    amount: int = 0
    unit: str = "sat"
    state: MintQuoteState = MintQuoteState.UNPAID
    expiry: int | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> MintQuote:
        """Create a MintQuote from the mint JSON response."""
        return cls(
            quote=data["quote"],
            request=data.get("request", ""),
            amount=int(data.get("amount") or 0),
            unit=data.get("unit", "sat"),
            state=MintQuoteState(data.get("state", MintQuoteState.UNPAID)),
            expiry=data.get("expiry"),
        )


@dataclass(frozen=True)
class MeltQuote:
    """A request to pay a Lightning invoice by melting ecash.

    Attributes:
        quote: Quote id.
        amount: Amount to be paid out.
        fee_reserve: Maximum Lightning fee the mint may consume.
        change: Blind signatures over returned blanks (after payment).
    """

    quote: str
    amount: int
    fee_reserve: int = 0
    unit: str = "sat"
    request: str = ""
    state: MeltQuoteState = MeltQuoteState.UNPAID
    expiry: int | None = None
    payment_preimage: str | None = None
    change: list[BlindedSignature] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> MeltQuote:
        """Create a MeltQuote from the mint JSON response."""
        return cls(
            quote=data["quote"],
            amount=int(data.get("amount") or 0),
            fee_reserve=int(data.get("fee_reserve", data.get("feeReserve", 0)) or 0),
            unit=data.get("unit", "sat"),
            request=data.get("request", ""),
            state=MeltQuoteState(data.get("state", MeltQuoteState.UNPAID)),
            expiry=data.get("expiry"),
            payment_preimage=data.get("payment_preimage"),
            change=[BlindedSignature.from_dict(s) for s in data.get("change") or []],
        )

    def merged_with(self, response: MeltQuote) -> MeltQuote:
        """Take the mint's latest view but keep unit and request from this quote."""
        return replace(response, unit=self.unit, request=self.request or response.request)


@dataclass(frozen=True)
class MeltProofsResponse:
    """Result of a melt: the mint's view of the quote and any fee change."""

    quote: MeltQuote
    change: list[Proof] = field(default_factory=list)
