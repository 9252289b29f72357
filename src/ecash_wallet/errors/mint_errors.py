"""Mint transport errors."""

from __future__ import annotations

from ecash_wallet.errors.wallet_errors import WalletError


class MintError(WalletError):
    """Error from the mint (issuer) HTTP API or an inconsistent mint response.

    Attributes:
        status_code: HTTP status returned by the mint, or 0 when the request
            never produced a response.
        detail_code: Protocol error code from the mint's error body, if any.
    """

    def __init__(self, message: str, *, status_code: int = 0, detail_code: int | None = None) -> None:
        super().__init__(message, code="mint-error")
        self.status_code = status_code
        self.detail_code = detail_code
