"""Mint HTTP client: the wallet's transport to the issuer.

Provides an async HTTP client for the mint v1 API:
- GET /v1/keysets: Keyset metadata (fee rates, active flags)
- GET /v1/keys[/{keyset_id}]: Public keys per amount
- POST /v1/swap: Swap proofs for new blinded signatures
- POST /v1/mint/quote/bolt11, /v1/mint/bolt11: Mint quotes and issuance
- POST /v1/melt/quote/bolt11, /v1/melt/bolt11: Melt quotes and payment
- POST /v1/restore: Re-sign previously signed blinded messages
- POST /v1/checkstate: Proof spend states by ``Y``
"""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

import httpx

from ecash_wallet.errors.mint_errors import MintError
from ecash_wallet.models.keyset import Keyset
from ecash_wallet.models.proof import BlindedMessage, BlindedSignature, ProofStateInfo
from ecash_wallet.models.quotes import MeltQuote, MintQuote

if TYPE_CHECKING:
    from ecash_wallet.config.settings import MintConfig
    from ecash_wallet.models.payloads import MeltPayload, MintPayload, SwapPayload

logger = logging.getLogger(__name__)


@runtime_checkable
class MintTransport(Protocol):
    """What the wallet core needs from a mint."""

    async def get_keysets(self) -> list[Keyset]: ...

    async def get_keys(self, keyset_id: str | None = None) -> list[Keyset]: ...

    async def swap(self, payload: SwapPayload) -> list[BlindedSignature]: ...

    async def mint(self, payload: MintPayload) -> list[BlindedSignature]: ...

    async def melt(self, payload: MeltPayload) -> MeltQuote: ...

    async def restore(
        self, outputs: list[BlindedMessage]
    ) -> tuple[list[BlindedMessage], list[BlindedSignature]]: ...

    async def check_state(self, ys: list[str]) -> list[ProofStateInfo]: ...

    async def create_mint_quote(
        self, amount: int, unit: str, description: str | None = None
    ) -> MintQuote: ...

    async def create_melt_quote(self, request: str, unit: str) -> MeltQuote: ...


class MintClient:
    """Async HTTP client for a Cashu mint.

    Usage::

        mint = MintClient(config)
        await mint.connect()
        try:
            keysets = await mint.get_keysets()
        finally:
            await mint.close()
    """

    def __init__(self, config: MintConfig, *, transport: httpx.AsyncBaseTransport | None = None) -> None:
        """Initialize the mint client.

        Args:
            config: Mint configuration (url, timeout, auth token).
            transport: Optional httpx transport (tests use ``httpx.MockTransport``).
        """
        self._config = config
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @property
    def url(self) -> str:
        """Mint URL without a trailing slash."""
        return self._config.url.rstrip("/")

    async def connect(self) -> None:
        """Create the underlying HTTP client."""
        headers: dict[str, str] = {"Content-Type": "application/json"}
        if self._config.auth_token:
            headers["Clear-auth"] = self._config.auth_token

        self._client = httpx.AsyncClient(
            base_url=self.url,
            headers=headers,
            timeout=self._config.timeout,
            transport=self._transport,
        )

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    @property
    def is_connected(self) -> bool:
        """Check if the HTTP client is active."""
        return self._client is not None

    # ------------------------------------------------------------------
    # Keys
    # ------------------------------------------------------------------

    async def get_keysets(self) -> list[Keyset]:
        """List all keysets of the mint (without keys).

        Raises:
            MintError: On HTTP or API errors.
        """
        data = await self._request("GET", "/v1/keysets", "get_keysets")
        return [Keyset.from_dict(k) for k in data.get("keysets", [])]

    async def get_keys(self, keyset_id: str | None = None) -> list[Keyset]:
        """Fetch public keys for all active keysets, or for one keyset.

        Raises:
            MintError: On HTTP or API errors.
        """
        path = f"/v1/keys/{keyset_id}" if keyset_id else "/v1/keys"
        data = await self._request("GET", path, "get_keys")
        return [Keyset.from_dict(k) for k in data.get("keysets", [])]

    # ------------------------------------------------------------------
    # Swap, mint, melt
    # ------------------------------------------------------------------

    async def swap(self, payload: SwapPayload) -> list[BlindedSignature]:
        """Swap inputs for blind signatures over the payload outputs.

        Raises:
            MintError: On HTTP or API errors.
        """
        data = await self._request("POST", "/v1/swap", "swap", payload.to_dict())
        return _signatures(data)

    async def mint(self, payload: MintPayload) -> list[BlindedSignature]:
        """Redeem a paid mint quote.

        Raises:
            MintError: On HTTP or API errors.
        """
        data = await self._request("POST", "/v1/mint/bolt11", "mint", payload.to_dict())
        return _signatures(data)

    async def melt(self, payload: MeltPayload) -> MeltQuote:
        """Pay a melt quote with the payload inputs.

        Returns:
            The updated quote, carrying change signatures over the blanks.

        Raises:
            MintError: On HTTP or API errors.
        """
        data = await self._request("POST", "/v1/melt/bolt11", "melt", payload.to_dict())
        return MeltQuote.from_dict(data)

    async def create_mint_quote(self, amount: int, unit: str, description: str | None = None) -> MintQuote:
        """Request a bolt11 invoice for minting *amount*.

        Raises:
            MintError: On HTTP or API errors.
        """
        body: dict[str, Any] = {"amount": amount, "unit": unit}
        if description:
            body["description"] = description
        data = await self._request("POST", "/v1/mint/quote/bolt11", "create_mint_quote", body)
        return MintQuote.from_dict(data)

    async def create_melt_quote(self, request: str, unit: str) -> MeltQuote:
        """Request a quote for paying the bolt11 invoice *request*.

        Raises:
            MintError: On HTTP or API errors.
        """
        body = {"request": request, "unit": unit}
        data = await self._request("POST", "/v1/melt/quote/bolt11", "create_melt_quote", body)
        quote = MeltQuote.from_dict(data)
        return quote if quote.request else replace(quote, request=request)

    # ------------------------------------------------------------------
    # Restore and state
    # ------------------------------------------------------------------

    async def restore(
        self, outputs: list[BlindedMessage]
    ) -> tuple[list[BlindedMessage], list[BlindedSignature]]:
        """Ask the mint for signatures it previously issued over *outputs*.

        Returns:
            The outputs the mint recognised and their signatures, index-aligned.

        Raises:
            MintError: On HTTP or API errors.
        """
        body = {"outputs": [o.to_dict() for o in outputs]}
        data = await self._request("POST", "/v1/restore", "restore", body)
        known = [BlindedMessage.from_dict(o) for o in data.get("outputs", [])]
        # Older mints call the signatures "promises".
        raw = data.get("signatures", data.get("promises", []))
        return known, [BlindedSignature.from_dict(s) for s in raw]

    async def check_state(self, ys: list[str]) -> list[ProofStateInfo]:
        """Spend states for the proofs identified by *ys*.

        Raises:
            MintError: On HTTP or API errors.
        """
        data = await self._request("POST", "/v1/checkstate", "check_state", {"Ys": ys})
        return [ProofStateInfo.from_dict(s) for s in data.get("states", [])]

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _ensure_connected(self) -> httpx.AsyncClient:
        """Return the HTTP client, raising if not connected."""
        if self._client is None:
            msg = "Mint client not connected. Call connect() first."
            raise MintError(msg)
        return self._client

    async def _request(
        self,
        method: str,
        path: str,
        operation: str,
        body: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        client = self._ensure_connected()
        try:
            response = await client.request(method, path, json=body)
        except httpx.HTTPError as exc:
            raise MintError(f"Mint {operation} failed: {exc}") from exc

        if response.status_code == 200:
            data = response.json()
            logger.debug("Mint %s %s succeeded", method, path)
            return data if isinstance(data, dict) else {}

        self._raise_for_status(response, operation)
        return {}  # unreachable

    def _raise_for_status(self, response: httpx.Response, operation: str) -> None:
        """Raise a MintError from a non-200 response."""
        status = response.status_code
        detail_code: int | None = None
        try:
            body = response.json()
            detail = body.get("detail", response.text)
            detail_code = body.get("code")
        except Exception:
            detail = response.text

        message = f"Mint {operation} failed ({status}): {detail}"
        raise MintError(message, status_code=status, detail_code=detail_code)


def _signatures(data: dict[str, Any]) -> list[BlindedSignature]:
    return [BlindedSignature.from_dict(s) for s in data.get("signatures", [])]
