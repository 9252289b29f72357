"""Mint transport: HTTP client for the issuer API."""

from ecash_wallet.mint.client import MintClient, MintTransport

__all__ = ["MintClient", "MintTransport"]
