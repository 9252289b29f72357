"""FeeModel: per-input fees in parts per thousand (ppk).

The mint charges ``ceil(sum(fee_ppk) / 1000)`` for a set of inputs, so
fractional fee units always round against the payer.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from ecash_wallet.errors.wallet_errors import KeysetNotFoundError

if TYPE_CHECKING:
    from collections.abc import Iterable

    from ecash_wallet.models.keyset import KeyChain
    from ecash_wallet.models.proof import Proof


def ceil_ppk(fee_ppk: int) -> int:
    """Whole fee units for *fee_ppk*, rounded up."""
    return -(-fee_ppk // 1000)


def fee_for_inputs(n_inputs: int, input_fee_ppk: int) -> int:
    """Fee for spending *n_inputs* proofs at *input_fee_ppk* each."""
    return max((n_inputs * input_fee_ppk + 999) // 1000, 0)


class FeeModel:
    """Fee lookups backed by a key chain."""

    def __init__(self, keychain: KeyChain) -> None:
        self._keychain = keychain

    def fee_ppk(self, keyset_id: str) -> int:
        """Input fee rate of *keyset_id*.

        Raises:
            KeysetNotFoundError: If the keyset is unknown.
        """
        msg = f"Could not get fee. No keyset found for keyset id: {keyset_id}"
        if not keyset_id:
            raise KeysetNotFoundError(msg)
        try:
            return self._keychain.get_keyset(keyset_id).input_fee_ppk
        except KeysetNotFoundError as exc:
            raise KeysetNotFoundError(msg) from exc

    def proof_fee_ppk(self, proof: Proof) -> int:
        """Fee rate charged for spending *proof*."""
        return self.fee_ppk(proof.keyset_id)

    def fees_for_proofs(self, proofs: Iterable[Proof]) -> int:
        """Fee the mint charges to spend *proofs* together."""
        return ceil_ppk(sum(self.proof_fee_ppk(p) for p in proofs))

    def fees_for_keyset(self, n_inputs: int, keyset_id: str) -> int:
        """Fee for spending *n_inputs* proofs of *keyset_id*."""
        return fee_for_inputs(n_inputs, self.fee_ppk(keyset_id))
