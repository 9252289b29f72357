"""TransactionAssembler: merges keep and send outputs into mint wire order.

Mints require swap outputs sorted by amount so the order does not leak which
outputs are change. The assembler sorts a merged keep+send list and keeps
the permutation so signatures can be mapped back to the right side.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from ecash_wallet.errors.mint_errors import MintError
from ecash_wallet.models.payloads import SwapPayload

if TYPE_CHECKING:
    from collections.abc import Sequence

    from ecash_wallet.models.keyset import Keyset
    from ecash_wallet.models.output_data import OutputDataLike
    from ecash_wallet.models.proof import BlindedSignature, Proof

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SwapTransaction:
    """An assembled swap ready to be sent.

    Attributes:
        payload: Inputs and outputs, outputs in wire (amount) order.
        output_data: Outputs in planning order (keep first, then send).
        keep_vector: Per wire position, True if the output is change.
        sorted_indices: Per wire position, the planning position.
        keep_count: Number of keep outputs at the head of ``output_data``.
    """

    payload: SwapPayload
    output_data: list[OutputDataLike] = field(default_factory=list)
    keep_vector: list[bool] = field(default_factory=list)
    sorted_indices: list[int] = field(default_factory=list)
    keep_count: int = 0

    def unpack(
        self, signatures: Sequence[BlindedSignature], keyset: Keyset
    ) -> tuple[list[Proof], list[Proof]]:
        """Turn the mint's signatures (wire order) into keep and send proofs.

        Both lists come back in planning order.

        Raises:
            MintError: If the signature count differs from the output count.
        """
        if len(signatures) != len(self.sorted_indices):
            msg = f"Mint returned {len(signatures)} signatures for {len(self.sorted_indices)} outputs"
            raise MintError(msg)
        proofs: list[Proof | None] = [None] * len(self.output_data)
        for wire, planning in enumerate(self.sorted_indices):
            proofs[planning] = self.output_data[planning].to_proof(signatures[wire], keyset)
        resolved = [p for p in proofs if p is not None]
        return resolved[: self.keep_count], resolved[self.keep_count :]


def assemble(
    inputs: Sequence[Proof],
    keep_outputs: Sequence[OutputDataLike],
    send_outputs: Sequence[OutputDataLike],
) -> SwapTransaction:
    """Build a swap from inputs and planned keep/send outputs.

    Outputs are sorted ascending by amount; the sort is stable, so equal
    amounts keep their planning order (keep before send).
    """
    output_data = [*keep_outputs, *send_outputs]
    sorted_indices = sorted(range(len(output_data)), key=lambda i: output_data[i].blinded_message.amount)
    keep_count = len(keep_outputs)
    keep_vector = [planning < keep_count for planning in sorted_indices]
    payload = SwapPayload(
        inputs=[p.prepared_for_mint() for p in inputs],
        outputs=[output_data[i].blinded_message for i in sorted_indices],
    )
    logger.debug(
        "Assembled swap: %d inputs, %d keep outputs, %d send outputs",
        len(payload.inputs),
        keep_count,
        len(send_outputs),
    )
    return SwapTransaction(
        payload=payload,
        output_data=output_data,
        keep_vector=keep_vector,
        sorted_indices=sorted_indices,
        keep_count=keep_count,
    )
