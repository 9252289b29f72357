"""Tests for swap assembly and signature unpacking."""

from __future__ import annotations

import pytest

from ecash_wallet.engine.assembler import assemble
from ecash_wallet.errors.mint_errors import MintError
from ecash_wallet.models.output_data import OutputData
from ecash_wallet.models.proof import DLEQ, Proof


class TestAssemble:
    def test_outputs_in_amount_order(self, keyset, make_proofs) -> None:
        keep = OutputData.create_random([4, 1], keyset)
        send = OutputData.create_random([2, 1], keyset)
        tx = assemble(make_proofs([8]), keep, send)

        assert [o.amount for o in tx.payload.outputs] == [1, 1, 2, 4]
        # Stable sort: the keep 1 precedes the send 1.
        assert tx.sorted_indices == [1, 3, 2, 0]
        assert tx.keep_vector == [True, False, False, True]
        assert tx.keep_count == 2

    def test_inputs_prepared_for_mint(self, keyset) -> None:
        proof = Proof(
            keyset_id=keyset.id,
            amount=2,
            secret="s",
            c="02" + "11" * 32,
            dleq=DLEQ(e="aa", s="bb", r="cc"),
            witness={"signatures": ["sig"]},
        )
        tx = assemble([proof], OutputData.create_random([2], keyset), [])
        sent = tx.payload.inputs[0]
        assert sent.dleq is None
        assert sent.witness == '{"signatures":["sig"]}'

    def test_payload_wire_format(self, keyset, make_proofs) -> None:
        tx = assemble(make_proofs([2]), [], OutputData.create_random([2], keyset))
        body = tx.payload.to_dict()
        assert set(body) == {"inputs", "outputs"}
        assert body["outputs"][0]["id"] == keyset.id
        assert "B_" in body["outputs"][0]


class TestUnpack:
    def test_signatures_map_back_to_sides(self, fake_mint, keyset, make_proofs) -> None:
        keep = OutputData.create_random([4, 1], keyset)
        send = OutputData.create_random([2, 1], keyset)
        tx = assemble(make_proofs([8]), keep, send)
        signatures = [fake_mint.sign(o) for o in tx.payload.outputs]

        keep_proofs, send_proofs = tx.unpack(signatures, keyset)

        assert [p.amount for p in keep_proofs] == [4, 1]
        assert [p.amount for p in send_proofs] == [2, 1]
        assert [p.secret for p in keep_proofs] == [o.secret.decode() for o in keep]
        assert all(fake_mint.verify(p) for p in keep_proofs + send_proofs)

    def test_signature_count_mismatch(self, fake_mint, keyset, make_proofs) -> None:
        keep = OutputData.create_random([1, 1], keyset)
        tx = assemble(make_proofs([4]), keep, OutputData.create_random([2], keyset))
        signatures = [fake_mint.sign(o) for o in tx.payload.outputs][:-1]
        with pytest.raises(MintError, match="2 signatures for 3 outputs"):
            tx.unpack(signatures, keyset)
