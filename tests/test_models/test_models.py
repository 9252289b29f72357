"""Tests for wire models: proofs, keysets, quotes and tokens."""

from __future__ import annotations

import json

import pytest

from ecash_wallet.errors.definitions import ErrKeyChainNotLoaded, ErrNoActiveKeyset
from ecash_wallet.errors.mint_errors import MintError
from ecash_wallet.errors.wallet_errors import KeysetNotFoundError
from ecash_wallet.models.keyset import KeyChain, Keyset
from ecash_wallet.models.output_data import LockOptions, OutputData, OutputDataLike, sum_output_amounts
from ecash_wallet.models.proof import DLEQ, BlindedSignature, Proof, ProofState, ProofStateInfo, sum_proofs
from ecash_wallet.models.quotes import MeltQuote, MeltQuoteState, MintQuote
from ecash_wallet.models.token import Token

PUBKEY = "02" + "aa" * 32

# ---------------------------------------------------------------------------
# Proof
# ---------------------------------------------------------------------------


class TestProof:
    def test_from_wire_dict(self):
        proof = Proof.from_dict(
            {"id": "01aa", "amount": "8", "secret": "s", "C": PUBKEY, "dleq": {"e": "e1", "s": "s1", "r": "r1"}}
        )
        assert proof.keyset_id == "01aa"
        assert proof.amount == 8
        assert proof.c == PUBKEY
        assert proof.dleq == DLEQ(e="e1", s="s1", r="r1")

    def test_to_dict_omits_empty_fields(self):
        proof = Proof(keyset_id="01aa", amount=2, secret="s", c=PUBKEY)
        assert proof.to_dict() == {"id": "01aa", "amount": 2, "secret": "s", "C": PUBKEY}

    def test_prepared_for_mint(self):
        proof = Proof(
            keyset_id="01aa",
            amount=2,
            secret="s",
            c=PUBKEY,
            dleq=DLEQ(e="e", s="s"),
            witness={"signatures": ["ab"]},
        )
        prepared = proof.prepared_for_mint()
        assert prepared.dleq is None
        assert json.loads(prepared.witness) == {"signatures": ["ab"]}
        assert proof.prepared_for_mint(keep_dleq=True).dleq == proof.dleq

    def test_sum_proofs(self):
        proofs = [Proof(keyset_id="01aa", amount=a, secret=str(a), c=PUBKEY) for a in (1, 2, 8)]
        assert sum_proofs(proofs) == 11

    def test_blinded_signature_round_trip(self):
        data = {"amount": 4, "id": "01aa", "C_": PUBKEY, "dleq": {"e": "e1", "s": "s1"}}
        assert BlindedSignature.from_dict(data).to_dict() == data

    def test_proof_state_info(self):
        info = ProofStateInfo.from_dict({"Y": PUBKEY, "state": "PENDING"})
        assert info.state == ProofState.PENDING
        assert info.witness is None


# ---------------------------------------------------------------------------
# Keyset and KeyChain
# ---------------------------------------------------------------------------


class TestKeyset:
    def test_from_dict(self):
        keyset = Keyset.from_dict(
            {"id": "01aa", "unit": "sat", "active": True, "input_fee_ppk": 200, "keys": {"1": PUBKEY, "2": PUBKEY}}
        )
        assert keyset.amounts == [1, 2]
        assert keyset.input_fee_ppk == 200
        assert keyset.has_keys
        assert keyset.has_hex_id

    def test_base64_id_is_not_hex(self):
        assert not Keyset(id="I2yN+iRYfkzT").has_hex_id


class TestKeyChain:
    def _keyset(self, keyset_id: str, fee: int = 0, **kwargs) -> Keyset:
        return Keyset(id=keyset_id, input_fee_ppk=fee, keys={1: PUBKEY}, **kwargs)

    def test_cheapest_active_keyset(self):
        chain = KeyChain(
            keysets=[
                self._keyset("01aa", fee=100),
                self._keyset("01bb", fee=0, active=False),
                self._keyset("01cc", fee=50),
                self._keyset("I2yN+iRYfkzT", fee=0),
            ]
        )
        assert chain.get_keyset().id == "01cc"

    def test_other_units_ignored(self):
        chain = KeyChain(unit="sat", keysets=[self._keyset("01aa", unit="usd")])
        assert not chain.is_loaded

    def test_unknown_id(self):
        chain = KeyChain(keysets=[self._keyset("01aa")])
        with pytest.raises(KeysetNotFoundError, match="01ff"):
            chain.get_keyset("01ff")

    def test_empty_chain(self):
        with pytest.raises(KeysetNotFoundError) as exc_info:
            KeyChain().get_keyset()
        assert exc_info.value is ErrKeyChainNotLoaded

    def test_no_active_keyset(self):
        chain = KeyChain(keysets=[self._keyset("01aa", active=False)])
        with pytest.raises(KeysetNotFoundError) as exc_info:
            chain.get_cheapest_keyset()
        assert exc_info.value is ErrNoActiveKeyset

    async def test_load_merges_keys(self, fake_mint, keyset):
        chain = KeyChain()
        await chain.load(fake_mint)
        assert {k.id for k in chain.get_keysets()} == {k.id for k in fake_mint.keysets}
        assert chain.get_keyset(keyset.id).keys == keyset.keys


# ---------------------------------------------------------------------------
# OutputData and lock options
# ---------------------------------------------------------------------------


class TestOutputData:
    def test_to_proof_unblinds(self, fake_mint, keyset):
        (output,) = OutputData.create_random([4], keyset)
        signature = fake_mint.sign(output.blinded_message)
        proof = output.to_proof(signature, keyset)
        assert proof.amount == 4
        assert proof.secret == output.secret.decode()
        assert fake_mint.verify(proof)

    def test_to_proof_keeps_dleq_with_blinding_factor(self, fake_mint, keyset):
        (output,) = OutputData.create_random([2], keyset)
        signed = fake_mint.sign(output.blinded_message)
        signature = BlindedSignature(amount=2, keyset_id=keyset.id, c_=signed.c_, dleq=DLEQ(e="e", s="s"))
        proof = output.to_proof(signature, keyset)
        assert proof.dleq.r == output.blinding_factor.to_bytes(32, "big").hex()

    def test_to_proof_unknown_amount(self, keyset):
        (output,) = OutputData.create_random([2], keyset)
        signature = BlindedSignature(amount=3, keyset_id=keyset.id, c_=PUBKEY)
        with pytest.raises(MintError, match="no key for amount 3"):
            output.to_proof(signature, keyset)

    def test_satisfies_protocol(self, keyset):
        outputs = OutputData.create_random([1, 2], keyset)
        assert all(isinstance(o, OutputDataLike) for o in outputs)
        assert sum_output_amounts(outputs) == 3

    def test_lock_tags(self):
        options = LockOptions(
            pubkeys=(PUBKEY, "03" + "bb" * 32),
            required_signatures=2,
            refund_keys=("02" + "cc" * 32,),
            required_refund_signatures=1,
            locktime=100,
            sig_flag="SIG_ALL",
        )
        kind, body = json.loads(options.to_secret())
        assert kind == "P2PK"
        assert body["data"] == PUBKEY
        assert body["tags"] == [
            ["pubkeys", "03" + "bb" * 32],
            ["n_sigs", "2"],
            ["locktime", "100"],
            ["refund", "02" + "cc" * 32],
            ["n_sigs_refund", "1"],
            ["sigflag", "SIG_ALL"],
        ]


# ---------------------------------------------------------------------------
# Quotes and tokens
# ---------------------------------------------------------------------------


class TestQuotesAndTokens:
    def test_mint_quote_defaults(self):
        quote = MintQuote.from_dict({"quote": "q1", "request": "lnbc1..."})
        assert quote.amount == 0
        assert quote.unit == "sat"

    def test_melt_quote_camel_case_fee(self):
        quote = MeltQuote.from_dict({"quote": "mq", "amount": 10, "feeReserve": 2, "state": "PENDING"})
        assert quote.fee_reserve == 2
        assert quote.state == MeltQuoteState.PENDING

    def test_merged_with_keeps_unit_and_request(self):
        original = MeltQuote(quote="mq", amount=10, unit="usd", request="lnbc1...")
        response = MeltQuote(quote="mq", amount=10, state=MeltQuoteState.PAID)
        merged = original.merged_with(response)
        assert merged.state == MeltQuoteState.PAID
        assert merged.unit == "usd"
        assert merged.request == "lnbc1..."

    def test_token_amount(self):
        proofs = [Proof(keyset_id="01aa", amount=a, secret=str(a), c=PUBKEY) for a in (2, 4)]
        assert Token(mint="https://mint", proofs=proofs).amount == 6
