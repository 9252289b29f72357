"""Shared test fixtures for py-ecash test suite."""

from __future__ import annotations

import random
import secrets
from typing import TYPE_CHECKING

import pytest

from ecash_wallet.config.settings import MetricsConfig, MintConfig, WalletConfig
from ecash_wallet.crypto.curve import GENERATOR, point_from_hex, point_to_hex
from ecash_wallet.crypto.dhke import hash_to_curve
from ecash_wallet.engine.client import WalletEngine
from ecash_wallet.engine.fees import ceil_ppk
from ecash_wallet.errors.mint_errors import MintError
from ecash_wallet.models.keyset import KeyChain, Keyset
from ecash_wallet.models.proof import BlindedSignature, Proof, ProofState, ProofStateInfo
from ecash_wallet.models.quotes import MeltQuote, MeltQuoteState, MintQuote

if TYPE_CHECKING:
    from collections.abc import Callable

    from ecash_wallet.models.payloads import MeltPayload, MintPayload, SwapPayload
    from ecash_wallet.models.proof import BlindedMessage

MINT_URL = "https://mint.test.com"
KEYSET_ID = "01" + "0f" * 32
FEE_KEYSET_ID = "00ad268c4d1f5826"
SEED = bytes(range(64))

_AMOUNTS = [2**i for i in range(11)]


def _private_keys(offset: int) -> dict[int, int]:
    return {amount: offset + i + 1 for i, amount in enumerate(_AMOUNTS)}


def _keyset(keyset_id: str, privkeys: dict[int, int], input_fee_ppk: int = 0) -> Keyset:
    keys = {amount: point_to_hex(GENERATOR * k) for amount, k in privkeys.items()}
    return Keyset(id=keyset_id, unit="sat", active=True, input_fee_ppk=input_fee_ppk, keys=keys)


# ---------------------------------------------------------------------------
# Fake mint
# ---------------------------------------------------------------------------


class FakeMint:
    """In-process mint that signs with real BDHKE keys.

    Swaps are balance-checked (inputs - fee == outputs) so engine tests
    catch accounting mistakes.
    """

    def __init__(self, fee_ppk: int = 0) -> None:
        self.privkeys = {KEYSET_ID: _private_keys(0), FEE_KEYSET_ID: _private_keys(100)}
        self.keysets = [
            _keyset(KEYSET_ID, self.privkeys[KEYSET_ID]),
            _keyset(FEE_KEYSET_ID, self.privkeys[FEE_KEYSET_ID], input_fee_ppk=fee_ppk),
        ]
        self.swap_calls: list[SwapPayload] = []
        self.mint_calls: list[MintPayload] = []
        self.melt_calls: list[MeltPayload] = []
        self.issued: dict[str, BlindedSignature] = {}
        self.spent_ys: set[str] = set()
        self.melt_change: list[int] = []
        self.melt_state = MeltQuoteState.PAID
        self.drop_signature = False

    # -- Helpers ----------------------------------------------------------

    def keyset(self, keyset_id: str) -> Keyset:
        return next(k for k in self.keysets if k.id == keyset_id)

    def sign(self, output: BlindedMessage, amount: int | None = None) -> BlindedSignature:
        amount = output.amount if amount is None else amount
        k = self.privkeys[output.keyset_id][amount]
        c_ = point_to_hex(point_from_hex(output.b_) * k)
        signature = BlindedSignature(amount=amount, keyset_id=output.keyset_id, c_=c_)
        self.issued[output.b_] = signature
        return signature

    def verify(self, proof: Proof) -> bool:
        k = self.privkeys[proof.keyset_id][proof.amount]
        expected = hash_to_curve(proof.secret.encode("utf-8")) * k
        return point_to_hex(expected) == proof.c

    def _fee(self, inputs: list[Proof]) -> int:
        total_ppk = sum(self.keyset(p.keyset_id).input_fee_ppk for p in inputs)
        return ceil_ppk(total_ppk)

    # -- MintTransport ----------------------------------------------------

    async def get_keysets(self) -> list[Keyset]:
        return [k.with_keys({}) for k in self.keysets]

    async def get_keys(self, keyset_id: str | None = None) -> list[Keyset]:
        return [k for k in self.keysets if keyset_id in (None, k.id)]

    async def swap(self, payload: SwapPayload) -> list[BlindedSignature]:
        self.swap_calls.append(payload)
        amount_in = sum(p.amount for p in payload.inputs)
        amount_out = sum(o.amount for o in payload.outputs)
        fee = self._fee(payload.inputs)
        if amount_in - fee != amount_out:
            msg = f"Unbalanced swap: {amount_in} - {fee} != {amount_out}"
            raise MintError(msg, status_code=400, detail_code=11002)
        return [self.sign(o) for o in payload.outputs]

    async def mint(self, payload: MintPayload) -> list[BlindedSignature]:
        self.mint_calls.append(payload)
        signatures = [self.sign(o) for o in payload.outputs]
        return signatures[:-1] if self.drop_signature else signatures

    async def melt(self, payload: MeltPayload) -> MeltQuote:
        self.melt_calls.append(payload)
        change = [self.sign(o, amount) for o, amount in zip(payload.outputs, self.melt_change, strict=False)]
        if len(self.melt_change) > len(payload.outputs):
            # Misbehaving mint: sign extra change on the first blank.
            extra = len(self.melt_change) - len(payload.outputs)
            change.extend(self.sign(payload.outputs[0], 1) for _ in range(extra))
        return MeltQuote(quote=payload.quote, amount=0, state=self.melt_state, change=change)

    async def restore(
        self, outputs: list[BlindedMessage]
    ) -> tuple[list[BlindedMessage], list[BlindedSignature]]:
        known = [o for o in outputs if o.b_ in self.issued]
        return known, [self.issued[o.b_] for o in known]

    async def check_state(self, ys: list[str]) -> list[ProofStateInfo]:
        return [
            ProofStateInfo(y=y, state=ProofState.SPENT if y in self.spent_ys else ProofState.UNSPENT)
            for y in ys
        ]

    async def create_mint_quote(self, amount: int, unit: str, description: str | None = None) -> MintQuote:
        return MintQuote(quote="mint-quote-1", request="lnbc1...", amount=0, unit=unit)

    async def create_melt_quote(self, request: str, unit: str) -> MeltQuote:
        return MeltQuote(quote="melt-quote-1", amount=100, fee_reserve=10, unit=unit, request=request)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def seed() -> bytes:
    """Fixed 64-byte wallet seed."""
    return SEED


@pytest.fixture
def fake_mint() -> FakeMint:
    """A fake mint with a zero-fee keyset and a 1000 ppk keyset."""
    return FakeMint(fee_ppk=1000)


@pytest.fixture
def keyset(fake_mint: FakeMint) -> Keyset:
    """The zero-fee keyset."""
    return fake_mint.keyset(KEYSET_ID)


@pytest.fixture
def fee_keyset(fake_mint: FakeMint) -> Keyset:
    """The 1000 ppk keyset."""
    return fake_mint.keyset(FEE_KEYSET_ID)


@pytest.fixture
def keychain(fake_mint: FakeMint) -> KeyChain:
    """Key chain holding both fake mint keysets."""
    return KeyChain(unit="sat", keysets=list(fake_mint.keysets))


@pytest.fixture
def wallet_config() -> WalletConfig:
    """WalletConfig pointed at the fake mint."""
    return WalletConfig(mint=MintConfig(url=MINT_URL), metrics=MetricsConfig(enabled=False))


@pytest.fixture
def make_proofs() -> Callable[..., list[Proof]]:
    """Factory for unsigned proofs with random secrets (selection tests)."""

    def _make(amounts: list[int], keyset_id: str = KEYSET_ID) -> list[Proof]:
        return [
            Proof(keyset_id=keyset_id, amount=a, secret=secrets.token_hex(32), c=point_to_hex(GENERATOR))
            for a in amounts
        ]

    return _make


@pytest.fixture
def signed_proofs(fake_mint: FakeMint) -> Callable[..., list[Proof]]:
    """Factory for proofs carrying valid fake-mint signatures."""

    def _make(amounts: list[int], keyset_id: str = KEYSET_ID) -> list[Proof]:
        proofs = []
        for amount in amounts:
            secret = secrets.token_hex(32)
            k = fake_mint.privkeys[keyset_id][amount]
            c = point_to_hex(hash_to_curve(secret.encode("utf-8")) * k)
            proofs.append(Proof(keyset_id=keyset_id, amount=amount, secret=secret, c=c))
        return proofs

    return _make


@pytest.fixture
def engine(wallet_config: WalletConfig, fake_mint: FakeMint) -> WalletEngine:
    """Engine with random secrets and only the zero-fee keyset."""
    chain = KeyChain(unit="sat", keysets=[fake_mint.keyset(KEYSET_ID)])
    return WalletEngine(wallet_config, fake_mint, keychain=chain, rng=random.Random(7))


@pytest.fixture
def seeded_engine(wallet_config: WalletConfig, fake_mint: FakeMint) -> WalletEngine:
    """Engine with a seed (deterministic secrets by default)."""
    chain = KeyChain(unit="sat", keysets=[fake_mint.keyset(KEYSET_ID)])
    return WalletEngine(wallet_config, fake_mint, seed=SEED, keychain=chain, rng=random.Random(7))
