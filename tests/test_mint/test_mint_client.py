"""Tests for the mint HTTP client: uses httpx mock transport."""

from __future__ import annotations

import json

import httpx
import pytest

from ecash_wallet.config.settings import MintConfig
from ecash_wallet.errors.mint_errors import MintError
from ecash_wallet.mint.client import MintClient, MintTransport
from ecash_wallet.models.payloads import MeltPayload, MintPayload, SwapPayload
from ecash_wallet.models.proof import BlindedMessage, Proof, ProofState
from ecash_wallet.models.quotes import MeltQuoteState, MintQuoteState

B_ = "02" + "11" * 32
C_ = "03" + "22" * 32

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _mint_config(**overrides) -> MintConfig:
    defaults = {"url": "https://mint.test.com/", "timeout": 5.0, "auth_token": ""}
    defaults.update(overrides)
    return MintConfig(**defaults)


async def _connected(handler, **overrides) -> MintClient:
    client = MintClient(_mint_config(**overrides), transport=httpx.MockTransport(handler))
    await client.connect()
    return client


def _signature(amount: int = 2) -> dict:
    return {"amount": amount, "id": "01aa", "C_": C_}


# ---------------------------------------------------------------------------
# Connection lifecycle
# ---------------------------------------------------------------------------


class TestMintClientLifecycle:
    async def test_not_connected_by_default(self):
        assert MintClient(_mint_config()).is_connected is False

    async def test_connect_and_close(self):
        client = MintClient(_mint_config())
        await client.connect()
        assert client.is_connected is True
        await client.close()
        assert client.is_connected is False

    async def test_close_idempotent(self):
        client = MintClient(_mint_config())
        await client.close()
        assert client.is_connected is False

    async def test_not_connected_raises(self):
        client = MintClient(_mint_config())
        with pytest.raises(MintError, match="not connected"):
            await client.get_keysets()

    def test_url_strips_trailing_slash(self):
        assert MintClient(_mint_config()).url == "https://mint.test.com"

    def test_satisfies_transport_protocol(self):
        assert isinstance(MintClient(_mint_config()), MintTransport)

    async def test_auth_header(self):
        def handler(request: httpx.Request):
            assert request.headers["Clear-auth"] == "secret-token"
            return httpx.Response(200, json={"keysets": []})

        client = await _connected(handler, auth_token="secret-token")
        assert await client.get_keysets() == []
        await client.close()


# ---------------------------------------------------------------------------
# Keys
# ---------------------------------------------------------------------------


class TestKeys:
    async def test_get_keysets(self):
        def handler(request: httpx.Request):
            assert request.method == "GET"
            assert request.url.path == "/v1/keysets"
            return httpx.Response(
                200,
                json={
                    "keysets": [
                        {"id": "01aa", "unit": "sat", "active": True, "input_fee_ppk": 100},
                        {"id": "00bb", "unit": "usd", "active": False},
                    ]
                },
            )

        client = await _connected(handler)
        keysets = await client.get_keysets()
        assert [k.id for k in keysets] == ["01aa", "00bb"]
        assert keysets[0].input_fee_ppk == 100
        assert keysets[1].active is False
        assert not keysets[0].has_keys

    async def test_get_keys_for_keyset(self):
        def handler(request: httpx.Request):
            assert request.url.path == "/v1/keys/01aa"
            return httpx.Response(
                200,
                json={"keysets": [{"id": "01aa", "unit": "sat", "keys": {"1": B_, "2": C_}}]},
            )

        client = await _connected(handler)
        (keyset,) = await client.get_keys("01aa")
        assert keyset.keys == {1: B_, 2: C_}

    async def test_get_all_keys(self):
        def handler(request: httpx.Request):
            assert request.url.path == "/v1/keys"
            return httpx.Response(200, json={"keysets": []})

        client = await _connected(handler)
        assert await client.get_keys() == []


# ---------------------------------------------------------------------------
# Swap, mint, melt
# ---------------------------------------------------------------------------


class TestSwapMintMelt:
    async def test_swap(self):
        def handler(request: httpx.Request):
            assert request.method == "POST"
            assert request.url.path == "/v1/swap"
            body = json.loads(request.content)
            assert body["inputs"][0]["C"] == C_
            assert body["outputs"] == [{"amount": 2, "id": "01aa", "B_": B_}]
            return httpx.Response(200, json={"signatures": [_signature()]})

        client = await _connected(handler)
        payload = SwapPayload(
            inputs=[Proof(keyset_id="01aa", amount=2, secret="s", c=C_)],
            outputs=[BlindedMessage(amount=2, keyset_id="01aa", b_=B_)],
        )
        (signature,) = await client.swap(payload)
        assert signature.c_ == C_
        assert signature.amount == 2

    async def test_mint(self):
        def handler(request: httpx.Request):
            assert request.url.path == "/v1/mint/bolt11"
            assert json.loads(request.content)["quote"] == "q1"
            return httpx.Response(200, json={"signatures": [_signature(1), _signature(4)]})

        client = await _connected(handler)
        signatures = await client.mint(MintPayload(quote="q1"))
        assert [s.amount for s in signatures] == [1, 4]

    async def test_melt(self):
        def handler(request: httpx.Request):
            assert request.url.path == "/v1/melt/bolt11"
            return httpx.Response(
                200,
                json={
                    "quote": "mq1",
                    "amount": 100,
                    "fee_reserve": 2,
                    "state": "PAID",
                    "payment_preimage": "ab" * 32,
                    "change": [_signature(1)],
                },
            )

        client = await _connected(handler)
        quote = await client.melt(MeltPayload(quote="mq1"))
        assert quote.state == MeltQuoteState.PAID
        assert quote.fee_reserve == 2
        assert len(quote.change) == 1

    async def test_create_mint_quote(self):
        def handler(request: httpx.Request):
            assert request.url.path == "/v1/mint/quote/bolt11"
            assert json.loads(request.content) == {"amount": 21, "unit": "sat", "description": "coffee"}
            return httpx.Response(
                200, json={"quote": "q1", "request": "lnbc210n1...", "state": "UNPAID", "expiry": 1700000000}
            )

        client = await _connected(handler)
        quote = await client.create_mint_quote(21, "sat", "coffee")
        assert quote.quote == "q1"
        assert quote.state == MintQuoteState.UNPAID
        assert quote.expiry == 1700000000

    async def test_create_melt_quote_keeps_request(self):
        def handler(request: httpx.Request):
            assert request.url.path == "/v1/melt/quote/bolt11"
            return httpx.Response(200, json={"quote": "mq1", "amount": 100, "fee_reserve": 3})

        client = await _connected(handler)
        quote = await client.create_melt_quote("lnbc1...", "sat")
        assert quote.request == "lnbc1..."
        assert quote.fee_reserve == 3


# ---------------------------------------------------------------------------
# Restore and state
# ---------------------------------------------------------------------------


class TestRestoreAndState:
    async def test_restore(self):
        def handler(request: httpx.Request):
            assert request.url.path == "/v1/restore"
            outputs = json.loads(request.content)["outputs"]
            return httpx.Response(200, json={"outputs": outputs[:1], "signatures": [_signature()]})

        client = await _connected(handler)
        outputs = [
            BlindedMessage(amount=0, keyset_id="01aa", b_=B_),
            BlindedMessage(amount=0, keyset_id="01aa", b_=C_),
        ]
        known, signatures = await client.restore(outputs)
        assert [o.b_ for o in known] == [B_]
        assert len(signatures) == 1

    async def test_restore_legacy_promises(self):
        def handler(request: httpx.Request):
            outputs = json.loads(request.content)["outputs"]
            return httpx.Response(200, json={"outputs": outputs, "promises": [_signature()]})

        client = await _connected(handler)
        _, signatures = await client.restore([BlindedMessage(amount=0, keyset_id="01aa", b_=B_)])
        assert len(signatures) == 1

    async def test_check_state(self):
        def handler(request: httpx.Request):
            assert request.url.path == "/v1/checkstate"
            ys = json.loads(request.content)["Ys"]
            return httpx.Response(200, json={"states": [{"Y": ys[0], "state": "SPENT", "witness": None}]})

        client = await _connected(handler)
        (state,) = await client.check_state([B_])
        assert state.y == B_
        assert state.state == ProofState.SPENT


# ---------------------------------------------------------------------------
# Error mapping
# ---------------------------------------------------------------------------


class TestErrors:
    async def test_api_error_with_code(self):
        def handler(request: httpx.Request):
            return httpx.Response(400, json={"detail": "Token already spent.", "code": 11001})

        client = await _connected(handler)
        with pytest.raises(MintError, match=r"swap failed \(400\): Token already spent") as exc_info:
            await client.swap(SwapPayload())
        assert exc_info.value.status_code == 400
        assert exc_info.value.detail_code == 11001

    async def test_non_json_error(self):
        def handler(request: httpx.Request):
            return httpx.Response(502, text="Bad Gateway")

        client = await _connected(handler)
        with pytest.raises(MintError, match="Bad Gateway") as exc_info:
            await client.get_keysets()
        assert exc_info.value.status_code == 502
        assert exc_info.value.detail_code is None

    async def test_network_error(self):
        def handler(request: httpx.Request):
            raise httpx.ConnectError("Connection refused")

        client = await _connected(handler)
        with pytest.raises(MintError, match="Mint get_keys failed: Connection refused") as exc_info:
            await client.get_keys()
        assert exc_info.value.status_code == 0
        assert isinstance(exc_info.value.__cause__, httpx.ConnectError)
