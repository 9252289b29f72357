"""Tests for the wallet notification channel."""

from __future__ import annotations

import logging
from unittest.mock import AsyncMock, MagicMock

from ecash_wallet.engine.counters import OperationCounters
from ecash_wallet.events import WalletEvents, notify

USED = OperationCounters(keyset_id="01aa", start=4, count=2)


class TestNotify:
    async def test_sync_listener(self) -> None:
        seen: list[OperationCounters] = []
        await notify(seen.append, USED, "counters_reserved")
        assert seen == [USED]

    async def test_async_listener(self) -> None:
        seen: list[OperationCounters] = []

        async def listener(counters: OperationCounters) -> None:
            seen.append(counters)

        await notify(listener, USED, "counters_reserved")
        assert seen == [USED]

    async def test_none_listener(self) -> None:
        await notify(None, USED, "counters_reserved")

    async def test_failing_listener_is_logged(self, caplog) -> None:
        def listener(counters: OperationCounters) -> None:
            raise RuntimeError("storage offline")

        with caplog.at_level(logging.ERROR, logger="ecash_wallet.events"):
            await notify(listener, USED, "counters_reserved")
        assert "Listener for counters_reserved failed" in caplog.text


class TestWalletEvents:
    async def test_mock_listeners_receive_blanks(self) -> None:
        events = WalletEvents()
        subscriber = AsyncMock()
        per_call = MagicMock(return_value=None)
        blanks = object()
        events.on_change_outputs_created(subscriber)

        await events.change_outputs_created(blanks, per_call)

        per_call.assert_called_once_with(blanks)
        subscriber.assert_awaited_once_with(blanks)

    async def test_per_call_and_subscribers(self) -> None:
        events = WalletEvents()
        order: list[str] = []
        events.on_counters_reserved(lambda c: order.append("subscriber"))

        await events.counters_reserved(USED, lambda c: order.append("per-call"))

        assert order == ["per-call", "subscriber"]

    async def test_unsubscribe(self) -> None:
        events = WalletEvents()
        seen: list[object] = []
        unsubscribe = events.on_change_outputs_created(seen.append)
        unsubscribe()
        unsubscribe()

        await events.change_outputs_created(object())
        assert seen == []

    async def test_failing_subscriber_does_not_block_others(self) -> None:
        events = WalletEvents()
        seen: list[OperationCounters] = []

        def broken(counters: OperationCounters) -> None:
            raise ValueError("nope")

        events.on_counters_reserved(broken)
        events.on_counters_reserved(seen.append)

        await events.counters_reserved(USED)
        assert seen == [USED]
