"""Typed notification channel for wallet side effects.

Two events leave the core while an operation is running:

- ``counters_reserved``: deterministic indices were reserved; persist the
  ``OperationCounters`` to allow recovery.
- ``change_outputs_created``: melt blanks were built; keep the
  ``MeltBlanks`` to complete a pending melt later.

Listeners are best effort. A failing listener is logged and never affects
the operation that emitted the event.
"""

from __future__ import annotations

import inspect
import logging
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, TypeVar

if TYPE_CHECKING:
    from ecash_wallet.engine.counters import OperationCounters
    from ecash_wallet.models.payloads import MeltBlanks

    CountersReservedListener = Callable[[OperationCounters], Awaitable[None] | None]
    ChangeOutputsListener = Callable[[MeltBlanks], Awaitable[None] | None]

logger = logging.getLogger(__name__)

_T = TypeVar("_T")

Listener = Callable[[_T], Awaitable[None] | None]


async def notify(listener: Listener[_T] | None, payload: _T, event: str) -> None:
    """Call *listener* with *payload*, logging instead of raising on failure."""
    if listener is None:
        return
    try:
        result = listener(payload)
        if inspect.isawaitable(result):
            await result
    except Exception:
        logger.exception("Listener for %s failed", event)


class WalletEvents:
    """Registry of wallet-level listeners.

    Usage::

        events = WalletEvents()
        unsubscribe = events.on_counters_reserved(store.save_counters)
        ...
        unsubscribe()
    """

    def __init__(self) -> None:
        self._counters_reserved: list[CountersReservedListener] = []
        self._change_outputs_created: list[ChangeOutputsListener] = []

    def on_counters_reserved(self, listener: CountersReservedListener) -> Callable[[], None]:
        """Subscribe to counter reservations; returns an unsubscribe function."""
        self._counters_reserved.append(listener)
        return lambda: self._remove(self._counters_reserved, listener)

    def on_change_outputs_created(self, listener: ChangeOutputsListener) -> Callable[[], None]:
        """Subscribe to melt blank creation; returns an unsubscribe function."""
        self._change_outputs_created.append(listener)
        return lambda: self._remove(self._change_outputs_created, listener)

    async def counters_reserved(
        self,
        counters: OperationCounters,
        listener: CountersReservedListener | None = None,
    ) -> None:
        """Emit a reservation to the per-call *listener* and all subscribers."""
        await notify(listener, counters, "counters_reserved")
        for subscriber in list(self._counters_reserved):
            await notify(subscriber, counters, "counters_reserved")

    async def change_outputs_created(
        self,
        blanks: MeltBlanks,
        listener: ChangeOutputsListener | None = None,
    ) -> None:
        """Emit melt blanks to the per-call *listener* and all subscribers."""
        await notify(listener, blanks, "change_outputs_created")
        for subscriber in list(self._change_outputs_created):
            await notify(subscriber, blanks, "change_outputs_created")

    @staticmethod
    def _remove(listeners: list, listener: object) -> None:
        if listener in listeners:
            listeners.remove(listener)
