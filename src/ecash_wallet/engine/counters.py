"""Counter sources: atomic per-keyset allocation of deterministic secret indices.

Deterministic secrets are derived from ``(seed, keyset_id, counter)``; two
outputs derived from the same index are linkable and may collide, so
reservations against one keyset must never overlap. Indices may be skipped
(a failed mint call after a reservation is not rolled back) but never reused.

Capabilities are split into protocols so callers depend on what they need:

- ``CounterSource``: ``reserve`` only
- ``MutableCounterSource``: adds ``advance_to_at_least`` and ``set_next``
- ``InspectableCounterSource``: adds ``snapshot``
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Protocol, runtime_checkable

from ecash_wallet.errors.definitions import (
    ErrCounterNoSetNext,
    ErrCounterNoSnapshot,
    ErrCounterNotMutable,
    ErrNegativeCounter,
    ErrNegativeReservation,
)

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Value types
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CounterRange:
    """A reserved block of indices ``[start, start + count - 1]``."""

    start: int
    count: int

    @property
    def next(self) -> int:
        """The first index after this range."""
        return self.start + self.count


@dataclass(frozen=True)
class OperationCounters:
    """Counters consumed by one wallet operation, reported for persistence."""

    keyset_id: str
    start: int
    count: int

    @property
    def next(self) -> int:
        """The cursor value after this operation."""
        return self.start + self.count

    @classmethod
    def from_range(cls, keyset_id: str, counter_range: CounterRange) -> OperationCounters:
        """Build from a reserved range."""
        return cls(keyset_id=keyset_id, start=counter_range.start, count=counter_range.count)


# ---------------------------------------------------------------------------
# Capability protocols
# ---------------------------------------------------------------------------


@runtime_checkable
class CounterSource(Protocol):
    """Atomic allocator of contiguous index ranges per keyset."""

    async def reserve(self, keyset_id: str, n: int) -> CounterRange: ...


@runtime_checkable
class MutableCounterSource(CounterSource, Protocol):
    """Counter source whose cursor can be moved explicitly."""

    async def advance_to_at_least(self, keyset_id: str, min_next: int) -> None: ...

    async def set_next(self, keyset_id: str, next_value: int) -> None: ...


@runtime_checkable
class InspectableCounterSource(CounterSource, Protocol):
    """Counter source that can report every cursor it holds."""

    async def snapshot(self) -> dict[str, int]: ...


# ---------------------------------------------------------------------------
# In-memory implementation
# ---------------------------------------------------------------------------


class EphemeralCounterSource:
    """In-memory counter source with one FIFO lock per keyset id.

    ``asyncio.Lock`` wakes waiters in arrival order, so reservations against
    one keyset are served in the order they were requested. Different keyset
    ids never contend.

    Usage::

        source = EphemeralCounterSource({"01abcd": 42})
        block = await source.reserve("01abcd", 3)  # CounterRange(42, 3)
    """

    def __init__(self, initial: dict[str, int] | None = None) -> None:
        self._next: dict[str, int] = {}
        for keyset_id, value in (initial or {}).items():
            if value < 0:
                raise ErrNegativeCounter
            self._next[keyset_id] = value
        self._locks: dict[str, asyncio.Lock] = {}

    def _lock_for(self, keyset_id: str) -> asyncio.Lock:
        lock = self._locks.get(keyset_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[keyset_id] = lock
        return lock

    async def reserve(self, keyset_id: str, n: int) -> CounterRange:
        """Reserve *n* consecutive indices for *keyset_id*.

        ``n == 0`` is a peek: it returns the current cursor without moving it.

        Raises:
            InvalidConfigurationError: If *n* is negative.
        """
        if n < 0:
            raise ErrNegativeReservation
        async with self._lock_for(keyset_id):
            start = self._next.get(keyset_id, 0)
            if n:
                self._next[keyset_id] = start + n
                logger.debug("Reserved counters %d..%d for keyset %s", start, start + n - 1, keyset_id)
            return CounterRange(start=start, count=n)

    async def advance_to_at_least(self, keyset_id: str, min_next: int) -> None:
        """Move the cursor forward to *min_next*; never moves it backwards."""
        async with self._lock_for(keyset_id):
            current = self._next.get(keyset_id, 0)
            if min_next > current:
                self._next[keyset_id] = min_next

    async def set_next(self, keyset_id: str, next_value: int) -> None:
        """Hard-set the cursor (migrations and tests).

        Raises:
            InvalidConfigurationError: If *next_value* is negative.
        """
        if next_value < 0:
            raise ErrNegativeCounter
        async with self._lock_for(keyset_id):
            self._next[keyset_id] = next_value

    async def snapshot(self) -> dict[str, int]:
        """Copy of every cursor, suitable for persistence."""
        return dict(self._next)


# ---------------------------------------------------------------------------
# Facade used by the wallet
# ---------------------------------------------------------------------------


class WalletCounters:
    """Convenience layer over a counter source.

    Optional capabilities are detected per method and raise
    ``CounterCapabilityError`` when the underlying source lacks them instead
    of silently doing nothing.
    """

    def __init__(self, source: CounterSource) -> None:
        self._source = source

    @property
    def source(self) -> CounterSource:
        """The wrapped counter source."""
        return self._source

    async def peek_next(self, keyset_id: str) -> int:
        """Next index that would be handed out for *keyset_id*."""
        block = await self._source.reserve(keyset_id, 0)
        return block.start

    async def advance(self, keyset_id: str, min_next: int) -> None:
        """Bump the cursor to at least *min_next*.

        Raises:
            CounterCapabilityError: If the source is not mutable.
        """
        advancer = getattr(self._source, "advance_to_at_least", None)
        if advancer is None:
            raise ErrCounterNotMutable
        await advancer(keyset_id, min_next)

    async def set_next(self, keyset_id: str, next_value: int) -> None:
        """Hard-set the cursor.

        Raises:
            CounterCapabilityError: If the source does not support ``set_next``.
        """
        setter = getattr(self._source, "set_next", None)
        if setter is None:
            raise ErrCounterNoSetNext
        await setter(keyset_id, next_value)

    async def snapshot(self) -> dict[str, int]:
        """All cursors.

        Raises:
            CounterCapabilityError: If the source is not inspectable.
        """
        snapshot = getattr(self._source, "snapshot", None)
        if snapshot is None:
            raise ErrCounterNoSnapshot
        return await snapshot()
