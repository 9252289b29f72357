"""Metrics collector: Prometheus counters and histograms for wallet operations.

- ``ecash_selection_duration_seconds`` histogram (labels: mode)
- ``ecash_selection_timeouts_total`` counter (labels: mode)
- ``ecash_operation_duration_seconds`` histogram (labels: operation)
- ``ecash_counters_reserved_total`` counter (labels: keyset_id)
"""

from __future__ import annotations

import time
from contextlib import contextmanager
from typing import TYPE_CHECKING

from prometheus_client import CollectorRegistry, Counter, Histogram

if TYPE_CHECKING:
    from collections.abc import Iterator

_PREFIX = "ecash"


class MetricsCollector:
    """Low-level Prometheus collector that owns the registry.

    Use :class:`WalletMetrics` for the high-level tracking interface.
    """

    def __init__(self, registry: CollectorRegistry | None = None) -> None:
        self._registry = registry or CollectorRegistry()

    @property
    def registry(self) -> CollectorRegistry:
        """Return the underlying Prometheus registry."""
        return self._registry

    def histogram(self, name: str, doc: str, labels: tuple[str, ...] = ()) -> Histogram:
        """Register and return a Histogram."""
        return Histogram(name, doc, labels, registry=self._registry)

    def counter(self, name: str, doc: str, labels: tuple[str, ...] = ()) -> Counter:
        """Register and return a Counter."""
        return Counter(name, doc, labels, registry=self._registry)


class WalletMetrics:
    """High-level wallet metrics.

    All histograms track durations in seconds.
    """

    def __init__(self, collector: MetricsCollector | None = None) -> None:
        self._collector = collector or MetricsCollector()

        self._selection = self._collector.histogram(
            f"{_PREFIX}_selection_duration_seconds",
            "Duration of proof selection runs",
            ("mode",),
        )
        self._selection_timeouts = self._collector.counter(
            f"{_PREFIX}_selection_timeouts",
            "Proof selection runs that hit the time budget",
            ("mode",),
        )
        self._operation = self._collector.histogram(
            f"{_PREFIX}_operation_duration_seconds",
            "Duration of mint round trips by wallet operation",
            ("operation",),
        )
        self._counters_reserved = self._collector.counter(
            f"{_PREFIX}_counters_reserved",
            "Deterministic counter indices reserved",
            ("keyset_id",),
        )

    @property
    def registry(self) -> CollectorRegistry:
        """Return the underlying Prometheus registry."""
        return self._collector.registry

    # -- Event recorders --

    def record_selection_timeout(self, *, exact_match: bool) -> None:
        """Count a selection run that exceeded its time budget."""
        self._selection_timeouts.labels(mode=_mode(exact_match)).inc()

    def record_counters_reserved(self, keyset_id: str, count: int) -> None:
        """Count reserved counter indices for *keyset_id*."""
        self._counters_reserved.labels(keyset_id=keyset_id).inc(count)

    # -- Operation trackers (context managers) --

    @contextmanager
    def track_selection(self, *, exact_match: bool) -> Iterator[None]:
        """Track the duration of a proof selection run."""
        start = time.monotonic()
        try:
            yield
        finally:
            self._selection.labels(mode=_mode(exact_match)).observe(time.monotonic() - start)

    @contextmanager
    def track_operation(self, operation: str) -> Iterator[None]:
        """Track the duration of a mint round trip (swap, mint, melt, restore)."""
        start = time.monotonic()
        try:
            yield
        finally:
            self._operation.labels(operation=operation).observe(time.monotonic() - start)


def _mode(exact_match: bool) -> str:
    return "exact" if exact_match else "close"
