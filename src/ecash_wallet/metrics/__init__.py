"""Metrics: Prometheus metrics collection."""

from __future__ import annotations

from ecash_wallet.metrics.collector import MetricsCollector, WalletMetrics

__all__ = ["MetricsCollector", "WalletMetrics"]
