"""Aggregate network throughput across every interface."""

from __future__ import annotations

import logging
import time
from typing import Callable

import psutil

from .models import NetworkMetrics
from .rate import RateSampler
from .shared import SharedValue


_LOG = logging.getLogger("deskpulse.network")


def total_counters() -> tuple[int, int] | None:
    try:
        per_nic = psutil.net_io_counters(pernic=True)
    except (psutil.Error, OSError) as exc:
        _LOG.debug("net counters unavailable: %s", exc)
        return None
    rx = sum(c.bytes_recv for c in per_nic.values())
    tx = sum(c.bytes_sent for c in per_nic.values())
    return rx, tx


class NetworkCollector:
    name = "network"

    def __init__(self, interval_s: float = 1.0, clock: Callable[[], float] = time.monotonic) -> None:
        self.interval_s = interval_s
        self._clock = clock
        self._rx = RateSampler()
        self._tx = RateSampler()
        self._last_tick = clock()
        self.metrics: SharedValue[NetworkMetrics] = SharedValue(NetworkMetrics())

    def poll(self) -> NetworkMetrics | None:
        now = self._clock()
        counters = total_counters()
        if counters is None:
            # Baselines and tick stay paired; the next good read spans the gap.
            return None
        rx, tx = counters
        elapsed = now - self._last_tick
        self._last_tick = now

        metrics = NetworkMetrics(
            rx_bytes_s=self._rx.sample(rx, elapsed),
            tx_bytes_s=self._tx.sample(tx, elapsed),
        )
        self.metrics.set(metrics)
        return metrics

    def current(self) -> NetworkMetrics:
        return self.metrics.get()
