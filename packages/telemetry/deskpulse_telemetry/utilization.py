"""Processor and memory utilization sampling."""

from __future__ import annotations

import logging

import psutil

from .models import UtilizationMetrics
from .shared import SharedValue


_LOG = logging.getLogger("deskpulse.utilization")


def usage_percent(used: float, total: float) -> float:
    if total <= 0:
        return 0.0
    return used / total * 100.0


class UtilizationCollector:
    name = "utilization"

    def __init__(self, interval_s: float = 1.0) -> None:
        self.interval_s = interval_s
        self.metrics: SharedValue[UtilizationMetrics] = SharedValue(UtilizationMetrics())
        # Prime the non-blocking CPU counter; the first real reading comes one tick later.
        try:
            psutil.cpu_percent(interval=None)
        except (psutil.Error, OSError):
            pass

    def poll(self) -> UtilizationMetrics | None:
        try:
            cpu = float(psutil.cpu_percent(interval=None))
            vm = psutil.virtual_memory()
        except (psutil.Error, OSError) as exc:
            _LOG.debug("utilization sample failed: %s", exc, extra={"event": "utilization_failed"})
            return None

        metrics = UtilizationMetrics(
            cpu_percent=cpu,
            memory_percent=usage_percent(vm.used, vm.total),
            memory_used=int(vm.used),
            memory_total=int(vm.total),
        )
        self.metrics.set(metrics)
        return metrics

    def current(self) -> UtilizationMetrics:
        return self.metrics.get()
