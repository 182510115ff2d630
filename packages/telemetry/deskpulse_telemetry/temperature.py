"""Hardware sensor enumeration and CPU/GPU temperature classification."""

from __future__ import annotations

import logging
from typing import Iterable

import psutil

from .models import SensorReading, TemperatureMetrics
from .shared import SharedValue


_LOG = logging.getLogger("deskpulse.temperature")

CPU_LABEL_HINTS = ("cpu", "package", "core", "tctl", "tdie")
GPU_LABEL_HINTS = ("gpu", "nvidia", "amd", "radeon", "edge")


def read_sensors() -> list[SensorReading]:
    """Flatten ``psutil.sensors_temperatures()`` into ``"<chip> <label>"`` readings."""
    sensors = getattr(psutil, "sensors_temperatures", None)
    if sensors is None:
        return []
    try:
        temps = sensors()
    except (psutil.Error, OSError) as exc:
        _LOG.debug("sensor enumeration failed: %s", exc)
        return []

    readings: list[SensorReading] = []
    for chip, entries in (temps or {}).items():
        for entry in entries:
            if entry.current is None:
                continue
            label = f"{chip} {entry.label}".strip()
            readings.append(SensorReading(label=label, value=float(entry.current)))
    return readings


def first_match(readings: Iterable[SensorReading], hints: tuple[str, ...]) -> float:
    for reading in readings:
        label = reading.label.lower()
        if any(hint in label for hint in hints):
            return reading.value
    return 0.0


def classify(readings: list[SensorReading]) -> TemperatureMetrics:
    return TemperatureMetrics(
        cpu_c=first_match(readings, CPU_LABEL_HINTS),
        gpu_c=first_match(readings, GPU_LABEL_HINTS),
    )


class TemperatureCollector:
    name = "temperature"

    def __init__(self, interval_s: float = 1.0) -> None:
        self.interval_s = interval_s
        self.metrics: SharedValue[TemperatureMetrics] = SharedValue(TemperatureMetrics())

    def poll(self) -> TemperatureMetrics:
        metrics = classify(read_sensors())
        self.metrics.set(metrics)
        return metrics

    def current(self) -> TemperatureMetrics:
        return self.metrics.get()
