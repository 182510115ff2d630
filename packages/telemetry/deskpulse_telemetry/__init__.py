"""Background telemetry collectors for DeskPulse."""

from .gpu import GpuCollector, detect_gpu_vendor
from .media import MediaCollector
from .models import (
    GpuVendor,
    MediaInfo,
    NetworkMetrics,
    Notification,
    PlaybackStatus,
    SensorReading,
    Snapshot,
    TemperatureMetrics,
    UtilizationMetrics,
    WeatherData,
)
from .network import NetworkCollector
from .notifications import NotificationListener, NotificationStore, NotifyParser
from .rate import RateSampler
from .shared import SharedValue
from .temperature import TemperatureCollector
from .utilization import UtilizationCollector
from .weather import WeatherCollector, WeatherError, fetch_weather

__all__ = [
    "GpuCollector",
    "GpuVendor",
    "MediaCollector",
    "MediaInfo",
    "NetworkCollector",
    "NetworkMetrics",
    "Notification",
    "NotificationListener",
    "NotificationStore",
    "NotifyParser",
    "PlaybackStatus",
    "RateSampler",
    "SensorReading",
    "SharedValue",
    "Snapshot",
    "TemperatureCollector",
    "TemperatureMetrics",
    "UtilizationCollector",
    "UtilizationMetrics",
    "WeatherCollector",
    "WeatherData",
    "WeatherError",
    "detect_gpu_vendor",
    "fetch_weather",
]
