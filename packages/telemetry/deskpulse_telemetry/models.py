"""Typed telemetry models."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


class GpuVendor(str, Enum):
    NVIDIA = "nvidia"
    AMD = "amd"
    INTEL = "intel"
    NONE = "none"


class PlaybackStatus(str, Enum):
    PLAYING = "Playing"
    PAUSED = "Paused"
    STOPPED = "Stopped"


@dataclass(frozen=True)
class UtilizationMetrics:
    cpu_percent: float = 0.0
    memory_percent: float = 0.0
    memory_used: int = 0
    memory_total: int = 0


@dataclass(frozen=True)
class SensorReading:
    label: str
    value: float


@dataclass(frozen=True)
class TemperatureMetrics:
    cpu_c: float = 0.0
    gpu_c: float = 0.0


@dataclass(frozen=True)
class NetworkMetrics:
    rx_bytes_s: float = 0.0
    tx_bytes_s: float = 0.0


@dataclass(frozen=True)
class MediaInfo:
    player_name: str = ""
    title: str = ""
    artist: str = ""
    album: str = ""
    art_url: str | None = None
    status: PlaybackStatus = PlaybackStatus.STOPPED
    position_ms: int = 0
    duration_ms: int = 0
    can_play: bool = False
    can_pause: bool = False
    can_go_next: bool = False
    can_go_previous: bool = False
    can_seek: bool = False

    def is_active(self) -> bool:
        return bool(self.player_name) and bool(self.title)

    def position_str(self) -> str:
        return _mmss(self.position_ms)

    def duration_str(self) -> str:
        return _mmss(self.duration_ms)

    def progress(self) -> float:
        if self.duration_ms > 0:
            return self.position_ms / self.duration_ms
        return 0.0


def _mmss(millis: int) -> str:
    secs = millis // 1000
    return f"{secs // 60}:{secs % 60:02d}"


@dataclass(frozen=True)
class Notification:
    app_name: str
    summary: str
    body: str
    timestamp: int


@dataclass(frozen=True)
class WeatherData:
    temperature: float = 0.0
    feels_like: float = 0.0
    temp_min: float = 0.0
    temp_max: float = 0.0
    humidity: int = 0
    description: str = "N/A"
    icon: str = "01d"
    location: str = "Unknown"


@dataclass(frozen=True)
class Snapshot:
    utilization: UtilizationMetrics = field(default_factory=UtilizationMetrics)
    gpu_percent: float = 0.0
    gpu_vendor: GpuVendor = GpuVendor.NONE
    temperatures: TemperatureMetrics = field(default_factory=TemperatureMetrics)
    network: NetworkMetrics = field(default_factory=NetworkMetrics)
    media: MediaInfo = field(default_factory=MediaInfo)
    notifications: tuple[Notification, ...] = ()
    weather: WeatherData | None = None
    taken_at: datetime | None = None
