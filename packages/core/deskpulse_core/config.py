"""Persistent app settings schema and load/save helpers."""

from __future__ import annotations

import json
import os
import platform
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any


CONFIG_VERSION = 2


@dataclass
class IntervalsConfig:
    update_interval_ms: int = 1000
    gpu_ms: int = 1000
    media_ms: int = 1000
    weather_wake_s: float = 10.0
    weather_min_refresh_s: float = 600.0


@dataclass
class DisplayConfig:
    show_cpu: bool = True
    show_memory: bool = True
    show_gpu: bool = True
    show_cpu_temp: bool = True
    show_gpu_temp: bool = True
    show_network: bool = True
    show_media: bool = True
    show_notifications: bool = True
    show_weather: bool = True
    show_percentages: bool = True


@dataclass
class MediaConfig:
    enabled: bool = True
    base_url: str = "http://localhost:10767/api/v1/playback"
    api_token: str = ""
    timeout_s: float = 1.0


@dataclass
class NotificationsConfig:
    enabled: bool = True
    max_notifications: int = 5


@dataclass
class WeatherConfig:
    enabled: bool = True
    api_key: str = ""
    location: str = ""
    units: str = "metric"
    timeout_s: float = 5.0


@dataclass
class DiagnosticsConfig:
    keep_log_files: int = 7


@dataclass
class AppConfig:
    config_version: int = CONFIG_VERSION
    intervals: IntervalsConfig = field(default_factory=IntervalsConfig)
    display: DisplayConfig = field(default_factory=DisplayConfig)
    media: MediaConfig = field(default_factory=MediaConfig)
    notifications: NotificationsConfig = field(default_factory=NotificationsConfig)
    weather: WeatherConfig = field(default_factory=WeatherConfig)
    diagnostics: DiagnosticsConfig = field(default_factory=DiagnosticsConfig)


# Version 1 was a flat key/value file shared with the settings panel.
_LEGACY_KEYS: dict[str, tuple[str, str]] = {
    "show_cpu": ("display", "show_cpu"),
    "show_memory": ("display", "show_memory"),
    "show_gpu": ("display", "show_gpu"),
    "show_cpu_temp": ("display", "show_cpu_temp"),
    "show_gpu_temp": ("display", "show_gpu_temp"),
    "show_network": ("display", "show_network"),
    "show_weather": ("display", "show_weather"),
    "show_percentages": ("display", "show_percentages"),
    "update_interval_ms": ("intervals", "update_interval_ms"),
    "weather_api_key": ("weather", "api_key"),
    "weather_location": ("weather", "location"),
    "cider_api_token": ("media", "api_token"),
    "max_notifications": ("notifications", "max_notifications"),
}


def config_dir() -> Path:
    system = platform.system()
    if system == "Windows":
        base = Path(os.environ.get("APPDATA", Path.home() / "AppData" / "Roaming"))
        return base / "DeskPulse"
    if system == "Darwin":
        return Path.home() / "Library" / "Application Support" / "DeskPulse"
    base = Path(os.environ.get("XDG_CONFIG_HOME", Path.home() / ".config"))
    return base / "deskpulse"


def config_path() -> Path:
    return config_dir() / "config.json"


def _merge(dataclass_type, raw: dict[str, Any]):
    defaults = dataclass_type()  # type: ignore[misc]
    if not isinstance(raw, dict):
        return defaults
    for k, v in raw.items():
        if hasattr(defaults, k):
            setattr(defaults, k, v)
    return defaults


def _clamp(value: Any, low: float, high: float, default: float) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    return max(low, min(high, number))


def _normalize_intervals(cfg: AppConfig) -> None:
    iv = cfg.intervals
    defaults = IntervalsConfig()
    iv.update_interval_ms = int(_clamp(iv.update_interval_ms, 250, 10000, defaults.update_interval_ms))
    iv.gpu_ms = int(_clamp(iv.gpu_ms, 250, 10000, defaults.gpu_ms))
    iv.media_ms = int(_clamp(iv.media_ms, 250, 10000, defaults.media_ms))
    iv.weather_wake_s = _clamp(iv.weather_wake_s, 1.0, 300.0, defaults.weather_wake_s)
    # The provider's free tier refreshes every ten minutes; never go below that.
    iv.weather_min_refresh_s = _clamp(iv.weather_min_refresh_s, 600.0, 86400.0, defaults.weather_min_refresh_s)


def _normalize_sources(cfg: AppConfig) -> None:
    cfg.media.timeout_s = _clamp(cfg.media.timeout_s, 0.2, 5.0, 1.0)
    cfg.media.api_token = str(cfg.media.api_token or "")
    cfg.notifications.max_notifications = int(_clamp(cfg.notifications.max_notifications, 1, 50, 5))
    cfg.weather.timeout_s = _clamp(cfg.weather.timeout_s, 1.0, 30.0, 5.0)
    cfg.weather.api_key = str(cfg.weather.api_key or "")
    cfg.weather.location = str(cfg.weather.location or "")
    if cfg.weather.units not in ("metric", "imperial", "standard"):
        cfg.weather.units = "metric"


def _migrate(raw: dict[str, Any]) -> dict[str, Any]:
    version = int(raw.get("config_version", 1))
    data = dict(raw)

    if version < 2:
        for key, (section, name) in _LEGACY_KEYS.items():
            if key in data:
                block = dict(data.get(section, {}) or {})
                block.setdefault(name, data.pop(key))
                data[section] = block
        data["config_version"] = 2

    return data


def load_config(path: Path | None = None) -> AppConfig:
    path = path or config_path()
    if not path.exists():
        return AppConfig()

    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError):
        return AppConfig()
    if not isinstance(raw, dict):
        return AppConfig()

    data = _migrate(raw)
    cfg = AppConfig(
        config_version=CONFIG_VERSION,
        intervals=_merge(IntervalsConfig, data.get("intervals", {})),
        display=_merge(DisplayConfig, data.get("display", {})),
        media=_merge(MediaConfig, data.get("media", {})),
        notifications=_merge(NotificationsConfig, data.get("notifications", {})),
        weather=_merge(WeatherConfig, data.get("weather", {})),
        diagnostics=_merge(DiagnosticsConfig, data.get("diagnostics", {})),
    )

    _normalize_intervals(cfg)
    _normalize_sources(cfg)
    return cfg


def save_config(cfg: AppConfig, path: Path | None = None) -> Path:
    cfg.config_version = CONFIG_VERSION
    path = path or config_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(asdict(cfg), indent=2, sort_keys=True), encoding="utf-8")
    return path


class ConfigWatcher:
    """Reloads the config file when its modification time changes."""

    def __init__(self, path: Path | None = None) -> None:
        self.path = path or config_path()
        self._mtime = self._stat()

    def _stat(self) -> float | None:
        try:
            return self.path.stat().st_mtime
        except OSError:
            return None

    def poll(self) -> AppConfig | None:
        mtime = self._stat()
        if mtime == self._mtime:
            return None
        self._mtime = mtime
        return load_config(self.path)
