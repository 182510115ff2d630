"""Collector runtime: one cancellable thread per collector and snapshot reads."""

from __future__ import annotations

import threading
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Any, Callable

from deskpulse_telemetry import (
    GpuCollector,
    MediaCollector,
    MediaInfo,
    NetworkCollector,
    NetworkMetrics,
    Notification,
    NotificationListener,
    NotificationStore,
    Snapshot,
    TemperatureCollector,
    TemperatureMetrics,
    UtilizationCollector,
    UtilizationMetrics,
    WeatherCollector,
    WeatherData,
)

from .config import AppConfig
from .logging_setup import get_logger


@dataclass
class TaskStatus:
    name: str
    interval_s: float
    running: bool = False
    ticks: int = 0
    errors: int = 0
    last_error: str | None = None


class PollerTask:
    """Runs ``step`` every ``interval_s`` seconds until stopped.

    A step that raises is logged and counted; the loop keeps going so one broken
    source never takes its thread down.
    """

    def __init__(
        self,
        name: str,
        step: Callable[[], Any],
        interval_s: float,
        on_event: Callable[..., None] | None = None,
    ) -> None:
        self.name = name
        self.step = step
        self.interval_s = interval_s
        self.status = TaskStatus(name=name, interval_s=interval_s)
        self._on_event = on_event
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None
        self._logger = get_logger(name)

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name=f"deskpulse-{self.name}", daemon=True)
        self.status.running = True
        self._thread.start()

    def _emit(self, event: str, **fields: Any) -> None:
        if self._on_event is not None:
            self._on_event(event, task=self.name, **fields)

    def _run(self) -> None:
        self._emit("task_started", interval_s=self.interval_s)
        while not self._stop.is_set():
            try:
                self.step()
                self.status.ticks += 1
            except Exception as exc:
                self.status.errors += 1
                self.status.last_error = str(exc)
                self._logger.exception("collector step failed", extra={"event": "collector_error", "collector": self.name})
                self._emit("task_error", error=str(exc))
            self._stop.wait(self.interval_s)
        self.status.running = False
        self._emit("task_stopped", ticks=self.status.ticks)

    def stop(self) -> None:
        self._stop.set()

    def join(self, timeout: float | None = None) -> None:
        if self._thread is not None:
            self._thread.join(timeout=timeout)
            if not self._thread.is_alive():
                self._thread = None

    @property
    def alive(self) -> bool:
        return self._thread is not None and self._thread.is_alive()


class CollectorRuntime:
    """Owns the collectors, their threads and the read side of the snapshot."""

    def __init__(
        self,
        cfg: AppConfig | None = None,
        *,
        utilization: UtilizationCollector | None = None,
        gpu: GpuCollector | None = None,
        temperature: TemperatureCollector | None = None,
        network: NetworkCollector | None = None,
        media: MediaCollector | None = None,
        notifications: NotificationListener | None = None,
        weather: WeatherCollector | None = None,
    ) -> None:
        self.config = cfg or AppConfig()
        tick_s = self.config.intervals.update_interval_ms / 1000.0

        self.utilization = utilization or UtilizationCollector(interval_s=tick_s)
        self.gpu = gpu or GpuCollector(interval_s=self.config.intervals.gpu_ms / 1000.0)
        self.temperature = temperature or TemperatureCollector(interval_s=tick_s)
        self.network = network or NetworkCollector(interval_s=tick_s)

        self.media = media
        if self.media is None and self.config.media.enabled:
            self.media = MediaCollector(
                api_token=self.config.media.api_token,
                base_url=self.config.media.base_url,
                interval_s=self.config.intervals.media_ms / 1000.0,
                timeout_s=self.config.media.timeout_s,
            )

        self.notifications = notifications
        if self.notifications is None and self.config.notifications.enabled:
            self.notifications = NotificationListener(
                store=NotificationStore(self.config.notifications.max_notifications),
            )

        self.weather = weather
        if self.weather is None and self.config.weather.enabled:
            self.weather = WeatherCollector(
                api_key=self.config.weather.api_key,
                location=self.config.weather.location,
                units=self.config.weather.units,
                interval_s=self.config.intervals.weather_wake_s,
                min_refresh_s=self.config.intervals.weather_min_refresh_s,
                timeout_s=self.config.weather.timeout_s,
            )

        self._tasks: list[PollerTask] = []
        self._events: list[dict[str, Any]] = []
        self._events_lock = threading.Lock()
        self._started = False
        self._logger = get_logger("runtime")

    # lifecycle

    def _log_event(self, event: str, **fields: Any) -> None:
        row = {"ts_utc": datetime.now(timezone.utc).isoformat(), "event": event}
        row.update(fields)
        with self._events_lock:
            self._events.append(row)
            if len(self._events) > 1000:
                self._events = self._events[-1000:]

    def recent_events(self, limit: int = 200) -> list[dict[str, Any]]:
        with self._events_lock:
            return list(self._events[-limit:])

    def _build_tasks(self) -> list[PollerTask]:
        collectors: list[Any] = [self.utilization, self.temperature, self.network]
        if self.gpu.enabled:
            collectors.append(self.gpu)
        if self.media is not None:
            collectors.append(self.media)
        if self.weather is not None:
            collectors.append(self.weather)
        return [PollerTask(c.name, c.poll, c.interval_s, on_event=self._log_event) for c in collectors]

    @property
    def running(self) -> bool:
        return self._started

    def start(self) -> None:
        if self._started:
            return
        self._tasks = self._build_tasks()
        for task in self._tasks:
            task.start()

        if self.notifications is not None:
            if self.notifications.start():
                self._log_event("task_started", task=self.notifications.name)
            else:
                self._log_event("task_failed", task=self.notifications.name, error="bus monitor did not start")

        if self.weather is not None and self.config.display.show_weather:
            self.weather.request_update()

        self._started = True
        self._logger.info(
            "collectors started: %s",
            [t.name for t in self._tasks],
            extra={"event": "runtime_started"},
        )

    def stop(self, timeout: float = 3.0) -> None:
        if not self._started:
            return
        for task in self._tasks:
            task.stop()
        if self.notifications is not None:
            self.notifications.stop(timeout=timeout)
        for task in self._tasks:
            task.join(timeout=timeout)
        self._started = False
        self._logger.info("collectors stopped", extra={"event": "runtime_stopped"})

    def task_status(self) -> list[TaskStatus]:
        return [replace(t.status) for t in self._tasks]

    # read side

    def utilization_metrics(self) -> UtilizationMetrics:
        return self.utilization.current()

    def gpu_percent(self) -> float:
        return self.gpu.current()

    def temperatures(self) -> TemperatureMetrics:
        return self.temperature.current()

    def network_metrics(self) -> NetworkMetrics:
        return self.network.current()

    def media_info(self) -> MediaInfo:
        return self.media.current() if self.media is not None else MediaInfo()

    def notification_list(self) -> list[Notification]:
        return self.notifications.notifications() if self.notifications is not None else []

    def weather_data(self) -> WeatherData | None:
        return self.weather.current() if self.weather is not None else None

    def snapshot(self) -> Snapshot:
        return Snapshot(
            utilization=self.utilization_metrics(),
            gpu_percent=self.gpu_percent(),
            gpu_vendor=self.gpu.vendor,
            temperatures=self.temperatures(),
            network=self.network_metrics(),
            media=self.media_info(),
            notifications=tuple(self.notification_list()),
            weather=self.weather_data(),
            taken_at=datetime.now(timezone.utc),
        )

    # mutators

    def set_media_token(self, token: str | None) -> None:
        if self.media is not None:
            self.media.set_token(token)

    def set_weather_api_key(self, api_key: str) -> None:
        if self.weather is not None:
            self.weather.set_api_key(api_key)

    def set_weather_location(self, location: str) -> None:
        if self.weather is not None:
            self.weather.set_location(location)

    def request_weather_update(self) -> None:
        if self.weather is not None:
            self.weather.request_update()

    def apply_config(self, cfg: AppConfig) -> None:
        """Push credential changes from a reloaded config into the live collectors."""
        old = self.config
        if cfg.media.api_token != old.media.api_token:
            self.set_media_token(cfg.media.api_token)
        if cfg.weather.api_key != old.weather.api_key:
            self.set_weather_api_key(cfg.weather.api_key)
        if cfg.weather.location != old.weather.location:
            self.set_weather_location(cfg.weather.location)
            self.request_weather_update()
        self.config = cfg
        self._log_event("config_applied")

    # media controls

    def media_play_pause(self) -> bool:
        return self.media.play_pause() if self.media is not None else False

    def media_next(self) -> bool:
        return self.media.next() if self.media is not None else False

    def media_previous(self) -> bool:
        return self.media.previous() if self.media is not None else False

    def media_seek(self, position_s: float) -> bool:
        return self.media.seek(position_s) if self.media is not None else False

    def media_seek_to_progress(self, progress: float) -> bool:
        return self.media.seek_to_progress(progress) if self.media is not None else False

    # notification management

    def clear_notifications(self) -> None:
        if self.notifications is not None:
            self.notifications.store.clear()

    def clear_app_notifications(self, app_name: str) -> None:
        if self.notifications is not None:
            self.notifications.store.clear_app(app_name)

    def remove_notification(self, app_name: str, timestamp: int) -> None:
        if self.notifications is not None:
            self.notifications.store.remove(app_name, timestamp)
