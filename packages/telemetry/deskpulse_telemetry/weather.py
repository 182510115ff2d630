"""Current conditions from the OpenWeatherMap API, fetched at most every ten minutes."""

from __future__ import annotations

import json
import logging
import threading
import time
import urllib.error
import urllib.parse
from typing import Any, Callable

from .http import build_request, read_text
from .models import WeatherData
from .shared import SharedValue


_LOG = logging.getLogger("deskpulse.weather")

API_URL = "https://api.openweathermap.org/data/2.5/weather"
MIN_REFRESH_S = 600.0
WAKE_INTERVAL_S = 10.0
FETCH_TIMEOUT_S = 5.0

WeatherFetcher = Callable[[str, str, str, float], WeatherData]


class WeatherError(RuntimeError):
    pass


def strip_quotes(value: str) -> str:
    # Config storage may hand back values wrapped in literal quotes.
    return value.strip().strip('"')


def _capitalize(text: str) -> str:
    return text[:1].upper() + text[1:]


def parse_weather(payload: dict[str, Any]) -> WeatherData:
    try:
        main = payload["main"]
        conditions = payload.get("weather") or []
        first = conditions[0] if conditions else {}
        return WeatherData(
            temperature=float(main["temp"]),
            feels_like=float(main["feels_like"]),
            temp_min=float(main["temp_min"]),
            temp_max=float(main["temp_max"]),
            humidity=int(main["humidity"]),
            description=_capitalize(first.get("description", "")) if conditions else "Unknown",
            icon=first.get("icon") or "01d",
            location=str(payload["name"]),
        )
    except (KeyError, TypeError, ValueError, OverflowError, AttributeError) as exc:
        raise WeatherError(f"unexpected weather payload: {exc!r}") from exc


def fetch_weather(api_key: str, location: str, units: str = "metric", timeout_s: float = FETCH_TIMEOUT_S) -> WeatherData:
    query = urllib.parse.urlencode({"q": strip_quotes(location), "appid": strip_quotes(api_key), "units": units})
    request = build_request(f"{API_URL}?{query}", headers={"Accept": "application/json"})
    try:
        payload = json.loads(read_text(request, timeout=timeout_s))
    except urllib.error.HTTPError as exc:
        raise WeatherError(f"weather api returned HTTP {exc.code}") from exc
    except (urllib.error.URLError, TimeoutError, OSError) as exc:
        raise WeatherError(f"weather api unreachable: {exc}") from exc
    except ValueError as exc:
        raise WeatherError("weather api returned malformed JSON") from exc
    if not isinstance(payload, dict):
        raise WeatherError("weather api returned a non-object payload")
    return parse_weather(payload)


class WeatherCollector:
    """Coalesces refresh requests into rate-limited fetches.

    ``request_update`` only raises a flag. ``poll`` runs on the collector's own
    cadence and performs a fetch when the flag is up and ``min_refresh_s`` has
    passed since the previous attempt; any number of requests in between turn
    into that one fetch.
    """

    name = "weather"

    def __init__(
        self,
        api_key: str = "",
        location: str = "",
        units: str = "metric",
        interval_s: float = WAKE_INTERVAL_S,
        min_refresh_s: float = MIN_REFRESH_S,
        timeout_s: float = FETCH_TIMEOUT_S,
        fetcher: WeatherFetcher | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.interval_s = interval_s
        self.min_refresh_s = min_refresh_s
        self.timeout_s = timeout_s
        self.units = units
        self.data: SharedValue[WeatherData | None] = SharedValue(None)
        self._fetcher = fetcher or fetch_weather
        self._clock = clock
        self._lock = threading.Lock()
        self._api_key = api_key
        self._location = location
        self._requested = False
        self._last_attempt: float | None = None
        self.fetch_count = 0

    def set_api_key(self, api_key: str) -> None:
        with self._lock:
            self._api_key = api_key

    def set_location(self, location: str) -> None:
        with self._lock:
            self._location = location

    @property
    def pending(self) -> bool:
        with self._lock:
            return self._requested

    def request_update(self) -> None:
        with self._lock:
            self._requested = True

    def poll(self) -> WeatherData | None:
        with self._lock:
            if not self._requested:
                return None
            now = self._clock()
            if self._last_attempt is not None and now - self._last_attempt < self.min_refresh_s:
                return None
            self._requested = False
            api_key = strip_quotes(self._api_key)
            location = strip_quotes(self._location)
            if not api_key or not location:
                _LOG.debug("weather update skipped: api key or location not configured")
                return None
            self._last_attempt = now
            self.fetch_count += 1

        _LOG.info("fetching weather for %s", location, extra={"event": "weather_fetch"})
        try:
            data = self._fetcher(api_key, location, self.units, self.timeout_s)
        except WeatherError as exc:
            _LOG.error("weather fetch failed: %s", exc, extra={"event": "weather_failed"})
            return None

        self.data.set(data)
        _LOG.info(
            "weather updated: %.1f, %s (icon %s)",
            data.temperature,
            data.description,
            data.icon,
            extra={"event": "weather_updated"},
        )
        return data

    def current(self) -> WeatherData | None:
        return self.data.get()
