import io
import json
import sys
import unittest
import urllib.error
import urllib.parse
from pathlib import Path
from unittest.mock import patch

ROOT = Path(__file__).resolve().parents[2]
sys.path.insert(0, str(ROOT / "packages" / "telemetry"))

from deskpulse_telemetry.models import WeatherData
from deskpulse_telemetry.weather import (
    WeatherCollector,
    WeatherError,
    fetch_weather,
    parse_weather,
    strip_quotes,
)

PAYLOAD = {
    "weather": [{"id": 500, "main": "Rain", "description": "light rain", "icon": "10d"}],
    "main": {"temp": 12.3, "feels_like": 11.1, "temp_min": 10.0, "temp_max": 14.2, "pressure": 1012, "humidity": 81},
    "name": "Berlin",
}

BERLIN = WeatherData(12.3, 11.1, 10.0, 14.2, 81, "Light rain", "10d", "Berlin")


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


class CountingFetcher:
    def __init__(self, results=None):
        self.calls = []
        self.results = list(results or [])

    def __call__(self, api_key, location, units, timeout_s):
        self.calls.append((api_key, location, units, timeout_s))
        result = self.results.pop(0) if self.results else BERLIN
        if isinstance(result, Exception):
            raise result
        return result


class ParseTests(unittest.TestCase):
    def test_parse(self):
        self.assertEqual(parse_weather(PAYLOAD), BERLIN)

    def test_missing_condition_defaults(self):
        payload = dict(PAYLOAD, weather=[])
        data = parse_weather(payload)
        self.assertEqual(data.description, "Unknown")
        self.assertEqual(data.icon, "01d")

    def test_empty_description_kept_when_condition_present(self):
        payload = dict(PAYLOAD, weather=[{"description": "", "icon": "04n"}])
        data = parse_weather(payload)
        self.assertEqual(data.description, "")
        self.assertEqual(data.icon, "04n")

    def test_infinite_humidity_raises_weather_error(self):
        payload = dict(PAYLOAD, main=dict(PAYLOAD["main"], humidity=float("inf")))
        with self.assertRaises(WeatherError):
            parse_weather(payload)

    def test_missing_main_raises(self):
        with self.assertRaises(WeatherError):
            parse_weather({"name": "Berlin"})

    def test_strip_quotes(self):
        self.assertEqual(strip_quotes('"London"'), "London")
        self.assertEqual(strip_quotes('  "abc123" '), "abc123")
        self.assertEqual(strip_quotes("plain"), "plain")


class WeatherCollectorTests(unittest.TestCase):
    def make(self, fetcher=None, api_key="key", location="Berlin"):
        clock = FakeClock()
        fetcher = fetcher or CountingFetcher()
        collector = WeatherCollector(api_key=api_key, location=location, fetcher=fetcher, clock=clock)
        return collector, fetcher, clock

    def test_no_request_no_fetch(self):
        collector, fetcher, _ = self.make()
        self.assertIsNone(collector.poll())
        self.assertEqual(fetcher.calls, [])

    def test_requests_inside_window_coalesce(self):
        collector, fetcher, clock = self.make()
        collector.request_update()
        self.assertEqual(collector.poll(), BERLIN)

        for _ in range(5):
            clock.now += 60.0
            collector.request_update()
            collector.poll()
        self.assertEqual(len(fetcher.calls), 1)
        self.assertTrue(collector.pending)

        clock.now = 1000.0 + 600.0
        collector.poll()
        self.assertEqual(len(fetcher.calls), 2)
        self.assertFalse(collector.pending)
        self.assertEqual(collector.fetch_count, 2)

    def test_failure_keeps_previous_data_and_consumes_window(self):
        collector, fetcher, clock = self.make(CountingFetcher([BERLIN, WeatherError("HTTP 500")]))
        collector.request_update()
        collector.poll()
        clock.now += 601.0
        collector.request_update()
        self.assertIsNone(collector.poll())
        self.assertEqual(collector.current(), BERLIN)

        clock.now += 30.0
        collector.request_update()
        collector.poll()
        self.assertEqual(len(fetcher.calls), 2)

    def test_missing_credentials_skip_without_fetch(self):
        collector, fetcher, _ = self.make(api_key="", location="Berlin")
        collector.request_update()
        self.assertIsNone(collector.poll())
        self.assertFalse(collector.pending)
        self.assertEqual(fetcher.calls, [])
        self.assertIsNone(collector.current())

        collector.set_api_key("key")
        collector.request_update()
        self.assertEqual(collector.poll(), BERLIN)

    def test_quoted_values_are_stripped(self):
        collector, fetcher, _ = self.make(api_key='"abc"', location='"London"')
        collector.request_update()
        collector.poll()
        self.assertEqual(fetcher.calls[0][:3], ("abc", "London", "metric"))

    def test_location_change_applies_to_next_fetch(self):
        collector, fetcher, clock = self.make()
        collector.set_location("Paris")
        collector.request_update()
        collector.poll()
        self.assertEqual(fetcher.calls[-1][1], "Paris")


class _Response(io.BytesIO):
    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()


class FetchWeatherTests(unittest.TestCase):
    def test_builds_query_and_parses(self):
        seen = {}

        def fake_urlopen(request, timeout, context):
            seen["url"] = request.full_url
            seen["timeout"] = timeout
            seen["context"] = context
            return _Response(json.dumps(PAYLOAD).encode("utf-8"))

        with patch("urllib.request.urlopen", fake_urlopen):
            data = fetch_weather('"key"', "New York", units="imperial", timeout_s=3.0)

        self.assertEqual(data, BERLIN)
        query = urllib.parse.parse_qs(urllib.parse.urlsplit(seen["url"]).query)
        self.assertEqual(query, {"q": ["New York"], "appid": ["key"], "units": ["imperial"]})
        self.assertTrue(seen["url"].startswith("https://api.openweathermap.org/data/2.5/weather?"))
        self.assertEqual(seen["timeout"], 3.0)
        self.assertIsNotNone(seen["context"])

    def test_http_error(self):
        error = urllib.error.HTTPError("https://x", 401, "Unauthorized", {}, None)
        with patch("urllib.request.urlopen", side_effect=error):
            with self.assertRaises(WeatherError) as ctx:
                fetch_weather("bad", "Berlin")
        self.assertIn("401", str(ctx.exception))

    def test_unreachable(self):
        with patch("urllib.request.urlopen", side_effect=urllib.error.URLError("no route")):
            with self.assertRaises(WeatherError):
                fetch_weather("key", "Berlin")

    def test_malformed_json(self):
        with patch("urllib.request.urlopen", return_value=_Response(b"<html>")):
            with self.assertRaises(WeatherError):
                fetch_weather("key", "Berlin")


if __name__ == "__main__":
    unittest.main()
