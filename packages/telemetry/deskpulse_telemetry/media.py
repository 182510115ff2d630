"""Now-playing state and transport controls for the Cider local REST API.

Responses are read by key search rather than a JSON parser: the first
occurrence of a key wins, strings run to the next quote and numbers to the next
``,``, ``}`` or ``]``. Control commands overwrite the local record with the
predicted outcome right after a successful dispatch; the next poll replaces it
with what the player actually reports.
"""

from __future__ import annotations

import json
import logging
import threading
import urllib.error
from dataclasses import replace

from .http import build_request, read_text
from .models import MediaInfo, PlaybackStatus
from .shared import SharedValue


_LOG = logging.getLogger("deskpulse.media")

DEFAULT_BASE_URL = "http://localhost:10767/api/v1/playback"
PLAYER_NAME = "Cider"
_NUMBER_DELIMITERS = ",}]"


def extract_json_string(text: str, key: str) -> str | None:
    start = text.find(key)
    if start < 0:
        return None
    rest = text[start + len(key):]
    end = rest.find('"')
    if end < 0:
        return None
    return rest[:end]


def extract_json_number(text: str, key: str) -> str | None:
    start = text.find(key)
    if start < 0:
        return None
    rest = text[start + len(key):]
    for idx, ch in enumerate(rest):
        if ch in _NUMBER_DELIMITERS:
            return rest[:idx].strip()
    return None


def parse_now_playing(text: str, is_playing: bool) -> MediaInfo | None:
    if '"error"' in text or '"status":"ok"' not in text:
        return None

    title = extract_json_string(text, '"name":"') or ""
    if not title:
        return None

    duration_ms = 0
    raw_duration = extract_json_number(text, '"durationInMillis":')
    if raw_duration:
        try:
            duration_ms = int(raw_duration)
        except (ValueError, OverflowError):
            pass

    position_ms = 0
    raw_position = extract_json_number(text, '"currentPlaybackTime":')
    if raw_position:
        try:
            position_ms = int(float(raw_position) * 1000)
        except (ValueError, OverflowError):
            pass

    return MediaInfo(
        player_name=PLAYER_NAME,
        title=title,
        artist=extract_json_string(text, '"artistName":"') or "",
        album=extract_json_string(text, '"albumName":"') or "",
        art_url=extract_json_string(text, '"url":"'),
        status=PlaybackStatus.PLAYING if is_playing else PlaybackStatus.PAUSED,
        position_ms=max(position_ms, 0),
        duration_ms=max(duration_ms, 0),
        can_play=True,
        can_pause=True,
        can_go_next=True,
        can_go_previous=True,
        can_seek=True,
    )


def _toggled(status: PlaybackStatus) -> PlaybackStatus:
    if status is PlaybackStatus.PLAYING:
        return PlaybackStatus.PAUSED
    return PlaybackStatus.PLAYING


class MediaCollector:
    name = "media"

    def __init__(
        self,
        api_token: str | None = None,
        base_url: str = DEFAULT_BASE_URL,
        interval_s: float = 1.0,
        timeout_s: float = 1.0,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.interval_s = interval_s
        self.timeout_s = timeout_s
        self.info: SharedValue[MediaInfo] = SharedValue(MediaInfo())
        self._token_lock = threading.Lock()
        self._token = api_token or None
        self._reachable: bool | None = None

    def set_token(self, token: str | None) -> None:
        with self._token_lock:
            self._token = token or None
        _LOG.info("media api token updated", extra={"event": "media_token_updated"})

    def _headers(self) -> dict[str, str]:
        with self._token_lock:
            token = self._token
        return {"apptoken": token} if token else {}

    def _request(self, endpoint: str, method: str = "GET", payload: dict | None = None) -> str | None:
        headers = self._headers()
        data = None
        if payload is not None:
            data = json.dumps(payload).encode("utf-8")
            headers["Content-Type"] = "application/json"
        request = build_request(f"{self.base_url}/{endpoint}", method=method, headers=headers, data=data)
        try:
            return read_text(request, timeout=self.timeout_s)
        except (urllib.error.URLError, TimeoutError, OSError, ValueError) as exc:
            _LOG.debug("media %s %s failed: %s", method, endpoint, exc)
            return None

    def _note_reachable(self, reachable: bool) -> None:
        if reachable != self._reachable:
            self._reachable = reachable
            if reachable:
                _LOG.info("media player reachable", extra={"event": "media_up"})
            else:
                _LOG.info("media player unavailable", extra={"event": "media_down"})

    def check_is_playing(self) -> bool:
        body = self._request("is-playing")
        if body is None:
            # Unknown is reported as playing.
            return True
        return '"is_playing":true' in body

    def fetch(self) -> MediaInfo | None:
        body = self._request("now-playing")
        self._note_reachable(body is not None)
        if body is None or '"error"' in body:
            # Skip the is-playing round trip when there is nothing to show.
            return None
        return parse_now_playing(body, self.check_is_playing())

    def poll(self) -> MediaInfo:
        info = self.fetch() or MediaInfo()
        self.info.set(info)
        return info

    def current(self) -> MediaInfo:
        return self.info.get()

    def _command(self, endpoint: str, payload: dict | None = None) -> bool:
        ok = self._request(endpoint, method="POST", payload=payload) is not None
        _LOG.info("media command %s ok=%s", endpoint, ok, extra={"event": "media_command"})
        return ok

    def play_pause(self) -> bool:
        if not self._command("playpause"):
            return False
        self.info.update(lambda info: replace(info, status=_toggled(info.status)))
        return True

    def next(self) -> bool:
        if not self._command("next"):
            return False
        self.info.update(lambda info: replace(info, status=PlaybackStatus.PLAYING))
        return True

    def previous(self) -> bool:
        if not self._command("previous"):
            return False
        self.info.update(lambda info: replace(info, status=PlaybackStatus.PLAYING))
        return True

    def seek(self, position_s: float) -> bool:
        position_s = max(0.0, float(position_s))
        if not self._command("seek", payload={"position": int(position_s)}):
            return False
        self.info.update(lambda info: replace(info, position_ms=int(position_s * 1000)))
        return True

    def seek_to_progress(self, progress: float) -> bool:
        progress = min(max(float(progress), 0.0), 1.0)
        duration_s = self.info.get().duration_ms / 1000.0
        return self.seek(duration_s * progress)
