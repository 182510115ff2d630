"""Desktop notification capture from ``busctl monitor`` output.

busctl prints each intercepted ``Notify`` call as a header followed by its
arguments, one per line::

    Type=method_call  Endian=l  Flags=0  Version=1  Cookie=12
      Interface=org.freedesktop.Notifications  Member=Notify
      MESSAGE "susssasa{sv}i" {
              STRING "Firefox";
              UINT32 0;
              STRING "";
              STRING "Build complete";
              STRING "Target ready";

The string arguments arrive in a fixed order: application name, icon, summary,
body. The parser counts them and ignores everything else.
"""

from __future__ import annotations

import logging
import subprocess
import threading
import time
from enum import Enum
from typing import Callable, Iterable

from .models import Notification


_LOG = logging.getLogger("deskpulse.notifications")

BUSCTL_COMMAND = (
    "busctl",
    "monitor",
    "--user",
    "--match",
    "type=method_call,interface=org.freedesktop.Notifications,member=Notify",
)
FALLBACK_APP_NAME = "System"

_APP_FIELD = 0
_SUMMARY_FIELD = 2
_BODY_FIELD = 3


class ParserState(str, Enum):
    IDLE = "Idle"
    CAPTURING = "CapturingFields"


class NotifyParser:
    """Line-fed state machine that turns Notify call traces into records."""

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self.state = ParserState.IDLE
        self.field_index = 0
        self._app_name = ""
        self._summary = ""

    def reset(self) -> None:
        self.state = ParserState.IDLE
        self.field_index = 0
        self._app_name = ""
        self._summary = ""

    def feed(self, line: str) -> Notification | None:
        trimmed = line.strip()
        if "Member=Notify" in trimmed:
            self.reset()
            self.state = ParserState.CAPTURING
            return None

        if self.state is not ParserState.CAPTURING or not trimmed.startswith('STRING "'):
            return None

        start = trimmed.find('"')
        end = trimmed.rfind('"')
        if start >= end:
            return None
        value = trimmed[start + 1:end]

        index = self.field_index
        self.field_index += 1
        if index == _APP_FIELD:
            self._app_name = value
        elif index == _SUMMARY_FIELD:
            self._summary = value
        elif index == _BODY_FIELD:
            app_name, summary = self._app_name, self._summary
            self.reset()
            if summary:
                return Notification(
                    app_name=app_name or FALLBACK_APP_NAME,
                    summary=summary,
                    body=value,
                    timestamp=int(self._clock()),
                )
        return None


class NotificationStore:
    """Newest-first notification list capped at ``max_notifications``."""

    def __init__(self, max_notifications: int = 5) -> None:
        self.max_notifications = max(1, int(max_notifications))
        self._lock = threading.Lock()
        self._items: list[Notification] = []

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)

    def add(self, notification: Notification) -> None:
        with self._lock:
            self._items.insert(0, notification)
            del self._items[self.max_notifications:]

    def notifications(self) -> list[Notification]:
        with self._lock:
            return list(self._items)

    def clear(self) -> None:
        with self._lock:
            self._items.clear()
        _LOG.info("cleared all notifications", extra={"event": "notifications_cleared"})

    def clear_app(self, app_name: str) -> None:
        with self._lock:
            self._items = [n for n in self._items if n.app_name != app_name]
        _LOG.info("cleared notifications for %s", app_name, extra={"event": "notifications_cleared_app"})

    def remove(self, app_name: str, timestamp: int) -> None:
        with self._lock:
            self._items = [n for n in self._items if not (n.app_name == app_name and n.timestamp == timestamp)]


class NotificationListener:
    name = "notifications"

    def __init__(
        self,
        store: NotificationStore | None = None,
        command: Iterable[str] = BUSCTL_COMMAND,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.store = store or NotificationStore()
        self.command = list(command)
        self.parser = NotifyParser(clock=clock)
        self._stop = threading.Event()
        self._proc: subprocess.Popen[str] | None = None
        self._thread: threading.Thread | None = None
        self.failed = False

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def consume(self, lines: Iterable[str]) -> int:
        emitted = 0
        for line in lines:
            if self._stop.is_set():
                break
            notification = self.parser.feed(line)
            if notification is not None:
                self.store.add(notification)
                emitted += 1
                _LOG.info(
                    "captured notification: %s - %s",
                    notification.app_name,
                    notification.summary,
                    extra={"event": "notification_captured"},
                )
        return emitted

    def start(self) -> bool:
        try:
            self._proc = subprocess.Popen(
                self.command,
                stdout=subprocess.PIPE,
                stderr=subprocess.DEVNULL,
                text=True,
                bufsize=1,
            )
        except OSError as exc:
            self.failed = True
            _LOG.error("notification monitor failed to start: %s", exc, extra={"event": "notifications_start_failed"})
            return False

        self._stop.clear()
        self._thread = threading.Thread(target=self._read_loop, name="deskpulse-notifications", daemon=True)
        self._thread.start()
        _LOG.info("notification monitor started", extra={"event": "notifications_started"})
        return True

    def _read_loop(self) -> None:
        proc = self._proc
        if proc is None or proc.stdout is None:
            return
        try:
            self.consume(proc.stdout)
        except (OSError, ValueError) as exc:
            if not self._stop.is_set():
                _LOG.error("notification stream broke: %s", exc, extra={"event": "notifications_stream_error"})
        if not self._stop.is_set():
            _LOG.warning("notification monitor exited", extra={"event": "notifications_exited"})

    def stop(self, timeout: float = 2.0) -> None:
        self._stop.set()
        proc = self._proc
        if proc is not None and proc.poll() is None:
            proc.terminate()
            try:
                proc.wait(timeout=timeout)
            except subprocess.TimeoutExpired:
                proc.kill()
                proc.wait(timeout=timeout)
        if self._thread is not None:
            self._thread.join(timeout=timeout)
            self._thread = None
        self._proc = None

    def notifications(self) -> list[Notification]:
        return self.store.notifications()
