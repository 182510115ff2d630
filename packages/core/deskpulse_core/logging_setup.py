"""JSON-lines logging for the collectors plus crash capture."""

from __future__ import annotations

import faulthandler
import json
import logging
import logging.handlers
import sys
import threading
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from .config import config_dir


_ROOT = "deskpulse"
_EXTRA_FIELDS = ("event", "collector", "crash_id")


def log_dir() -> Path:
    path = config_dir() / "logs"
    path.mkdir(parents=True, exist_ok=True)
    return path


class JsonFormatter(logging.Formatter):
    """One JSON object per record; collector extras are copied when present."""

    def format(self, record: logging.LogRecord) -> str:
        row: dict[str, Any] = {
            "ts_utc": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "thread": record.threadName,
            "msg": record.getMessage(),
        }
        row.update({name: getattr(record, name) for name in _EXTRA_FIELDS if hasattr(record, name)})
        if record.exc_info:
            row["exc"] = self.formatException(record.exc_info)
        return json.dumps(row, ensure_ascii=True)


def _rotating_file(keep_files: int) -> logging.Handler:
    handler = logging.handlers.TimedRotatingFileHandler(
        filename=str(log_dir() / "deskpulse.log"),
        when="midnight",
        backupCount=max(2, keep_files),
        encoding="utf-8",
    )
    handler.setFormatter(JsonFormatter())
    return handler


def configure_logging(keep_files: int = 7, console: bool = True, level: int = logging.INFO) -> logging.Logger:
    """Attach handlers to the ``deskpulse`` root once; later calls are no-ops."""
    root = logging.getLogger(_ROOT)
    if root.handlers:
        return root

    root.setLevel(level)
    root.addHandler(_rotating_file(keep_files))
    if console:
        echo = logging.StreamHandler()
        echo.setFormatter(logging.Formatter("%(levelname)s [%(threadName)s] %(name)s %(message)s"))
        root.addHandler(echo)

    root.info("logging configured", extra={"event": "logging_configured"})
    return root


def get_logger(name: str | None = None) -> logging.Logger:
    return logging.getLogger(f"{_ROOT}.{name}" if name else _ROOT)


def _report_crash(event: str, where: str, exc_info) -> None:
    crash_id = str(uuid.uuid4())
    get_logger().critical(
        "%s crash_id=%s",
        where,
        crash_id,
        exc_info=exc_info,
        extra={"event": event, "crash_id": crash_id},
    )


def install_crash_hooks() -> None:
    """Route uncaught exceptions from any thread, and hard faults, into the log dir."""
    sys.excepthook = lambda *exc_info: _report_crash("uncaught_exception", "uncaught exception", exc_info)

    def _on_thread_crash(args: threading.ExceptHookArgs) -> None:
        where = f"collector thread {getattr(args.thread, 'name', '?')} died"
        _report_crash("thread_exception", where, (args.exc_type, args.exc_value, args.exc_traceback))

    threading.excepthook = _on_thread_crash

    fault_log = (log_dir() / "fault.log").open("a", encoding="utf-8")
    faulthandler.enable(file=fault_log, all_threads=True)
    get_logger().info("crash hooks installed", extra={"event": "crash_hooks_installed"})
