"""Core app services for settings, logging, the collector runtime, and diagnostics."""

from .config import AppConfig, ConfigWatcher, config_path, load_config, save_config
from .diagnostics import DiagnosticsExporter, build_doctor_payload, redact
from .runtime import CollectorRuntime, PollerTask, TaskStatus

__all__ = [
    "AppConfig",
    "CollectorRuntime",
    "ConfigWatcher",
    "DiagnosticsExporter",
    "PollerTask",
    "TaskStatus",
    "build_doctor_payload",
    "config_path",
    "load_config",
    "redact",
    "save_config",
]
