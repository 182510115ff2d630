"""CLI entrypoints for the DeskPulse collectors, diagnostics, media control, and weather."""

from __future__ import annotations

import argparse
import json
import time
from dataclasses import asdict
from importlib import metadata
from pathlib import Path

from deskpulse_core import (
    AppConfig,
    CollectorRuntime,
    ConfigWatcher,
    DiagnosticsExporter,
    build_doctor_payload,
    config_path,
    load_config,
    redact,
    save_config,
)
from deskpulse_core.logging_setup import configure_logging, get_logger, install_crash_hooks
from deskpulse_telemetry import MediaCollector, PlaybackStatus, Snapshot, WeatherError, fetch_weather


def _print_json(data: object) -> None:
    print(json.dumps(data, indent=2, sort_keys=True, default=str))


def _installed_version() -> str:
    try:
        return metadata.version("deskpulse")
    except Exception:
        return "0.1.0"


def _fmt_percent(value: float | None) -> str:
    return "N/A" if value is None else f"{value:05.1f}%"


def _fmt_temp(value: float) -> str:
    # Sensors report 0.0 when nothing matched.
    return "N/A" if value <= 0.0 else f"{value:04.1f} C"


def _fmt_rate(bytes_s: float) -> str:
    return f"{bytes_s / 1024.0:.1f} KB/s"


def _fmt_gb(value: int) -> str:
    return f"{value / (1024 ** 3):.1f}"


def format_snapshot(snap: Snapshot, cfg: AppConfig) -> str:
    show = cfg.display
    lines: list[str] = []

    util = snap.utilization
    parts = []
    if show.show_cpu:
        parts.append(f"CPU {_fmt_percent(util.cpu_percent)}")
    if show.show_memory:
        if show.show_percentages:
            parts.append(f"RAM {_fmt_percent(util.memory_percent)}")
        else:
            parts.append(f"RAM {_fmt_gb(util.memory_used)}/{_fmt_gb(util.memory_total)} GB")
    if show.show_gpu:
        gpu = None if snap.gpu_vendor.value == "none" else snap.gpu_percent
        parts.append(f"GPU {_fmt_percent(gpu)}")
    if parts:
        lines.append("  ".join(parts))

    temps = []
    if show.show_cpu_temp:
        temps.append(f"CPU {_fmt_temp(snap.temperatures.cpu_c)}")
    if show.show_gpu_temp:
        temps.append(f"GPU {_fmt_temp(snap.temperatures.gpu_c)}")
    if temps:
        lines.append("TEMP " + "  ".join(temps))

    if show.show_network:
        lines.append(f"NET down {_fmt_rate(snap.network.rx_bytes_s)}  up {_fmt_rate(snap.network.tx_bytes_s)}")

    if show.show_media and snap.media.is_active():
        media = snap.media
        state = ">" if media.status is PlaybackStatus.PLAYING else "||"
        lines.append(
            f"MEDIA {state} {media.title} - {media.artist} [{media.position_str()}/{media.duration_str()}]"
        )

    if show.show_weather and snap.weather is not None:
        w = snap.weather
        lines.append(f"WEATHER {w.temperature:.1f} {w.description} ({w.location}, humidity {w.humidity}%)")

    if show.show_notifications:
        for n in snap.notifications:
            lines.append(f"NOTIFY [{n.app_name}] {n.summary}" + (f": {n.body}" if n.body else ""))

    return "\n".join(lines)


def cmd_run(args: argparse.Namespace) -> int:
    install_crash_hooks()
    logger = get_logger()
    cfg = load_config()
    runtime = CollectorRuntime(cfg)
    watcher = ConfigWatcher()

    runtime.start()
    count = 0
    try:
        while args.iterations is None or count < args.iterations:
            time.sleep(args.interval)
            new_cfg = watcher.poll()
            if new_cfg is not None:
                runtime.apply_config(new_cfg)
            if runtime.config.display.show_weather:
                runtime.request_weather_update()

            snap = runtime.snapshot()
            if args.json:
                print(json.dumps(asdict(snap), sort_keys=True, default=str), flush=True)
            else:
                print(format_snapshot(snap, runtime.config), end="\n\n", flush=True)
            count += 1
    except KeyboardInterrupt:
        logger.info("interrupted", extra={"event": "interrupted"})
    finally:
        runtime.stop()
        if args.export_diagnostics:
            _export_bundle(runtime, args.out_dir)
    return 0


def _export_bundle(runtime: CollectorRuntime, out_dir: str | None) -> Path:
    cfg = runtime.config
    bundle = DiagnosticsExporter().bundle(
        cfg=cfg,
        doctor_payload=build_doctor_payload(cfg),
        recent_events=runtime.recent_events(),
        output_dir=Path(out_dir).expanduser().resolve() if out_dir else None,
    )
    get_logger().info("diagnostics exported to %s", bundle, extra={"event": "diagnostics_exported"})
    print(f"diagnostics bundle: {bundle}")
    return bundle


def cmd_snapshot(args: argparse.Namespace) -> int:
    runtime = CollectorRuntime(load_config())
    runtime.start()
    try:
        time.sleep(args.warmup)
        snap = runtime.snapshot()
    finally:
        runtime.stop()
    _print_json(asdict(snap))
    return 0


def cmd_doctor(args: argparse.Namespace) -> int:
    cfg = load_config()
    payload = build_doctor_payload(cfg)

    if args.export:
        exporter = DiagnosticsExporter()
        out_dir = Path(args.out_dir).expanduser().resolve() if args.out_dir else None
        bundle = exporter.bundle(cfg=cfg, doctor_payload=payload, recent_events=[], output_dir=out_dir)
        payload["diagnostics_bundle"] = str(bundle)

    _print_json(payload)
    return 0


def cmd_media(args: argparse.Namespace) -> int:
    cfg = load_config()
    media = MediaCollector(
        api_token=(args.token or cfg.media.api_token),
        base_url=cfg.media.base_url,
        timeout_s=cfg.media.timeout_s,
    )
    media.poll()

    if args.action == "toggle":
        ok = media.play_pause()
    elif args.action == "next":
        ok = media.next()
    elif args.action == "previous":
        ok = media.previous()
    elif args.progress is not None:
        ok = media.seek_to_progress(args.progress)
    elif args.position is not None:
        ok = media.seek(args.position)
    else:
        print("seek needs --position or --progress")
        return 2

    info = media.current()
    _print_json({"success": ok, "active": info.is_active(), "media": asdict(info)})
    return 0 if ok else 1


def cmd_weather(args: argparse.Namespace) -> int:
    cfg = load_config()
    api_key = args.api_key or cfg.weather.api_key
    location = args.location or cfg.weather.location
    if not api_key or not location:
        _print_json({"success": False, "error": "weather api key and location are required"})
        return 2

    try:
        data = fetch_weather(api_key, location, units=cfg.weather.units, timeout_s=cfg.weather.timeout_s)
    except WeatherError as exc:
        _print_json({"success": False, "error": str(exc)})
        return 1
    _print_json({"success": True, "weather": asdict(data)})
    return 0


def cmd_config(args: argparse.Namespace) -> int:
    path = config_path()
    if args.config_cmd == "init":
        if path.exists() and not args.force:
            print(f"config already exists: {path}")
            return 1
        save_config(AppConfig(), path)
        print(str(path))
        return 0

    _print_json({"path": str(path), "exists": path.exists(), "config": redact(asdict(load_config(path)))})
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="deskpulse", description="DeskPulse desktop telemetry collectors and tools")
    parser.add_argument("--version", action="version", version=f"%(prog)s {_installed_version()}")
    sub = parser.add_subparsers(dest="command", required=True)

    run_cmd = sub.add_parser("run", help="Run collectors and print snapshots")
    run_cmd.add_argument("--interval", type=float, default=1.0, help="Seconds between printed snapshots")
    run_cmd.add_argument("--iterations", type=int, default=None, help="Stop after this many snapshots")
    run_cmd.add_argument("--json", action="store_true", help="Print one JSON object per snapshot")
    run_cmd.add_argument(
        "--export-diagnostics", action="store_true", help="Write a diagnostics bundle with collector events on exit"
    )
    run_cmd.add_argument("--out-dir", default=None, help="Optional output directory for the diagnostics bundle")
    run_cmd.set_defaults(func=cmd_run)

    snap_cmd = sub.add_parser("snapshot", help="Print a single JSON snapshot")
    snap_cmd.add_argument("--warmup", type=float, default=2.0, help="Seconds to let collectors sample first")
    snap_cmd.set_defaults(func=cmd_snapshot)

    doctor_cmd = sub.add_parser("doctor", help="Print diagnostics and detected sources")
    doctor_cmd.add_argument("--export", action="store_true", help="Export offline diagnostics bundle")
    doctor_cmd.add_argument("--out-dir", default=None, help="Optional output directory for diagnostics bundle")
    doctor_cmd.set_defaults(func=cmd_doctor)

    media_cmd = sub.add_parser("media", help="Control the media player")
    media_cmd.add_argument("action", choices=["toggle", "next", "previous", "seek"])
    media_cmd.add_argument("--position", type=float, default=None, help="Seek target in seconds")
    media_cmd.add_argument("--progress", type=float, default=None, help="Seek target as a 0.0-1.0 fraction")
    media_cmd.add_argument("--token", default=None, help="Override the configured API token")
    media_cmd.set_defaults(func=cmd_media)

    weather_cmd = sub.add_parser("weather", help="Fetch current weather once")
    weather_cmd.add_argument("--location", default=None)
    weather_cmd.add_argument("--api-key", default=None)
    weather_cmd.set_defaults(func=cmd_weather)

    config_cmd = sub.add_parser("config", help="Inspect or create the config file")
    config_sub = config_cmd.add_subparsers(dest="config_cmd", required=True)
    config_sub.add_parser("show", help="Print the effective config with secrets redacted")
    init_cmd = config_sub.add_parser("init", help="Write a default config file")
    init_cmd.add_argument("--force", action="store_true", help="Overwrite an existing file")
    config_cmd.set_defaults(func=cmd_config)

    return parser


def main(argv: list[str] | None = None) -> int:
    configure_logging(console=False)
    parser = build_parser()
    args = parser.parse_args(argv)
    return int(args.func(args))


if __name__ == "__main__":
    raise SystemExit(main())
