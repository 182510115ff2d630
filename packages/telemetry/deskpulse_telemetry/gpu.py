"""GPU vendor detection and per-vendor utilization probes.

The vendor is detected once. Each vendor maps to an ordered list of probes; the
first probe that returns a number wins for that cycle. A cycle where every probe
comes back empty leaves the published percentage untouched.
"""

from __future__ import annotations

import logging
import os
import re
import shutil
import subprocess
from pathlib import Path
from typing import Callable

from .models import GpuVendor
from .shared import SharedValue


_LOG = logging.getLogger("deskpulse.gpu")

DRM_ROOT = Path("/sys/class/drm")
ROCM_SMI_PATH = Path("/opt/rocm/bin/rocm-smi")
TOOL_TIMEOUT_S = 1.0

_RADEONTOP_GPU_RE = re.compile(r"\bgpu\s+([0-9]+(?:\.[0-9]+)?)%")
_INTEL_BUSY_RE = re.compile(r'"busy":\s*([0-9]+(?:\.[0-9]+)?)')


def card_dirs(drm_root: Path = DRM_ROOT) -> list[Path]:
    """Graphics device nodes (``card0``), skipping connectors like ``card0-DP-1``."""
    try:
        entries = sorted(drm_root.iterdir())
    except OSError:
        return []
    return [p for p in entries if p.name.startswith("card") and "-" not in p.name]


def _driver_name(card: Path) -> str | None:
    try:
        return Path(os.readlink(card / "device" / "driver")).name
    except OSError:
        return None


def detect_gpu_vendor(
    which: Callable[[str], str | None] = shutil.which,
    drm_root: Path = DRM_ROOT,
    rocm_smi: Path = ROCM_SMI_PATH,
) -> GpuVendor:
    if which("nvidia-smi"):
        return GpuVendor.NVIDIA
    if which("radeontop") or which("rocm-smi") or rocm_smi.exists():
        return GpuVendor.AMD
    if which("intel_gpu_top"):
        return GpuVendor.INTEL

    for card in card_dirs(drm_root):
        driver = _driver_name(card)
        if driver == "amdgpu":
            return GpuVendor.AMD
        if driver in ("i915", "xe"):
            return GpuVendor.INTEL
    return GpuVendor.NONE


def _run_tool(args: list[str], timeout: float = TOOL_TIMEOUT_S) -> str | None:
    try:
        result = subprocess.run(args, capture_output=True, text=True, timeout=timeout)
    except (OSError, subprocess.SubprocessError) as exc:
        _LOG.debug("%s failed: %s", args[0], exc)
        return None
    if result.returncode != 0:
        return None
    return result.stdout


def _run_streaming_tool(args: list[str], timeout: float = TOOL_TIMEOUT_S) -> str | None:
    # intel_gpu_top never exits on its own; keep whatever it printed before the timeout.
    try:
        result = subprocess.run(args, capture_output=True, text=True, timeout=timeout)
        return result.stdout or None
    except subprocess.TimeoutExpired as exc:
        output = exc.stdout
        if isinstance(output, bytes):
            output = output.decode("utf-8", errors="replace")
        return output or None
    except (OSError, subprocess.SubprocessError) as exc:
        _LOG.debug("%s failed: %s", args[0], exc)
        return None


def _read_float(path: Path) -> float | None:
    try:
        return float(path.read_text(encoding="utf-8").strip())
    except (OSError, ValueError):
        return None


def parse_nvidia_smi(output: str) -> float | None:
    lines = output.strip().splitlines()
    if not lines:
        return None
    try:
        return float(lines[0].strip())
    except ValueError:
        return None


def parse_radeontop(output: str) -> float | None:
    for line in output.splitlines():
        match = _RADEONTOP_GPU_RE.search(line)
        if match:
            return float(match.group(1))
    return None


def parse_intel_gpu_top(output: str) -> float | None:
    match = _INTEL_BUSY_RE.search(output)
    if match is None:
        return None
    return float(match.group(1))


class _GpuProbe:
    name = "none"

    def read(self) -> float | None:
        return None


class _NvmlProbe(_GpuProbe):
    name = "nvml"

    def __init__(self) -> None:
        import pynvml  # type: ignore

        self._nvml = pynvml
        pynvml.nvmlInit()

    def read(self) -> float | None:
        nvml = self._nvml
        try:
            if nvml.nvmlDeviceGetCount() < 1:
                return None
            handle = nvml.nvmlDeviceGetHandleByIndex(0)
            return float(nvml.nvmlDeviceGetUtilizationRates(handle).gpu)
        except nvml.NVMLError:
            return None


class _NvidiaSmiProbe(_GpuProbe):
    name = "nvidia-smi"

    def read(self) -> float | None:
        output = _run_tool(["nvidia-smi", "--query-gpu=utilization.gpu", "--format=csv,noheader,nounits"])
        return parse_nvidia_smi(output) if output else None


class _AmdSysfsProbe(_GpuProbe):
    name = "amdgpu-sysfs"

    def __init__(self, drm_root: Path = DRM_ROOT) -> None:
        self.drm_root = drm_root

    def read(self) -> float | None:
        for card in card_dirs(self.drm_root):
            value = _read_float(card / "device" / "gpu_busy_percent")
            if value is not None:
                return value
        return None


class _RadeontopProbe(_GpuProbe):
    name = "radeontop"

    def read(self) -> float | None:
        output = _run_tool(["radeontop", "-d", "-", "-l", "1"])
        return parse_radeontop(output) if output else None


class _IntelFreqProbe(_GpuProbe):
    name = "i915-sysfs"

    def __init__(self, drm_root: Path = DRM_ROOT) -> None:
        self.drm_root = drm_root

    def read(self) -> float | None:
        for card in card_dirs(self.drm_root):
            cur = _read_float(card / "gt" / "gt0" / "rps_cur_freq_mhz")
            max_freq = _read_float(card / "gt" / "gt0" / "rps_max_freq_mhz")
            if cur is not None and max_freq is not None and max_freq > 0:
                return cur / max_freq * 100.0
        return None


class _IntelGpuTopProbe(_GpuProbe):
    name = "intel_gpu_top"

    def read(self) -> float | None:
        output = _run_streaming_tool(["intel_gpu_top", "-J", "-s", "100"])
        return parse_intel_gpu_top(output) if output else None


def _nvml_probes() -> list[_GpuProbe]:
    try:
        return [_NvmlProbe()]
    except Exception as exc:
        _LOG.info("NVML unavailable, using nvidia-smi: %s", exc, extra={"event": "nvml_unavailable"})
        return []


def build_gpu_probes(vendor: GpuVendor, drm_root: Path = DRM_ROOT) -> list[_GpuProbe]:
    if vendor is GpuVendor.NVIDIA:
        return [*_nvml_probes(), _NvidiaSmiProbe()]
    if vendor is GpuVendor.AMD:
        return [_AmdSysfsProbe(drm_root), _RadeontopProbe()]
    if vendor is GpuVendor.INTEL:
        return [_IntelFreqProbe(drm_root), _IntelGpuTopProbe()]
    return []


class GpuCollector:
    name = "gpu"

    def __init__(
        self,
        vendor: GpuVendor | None = None,
        probes: list[_GpuProbe] | None = None,
        interval_s: float = 1.0,
        drm_root: Path = DRM_ROOT,
    ) -> None:
        self.vendor = detect_gpu_vendor(drm_root=drm_root) if vendor is None else vendor
        self.probes = build_gpu_probes(self.vendor, drm_root) if probes is None else list(probes)
        self.interval_s = interval_s
        self.percent: SharedValue[float] = SharedValue(0.0)
        _LOG.info(
            "gpu vendor %s, probes %s",
            self.vendor.value,
            [p.name for p in self.probes],
            extra={"event": "gpu_detected"},
        )

    @property
    def enabled(self) -> bool:
        return self.vendor is not GpuVendor.NONE and bool(self.probes)

    def fetch(self) -> float | None:
        for probe in self.probes:
            value = probe.read()
            if value is not None:
                return value
        return None

    def poll(self) -> float | None:
        value = self.fetch()
        if value is not None:
            self.percent.set(value)
        return value

    def current(self) -> float:
        return self.percent.get()
