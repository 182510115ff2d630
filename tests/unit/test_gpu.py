import os
import subprocess
import sys
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

ROOT = Path(__file__).resolve().parents[2]
sys.path.insert(0, str(ROOT / "packages" / "telemetry"))

from deskpulse_telemetry import gpu
from deskpulse_telemetry.gpu import (
    GpuCollector,
    build_gpu_probes,
    card_dirs,
    detect_gpu_vendor,
    parse_intel_gpu_top,
    parse_nvidia_smi,
    parse_radeontop,
)
from deskpulse_telemetry.models import GpuVendor


def _which(*available):
    return lambda name: f"/usr/bin/{name}" if name in available else None


class _StaticProbe(gpu._GpuProbe):
    def __init__(self, values):
        self.values = list(values)

    def read(self):
        return self.values.pop(0) if self.values else None


class DrmTreeMixin:
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.root = Path(self._tmp.name)
        self.drm = self.root / "drm"
        self.drm.mkdir()

    def tearDown(self):
        self._tmp.cleanup()

    def make_card(self, name, driver=None):
        card = self.drm / name
        (card / "device").mkdir(parents=True)
        if driver:
            target = self.root / "drivers" / driver
            target.mkdir(parents=True, exist_ok=True)
            os.symlink(target, card / "device" / "driver")
        return card


class DetectVendorTests(DrmTreeMixin, unittest.TestCase):
    def test_tool_priority(self):
        missing = self.root / "no-rocm"
        self.assertEqual(detect_gpu_vendor(_which("nvidia-smi", "radeontop"), self.drm, missing), GpuVendor.NVIDIA)
        self.assertEqual(detect_gpu_vendor(_which("radeontop", "intel_gpu_top"), self.drm, missing), GpuVendor.AMD)
        self.assertEqual(detect_gpu_vendor(_which("rocm-smi"), self.drm, missing), GpuVendor.AMD)
        self.assertEqual(detect_gpu_vendor(_which("intel_gpu_top"), self.drm, missing), GpuVendor.INTEL)

    def test_rocm_install_path(self):
        rocm = self.root / "rocm-smi"
        rocm.write_text("", encoding="utf-8")
        self.assertEqual(detect_gpu_vendor(_which(), self.drm, rocm), GpuVendor.AMD)

    def test_driver_binding_fallback(self):
        missing = self.root / "no-rocm"
        self.make_card("card0-DP-1", driver="amdgpu")
        self.make_card("card1", driver="i915")
        self.assertEqual(detect_gpu_vendor(_which(), self.drm, missing), GpuVendor.INTEL)

    def test_nothing_found(self):
        self.make_card("card0")
        self.assertEqual(detect_gpu_vendor(_which(), self.drm, self.root / "no-rocm"), GpuVendor.NONE)

    def test_card_dirs_skip_connectors(self):
        self.make_card("card1")
        self.make_card("card0")
        self.make_card("card0-HDMI-A-1")
        (self.drm / "renderD128").mkdir()
        self.assertEqual([c.name for c in card_dirs(self.drm)], ["card0", "card1"])


class SysfsProbeTests(DrmTreeMixin, unittest.TestCase):
    def test_amd_first_parsable_node_wins(self):
        self.make_card("card0")
        (self.drm / "card0" / "device" / "gpu_busy_percent").write_text("n/a\n", encoding="utf-8")
        self.make_card("card1")
        (self.drm / "card1" / "device" / "gpu_busy_percent").write_text("42\n", encoding="utf-8")
        self.assertEqual(gpu._AmdSysfsProbe(self.drm).read(), 42.0)

    def test_intel_frequency_ratio(self):
        card = self.make_card("card0")
        gt = card / "gt" / "gt0"
        gt.mkdir(parents=True)
        (gt / "rps_cur_freq_mhz").write_text("300\n", encoding="utf-8")
        (gt / "rps_max_freq_mhz").write_text("1200\n", encoding="utf-8")
        self.assertAlmostEqual(gpu._IntelFreqProbe(self.drm).read(), 25.0)

    def test_intel_zero_max_is_skipped(self):
        card = self.make_card("card0")
        gt = card / "gt" / "gt0"
        gt.mkdir(parents=True)
        (gt / "rps_cur_freq_mhz").write_text("300", encoding="utf-8")
        (gt / "rps_max_freq_mhz").write_text("0", encoding="utf-8")
        self.assertIsNone(gpu._IntelFreqProbe(self.drm).read())


class ToolOutputTests(unittest.TestCase):
    def test_nvidia_smi(self):
        self.assertEqual(parse_nvidia_smi("37\n"), 37.0)
        self.assertEqual(parse_nvidia_smi("12\n80\n"), 12.0)
        self.assertIsNone(parse_nvidia_smi("[N/A]\n"))
        self.assertIsNone(parse_nvidia_smi(""))

    def test_radeontop(self):
        line = "1700000000.123456: bus 03, gpu 12.50%, ee 0.00%, vgt 3.33%, ta 5.00%"
        self.assertEqual(parse_radeontop("Dumping to -, line limit 1.\n" + line + "\n"), 12.5)
        self.assertIsNone(parse_radeontop("Dumping to -, line limit 1.\n"))

    def test_intel_gpu_top(self):
        output = '[\n{\n"engines": {\n"Render/3D/0": {\n"busy": 18.75,\n"sema": 0.0\n}}}'
        self.assertEqual(parse_intel_gpu_top(output), 18.75)
        self.assertIsNone(parse_intel_gpu_top('{"engines": {}}'))


class NvidiaSmiProbeTests(unittest.TestCase):
    def test_success(self):
        done = subprocess.CompletedProcess(args=[], returncode=0, stdout="55\n", stderr="")
        with patch.object(gpu.subprocess, "run", return_value=done) as run:
            self.assertEqual(gpu._NvidiaSmiProbe().read(), 55.0)
        args = run.call_args.args[0]
        self.assertEqual(args[0], "nvidia-smi")
        self.assertIn("--format=csv,noheader,nounits", args)

    def test_non_zero_exit(self):
        done = subprocess.CompletedProcess(args=[], returncode=9, stdout="55\n", stderr="")
        with patch.object(gpu.subprocess, "run", return_value=done):
            self.assertIsNone(gpu._NvidiaSmiProbe().read())

    def test_missing_binary(self):
        with patch.object(gpu.subprocess, "run", side_effect=FileNotFoundError("nvidia-smi")):
            self.assertIsNone(gpu._NvidiaSmiProbe().read())


class IntelGpuTopProbeTests(unittest.TestCase):
    def test_keeps_output_from_timeout(self):
        exc = subprocess.TimeoutExpired(cmd="intel_gpu_top", timeout=1.0, output=b'{"busy": 7.5}')
        with patch.object(gpu.subprocess, "run", side_effect=exc):
            self.assertEqual(gpu._IntelGpuTopProbe().read(), 7.5)

    def test_timeout_without_output(self):
        exc = subprocess.TimeoutExpired(cmd="intel_gpu_top", timeout=1.0)
        with patch.object(gpu.subprocess, "run", side_effect=exc):
            self.assertIsNone(gpu._IntelGpuTopProbe().read())


class GpuCollectorTests(unittest.TestCase):
    def test_first_probe_with_value_wins(self):
        collector = GpuCollector(vendor=GpuVendor.AMD, probes=[_StaticProbe([None]), _StaticProbe([33.0])])
        self.assertEqual(collector.poll(), 33.0)
        self.assertEqual(collector.current(), 33.0)

    def test_missing_value_keeps_previous_percentage(self):
        collector = GpuCollector(vendor=GpuVendor.NVIDIA, probes=[_StaticProbe([61.0, None])])
        collector.poll()
        self.assertIsNone(collector.poll())
        self.assertEqual(collector.current(), 61.0)

    def test_no_vendor_is_disabled(self):
        collector = GpuCollector(vendor=GpuVendor.NONE)
        self.assertFalse(collector.enabled)
        self.assertEqual(collector.probes, [])
        self.assertEqual(collector.current(), 0.0)

    def test_vendor_probe_order(self):
        self.assertEqual(build_gpu_probes(GpuVendor.NVIDIA)[-1].name, "nvidia-smi")
        self.assertEqual([p.name for p in build_gpu_probes(GpuVendor.AMD)], ["amdgpu-sysfs", "radeontop"])
        self.assertEqual([p.name for p in build_gpu_probes(GpuVendor.INTEL)], ["i915-sysfs", "intel_gpu_top"])


if __name__ == "__main__":
    unittest.main()
