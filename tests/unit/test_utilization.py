import sys
import unittest
from pathlib import Path
from types import SimpleNamespace
from unittest.mock import patch

ROOT = Path(__file__).resolve().parents[2]
sys.path.insert(0, str(ROOT / "packages" / "telemetry"))

from deskpulse_telemetry import utilization
from deskpulse_telemetry.utilization import UtilizationCollector, usage_percent


class UsagePercentTests(unittest.TestCase):
    def test_zero_total_is_zero(self):
        self.assertEqual(usage_percent(0, 0), 0.0)
        self.assertEqual(usage_percent(512, 0), 0.0)

    def test_used_over_total(self):
        self.assertAlmostEqual(usage_percent(4, 16), 25.0)


class UtilizationCollectorTests(unittest.TestCase):
    def test_poll_publishes_metrics(self):
        vm = SimpleNamespace(used=3 * 1024**3, total=12 * 1024**3)
        with patch.object(utilization.psutil, "cpu_percent", return_value=17.5), patch.object(
            utilization.psutil, "virtual_memory", return_value=vm
        ):
            collector = UtilizationCollector()
            metrics = collector.poll()

        self.assertEqual(metrics.cpu_percent, 17.5)
        self.assertAlmostEqual(metrics.memory_percent, 25.0)
        self.assertEqual(collector.current().memory_total, 12 * 1024**3)

    def test_zero_memory_total_does_not_divide(self):
        vm = SimpleNamespace(used=0, total=0)
        with patch.object(utilization.psutil, "cpu_percent", return_value=0.0), patch.object(
            utilization.psutil, "virtual_memory", return_value=vm
        ):
            metrics = UtilizationCollector().poll()
        self.assertEqual(metrics.memory_percent, 0.0)

    def test_failed_sample_keeps_previous_metrics(self):
        vm = SimpleNamespace(used=1, total=4)
        with patch.object(utilization.psutil, "cpu_percent", return_value=10.0), patch.object(
            utilization.psutil, "virtual_memory", return_value=vm
        ):
            collector = UtilizationCollector()
            collector.poll()

        with patch.object(utilization.psutil, "cpu_percent", side_effect=OSError("gone")):
            self.assertIsNone(collector.poll())
        self.assertEqual(collector.current().cpu_percent, 10.0)


if __name__ == "__main__":
    unittest.main()
