"""Tests for the six-field display payload."""

from __future__ import annotations

from timesgate.metrics.aggregator import disk_usage
from timesgate.metrics.models import DiskUsage, SystemMetrics
from timesgate.sync.payload import format_payload, round_half_up


def _disk(percent: float) -> DiskUsage:
    return DiskUsage(
        name="d", mount_point="/d", total_space=100, available_space=0,
        used_space=100, usage_percent=percent,
    )


class TestFormatPayload:
    def test_reference_snapshot(self):
        metrics = SystemMetrics(
            cpu_usage=53.7,
            cpu_temperature=61.2,
            gpu_temperature=None,
            memory_total=1000,
            memory_used=500,
            disks=(_disk(10.4), _disk(88.9)),
        )
        assert format_payload(metrics) == ["54%", "0%", "61 C", "N/A", "50%", "89%"]

    def test_empty_snapshot(self):
        assert format_payload(SystemMetrics()) == ["0%", "0%", "N/A", "N/A", "0%", "0%"]

    def test_gpu_usage_is_constant(self):
        metrics = SystemMetrics(cpu_usage=99.0, gpu_temperature=80.0)
        assert format_payload(metrics)[1] == "0%"
        assert format_payload(metrics)[3] == "80 C"

    def test_real_disk_usage(self):
        metrics = SystemMetrics(disks=(disk_usage("/dev/nvme0n1p2", "/", 400, 100),))
        assert format_payload(metrics)[5] == "75%"

    def test_negative_temperature(self):
        assert format_payload(SystemMetrics(cpu_temperature=-3.4))[2] == "-3 C"


class TestRoundHalfUp:
    def test_halves_round_up(self):
        assert round_half_up(0.5) == 1
        assert round_half_up(2.5) == 3
        assert round_half_up(-2.5) == -2

    def test_plain(self):
        assert round_half_up(61.2) == 61
        assert round_half_up(88.9) == 89
