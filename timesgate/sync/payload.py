"""Format a SystemMetrics snapshot into the six strings the display shows.

Order is fixed by the PC-monitor clock face:

    CPU load, GPU load, CPU temp, GPU temp, RAM usage, fullest disk
"""

from __future__ import annotations

import math

from timesgate.metrics.models import SystemMetrics

NOT_AVAILABLE = "N/A"
# GPU load is not measured; the slot is always sent as a constant.
GPU_USAGE_PLACEHOLDER = "0%"


def round_half_up(value: float) -> int:
    """Round .5 away from zero on the positive side (2.5 -> 3, not 2)."""
    return int(math.floor(value + 0.5))


def _percent(value: float) -> str:
    return f"{round_half_up(value)}%"


def _temperature(value: float | None) -> str:
    if value is None:
        return NOT_AVAILABLE
    return f"{round_half_up(value)} C"


def format_payload(metrics: SystemMetrics) -> list[str]:
    memory_pct = (
        metrics.memory_used / metrics.memory_total * 100 if metrics.memory_total > 0 else 0.0
    )
    disk_pct = max((d.usage_percent for d in metrics.disks), default=0.0)
    return [
        _percent(metrics.cpu_usage),
        GPU_USAGE_PLACEHOLDER,
        _temperature(metrics.cpu_temperature),
        _temperature(metrics.gpu_temperature),
        _percent(memory_pct),
        _percent(disk_pct),
    ]
