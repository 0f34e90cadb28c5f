"""Reduce noisy hardware sensor readings to one canonical snapshot.

Many machines expose several competing temperature sensors per chip (per-core,
package, junction, memory ...).  The rules below pick one value per quantity:

CPU temperature
    A reading named like ``package`` or ``total`` is *authoritative* and
    overwrites whatever was chosen before (the last authoritative reading
    wins).  Until one is seen, the first valid reading is kept provisionally.

GPU temperature
    A reading named like ``core`` (but not ``memory``) is authoritative.
    ``memory`` / ``junction`` sensors never become provisional; they are only
    used when nothing else was found at all.

Temperatures outside [-30, 200] °C are treated as disconnected sensors.  If no
CPU temperature came from CPU hardware, the motherboard is searched for a
CPU-ish sensor name as a last resort.
"""

from __future__ import annotations

from enum import Enum
from typing import Callable, Iterable

from timesgate.metrics.models import (
    DiskUsage,
    HardwareComponent,
    HardwareKind,
    SensorKind,
    SensorReading,
    SystemMetrics,
)

MIN_VALID_TEMPERATURE = -30.0
MAX_VALID_TEMPERATURE = 200.0

_MOTHERBOARD_CPU_HINTS = ("cpu", "package", "tctl", "tdie", "processor")


class Decision(str, Enum):
    REJECT = "reject"
    PROVISIONAL = "provisional"
    AUTHORITATIVE = "authoritative"
    FALLBACK = "fallback"  # GPU memory/junction: only if nothing else turns up


def is_valid_temperature(value: float | None) -> bool:
    return value is not None and MIN_VALID_TEMPERATURE <= value <= MAX_VALID_TEMPERATURE


def classify_cpu_temperature(reading: SensorReading) -> Decision:
    if not is_valid_temperature(reading.value):
        return Decision.REJECT
    name = (reading.name or "").lower()
    if "package" in name or "total" in name:
        return Decision.AUTHORITATIVE
    return Decision.PROVISIONAL


def classify_gpu_temperature(reading: SensorReading) -> Decision:
    if not is_valid_temperature(reading.value):
        return Decision.REJECT
    name = (reading.name or "").lower()
    if "core" in name and "memory" not in name:
        return Decision.AUTHORITATIVE
    if "memory" in name or "junction" in name:
        return Decision.FALLBACK
    return Decision.PROVISIONAL


def select_temperature(
    readings: Iterable[SensorReading],
    classify: Callable[[SensorReading], Decision],
) -> float | None:
    """Fold *readings* in reported order through *classify* and return the winner."""
    chosen: float | None = None
    fallback: float | None = None
    for reading in readings:
        decision = classify(reading)
        if decision is Decision.AUTHORITATIVE:
            chosen = float(reading.value)
        elif decision is Decision.PROVISIONAL:
            if chosen is None:
                chosen = float(reading.value)
        elif decision is Decision.FALLBACK:
            if fallback is None:
                fallback = float(reading.value)
    return chosen if chosen is not None else fallback


class SensorAggregator:
    """Stateless reducer from hardware components to :class:`SystemMetrics`."""

    def aggregate(
        self,
        components: Iterable[HardwareComponent],
        memory_total: int = 0,
        memory_used: int = 0,
        disks: Iterable[DiskUsage] = (),
    ) -> SystemMetrics:
        components = list(components)
        cpu_temps: list[SensorReading] = []
        gpu_temps: list[SensorReading] = []
        cpu_usage = 0.0

        for component in components:
            for reading in component.readings:
                if reading.value is None:
                    continue
                if reading.sensor_kind is SensorKind.TEMPERATURE:
                    if component.kind is HardwareKind.CPU:
                        cpu_temps.append(reading)
                    elif component.kind.is_gpu:
                        gpu_temps.append(reading)
                elif reading.sensor_kind is SensorKind.LOAD:
                    # Per-core loads are ignored; only the total counts.
                    if component.kind is HardwareKind.CPU and "total" in (reading.name or "").lower():
                        cpu_usage = float(reading.value)

        cpu_temperature = select_temperature(cpu_temps, classify_cpu_temperature)
        if cpu_temperature is None:
            cpu_temperature = self._motherboard_cpu_temperature(components)

        return SystemMetrics(
            cpu_usage=cpu_usage,
            cpu_temperature=cpu_temperature,
            gpu_temperature=select_temperature(gpu_temps, classify_gpu_temperature),
            memory_total=memory_total,
            memory_used=memory_used,
            disks=tuple(disks),
        )

    @staticmethod
    def _motherboard_cpu_temperature(components: list[HardwareComponent]) -> float | None:
        for component in components:
            if component.kind is not HardwareKind.MOTHERBOARD:
                continue
            for reading in component.readings:
                if reading.sensor_kind is not SensorKind.TEMPERATURE:
                    continue
                if not is_valid_temperature(reading.value):
                    continue
                name = (reading.name or "").lower()
                if any(hint in name for hint in _MOTHERBOARD_CPU_HINTS):
                    return float(reading.value)
        return None


def disk_usage(name: str, mount_point: str, total: int, available: int) -> DiskUsage:
    """Build a :class:`DiskUsage`, computing used space and percentage."""
    used = max(total - available, 0)
    percent = (used / total * 100.0) if total > 0 else 0.0
    return DiskUsage(
        name=name,
        mount_point=mount_point,
        total_space=total,
        available_space=available,
        used_space=used,
        usage_percent=percent,
    )
