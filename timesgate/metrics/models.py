"""Data models for host telemetry."""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from enum import Enum


class HardwareKind(str, Enum):
    CPU = "cpu"
    GPU_AMD = "gpu_amd"
    GPU_NVIDIA = "gpu_nvidia"
    GPU_INTEL = "gpu_intel"
    MOTHERBOARD = "motherboard"
    OTHER = "other"

    @property
    def is_gpu(self) -> bool:
        return self in (HardwareKind.GPU_AMD, HardwareKind.GPU_NVIDIA, HardwareKind.GPU_INTEL)


class SensorKind(str, Enum):
    TEMPERATURE = "temperature"
    LOAD = "load"
    OTHER = "other"


@dataclass(frozen=True)
class SensorReading:
    """One raw value as reported by a hardware sensor."""

    hardware_kind: HardwareKind
    sensor_kind: SensorKind
    name: str
    value: float | None  # None when the sensor did not report


@dataclass
class HardwareComponent:
    """A piece of hardware and the readings it reported in one poll."""

    kind: HardwareKind
    name: str = ""
    readings: list[SensorReading] = field(default_factory=list)


@dataclass(frozen=True)
class DiskUsage:
    name: str
    mount_point: str
    total_space: int
    available_space: int
    used_space: int
    usage_percent: float  # 0 when total_space is 0


@dataclass(frozen=True)
class SystemMetrics:
    """Canonical host metrics for one poll. Never mutated after creation."""

    cpu_usage: float = 0.0
    cpu_temperature: float | None = None
    gpu_temperature: float | None = None
    memory_total: int = 0
    memory_used: int = 0
    disks: tuple[DiskUsage, ...] = ()

    def to_dict(self) -> dict:
        """Serialize for the JSON API."""
        data = dataclasses.asdict(self)
        data["disks"] = [dataclasses.asdict(d) for d in self.disks]
        return data
