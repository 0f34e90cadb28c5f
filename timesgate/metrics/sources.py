"""Hardware sources that feed the sensor aggregator.

Each reader is best-effort: a chip, command or volume that fails to report is
logged and skipped so the rest of the poll still produces data.

  - psutil: temperature chips, CPU total load, memory, fixed volumes
  - nvidia-smi: NVIDIA GPU core temperature (not exposed through hwmon)
"""

from __future__ import annotations

import logging
import subprocess
from typing import Any, Protocol

import psutil

from timesgate.metrics.aggregator import disk_usage
from timesgate.metrics.models import (
    DiskUsage,
    HardwareComponent,
    HardwareKind,
    SensorKind,
    SensorReading,
)

logger = logging.getLogger(__name__)


# hwmon / psutil chip name → hardware kind
_CHIP_KINDS: dict[str, HardwareKind] = {
    "coretemp": HardwareKind.CPU,
    "k10temp": HardwareKind.CPU,
    "zenpower": HardwareKind.CPU,
    "cpu_thermal": HardwareKind.CPU,
    "amdgpu": HardwareKind.GPU_AMD,
    "radeon": HardwareKind.GPU_AMD,
    "nouveau": HardwareKind.GPU_NVIDIA,
    "nvidia": HardwareKind.GPU_NVIDIA,
    "i915": HardwareKind.GPU_INTEL,
    "xe": HardwareKind.GPU_INTEL,
    "acpitz": HardwareKind.MOTHERBOARD,
}

_MOTHERBOARD_PREFIXES = ("nct", "it87", "it86", "f71", "w83", "asus")


class HardwareSource(Protocol):
    def read_components(self) -> list[HardwareComponent]: ...


def chip_kind(chip: str) -> HardwareKind:
    """Map a psutil sensor chip name to a hardware kind."""
    chip = chip.lower()
    if chip in _CHIP_KINDS:
        return _CHIP_KINDS[chip]
    if chip.startswith(_MOTHERBOARD_PREFIXES):
        return HardwareKind.MOTHERBOARD
    return HardwareKind.OTHER


def _run(cmd: list[str], timeout: int = 5) -> str:
    """Run a subprocess and return stdout, or empty string on failure."""
    try:
        result = subprocess.run(
            cmd,
            capture_output=True, text=True, timeout=timeout,
            check=False,
        )
        return result.stdout.strip()
    except Exception:
        return ""


# ──────────────────────────────────────────────────────────────────
# psutil
# ──────────────────────────────────────────────────────────────────

class PsutilSource:
    """Temperatures and CPU load via psutil."""

    def __init__(self) -> None:
        # First call primes the counters; cpu_percent(None) returns 0.0 then.
        psutil.cpu_percent(interval=None)

    def read_components(self) -> list[HardwareComponent]:
        components: dict[str, HardwareComponent] = {}

        for chip, entries in self._temperatures().items():
            kind = chip_kind(chip)
            component = components.setdefault(chip, HardwareComponent(kind=kind, name=chip))
            for index, entry in enumerate(entries):
                try:
                    label = entry.label or f"{chip} #{index + 1}"
                    component.readings.append(
                        SensorReading(kind, SensorKind.TEMPERATURE, label, float(entry.current))
                    )
                except (AttributeError, TypeError, ValueError) as exc:
                    logger.debug("Skipping sensor %d on %s: %s", index, chip, exc)

        cpu = components.setdefault(
            "cpu", HardwareComponent(kind=HardwareKind.CPU, name="cpu")
        )
        try:
            total = float(psutil.cpu_percent(interval=None))
            cpu.readings.append(
                SensorReading(HardwareKind.CPU, SensorKind.LOAD, "CPU Total", total)
            )
        except Exception as exc:
            logger.debug("CPU load unavailable: %s", exc)

        return list(components.values())

    @staticmethod
    def _temperatures() -> dict[str, list[Any]]:
        reader = getattr(psutil, "sensors_temperatures", None)
        if reader is None:  # not provided on Windows / macOS
            return {}
        try:
            return reader() or {}
        except Exception as exc:
            logger.debug("sensors_temperatures failed: %s", exc)
            return {}


# ──────────────────────────────────────────────────────────────────
# nvidia-smi
# ──────────────────────────────────────────────────────────────────

class NvidiaSmiSource:
    """NVIDIA GPU core temperature via nvidia-smi."""

    def read_components(self) -> list[HardwareComponent]:
        out = _run([
            "nvidia-smi",
            "--query-gpu=name,temperature.gpu",
            "--format=csv,noheader,nounits",
        ])
        components = []
        for line in out.splitlines():
            parts = line.split(",")
            if len(parts) < 2:
                continue
            name = parts[0].strip()
            try:
                temp = float(parts[1].strip())
            except ValueError:
                continue
            components.append(HardwareComponent(
                kind=HardwareKind.GPU_NVIDIA,
                name=name,
                readings=[
                    SensorReading(HardwareKind.GPU_NVIDIA, SensorKind.TEMPERATURE, "GPU Core", temp)
                ],
            ))
        return components


# ──────────────────────────────────────────────────────────────────
# Memory / disks
# ──────────────────────────────────────────────────────────────────

def read_memory() -> tuple[int, int]:
    """Return ``(total, used)`` physical memory in bytes, ``(0, 0)`` on failure."""
    try:
        vm = psutil.virtual_memory()
    except Exception as exc:
        logger.debug("virtual_memory failed: %s", exc)
        return 0, 0
    return int(vm.total), int(vm.total - vm.available)


def _is_fixed(partition: Any) -> bool:
    opts = (partition.opts or "").lower()
    if "cdrom" in opts or "removable" in opts:
        return False
    return bool(partition.fstype)


def read_disks() -> list[DiskUsage]:
    """Enumerate fixed, mounted local volumes; unreadable ones are skipped."""
    try:
        partitions = psutil.disk_partitions(all=False)
    except Exception as exc:
        logger.debug("disk_partitions failed: %s", exc)
        return []

    disks: list[DiskUsage] = []
    seen: set[str] = set()
    for part in partitions:
        if not _is_fixed(part) or part.mountpoint in seen:
            continue
        try:
            usage = psutil.disk_usage(part.mountpoint)
        except (OSError, PermissionError) as exc:
            logger.debug("Skipping volume %s: %s", part.mountpoint, exc)
            continue
        seen.add(part.mountpoint)
        disks.append(disk_usage(
            name=part.device,
            mount_point=part.mountpoint,
            total=int(usage.total),
            available=int(usage.free),
        ))
    return disks
