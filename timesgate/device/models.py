"""Data models reported by Divoom devices and the Divoom cloud API."""

from __future__ import annotations

from dataclasses import dataclass

# Clock face that accepts externally pushed PC metrics.
PC_MONITOR_CLOCK_ID = 625

_HARDWARE_MODELS = {
    400: "Times Gate",
    401: "Pixoo 64",
    402: "Pixoo 32",
    403: "Pixoo 16",
    404: "Ditoo",
    405: "Ditoo Plus",
    406: "Ditoo Pro",
    407: "Pixoo Max",
    408: "Pixoo Mini",
}


def _as_int(value: object) -> int:
    """Coerce a JSON number to int; anything else becomes 0."""
    if isinstance(value, bool):
        return 0
    if isinstance(value, (int, float)):
        return int(value)
    return 0


@dataclass(frozen=True)
class LcdInfo:
    lcd_clock_id: int = 0


@dataclass(frozen=True)
class LcdIndependenceInfo:
    lcd_independence: int = 0
    lcd_list: tuple[LcdInfo, ...] = ()


@dataclass(frozen=True)
class LcdInfoResponse:
    device_id: int
    independence_list: tuple[LcdIndependenceInfo, ...] = ()

    @classmethod
    def from_json(cls, device_id: int, data: dict) -> LcdInfoResponse:
        """Parse a ``Channel/Get5LcdInfoV2`` reply."""
        groups = []
        raw_groups = data.get("LcdIndependenceList")
        for item in raw_groups if isinstance(raw_groups, list) else []:
            if not isinstance(item, dict):
                continue
            raw_lcds = item.get("LcdList")
            lcds = tuple(
                LcdInfo(lcd_clock_id=_as_int(lcd.get("LcdClockId")))
                for lcd in (raw_lcds if isinstance(raw_lcds, list) else [])
                if isinstance(lcd, dict)
            )
            groups.append(LcdIndependenceInfo(
                lcd_independence=_as_int(item.get("LcdIndependence")),
                lcd_list=lcds,
            ))
        return cls(device_id=device_id, independence_list=tuple(groups))

    def is_telemetry_active(self, screen_index: int) -> bool:
        """Heuristic: the PC-monitor clock is selected on *screen_index*.

        The device has no explicit acknowledgement for activation, so this
        only tells us what the cloud last saw.
        """
        if not self.independence_list:
            return False
        lcds = self.independence_list[0].lcd_list
        if not 0 <= screen_index < len(lcds):
            return False
        return lcds[screen_index].lcd_clock_id == PC_MONITOR_CLOCK_ID


@dataclass
class DivoomDevice:
    name: str
    device_type: str
    ip_address: str | None = None
    mac_address: str | None = None
    device_id: int | None = None
    is_connected: bool = True

    @classmethod
    def from_json(cls, data: dict) -> DivoomDevice:
        """Parse one entry of ``Device/ReturnSameLANDevice``."""
        return cls(
            name=data.get("DeviceName") or "Unknown Device",
            device_type=_HARDWARE_MODELS.get(_as_int(data.get("Hardware")), "Unknown Divoom Device"),
            ip_address=data.get("DevicePrivateIP") or None,
            mac_address=data.get("DeviceMac") or None,
            device_id=_as_int(data.get("DeviceId")),
        )

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "device_type": self.device_type,
            "ip_address": self.ip_address,
            "mac_address": self.mac_address,
            "device_id": self.device_id,
            "is_connected": self.is_connected,
        }
