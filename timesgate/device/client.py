"""Divoom LAN / cloud client.

LAN commands are ``POST http://<address>/post`` with a JSON body whose
``Command`` field selects the operation.  The device id needed for
activation is only known to the Divoom cloud, so :meth:`get_lcd_info` first
resolves the address through the same-LAN device list.

Uses httpx for async HTTP.  No device required to import; raises
DeviceClientError at call time if the display is unreachable.
"""

from __future__ import annotations

import logging
import os
from typing import Any, Sequence

import httpx

from timesgate.device.models import (
    PC_MONITOR_CLOCK_ID,
    DivoomDevice,
    LcdInfoResponse,
)

logger = logging.getLogger(__name__)

DEFAULT_CLOUD_URL = "https://app.divoom-gz.com"
LAN_TIMEOUT = 0.5
CLOUD_TIMEOUT = 10.0


class DeviceClientError(Exception):
    """Base error for device client failures."""


class DeviceConnectionError(DeviceClientError):
    """Raised when the device or cloud API is network-unreachable."""


class DeviceCommandError(DeviceClientError):
    """Raised when a command is rejected (HTTP error or non-zero error_code)."""


class DeviceNotFoundError(DeviceClientError):
    """Raised when the cloud does not know a device at the given address."""


class DivoomClient:
    """Thin async wrapper around the Divoom LAN and cloud APIs.

    A single :class:`httpx.AsyncClient` is reused across calls for connection
    pooling and keep-alive.  Call :meth:`aclose` (or use as an async context
    manager) when done.
    """

    def __init__(
        self,
        cloud_url: str | None = None,
        lan_timeout: float = LAN_TIMEOUT,
        cloud_timeout: float = CLOUD_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.cloud_url = (
            cloud_url or os.environ.get("TIMESGATE_CLOUD_URL", DEFAULT_CLOUD_URL)
        ).rstrip("/")
        self.lan_timeout = lan_timeout
        self.cloud_timeout = cloud_timeout
        self._client: httpx.AsyncClient = httpx.AsyncClient(transport=transport)

    async def aclose(self) -> None:
        """Close the underlying HTTP client and free resources."""
        await self._client.aclose()

    async def __aenter__(self) -> "DivoomClient":
        return self

    async def __aexit__(self, *_: object) -> None:
        await self.aclose()

    # ------------------------------------------------------------------ #
    # Cloud API
    # ------------------------------------------------------------------ #

    async def discover(self) -> list[DivoomDevice]:
        """Return devices the cloud sees on this LAN, de-duplicated by IP then MAC."""
        result = await self._request(
            "POST", f"{self.cloud_url}/Device/ReturnSameLANDevice", timeout=self.cloud_timeout
        )
        raw = result.get("DeviceList") if isinstance(result, dict) else None
        devices: list[DivoomDevice] = []
        for item in raw if isinstance(raw, list) else []:
            if not isinstance(item, dict):
                continue
            device = DivoomDevice.from_json(item)
            duplicate = any(
                (device.ip_address and d.ip_address == device.ip_address)
                or (device.mac_address and d.mac_address == device.mac_address)
                for d in devices
            )
            if not duplicate:
                devices.append(device)
        return devices

    async def get_lcd_info(self, address: str) -> LcdInfoResponse:
        """Return the screen/independence layout for the device at *address*."""
        devices = await self.discover()
        device = next((d for d in devices if d.ip_address == address), None)
        if device is None or not device.device_id:
            raise DeviceNotFoundError(f"Device with IP {address} not found")

        result = await self._request(
            "GET",
            f"{self.cloud_url}/Channel/Get5LcdInfoV2",
            params={"DeviceType": "LCD", "DeviceId": device.device_id},
            timeout=self.cloud_timeout,
        )
        return LcdInfoResponse.from_json(device.device_id, result if isinstance(result, dict) else {})

    # ------------------------------------------------------------------ #
    # LAN commands
    # ------------------------------------------------------------------ #

    async def activate(
        self, address: str, device_id: int, lcd_independence: int, screen_index: int
    ) -> None:
        """Switch *screen_index* to the PC-monitor clock face."""
        await self.send_command(address, {
            "Command": "Channel/SetClockSelectId",
            "LcdIndependence": lcd_independence,
            "DeviceId": device_id,
            "LcdIndex": screen_index,
            "ClockId": PC_MONITOR_CLOCK_ID,
        })

    async def push(self, address: str, screen_index: int, values: Sequence[str]) -> None:
        """Send the six formatted metric strings to *screen_index*."""
        await self.send_command(address, {
            "Command": "Device/UpdatePCParaInfo",
            "ScreenList": [{"LcdId": screen_index, "DispData": list(values)}],
        })

    async def send_command(self, address: str, command: dict) -> dict:
        """POST a raw LAN command and return the decoded reply."""
        result = await self._request(
            "POST", f"http://{address}/post", json=command, timeout=self.lan_timeout
        )
        return result if isinstance(result, dict) else {}

    # ------------------------------------------------------------------ #
    # Private helpers
    # ------------------------------------------------------------------ #

    async def _request(self, method: str, url: str, timeout: float, **kwargs: Any) -> Any:
        try:
            response = await self._client.request(method, url, timeout=timeout, **kwargs)
        except (httpx.ConnectError, httpx.TimeoutException, httpx.NetworkError) as exc:
            raise DeviceConnectionError(f"Cannot reach {url}: {exc}") from exc
        if response.status_code >= 400:
            raise DeviceCommandError(f"{url} returned status {response.status_code}")
        try:
            data = response.json()
        except ValueError as exc:
            raise DeviceCommandError(f"{url} returned invalid JSON: {exc}") from exc
        self._raise_for_error_code(url, data)
        return data

    @staticmethod
    def _raise_for_error_code(url: str, data: Any) -> None:
        if not isinstance(data, dict):
            return
        code = data.get("error_code", data.get("ReturnCode"))
        if code not in (None, 0):
            message = data.get("ReturnMessage") or ""
            raise DeviceCommandError(f"{url} rejected command (code {code}) {message}".rstrip())
