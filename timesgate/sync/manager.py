"""Per-device PC-monitor sync loops.

Each enabled display gets its own loop that polls host metrics and pushes the
six formatted strings every :data:`SEND_INTERVAL` seconds.  Before the first
loop starts the display must be switched to the PC-monitor clock face
(activation handshake), which is retried a fixed number of times.

State per device::

    IDLE --enable--> ACTIVATING --ok--> ACTIVE --stop--> IDLE
                               \\--exhausted--> FAILED --enable--> ACTIVATING

Loops are tagged with a generation number.  ``stop()`` only cancels future
ticks; a tick already waiting on the network finishes on its own, and its
result is dropped if the generation it belongs to is no longer current.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Awaitable, Callable, Protocol, Sequence

from timesgate.device.models import LcdInfoResponse
from timesgate.metrics.models import SystemMetrics
from timesgate.sync.payload import format_payload
from timesgate.sync.settings import SettingsStore

logger = logging.getLogger(__name__)

SEND_INTERVAL = 2.0  # seconds between pushes
ACTIVATION_BACKOFF = 3.0  # seconds between activation attempts
ACTIVATION_ATTEMPTS = 4  # 1 initial + 3 retries


class MetricsSource(Protocol):
    async def fetch(self) -> SystemMetrics: ...


class DeviceProtocol(Protocol):
    async def get_lcd_info(self, address: str) -> LcdInfoResponse: ...

    async def activate(
        self, address: str, device_id: int, lcd_independence: int, screen_index: int
    ) -> None: ...

    async def push(self, address: str, screen_index: int, values: Sequence[str]) -> None: ...


class DeviceSyncState(str, Enum):
    IDLE = "idle"
    ACTIVATING = "activating"
    ACTIVE = "active"
    FAILED = "failed"


@dataclass
class DeviceStatus:
    """Runtime-only view of one device.  Never persisted."""

    state: DeviceSyncState = DeviceSyncState.IDLE
    screen_index: int | None = None
    activation_attempt: int = 0
    pushes: int = 0
    push_failures: int = 0
    last_push_at: str | None = None
    last_error: str | None = None

    def to_dict(self) -> dict:
        return {
            "state": self.state.value,
            "screen_index": self.screen_index,
            "activation_attempt": self.activation_attempt,
            "pushes": self.pushes,
            "push_failures": self.push_failures,
            "last_push_at": self.last_push_at,
            "last_error": self.last_error,
        }


@dataclass
class _Loop:
    generation: int
    screen_index: int
    task: asyncio.Task


class DeviceSyncManager:
    """Owns every device sync loop; all mutation goes through this object."""

    def __init__(
        self,
        provider: MetricsSource,
        client: DeviceProtocol,
        store: SettingsStore | None = None,
        interval: float = SEND_INTERVAL,
        backoff: float = ACTIVATION_BACKOFF,
        attempts: int = ACTIVATION_ATTEMPTS,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.provider = provider
        self.client = client
        self.store = store or SettingsStore()
        self.interval = interval
        self.backoff = backoff
        self.attempts = attempts
        self._sleep = sleep
        self._loops: dict[str, _Loop] = {}
        self._status: dict[str, DeviceStatus] = {}
        self._intent: dict[str, int] = {}
        self._generations = itertools.count(1)
        self._inflight: set[asyncio.Task] = set()

    # ── Loop control ───────────────────────────────────────────────

    def start(self, address: str, screen_index: int) -> None:
        """(Re)start the push loop for *address*.  Ticks once immediately."""
        if address in self._loops:
            self.stop(address)

        self._bump_intent(address)
        generation = next(self._generations)
        task = asyncio.create_task(
            self._run(address, screen_index, generation),
            name=f"pc-monitor:{address}",
        )
        self._loops[address] = _Loop(generation=generation, screen_index=screen_index, task=task)

        status = self._status_for(address)
        status.state = DeviceSyncState.ACTIVE
        status.screen_index = screen_index
        logger.info("PC monitor loop started for %s (screen %d)", address, screen_index)

    def stop(self, address: str) -> None:
        """Cancel future ticks for *address*; no-op if nothing is running."""
        self._bump_intent(address)
        loop = self._loops.pop(address, None)
        status = self._status.get(address)
        if status is not None and status.state in (DeviceSyncState.ACTIVE, DeviceSyncState.ACTIVATING):
            status.state = DeviceSyncState.IDLE
        if loop is None:
            return
        loop.task.cancel()
        logger.info("PC monitor loop stopped for %s", address)

    async def stop_all(self) -> None:
        """Stop every loop and drop in-flight ticks (process shutdown)."""
        tasks = [loop.task for loop in self._loops.values()]
        for address in list(self._loops):
            self.stop(address)
        for tick in list(self._inflight):
            tick.cancel()
        tasks.extend(self._inflight)
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    def is_running(self, address: str) -> bool:
        return address in self._loops

    def running_addresses(self) -> list[str]:
        return sorted(self._loops)

    def state(self, address: str) -> DeviceSyncState:
        status = self._status.get(address)
        return status.state if status else DeviceSyncState.IDLE

    def status(self, address: str) -> DeviceStatus:
        return self._status.get(address) or DeviceStatus()

    # ── Activation ─────────────────────────────────────────────────

    async def activate_with_retry(
        self, address: str, screen_index: int, intent: int | None = None
    ) -> bool:
        """Run the activation handshake, retrying on any failure.

        Returns True on the first success, False once every attempt has
        failed.  Never raises.  When *intent* is given, the loop gives up
        (returning False without touching status) as soon as a later
        ``start``/``stop``/``enable`` for the address supersedes it.
        """
        status = self._status_for(address)
        for attempt in range(1, self.attempts + 1):
            if self._superseded(address, intent):
                logger.debug("Activation for %s superseded before attempt %d", address, attempt)
                return False
            status.activation_attempt = attempt
            try:
                info = await self.client.get_lcd_info(address)
                if not info.independence_list:
                    raise LookupError("device reported no independence groups")
                if self._superseded(address, intent):
                    return False
                group = info.independence_list[0]
                await self.client.activate(
                    address, info.device_id, group.lcd_independence, screen_index
                )
                logger.info("PC monitor activated on %s (attempt %d)", address, attempt)
                return True
            except Exception as exc:
                if self._superseded(address, intent):
                    return False
                status.last_error = str(exc)
                logger.warning(
                    "Activation attempt %d/%d for %s failed: %s",
                    attempt, self.attempts, address, exc,
                )
            if attempt < self.attempts:
                await self._sleep(self.backoff)

        if self._superseded(address, intent):
            return False
        logger.error("Giving up on %s after %d activation attempts", address, self.attempts)
        return False

    async def enable(self, address: str, screen_index: int) -> bool:
        """Activate *address* and start its loop on success.

        If ``start``/``stop``/``enable`` is called for the same address while
        activation is in flight, that later call wins: the remaining attempts
        are abandoned and this returns False.
        """
        if address in self._loops:
            self.stop(address)
        intent = self._bump_intent(address)
        status = self._status_for(address)
        status.state = DeviceSyncState.ACTIVATING
        status.screen_index = screen_index

        ok = await self.activate_with_retry(address, screen_index, intent)

        if self._superseded(address, intent):
            logger.debug("Discarding stale activation result for %s", address)
            return False
        if ok:
            self.start(address, screen_index)
        else:
            status.state = DeviceSyncState.FAILED
        return ok

    async def restore_all(self) -> dict[str, bool]:
        """Re-enable every device whose persisted settings say ``enabled``.

        Devices are activated concurrently; one device exhausting its attempts
        does not affect the others.  Failed devices are not retried again.
        """
        entries = [(addr, s) for addr, s in self.store.enumerate_all() if s.enabled]
        if not entries:
            return {}

        results = await asyncio.gather(
            *(self.enable(addr, s.lcd_index) for addr, s in entries),
            return_exceptions=True,
        )
        outcome: dict[str, bool] = {}
        for (address, _), result in zip(entries, results):
            if isinstance(result, BaseException):
                logger.error("Restore failed for %s: %s", address, result)
                outcome[address] = False
            else:
                outcome[address] = bool(result)
        logger.info(
            "Restored PC monitor for %d/%d devices",
            sum(outcome.values()), len(outcome),
        )
        return outcome

    # ── Private helpers ────────────────────────────────────────────

    def _status_for(self, address: str) -> DeviceStatus:
        return self._status.setdefault(address, DeviceStatus())

    def _bump_intent(self, address: str) -> int:
        self._intent[address] = self._intent.get(address, 0) + 1
        return self._intent[address]

    def _superseded(self, address: str, intent: int | None) -> bool:
        return intent is not None and self._intent.get(address) != intent

    def _is_current(self, address: str, generation: int) -> bool:
        loop = self._loops.get(address)
        return loop is not None and loop.generation == generation

    async def _run(self, address: str, screen_index: int, generation: int) -> None:
        """Fixed-rate scheduler.  Ticks are spawned, not awaited."""
        clock = asyncio.get_running_loop()
        next_at = clock.time()
        while True:
            self._spawn_tick(address, screen_index, generation)
            next_at += self.interval
            await asyncio.sleep(max(0.0, next_at - clock.time()))

    def _spawn_tick(self, address: str, screen_index: int, generation: int) -> None:
        loop = self._loops.get(address)
        if loop is None or loop.generation != generation:
            return
        tick = asyncio.create_task(self._tick(address, screen_index, generation))
        self._inflight.add(tick)
        tick.add_done_callback(self._inflight.discard)

    async def _tick(self, address: str, screen_index: int, generation: int) -> None:
        try:
            metrics = await self.provider.fetch()
        except Exception as exc:
            if self._is_current(address, generation):
                self._status_for(address).last_error = str(exc)
                logger.warning("Metrics fetch failed for %s: %s", address, exc)
            return

        if not self._is_current(address, generation):
            return

        try:
            await self.client.push(address, screen_index, format_payload(metrics))
        except Exception as exc:
            if self._is_current(address, generation):
                status = self._status_for(address)
                status.push_failures += 1
                status.last_error = str(exc)
                logger.error("Error sending metrics to %s: %s", address, exc)
            return

        if self._is_current(address, generation):
            status = self._status_for(address)
            status.pushes += 1
            status.last_push_at = datetime.now(timezone.utc).isoformat()
            logger.debug("Pushed metrics to %s (screen %d)", address, screen_index)
