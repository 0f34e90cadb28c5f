"""Metrics provider: poll the host and return a SystemMetrics snapshot.

Both the HTTP API and every device sync loop call this independently.  One
poll's result is shared by every caller for :data:`SNAPSHOT_MAX_AGE` seconds.
psutil's CPU load is measured since the previous call anywhere in the
process, so two polls a few milliseconds apart would report ``0%`` for the
second one.  Async callers that arrive while a poll is running wait for that
same poll instead of queueing another one behind a slow ``nvidia-smi``.
"""

from __future__ import annotations

import asyncio
import logging
import threading
import time
from typing import Callable, Sequence

from timesgate.metrics.aggregator import SensorAggregator
from timesgate.metrics.models import DiskUsage, HardwareComponent, SystemMetrics
from timesgate.metrics.sources import (
    HardwareSource,
    NvidiaSmiSource,
    PsutilSource,
    read_disks,
    read_memory,
)

logger = logging.getLogger(__name__)

SNAPSHOT_MAX_AGE = 1.0  # seconds a poll result is reused


class MetricsProvider:
    """Poll-on-demand source of canonical host metrics."""

    def __init__(
        self,
        sources: Sequence[HardwareSource] | None = None,
        memory_reader: Callable[[], tuple[int, int]] = read_memory,
        disk_reader: Callable[[], list[DiskUsage]] = read_disks,
        aggregator: SensorAggregator | None = None,
        max_age: float = SNAPSHOT_MAX_AGE,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._sources = list(sources) if sources is not None else [PsutilSource(), NvidiaSmiSource()]
        self._memory_reader = memory_reader
        self._disk_reader = disk_reader
        self._aggregator = aggregator or SensorAggregator()
        self.max_age = max_age
        self._clock = clock
        self._lock = threading.Lock()
        self._snapshot: SystemMetrics | None = None
        self._taken_at = 0.0
        self._pending: asyncio.Future | None = None

    def get_metrics(self) -> SystemMetrics:
        """Return the shared snapshot, polling if it is older than ``max_age``.

        Never raises for partial data.
        """
        with self._lock:
            now = self._clock()
            if self._snapshot is not None and now - self._taken_at < self.max_age:
                return self._snapshot
            self._snapshot = self._poll()
            self._taken_at = self._clock()
            return self._snapshot

    async def fetch(self) -> SystemMetrics:
        """Async wrapper around :meth:`get_metrics` (runs on a worker thread).

        Concurrent callers share one in-flight poll.  Cancelling a caller does
        not cancel the poll the others are waiting on.
        """
        if self._pending is None:
            self._pending = asyncio.ensure_future(asyncio.to_thread(self.get_metrics))
            self._pending.add_done_callback(self._poll_done)
        return await asyncio.shield(self._pending)

    def _poll_done(self, future: asyncio.Future) -> None:
        self._pending = None
        if not future.cancelled():
            # Mark retrieved; waiters that are still around re-raise it.
            future.exception()

    def _poll(self) -> SystemMetrics:
        components: list[HardwareComponent] = []
        for source in self._sources:
            try:
                components.extend(source.read_components())
            except Exception as exc:
                logger.warning("Hardware source %s failed: %s", type(source).__name__, exc)
        memory_total, memory_used = self._memory_reader()
        disks = self._disk_reader()
        return self._aggregator.aggregate(
            components,
            memory_total=memory_total,
            memory_used=memory_used,
            disks=disks,
        )
