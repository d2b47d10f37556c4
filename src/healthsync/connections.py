"""In-memory view of recently active devices plus its maintenance timers.

``ConnectionRegistry`` is owned by the application (one per app instance,
stored on ``app.state``) and guarded by a single lock.  Critical sections are
plain dict operations and never touch storage.

``MaintenanceLoop`` runs two independent asyncio tasks for the lifetime of
the app:

- stale-connection eviction (idle longer than ``idle_timeout_s``), and
- the daily data-point counter reset on a UTC day change.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable

from src.healthsync.base import now_ms

logger = logging.getLogger("healthsync.connections")


def _utc_day(ms: int) -> str:
    return datetime.fromtimestamp(ms / 1000, tz=timezone.utc).date().isoformat()


@dataclass
class ConnectedDevice:
    device_id: str
    device_type: str
    last_seen: int
    data_points: int = 0


class ConnectionRegistry:
    """Lock-protected map of ``device_id → ConnectedDevice``.

    Args:
        idle_timeout_s: Entries idle longer than this are evicted.
        clock:          Returns the current time in ms.
    """

    def __init__(
        self, idle_timeout_s: int = 3600, clock: Callable[[], int] = now_ms
    ) -> None:
        self.idle_timeout_s = idle_timeout_s
        self._clock = clock
        self._lock = threading.Lock()
        self._devices: dict[str, ConnectedDevice] = {}
        self._data_points_today = 0
        self._day = _utc_day(clock())

    def record_activity(self, device_id: str, device_type: str, data_points: int = 0) -> None:
        now = self._clock()
        with self._lock:
            entry = self._devices.get(device_id)
            if entry is None:
                entry = ConnectedDevice(device_id, device_type, now)
                self._devices[device_id] = entry
            entry.device_type = device_type
            entry.last_seen = now
            entry.data_points += data_points
            self._data_points_today += data_points

    def evict_stale(self) -> list[str]:
        """Drop entries idle longer than the timeout.  Returns evicted ids."""
        cutoff = self._clock() - self.idle_timeout_s * 1000
        with self._lock:
            stale = [d for d, e in self._devices.items() if e.last_seen < cutoff]
            for device_id in stale:
                del self._devices[device_id]
        if stale:
            logger.info("Evicted %d stale connection(s): %s", len(stale), ", ".join(stale))
        return stale

    def reset_daily_counters(self, force: bool = False) -> bool:
        """Zero the daily counter when the UTC day has changed.

        Returns:
            True if the counter was reset.
        """
        today = _utc_day(self._clock())
        with self._lock:
            if not force and today == self._day:
                return False
            self._day = today
            self._data_points_today = 0
        logger.info("Daily data-point counter reset for %s", today)
        return True

    def snapshot(self) -> list[ConnectedDevice]:
        with self._lock:
            return [
                ConnectedDevice(e.device_id, e.device_type, e.last_seen, e.data_points)
                for e in self._devices.values()
            ]

    @property
    def data_points_today(self) -> int:
        with self._lock:
            return self._data_points_today

    def __len__(self) -> int:
        with self._lock:
            return len(self._devices)


class MaintenanceLoop:
    """Two background timers over a ``ConnectionRegistry``.

    Usage::

        loop = MaintenanceLoop(registry, eviction_interval_s=3600, reset_check_interval_s=60)
        loop.start()        # inside a running event loop
        ...
        await loop.stop()
    """

    def __init__(
        self,
        registry: ConnectionRegistry,
        eviction_interval_s: float = 3600,
        reset_check_interval_s: float = 60,
    ) -> None:
        self.registry = registry
        self.eviction_interval_s = eviction_interval_s
        self.reset_check_interval_s = reset_check_interval_s
        self._tasks: list[asyncio.Task] = []

    @property
    def running(self) -> bool:
        return any(not t.done() for t in self._tasks)

    def start(self) -> None:
        if self.running:
            return
        self._tasks = [
            asyncio.create_task(
                self._every(self.eviction_interval_s, self.registry.evict_stale),
                name="healthsync-evict-stale",
            ),
            asyncio.create_task(
                self._every(self.reset_check_interval_s, self.registry.reset_daily_counters),
                name="healthsync-daily-reset",
            ),
        ]
        logger.info(
            "Maintenance loop started (eviction every %ss, reset check every %ss)",
            self.eviction_interval_s, self.reset_check_interval_s,
        )

    async def stop(self) -> None:
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []
        logger.info("Maintenance loop stopped")

    @staticmethod
    async def _every(interval_s: float, job: Callable[[], object]) -> None:
        while True:
            await asyncio.sleep(interval_s)
            try:
                job()
            except Exception:
                logger.exception("Maintenance job %s failed", getattr(job, "__name__", job))
