"""Device-scoped background polling of telemetry."""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

from plant_monitor.cache import CacheKind
from plant_monitor.config import PollingConfig
from plant_monitor.models import TelemetrySample
from plant_monitor.telemetry import TelemetryService

logger = logging.getLogger(__name__)

Listener = Callable[[CacheKind, str, Any], Awaitable[None] | None]


@dataclass
class DeviceState:
    """Most recent telemetry seen for the selected device."""

    device_id: str
    latest: TelemetrySample | None = None
    realtime: list[TelemetrySample] = field(default_factory=list)
    historical: list[TelemetrySample] = field(default_factory=list)
    poll_count: int = 0


class DevicePoller:
    """Polls latest, realtime and historical telemetry for one selected device.

    Each kind runs in its own task on its own interval so the three requests
    do not fire in lockstep. Selecting another device (or plant) cancels all
    tasks of the previous selection before new ones start, and results that
    arrive for a device that is no longer selected are dropped.
    """

    def __init__(self, service: TelemetryService, config: PollingConfig | None = None) -> None:
        self.service = service
        self.config = config or PollingConfig()
        self.device_id: str | None = None
        self.state: DeviceState | None = None
        self._listeners: list[Listener] = []
        self._tasks: set[asyncio.Task[None]] = set()

    @property
    def intervals(self) -> dict[CacheKind, float]:
        return {
            CacheKind.LATEST: self.config.latest,
            CacheKind.REALTIME: self.config.realtime,
            CacheKind.HISTORICAL: self.config.historical,
        }

    @property
    def is_running(self) -> bool:
        return any(not task.done() for task in self._tasks)

    def add_listener(self, listener: Listener) -> DevicePoller:
        """Register a callback invoked as ``listener(kind, device_id, data)``."""
        self._listeners.append(listener)
        return self

    async def select_device(self, device_id: str) -> None:
        """Switch polling to ``device_id``, starting from a live fetch."""
        await self._cancel_tasks()
        self.service.invalidate(device_id)
        self.device_id = device_id
        self.state = DeviceState(device_id=device_id)

        for kind, interval in self.intervals.items():
            task = asyncio.create_task(
                self._poll_loop(kind, device_id, interval),
                name=f"poll-{kind.value}-{device_id}",
            )
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)
        logger.info("Polling telemetry for device %s", device_id)

    async def select_plant(self) -> None:
        """Drop the current selection and every cached table."""
        await self._cancel_tasks()
        self.service.invalidate()
        self.device_id = None
        self.state = None
        logger.info("Plant changed, telemetry selection cleared")

    async def stop(self) -> None:
        await self._cancel_tasks()
        self.device_id = None
        logger.info("Telemetry polling stopped")

    async def poll_once(self, kind: CacheKind) -> Any:
        """Fetch one kind for the selected device outside the regular schedule."""
        if self.device_id is None:
            raise RuntimeError("No device selected")
        return await self._poll(kind, self.device_id)

    async def _poll_loop(self, kind: CacheKind, device_id: str, interval: float) -> None:
        logger.debug("Started %s loop for %s every %.1fs", kind.value, device_id, interval)
        try:
            while True:
                try:
                    await self._poll(kind, device_id)
                except Exception as e:
                    logger.error(
                        "Error polling %s for %s: %s", kind.value, device_id, e, exc_info=True
                    )
                await asyncio.sleep(interval)
        except asyncio.CancelledError:
            logger.debug("Stopped %s loop for %s", kind.value, device_id)
            raise

    async def _poll(self, kind: CacheKind, device_id: str) -> Any:
        data = await self.service.get(kind, device_id)
        if device_id != self.device_id or self.state is None:
            logger.debug("Dropping %s result for deselected device %s", kind.value, device_id)
            return data

        self._apply(self.state, kind, data)
        for listener in self._listeners:
            try:
                result = listener(kind, device_id, data)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.error(
                    "Listener error for %s (%s): %s", kind.value, device_id, e, exc_info=True
                )
        return data

    def _apply(self, state: DeviceState, kind: CacheKind, data: Any) -> None:
        state.poll_count += 1
        if kind is CacheKind.LATEST:
            state.latest = data
        elif kind is CacheKind.REALTIME:
            state.realtime = list(data)
        elif kind is CacheKind.HISTORICAL and data:
            # Keep the last good table when a refresh comes back empty
            state.historical = list(data)[: self.config.history_limit]

    async def _cancel_tasks(self) -> None:
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()
