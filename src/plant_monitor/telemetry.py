"""
Telemetry access layer.

Usage:
    service = TelemetryService.create(config.api)
    latest = await service.get_latest("dev-1")
    history = await service.get_historical("dev-1")

    # On device or plant switch
    service.invalidate("dev-2")
    service.invalidate()

    await service.close()

Reads are served from `TelemetryCache` while fresh and refreshed from the
backend otherwise. Fetch failures never reach the caller: they are logged and
turned into an empty list (list kinds), None (latest entry) or False
(threshold update).
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from typing import Any
from urllib.parse import quote

import httpx

from plant_monitor.cache import CacheKind, TelemetryCache
from plant_monitor.config import ApiConfig
from plant_monitor.http import RetryingClient
from plant_monitor.models import (
    DeviceDescriptor,
    TelemetrySample,
    parse_devices,
    parse_sample,
    parse_samples,
)

logger = logging.getLogger(__name__)

ENDPOINTS: dict[CacheKind, str] = {
    CacheKind.HISTORICAL: "/telemetry/{device_id}",
    CacheKind.REALTIME: "/telemetry/realtime/{device_id}",
    CacheKind.LATEST: "/telemetry/latest/{device_id}",
    CacheKind.DEVICE_LIST: "/telemetry/devices",
}

THRESHOLD_ENDPOINT = "/telemetry/threshold/{device_id}/{metric}"

RefreshKey = tuple[CacheKind, str | None]


def _default(kind: CacheKind) -> Any:
    return None if kind is CacheKind.LATEST else []


def _parse(kind: CacheKind, body: Any) -> Any:
    if kind is CacheKind.LATEST:
        return parse_sample(body) if body else None
    if kind is CacheKind.DEVICE_LIST:
        return parse_devices(body)
    return parse_samples(body)


class TelemetryService:
    """Cached, retrying access to the telemetry backend.

    Concurrent reads of the same key that miss the cache share one in-flight
    request. A refresh that was started before `invalidate` for its device
    returns its data to the waiting callers but does not write the cache.
    """

    def __init__(self, client: RetryingClient, cache: TelemetryCache | None = None) -> None:
        self.client = client
        self.cache = cache if cache is not None else TelemetryCache()
        self._inflight: dict[RefreshKey, asyncio.Task[Any]] = {}

    @classmethod
    def create(
        cls,
        config: ApiConfig,
        transport: httpx.AsyncBaseTransport | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> TelemetryService:
        """Build a service with its own client and an empty cache."""
        client = RetryingClient(
            base_url=config.base_url,
            timeout=config.timeout,
            max_retries=config.max_retries,
            retry_delay=config.retry_delay,
            transport=transport,
        )
        logger.debug(
            "Created TelemetryService for %s (retries=%d, delay=%.1fs)",
            config.base_url,
            config.max_retries,
            config.retry_delay,
        )
        return cls(client, TelemetryCache(clock=clock))

    # =========================================================================
    # READ ACCESSORS
    # =========================================================================

    async def get(self, kind: CacheKind, device_id: str | None = None) -> Any:
        """
        Return cached data for a key, refreshing it first if absent or stale.

        Args:
            kind: Data kind to read
            device_id: Device identifier (required except for the device list)

        Returns:
            list of samples, a single sample or None, or a list of devices.
            Fetch failures yield [] or None instead of raising.
        """
        if kind is CacheKind.DEVICE_LIST:
            device_id = None
        elif not device_id:
            raise ValueError(f"device_id is required for {kind.value} telemetry")

        cached = self.cache.get_fresh(kind, device_id)
        if cached is not None:
            return cached.data

        key: RefreshKey = (kind, device_id)
        task = self._inflight.get(key)
        if task is None:
            task = asyncio.create_task(
                self._refresh(kind, device_id),
                name=f"refresh-{kind.value}-{device_id or 'all'}",
            )
            self._inflight[key] = task
            task.add_done_callback(lambda t, k=key: self._forget(k, t))
        else:
            logger.debug("Joining in-flight %s refresh for %s", kind.value, device_id)

        # One waiter being cancelled must not cancel the shared refresh
        return await asyncio.shield(task)

    async def get_historical(self, device_id: str) -> list[TelemetrySample]:
        return await self.get(CacheKind.HISTORICAL, device_id)  # type: ignore[no-any-return]

    async def get_realtime(self, device_id: str) -> list[TelemetrySample]:
        return await self.get(CacheKind.REALTIME, device_id)  # type: ignore[no-any-return]

    async def get_latest(self, device_id: str) -> TelemetrySample | None:
        return await self.get(CacheKind.LATEST, device_id)  # type: ignore[no-any-return]

    async def get_device_list(self) -> list[DeviceDescriptor]:
        return await self.get(CacheKind.DEVICE_LIST)  # type: ignore[no-any-return]

    async def _refresh(self, kind: CacheKind, device_id: str | None) -> Any:
        label = kind.value if device_id is None else f"{kind.value} telemetry for {device_id}"
        token = self.cache.generation(device_id)
        started = self.cache.now()
        url = self._endpoint(kind, device_id)

        logger.debug("Fetching fresh %s", label)
        try:
            response = await self.client.get(url)
            body = response.json() if response.content else None
            data = _parse(kind, body)
        except (httpx.HTTPError, ValueError, OverflowError) as e:
            # Entry and timestamp stay as they were so the next read retries
            logger.error("Error fetching %s: %s", label, e)
            return _default(kind)

        if self.cache.generation(device_id) != token:
            logger.debug("Discarding %s fetched before invalidation", label)
            return data

        self.cache.store(kind, device_id, data, started)
        return data

    def _forget(self, key: RefreshKey, task: asyncio.Task[Any]) -> None:
        if self._inflight.get(key) is task:
            del self._inflight[key]

    @staticmethod
    def _endpoint(kind: CacheKind, device_id: str | None) -> str:
        if device_id is None:
            return ENDPOINTS[kind]
        return ENDPOINTS[kind].format(device_id=quote(device_id, safe=""))

    # =========================================================================
    # INVALIDATION & LIFECYCLE
    # =========================================================================

    def invalidate(self, device_id: str | None = None) -> None:
        """
        Drop cached telemetry so the next read is a live fetch.

        Args:
            device_id: Only clear this device's historical/realtime/latest
                entries. When omitted, all tables including the device list
                are cleared.
        """
        self.cache.invalidate(device_id)
        # Refreshes already in flight keep running but no longer serve new reads
        for key in list(self._inflight):
            if device_id is None or key[1] == device_id:
                del self._inflight[key]

    def get_status(self) -> dict[str, Any]:
        status = self.cache.get_status()
        status["inflight"] = len(self._inflight)
        return status

    async def close(self) -> None:
        """Cancel in-flight refreshes and release the HTTP client."""
        tasks = list(self._inflight.values())
        self._inflight.clear()
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        await self.client.aclose()
        logger.debug("TelemetryService closed")

    async def __aenter__(self) -> TelemetryService:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    # =========================================================================
    # THRESHOLDS
    # =========================================================================

    async def get_threshold(self, device_id: str, metric: str) -> float | None:
        """Fetch the alert threshold for one metric of a device (never cached)."""
        url = self._threshold_endpoint(device_id, metric)
        try:
            response = await self.client.get(url)
            body = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error("Error fetching %s threshold for %s: %s", metric, device_id, e)
            return None

        value = body.get("threshold") if isinstance(body, dict) else None
        if value is None:
            logger.warning("No %s threshold set for %s", metric, device_id)
            return None
        try:
            return float(value)
        except (TypeError, ValueError):
            logger.error("Invalid %s threshold for %s: %r", metric, device_id, value)
            return None

    async def set_threshold(self, device_id: str, metric: str, value: float) -> bool:
        """Update the alert threshold for one metric. Returns True on a 2xx reply."""
        url = self._threshold_endpoint(device_id, metric)
        try:
            await self.client.post(url, json={"threshold": value})
        except httpx.HTTPError as e:
            logger.error("Error updating %s threshold for %s: %s", metric, device_id, e)
            return False
        logger.info("Updated %s threshold for %s to %s", metric, device_id, value)
        # Non-2xx replies already raised HTTPStatusError inside the client
        return True

    @staticmethod
    def _threshold_endpoint(device_id: str, metric: str) -> str:
        return THRESHOLD_ENDPOINT.format(
            device_id=quote(device_id, safe=""), metric=quote(metric, safe="")
        )
