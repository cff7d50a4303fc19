"""
In-memory telemetry cache with tiered expiry.

This module provides the storage half of the telemetry access layer:
- One table per device-keyed data kind (historical, realtime, latest)
- A single unkeyed device-list snapshot
- A fixed expiry window per kind
- Per-device invalidation for device/plant switches

The cache is process-local and never persisted. It performs no I/O itself;
`TelemetryService` decides when to refresh an entry.
"""

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

logger = logging.getLogger(__name__)


class CacheKind(str, Enum):
    """Kinds of cached telemetry data."""

    HISTORICAL = "historical"
    REALTIME = "realtime"
    LATEST = "latest"
    DEVICE_LIST = "device_list"


DEVICE_KINDS = (CacheKind.HISTORICAL, CacheKind.REALTIME, CacheKind.LATEST)

# Maximum age in seconds before an entry must be refreshed on the next read
CACHE_EXPIRY: dict[CacheKind, float] = {
    CacheKind.HISTORICAL: 10.0,
    CacheKind.REALTIME: 2.0,
    CacheKind.LATEST: 1.0,
    CacheKind.DEVICE_LIST: 30.0,
}


@dataclass(frozen=True)
class CachedData:
    """Container for cached data with the time it was fetched.

    Value and timestamp are replaced together by storing a new instance.
    """

    data: Any
    timestamp: float

    def is_expired(self, ttl: float, now: float) -> bool:
        """Check if cached data has expired."""
        return now - self.timestamp > ttl

    def age(self, now: float) -> float:
        """Get age of cached data in seconds."""
        return now - self.timestamp


class TelemetryCache:
    """
    Per-kind, per-device telemetry cache.

    Holds at most one entry per (kind, device_id) pair, plus one device-list
    snapshot. Each device also carries a generation number that is bumped on
    invalidation, so a refresh that started before an invalidation can tell
    that its result must not be stored.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        """
        Initialize an empty cache.

        Args:
            clock: Monotonic time source in seconds (injectable for tests)
        """
        self.clock = clock
        self._tables: dict[CacheKind, dict[str, CachedData]] = {
            kind: {} for kind in DEVICE_KINDS
        }
        self._device_list: Optional[CachedData] = None
        self._generations: dict[str, int] = {}
        self._epoch = 0

    def now(self) -> float:
        return self.clock()

    def lookup(self, kind: CacheKind, device_id: Optional[str] = None) -> Optional[CachedData]:
        """Return the raw entry for a key, fresh or not."""
        if kind is CacheKind.DEVICE_LIST:
            return self._device_list
        return self._tables[kind].get(device_id)  # type: ignore[arg-type]

    def get_fresh(self, kind: CacheKind, device_id: Optional[str] = None) -> Optional[CachedData]:
        """
        Return the entry for a key if present and within its expiry window.

        Args:
            kind: Data kind
            device_id: Device identifier (ignored for the device list)

        Returns:
            The cached entry, or None on a miss or when expired
        """
        cached = self.lookup(kind, device_id)
        label = kind.value if device_id is None else f"{kind.value}:{device_id}"
        if cached is None:
            logger.debug("Cache miss: %s", label)
            return None

        now = self.now()
        if cached.is_expired(CACHE_EXPIRY[kind], now):
            logger.debug("Cache expired: %s (age: %.1fs)", label, cached.age(now))
            return None

        logger.debug("Cache hit: %s (age: %.1fs)", label, cached.age(now))
        return cached

    def store(
        self,
        kind: CacheKind,
        device_id: Optional[str],
        data: Any,
        fetched_at: float,
    ) -> CachedData:
        """Replace the entry for a key with new data and its fetch time."""
        entry = CachedData(data=data, timestamp=fetched_at)
        if kind is CacheKind.DEVICE_LIST:
            self._device_list = entry
        else:
            self._tables[kind][device_id] = entry  # type: ignore[index]
        return entry

    def generation(self, device_id: Optional[str] = None) -> tuple[int, int]:
        """Token identifying the current cache lifetime of a device."""
        if device_id is None:
            return (self._epoch, 0)
        return (self._epoch, self._generations.get(device_id, 0))

    def invalidate(self, device_id: Optional[str] = None) -> None:
        """
        Drop cached entries.

        Args:
            device_id: Clear historical/realtime/latest for this device only.
                When omitted, every table including the device list is cleared.
        """
        if device_id is not None:
            for kind in DEVICE_KINDS:
                self._tables[kind].pop(device_id, None)
            self._generations[device_id] = self._generations.get(device_id, 0) + 1
            logger.info("Cleared cache for device %s", device_id)
            return

        for kind in DEVICE_KINDS:
            self._tables[kind].clear()
        self._device_list = None
        self._generations.clear()
        self._epoch += 1
        logger.info("Cleared all telemetry cache")

    def get_status(self) -> dict[str, Any]:
        """
        Get cache status information.

        Returns:
            Dictionary with per-kind entry counts, expiry and entry ages
        """
        now = self.now()
        status: dict[str, Any] = {}
        for kind in DEVICE_KINDS:
            entries = self._tables[kind]
            ttl = CACHE_EXPIRY[kind]
            expired = sum(1 for c in entries.values() if c.is_expired(ttl, now))
            status[kind.value] = {
                "total_entries": len(entries),
                "valid_entries": len(entries) - expired,
                "expiry": ttl,
                "data_ages": {d: c.age(now) for d, c in entries.items()},
            }
        device_list = self._device_list
        status[CacheKind.DEVICE_LIST.value] = {
            "cached": device_list is not None,
            "expiry": CACHE_EXPIRY[CacheKind.DEVICE_LIST],
            "age": device_list.age(now) if device_list is not None else None,
        }
        return status
