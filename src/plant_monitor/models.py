"""Pydantic models for telemetry snapshots returned by the backend."""

from __future__ import annotations

import logging
import math
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

logger = logging.getLogger(__name__)


def normalize_metric(value: Any) -> float:
    """Unwrap a metric sent as a bare number or as ``{"value": n}``.

    Anything that is not a finite number (or a numeric string) reads as 0.0.
    """
    if isinstance(value, dict):
        value = value.get("value")
    if isinstance(value, bool) or not isinstance(value, int | float | str):
        return 0.0
    try:
        number = float(value)
    except (ValueError, OverflowError):
        return 0.0
    return number if math.isfinite(number) else 0.0


def normalize_alert_count(value: Any) -> int:
    """Open alerts arrive as a count, a wrapped count, or the list of alerts."""
    if isinstance(value, list):
        return len(value)
    return int(normalize_metric(value))


class TelemetrySample(BaseModel):
    """One time-stamped reading for a device."""

    model_config = ConfigDict(frozen=True, extra="allow", populate_by_name=True)

    timestamp: Any = None
    temperature: float = 0.0
    humidity: float = 0.0
    oil_level: float = Field(default=0.0, alias="oilLevel")
    open_alerts: int = Field(default=0, alias="openAlerts")

    @field_validator("temperature", "humidity", "oil_level", mode="before")
    @classmethod
    def _unwrap_metric(cls, value: Any) -> float:
        return normalize_metric(value)

    @field_validator("open_alerts", mode="before")
    @classmethod
    def _count_alerts(cls, value: Any) -> int:
        return normalize_alert_count(value)


class DeviceDescriptor(BaseModel):
    """A device known to the telemetry backend."""

    model_config = ConfigDict(frozen=True)

    device_id: str
    name: str


def parse_sample(item: Any) -> TelemetrySample | None:
    """Parse one wire object into a sample, or None if it is not an object."""
    if not isinstance(item, dict):
        logger.debug("Skipping non-object telemetry entry: %r", item)
        return None
    return TelemetrySample.model_validate(item)


def parse_samples(body: Any) -> list[TelemetrySample]:
    """Parse a list response; anything that is not a list yields no samples."""
    if not isinstance(body, list):
        return []
    samples = []
    for item in body:
        sample = parse_sample(item)
        if sample is not None:
            samples.append(sample)
    return samples


def parse_device(item: Any) -> DeviceDescriptor | None:
    if isinstance(item, str):
        return DeviceDescriptor(device_id=item, name=item)
    if isinstance(item, dict):
        device_id = item.get("_id") or item.get("id") or item.get("deviceId")
        name = item.get("name") or device_id
        if device_id:
            return DeviceDescriptor(device_id=str(device_id), name=str(name))
    logger.debug("Skipping unrecognised device entry: %r", item)
    return None


def parse_devices(body: Any) -> list[DeviceDescriptor]:
    if not isinstance(body, list):
        return []
    return [d for d in (parse_device(item) for item in body) if d is not None]
