"""Shared fixtures for telemetry tests."""

from __future__ import annotations

from collections.abc import AsyncIterator

import pytest

from plant_monitor.config import ApiConfig
from plant_monitor.telemetry import TelemetryService
from tests.fakes import BASE_URL, FakeBackend, FakeClock


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
async def service(backend: FakeBackend, clock: FakeClock) -> AsyncIterator[TelemetryService]:
    """Service without retries so failures surface on the first attempt."""
    svc = TelemetryService.create(
        ApiConfig(base_url=BASE_URL, max_retries=0, retry_delay=0.0),
        transport=backend.transport,
        clock=clock,
    )
    yield svc
    await svc.close()
