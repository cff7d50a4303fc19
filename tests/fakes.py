"""Fake backend and clock for telemetry tests."""

from __future__ import annotations

import inspect
from collections.abc import Callable
from typing import Any

import httpx

BASE_URL = "http://backend.test/api"


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeBackend:
    """
    Canned telemetry API that records every request it receives.

    Routes map (method, path below /api) to either a ``(status, body)`` tuple
    or a handler ``(request) -> Response`` that may be async or raise.
    """

    def __init__(self) -> None:
        self.routes: dict[tuple[str, str], Any] = {}
        self.calls: list[httpx.Request] = []

    def add(self, path: str, route: Any, method: str = "GET") -> None:
        self.routes[(method, path)] = route

    def count(self, path: str, method: str = "GET") -> int:
        return sum(
            1 for r in self.calls if r.method == method and r.url.path == f"/api{path}"
        )

    async def handler(self, request: httpx.Request) -> httpx.Response:
        self.calls.append(request)
        path = request.url.path.removeprefix("/api")
        route = self.routes.get((request.method, path))
        if route is None:
            return httpx.Response(404, json={"error": "not found"})
        if callable(route):
            result = route(request)
            if inspect.isawaitable(result):
                result = await result
            return result  # type: ignore[no-any-return]
        status, body = route
        if body is None:
            return httpx.Response(status)
        return httpx.Response(status, json=body)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


def failing(
    exc_type: type[httpx.RequestError] = httpx.ConnectError,
) -> Callable[[httpx.Request], httpx.Response]:
    """Route handler that raises a transport error for every request."""

    def handler(request: httpx.Request) -> httpx.Response:
        raise exc_type("backend unavailable", request=request)

    return handler
