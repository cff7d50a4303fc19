"""HTTP client with bounded, constant-delay retry for the telemetry API."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

import httpx
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    wait_fixed,
)

logger = logging.getLogger(__name__)

# Applies to every attempt, independent of retries
REQUEST_TIMEOUT = 10.0


@dataclass
class RequestConfig:
    """A single request together with its retry policy and retry counter.

    The counter lives here rather than on the client so that concurrent
    requests never see each other's attempts.
    """

    method: str
    url: str
    json: Any = None
    max_retries: int = 0
    retry_delay: float = 1.0
    retry_count: int = 0

    def __post_init__(self) -> None:
        if self.max_retries < 0:
            raise ValueError("max_retries must be non-negative")
        if self.retry_delay < 0:
            raise ValueError("retry_delay must be non-negative")


class RetryingClient:
    """Async HTTP client that resubmits failed requests a bounded number of times.

    Any ``httpx.HTTPError`` counts as a failure: connection errors, timeouts,
    and non-2xx responses. The delay between attempts is constant.
    """

    def __init__(
        self,
        base_url: str = "",
        timeout: float = REQUEST_TIMEOUT,
        max_retries: int = 0,
        retry_delay: float = 1.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            timeout=timeout,
            transport=transport,
        )

    @property
    def base_url(self) -> str:
        return str(self._client.base_url)

    async def request(self, config: RequestConfig) -> httpx.Response:
        """Send ``config``, retrying while its counter is below ``max_retries``.

        Raises the last failure once retries are exhausted.
        """

        def retries_exhausted(state: RetryCallState) -> bool:
            return config.retry_count >= config.max_retries

        def count_retry(state: RetryCallState) -> None:
            config.retry_count += 1
            error = state.outcome.exception() if state.outcome else None
            logger.warning(
                "Retrying %s %s (%d/%d) after error: %s",
                config.method,
                config.url,
                config.retry_count,
                config.max_retries,
                error,
            )

        retrying = AsyncRetrying(
            retry=retry_if_exception_type(httpx.HTTPError),
            stop=retries_exhausted,
            wait=wait_fixed(config.retry_delay),
            before_sleep=count_retry,
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                response = await self._client.request(
                    config.method, config.url, json=config.json
                )
                response.raise_for_status()
        return response

    def _config(self, method: str, url: str, json: Any = None, **policy: Any) -> RequestConfig:
        policy.setdefault("max_retries", self.max_retries)
        policy.setdefault("retry_delay", self.retry_delay)
        return RequestConfig(method=method, url=url, json=json, **policy)

    async def get(self, url: str, **policy: Any) -> httpx.Response:
        return await self.request(self._config("GET", url, **policy))

    async def post(self, url: str, json: Any = None, **policy: Any) -> httpx.Response:
        return await self.request(self._config("POST", url, json=json, **policy))

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> RetryingClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()
