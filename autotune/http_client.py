"""HTTP plumbing for the analytics gateway: client factory, retries, breaker."""

from __future__ import annotations

import asyncio
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, AsyncIterator, Awaitable, Callable, Iterable, Optional, TypeVar

import httpx

from autotune.config import Settings, settings as default_settings

T = TypeVar("T")


class CircuitBreakerOpenError(RuntimeError):
    """Raised when the circuit breaker rejects a call."""

    def __init__(self, name: str) -> None:
        super().__init__(f"Circuit breaker '{name}' is open")
        self.name = name


class RetryableStatusError(httpx.HTTPError):
    """Marks a response whose status code is worth another attempt."""

    def __init__(self, response: httpx.Response) -> None:
        super().__init__(f"Retryable response: {response.status_code}")
        self.request = response.request
        self.response = response


@dataclass
class _BreakerState:
    failures: int = 0
    state: str = "closed"  # closed, open, half-open
    trips: int = 0
    open_until: float = 0.0
    probing: bool = False


class AsyncCircuitBreaker:
    """Stops hammering the analytics service after consecutive failures.

    The open interval doubles on every trip, capped at ``max_delay``. After it
    elapses a single probe call is let through (half-open); its outcome
    either closes the breaker or trips it again.
    """

    def __init__(
        self,
        *,
        max_failures: int,
        base_delay: float,
        max_delay: float,
        name: str,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if max_failures <= 0:
            raise ValueError("max_failures must be positive")
        if base_delay < 0 or max_delay < 0:
            raise ValueError("delay values must be non-negative")
        self.name = name
        self._max_failures = max_failures
        self._base_delay = base_delay
        self._max_delay = max_delay
        self._clock = clock
        self._state = _BreakerState()
        self._lock = asyncio.Lock()

    @classmethod
    def from_settings(cls, name: str, settings_obj: Settings | None = None) -> "AsyncCircuitBreaker":
        cfg = settings_obj or default_settings
        return cls(
            max_failures=cfg.HTTP_CIRCUIT_BREAKER_MAX_FAILURES,
            base_delay=cfg.HTTP_CIRCUIT_BREAKER_BASE_DELAY,
            max_delay=cfg.HTTP_CIRCUIT_BREAKER_MAX_DELAY,
            name=name,
        )

    @property
    def state(self) -> str:
        return self._state.state

    async def call(self, func: Callable[[], Awaitable[T]]) -> T:
        await self._before_call()
        try:
            result = await func()
        except Exception:
            await self._on_failure()
            raise
        await self._on_success()
        return result

    async def reset(self) -> None:
        async with self._lock:
            self._state = _BreakerState()

    async def _before_call(self) -> None:
        async with self._lock:
            if self._state.state == "open":
                if self._clock() < self._state.open_until:
                    raise CircuitBreakerOpenError(self.name)
                self._state.state = "half-open"
                self._state.probing = False
            if self._state.state == "half-open":
                if self._state.probing:
                    raise CircuitBreakerOpenError(self.name)
                self._state.probing = True

    async def _on_failure(self) -> None:
        async with self._lock:
            if self._state.state == "half-open":
                self._trip()
                return
            self._state.failures += 1
            if self._state.failures >= self._max_failures:
                self._trip()

    async def _on_success(self) -> None:
        async with self._lock:
            self._state = _BreakerState()

    def _trip(self) -> None:
        self._state.state = "open"
        self._state.trips += 1
        self._state.probing = False
        delay = self._base_delay * (2 ** (self._state.trips - 1))
        if self._max_delay:
            delay = min(delay, self._max_delay)
        self._state.open_until = self._clock() + delay


@asynccontextmanager
async def async_http_client(
    *,
    settings_obj: Settings | None = None,
    additional_options: Optional[dict[str, Any]] = None,
) -> AsyncIterator[httpx.AsyncClient]:
    """Create an AsyncClient with the configured timeouts and proxy."""

    cfg = settings_obj or default_settings
    timeout = httpx.Timeout(
        timeout=cfg.HTTP_TIMEOUT_TOTAL,
        connect=cfg.HTTP_TIMEOUT_CONNECT,
        read=cfg.HTTP_TIMEOUT_READ,
        write=cfg.HTTP_TIMEOUT_WRITE,
    )
    options: dict[str, Any] = {"timeout": timeout}
    if cfg.HTTP_PROXY_URL:
        options["proxy"] = cfg.HTTP_PROXY_URL
    if additional_options:
        options.update(additional_options)

    async with httpx.AsyncClient(**options) as client:
        yield client


async def request_with_retries(
    method: str,
    url: str,
    *,
    client: httpx.AsyncClient,
    circuit_breaker: AsyncCircuitBreaker,
    retries: int,
    backoff_factor: float,
    backoff_max: float,
    retry_statuses: Iterable[int] | None = None,
    **kwargs: Any,
) -> httpx.Response:
    """Send a request, retrying timeouts, network errors and retryable statuses."""

    attempts = max(1, int(retries) + 1)
    retryable = set(retry_statuses or ())
    delay = max(0.0, backoff_factor)

    async def _attempt() -> httpx.Response:
        response = await client.request(method, url, **kwargs)
        if response.status_code in retryable:
            raise RetryableStatusError(response)
        return response

    for attempt in range(1, attempts + 1):
        try:
            return await circuit_breaker.call(_attempt)
        except (RetryableStatusError, httpx.TimeoutException, httpx.NetworkError):
            if attempt >= attempts:
                raise
        if delay > 0:
            await asyncio.sleep(delay)
            delay = delay * 2
            if backoff_max > 0:
                delay = min(delay, backoff_max)

    raise AssertionError("unreachable")  # pragma: no cover


__all__ = [
    "AsyncCircuitBreaker",
    "CircuitBreakerOpenError",
    "RetryableStatusError",
    "async_http_client",
    "request_with_retries",
]
