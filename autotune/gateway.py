"""HTTP gateway to the autotune analytics service."""

from __future__ import annotations

import logging
from typing import Any, Mapping, Optional

import httpx

from autotune.config import Settings, settings as default_settings
from autotune.http_client import AsyncCircuitBreaker, async_http_client, request_with_retries

logger = logging.getLogger(__name__)

START_PATH = "startExperiments"
COMPLETE_PATH = "completeExperiments"


class HttpGateway:
    """Performs the two batch POSTs and the outcomes GET.

    Every method raises ``httpx.HTTPError`` (or ``CircuitBreakerOpenError``)
    on failure; the client decides how failures surface.
    """

    def __init__(
        self,
        settings_obj: Settings | None = None,
        *,
        circuit_breaker: AsyncCircuitBreaker | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._settings = settings_obj or default_settings
        self._breaker = circuit_breaker or AsyncCircuitBreaker.from_settings("autotune", self._settings)
        self._transport = transport

    def api_url(self, path: str) -> str:
        return str(httpx.URL(self._settings.API_BASE_URL).join(path))

    def outcomes_url(self, app_key: str) -> str:
        return str(httpx.URL(self._settings.OUTCOMES_BASE_URL).join(f"{app_key}.json"))

    async def start_experiments(self, payload: Mapping[str, Any]) -> None:
        await self._request("POST", self.api_url(START_PATH), json=payload)

    async def complete_experiments(self, payload: Mapping[str, Any]) -> None:
        await self._request("POST", self.api_url(COMPLETE_PATH), json=payload)

    async def fetch_outcomes(self, app_key: str) -> Any:
        response = await self._request("GET", self.outcomes_url(app_key))
        return response.json()

    async def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        cfg = self._settings
        options: Optional[dict[str, Any]] = None
        if self._transport is not None:
            options = {"transport": self._transport}
        async with async_http_client(settings_obj=cfg, additional_options=options) as client:
            response = await request_with_retries(
                method,
                url,
                client=client,
                circuit_breaker=self._breaker,
                retries=cfg.HTTP_RETRY_ATTEMPTS,
                backoff_factor=cfg.HTTP_RETRY_BACKOFF_INITIAL,
                backoff_max=cfg.HTTP_RETRY_BACKOFF_MAX,
                retry_statuses=cfg.HTTP_RETRY_STATUS_CODES,
                **kwargs,
            )
        response.raise_for_status()
        logger.debug("%s %s -> %s", method, url, response.status_code)
        return response


__all__ = ["COMPLETE_PATH", "HttpGateway", "START_PATH"]
