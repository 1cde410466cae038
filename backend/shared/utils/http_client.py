"""
Async HTTP client wrapper for provider read APIs.

One attempt per call: a failed request surfaces immediately as
UpstreamUnavailable, an unparseable body as MalformedUpstreamPayload.
Every request is timed and counted.
"""
from __future__ import annotations

import time
from typing import Any, Optional

import httpx

from shared.config import get_settings
from shared.errors import MalformedUpstreamPayload, UpstreamUnavailable
from shared.utils.logging import get_logger
from shared.utils.metrics import PROVIDER_LATENCY, PROVIDER_REQUESTS

logger = get_logger(__name__)


class ProviderHTTPClient:
    """Async HTTP client for a single provider's base URL."""

    def __init__(
        self,
        provider_name: str,
        base_url: str,
        headers: dict[str, str] | None = None,
        timeout_s: float | None = None,
    ) -> None:
        settings = get_settings()
        self._provider = provider_name
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout_s or settings.provider_request_timeout_s
        self._default_headers = headers or {}
        self._client: Optional[httpx.AsyncClient] = None

    async def start(self) -> None:
        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            headers=self._default_headers,
            timeout=httpx.Timeout(self._timeout, connect=5.0),
            follow_redirects=True,
        )

    async def close(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    async def get_json(self, path: str, params: dict[str, Any] | None = None) -> Any:
        """
        GET a path and decode its JSON body.

        Raises:
            UpstreamUnavailable: transport failure, timeout or non-2xx status.
            MalformedUpstreamPayload: the body is not valid JSON.
        """
        if not self._client:
            raise RuntimeError("ProviderHTTPClient not started. Call start() first.")

        start_time = time.perf_counter()
        status = "error"
        try:
            resp = await self._client.get(path, params=params)
            status = str(resp.status_code)
            resp.raise_for_status()
        except httpx.TimeoutException as exc:
            status = "timeout"
            logger.warning("provider_timeout", provider=self._provider, path=path)
            raise UpstreamUnavailable(f"{self._provider} request timed out", str(exc)) from exc
        except httpx.HTTPStatusError as exc:
            logger.warning(
                "provider_http_error",
                provider=self._provider,
                path=path,
                status=exc.response.status_code,
            )
            raise UpstreamUnavailable(
                f"{self._provider} returned HTTP {exc.response.status_code}",
                exc.response.text[:200] or None,
            ) from exc
        except httpx.HTTPError as exc:
            logger.warning("provider_request_error", provider=self._provider, path=path, error=str(exc))
            raise UpstreamUnavailable(f"{self._provider} request failed", str(exc)) from exc
        finally:
            PROVIDER_REQUESTS.labels(provider=self._provider, status=status).inc()
            PROVIDER_LATENCY.labels(provider=self._provider).observe(time.perf_counter() - start_time)

        try:
            data = resp.json()
        except ValueError as exc:
            raise MalformedUpstreamPayload(
                f"{self._provider} returned a non-JSON body", resp.text[:200] or None
            ) from exc

        logger.debug(
            "provider_request_success",
            provider=self._provider,
            path=path,
            latency_ms=round((time.perf_counter() - start_time) * 1000, 2),
        )
        return data
