"""
HTTP Utilities

Shared HTTP client wrapper for calls to external services. Records
Prometheus metrics for every request made through it.
"""

import logging
import time
from typing import Optional

import httpx

from app.core.metrics import (
    external_api_duration_seconds,
    external_api_errors_total,
    external_api_requests_total,
)

logger = logging.getLogger(__name__)


class InstrumentedAsyncClient:
    """
    A wrapper around httpx.AsyncClient that automatically records metrics.

    Usage:
        async with InstrumentedAsyncClient("GitHub JWKS", timeout=5.0) as client:
            response = await client.get(url)
    """

    def __init__(
        self,
        service_name: str,
        timeout: float = 30.0,
        **kwargs,
    ):
        self.service_name = service_name
        self._client: Optional[httpx.AsyncClient] = None
        self._timeout = timeout
        self._kwargs = kwargs
        self._NOT_STARTED_MSG = "Client not started. Use 'async with' or call start()."

    async def start(self) -> None:
        """Start the underlying client (for long-lived usage)."""
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout, **self._kwargs)

    async def close(self) -> None:
        """Close the underlying client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "InstrumentedAsyncClient":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def get(self, url: str, **kwargs) -> httpx.Response:
        """Make a GET request with metrics."""
        if self._client is None:
            raise RuntimeError(self._NOT_STARTED_MSG)

        start_time = time.time()
        external_api_requests_total.labels(service=self.service_name).inc()
        try:
            response = await self._client.get(url, **kwargs)
        except Exception:
            external_api_errors_total.labels(service=self.service_name).inc()
            raise

        external_api_duration_seconds.labels(service=self.service_name).observe(time.time() - start_time)
        if response.status_code >= 400:
            external_api_errors_total.labels(service=self.service_name).inc()
            logger.debug(f"{self.service_name} GET {url} returned HTTP {response.status_code}")
        return response
