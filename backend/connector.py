"""
Service Connector — reads list endpoints of the neighbouring REST services.

Each fetch is isolated: any transport error, non-2xx status or non-list
body becomes a failed FetchResult with count 0 instead of an exception, so
one unreachable service never blocks the others.
"""
from __future__ import annotations

import structlog
from dataclasses import dataclass
from typing import Optional

import httpx

logger = structlog.get_logger()


@dataclass(frozen=True)
class FetchResult:
    success: bool
    count: int = 0
    error: str = ""


class ServiceClient:
    """Thin httpx wrapper with a fixed per-request timeout."""

    def __init__(self, timeout_seconds: float = 5.0, client: Optional[httpx.AsyncClient] = None):
        self.timeout_seconds = timeout_seconds
        self._client = client
        self._owns_client = client is None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=self.timeout_seconds)
            self._owns_client = True
        return self._client

    async def fetch_records(self, service_name: str, url: str) -> FetchResult:
        """GET a list endpoint and count the records it returns."""
        client = await self._get_client()
        try:
            response = await client.get(url, timeout=self.timeout_seconds)
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error("service_fetch_failed", service=service_name, url=url, error=str(e))
            return FetchResult(success=False, error=str(e))

        if not isinstance(data, list):
            logger.error("service_fetch_unexpected_body",
                         service=service_name, url=url,
                         body_type=type(data).__name__)
            return FetchResult(success=False, error="Expected a JSON list")

        return FetchResult(success=True, count=len(data))

    async def close(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
        self._client = None
