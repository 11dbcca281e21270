"""Tenant directory: cached list of known tenant ids from the platform API."""

from __future__ import annotations

import asyncio
import time

import httpx
import structlog

logger = structlog.get_logger()

DEFAULT_TIMEOUT = 10.0
DEFAULT_CACHE_TTL = 300


class TenantDirectory:
    """Fetches and caches the platform's list of tenant ids.

    Failures never propagate: a timeout, connection error, non-2xx status or
    a payload that is not a JSON list of strings degrades to the last good
    list, or to an empty list if there never was one. Concurrent callers
    share a single in-flight fetch.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        url: str,
        timeout: float = DEFAULT_TIMEOUT,
        cache_ttl: int = DEFAULT_CACHE_TTL,
    ) -> None:
        self._client = client
        self._url = url
        self._timeout = timeout
        self._cache_ttl = cache_ttl
        self._tenants: list[str] = []
        self._fetched_at: float | None = None
        self._pending: asyncio.Task[list[str]] | None = None

    @property
    def url(self) -> str:
        return self._url

    def is_fresh(self) -> bool:
        """True when a non-empty list was fetched within the TTL."""
        if not self._tenants or self._fetched_at is None:
            return False
        return (time.monotonic() - self._fetched_at) < self._cache_ttl

    def cached(self) -> list[str]:
        return list(self._tenants)

    async def get_tenants(self) -> list[str]:
        """Return known tenant ids, refreshing the cache when stale."""
        if self.is_fresh():
            return list(self._tenants)

        if self._pending is None:
            self._pending = asyncio.create_task(self._refresh())
            self._pending.add_done_callback(self._clear_pending)
        # shield: one caller going away must not cancel the shared fetch
        return list(await asyncio.shield(self._pending))

    def _clear_pending(self, task: asyncio.Task[list[str]]) -> None:
        if self._pending is task:
            self._pending = None

    async def _refresh(self) -> list[str]:
        try:
            resp = await self._client.get(self._url, timeout=self._timeout)
        except httpx.TimeoutException:
            logger.warning("tenant_directory_timeout", url=self._url, timeout=self._timeout)
            return self.cached()
        except httpx.HTTPError as exc:
            logger.warning("tenant_directory_fetch_failed", url=self._url, error=str(exc))
            return self.cached()

        if not resp.is_success:
            logger.warning("tenant_directory_bad_status", url=self._url, status_code=resp.status_code)
            return self.cached()

        try:
            payload = resp.json()
        except ValueError:
            logger.warning("tenant_directory_invalid_json", url=self._url)
            return self.cached()

        if not isinstance(payload, list):
            logger.warning("tenant_directory_unexpected_payload", url=self._url, type=type(payload).__name__)
            return self.cached()

        self._tenants = [item for item in payload if isinstance(item, str) and item]
        self._fetched_at = time.monotonic()
        logger.info("tenant_directory_loaded", tenants=len(self._tenants))
        return self.cached()
