# finverno/services/cache.py
"""
Read-through TTL cache for admin listings.

Values are JSON-serialisable; staleness is bounded by the TTL and writes
that change a cached listing call invalidate().
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from typing import Any, Awaitable, Callable, Optional

import httpx
from tenacity import retry, stop_after_attempt, wait_exponential, retry_if_exception_type, before_sleep_log
import structlog

from finverno.config import settings

logger = structlog.get_logger()
_std_logger = logging.getLogger(__name__)

Loader = Callable[[], Awaitable[Any]]


class TTLCache:
    async def get(self, key: str) -> Optional[Any]:
        raise NotImplementedError

    async def set(self, key: str, value: Any, ttl: int) -> None:
        raise NotImplementedError

    async def invalidate(self, key: str) -> None:
        raise NotImplementedError

    async def ping(self) -> bool:
        return True

    async def get_or_refresh(self, key: str, ttl: int, loader: Loader) -> Any:
        cached = await self.get(key)
        if cached is not None:
            logger.debug("cache_hit", key=key)
            return cached
        logger.debug("cache_miss", key=key)
        value = await loader()
        await self.set(key, value, ttl)
        return value


class InMemoryTTLCache(TTLCache):
    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._entries: dict[str, tuple[float, str]] = {}
        self._lock = asyncio.Lock()

    async def get(self, key: str) -> Optional[Any]:
        async with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            expires_at, payload = entry
            if self._clock() >= expires_at:
                del self._entries[key]
                return None
        return json.loads(payload)

    async def set(self, key: str, value: Any, ttl: int) -> None:
        payload = json.dumps(value, default=str)
        async with self._lock:
            self._entries[key] = (self._clock() + ttl, payload)

    async def invalidate(self, key: str) -> None:
        async with self._lock:
            self._entries.pop(key, None)


class _UpstashRetryableError(Exception):
    """Network errors and 5xx replies from the REST endpoint."""


class UpstashTTLCache(TTLCache):
    """Upstash Redis over its REST API. Commands are posted as JSON arrays."""

    def __init__(self, url: str, token: str, http: Optional[httpx.AsyncClient] = None):
        self.url = url.rstrip("/")
        self.headers = {"Authorization": f"Bearer {token}"}
        # One pooled client avoids a new TLS connection on every call.
        self._http = http or httpx.AsyncClient(
            limits=httpx.Limits(max_connections=20, max_keepalive_connections=10, keepalive_expiry=30),
            timeout=5.0,
        )

    @retry(
        retry=retry_if_exception_type(_UpstashRetryableError),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.2, min=0.2, max=2),
        before_sleep=before_sleep_log(_std_logger, logging.WARNING),
        reraise=True,
    )
    async def _command(self, *args) -> Any:
        try:
            r = await self._http.post(self.url, headers=self.headers, json=[str(a) for a in args])
        except (httpx.ConnectError, httpx.TimeoutException, httpx.NetworkError) as exc:
            logger.warning("cache_network_error_retrying", command=args[0], error=str(exc))
            raise _UpstashRetryableError(str(exc)) from exc
        if r.status_code >= 500:
            logger.warning("cache_upstash_5xx_retrying", command=args[0], status_code=r.status_code)
            raise _UpstashRetryableError(f"Upstash returned {r.status_code}")
        r.raise_for_status()
        return r.json().get("result")

    async def get(self, key: str) -> Optional[Any]:
        result = await self._command("GET", key)
        return json.loads(result) if result is not None else None

    async def set(self, key: str, value: Any, ttl: int) -> None:
        await self._command("SET", key, json.dumps(value, default=str), "EX", ttl)

    async def invalidate(self, key: str) -> None:
        await self._command("DEL", key)

    async def ping(self) -> bool:
        return await self._command("PING") == "PONG"

    async def aclose(self) -> None:
        await self._http.aclose()


def build_cache() -> TTLCache:
    if settings.CACHE_BACKEND == "upstash":
        if not settings.UPSTASH_REDIS_REST_URL:
            raise RuntimeError("UPSTASH_REDIS_REST_URL is required for the upstash cache backend")
        return UpstashTTLCache(settings.UPSTASH_REDIS_REST_URL, settings.UPSTASH_REDIS_REST_TOKEN)
    return InMemoryTTLCache()


cache: TTLCache = build_cache()


def get_cache() -> TTLCache:
    """FastAPI dependency so tests can swap the backend."""
    return cache
