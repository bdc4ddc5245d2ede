"""
Unit tests for finverno/services/cache.py

Tests: in-memory TTL expiry with an injected clock, read-through refresh,
invalidation, and the Upstash REST command encoding.
"""

import json

import httpx
import pytest

from finverno.services.cache import InMemoryTTLCache, UpstashTTLCache


class Clock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


@pytest.fixture
def clock():
    return Clock()


async def test_get_or_refresh_serves_cached_until_ttl(clock):
    cache = InMemoryTTLCache(clock=clock)
    calls = []

    async def loader():
        calls.append(1)
        return {"rows": len(calls)}

    assert await cache.get_or_refresh("admin:projects", 300, loader) == {"rows": 1}
    clock.now += 299
    assert await cache.get_or_refresh("admin:projects", 300, loader) == {"rows": 1}
    clock.now += 2
    assert await cache.get_or_refresh("admin:projects", 300, loader) == {"rows": 2}
    assert len(calls) == 2


async def test_invalidate_forces_reload(clock):
    cache = InMemoryTTLCache(clock=clock)
    await cache.set("k", [1, 2], 300)
    assert await cache.get("k") == [1, 2]
    await cache.invalidate("k")
    assert await cache.get("k") is None


async def test_cached_values_are_copies(clock):
    cache = InMemoryTTLCache(clock=clock)
    value = {"a": [1]}
    await cache.set("k", value, 60)
    value["a"].append(2)
    assert await cache.get("k") == {"a": [1]}


async def test_upstash_commands():
    sent = []

    def handler(request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        sent.append(body)
        assert request.headers["Authorization"] == "Bearer tok"
        if body[0] == "GET":
            return httpx.Response(200, json={"result": json.dumps({"ok": True})})
        if body[0] == "PING":
            return httpx.Response(200, json={"result": "PONG"})
        return httpx.Response(200, json={"result": "OK"})

    http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    cache = UpstashTTLCache("https://example.upstash.io", "tok", http=http)

    await cache.set("admin:contractors", {"ok": True}, 300)
    assert await cache.get("admin:contractors") == {"ok": True}
    await cache.invalidate("admin:contractors")
    assert await cache.ping() is True
    await cache.aclose()

    assert sent[0] == ["SET", "admin:contractors", json.dumps({"ok": True}), "EX", "300"]
    assert sent[1] == ["GET", "admin:contractors"]
    assert sent[2] == ["DEL", "admin:contractors"]


async def test_upstash_retries_server_errors():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        if len(calls) == 1:
            return httpx.Response(503)
        return httpx.Response(200, json={"result": "PONG"})

    http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    cache = UpstashTTLCache("https://example.upstash.io", "tok", http=http)
    assert await cache.ping() is True
    assert len(calls) == 2
    await cache.aclose()


async def test_upstash_client_errors_are_not_retried():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(401, json={"error": "bad token"})

    http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    cache = UpstashTTLCache("https://example.upstash.io", "tok", http=http)
    with pytest.raises(httpx.HTTPStatusError):
        await cache.get("admin:projects")
    assert len(calls) == 1
    await cache.aclose()
