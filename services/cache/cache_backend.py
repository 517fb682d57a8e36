# services/cache/cache_backend.py
from __future__ import annotations

import logging
import time
from typing import Dict, Optional, Protocol, Tuple

import redis.asyncio as aioredis

logger = logging.getLogger(__name__)


class CacheBackend(Protocol):
    """
    Minimal string key/value store with TTL.
    Values are opaque serialized JSON; the caller owns (de)serialization.
    """

    async def get(self, key: str) -> Optional[str]:
        ...

    async def setex(self, key: str, ttl_seconds: int, value: str) -> None:
        ...


class RedisCacheBackend:
    """Shared cache over one redis.asyncio client (GET / SETEX only)."""

    def __init__(self, client: aioredis.Redis):
        self._client = client

    @classmethod
    def from_url(cls, url: str) -> "RedisCacheBackend":
        client = aioredis.from_url(
            url,
            decode_responses=True,  # returns str for GET
            socket_timeout=2,
            socket_connect_timeout=2,
        )
        return cls(client)

    async def get(self, key: str) -> Optional[str]:
        raw = await self._client.get(key)
        if raw is None:
            return None
        if isinstance(raw, (bytes, bytearray)):
            return raw.decode("utf-8")
        return str(raw)

    async def setex(self, key: str, ttl_seconds: int, value: str) -> None:
        await self._client.setex(key, int(ttl_seconds), value)

    async def close(self) -> None:
        await self._client.aclose()


class InMemoryCacheBackend:
    """
    Process-local TTL store. Useful for local development without Redis and
    as a stand-in backend in tests.

    Expired entries are swept when the store reaches `max_entries`; if it is
    still full, the oldest write is evicted.
    """

    def __init__(self, max_entries: int = 10_000) -> None:
        self.max_entries = max(1, int(max_entries))
        # key -> (expires_at_epoch, payload), in write order
        self._store: Dict[str, Tuple[float, str]] = {}

    async def get(self, key: str) -> Optional[str]:
        hit = self._store.get(key)
        if not hit:
            return None
        expires_at, payload = hit
        if time.time() <= expires_at:
            return payload
        self._store.pop(key, None)
        return None

    async def setex(self, key: str, ttl_seconds: int, value: str) -> None:
        now = time.time()
        self._store.pop(key, None)
        if len(self._store) >= self.max_entries:
            self._sweep(now)
        while len(self._store) >= self.max_entries:
            self._store.pop(next(iter(self._store)))
        self._store[key] = (now + int(ttl_seconds), value)

    def _sweep(self, now: float) -> None:
        for k in [k for k, (expires_at, _) in self._store.items() if expires_at < now]:
            del self._store[k]

    def __len__(self) -> int:
        return len(self._store)

    def __contains__(self, key: object) -> bool:
        return key in self._store


def build_cache_backend(url: Optional[str]) -> Optional[CacheBackend]:
    """
    Build the process-wide cache backend once at startup.
    Returns None when no URL is configured: callers treat that as always-miss.
    """
    if not url:
        logger.warning("REDIS_URL not set, caching disabled")
        return None
    if url.startswith("memory://"):
        return InMemoryCacheBackend()
    return RedisCacheBackend.from_url(url)
