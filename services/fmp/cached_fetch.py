# services/fmp/cached_fetch.py
from __future__ import annotations

import json
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, Mapping, Optional, Union

import httpx

from config.fmp_config import DEFAULT_FMP_BASE_URL, FmpSettings
from services.cache.cache_backend import CacheBackend
from services.fmp.errors import FmpConfigError, FmpTransientError, FmpUpstreamError
from services.fmp.retry import RetryExhaustedError, RetryPolicy, run_with_retry

logger = logging.getLogger(__name__)

# Bump the version tag to invalidate every existing entry after a format change.
CACHE_NAMESPACE = "fmp:v1"
TTL_DEFAULT_SEC = 24 * 3600

CREDENTIAL_PARAM = "apikey"

ParamValue = Union[str, int, float]
Params = Mapping[str, ParamValue]

_MISS = object()

# FMP answers some bad requests with 200 + {"Error Message": "..."}.
_UPSTREAM_ERROR_KEYS = ("Error Message", "error")


def cache_key(path: str, params: Optional[Params] = None) -> str:
    """
    Deterministic key for (path, params): names sorted, joined as k=v with '&'.
    The credential is never part of the key so rotating it keeps the cache warm.
    """
    clean = {k: v for k, v in (params or {}).items() if k.lower() != CREDENTIAL_PARAM}
    query = "&".join(f"{k}={clean[k]}" for k in sorted(clean))
    return f"{CACHE_NAMESPACE}:{path}?{query}"


def upstream_error_message(payload: Any) -> Optional[str]:
    if not isinstance(payload, dict):
        return None
    for k in _UPSTREAM_ERROR_KEYS:
        msg = payload.get(k)
        if isinstance(msg, str) and msg.strip():
            return msg.strip()
    return None


def is_retryable_status(status: int) -> bool:
    return status == 429 or status >= 500


class RetryableStatusError(Exception):
    """Raised inside an attempt for 429/5xx so the retry policy can see it."""

    def __init__(self, path: str, status: int, reason: str = ""):
        super().__init__(f"HTTP {status}: {reason}".rstrip(": ").strip())
        self.path = path
        self.status = status


def is_transient(exc: BaseException) -> bool:
    return isinstance(exc, (RetryableStatusError, httpx.TransportError))


class FmpGateway:
    """
    Fetch-cache-retry gateway in front of the Financial Modeling Prep REST API.

    cache hit  -> parsed payload, no network, no credential needed
    cache miss -> GET {base}/{path}?{params}&apikey=... with bounded retry,
                  then SETEX under the cache key with the caller's TTL

    No request coalescing: concurrent identical misses each go upstream.
    """

    def __init__(
        self,
        *,
        api_key: Optional[str] = None,
        base_url: str = DEFAULT_FMP_BASE_URL,
        cache: Optional[CacheBackend] = None,
        client: Optional[httpx.AsyncClient] = None,
        retry_policy: Optional[RetryPolicy] = None,
    ):
        self._api_key = api_key
        self._base_url = base_url.rstrip("/")
        self._cache = cache
        self._client = client
        policy = retry_policy or RetryPolicy()
        self._retry_policy = RetryPolicy(
            max_attempts=policy.max_attempts,
            base_delay_s=policy.base_delay_s,
            max_jitter_s=policy.max_jitter_s,
            retry_on=is_transient,
            sleep=policy.sleep,
        )

    @classmethod
    def from_settings(
        cls,
        settings: FmpSettings,
        *,
        cache: Optional[CacheBackend] = None,
        client: Optional[httpx.AsyncClient] = None,
    ) -> "FmpGateway":
        return cls(
            api_key=settings.api_key,
            base_url=settings.base_url,
            cache=cache,
            client=client,
            retry_policy=RetryPolicy(max_attempts=settings.max_attempts),
        )

    @property
    def caching_enabled(self) -> bool:
        return self._cache is not None

    @asynccontextmanager
    async def _http(self) -> AsyncIterator[httpx.AsyncClient]:
        if self._client is not None:
            yield self._client
            return
        async with httpx.AsyncClient(timeout=10.0) as c:
            yield c

    # -----------------------
    # Cache
    # -----------------------

    async def _cache_read(self, key: str) -> Any:
        if self._cache is None:
            return _MISS
        try:
            raw = await self._cache.get(key)
        except Exception as exc:
            logger.warning("cache get failed key=%s: %s", key, exc)
            return _MISS
        if not raw:
            logger.debug("cache miss key=%s", key)
            return _MISS
        try:
            payload = json.loads(raw)
        except ValueError as exc:
            logger.warning("cache entry unreadable key=%s: %s", key, exc)
            return _MISS
        logger.debug("cache hit key=%s", key)
        return payload

    async def _cache_write(self, key: str, payload: Any, ttl: int) -> None:
        if self._cache is None:
            return
        try:
            await self._cache.setex(key, int(ttl), json.dumps(payload, separators=(",", ":")))
        except Exception as exc:
            # A failed write costs a future miss, never this response.
            logger.warning("cache set failed key=%s: %s", key, exc)

    # -----------------------
    # Network
    # -----------------------

    async def _get_with_retry(self, path: str, params: Dict[str, ParamValue]) -> httpx.Response:
        url = f"{self._base_url}/{path.lstrip('/')}"
        query = {**params, CREDENTIAL_PARAM: self._api_key}

        async with self._http() as c:

            async def attempt() -> httpx.Response:
                r = await c.get(url, params=query)
                if is_retryable_status(r.status_code):
                    raise RetryableStatusError(path, r.status_code, r.reason_phrase)
                return r

            try:
                return await run_with_retry(attempt, self._retry_policy, describe=f"FMP GET {path}")
            except RetryExhaustedError as exc:
                last = exc.last_error
                raise FmpTransientError(
                    f"FMP API unavailable for {path} after {exc.attempts} attempts: {last}",
                    path=path,
                    status=getattr(last, "status", None),
                ) from last

    async def fetch(
        self,
        path: str,
        params: Optional[Params] = None,
        *,
        ttl: int = TTL_DEFAULT_SEC,
    ) -> Any:
        """Parsed JSON body for `path` + `params`, possibly served from cache."""
        clean: Dict[str, ParamValue] = {
            k: v for k, v in (params or {}).items() if k.lower() != CREDENTIAL_PARAM
        }
        key = cache_key(path, clean)

        cached = await self._cache_read(key)
        if cached is not _MISS:
            return cached

        if not self._api_key:
            raise FmpConfigError("FMP_API_KEY environment variable is not set", path=path)

        r = await self._get_with_retry(path, clean)
        if not r.is_success:
            raise FmpUpstreamError(
                f"FMP API error: {r.status_code} {r.reason_phrase} for {path}",
                path=path,
                status=r.status_code,
            )

        try:
            data = r.json()
        except ValueError as exc:
            raise FmpUpstreamError(
                f"FMP API returned invalid JSON for {path}",
                path=path,
                status=r.status_code,
            ) from exc

        # error bodies (bad key, unknown symbol) must not outlive a key rotation
        if upstream_error_message(data) is None:
            await self._cache_write(key, data, ttl)
        return data
