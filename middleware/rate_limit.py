# middleware/rate_limit.py
"""
Rate limiting configuration using slowapi.

Usage in route files:
    from middleware.rate_limit import limiter

    @router.get("/expensive")
    @limiter.limit("5/minute")
    async def my_endpoint(request: Request):
        ...

Every other route gets RATE_LIMIT_DEFAULT through SlowAPIMiddleware (see main.py).
"""
import logging
import os

from fastapi import Request
from slowapi import Limiter
from slowapi.util import get_remote_address

logger = logging.getLogger(__name__)


def _get_rate_limit_key(request: Request) -> str:
    """
    Identify the caller for rate-limiting by socket peer address.

    Client-supplied forwarding headers are not read here. Behind a trusted
    proxy, run uvicorn with --proxy-headers and --forwarded-allow-ips so the
    peer address is already the real client.
    """
    return get_remote_address(request)


# Env-overridable so limits can be tuned per environment without redeploying.
DEFAULT_RATE_LIMIT = os.getenv("RATE_LIMIT_DEFAULT", "60/minute")

# A cache-backed redis:// URL also shares limiter counters across workers.
_storage_uri = os.getenv("REDIS_URL") or "memory://"

limiter = Limiter(
    key_func=_get_rate_limit_key,
    default_limits=[DEFAULT_RATE_LIMIT],
    storage_uri=_storage_uri,
    strategy="fixed-window",
)
