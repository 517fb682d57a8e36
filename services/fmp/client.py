#services/fmp/client.py
import httpx


def build_http_client(timeout_s: float = 10.0) -> httpx.AsyncClient:
    """One pooled client per process; the gateway never builds one per call."""
    return httpx.AsyncClient(
        timeout=httpx.Timeout(timeout_s, connect=min(timeout_s, 3.0)),
        limits=httpx.Limits(max_connections=20, max_keepalive_connections=10),
    )
