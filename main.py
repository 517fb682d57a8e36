# main.py
import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware

from config.fmp_config import FmpSettings
from config.logging_config import configure_logging
from middleware.rate_limit import limiter
from middleware.request_logging import RequestLoggingMiddleware
from routers.fmp_routes import router as fmp_router
from services.cache.cache_backend import RedisCacheBackend, build_cache_backend
from services.fmp.cached_fetch import FmpGateway
from services.fmp.client import build_http_client
from services.fmp.fmp_service import FmpService

configure_logging()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # One cache connection and one pooled HTTP client per process.
    settings = FmpSettings.from_env()
    if not settings.api_key:
        logger.warning("FMP_API_KEY not set, only cached responses can be served")
    cache = build_cache_backend(settings.redis_url)
    client = build_http_client(settings.timeout_s)
    gateway = FmpGateway.from_settings(settings, cache=cache, client=client)
    app.state.fmp_service = FmpService(gateway)
    try:
        yield
    finally:
        await client.aclose()
        if isinstance(cache, RedisCacheBackend):
            await cache.close()


app = FastAPI(title="FinSight data service", lifespan=lifespan)

origins = [o.strip() for o in os.getenv("CORS_ORIGINS", "http://localhost:3000").split(",") if o.strip()]

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
app.add_middleware(SlowAPIMiddleware)
app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["*"],
)

# Include routers
app.include_router(fmp_router, prefix="/api/fmp")


@app.get("/health")
async def health():
    return {"status": "ok"}
