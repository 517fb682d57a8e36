# config/fmp_config.py
from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

load_dotenv()

DEFAULT_FMP_BASE_URL = "https://financialmodelingprep.com/api/v3"


def _env_int(name: str, default: int) -> int:
    raw = (os.getenv(name) or "").strip()
    try:
        return int(raw) if raw else default
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = (os.getenv(name) or "").strip()
    try:
        return float(raw) if raw else default
    except ValueError:
        return default


@dataclass(frozen=True)
class FmpSettings:
    """
    Runtime settings for the Financial Modeling Prep data layer.

    api_key and redis_url are optional on purpose: a cached response never
    needs the key, and no REDIS_URL simply means every request is a miss.
    """

    api_key: Optional[str] = None
    base_url: str = DEFAULT_FMP_BASE_URL
    redis_url: Optional[str] = None
    max_attempts: int = 3
    timeout_s: float = 10.0

    @classmethod
    def from_env(cls) -> "FmpSettings":
        return cls(
            api_key=(os.getenv("FMP_API_KEY") or "").strip() or None,
            base_url=(os.getenv("FMP_BASE_URL") or DEFAULT_FMP_BASE_URL).rstrip("/"),
            redis_url=(os.getenv("REDIS_URL") or "").strip() or None,
            max_attempts=max(1, _env_int("FMP_MAX_ATTEMPTS", 3)),
            timeout_s=_env_float("FMP_TIMEOUT_S", 10.0),
        )
