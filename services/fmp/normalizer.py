# services/fmp/normalizer.py
from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional

from services.fmp.cached_fetch import FmpGateway, upstream_error_message
from services.fmp.errors import FmpNoDataError, FmpServiceError, FmpUpstreamError
from services.fmp.resources import (
    DEFAULT_PERIOD,
    PERIODS,
    EmptyPolicy,
    LimitMode,
    ResourceDescriptor,
)
from utils.common_helpers import normalize_symbol

logger = logging.getLogger(__name__)


def resolve_period(period: Optional[str]) -> str:
    p = (period or DEFAULT_PERIOD).strip().lower()
    if p not in PERIODS:
        raise ValueError(f"period must be one of {', '.join(PERIODS)}")
    return p


class ResourceNormalizer:
    """
    Turns a ResourceDescriptor into a fetched, shaped result:

        { "symbol": ..., "period": ... (statements only), "rows": [...] }

    Every gateway error is re-raised with
    "Failed to fetch <label> for <SYMBOL>: " prepended; the error class is kept.
    """

    def __init__(self, gateway: FmpGateway):
        self._gateway = gateway

    async def fetch_rows(
        self,
        descriptor: ResourceDescriptor,
        *,
        symbol: str,
        context: str,
        period: Optional[str] = None,
        limit: Optional[int] = None,
        extra_params: Optional[Mapping[str, Any]] = None,
    ) -> List[Dict[str, Any]]:
        """Fetched and normalized rows; may be empty. `context` prefixes errors."""
        path = descriptor.path(symbol)
        params = descriptor.params(symbol=symbol, period=period, limit=limit, extra=extra_params)

        try:
            payload = await self._gateway.fetch(path, params, ttl=descriptor.ttl)
            upstream_msg = upstream_error_message(payload)
            if upstream_msg:
                raise FmpUpstreamError(f"FMP API error: {upstream_msg}", path=path)
        except FmpServiceError as exc:
            raise exc.with_context(context, symbol=symbol, resource=descriptor.name) from exc

        raw_rows = descriptor.extract_rows(payload)
        if descriptor.limit_mode is LimitMode.SLICE and limit:
            raw_rows = raw_rows[: int(limit)]

        return [descriptor.normalize_row(r, period=period) for r in raw_rows]

    async def fetch(
        self,
        descriptor: ResourceDescriptor,
        symbol: str,
        *,
        period: Optional[str] = None,
        limit: Optional[int] = None,
        extra_params: Optional[Mapping[str, Any]] = None,
    ) -> Dict[str, Any]:
        sym = normalize_symbol(symbol)
        if not sym:
            raise ValueError("symbol is required")

        resolved_period = resolve_period(period) if descriptor.takes_period else None
        resolved_limit = limit if limit is not None else descriptor.default_limit

        rows = await self.fetch_rows(
            descriptor,
            symbol=sym,
            context=f"Failed to fetch {descriptor.label} for {sym}",
            period=resolved_period,
            limit=resolved_limit,
            extra_params=extra_params,
        )

        out: Dict[str, Any] = {"symbol": sym}
        if descriptor.takes_period:
            out["period"] = resolved_period

        if not rows:
            if descriptor.empty_policy is EmptyPolicy.ALLOW:
                logger.info("fmp %s empty for %s", descriptor.name, sym)
                out["rows"] = []
                out["message"] = descriptor.empty_text(sym)
                return out
            raise FmpNoDataError(descriptor.empty_text(sym), symbol=sym, resource=descriptor.name)

        out["rows"] = rows
        return out
