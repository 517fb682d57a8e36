# services/fmp/fmp_service.py
from __future__ import annotations

import logging
from datetime import date
from typing import Any, Dict, List, Optional

import httpx

from config.fmp_config import FmpSettings
from services.cache.cache_backend import CacheBackend
from services.fmp.cached_fetch import FmpGateway
from services.fmp.errors import FmpNoDataError
from services.fmp.normalizer import ResourceNormalizer, resolve_period
from services.fmp.resources import (
    BALANCE_SHEET,
    CASH_FLOW,
    COMPANY_PROFILE,
    COMPANY_SEARCH,
    DIVIDENDS,
    EARNINGS_CALENDAR,
    ENTERPRISE_VALUES,
    FILINGS,
    INCOME_STATEMENT,
    KEY_METRICS,
    RATIOS,
    SHARES_OUTSTANDING,
)
from services.fmp.transcripts import Transcript, TranscriptService
from utils.common_helpers import NOT_AVAILABLE, normalize_symbol

logger = logging.getLogger(__name__)

SERIES_METRICS = ("revenue", "netIncome", "freeCashFlow")
SERIES_DEFAULT_LIMIT = 10


class FmpService:
    """
    Framework-agnostic async facade over the FMP resources used by chat tools
    and the /api/fmp routes.

    Every method returns plain dicts with camelCase keys; missing numeric
    values are None. Errors surface as FmpServiceError subclasses with a
    "Failed to fetch <resource> for <SYMBOL>: " prefix.
    """

    def __init__(self, gateway: FmpGateway):
        self.gateway = gateway
        self._normalizer = ResourceNormalizer(gateway)
        self._transcripts = TranscriptService(gateway)

    @classmethod
    def from_settings(
        cls,
        settings: Optional[FmpSettings] = None,
        *,
        cache: Optional[CacheBackend] = None,
        client: Optional[httpx.AsyncClient] = None,
    ) -> "FmpService":
        settings = settings or FmpSettings.from_env()
        return cls(FmpGateway.from_settings(settings, cache=cache, client=client))

    # -----------------------
    # Identity
    # -----------------------

    async def search_company(self, query: str, limit: int = 10) -> Dict[str, Any]:
        q = (query or "").strip()
        if not q:
            raise ValueError("query is required")

        results = await self._normalizer.fetch_rows(
            COMPANY_SEARCH,
            symbol=q,
            context=f"Failed to search companies for '{q}'",
            limit=max(1, min(int(limit), COMPANY_SEARCH.default_limit or 10)),
            extra_params={"query": q},
        )
        out: Dict[str, Any] = {"query": q, "results": results}
        if not results:
            out["message"] = COMPANY_SEARCH.empty_text(q)
        return out

    async def get_company_profile(self, symbol: str) -> Dict[str, Any]:
        result = await self._normalizer.fetch(COMPANY_PROFILE, symbol)
        row = result["rows"][0]
        row["symbol"] = row.get("symbol") or result["symbol"]
        return row

    # -----------------------
    # Statements
    # -----------------------

    async def get_income_statement(
        self, symbol: str, period: Optional[str] = None, limit: Optional[int] = None
    ) -> Dict[str, Any]:
        return await self._normalizer.fetch(INCOME_STATEMENT, symbol, period=period, limit=limit)

    async def get_balance_sheet(
        self, symbol: str, period: Optional[str] = None, limit: Optional[int] = None
    ) -> Dict[str, Any]:
        return await self._normalizer.fetch(BALANCE_SHEET, symbol, period=period, limit=limit)

    async def get_cash_flow(
        self, symbol: str, period: Optional[str] = None, limit: Optional[int] = None
    ) -> Dict[str, Any]:
        return await self._normalizer.fetch(CASH_FLOW, symbol, period=period, limit=limit)

    async def get_ratios(
        self, symbol: str, period: Optional[str] = None, limit: Optional[int] = None
    ) -> Dict[str, Any]:
        return await self._normalizer.fetch(RATIOS, symbol, period=period, limit=limit)

    async def get_key_metrics(
        self, symbol: str, period: Optional[str] = None, limit: Optional[int] = None
    ) -> Dict[str, Any]:
        return await self._normalizer.fetch(KEY_METRICS, symbol, period=period, limit=limit)

    async def get_enterprise_values(
        self, symbol: str, period: Optional[str] = None, limit: Optional[int] = None
    ) -> Dict[str, Any]:
        return await self._normalizer.fetch(ENTERPRISE_VALUES, symbol, period=period, limit=limit)

    async def get_shares_outstanding(self, symbol: str) -> Dict[str, Any]:
        return await self._normalizer.fetch(SHARES_OUTSTANDING, symbol)

    # -----------------------
    # Events
    # -----------------------

    async def get_earnings_calendar(self, symbol: str, limit: Optional[int] = None) -> Dict[str, Any]:
        return await self._normalizer.fetch(EARNINGS_CALENDAR, symbol, limit=limit)

    async def get_filings(
        self,
        symbol: str,
        filing_type: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> Dict[str, Any]:
        ft = (filing_type or "").strip() or None
        result = await self._normalizer.fetch(
            FILINGS, symbol, limit=limit, extra_params={"type": ft}
        )
        return {"symbol": result["symbol"], "filingType": ft or "all", "rows": result["rows"]}

    async def get_dividends(self, symbol: str, limit: Optional[int] = None) -> Dict[str, Any]:
        return await self._normalizer.fetch(DIVIDENDS, symbol, limit=limit)

    async def get_earnings_transcripts(
        self,
        symbol: str,
        *,
        year: Optional[int] = None,
        quarter: Optional[int] = None,
        num_quarters: int = 1,
        today: Optional[date] = None,
    ) -> List[Transcript]:
        return await self._transcripts.get_transcripts(
            symbol, year=year, quarter=quarter, num_quarters=num_quarters, today=today
        )

    # -----------------------
    # Series (CAGR input)
    # -----------------------

    async def get_metric_series(
        self,
        symbol: str,
        metric: str,
        period: Optional[str] = "annual",
        limit: int = SERIES_DEFAULT_LIMIT,
    ) -> List[Dict[str, Any]]:
        """
        Chronologically ascending [{date, value}] for one statement metric.
        freeCashFlow comes from the cash-flow statement (derived when absent).
        """
        if metric not in SERIES_METRICS:
            raise ValueError(f"metric must be one of {', '.join(SERIES_METRICS)}")
        p = resolve_period(period or "annual")
        descriptor = CASH_FLOW if metric == "freeCashFlow" else INCOME_STATEMENT

        result = await self._normalizer.fetch(descriptor, symbol, period=p, limit=limit)
        # an undated row has no place on the timeline
        points = [
            {"date": r["date"], "value": r.get(metric)}
            for r in result["rows"]
            if r.get("date") and r["date"] != NOT_AVAILABLE
        ]
        # FMP lists newest first.
        points.sort(key=lambda pt: pt["date"])
        if all(pt["value"] is None for pt in points):
            sym = normalize_symbol(symbol)
            raise FmpNoDataError(
                f"No {metric} values found for {sym}", symbol=sym, resource=descriptor.name
            )
        return points
