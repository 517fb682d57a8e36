# routers/fmp_routes.py
import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Query, Request

from middleware.rate_limit import limiter
from services.ai.chat.fmp_tools import CagrArgs, FmpToolRegistry, ToolResult, tool_definitions
from services.fmp.errors import (
    FmpConfigError,
    FmpNoDataError,
    FmpServiceError,
    FmpTransientError,
    FmpUpstreamError,
)
from services.fmp.fmp_service import SERIES_METRICS, FmpService
from services.fmp.transcripts import format_transcripts
from services.kpi.cagr import calculate_cagr, format_cagr_report

logger = logging.getLogger(__name__)

router = APIRouter()


# ---- Dependencies (built once in the app lifespan, see main.py) ----
def get_fmp_service(request: Request) -> FmpService:
    return request.app.state.fmp_service


def get_tool_registry(svc: FmpService = Depends(get_fmp_service)) -> FmpToolRegistry:
    return FmpToolRegistry(svc)


def _http_error(e: Exception) -> HTTPException:
    if isinstance(e, FmpConfigError):
        logger.error("fmp misconfigured: %s", e)
        return HTTPException(status_code=500, detail=str(e))
    if isinstance(e, FmpNoDataError):
        return HTTPException(status_code=404, detail=str(e))
    if isinstance(e, (FmpUpstreamError, FmpTransientError, FmpServiceError)):
        return HTTPException(status_code=502, detail=str(e))
    if isinstance(e, ValueError):
        return HTTPException(status_code=400, detail=str(e))
    logger.exception("fmp route failed")
    return HTTPException(status_code=500, detail="Internal error")


_STATEMENT_METHODS = {
    "income-statement": "get_income_statement",
    "balance-sheet": "get_balance_sheet",
    "cash-flow": "get_cash_flow",
    "ratios": "get_ratios",
    "key-metrics": "get_key_metrics",
    "enterprise-values": "get_enterprise_values",
}


# ---------- Routes (thin controllers delegating to the service) ----------
@router.get("/search")
async def search_company(
    query: str = Query(..., min_length=1, max_length=120),
    svc: FmpService = Depends(get_fmp_service),
):
    try:
        return await svc.search_company(query)
    except Exception as e:
        raise _http_error(e)


@router.get("/profile/{symbol}")
async def get_company_profile(symbol: str, svc: FmpService = Depends(get_fmp_service)):
    try:
        return await svc.get_company_profile(symbol)
    except Exception as e:
        raise _http_error(e)


@router.get("/statements/{resource}/{symbol}")
async def get_statement(
    resource: str,
    symbol: str,
    period: str = Query("quarter", pattern="^(annual|quarter)$"),
    limit: int = Query(12, ge=1, le=40),
    svc: FmpService = Depends(get_fmp_service),
):
    method = _STATEMENT_METHODS.get(resource.replace("_", "-").lower())
    if method is None:
        raise HTTPException(
            status_code=404,
            detail=f"Unknown statement '{resource}'. Expected one of: {', '.join(_STATEMENT_METHODS)}",
        )
    try:
        return await getattr(svc, method)(symbol, period=period, limit=limit)
    except Exception as e:
        raise _http_error(e)


@router.get("/shares-outstanding/{symbol}")
async def get_shares_outstanding(symbol: str, svc: FmpService = Depends(get_fmp_service)):
    try:
        return await svc.get_shares_outstanding(symbol)
    except Exception as e:
        raise _http_error(e)


@router.get("/earnings-calendar/{symbol}")
async def get_earnings_calendar(
    symbol: str,
    limit: int = Query(20, ge=1, le=100),
    svc: FmpService = Depends(get_fmp_service),
):
    try:
        return await svc.get_earnings_calendar(symbol, limit=limit)
    except Exception as e:
        raise _http_error(e)


@router.get("/filings/{symbol}")
async def get_filings(
    symbol: str,
    filing_type: Optional[str] = Query(None, alias="type", max_length=16),
    limit: int = Query(20, ge=1, le=100),
    svc: FmpService = Depends(get_fmp_service),
):
    try:
        return await svc.get_filings(symbol, filing_type=filing_type, limit=limit)
    except Exception as e:
        raise _http_error(e)


@router.get("/dividends/{symbol}")
async def get_dividends(
    symbol: str,
    limit: int = Query(20, ge=1, le=100),
    svc: FmpService = Depends(get_fmp_service),
):
    try:
        return await svc.get_dividends(symbol, limit=limit)
    except Exception as e:
        raise _http_error(e)


@router.get("/transcripts/{symbol}")
@limiter.limit("20/minute")
async def get_transcripts(
    request: Request,
    symbol: str,
    year: Optional[int] = Query(None, ge=1990, le=2100),
    quarter: Optional[int] = Query(None, ge=1, le=4),
    num_quarters: int = Query(1, ge=1, le=4),
    svc: FmpService = Depends(get_fmp_service),
):
    try:
        transcripts = await svc.get_earnings_transcripts(
            symbol, year=year, quarter=quarter, num_quarters=num_quarters
        )
    except Exception as e:
        raise _http_error(e)
    return {
        "symbol": symbol.strip().upper(),
        "transcripts": [t.to_dict() for t in transcripts],
        "content": format_transcripts(transcripts),
    }


@router.get("/series/{symbol}")
async def get_metric_series(
    symbol: str,
    metric: str = Query(..., pattern="^(" + "|".join(SERIES_METRICS) + ")$"),
    period: str = Query("annual", pattern="^(annual|quarter)$"),
    svc: FmpService = Depends(get_fmp_service),
):
    try:
        series = await svc.get_metric_series(symbol, metric, period=period)
    except Exception as e:
        raise _http_error(e)
    return {"symbol": symbol.strip().upper(), "metric": metric, "period": period, "series": series}


@router.post("/cagr")
async def post_cagr(payload: CagrArgs):
    series = [p.model_dump() for p in payload.series]
    calcs = calculate_cagr(series, payload.horizons)
    return {
        "calculations": [c.to_dict() for c in calcs],
        "report": format_cagr_report(series, payload.horizons, metric=payload.metric, ticker=payload.ticker),
    }


@router.get("/tools")
async def list_tools() -> List[Dict[str, Any]]:
    return tool_definitions()


@router.post("/tools/{tool_name}", response_model=ToolResult)
@limiter.limit("30/minute")
async def run_tool(
    request: Request,
    tool_name: str,
    arguments: Optional[Dict[str, Any]] = Body(None),
    registry: FmpToolRegistry = Depends(get_tool_registry),
):
    return await registry.execute(tool_name, arguments or {})
