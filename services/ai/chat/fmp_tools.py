from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Literal, Optional, Type

from pydantic import BaseModel, Field, ValidationError, field_validator

from services.fmp.errors import FmpConfigError, FmpNoDataError, FmpServiceError, FmpTransientError
from services.fmp.fmp_service import FmpService
from services.fmp.transcripts import format_transcripts
from services.kpi.cagr import calculate_cagr, format_cagr_report

logger = logging.getLogger(__name__)

Period = Literal["annual", "quarter"]
SeriesMetric = Literal["revenue", "netIncome", "freeCashFlow"]


class ToolResult(BaseModel):
    ok: bool
    tool_name: str
    data: Dict[str, Any] = Field(default_factory=dict)
    data_gaps: list[str] = Field(default_factory=list)
    error: Optional[str] = None


def _upper(v: str) -> str:
    return (v or "").strip().upper()


def _period(v: Any) -> Any:
    # "quarterly" is accepted as an alias of "quarter"
    if isinstance(v, str):
        out = v.strip().lower()
        return "quarter" if out == "quarterly" else out
    return v


class SearchArgs(BaseModel):
    query: str = Field(min_length=1, max_length=120)

    @field_validator("query")
    @classmethod
    def _strip(cls, v: str) -> str:
        return (v or "").strip()


class SymbolArgs(BaseModel):
    symbol: str = Field(min_length=1, max_length=32)

    @field_validator("symbol")
    @classmethod
    def _normalize_symbol(cls, v: str) -> str:
        return _upper(v)


class StatementArgs(SymbolArgs):
    period: Period = "quarter"
    limit: int = Field(default=12, ge=1, le=40)

    @field_validator("period", mode="before")
    @classmethod
    def _normalize_period(cls, v: Any) -> Any:
        return _period(v)


class CalendarArgs(SymbolArgs):
    limit: int = Field(default=20, ge=1, le=100)


class FilingsArgs(SymbolArgs):
    filing_type: Optional[str] = Field(default=None, max_length=16)
    limit: int = Field(default=20, ge=1, le=100)

    @field_validator("filing_type")
    @classmethod
    def _normalize_type(cls, v: Optional[str]) -> Optional[str]:
        out = (v or "").strip().upper()
        return out or None


class TranscriptArgs(SymbolArgs):
    year: Optional[int] = Field(default=None, ge=1990, le=2100)
    quarter: Optional[int] = Field(default=None, ge=1, le=4)
    num_quarters: int = Field(default=1, ge=1, le=4)


class SeriesArgs(SymbolArgs):
    metric: SeriesMetric
    period: Period = "annual"

    @field_validator("period", mode="before")
    @classmethod
    def _normalize_period(cls, v: Any) -> Any:
        return _period(v)


class SeriesPoint(BaseModel):
    date: str
    value: Optional[float] = None


class CagrArgs(BaseModel):
    series: List[SeriesPoint] = Field(default_factory=list)
    horizons: List[int] = Field(default_factory=list)
    metric: Optional[str] = Field(default=None, max_length=64)
    ticker: Optional[str] = Field(default=None, max_length=32)


@dataclass(frozen=True)
class FmpToolSpec:
    name: str
    description: str
    input_model: Type[BaseModel]


TOOL_SPECS: Dict[str, FmpToolSpec] = {
    s.name: s
    for s in (
        FmpToolSpec(
            "search_company",
            "Search companies by name or partial ticker. Use it to find the right ticker symbol.",
            SearchArgs,
        ),
        FmpToolSpec(
            "get_company_profile",
            "Company overview: sector, industry, market cap, CEO, description, price.",
            SymbolArgs,
        ),
        FmpToolSpec(
            "get_income_statement",
            "Income statement rows (revenue, margins, EPS) for recent periods.",
            StatementArgs,
        ),
        FmpToolSpec(
            "get_balance_sheet",
            "Balance sheet rows (assets, liabilities, equity, debt) for recent periods.",
            StatementArgs,
        ),
        FmpToolSpec(
            "get_cash_flow",
            "Cash flow statement rows including operating cash flow, capex and free cash flow.",
            StatementArgs,
        ),
        FmpToolSpec(
            "get_ratios",
            "Financial ratios: liquidity, margins, returns, leverage and valuation.",
            StatementArgs,
        ),
        FmpToolSpec(
            "get_key_metrics",
            "Per-share figures, valuation multiples and return metrics.",
            StatementArgs,
        ),
        FmpToolSpec(
            "get_enterprise_values",
            "Enterprise value build-up: market cap, cash, debt, share count.",
            StatementArgs,
        ),
        FmpToolSpec(
            "get_shares_outstanding",
            "Outstanding and free-float share counts.",
            SymbolArgs,
        ),
        FmpToolSpec(
            "get_earnings_calendar",
            "Past and upcoming earnings dates with EPS and revenue actuals vs estimates.",
            CalendarArgs,
        ),
        FmpToolSpec(
            "get_filings",
            "Recent SEC filings (10-K, 10-Q, 8-K, ...) with document links.",
            FilingsArgs,
        ),
        FmpToolSpec(
            "get_dividends",
            "Dividend payment history. Companies that pay no dividend return an empty list.",
            CalendarArgs,
        ),
        FmpToolSpec(
            "get_earnings_transcript",
            "Earnings call transcript(s). Omit year/quarter for the latest; set num_quarters "
            "to 2-4 for several recent calls in one call.",
            TranscriptArgs,
        ),
        FmpToolSpec(
            "get_financial_series",
            "Chronological revenue, net income or free cash flow series, suitable for CAGR.",
            SeriesArgs,
        ),
        FmpToolSpec(
            "calculate_cagr",
            "Compound annual growth rate over a chronological series for each horizon in years, "
            "with the workings.",
            CagrArgs,
        ),
    )
}


def tool_definitions() -> List[Dict[str, Any]]:
    """Name, description and JSON schema of every tool, for an LLM tool-calling layer."""
    return [
        {
            "name": spec.name,
            "description": spec.description,
            "parameters": spec.input_model.model_json_schema(),
        }
        for spec in TOOL_SPECS.values()
    ]


def _gap_for(exc: FmpServiceError) -> str:
    if isinstance(exc, FmpConfigError):
        return "Data provider not configured"
    if isinstance(exc, FmpNoDataError):
        return "No data available"
    if isinstance(exc, FmpTransientError):
        return "Data provider temporarily unavailable"
    return "Data provider error"


class FmpToolRegistry:
    """Small, validated facade for chat-safe FMP tool calls."""

    def __init__(self, service: FmpService):
        self._service = service
        self._handlers: Dict[str, Callable[[Any], Awaitable[ToolResult]]] = {
            "search_company": self.search_company,
            "get_company_profile": self.get_company_profile,
            "get_income_statement": self._statement(service.get_income_statement, "get_income_statement"),
            "get_balance_sheet": self._statement(service.get_balance_sheet, "get_balance_sheet"),
            "get_cash_flow": self._statement(service.get_cash_flow, "get_cash_flow"),
            "get_ratios": self._statement(service.get_ratios, "get_ratios"),
            "get_key_metrics": self._statement(service.get_key_metrics, "get_key_metrics"),
            "get_enterprise_values": self._statement(service.get_enterprise_values, "get_enterprise_values"),
            "get_shares_outstanding": self.get_shares_outstanding,
            "get_earnings_calendar": self.get_earnings_calendar,
            "get_filings": self.get_filings,
            "get_dividends": self.get_dividends,
            "get_earnings_transcript": self.get_earnings_transcript,
            "get_financial_series": self.get_financial_series,
            "calculate_cagr": self.calculate_cagr,
        }

    @property
    def tool_names(self) -> List[str]:
        return list(self._handlers)

    async def execute(self, tool_name: str, arguments: Dict[str, Any]) -> ToolResult:
        spec = TOOL_SPECS.get(tool_name)
        handler = self._handlers.get(tool_name)
        if spec is None or handler is None:
            return ToolResult(
                ok=False,
                tool_name=tool_name,
                error=f"Unsupported tool: {tool_name}",
                data_gaps=["Unsupported tool"],
            )
        try:
            parsed = spec.input_model(**(arguments or {}))
            return await handler(parsed)
        except ValidationError as exc:
            return ToolResult(
                ok=False,
                tool_name=tool_name,
                error=f"Invalid tool arguments: {exc.errors()}",
                data_gaps=["Invalid tool arguments"],
            )
        except FmpServiceError as exc:
            logger.warning("fmp tool %s failed: %s", tool_name, exc)
            return ToolResult(ok=False, tool_name=tool_name, error=str(exc), data_gaps=[_gap_for(exc)])
        except Exception as exc:
            logger.exception("fmp tool %s crashed", tool_name)
            return ToolResult(
                ok=False,
                tool_name=tool_name,
                error=f"Tool execution failed: {exc}",
                data_gaps=["Tool execution failed"],
            )

    def _statement(self, fetch: Callable[..., Awaitable[Dict[str, Any]]], tool_name: str):
        async def run(args: StatementArgs) -> ToolResult:
            data = await fetch(args.symbol, period=args.period, limit=args.limit)
            return ToolResult(ok=True, tool_name=tool_name, data=data)

        return run

    async def search_company(self, args: SearchArgs) -> ToolResult:
        data = await self._service.search_company(args.query)
        gaps = [data["message"]] if data.get("message") else []
        return ToolResult(ok=True, tool_name="search_company", data=data, data_gaps=gaps)

    async def get_company_profile(self, args: SymbolArgs) -> ToolResult:
        profile = await self._service.get_company_profile(args.symbol)
        return ToolResult(ok=True, tool_name="get_company_profile", data=profile)

    async def get_shares_outstanding(self, args: SymbolArgs) -> ToolResult:
        data = await self._service.get_shares_outstanding(args.symbol)
        return ToolResult(ok=True, tool_name="get_shares_outstanding", data=data)

    async def get_earnings_calendar(self, args: CalendarArgs) -> ToolResult:
        data = await self._service.get_earnings_calendar(args.symbol, limit=args.limit)
        return ToolResult(ok=True, tool_name="get_earnings_calendar", data=data)

    async def get_filings(self, args: FilingsArgs) -> ToolResult:
        data = await self._service.get_filings(args.symbol, filing_type=args.filing_type, limit=args.limit)
        return ToolResult(ok=True, tool_name="get_filings", data=data)

    async def get_dividends(self, args: CalendarArgs) -> ToolResult:
        data = await self._service.get_dividends(args.symbol, limit=args.limit)
        gaps = [data["message"]] if data.get("message") else []
        return ToolResult(ok=True, tool_name="get_dividends", data=data, data_gaps=gaps)

    async def get_earnings_transcript(self, args: TranscriptArgs) -> ToolResult:
        transcripts = await self._service.get_earnings_transcripts(
            args.symbol,
            year=args.year,
            quarter=args.quarter,
            num_quarters=args.num_quarters,
        )
        gaps = [t.content for t in transcripts if not t.available]
        data = {
            "symbol": args.symbol,
            "transcripts": [t.to_dict() for t in transcripts],
            "content": format_transcripts(transcripts),
        }
        return ToolResult(
            ok=any(t.available for t in transcripts),
            tool_name="get_earnings_transcript",
            data=data,
            data_gaps=gaps,
            error=None if len(gaps) < len(transcripts) else "No transcripts available",
        )

    async def get_financial_series(self, args: SeriesArgs) -> ToolResult:
        series = await self._service.get_metric_series(args.symbol, args.metric, period=args.period)
        data = {"symbol": args.symbol, "metric": args.metric, "period": args.period, "series": series}
        gaps = [f"{p['date']}: {args.metric} missing" for p in series if p["value"] is None]
        return ToolResult(ok=True, tool_name="get_financial_series", data=data, data_gaps=gaps)

    async def calculate_cagr(self, args: CagrArgs) -> ToolResult:
        series = [p.model_dump() for p in args.series]
        calcs = calculate_cagr(series, args.horizons)
        report = format_cagr_report(series, args.horizons, metric=args.metric, ticker=args.ticker)
        if report.startswith("Error:"):
            return ToolResult(
                ok=False,
                tool_name="calculate_cagr",
                data={"report": report},
                error=report[len("Error:"):].strip(),
                data_gaps=["Insufficient input"],
            )
        gaps = [f"{c.horizon}-year CAGR unavailable: {c.reason}" for c in calcs if not c.available]
        data = {"calculations": [c.to_dict() for c in calcs], "report": report}
        return ToolResult(ok=True, tool_name="calculate_cagr", data=data, data_gaps=gaps)
