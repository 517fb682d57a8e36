# services/fmp/resources.py
"""
Resource descriptors for the FMP endpoints the chat tools expose.

Each descriptor is pure configuration: where to fetch, how long to cache,
how to shape each upstream row, and whether an empty result is an error.
The generic normalizer in services/fmp/normalizer.py does the work.

Field tables list, per output field, the upstream names to try in order.
The first candidate holding a usable value wins, so a renamed upstream field
is handled by listing both names, never by an inline fallback.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Literal, Mapping, Optional, Tuple, Union

from utils.common_helpers import NOT_AVAILABLE, pick_number, pick_str

Period = Literal["annual", "quarter"]
PERIODS: Tuple[str, ...] = ("annual", "quarter")
DEFAULT_PERIOD: Period = "quarter"

TTL_FUNDAMENTALS_SEC = 24 * 3600
TTL_CALENDAR_SEC = 3600
TTL_IDENTITY_SEC = 7 * 24 * 3600

# String default meaning "the period the caller asked for".
REQUESTED_PERIOD = "__requested_period__"


@dataclass(frozen=True)
class NumberField:
    name: str
    candidates: Tuple[str, ...]

    def extract(self, raw: Mapping[str, Any], period: Optional[str]) -> Optional[float]:
        return pick_number(raw, self.candidates)


@dataclass(frozen=True)
class StringField:
    name: str
    candidates: Tuple[str, ...]
    default: Optional[str] = NOT_AVAILABLE

    def extract(self, raw: Mapping[str, Any], period: Optional[str]) -> Optional[str]:
        default = period if self.default == REQUESTED_PERIOD else self.default
        return pick_str(raw, self.candidates, default)


Field = Union[NumberField, StringField]


def num(name: str, *candidates: str) -> NumberField:
    return NumberField(name, candidates or (name,))


def nums(*names: str) -> Tuple[NumberField, ...]:
    return tuple(num(n) for n in names)


def text(name: str, *candidates: str, default: Optional[str] = NOT_AVAILABLE) -> StringField:
    return StringField(name, candidates or (name,), default)


@dataclass(frozen=True)
class Derivation:
    """Fills `target` from other normalized fields when upstream left it missing."""

    target: str
    compute: Callable[[Mapping[str, Any]], Optional[float]]
    formula: str


def derive_total_debt(row: Mapping[str, Any]) -> Optional[float]:
    short_term = row.get("shortTermDebt")
    long_term = row.get("longTermDebt")
    if short_term is None and long_term is None:
        return None
    return (short_term or 0) + (long_term or 0)


def derive_free_cash_flow(row: Mapping[str, Any]) -> Optional[float]:
    operating = row.get("operatingCashFlow")
    capex = row.get("capitalExpenditure")
    if operating is None or capex is None:
        return None
    # FMP reports capex as a negative outflow, hence addition.
    return operating + capex


class EmptyPolicy(str, Enum):
    RAISE = "raise"
    ALLOW = "allow"


class LimitMode(str, Enum):
    NONE = "none"
    UPSTREAM = "upstream"  # sent as the `limit` query param
    SLICE = "slice"        # applied to the upstream list after fetching


@dataclass(frozen=True)
class ResourceDescriptor:
    name: str
    label: str
    path_template: str
    fields: Tuple[Field, ...]
    ttl: int = TTL_FUNDAMENTALS_SEC
    takes_period: bool = False
    limit_mode: LimitMode = LimitMode.NONE
    default_limit: Optional[int] = None
    symbol_param: Optional[str] = None
    rows_key: Optional[str] = None
    derivations: Tuple[Derivation, ...] = ()
    empty_policy: EmptyPolicy = EmptyPolicy.RAISE
    empty_message: str = "No {label} data found for {symbol}"
    field_names: Tuple[str, ...] = field(init=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "field_names", tuple(f.name for f in self.fields))

    def path(self, symbol: str) -> str:
        return self.path_template.format(symbol=symbol)

    def params(
        self,
        *,
        symbol: str,
        period: Optional[str] = None,
        limit: Optional[int] = None,
        extra: Optional[Mapping[str, Any]] = None,
    ) -> Dict[str, Any]:
        out: Dict[str, Any] = {}
        if self.takes_period and period:
            out["period"] = period
        if self.limit_mode is LimitMode.UPSTREAM and limit:
            out["limit"] = int(limit)
        if self.symbol_param:
            out[self.symbol_param] = symbol
        for k, v in (extra or {}).items():
            if v is not None and v != "":
                out[k] = v
        return out

    def extract_rows(self, payload: Any) -> list:
        if self.rows_key:
            if not isinstance(payload, dict):
                return []
            payload = payload.get(self.rows_key)
        if not isinstance(payload, list):
            return []
        return [r for r in payload if isinstance(r, dict)]

    def normalize_row(self, raw: Mapping[str, Any], *, period: Optional[str] = None) -> Dict[str, Any]:
        row: Dict[str, Any] = {f.name: f.extract(raw, period) for f in self.fields}
        for d in self.derivations:
            if row.get(d.target) is None:
                row[d.target] = d.compute(row)
        return row

    def empty_text(self, symbol: str) -> str:
        return self.empty_message.format(label=self.label, symbol=symbol)


_PERIOD_COLUMNS: Tuple[Field, ...] = (
    text("date"),
    text("period", default=REQUESTED_PERIOD),
    text("calendarYear"),
)

TOTAL_DEBT = Derivation(
    target="totalDebt",
    compute=derive_total_debt,
    formula="shortTermDebt + longTermDebt (absent operand = 0; both absent = missing)",
)

FREE_CASH_FLOW = Derivation(
    target="freeCashFlow",
    compute=derive_free_cash_flow,
    formula="operatingCashFlow + capitalExpenditure (both required)",
)


INCOME_STATEMENT = ResourceDescriptor(
    name="income_statement",
    label="income statement",
    path_template="income-statement/{symbol}",
    takes_period=True,
    limit_mode=LimitMode.UPSTREAM,
    default_limit=12,
    fields=_PERIOD_COLUMNS
    + nums(
        "revenue",
        "costOfRevenue",
        "grossProfit",
        "grossProfitRatio",
        "operatingExpenses",
        "operatingIncome",
        "operatingIncomeRatio",
        "researchAndDevelopmentExpenses",
        "sellingGeneralAndAdministrativeExpenses",
        "interestExpense",
        "ebitda",
    )
    + (num("ebitdaRatio", "ebitdaratio", "ebitdaRatio"),)
    + nums("incomeBeforeTax", "incomeTaxExpense", "netIncome", "netIncomeRatio", "eps")
    + (
        num("epsDiluted", "epsdiluted", "epsDiluted"),
        num("weightedAverageShsOut"),
        num("weightedAverageShsOutDiluted", "weightedAverageShsOutDil"),
    ),
)

BALANCE_SHEET = ResourceDescriptor(
    name="balance_sheet",
    label="balance sheet",
    path_template="balance-sheet-statement/{symbol}",
    takes_period=True,
    limit_mode=LimitMode.UPSTREAM,
    default_limit=12,
    fields=_PERIOD_COLUMNS
    + nums(
        "cashAndCashEquivalents",
        "shortTermInvestments",
        "cashAndShortTermInvestments",
        "netReceivables",
        "inventory",
        "totalCurrentAssets",
        "propertyPlantEquipmentNet",
        "goodwill",
        "intangibleAssets",
        "longTermInvestments",
        "totalNonCurrentAssets",
        "totalAssets",
        "accountPayables",
        "shortTermDebt",
        "totalCurrentLiabilities",
        "longTermDebt",
        "totalNonCurrentLiabilities",
        "totalLiabilities",
        "commonStock",
        "retainedEarnings",
        "totalStockholdersEquity",
        "totalEquity",
        "totalDebt",
        "netDebt",
    ),
    derivations=(TOTAL_DEBT,),
)

CASH_FLOW = ResourceDescriptor(
    name="cash_flow",
    label="cash flow",
    path_template="cash-flow-statement/{symbol}",
    takes_period=True,
    limit_mode=LimitMode.UPSTREAM,
    default_limit=12,
    fields=_PERIOD_COLUMNS
    + nums(
        "netIncome",
        "depreciationAndAmortization",
        "stockBasedCompensation",
        "changeInWorkingCapital",
        "accountsReceivables",
        "inventory",
        "accountsPayables",
    )
    + (
        num("operatingCashFlow", "operatingCashFlow", "netCashProvidedByOperatingActivities"),
        num("investmentsInPropertyPlantAndEquipment"),
        num("capitalExpenditure", "capitalExpenditure", "investmentsInPropertyPlantAndEquipment"),
    )
    + nums("acquisitionsNet", "purchasesOfInvestments", "salesMaturitiesOfInvestments")
    + (
        num(
            "netCashUsedForInvestingActivities",
            "netCashUsedForInvestingActivites",
            "netCashUsedForInvestingActivities",
        ),
    )
    + nums(
        "debtRepayment",
        "commonStockIssued",
        "commonStockRepurchased",
        "dividendsPaid",
        "netCashUsedProvidedByFinancingActivities",
        "netChangeInCash",
        "cashAtEndOfPeriod",
        "cashAtBeginningOfPeriod",
        "freeCashFlow",
    ),
    derivations=(FREE_CASH_FLOW,),
)

RATIOS = ResourceDescriptor(
    name="ratios",
    label="ratios",
    path_template="ratios/{symbol}",
    takes_period=True,
    limit_mode=LimitMode.UPSTREAM,
    default_limit=12,
    fields=_PERIOD_COLUMNS
    + nums(
        # liquidity
        "currentRatio",
        "quickRatio",
        "cashRatio",
        # operating efficiency
        "daysOfSalesOutstanding",
        "daysOfInventoryOutstanding",
        "cashConversionCycle",
        # margins
        "grossProfitMargin",
        "operatingProfitMargin",
        "netProfitMargin",
        # returns
        "returnOnAssets",
        "returnOnEquity",
        "returnOnCapitalEmployed",
        # leverage
        "debtRatio",
        "debtEquityRatio",
        "interestCoverage",
        # turnover
        "assetTurnover",
        "inventoryTurnover",
        "receivablesTurnover",
        # cash flow
        "operatingCashFlowPerShare",
        "freeCashFlowPerShare",
        "cashPerShare",
        # valuation
        "priceEarningsRatio",
        "priceToBookRatio",
        "priceToSalesRatio",
        "priceToFreeCashFlowsRatio",
        "dividendYield",
        "enterpriseValueMultiple",
    ),
)

KEY_METRICS = ResourceDescriptor(
    name="key_metrics",
    label="key metrics",
    path_template="key-metrics/{symbol}",
    takes_period=True,
    limit_mode=LimitMode.UPSTREAM,
    default_limit=12,
    fields=_PERIOD_COLUMNS
    + nums(
        "revenuePerShare",
        "netIncomePerShare",
        "operatingCashFlowPerShare",
        "freeCashFlowPerShare",
        "cashPerShare",
        "bookValuePerShare",
        "tangibleBookValuePerShare",
        "marketCap",
        "enterpriseValue",
        "peRatio",
        "priceToSalesRatio",
    )
    + (num("pbRatio", "pbRatio", "ptbRatio"),)
    + nums(
        "pfcfRatio",
        "evToSales",
        "enterpriseValueOverEBITDA",
        "evToOperatingCashFlow",
        "evToFreeCashFlow",
        "earningsYield",
        "freeCashFlowYield",
        "dividendYield",
        "debtToEquity",
        "debtToAssets",
        "netDebtToEBITDA",
        "currentRatio",
        "interestCoverage",
        "roic",
        "roe",
        "returnOnTangibleAssets",
        "inventoryTurnover",
        "receivablesTurnover",
        "payablesTurnover",
        "capexToOperatingCashFlow",
        "capexToRevenue",
        "workingCapital",
        "investedCapital",
    ),
)

ENTERPRISE_VALUES = ResourceDescriptor(
    name="enterprise_values",
    label="enterprise value",
    path_template="enterprise-values/{symbol}",
    takes_period=True,
    limit_mode=LimitMode.UPSTREAM,
    default_limit=12,
    fields=(text("date"),)
    + nums(
        "stockPrice",
        "numberOfShares",
        "marketCapitalization",
        "minusCashAndCashEquivalents",
        "addTotalDebt",
        "enterpriseValue",
    ),
)

SHARES_OUTSTANDING = ResourceDescriptor(
    name="shares_outstanding",
    label="shares outstanding",
    path_template="shares_float/{symbol}",
    fields=(
        text("date"),
        num("outstandingShares"),
        num("floatShares", "floatShares", "freeFloat"),
        text("source"),
    ),
)

EARNINGS_CALENDAR = ResourceDescriptor(
    name="earnings_calendar",
    label="earnings calendar",
    path_template="earnings-calendar",
    ttl=TTL_CALENDAR_SEC,
    limit_mode=LimitMode.SLICE,
    default_limit=20,
    symbol_param="symbol",
    fields=(text("date"), text("fiscalDateEnding"), text("time"))
    + nums("eps", "epsEstimated", "revenue", "revenueEstimated"),
)

FILINGS = ResourceDescriptor(
    name="filings",
    label="SEC filings",
    path_template="sec_filings/{symbol}",
    ttl=TTL_CALENDAR_SEC,
    limit_mode=LimitMode.SLICE,
    default_limit=20,
    fields=(
        text("date", "date", "acceptedDate"),
        text("type"),
        text("title"),
        text("link", "finalLink", "link"),
    ),
    empty_message="No {label} found for {symbol}",
)

DIVIDENDS = ResourceDescriptor(
    name="dividends",
    label="dividend history",
    path_template="historical-price-full/stock_dividend/{symbol}",
    limit_mode=LimitMode.SLICE,
    default_limit=20,
    rows_key="historical",
    fields=(
        text("date"),
        text("label"),
        num("dividend", "adjDividend", "dividend"),
        text("declarationDate"),
        text("recordDate"),
        text("paymentDate"),
    ),
    empty_policy=EmptyPolicy.ALLOW,
    empty_message="No dividend history found for {symbol}. This company may not pay dividends.",
)

COMPANY_PROFILE = ResourceDescriptor(
    name="company_profile",
    label="company profile",
    path_template="profile/{symbol}",
    fields=(
        text("symbol", default=None),
        text("companyName"),
        num("price"),
        text("currency", default="USD"),
        text("exchange", "exchangeShortName", "exchange"),
        num("marketCap", "mktCap", "marketCap"),
        text("sector"),
        text("industry"),
        text("description"),
        text("ceo"),
        num("employees", "fullTimeEmployees"),
        text("website"),
        text("country"),
        text("ipoDate"),
        num("beta"),
        text("priceRange", "range"),
        num("averageVolume", "volAvg", "averageVolume"),
    ),
    empty_message="No profile found for symbol {symbol}",
)

COMPANY_SEARCH = ResourceDescriptor(
    name="company_search",
    label="company search",
    path_template="search",
    ttl=TTL_IDENTITY_SEC,
    limit_mode=LimitMode.SLICE,
    default_limit=10,
    fields=(
        text("symbol"),
        text("name"),
        text("exchange", "exchangeShortName", "stockExchange"),
        text("currency", default="USD"),
    ),
    empty_policy=EmptyPolicy.ALLOW,
    empty_message='No companies found matching "{symbol}"',
)

EARNINGS_TRANSCRIPT_PATH = "earning_call_transcript/{symbol}"

# Statement-style resources addressable by name (routes, tools).
STATEMENTS: Dict[str, ResourceDescriptor] = {
    d.name: d
    for d in (
        INCOME_STATEMENT,
        BALANCE_SHEET,
        CASH_FLOW,
        RATIOS,
        KEY_METRICS,
        ENTERPRISE_VALUES,
        SHARES_OUTSTANDING,
    )
}
