# services/kpi/cagr.py
"""
Compound annual growth rate over a chronologically ascending series.

Pure functions, no I/O. Degenerate inputs never raise: each horizon yields a
CagrCalculation, with available=False and a reason when it cannot be computed.
"""
from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from utils.common_helpers import to_number

INSUFFICIENT_DATA = "insufficient_data"
INVALID_BASELINE = "invalid_baseline"
INVALID_HORIZON = "invalid_horizon"
INVALID_ENDPOINT = "invalid_endpoint"
OUT_OF_RANGE = "out_of_range"

_REASON_TEXT = {
    INSUFFICIENT_DATA: "Insufficient data points",
    INVALID_BASELINE: "Starting value is missing or not positive",
    INVALID_HORIZON: "Horizon must be at least one year",
    INVALID_ENDPOINT: "Ending value is missing or negative",
    OUT_OF_RANGE: "Growth rate is too large to represent",
}


@dataclass(frozen=True)
class CagrCalculation:
    horizon: int
    start_date: str = ""
    end_date: str = ""
    start_value: Optional[float] = None
    end_value: Optional[float] = None
    cagr: Optional[float] = None  # percent
    formula: str = ""
    available: bool = False
    reason: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "horizon": self.horizon,
            "startDate": self.start_date,
            "endDate": self.end_date,
            "startValue": self.start_value,
            "endValue": self.end_value,
            "cagr": self.cagr,
            "formula": self.formula,
            "available": self.available,
            "reason": self.reason,
        }


def format_number(v: Optional[float]) -> str:
    """Grouped thousands, up to 3 decimals, trailing zeros dropped."""
    if v is None:
        return "N/A"
    if float(v).is_integer():
        return f"{int(v):,}"
    return f"{v:,.3f}".rstrip("0").rstrip(".")


def _point(p: Any) -> Mapping[str, Any]:
    if isinstance(p, Mapping):
        return p
    # pydantic models / simple objects with date + value attributes
    return {"date": getattr(p, "date", ""), "value": getattr(p, "value", None)}


def _cagr_for(points: Sequence[Mapping[str, Any]], h: int) -> CagrCalculation:
    if h < 1:
        return CagrCalculation(horizon=h, reason=INVALID_HORIZON)
    if len(points) < h + 1:
        return CagrCalculation(horizon=h, reason=INSUFFICIENT_DATA)

    start_pt, end_pt = points[-h - 1], points[-1]
    start_date = str(start_pt.get("date") or "")
    end_date = str(end_pt.get("date") or "")
    start = to_number(start_pt.get("value"))
    end = to_number(end_pt.get("value"))

    partial = dict(
        horizon=h,
        start_date=start_date,
        end_date=end_date,
        start_value=start,
        end_value=end,
    )
    if start is None or start <= 0:
        return CagrCalculation(**partial, reason=INVALID_BASELINE)
    if end is None or end < 0:
        # a negative ratio has no real h-th root
        return CagrCalculation(**partial, reason=INVALID_ENDPOINT)

    try:
        cagr = ((end / start) ** (1 / h) - 1) * 100
        formula = f"(({format_number(end)} / {format_number(start)}) ^ (1/{h})) - 1"
    except OverflowError:
        return CagrCalculation(**partial, reason=OUT_OF_RANGE)
    if not math.isfinite(cagr):
        return CagrCalculation(**partial, reason=OUT_OF_RANGE)
    return CagrCalculation(**partial, cagr=cagr, formula=formula, available=True)


def calculate_cagr(series: Iterable[Any], horizons: Iterable[Any]) -> List[CagrCalculation]:
    """
    One CagrCalculation per horizon, in input order.

    For horizon h the start point is series[-h-1] and the end point series[-1]:
        cagr% = ((end / start) ** (1/h) - 1) * 100
    """
    points = [_point(p) for p in (series or [])]
    out: List[CagrCalculation] = []
    for raw_h in horizons or []:
        h = to_number(raw_h)
        # ints pass through to_number unchanged and may be too big for a float
        if h is None or (isinstance(h, float) and not h.is_integer()):
            out.append(CagrCalculation(horizon=0 if h is None else int(h), reason=INVALID_HORIZON))
            continue
        out.append(_cagr_for(points, int(h)))
    return out


def format_cagr_report(
    series: Sequence[Any],
    horizons: Sequence[Any],
    metric: Optional[str] = None,
    ticker: Optional[str] = None,
) -> str:
    """Markdown workings for each horizon, or an "Error: ..." line for empty input."""
    if not series:
        return "Error: No data provided for CAGR calculation"
    if not horizons:
        return "Error: No time horizons specified for CAGR calculation"

    points = [_point(p) for p in series]
    calcs = calculate_cagr(points, horizons)

    ticker_label = f"{ticker} " if ticker else ""
    metric_label = f"{metric} " if metric else ""
    lines: List[str] = [f"**{ticker_label}{metric_label}CAGR Analysis**", ""]

    for c in calcs:
        if not c.available:
            lines += [f"### {c.horizon}-Year CAGR: N/A", f"*{_REASON_TEXT.get(c.reason or '', 'Unavailable')}*", ""]
            continue
        lines += [
            f"### {c.horizon}-Year CAGR: {c.cagr:.1f}%",
            "",
            f"**Period:** {c.start_date} → {c.end_date}",
            "",
            "**Calculation:**",
            f"- Starting Value: {format_number(c.start_value)}",
            f"- Ending Value: {format_number(c.end_value)}",
            f"- Formula: {c.formula}",
            f"- Result: {c.cagr:.2f}%",
            "",
            "---",
            "",
        ]

    first = points[0].get("date") or ""
    last = points[-1].get("date") or ""
    lines.append(f"*Based on {len(points)} data points from {first} to {last}*")
    return "\n".join(lines)
