# services/fmp/transcripts.py
"""
Earnings call transcripts, fetched per quarter through the FMP gateway.

A multi-quarter request walks backwards from the starting quarter. A quarter
that cannot be fetched becomes a placeholder entry; it never fails the batch.
"""
from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from datetime import date
from typing import Any, Dict, List, Optional, Tuple

from services.fmp.cached_fetch import FmpGateway
from services.fmp.errors import FmpConfigError, FmpNoDataError, FmpServiceError, FmpUpstreamError
from services.fmp.resources import EARNINGS_TRANSCRIPT_PATH, TTL_FUNDAMENTALS_SEC
from utils.common_helpers import normalize_symbol

logger = logging.getLogger(__name__)

MAX_QUARTERS = 4
SINGLE_MAX_CHARS = 15000
MULTI_MAX_CHARS = 8000

_SINGLE_TRUNCATED = "\n\n... [Transcript truncated due to length]"
_MULTI_TRUNCATED = "\n\n... [Transcript truncated]"


@dataclass
class Transcript:
    symbol: str
    year: int
    quarter: int
    content: str
    available: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def infer_recent_quarter(today: Optional[date] = None) -> Tuple[int, int]:
    """
    Most recent quarter likely to have a published transcript, as (year, quarter).

    Transcripts land a few weeks after quarter end, so in the first half of a
    quarter's first month we step back one extra quarter.
    """
    today = today or date.today()
    current_quarter = (today.month - 1) // 3 + 1
    early_in_quarter = today.month % 3 == 1 and today.day < 15

    year, quarter = today.year, current_quarter - 1
    if early_in_quarter:
        quarter -= 1
    if quarter < 1:
        quarter += 4
        year -= 1
    return year, quarter


def previous_quarter(year: int, quarter: int) -> Tuple[int, int]:
    if quarter <= 1:
        return year - 1, 4
    return year, quarter - 1


def placeholder(year: int, quarter: int) -> str:
    return f"[Transcript not available for Q{quarter} {year}]"


def _extract_content(payload: Any, symbol: str, year: int, quarter: int) -> str:
    if not payload:
        raise FmpNoDataError(
            f"No earnings transcript found for {symbol} for Q{quarter} {year}",
            symbol=symbol,
            resource="earnings_transcript",
        )
    item = payload[0] if isinstance(payload, list) else payload
    content = item.get("content") if isinstance(item, dict) else None
    if not isinstance(content, str):
        raise FmpUpstreamError(
            f"Invalid transcript data for {symbol}", symbol=symbol, resource="earnings_transcript"
        )
    return content


class TranscriptService:
    def __init__(self, gateway: FmpGateway):
        self._gateway = gateway

    async def fetch_transcript(self, symbol: str, year: int, quarter: int) -> str:
        sym = normalize_symbol(symbol)
        path = EARNINGS_TRANSCRIPT_PATH.format(symbol=sym)
        try:
            payload = await self._gateway.fetch(
                path, {"year": int(year), "quarter": int(quarter)}, ttl=TTL_FUNDAMENTALS_SEC
            )
        except FmpServiceError as exc:
            raise exc.with_context(
                f"Failed to fetch earnings transcript for {sym} (Q{quarter} {year})",
                symbol=sym,
                resource="earnings_transcript",
            ) from exc
        return _extract_content(payload, sym, year, quarter)

    async def get_transcripts(
        self,
        symbol: str,
        *,
        year: Optional[int] = None,
        quarter: Optional[int] = None,
        num_quarters: int = 1,
        today: Optional[date] = None,
    ) -> List[Transcript]:
        sym = normalize_symbol(symbol)
        if not sym:
            raise ValueError("symbol is required")
        if quarter is not None and not 1 <= int(quarter) <= 4:
            raise ValueError("quarter must be between 1 and 4")
        n = max(1, min(int(num_quarters or 1), MAX_QUARTERS))

        if year is None or quarter is None:
            inferred_year, inferred_quarter = infer_recent_quarter(today)
            year = inferred_year if year is None else year
            quarter = inferred_quarter if quarter is None else quarter

        out: List[Transcript] = []
        y, q = int(year), int(quarter)
        for _ in range(n):
            try:
                content = await self.fetch_transcript(sym, y, q)
                out.append(Transcript(sym, y, q, content))
            except FmpConfigError:
                raise
            except FmpServiceError as exc:
                logger.info("transcript unavailable %s Q%d %d: %s", sym, q, y, exc)
                out.append(Transcript(sym, y, q, placeholder(y, q), available=False))
            y, q = previous_quarter(y, q)
        return out


def _truncate(content: str, limit: int, marker: str) -> str:
    if len(content) <= limit:
        return content
    return content[:limit] + marker


def format_transcripts(transcripts: List[Transcript]) -> str:
    if not transcripts:
        return ""

    def header(t: Transcript) -> str:
        return f"**{t.symbol} Earnings Call Transcript - Q{t.quarter} {t.year}**"

    if len(transcripts) == 1:
        t = transcripts[0]
        body = _truncate(t.content, SINGLE_MAX_CHARS, _SINGLE_TRUNCATED)
        return f"{header(t)}\n\n{body}"

    parts = [f"{header(t)}\n\n{_truncate(t.content, MULTI_MAX_CHARS, _MULTI_TRUNCATED)}" for t in transcripts]
    return "\n\n---\n\n".join(parts)
