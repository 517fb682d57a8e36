import math
from typing import Any, Iterable, Mapping, Optional

NOT_AVAILABLE = "N/A"


def to_number(x: Any) -> Optional[float]:
    """
    Tolerant numeric coercion for loosely-typed upstream fields.

    None, "", non-numeric strings, booleans, NaN and +/-inf all become None.
    Numeric strings are parsed; ints and floats pass through unchanged.
    """
    if x is None or isinstance(x, bool):
        return None
    if isinstance(x, (int, float)):
        num = float(x) if isinstance(x, float) else x
    elif isinstance(x, str):
        s = x.strip()
        if not s:
            return None
        try:
            num = float(s)
        except ValueError:
            return None
    else:
        return None
    if isinstance(num, float) and not math.isfinite(num):
        return None
    return num


def pick_number(row: Mapping[str, Any], candidates: Iterable[str]) -> Optional[float]:
    """First candidate field that coerces to a number, else None."""
    for key in candidates:
        val = to_number(row.get(key))
        if val is not None:
            return val
    return None


def pick_str(
    row: Mapping[str, Any],
    candidates: Iterable[str],
    default: Optional[str] = NOT_AVAILABLE,
) -> Optional[str]:
    """First candidate field holding a non-empty value (as str), else default."""
    for key in candidates:
        val = row.get(key)
        if val is None:
            continue
        s = str(val).strip()
        if s:
            return s
    return default


def normalize_symbol(symbol: Optional[str]) -> str:
    return (symbol or "").strip().upper()
