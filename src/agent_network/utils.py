"""
Shared parsing helpers.

Upstream APIs return numbers as strings, floats, hex quantities or wei
integers depending on the endpoint; these helpers normalise them without
raising so that a single malformed field never sinks a whole record.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional

from .constants import WEI_PER_ETH


def parse_datetime(value: object) -> Optional[datetime]:
    """Convert a value to a timezone-aware ``datetime`` (UTC).

    Accepts ``None``, ``datetime``, ISO-8601 strings (``Z`` or offset suffix)
    and Unix epoch seconds.  Anything unparseable yields ``None``.
    """
    if value is None:
        return None

    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    if isinstance(value, str):
        try:
            cleaned = value.replace("Z", "+00:00") if value.endswith("Z") else value
            dt = datetime.fromisoformat(cleaned)
            if dt.tzinfo is None:
                dt = dt.replace(tzinfo=timezone.utc)
            return dt
        except (ValueError, TypeError):
            return None

    if isinstance(value, (int, float)):
        try:
            return datetime.fromtimestamp(float(value), tz=timezone.utc)
        except (ValueError, OSError, OverflowError):
            return None

    return None


def to_unix_seconds(value: object) -> int:
    """Unix seconds for *value*, or 0 when it cannot be parsed."""
    dt = parse_datetime(value)
    return int(dt.timestamp()) if dt is not None else 0


def safe_float(val: Any, default: float = 0.0) -> float:
    """Cast *val* to float, returning *default* on failure."""
    if val is None:
        return default
    try:
        return float(val)
    except (TypeError, ValueError):
        return default


def wei_to_eth(val: Any) -> float:
    """Convert a wei amount (int, decimal string, or float) to ETH."""
    if isinstance(val, str):
        val = val.strip()
        try:
            return int(val) / WEI_PER_ETH
        except ValueError:
            pass
    return safe_float(val) / WEI_PER_ETH
