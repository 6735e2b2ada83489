"""
normalize.py

Null-safe coercion for loosely-typed upstream cells.

Nothing in here raises on malformed input: a cell that cannot be read as the
requested type comes back as ``None`` and every caller decides its own
fallback.
"""
from __future__ import annotations

import math
from datetime import datetime, timezone
from typing import Any, Optional

_EXACT_INT_LIMIT = 2 ** 53


def to_number(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        value = value.strip()
        if not value:
            return None
    try:
        parsed = float(value)
    except (TypeError, ValueError, OverflowError):
        return None
    return parsed if math.isfinite(parsed) else None


def to_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def parse_timestamp(value: Any) -> Optional[datetime]:
    """ISO-8601 to an aware datetime. Naive values are read as UTC."""
    if isinstance(value, datetime):
        parsed = value
    else:
        text = to_text(value)
        if text is None:
            return None
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def clamp(value: float, lo: float, hi: float) -> float:
    return min(hi, max(lo, value))


def round_to(value: float, digits: int = 1) -> float:
    """Half-up rounding; the builtin round() is half-to-even."""
    factor = 10 ** digits
    scaled = value * factor
    # beyond 2**53 every float is already an integer; inf/nan pass through
    if not math.isfinite(scaled) or abs(scaled) >= _EXACT_INT_LIMIT:
        return value
    return math.floor(scaled + 0.5) / factor


def scale_probability(value: Optional[float]) -> Optional[float]:
    """Values at or below 1 are probabilities; lift them to percent."""
    if value is None:
        return None
    return value * 100 if value <= 1 else value
