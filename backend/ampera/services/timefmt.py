from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional

from ampera.services.normalize import parse_timestamp, round_to


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def utc_now_iso() -> str:
    return utc_now().isoformat().replace("+00:00", "Z")


def _plural(n: int, unit: str) -> str:
    return f"{n} {unit}{'' if n == 1 else 's'} ago"


def format_time_ago(value: Any, now: Optional[datetime] = None) -> str:
    ts = parse_timestamp(value)
    if ts is None:
        return "unknown"
    now = now or utc_now()
    minutes = max(0, int(round_to((now - ts).total_seconds() / 60, 0)))
    if minutes < 1:
        return "just now"
    if minutes < 60:
        return f"{minutes} min ago"
    hours = int(round_to(minutes / 60, 0))
    if hours < 24:
        return _plural(hours, "hr")
    return _plural(int(round_to(hours / 24, 0)), "day")


def format_clock_time(value: Any) -> str:
    """12-hour wall clock in UTC, e.g. ``9:46 AM``."""
    ts = parse_timestamp(value)
    if ts is None:
        return "--:--"
    ts = ts.astimezone(timezone.utc)
    hour = ts.hour % 12 or 12
    suffix = "AM" if ts.hour < 12 else "PM"
    return f"{hour}:{ts.minute:02d} {suffix}"
