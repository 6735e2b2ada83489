"""
geo.py

Purpose:
  Gives every charger a map position, even when telemetry carries no usable
  coordinates.

Rules:
  - Real coordinates are kept as-is when both are finite, in range and not
    the (0, 0) "unset" sentinel.
  - Otherwise the charger sits near its area's fallback point, nudged by a
    deterministic jitter (hash of ``<chargerKey>:<areaKey>``) so co-located
    fallbacks do not collapse into one marker. Same inputs, same output, so
    markers stay put across refreshes.
"""
from __future__ import annotations

from typing import Any, Dict, Optional, Tuple

from ampera.services.normalize import round_to, to_number

UNASSIGNED_AREA = "unassigned"

AREA_FALLBACK_COORDS: Dict[str, Tuple[float, float]] = {
    "folsom": (38.677959, -121.176058),
    "sacramento-downtown": (38.581572, -121.4944),
    "sacramento downtown": (38.581572, -121.4944),
    "davis": (38.544907, -121.740517),
    "roseville": (38.752123, -121.288006),
    "west-sacramento": (38.58046, -121.530235),
    "west sacramento": (38.58046, -121.530235),
    "elk-grove": (38.408799, -121.371618),
    "elk grove": (38.408799, -121.371618),
    UNASSIGNED_AREA: (38.581572, -121.4944),
}

JITTER_DEG = 0.01


def hash_string(text: str) -> int:
    h = 0
    for ch in text:
        h = (h * 31 + ord(ch)) & 0xFFFFFFFF
    return h


def jitter_from_seed(seed: int) -> float:
    """Map a hash onto [-1, 1)."""
    return ((seed % 10000) / 10000) * 2 - 1


def has_valid_coordinates(lat: Optional[float], lng: Optional[float]) -> bool:
    if lat is None or lng is None:
        return False
    if not (-90 <= lat <= 90 and -180 <= lng <= 180):
        return False
    return not (lat == 0 and lng == 0)


def resolve_coordinates(
    latitude_raw: Any,
    longitude_raw: Any,
    area_raw: Optional[str],
    charger_key: str,
) -> Tuple[float, float]:
    lat = to_number(latitude_raw)
    lng = to_number(longitude_raw)
    if has_valid_coordinates(lat, lng):
        return lat, lng  # type: ignore[return-value]

    area_key = (area_raw if isinstance(area_raw, str) else UNASSIGNED_AREA).strip().lower()
    base_lat, base_lng = AREA_FALLBACK_COORDS.get(area_key, AREA_FALLBACK_COORDS[UNASSIGNED_AREA])
    h = hash_string(f"{charger_key}:{area_key}")

    return (
        round_to(base_lat + jitter_from_seed(h) * JITTER_DEG, 6),
        round_to(base_lng + jitter_from_seed(h >> 8) * JITTER_DEG, 6),
    )
