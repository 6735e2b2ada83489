"""
fleet.py

Purpose:
  The live-dashboard derivation pipeline: raw telemetry/prediction rows in,
  canonical chargers + incidents + fleet stats out.

Flow:
  1. group rows by charger id (rows without one are dropped) and order each
     group newest-first
  2. per charger: risk -> status -> coordinates/metrics/histories -> incident
  3. sort chargers (risk desc, name) and incidents (critical first, value desc)
  4. aggregate FleetStats over the whole population

Everything is recomputed per call; nothing here keeps state between calls.
"""
from __future__ import annotations

import re
from collections import OrderedDict
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple, TypeVar

from ampera.models.domain import (
    Charger,
    ChargerStatus,
    DashboardResponse,
    DataSource,
    FleetStats,
    Incident,
    IncidentSeverity,
    PredictionRow,
    TelemetryRow,
)
from ampera.services.classifier import normalize_status
from ampera.services.geo import resolve_coordinates
from ampera.services.incidents import derive_incident
from ampera.services.metrics import (
    compute_risk_score,
    infer_energy_delivered,
    infer_uptime,
    pick_temperature,
    risk_history,
    temperature_history,
    voltage_history,
)
from ampera.services.normalize import clamp, parse_timestamp, round_to, to_number, to_text
from ampera.services.timefmt import format_time_ago, utc_now_iso

UNKNOWN_LOCATION = "Unknown location"

RowT = TypeVar("RowT", TelemetryRow, PredictionRow)


# ============================================================
# 1) GROUPING
# ============================================================

def _charger_key(raw: Any) -> Optional[str]:
    if raw is None:
        return None
    if isinstance(raw, float) and raw.is_integer():
        raw = int(raw)
    return str(raw)


def telemetry_time(row: TelemetryRow) -> Optional[datetime]:
    return parse_timestamp(row.timestamp)


def prediction_time(row: PredictionRow) -> Optional[datetime]:
    return parse_timestamp(row.as_of_timestamp) or parse_timestamp(row.updated_at)


def newest_first(rows: Sequence[RowT], time_of) -> List[RowT]:
    """Dated rows newest-first; undated rows keep arrival order at the end."""
    stamped = [(time_of(row), i, row) for i, row in enumerate(rows)]
    dated = sorted((s for s in stamped if s[0] is not None), key=lambda s: (-s[0].timestamp(), s[1]))
    undated = [s for s in stamped if s[0] is None]
    return [row for _, _, row in dated + undated]


def group_by_charger(rows: Iterable[RowT]) -> "OrderedDict[str, List[RowT]]":
    grouped: "OrderedDict[str, List[RowT]]" = OrderedDict()
    for row in rows:
        key = _charger_key(row.charger_id)
        if key is None:
            continue
        grouped.setdefault(key, []).append(row)
    return grouped


# ============================================================
# 2) PER-CHARGER DERIVATION
# ============================================================

def derive_display_ids(raw_charger_id: str) -> Tuple[str, str, str]:
    """(id, name, code) for the dashboard."""
    match = re.search(r"(\d+)", raw_charger_id)
    if match:
        num = int(match.group(1))
        return f"charger-{num}", f"Charger {num}", f"CHG-{num:03d}"

    slug = re.sub(r"[^a-z0-9]+", "-", raw_charger_id.lower()).strip("-")
    return (
        f"charger-{slug}" if slug else "charger-unknown",
        raw_charger_id or "Charger",
        (raw_charger_id or "UNK").upper(),
    )


def build_charger(
    raw_charger_id: str,
    telemetry_rows: Sequence[TelemetryRow],
    prediction_rows: Sequence[PredictionRow],
    now: Optional[datetime] = None,
) -> Charger:
    """Rows must already be newest-first."""
    latest_t = telemetry_rows[0] if telemetry_rows else None
    latest_p = prediction_rows[0] if prediction_rows else None

    charger_id, name, code = derive_display_ids(raw_charger_id)
    risk = compute_risk_score(latest_t, latest_p)
    status = normalize_status(latest_t.health_status if latest_t else None, risk)

    lat, lng = resolve_coordinates(
        latest_t.latitude if latest_t else None,
        latest_t.longitude if latest_t else None,
        to_text(latest_t.area) if latest_t else None,
        raw_charger_id,
    )
    voltage = round_to((to_number(latest_t.voltage_v) if latest_t else None) or 0.0, 2)
    temperature = round_to(pick_temperature(latest_t) or 0.0, 1)

    last_updated_raw = (to_text(latest_t.timestamp) if latest_t else None) or _prediction_stamp(latest_p)

    return Charger(
        id=charger_id,
        name=name,
        code=code,
        location=(to_text(latest_t.area) if latest_t else None) or UNKNOWN_LOCATION,
        lat=lat,
        lng=lng,
        status=status,
        risk_score=risk,
        risk_history=risk_history(telemetry_rows, prediction_rows, risk),
        temperature=temperature,
        voltage=voltage,
        uptime=infer_uptime(latest_t, status),
        energy_delivered=infer_energy_delivered(latest_t),
        last_updated=format_time_ago(last_updated_raw, now=now),
        voltage_history=voltage_history(telemetry_rows, voltage),
        temp_history=temperature_history(telemetry_rows, temperature),
    )


def _prediction_stamp(row: Optional[PredictionRow]) -> Optional[str]:
    if row is None:
        return None
    return to_text(row.as_of_timestamp) or to_text(row.updated_at)


def _newest_stamp(telemetry_rows: Sequence[TelemetryRow], latest_p: Optional[PredictionRow]) -> Optional[str]:
    for row in telemetry_rows:
        stamp = to_text(row.timestamp)
        if stamp:
            return stamp
    return _prediction_stamp(latest_p)


# ============================================================
# 3) AGGREGATION
# ============================================================

def compute_fleet_stats(chargers: Sequence[Charger]) -> FleetStats:
    total = len(chargers)
    counts: Dict[ChargerStatus, int] = {s: 0 for s in ChargerStatus}
    for c in chargers:
        counts[c.status] += 1

    avg_risk = sum(c.risk_score for c in chargers) / total if total else 0.0
    total_energy_kwh = sum(c.energy_delivered for c in chargers)

    return FleetStats(
        total_chargers=total,
        healthy=counts[ChargerStatus.HEALTHY],
        warning=counts[ChargerStatus.WARNING],
        critical=counts[ChargerStatus.CRITICAL],
        total_locations=len({c.location for c in chargers}),
        health_score=round_to(clamp(100.0 - avg_risk, 0.0, 100.0), 1),
        total_energy_today=round_to(total_energy_kwh / 1000, 3),
    )


def _incident_sort_key(incident: Incident):
    return (0 if incident.severity == IncidentSeverity.CRITICAL else 1, -incident.current_value)


def build_dashboard_data(
    telemetry_rows: Iterable[TelemetryRow],
    prediction_rows: Iterable[PredictionRow],
    source: DataSource = DataSource.LIVE,
    now: Optional[datetime] = None,
) -> DashboardResponse:
    telemetry_by_charger = group_by_charger(telemetry_rows)
    predictions_by_charger = group_by_charger(prediction_rows)
    charger_ids = list(OrderedDict.fromkeys([*telemetry_by_charger, *predictions_by_charger]))

    chargers: List[Charger] = []
    incidents: List[Incident] = []
    latest_stamp: Optional[str] = None
    latest_dt: Optional[datetime] = None

    for raw_id in charger_ids:
        t_rows = newest_first(telemetry_by_charger.get(raw_id, []), telemetry_time)
        p_rows = newest_first(predictions_by_charger.get(raw_id, []), prediction_time)

        charger = build_charger(raw_id, t_rows, p_rows, now=now)
        chargers.append(charger)

        incident = derive_incident(charger, t_rows[0] if t_rows else None, p_rows[0] if p_rows else None, now=now)
        if incident is not None:
            incidents.append(incident)

        stamp = _newest_stamp(t_rows, p_rows[0] if p_rows else None)
        stamp_dt = parse_timestamp(stamp)
        if stamp and (latest_stamp is None or (stamp_dt and (latest_dt is None or stamp_dt > latest_dt))):
            latest_stamp, latest_dt = stamp, stamp_dt

    chargers.sort(key=lambda c: (-c.risk_score, c.name))
    incidents.sort(key=_incident_sort_key)

    return DashboardResponse(
        chargers=chargers,
        incidents=incidents,
        fleet_stats=compute_fleet_stats(chargers),
        generated_at=utc_now_iso(),
        source=source,
        latest_timestamp=latest_stamp,
    )
