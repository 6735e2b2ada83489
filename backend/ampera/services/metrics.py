"""
metrics.py

Purpose:
  Per-charger numbers derived from the newest telemetry/prediction rows.

Source precedence (risk score):
  1. prediction ``normalized_risk_pct_100`` (already a percentage)
  2. prediction ``composite_risk``
  3. prediction ``failure_risk_prob_norm``
  4. telemetry ``risk_score``
  The first non-null wins; sources 2-4 are lifted from probability to percent
  when <= 1. Result is clamped to [0, 100].

Histories:
  Input is newest-first; output is oldest-first, exactly ``size`` long,
  left-padded with the earliest known sample.
"""
from __future__ import annotations

import math
from typing import List, Optional, Sequence

from ampera.models.domain import ChargerStatus, PredictionRow, TelemetryRow
from ampera.services.normalize import clamp, round_to, scale_probability, to_number

RISK_HISTORY_SIZE = 7
SERIES_HISTORY_SIZE = 24

UPTIME_STATUS_PENALTY = {
    ChargerStatus.CRITICAL: 28.0,
    ChargerStatus.WARNING: 12.0,
    ChargerStatus.HEALTHY: 2.0,
}
UPTIME_PENALTY_PER_ERROR = 3.0


def prediction_risk(row: Optional[PredictionRow]) -> Optional[float]:
    if row is None:
        return None
    normalized = to_number(row.normalized_risk_pct_100)
    if normalized is not None:
        return normalized
    composite = to_number(row.composite_risk)
    if composite is not None:
        return scale_probability(composite)
    return scale_probability(to_number(row.failure_risk_prob_norm))


def telemetry_risk(row: Optional[TelemetryRow]) -> Optional[float]:
    if row is None:
        return None
    return scale_probability(to_number(row.risk_score))


def compute_risk_score(
    latest_telemetry: Optional[TelemetryRow],
    latest_prediction: Optional[PredictionRow],
) -> float:
    risk = prediction_risk(latest_prediction)
    if risk is None:
        risk = telemetry_risk(latest_telemetry)
    if risk is None:
        return 0.0
    return round_to(clamp(risk, 0.0, 100.0), 2)


def pick_temperature(row: Optional[TelemetryRow]) -> Optional[float]:
    if row is None:
        return None
    for raw in (row.temperature_c, row.battery_temp_c, row.ambient_temp_c):
        value = to_number(raw)
        if value is not None:
            return value
    return None


def infer_uptime(latest_telemetry: Optional[TelemetryRow], status: ChargerStatus) -> float:
    efficiency = to_number(latest_telemetry.efficiency) if latest_telemetry else None
    if efficiency is not None:
        pct = efficiency * 100 if efficiency <= 1.5 else efficiency
        return round_to(clamp(pct, 40.0, 100.0), 1)

    errors = (to_number(latest_telemetry.error_count) if latest_telemetry else None) or 0.0
    penalty = UPTIME_STATUS_PENALTY[status]
    return round_to(clamp(100.0 - penalty - errors * UPTIME_PENALTY_PER_ERROR, 40.0, 99.9), 1)


def infer_energy_delivered(latest_telemetry: Optional[TelemetryRow]) -> float:
    """kWh for the latest session: V * A * minutes / 60000."""
    if latest_telemetry is None:
        return 0.0
    voltage = to_number(latest_telemetry.voltage_v) or 0.0
    current = to_number(latest_telemetry.current_a) or 0.0
    minutes = to_number(latest_telemetry.charging_duration_min)
    if minutes is None:
        minutes = to_number(latest_telemetry.session_duration_min)
    kwh = voltage * current * (minutes or 0.0) / 60000
    if not math.isfinite(kwh):
        return 0.0
    return round_to(max(kwh, 0.0), 1)


def build_history(
    values: Sequence[Optional[float]],
    fallback: float,
    size: int,
    digits: int,
) -> List[float]:
    samples = [v for v in values if v is not None]
    history = list(reversed(samples[:size]))
    if not history:
        history = [fallback] * size
    while len(history) < size:
        history.insert(0, history[0])
    return [round_to(v, digits) for v in history]


def risk_history(
    telemetry_rows: Sequence[TelemetryRow],
    prediction_rows: Sequence[PredictionRow],
    current: float,
) -> List[float]:
    # Prediction-derived samples first, telemetry risk fills the rest.
    values = [prediction_risk(row) for row in prediction_rows]
    values += [telemetry_risk(row) for row in telemetry_rows]
    return build_history(values, current, RISK_HISTORY_SIZE, 2)


def voltage_history(telemetry_rows: Sequence[TelemetryRow], current: float) -> List[float]:
    values = [to_number(row.voltage_v) for row in telemetry_rows]
    return build_history(values, current, SERIES_HISTORY_SIZE, 2)


def temperature_history(telemetry_rows: Sequence[TelemetryRow], current: float) -> List[float]:
    values = [pick_temperature(row) for row in telemetry_rows]
    return build_history(values, current, SERIES_HISTORY_SIZE, 1)
