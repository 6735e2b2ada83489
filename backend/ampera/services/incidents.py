"""
incidents.py

Purpose:
  Turns a non-healthy charger into exactly one incident card.

Metric precedence (fixed order, not "most severe wins"):
  1. RISK        default, threshold 75 (critical) / 50 (warning)
  2. TEMPERATURE replaces risk at >= 45C, or >= 40C while non-healthy
  3. VOLTAGE     otherwise, when voltage is positive and at/below the
                 critical threshold (or the warning one while non-healthy)

Voltage domain:
  0 < V < 20 is a low-voltage pack reading (3.65 / 3.75 V), anything else is
  line voltage (230 / 235 V).
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from ampera.models.domain import (
    Charger,
    ChargerStatus,
    Incident,
    IncidentMetric,
    IncidentSeverity,
    IncidentStatus,
    PredictionRow,
    TelemetryRow,
    TimelineEvent,
)
from ampera.services.classifier import CRITICAL_RISK_THRESHOLD, WARNING_RISK_THRESHOLD
from ampera.services.normalize import round_to, to_text
from ampera.services.timefmt import format_clock_time, format_time_ago, utc_now_iso

DEFAULT_PATTERN = "anomaly"

TEMP_CRITICAL_C = 45.0
TEMP_WARNING_C = 40.0

LOW_VOLTAGE_DOMAIN_MAX = 20.0
LOW_VOLTAGE_THRESHOLDS = (3.65, 3.75)
LINE_VOLTAGE_THRESHOLDS = (230.0, 235.0)


@dataclass
class _Breach:
    metric: IncidentMetric
    threshold: float
    current_value: float
    title: str
    description: str
    detailed_description: str


def _fmt_threshold(value: float) -> str:
    return f"{value:g}"


def _risk_breach(charger: Charger, critical: bool, pattern: str) -> _Breach:
    risk = charger.risk_score
    threshold = CRITICAL_RISK_THRESHOLD if critical else WARNING_RISK_THRESHOLD
    return _Breach(
        metric=IncidentMetric.RISK,
        threshold=threshold,
        current_value=risk,
        title="Critical risk threshold exceeded" if critical else "Elevated risk detected",
        description=f"Risk score at {risk:.1f} (threshold: {_fmt_threshold(threshold)})",
        detailed_description=(
            f"{charger.name} is currently reporting a {charger.status.value} health state with a "
            f"live composite risk score of {risk:.1f}. Predictive signals indicate {pattern}."
        ),
    )


def _temperature_breach(charger: Charger, critical: bool, pattern: str) -> Optional[_Breach]:
    temp = charger.temperature
    non_healthy = charger.status != ChargerStatus.HEALTHY
    if not (temp >= TEMP_CRITICAL_C or (non_healthy and temp >= TEMP_WARNING_C)):
        return None

    threshold = TEMP_CRITICAL_C if critical else TEMP_WARNING_C
    t = _fmt_threshold(threshold)
    return _Breach(
        metric=IncidentMetric.TEMPERATURE,
        threshold=threshold,
        current_value=temp,
        title="Overheating detected" if critical else "Elevated temperature",
        description=f"Temperature at {temp:.1f}C (threshold: {t}C)",
        detailed_description=(
            f"{charger.name} temperature is {temp:.1f}C, which is "
            f"{'above' if critical else 'approaching'} the configured threshold of {t}C. "
            f"Predicted pattern: {pattern}."
        ),
    )


def _voltage_breach(charger: Charger, critical: bool) -> Optional[_Breach]:
    voltage = charger.voltage
    if voltage <= 0:
        return None

    low_domain = voltage < LOW_VOLTAGE_DOMAIN_MAX
    crit_v, warn_v = LOW_VOLTAGE_THRESHOLDS if low_domain else LINE_VOLTAGE_THRESHOLDS
    non_healthy = charger.status != ChargerStatus.HEALTHY
    if not (voltage <= crit_v or (non_healthy and voltage <= warn_v)):
        return None

    threshold = crit_v if critical else warn_v
    shown = f"{voltage:.2f}" if low_domain else f"{voltage:.1f}"
    t = _fmt_threshold(threshold)
    return _Breach(
        metric=IncidentMetric.VOLTAGE,
        threshold=threshold,
        current_value=voltage,
        title="Voltage drop detected" if critical else "Voltage fluctuation warning",
        description=f"Voltage at {shown}V (threshold: {t}V)",
        detailed_description=(
            f"{charger.name} is reporting {shown}V. This is {'below' if critical else 'near'} "
            f"the operating threshold ({t}V), and may indicate power instability."
        ),
    )


def _recommendation(charger: Charger, critical: bool) -> str:
    if critical:
        return (
            f"Prioritize immediate inspection for {charger.name}. Live telemetry and prediction "
            "signals indicate elevated failure probability. Confirm power, cooling, and connector "
            "integrity before returning to service."
        )
    return (
        f"Schedule a preventive maintenance check for {charger.name}. Continue monitoring live "
        "telemetry and prediction trend for escalation over the next 24 hours."
    )


def derive_incident(
    charger: Charger,
    latest_telemetry: Optional[TelemetryRow],
    latest_prediction: Optional[PredictionRow],
    now: Optional[datetime] = None,
) -> Optional[Incident]:
    if charger.status == ChargerStatus.HEALTHY:
        return None

    critical = charger.status == ChargerStatus.CRITICAL
    pattern = to_text(latest_prediction.predicted_failure_pattern if latest_prediction else None) or DEFAULT_PATTERN

    breach = _risk_breach(charger, critical, pattern)
    override = _temperature_breach(charger, critical, pattern) or _voltage_breach(charger, critical)
    if override is not None:
        breach = override

    prediction_ts = None
    if latest_prediction is not None:
        prediction_ts = to_text(latest_prediction.as_of_timestamp) or to_text(latest_prediction.updated_at)
    timestamp = (
        (to_text(latest_telemetry.timestamp) if latest_telemetry else None)
        or prediction_ts
        or utc_now_iso()
    )

    digits = 1 if breach.metric == IncidentMetric.TEMPERATURE else 2
    clock = format_clock_time(timestamp)

    return Incident(
        id=f"{charger.id}-{breach.metric.value}",
        charger_id=charger.id,
        charger_name=charger.name,
        charger_code=charger.code,
        location=charger.location,
        severity=IncidentSeverity.CRITICAL if critical else IncidentSeverity.WARNING,
        status=IncidentStatus.ACTIVE,
        title=breach.title,
        description=breach.description,
        detailed_description=breach.detailed_description,
        metric=breach.metric.value,
        threshold=breach.threshold,
        current_value=round_to(breach.current_value, digits),
        time_ago=format_time_ago(timestamp, now=now),
        timestamp=timestamp,
        timeline=[
            TimelineEvent(event="Live telemetry ingested", time=clock),
            TimelineEvent(event=f"Status classified as {charger.status.value}", time=clock),
            TimelineEvent(
                event=f"Pattern scored: {pattern}",
                time=format_clock_time(prediction_ts or timestamp),
            ),
        ],
        ai_recommendation=_recommendation(charger, critical),
    )
