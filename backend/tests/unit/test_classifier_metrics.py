import pytest

from ampera.models.domain import ChargerStatus, PredictionRow, TelemetryRow
from ampera.services.classifier import normalize_status
from ampera.services.metrics import (
    RISK_HISTORY_SIZE,
    SERIES_HISTORY_SIZE,
    build_history,
    compute_risk_score,
    infer_energy_delivered,
    infer_uptime,
    pick_temperature,
    risk_history,
    voltage_history,
)


@pytest.mark.parametrize(
    "risk,expected",
    [
        (40, ChargerStatus.HEALTHY),
        (49.99, ChargerStatus.HEALTHY),
        (50, ChargerStatus.WARNING),
        (60, ChargerStatus.WARNING),
        (75, ChargerStatus.CRITICAL),
        (80, ChargerStatus.CRITICAL),
    ],
)
def test_status_from_risk(risk, expected):
    assert normalize_status(None, risk) == expected


@pytest.mark.parametrize(
    "label,expected",
    [
        ("FAILED", ChargerStatus.CRITICAL),
        ("crit", ChargerStatus.CRITICAL),
        ("at risk", ChargerStatus.WARNING),
        ("Degraded", ChargerStatus.WARNING),
    ],
)
def test_explicit_label_wins_over_low_risk(label, expected):
    assert normalize_status(label, 0.0) == expected


def test_unknown_label_defers_to_risk():
    assert normalize_status("healthy", 90.0) == ChargerStatus.CRITICAL
    assert normalize_status("online", 10.0) == ChargerStatus.HEALTHY


def test_status_is_monotonic_in_risk():
    order = [ChargerStatus.HEALTHY, ChargerStatus.WARNING, ChargerStatus.CRITICAL]
    ranks = [order.index(normalize_status(None, r)) for r in range(0, 101)]
    assert ranks == sorted(ranks)


# ------------------------------------------------------------
# risk score
# ------------------------------------------------------------

def test_normalized_pct_beats_composite():
    p = PredictionRow(normalized_risk_pct_100=40, composite_risk=0.9)
    assert compute_risk_score(None, p) == 40.0


def test_normalized_pct_is_not_rescaled():
    assert compute_risk_score(None, PredictionRow(normalized_risk_pct_100=0.5)) == 0.5


def test_composite_probability_is_scaled():
    assert compute_risk_score(None, PredictionRow(composite_risk="0.9")) == 90.0


def test_prob_norm_used_when_others_missing():
    assert compute_risk_score(None, PredictionRow(failure_risk_prob_norm=0.3)) == 30.0


def test_telemetry_risk_is_last_resort():
    t = TelemetryRow(risk_score=0.82)
    assert compute_risk_score(t, PredictionRow()) == 82.0
    assert compute_risk_score(t, None) == 82.0


def test_risk_is_clamped_and_defaults_to_zero():
    assert compute_risk_score(None, PredictionRow(normalized_risk_pct_100=150)) == 100.0
    assert compute_risk_score(TelemetryRow(risk_score=-5), None) == 0.0
    assert compute_risk_score(None, None) == 0.0
    assert compute_risk_score(TelemetryRow(risk_score="n/a"), None) == 0.0


def test_temperature_fallback_order():
    assert pick_temperature(TelemetryRow(temperature_c=None, battery_temp_c=31, ambient_temp_c=20)) == 31.0
    assert pick_temperature(TelemetryRow(ambient_temp_c="22.5")) == 22.5
    assert pick_temperature(TelemetryRow()) is None


# ------------------------------------------------------------
# uptime / energy
# ------------------------------------------------------------

def test_uptime_from_efficiency():
    assert infer_uptime(TelemetryRow(efficiency=0.95), ChargerStatus.HEALTHY) == 95.0
    assert infer_uptime(TelemetryRow(efficiency=120), ChargerStatus.HEALTHY) == 100.0
    assert infer_uptime(TelemetryRow(efficiency=0.1), ChargerStatus.HEALTHY) == 40.0


def test_uptime_from_status_and_errors():
    assert infer_uptime(TelemetryRow(error_count=2), ChargerStatus.WARNING) == 82.0
    assert infer_uptime(TelemetryRow(), ChargerStatus.HEALTHY) == 98.0
    assert infer_uptime(TelemetryRow(error_count=20), ChargerStatus.CRITICAL) == 40.0
    assert infer_uptime(None, ChargerStatus.CRITICAL) == 72.0


def test_energy_delivered():
    row = TelemetryRow(voltage_v=230, current_a=32, charging_duration_min=60, session_duration_min=10)
    assert infer_energy_delivered(row) == 7.4
    assert infer_energy_delivered(TelemetryRow(voltage_v=230, current_a=32, session_duration_min=30)) == 3.7
    assert infer_energy_delivered(TelemetryRow(voltage_v=230)) == 0.0
    assert infer_energy_delivered(None) == 0.0


# ------------------------------------------------------------
# histories
# ------------------------------------------------------------

def test_build_history_pads_with_earliest_sample():
    # newest-first in, oldest-first out
    assert build_history([5, 4, None, 3], 0.0, 7, 2) == [3, 3, 3, 3, 3, 4, 5]


def test_build_history_keeps_newest_window():
    values = list(range(30, 0, -1))  # 30 newest ... 1 oldest
    out = build_history(values, 0.0, 24, 2)
    assert len(out) == 24
    assert out[-1] == 30
    assert out[0] == 7


def test_build_history_without_samples_uses_fallback():
    assert build_history([None, None], 12.0, 7, 2) == [12.0] * 7


def test_risk_history_prefers_predictions():
    preds = [PredictionRow(normalized_risk_pct_100=v) for v in (60, 55)]
    tel = [TelemetryRow(risk_score=0.1)]
    out = risk_history(tel, preds, 60.0)
    assert len(out) == RISK_HISTORY_SIZE
    assert out[-2:] == [55.0, 60.0]
    assert out[0] == 10.0


def test_voltage_history_length():
    rows = [TelemetryRow(voltage_v=v) for v in (240.123, 239.5)]
    out = voltage_history(rows, 240.12)
    assert len(out) == SERIES_HISTORY_SIZE
    assert out[-1] == 240.12
