# backend/ampera/services/demo_fleet.py
"""
demo_fleet.py

Purpose:
  Plausible telemetry + prediction rows for demos, offline development and
  tests. The rows go through the same derivation pipeline as live data.

Determinism:
  All randomness comes from the ``random.Random`` instance handed in by the
  caller; there is no module-level generator. Same seed + same ``now`` gives
  byte-identical rows.

Fleet shape (defaults): 19 healthy, 5 warning, 3 critical chargers spread
over the Sacramento-area sites, 24 telemetry samples each (15 min apart) and
7 prediction snapshots each (hourly).
"""
from __future__ import annotations

import random
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy.engine import Engine
from sqlmodel import Session

from ampera.models.db import PredictionRecord, TelemetryRecord, create_db_and_tables
from ampera.services.timefmt import utc_now

DEMO_SITES: List[Tuple[str, float, float]] = [
    ("Folsom", 38.677959, -121.176058),
    ("Sacramento Downtown", 38.581572, -121.4944),
    ("Davis", 38.544907, -121.740517),
    ("Roseville", 38.752123, -121.288006),
    ("West Sacramento", 38.58046, -121.530235),
    ("Elk Grove", 38.408799, -121.371618),
]

PATTERNS = ["connector_wear", "thermal_drift", "power_module_fault", "firmware_instability"]


@dataclass
class DemoFleetConfig:
    healthy: int = 19
    warning: int = 5
    critical: int = 3

    telemetry_samples: int = 24
    telemetry_step_min: int = 15
    prediction_samples: int = 7
    prediction_step_min: int = 60

    # every Nth charger reports no GPS fix, to exercise the area fallback
    missing_coords_every: int = 4

    sites: List[Tuple[str, float, float]] = field(default_factory=lambda: list(DEMO_SITES))


# (risk range, temp range, voltage range, health label)
_PROFILES: Dict[str, Tuple[Tuple[float, float], Tuple[float, float], Tuple[float, float], str]] = {
    "healthy": ((5.0, 25.0), (28.0, 38.0), (236.0, 244.0), "healthy"),
    "warning": ((52.0, 68.0), (33.0, 39.0), (236.0, 242.0), "warning"),
    "critical": ((78.0, 95.0), (45.0, 55.0), (218.0, 228.0), "critical"),
}


def _uniform(rng: random.Random, bounds: Tuple[float, float]) -> float:
    return rng.uniform(bounds[0], bounds[1])


def _iso(ts: datetime) -> str:
    return ts.isoformat().replace("+00:00", "Z")


def generate_demo_rows(
    rng: random.Random,
    cfg: Optional[DemoFleetConfig] = None,
    now: Optional[datetime] = None,
) -> Tuple[List[Dict[str, Any]], List[Dict[str, Any]]]:
    """Returns (telemetry_rows, prediction_rows), both newest-first."""
    cfg = cfg or DemoFleetConfig()
    now = (now or utc_now()).replace(microsecond=0)

    tiers = ["healthy"] * cfg.healthy + ["warning"] * cfg.warning + ["critical"] * cfg.critical
    telemetry: List[Dict[str, Any]] = []
    predictions: List[Dict[str, Any]] = []

    for idx, tier in enumerate(tiers, start=1):
        risk_bounds, temp_bounds, volt_bounds, label = _PROFILES[tier]
        site, site_lat, site_lng = cfg.sites[idx % len(cfg.sites)]
        has_fix = cfg.missing_coords_every <= 0 or idx % cfg.missing_coords_every != 0
        lat = round(site_lat + (rng.random() - 0.5) * 0.01, 6) if has_fix else None
        lng = round(site_lng + (rng.random() - 0.5) * 0.01, 6) if has_fix else None

        risk = _uniform(rng, risk_bounds)
        temp = _uniform(rng, temp_bounds)
        volt = _uniform(rng, volt_bounds)
        pattern = rng.choice(PATTERNS)

        for k in range(cfg.telemetry_samples):
            ts = now - timedelta(minutes=k * cfg.telemetry_step_min)
            telemetry.append({
                "charger_id": f"CH-{idx:03d}",
                "timestamp": _iso(ts),
                "latitude": lat,
                "longitude": lng,
                "area": site,
                "voltage_v": round(volt + (rng.random() - 0.5) * 4, 2),
                "current_a": round(rng.uniform(16.0, 32.0), 1),
                "temperature_c": round(temp + (rng.random() - 0.5) * 2, 1),
                "ambient_temp_c": round(rng.uniform(14.0, 30.0), 1),
                "battery_temp_c": None,
                "session_duration_min": round(rng.uniform(20.0, 90.0), 1),
                "charging_duration_min": None,
                "error_count": rng.randint(0, 4 if tier == "healthy" else 9),
                "risk_score": round(min(risk, 100.0) / 100, 4),
                "health_status": label if k == 0 else None,
                "soc": round(rng.uniform(0.2, 0.95), 3),
                "efficiency": None,
            })

        for k in range(cfg.prediction_samples):
            ts = now - timedelta(minutes=k * cfg.prediction_step_min)
            drift = (rng.random() - 0.5) * 6
            predictions.append({
                "charger_id": f"CH-{idx:03d}",
                "as_of_timestamp": _iso(ts),
                "failure_prone": tier != "healthy",
                "normalized_risk_pct_100": round(max(0.0, min(100.0, risk + drift * k / 2)), 2),
                "composite_risk": None,
                "failure_risk_prob_norm": round(risk / 100, 4),
                "failure_risk_prob_raw": round(risk / 100 * 0.9, 4),
                "predicted_failure_pattern": pattern if tier != "healthy" else None,
                "pattern_confidence": round(rng.uniform(0.55, 0.95), 3),
                "risk_trend": rng.choice(["rising", "stable", "falling"]),
                "updated_at": _iso(ts),
            })

    telemetry.sort(key=lambda r: r["timestamp"], reverse=True)
    predictions.sort(key=lambda r: r["as_of_timestamp"], reverse=True)
    return telemetry, predictions


def seed_database(engine: Engine, seed: int = 7, cfg: Optional[DemoFleetConfig] = None) -> Tuple[int, int]:
    """Write one demo fleet into the SQL store. Returns (telemetry, predictions) counts."""
    create_db_and_tables(engine)
    telemetry, predictions = generate_demo_rows(random.Random(seed), cfg)

    with Session(engine) as session:
        for row in telemetry:
            data = dict(row, timestamp=datetime.fromisoformat(row["timestamp"].replace("Z", "+00:00")))
            session.add(TelemetryRecord(**data))
        for row in predictions:
            stamp = datetime.fromisoformat(row["as_of_timestamp"].replace("Z", "+00:00"))
            session.add(PredictionRecord(**dict(row, as_of_timestamp=stamp, updated_at=stamp)))
        session.commit()

    return len(telemetry), len(predictions)
