import asyncio
import random
from datetime import datetime, timezone

import httpx
import pytest

from ampera.models.db import make_engine
from ampera.models.domain import ChargerStatus, DataSource, PredictionRow, TelemetryRow
from ampera.services.demo_fleet import DemoFleetConfig, generate_demo_rows, seed_database
from ampera.services.sources import (
    DemoRowSource,
    SourceUnavailableError,
    SqlRowSource,
    SupabaseRowSource,
    load_dashboard,
)

NOW = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)


# ------------------------------------------------------------
# demo fleet
# ------------------------------------------------------------

def test_demo_rows_are_deterministic():
    a = generate_demo_rows(random.Random(7), now=NOW)
    b = generate_demo_rows(random.Random(7), now=NOW)
    c = generate_demo_rows(random.Random(8), now=NOW)
    assert a == b
    assert a != c


def test_demo_rows_shape():
    cfg = DemoFleetConfig(healthy=2, warning=1, critical=1, telemetry_samples=3, prediction_samples=2)
    telemetry, predictions = generate_demo_rows(random.Random(1), cfg, now=NOW)

    assert len(telemetry) == 4 * 3
    assert len(predictions) == 4 * 2
    stamps = [r["timestamp"] for r in telemetry]
    assert stamps == sorted(stamps, reverse=True)
    # charger 4 has no GPS fix (missing_coords_every=4)
    ch4 = [r for r in telemetry if r["charger_id"] == "CH-004"]
    assert all(r["latitude"] is None for r in ch4)


def test_demo_source_fleet_mix():
    data = asyncio.run(load_dashboard(DemoRowSource(seed=7)))

    assert data.source == DataSource.FALLBACK
    stats = data.fleet_stats
    assert (stats.total_chargers, stats.healthy, stats.warning, stats.critical) == (27, 19, 5, 3)
    assert len(data.incidents) == 8
    assert all(c.status != ChargerStatus.HEALTHY for c in data.chargers[:8])
    assert data.latest_timestamp is not None


def test_demo_source_respects_limit():
    rows = asyncio.run(DemoRowSource(seed=7).fetch_telemetry(10))
    assert len(rows) == 10


# ------------------------------------------------------------
# supabase
# ------------------------------------------------------------

def test_supabase_request_shape():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json=[{"charger_id": "CH-001", "timestamp": "2025-03-01T11:00:00Z"}, "junk"])

    source = SupabaseRowSource("https://example.supabase.co/", "svc-key", transport=httpx.MockTransport(handler))
    rows = asyncio.run(source.fetch_telemetry(50))

    assert rows == [{"charger_id": "CH-001", "timestamp": "2025-03-01T11:00:00Z"}]
    req = seen[0]
    assert req.url.path == "/rest/v1/telemetry_live"
    assert req.url.params["order"] == "timestamp.desc"
    assert req.url.params["limit"] == "50"
    assert "voltage_v" in req.url.params["select"].split(",")
    assert req.headers["apikey"] == "svc-key"
    assert req.headers["Authorization"] == "Bearer svc-key"


def test_supabase_predictions_order_by_as_of():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json=[])

    source = SupabaseRowSource("https://example.supabase.co", "k", transport=httpx.MockTransport(handler))
    asyncio.run(source.fetch_predictions(3000))
    assert seen[0].url.path == "/rest/v1/charger_predictions_live"
    assert seen[0].url.params["order"] == "as_of_timestamp.desc"


def test_supabase_error_status_raises():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(500, text="upstream exploded")

    source = SupabaseRowSource("https://example.supabase.co", "k", transport=httpx.MockTransport(handler))
    with pytest.raises(SourceUnavailableError) as exc:
        asyncio.run(source.fetch_telemetry(10))
    assert "(500)" in str(exc.value)
    assert "upstream exploded" in str(exc.value)


def test_supabase_non_list_body_raises():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"message": "nope"})

    source = SupabaseRowSource("https://example.supabase.co", "k", transport=httpx.MockTransport(handler))
    with pytest.raises(SourceUnavailableError):
        asyncio.run(source.fetch_predictions(10))


def test_load_dashboard_fails_whole_refresh_when_one_side_fails(static_source_cls):
    source = static_source_cls(
        telemetry=[{"charger_id": "CH-001", "timestamp": "2025-03-01T11:00:00Z"}],
        fail_with=ValueError("predictions table missing"),
    )
    with pytest.raises(SourceUnavailableError) as exc:
        asyncio.run(load_dashboard(source))
    assert "predictions table missing" in str(exc.value)
    assert sorted(source.calls) == ["predictions", "telemetry"]


def test_load_dashboard_keeps_rows_with_nested_cells(static_source_cls):
    source = static_source_cls(
        telemetry=[
            {"charger_id": "CH-001", "timestamp": "2025-03-01T11:00:00Z"},
            {"charger_id": "CH-002", "voltage_v": 218, "health_status": "critical", "soc": {"v": 1}},
            {"charger_id": "CH-003", "voltage_v": {"nested": 1}, "temperature_c": [41, 42]},
        ],
        predictions=[
            {"charger_id": "CH-002", "normalized_risk_pct_100": {"bad": True}, "risk_trend": ["up"]},
        ],
    )
    data = asyncio.run(load_dashboard(source))

    by_id = {c.id: c for c in data.chargers}
    assert set(by_id) == {"charger-1", "charger-2", "charger-3"}
    assert by_id["charger-2"].status == ChargerStatus.CRITICAL
    assert by_id["charger-2"].voltage == 218.0
    assert by_id["charger-2"].risk_score == 0.0
    assert by_id["charger-3"].voltage == 0.0
    assert by_id["charger-3"].temperature == 0.0


def test_row_models_null_out_non_scalar_cells():
    row = TelemetryRow.model_validate({"charger_id": "CH-9", "soc": {"v": 1}, "area": ["Davis"], "voltage_v": "240"})
    assert row.soc is None
    assert row.area is None
    assert row.voltage_v == "240"
    assert PredictionRow.model_validate({"composite_risk": {"p": 0.4}}).composite_risk is None


# ------------------------------------------------------------
# sql store
# ------------------------------------------------------------

def test_sql_source_roundtrip():
    engine = make_engine("sqlite://")
    cfg = DemoFleetConfig(healthy=3, warning=1, critical=1, telemetry_samples=4, prediction_samples=2)
    n_tel, n_pred = seed_database(engine, seed=3, cfg=cfg)
    assert (n_tel, n_pred) == (20, 10)

    source = SqlRowSource(engine)
    rows = asyncio.run(source.fetch_telemetry(5))
    assert len(rows) == 5
    assert "id" not in rows[0]
    assert isinstance(rows[0]["timestamp"], str)

    data = asyncio.run(load_dashboard(source))
    assert data.source == DataSource.LIVE
    stats = data.fleet_stats
    assert (stats.total_chargers, stats.healthy, stats.warning, stats.critical) == (5, 3, 1, 1)
