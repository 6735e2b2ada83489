"""
Shared fixtures for the Ampera backend tests.

The API client runs against the seeded demo fleet with triage in local-summary
mode unless a test overrides the dependencies itself.
"""
from typing import Any, Dict, List, Optional

import pytest
from fastapi.testclient import TestClient

from ampera.deps import get_row_source, get_triage_client
from ampera.main import app
from ampera.models.domain import Charger, ChargerStatus
from ampera.services.sources import DemoRowSource, RowSource


class StaticRowSource(RowSource):
    """Serves fixed row lists; optionally fails one side."""

    name = "static"

    def __init__(self, telemetry=None, predictions=None, fail_with: Optional[Exception] = None):
        self.telemetry = telemetry or []
        self.predictions = predictions or []
        self.fail_with = fail_with
        self.calls: List[str] = []

    async def fetch_telemetry(self, limit: int) -> List[Dict[str, Any]]:
        self.calls.append("telemetry")
        return self.telemetry[:limit]

    async def fetch_predictions(self, limit: int) -> List[Dict[str, Any]]:
        self.calls.append("predictions")
        if self.fail_with is not None:
            raise self.fail_with
        return self.predictions[:limit]


@pytest.fixture
def static_source_cls():
    return StaticRowSource


@pytest.fixture
def client():
    app.dependency_overrides[get_row_source] = lambda: DemoRowSource(seed=7)
    app.dependency_overrides[get_triage_client] = lambda: None
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def make_charger():
    def _make(
        num: int,
        risk: float = 10.0,
        status: ChargerStatus = ChargerStatus.HEALTHY,
        location: str = "Folsom",
        **overrides: Any,
    ) -> Charger:
        data = dict(
            id=f"charger-{num}",
            name=f"Charger {num}",
            code=f"CHG-{num:03d}",
            location=location,
            lat=38.6,
            lng=-121.2,
            status=status,
            risk_score=risk,
            risk_history=[risk] * 7,
            temperature=30.0,
            voltage=240.0,
            uptime=98.0,
            energy_delivered=10.0,
            last_updated="2 min ago",
            voltage_history=[240.0] * 24,
            temp_history=[30.0] * 24,
        )
        data.update(overrides)
        return Charger(**data)

    return _make
