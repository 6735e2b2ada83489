import logging

import pytest

from ampera import watch

PAYLOAD = {
    "fleetStats": {"totalChargers": 27, "healthy": 19, "warning": 5, "critical": 3, "healthScore": 70.4},
    "incidents": [{"severity": "critical"}, {"severity": "warning"}, {"severity": "critical"}],
    "source": "fallback",
    "latestTimestamp": "2025-03-01T11:50:00Z",
}


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for key in ("AMPERA_URL", "POLL_INTERVAL_S", "LOG_DIR"):
        monkeypatch.delenv(key, raising=False)


def test_describe_payload():
    line = watch.describe_payload(PAYLOAD)
    assert "27 chargers (19 healthy, 5 warning, 3 critical)" in line
    assert "3 incidents (2 critical)" in line
    assert "health 70.4" in line
    assert "source=fallback" in line
    assert "latest=2025-03-01T11:50:00Z" in line


def test_describe_empty_payload():
    assert watch.describe_payload({}) == (
        "0 chargers (0 healthy, 0 warning, 0 critical), 0 incidents (0 critical), "
        "health n/a, source=unknown, latest=n/a"
    )


def test_once_logs_a_single_refresh(monkeypatch, caplog):
    urls = []

    def fake_fetcher(url):
        urls.append(url)

        async def fetch():
            return PAYLOAD

        return fetch

    monkeypatch.setenv("AMPERA_URL", "http://fleet-backend:8000")
    monkeypatch.setattr(watch, "http_fetcher", fake_fetcher)
    caplog.set_level(logging.INFO, logger="ampera.watch")

    assert watch.main(["--once"]) == 0
    assert urls == ["http://fleet-backend:8000"]
    assert "Live dashboard: 27 chargers" in caplog.text


def test_once_exits_nonzero_when_backend_fails(monkeypatch, caplog):
    def failing_fetcher(url):
        async def fetch():
            raise RuntimeError("Live data request failed (502)")

        return fetch

    monkeypatch.setattr(watch, "http_fetcher", failing_fetcher)
    caplog.set_level(logging.INFO)

    assert watch.main(["--once", "--url", "http://backend"]) == 1
    assert "Live data request failed (502)" in caplog.text
    assert "Live dashboard:" not in caplog.text
