import inspect
import os
import sys
from datetime import datetime, timezone

import pytest
import requests
from fastapi.testclient import TestClient

# Adjust sys.path so we can import the package when running tests with pytest
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from windtide.main import app  # noqa: E402
from windtide import forecast  # noqa: E402
from windtide.metrics import TideEvent, TideKind  # noqa: E402

DATE = "2026-10-19"


def _hourly(beach, date):
    return {
        "time": [f"{date}T{h:02d}:00" for h in range(24)],
        "wind_speed_10m": [10.0 + h for h in range(24)],
        "wind_direction_10m": [(h * 15) % 360 for h in range(24)],
    }


def _tides(beach, date):
    return [
        TideEvent(datetime(2026, 10, 19, 9, 5, tzinfo=timezone.utc), 0.52, TideKind.HIGH),
        TideEvent(datetime(2026, 10, 19, 15, 20, tzinfo=timezone.utc), -0.41, TideKind.LOW),
    ]


@pytest.fixture
def client(monkeypatch):
    monkeypatch.setattr(forecast, "fetch_wind_forecast", _hourly)
    monkeypatch.setattr(forecast, "fetch_tide_events", _tides)
    return TestClient(app)


def test_index_endpoint(client):
    resp = client.get(f"/?date={DATE}&hour=6")
    assert resp.status_code == 200
    assert "Joaquina" in resp.text
    assert "Campeche" in resp.text
    assert "Selected forecast: 06h" in resp.text
    assert 'http-equiv="refresh"' in resp.text


def test_index_hour_out_of_range(client):
    resp = client.get(f"/?date={DATE}&hour=99")
    assert resp.status_code == 200
    assert "Wind data not available for this hour." in resp.text


def test_index_invalid_date_falls_back(client):
    resp = client.get("/?date=yesterday")
    assert resp.status_code == 200
    assert "Invalid date" in resp.text


def test_index_shows_upstream_error(monkeypatch):
    def failing(beach, date):
        raise requests.ConnectionError("offline")

    monkeypatch.setattr(forecast, "fetch_wind_forecast", failing)
    resp = TestClient(app).get(f"/?date={DATE}")
    assert resp.status_code == 200
    assert "Wind data unavailable for Joaquina" in resp.text


def test_chart_endpoint(client):
    resp = client.get(f"/chart?beach=joaquina&date={DATE}")
    assert resp.status_code == 200
    assert resp.headers["content-type"] == "image/png"


def test_chart_unknown_beach(client):
    resp = client.get("/chart?beach=malibu")
    assert resp.status_code == 404


def test_api_forecast(client):
    resp = client.get(f"/api/forecast?beach=Joaquina&date={DATE}&hour=5")
    assert resp.status_code == 200
    data = resp.json()
    assert data["beach"] == "joaquina"
    assert len(data["hours"]) == 24
    assert data["current"]["cardinal"] == "E"
    assert data["current"]["tide_state"] == "RISING"
    assert data["tides"][0]["kind"] == "HIGH"


def test_api_forecast_upstream_failure(monkeypatch):
    def failing(beach, date):
        raise ValueError("No hourly data returned from Open‑Meteo")

    monkeypatch.setattr(forecast, "fetch_wind_forecast", failing)
    resp = TestClient(app).get(f"/api/forecast?beach=campeche&date={DATE}")
    assert resp.status_code == 502
    assert "Campeche" in resp.json()["error"]


def test_handlers_run_in_threadpool():
    # blocking requests calls must not run on the event loop
    from windtide import main

    for handler in (main.index, main.chart, main.api_forecast):
        assert not inspect.iscoroutinefunction(handler)
