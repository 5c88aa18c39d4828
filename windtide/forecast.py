"""
Forecast retrieval and per-hour derivation for the dashboard.

Fetches the hourly wind forecast from Open-Meteo and the day's tide extrema
from Stormglass, then runs every hour through the metrics helpers to build
the series the dashboard renders.  Results are returned as immutable
``BeachForecast`` values; nothing is cached between requests.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Tuple
from zoneinfo import ZoneInfo

import pandas as pd
import requests

from . import config, metrics
from .config import Beach
from .metrics import TideEvent, TideKind

_LOGGER = logging.getLogger(__name__)

OPEN_METEO_URL = "https://api.open-meteo.com/v1/forecast"
STORMGLASS_EXTREMES_URL = "https://api.stormglass.io/v2/tide/extremes/point"

HOURLY_COLUMNS = [
    "time",
    "hour_label",
    "speed_kmh",
    "direction_deg",
    "cardinal",
    "score",
    "color",
]


@dataclass(frozen=True)
class BeachForecast:
    """Everything the dashboard needs for one beach on one day."""

    beach: Beach
    date: str
    hours: pd.DataFrame
    tides: List[TideEvent] = field(default_factory=list)
    tide_error: Optional[str] = None


def fetch_wind_forecast(beach: Beach, date: str) -> Dict[str, List[Any]]:
    """Fetch the hourly wind forecast for one local calendar day.

    Returns Open-Meteo's ``hourly`` mapping: parallel ``time``,
    ``wind_speed_10m`` (km/h) and ``wind_direction_10m`` (degrees) lists with
    times in the beach's local timezone.  Raises ``requests.HTTPError`` on
    HTTP failures and ``ValueError`` when no hours come back.
    """
    params = {
        "latitude": beach.lat,
        "longitude": beach.lon,
        "hourly": "wind_speed_10m,wind_direction_10m",
        "start_date": date,
        "end_date": date,
        "timeformat": "iso8601",
        "timezone": beach.timezone,
        "wind_speed_unit": "kmh",
    }
    resp = requests.get(OPEN_METEO_URL, params=params, timeout=config.http_timeout())
    resp.raise_for_status()
    data = resp.json()
    hourly = data.get("hourly") or {}
    if not hourly.get("time"):
        raise ValueError("No hourly data returned from Open‑Meteo")
    return hourly


def _parse_iso(value: str) -> datetime:
    # fromisoformat only accepts a trailing Z from Python 3.11 on
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    return datetime.fromisoformat(value)


def parse_tide_extremes(entries: List[Dict[str, Any]]) -> List[TideEvent]:
    """Turn Stormglass extremes entries into sorted ``TideEvent`` values.

    Entries with an unparseable time, height or type are skipped.
    """
    events: List[TideEvent] = []
    for entry in entries:
        try:
            kind = TideKind(str(entry["type"]).upper())
            events.append(
                TideEvent(
                    timestamp=_parse_iso(str(entry["time"])),
                    height=float(entry["height"]),
                    kind=kind,
                )
            )
        except (KeyError, TypeError, ValueError) as e:
            _LOGGER.warning("Skipping malformed tide entry %r: %s", entry, e)
    events.sort(key=lambda e: metrics.as_utc(e.timestamp))
    return events


def fetch_tide_events(beach: Beach, date: str) -> List[TideEvent]:
    """Fetch the high/low tide events for one local calendar day.

    Uses the Stormglass /tide/extremes/point endpoint, which needs the
    ``STORMGLASS_API_KEY`` environment variable.  Raises ``RuntimeError``
    when the key is missing and ``requests.HTTPError`` on HTTP failures.
    """
    api_key = config.stormglass_api_key()
    if not api_key:
        raise RuntimeError("STORMGLASS_API_KEY not set in the environment")
    start = datetime.fromisoformat(date).replace(tzinfo=ZoneInfo(beach.timezone))
    end = start + timedelta(days=1)
    resp = requests.get(
        STORMGLASS_EXTREMES_URL,
        params={
            "lat": beach.lat,
            "lng": beach.lon,
            "start": start.isoformat(),
            "end": end.isoformat(),
        },
        headers={"Authorization": api_key},
        timeout=config.http_timeout(),
    )
    resp.raise_for_status()
    data = resp.json()
    return parse_tide_extremes(data.get("data") or [])


def build_hourly_frame(hourly: Dict[str, List[Any]], desired_deg: float) -> pd.DataFrame:
    """Derive the per-hour cardinal label, score and color.

    The parallel arrays are truncated to the shortest one and hours missing
    a time, speed or bearing are dropped.  Always returns a frame with
    ``HOURLY_COLUMNS``, empty when nothing usable came in.
    """
    times = list(hourly.get("time") or [])
    speeds = list(hourly.get("wind_speed_10m") or hourly.get("windspeed_10m") or [])
    directions = list(hourly.get("wind_direction_10m") or hourly.get("winddirection_10m") or [])
    n = min(len(times), len(speeds), len(directions))
    if n < max(len(times), len(speeds), len(directions)):
        _LOGGER.debug(
            "Hourly arrays differ in length (%d/%d/%d), truncating to %d",
            len(times), len(speeds), len(directions), n,
        )

    df = pd.DataFrame({
        "time": pd.to_datetime(pd.Series(times[:n], dtype="object"), errors="coerce"),
        "speed_kmh": pd.to_numeric(pd.Series(speeds[:n], dtype="object"), errors="coerce"),
        "direction_deg": pd.to_numeric(pd.Series(directions[:n], dtype="object"), errors="coerce"),
    })
    df = df.dropna().reset_index(drop=True)
    if df.empty:
        return pd.DataFrame(columns=HOURLY_COLUMNS)

    df["hour_label"] = df["time"].dt.strftime("%H")
    df["cardinal"] = [metrics.classify(d) for d in df["direction_deg"]]
    df["score"] = [metrics.score(d, desired_deg) for d in df["direction_deg"]]
    df["color"] = [metrics.colorize(s) for s in df["score"]]
    return df[HOURLY_COLUMNS]


def _http_error_message(service: str, e: requests.HTTPError) -> str:
    status = getattr(e.response, "status_code", None)
    if status == 429:
        return f"{service} rate limit reached (HTTP 429). Try again later."
    if status:
        return f"{service} HTTP error {status}."
    return f"{service} HTTP error."


def retrieve_dashboard(beach_key: str, date: str) -> Tuple[Optional[BeachForecast], Optional[str]]:
    """Fetch and derive everything shown for a beach on ``date``.

    Upstream failures never raise: a wind failure returns ``(None, message)``;
    a tide failure keeps the wind series and records ``tide_error`` with an
    empty event list.  Unknown beach keys raise ``KeyError``.
    """
    beach = config.get_beach(beach_key)

    try:
        hourly = fetch_wind_forecast(beach, date)
    except requests.HTTPError as e:
        reason = _http_error_message("Open‑Meteo", e)
        _LOGGER.warning("Wind fetch failed for %s on %s: %s", beach.key, date, reason)
        return None, f"Wind data unavailable for {beach.name} on {date}. {reason}"
    except (requests.RequestException, ValueError) as e:
        _LOGGER.warning("Wind fetch failed for %s on %s: %s", beach.key, date, e)
        return None, f"Wind data unavailable for {beach.name} on {date}. Details: {e}"

    hours = build_hourly_frame(hourly, beach.desired_deg)

    tides: List[TideEvent] = []
    tide_error: Optional[str] = None
    try:
        tides = fetch_tide_events(beach, date)
    except requests.HTTPError as e:
        tide_error = _http_error_message("Stormglass", e)
    except (requests.RequestException, RuntimeError, ValueError) as e:
        tide_error = str(e)
    if tide_error:
        _LOGGER.warning("Tide fetch failed for %s on %s: %s", beach.key, date, tide_error)

    return BeachForecast(beach=beach, date=date, hours=hours, tides=tides, tide_error=tide_error), None


def _local_time(forecast: BeachForecast, ts: pd.Timestamp) -> datetime:
    return ts.to_pydatetime().replace(tzinfo=ZoneInfo(forecast.beach.timezone))


def current_conditions(forecast: BeachForecast, index: int) -> Optional[Dict[str, Any]]:
    """Snapshot of the selected hour, or ``None`` when there is no such hour."""
    hours = forecast.hours
    if index < 0 or index >= len(hours):
        return None
    row = hours.iloc[index]
    when = _local_time(forecast, row["time"])
    phase = metrics.resolve_phase(when, forecast.tides)
    desired = forecast.beach.desired_deg
    return {
        "time": when.isoformat(),
        "hour_label": row["hour_label"],
        "speed_kmh": float(row["speed_kmh"]),
        "direction_deg": float(row["direction_deg"]),
        "cardinal": row["cardinal"],
        "score": float(row["score"]),
        "color": row["color"],
        "rotation": metrics.arrow_rotation(row["direction_deg"]),
        "desired_deg": desired,
        "desired_cardinal": metrics.classify(desired),
        "desired_rotation": metrics.arrow_rotation(desired),
        "tide_state": phase.state.value,
        "tide_detail": phase.detail,
    }


def tide_table(forecast: BeachForecast) -> List[Dict[str, Any]]:
    """Tide events for display, in the beach's local time."""
    tz = ZoneInfo(forecast.beach.timezone)
    rows = []
    for event in sorted(forecast.tides, key=lambda e: metrics.as_utc(e.timestamp)):
        local = metrics.as_utc(event.timestamp).astimezone(tz)
        rows.append({
            "time": local.isoformat(),
            "time_label": local.strftime("%H:%M"),
            "kind": event.kind.value,
            "height_m": round(event.height, 2),
        })
    return rows


def default_hour_index(forecast: BeachForecast, now: Optional[datetime] = None) -> int:
    """Index of the current local hour when ``forecast`` is for today, else 0."""
    tz = ZoneInfo(forecast.beach.timezone)
    now = (now or datetime.now(tz)).astimezone(tz)
    if forecast.hours.empty or now.strftime("%Y-%m-%d") != forecast.date:
        return 0
    for i, ts in enumerate(forecast.hours["time"]):
        if ts.hour == now.hour:
            return i
    return 0


def forecast_to_dict(forecast: BeachForecast, index: int) -> Dict[str, Any]:
    """JSON-ready view of a forecast with the conditions at ``index``."""
    hours = forecast.hours.copy()
    hours["time"] = [_local_time(forecast, ts).isoformat() for ts in hours["time"]]
    return {
        "beach": forecast.beach.key,
        "name": forecast.beach.name,
        "date": forecast.date,
        "desired_deg": forecast.beach.desired_deg,
        "hours": hours.to_dict(orient="records"),
        "tides": tide_table(forecast),
        "tide_error": forecast.tide_error,
        "current": current_conditions(forecast, index),
    }
