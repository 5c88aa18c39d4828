"""
FastAPI application for the wind and tide beach dashboard.

This file defines the web server and HTML routes.  It uses Jinja2
templates for the user interface, serves a PNG chart of the hourly wind
score per beach, and exposes the same data as JSON.
"""

from __future__ import annotations

import io
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional
from zoneinfo import ZoneInfo

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import HTMLResponse, JSONResponse, StreamingResponse
from fastapi.staticfiles import StaticFiles
from fastapi.templating import Jinja2Templates

import matplotlib

# Use a non‑interactive backend for server
matplotlib.use("Agg")  # noqa: E402
import matplotlib.pyplot as plt

from . import config, forecast, metrics

config.configure_logging()
_LOGGER = logging.getLogger(__name__)

app = FastAPI(title="Wind & Tide Beach Dashboard")

# Set up templates directory
templates = Jinja2Templates(directory=str((__file__).rsplit("/", 1)[0] + "/templates"))

app.mount("/static", StaticFiles(directory=str((__file__).rsplit("/", 1)[0] + "/static")), name="static")


def _today(tz_name: str) -> str:
    return datetime.now(ZoneInfo(tz_name)).strftime("%Y-%m-%d")


def _valid_date(date: Optional[str]) -> bool:
    if not date:
        return False
    try:
        datetime.strptime(date, "%Y-%m-%d")
    except ValueError:
        return False
    return True


def _lookup_beach(beach: str) -> config.Beach:
    try:
        return config.get_beach(beach)
    except KeyError:
        raise HTTPException(status_code=404, detail=f"Unknown beach {beach}")


def _beach_card(key: str, date: str, hour: Optional[int]) -> Dict[str, Any]:
    """Build the template context for one beach."""
    fc, err = forecast.retrieve_dashboard(key, date)
    beach = config.get_beach(key)
    card: Dict[str, Any] = {
        "key": beach.key,
        "name": beach.name,
        "desired_deg": beach.desired_deg,
        "desired_cardinal": metrics.classify(beach.desired_deg),
        "error": err,
        "current": None,
        "tides": [],
        "tide_error": None,
        "hour_labels": [],
        "hour": 0,
        "unavailable": None,
    }
    if fc is None:
        return card
    index = hour if hour is not None else forecast.default_hour_index(fc)
    card.update({
        "current": forecast.current_conditions(fc, index),
        "tides": forecast.tide_table(fc),
        "tide_error": fc.tide_error,
        "hour_labels": list(fc.hours["hour_label"]),
        "hour": index,
    })
    if card["current"] is None:
        card["unavailable"] = "Wind data not available for this hour."
    return card


@app.get("/", response_class=HTMLResponse)
def index(
    request: Request,
    date: Optional[str] = None,
    hour: Optional[int] = None,
):
    """Render the dashboard for both beaches on ``date`` at the selected hour."""
    error = None
    default_tz = next(iter(config.BEACHES.values())).timezone
    if date and not _valid_date(date):
        error = f"Invalid date {date!r}; expected YYYY-MM-DD. Showing today instead."
        date = None
    date_sel = date or _today(default_tz)

    cards: List[Dict[str, Any]] = [_beach_card(key, date_sel, hour) for key in config.BEACHES]

    return templates.TemplateResponse(
        request,
        "index.html",
        {
            "error": error,
            "date": date_sel,
            "hour": hour,
            "cards": cards,
            "refresh_seconds": config.refresh_minutes() * 60,
        },
    )


@app.get("/chart", response_class=StreamingResponse)
def chart(beach: str, date: Optional[str] = None):
    """Return a PNG chart of the hourly wind score for one beach."""
    b = _lookup_beach(beach)
    date_sel = date if _valid_date(date) else _today(b.timezone)
    fc, _err = forecast.retrieve_dashboard(b.key, date_sel)

    fig, ax = plt.subplots(figsize=(7, 3))
    if fc is None or fc.hours.empty:
        ax.text(0.5, 0.5, "No data", ha="center", va="center")
        ax.set_axis_off()
    else:
        hours = fc.hours
        x = list(range(len(hours)))
        ax.plot(x, hours["score"], color="#888888", linewidth=1.5, zorder=1)
        ax.scatter(x, hours["score"], c=list(hours["color"]), edgecolors="#333333", zorder=2)
        ax.set_xticks(x)
        ax.set_xticklabels([f"{h}h" for h in hours["hour_label"]], fontsize=7)
        ax.set_title(f"Wind score for {b.name} on {date_sel}")
        ax.set_xlabel("Hour")
        ax.set_ylabel("Score (0-10)")
        ax.set_ylim(0, 10)
    buf = io.BytesIO()
    fig.savefig(buf, format="png", bbox_inches="tight")
    plt.close(fig)
    buf.seek(0)
    return StreamingResponse(buf, media_type="image/png")


@app.get("/api/forecast")
def api_forecast(beach: str, date: Optional[str] = None, hour: Optional[int] = None):
    """Return the hourly series, tide events and selected-hour conditions as JSON."""
    b = _lookup_beach(beach)
    if date and not _valid_date(date):
        raise HTTPException(status_code=400, detail=f"Invalid date {date!r}; expected YYYY-MM-DD")
    date_sel = date or _today(b.timezone)
    fc, err = forecast.retrieve_dashboard(b.key, date_sel)
    if fc is None:
        return JSONResponse(status_code=502, content={"error": err})
    index = hour if hour is not None else forecast.default_hour_index(fc)
    return forecast.forecast_to_dict(fc, index)
