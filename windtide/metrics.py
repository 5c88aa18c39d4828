"""
Derived forecast metrics for the wind and tide dashboard.

Pure helpers that turn raw wind bearings into a cardinal label and a 0–10
quality score, map a score to a display color, and classify the tide phase
for a point in time from the day's high/low tide events.  Nothing here
touches the network or logs; every function returns a defined value for
empty or malformed input instead of raising.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Optional, Sequence

CARDINALS = ["N", "NE", "E", "SE", "S", "SW", "W", "NW"]
UNDEFINED_CARDINAL = "undefined"

# Tide events closer than this to the query time count as "at the peak"
PEAK_WINDOW = timedelta(minutes=15)


class TideKind(str, Enum):
    HIGH = "HIGH"
    LOW = "LOW"


class TideState(str, Enum):
    AT_HIGH = "AT_HIGH"
    AT_LOW = "AT_LOW"
    RISING = "RISING"
    FALLING = "FALLING"
    UNKNOWN = "UNKNOWN"


@dataclass(frozen=True)
class TideEvent:
    timestamp: datetime
    height: float
    kind: TideKind


@dataclass(frozen=True)
class TidePhase:
    state: TideState
    detail: str


def _round_half_up(value: float, digits: int = 0) -> float:
    factor = 10 ** digits
    return math.floor(value * factor + 0.5) / factor


def _finite(value: Any) -> Optional[float]:
    try:
        f = float(value)
    except (TypeError, ValueError):
        return None
    return f if math.isfinite(f) else None


def classify(bearing: Any) -> str:
    """Convert a bearing in degrees into one of the eight cardinal directions.

    Sectors are 45° wide and centred on the compass points, with the upper
    boundary inclusive: 22.5 is still N, 22.51 is NE.  Bearings outside
    [0, 360) are reduced modulo 360.  Returns ``"undefined"`` for values
    that cannot be placed in any sector (NaN, infinities, non-numbers).
    """
    b = _finite(bearing)
    if b is None:
        return UNDEFINED_CARDINAL
    b = b % 360.0
    if b > 337.5 or b <= 22.5:
        return "N"
    lower = 22.5
    for label in CARDINALS[1:]:
        upper = lower + 45.0
        if lower < b <= upper:
            return label
        lower = upper
    return UNDEFINED_CARDINAL


def angular_distance(a: float, b: float) -> float:
    """Smallest absolute angular distance in degrees between two bearings."""
    # reduce each operand first; a - b can overflow for huge finite inputs
    diff = abs(a % 360.0 - b % 360.0)
    if diff > 180.0:
        diff = 360.0 - diff
    return diff


def score(observed: Any, desired: Any) -> float:
    """Score how closely an observed bearing matches the desired one.

    10 means the bearings are identical, 0 means they are exactly opposed;
    the score falls linearly with the angular distance in between and is
    rounded half-up to one decimal.  Non-finite inputs score 0.0.
    """
    o = _finite(observed)
    d = _finite(desired)
    if o is None or d is None:
        return 0.0
    distance = angular_distance(o, d)
    return _round_half_up(10.0 - (distance / 180.0) * 10.0, 1)


def colorize(value: Any) -> str:
    """Map a 0–10 score onto a red → yellow → green hex color.

    Scores are clamped to [0, 10].  Red holds at 255 while green ramps up
    over the lower half; green holds at 255 while red ramps down over the
    upper half, so a score of 5 is pure yellow.
    """
    s = _finite(value)
    if s is None:
        s = 0.0
    v = max(0.0, min(10.0, s)) / 10.0
    if v <= 0.5:
        r = 255
        g = int(_round_half_up(255 * v * 2))
    else:
        r = int(_round_half_up(255 * (1 - (v - 0.5) * 2)))
        g = 255
    return "#{:02x}{:02x}{:02x}".format(r, g, 0)


def arrow_rotation(bearing: Any) -> float:
    """CSS rotation (degrees) for an east-pointing arrow glyph.

    The glyph points along the bearing once rotated, so 0° points up.
    """
    b = _finite(bearing)
    if b is None:
        return 0.0
    return b - 90.0


def as_utc(ts: datetime) -> datetime:
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc)


def _peak_state(kind: TideKind) -> TideState:
    return TideState.AT_HIGH if kind == TideKind.HIGH else TideState.AT_LOW


def resolve_phase(
    query_time: datetime,
    events: Sequence[TideEvent],
    symmetric: bool = False,
) -> TidePhase:
    """Classify the tide at ``query_time`` from the day's extrema.

    The events are sorted first; the source does not guarantee order.  The
    first event strictly after the query decides the phase: within the peak
    window it is "at" that extremum, otherwise the tide is rising toward a
    high or falling toward a low.  After the last event the tide is reported
    as sitting at that last peak.

    By default only the next event is checked against the peak window, so a
    query a few minutes after a high already reads as falling.  With
    ``symmetric=True`` the previous event is also considered when it is
    within the window and at least as close as the next one.

    Naive datetimes are treated as UTC.  Times in the detail string are
    rendered in the query's timezone.
    """
    if not events:
        return TidePhase(TideState.UNKNOWN, "no data")

    display_tz = query_time.tzinfo or timezone.utc
    query = as_utc(query_time)
    ordered = sorted(events, key=lambda e: as_utc(e.timestamp))

    next_idx = None
    for i, event in enumerate(ordered):
        if as_utc(event.timestamp) > query:
            next_idx = i
            break

    if next_idx is None:
        last = ordered[-1]
        return TidePhase(_peak_state(last.kind), f"last peak {last.height:.2f} m")

    nxt = ordered[next_idx]
    until_next = as_utc(nxt.timestamp) - query

    if symmetric and next_idx > 0:
        prev = ordered[next_idx - 1]
        since_prev = query - as_utc(prev.timestamp)
        if since_prev < PEAK_WINDOW and since_prev <= until_next:
            return TidePhase(_peak_state(prev.kind), f"at peak {prev.height:.2f} m")

    if until_next < PEAK_WINDOW:
        return TidePhase(_peak_state(nxt.kind), f"at peak {nxt.height:.2f} m")

    local = as_utc(nxt.timestamp).astimezone(display_tz)
    if nxt.kind == TideKind.HIGH:
        return TidePhase(
            TideState.RISING,
            f"next high at {local.strftime('%H:%M')} ({nxt.height:.2f} m)",
        )
    return TidePhase(
        TideState.FALLING,
        f"next low at {local.strftime('%H:%M')} ({nxt.height:.2f} m)",
    )
