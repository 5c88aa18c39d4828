"""
Runtime configuration and the fixed beach list.

Settings come from environment variables, optionally seeded from a ``.env``
file at the project root.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional

_LOGGER = logging.getLogger(__name__)

ROOT_DIR = Path(__file__).resolve().parent.parent


def read_dotenv(path: Path) -> Dict[str, str]:
    """Parse KEY=VALUE pairs from a .env file.

    Blank lines, ``#`` comments and lines without ``=`` are skipped; an
    ``export`` prefix and surrounding quotes are dropped.  A missing or
    unreadable file yields an empty mapping.
    """
    try:
        text = path.read_text()
    except FileNotFoundError:
        return {}
    except OSError as e:
        _LOGGER.warning("Could not read %s: %s", path, e)
        return {}
    pairs: Dict[str, str] = {}
    for raw in text.splitlines():
        line = raw.strip()
        if line.startswith("export "):
            line = line[len("export "):].lstrip()
        key, sep, val = line.partition("=")
        key = key.strip()
        if not sep or not key or key.startswith("#"):
            continue
        pairs[key] = val.strip().strip("\"'")
    return pairs


def apply_dotenv(path: Optional[Path] = None) -> None:
    """Seed ``os.environ`` from a .env file; process variables take precedence."""
    for key, val in read_dotenv(path or ROOT_DIR / ".env").items():
        os.environ.setdefault(key, val)


# Load .env on import so STORMGLASS_API_KEY and friends are available
apply_dotenv()


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        _LOGGER.warning("Ignoring non-integer %s=%r, using %s", name, raw, default)
        return default


def stormglass_api_key() -> str | None:
    return os.getenv("STORMGLASS_API_KEY") or None


def refresh_minutes() -> int:
    """How often the dashboard page reloads itself."""
    return max(1, _env_int("WINDTIDE_REFRESH_MINUTES", 30))


def http_timeout() -> int:
    return max(1, _env_int("WINDTIDE_HTTP_TIMEOUT", 10))


def log_level() -> str:
    return (os.getenv("WINDTIDE_LOG_LEVEL") or "INFO").upper()


def configure_logging() -> None:
    logging.basicConfig(
        level=getattr(logging, log_level(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@dataclass(frozen=True)
class Beach:
    key: str
    name: str
    lat: float
    lon: float
    desired_deg: float
    timezone: str = "America/Sao_Paulo"


# Desired bearing is the offshore wind direction for each break.
BEACHES: Dict[str, Beach] = {
    "joaquina": Beach("joaquina", "Joaquina", -27.6290, -48.4490, 270.0),
    "campeche": Beach("campeche", "Campeche", -27.6803, -48.4796, 292.5),
}


def get_beach(key: str) -> Beach:
    """Look up a beach by key (case-insensitive).  Raises KeyError if unknown."""
    beach = BEACHES.get((key or "").strip().lower())
    if beach is None:
        raise KeyError(f"Unknown beach {key}")
    return beach
