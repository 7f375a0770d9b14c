# vigia/config.py
from __future__ import annotations

import os

from dotenv import load_dotenv

# --- Load .env early so os.getenv works everywhere ---
load_dotenv()


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    try:
        return int(raw) if raw else default
    except ValueError:
        return default


def _float_env(name: str, default: float) -> float:
    raw = os.getenv(name, "").strip()
    try:
        return float(raw) if raw else default
    except ValueError:
        return default


AWS_REGION = os.getenv("AWS_REGION", "sa-east-1")

# ---------------- Tables ----------------
INCIDENTS_TABLE = os.getenv("INCIDENTS_TABLE", "PublicAlerts")
FOOTPRINTS_TABLE = os.getenv("FOOTPRINTS_TABLE", "AlertFootprints")
FOOTPRINTS_GEOHASH_INDEX = os.getenv("FOOTPRINTS_GEOHASH_INDEX", "geohash-index")
STRIKES_TABLE = os.getenv("STRIKES_TABLE", "AbuseStrikes")
CONFIG_TABLE = os.getenv("CONFIG_TABLE", "AdminConfig")
CONFIG_DOC_ID = os.getenv("CONFIG_DOC_ID", "admin/config")

# ---------------- Grouping ----------------
INCIDENT_WINDOW_MIN = _int_env("INCIDENT_WINDOW_MIN", 60)
GRID_KM = _float_env("GRID_KM", 1.0)
DEFAULT_TTL_DAYS = _int_env("DEFAULT_TTL_DAYS", 90)
TX_MAX_ATTEMPTS = _int_env("TX_MAX_ATTEMPTS", 5)

# ---------------- Guardrail ----------------
RUNTIME_CONFIG_TTL_S = _float_env("RUNTIME_CONFIG_TTL_S", 10 * 60)
# after a failed fetch, serve the fallback this long before trying again
RUNTIME_CONFIG_RETRY_S = _float_env("RUNTIME_CONFIG_RETRY_S", 30.0)
CONFIG_FETCH_TIMEOUT_S = _float_env("CONFIG_FETCH_TIMEOUT_S", 3.0)
STRIKE_LIMIT = _int_env("STRIKE_LIMIT", 3)
STRIKE_WINDOW_S = _int_env("STRIKE_WINDOW_S", 6 * 3600)
BLOCK_DURATION_S = _int_env("BLOCK_DURATION_S", 6 * 3600)

# ---------------- Footprints ----------------
# Empty key means the read-only endpoint stays open.
FOOTPRINTS_API_KEY = (
    os.getenv("FOOTPRINTS_API_KEY") or os.getenv("PUBLIC_ALERT_API_KEY") or ""
).strip()
FOOTPRINTS_TIMEOUT_S = _float_env("FOOTPRINTS_TIMEOUT_S", 60.0)
FOOTPRINTS_MAX_WORKERS = _int_env("FOOTPRINTS_MAX_WORKERS", 8)

# ---------------- HTTP ----------------
API_PREFIX = os.getenv("API_PREFIX", "").strip()
CORS_ORIGINS = os.getenv("CORS_ORIGINS")
