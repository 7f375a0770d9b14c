# vigia/services/buckets.py
"""
Deterministic grouping keys: a floored time window plus a ~square spatial
grid cell. Reports sharing both land on the same canonical document.
"""
from __future__ import annotations

import math
from datetime import datetime, timezone
from typing import Optional

from vigia import config

KM_PER_DEG_LAT = 110.574


def _as_utc(when: Optional[datetime]) -> datetime:
    if when is None:
        return datetime.now(timezone.utc)
    if when.tzinfo is None:
        return when.replace(tzinfo=timezone.utc)
    return when.astimezone(timezone.utc)


def time_bucket_key(when: Optional[datetime] = None, window_min: int = config.INCIDENT_WINDOW_MIN) -> str:
    """
    Floor `when` (UTC) to the window and encode it sortably.

    Hour-multiple windows give `YYYYMMDDHH`; shorter windows append the
    floored minutes (`YYYYMMDDHHMM`) so sub-hour buckets stay distinct.
    A report at 12:59 and one at 13:01 fall in different hourly buckets.
    """
    window_min = max(1, int(window_min))
    dt = _as_utc(when)
    epoch_min = int(dt.timestamp() // 60)
    floored = datetime.fromtimestamp((epoch_min - epoch_min % window_min) * 60, tz=timezone.utc)
    key = floored.strftime("%Y%m%d%H")
    if window_min % 60:
        key += floored.strftime("%M")
    return key


def grid_deltas(lat: float, grid_km: float = config.GRID_KM):
    """(Δlat, Δlng) in degrees for a grid_km cell at this latitude."""
    d_lat = grid_km / KM_PER_DEG_LAT
    cos_lat = math.cos(math.radians(lat))
    d_lng = d_lat / max(cos_lat, 1e-6)
    return d_lat, d_lng


def spatial_bucket_key(lat: float, lng: float, grid_km: float = config.GRID_KM) -> str:
    """
    Grid cell `"<lat index>_<lng index>"`. The longitude step is widened by
    1/cos(lat) so cells stay roughly grid_km x grid_km at any latitude.
    Indices are floored, so each cell is [kΔ, (k+1)Δ).
    """
    d_lat, d_lng = grid_deltas(lat, grid_km)
    return f"{math.floor(lat / d_lat)}_{math.floor(lng / d_lng)}"


def build_group_id(
    lat: float,
    lng: float,
    when: Optional[datetime] = None,
    *,
    window_min: int = config.INCIDENT_WINDOW_MIN,
    grid_km: float = config.GRID_KM,
) -> str:
    return f"{time_bucket_key(when, window_min)}__{spatial_bucket_key(lat, lng, grid_km)}"
