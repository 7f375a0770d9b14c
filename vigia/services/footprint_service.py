# vigia/services/footprint_service.py
"""
Circle / bbox retrieval of incident footprints.

Geohash ranges are only a candidate prefilter. Every candidate is checked
against the true geometry (haversine distance or bbox membership) before it
is returned.
"""
from __future__ import annotations

import hmac
import logging
import math
import time
from concurrent.futures import ThreadPoolExecutor, wait
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Tuple

from shapely.geometry import LineString, Point, box as make_bbox

from vigia import config
from vigia.db.footprints import query_geohash_range
from vigia.errors import QueryParamError, QueryTimeoutError
from vigia.models.footprint import FootprintItem, FootprintResponse, Tooltip, TooltipMeta
from vigia.services.geo_utils import (
    BASE32,
    enclosing_circle,
    fmt_dist,
    geohash_query_bounds,
    haversine_m,
)

log = logging.getLogger(__name__)

MAX_DAYS = 90
LIMIT_DEFAULT = 2000
LIMIT_MAX = 10000
DEFAULT_RADIUS_M = 1000.0
DAY_MS = 24 * 60 * 60 * 1000


# ---------------- Param parsing ----------------
def to_num(value: Any) -> float:
    """float(value), or NaN for anything missing or malformed."""
    if value is None or isinstance(value, bool):
        return math.nan
    try:
        f = float(str(value).strip())
    except ValueError:
        return math.nan
    return f if math.isfinite(f) else math.nan


def clamp(value: float, lo: float, hi: float) -> float:
    return min(max(value, lo), hi)


def parse_limit(value: Any) -> int:
    n = to_num(value)
    if math.isnan(n):
        return LIMIT_DEFAULT
    return int(clamp(n, 1, LIMIT_MAX))


def _parse_iso(value: Any) -> Optional[datetime]:
    s = str(value or "").strip()
    if not s:
        return None
    try:
        dt = datetime.fromisoformat(s.replace("Z", "+00:00"))
    except ValueError:
        return None
    return dt if dt.tzinfo else dt.replace(tzinfo=timezone.utc)


def resolve_since_ms(params: Mapping[str, Any], now_ms: int) -> int:
    """
    Absolute cutoff: explicit `since` (ISO date) when parseable, else
    `sinceDays` clamped to [1, 90] (default 90). Never older than 90 days.
    """
    floor_ms = now_ms - MAX_DAYS * DAY_MS
    since = _parse_iso(params.get("since"))
    if since is not None:
        return max(int(since.timestamp() * 1000), floor_ms)
    days = to_num(params.get("sinceDays"))
    days = MAX_DAYS if math.isnan(days) else clamp(days, 1, MAX_DAYS)
    return int(now_ms - days * DAY_MS)


def _present(params: Mapping[str, Any], key: str) -> bool:
    v = params.get(key)
    return v is not None and str(v).strip() != ""


def resolve_mode(params: Mapping[str, Any]) -> str:
    mode = str(params.get("mode") or "").strip().lower()
    if mode == "bbox":
        return "bbox"
    if not mode and all(_present(params, k) for k in ("north", "south", "east", "west")):
        return "bbox"
    return "circle"


def parse_circle(params: Mapping[str, Any]) -> Tuple[float, float, float]:
    lat, lng = to_num(params.get("lat")), to_num(params.get("lng"))
    if math.isnan(lat) or math.isnan(lng) or not -90 <= lat <= 90 or not -180 <= lng <= 180:
        raise QueryParamError("lat/lng obrigatórios para mode=circle")
    radius = to_num(params.get("radius_m"))
    if math.isnan(radius) or radius <= 0:
        radius = DEFAULT_RADIUS_M
    return lat, lng, radius


def parse_bbox(params: Mapping[str, Any]) -> Tuple[float, float, float, float]:
    north, south = to_num(params.get("north")), to_num(params.get("south"))
    east, west = to_num(params.get("east")), to_num(params.get("west"))
    if any(math.isnan(v) for v in (north, south, east, west)) or south > north or west > east:
        raise QueryParamError("bbox inválido")
    return north, south, east, west


def bbox_geometry(north: float, south: float, east: float, west: float):
    """Closed area of the bbox; collapsed edges give a line or a point."""
    if north == south and east == west:
        return Point(west, south)
    if north == south or east == west:
        return LineString([(west, south), (east, north)])
    return make_bbox(west, south, east, north)


def partition_ranges(ranges: Iterable[Tuple[str, str]]) -> List[Tuple[str, str, str]]:
    """
    Map geohash ranges onto the GSI partitions (`gh1` = first char).
    A range that spans several first chars (precision-1 bounds for very
    large radii) becomes one full-partition scan per char it covers.
    """
    out: List[Tuple[str, str, str]] = []
    for start, end in ranges:
        if start[:1] and start[:1] == end[:1]:
            parts = [(start[0], start, end)]
        else:
            parts = [(ch, ch, ch + "~") for ch in BASE32 if start <= ch and (end == "~" or ch < end)]
        for part in parts:
            if part not in out:
                out.append(part)
    return out


# ---------------- Tooltip ----------------
def build_subtitle(doc: Mapping[str, Any]) -> str:
    street = str(doc.get("endereco") or "").strip()
    city = str(doc.get("cidade") or "").strip()
    uf = str(doc.get("uf") or "").strip()
    place = f"{city}/{uf}" if city and uf else city or (f"/{uf}" if uf else "")
    if street:
        return f"{street} - {place}" if place else street
    return place or "sua região"


def build_tooltip(doc: Mapping[str, Any]) -> Tooltip:
    return Tooltip(
        title=str(doc.get("category") or doc.get("kind") or "publicIncident"),
        subtitle=build_subtitle(doc),
        meta=TooltipMeta(
            alert_id=str(doc.get("alertId") or ""),
            user_id=str(doc.get("userId") or ""),
            radius_text=fmt_dist(to_num(doc.get("radius_m"))),
        ),
    )


def to_item(doc: Mapping[str, Any]) -> FootprintItem:
    return FootprintItem(
        id=str(doc["id"]),
        lat=float(doc["lat"]),
        lng=float(doc["lng"]),
        radius_m=float(doc.get("radius_m") or 0),
        kind=str(doc.get("kind") or "publicIncident"),
        alert_id=str(doc.get("alertId") or ""),
        user_id=str(doc.get("userId") or ""),
        created_at=int(doc.get("createdAt") or 0),
        tooltip=build_tooltip(doc),
    )


def _iso_ms(ms: int) -> str:
    dt = datetime(1970, 1, 1, tzinfo=timezone.utc) + timedelta(milliseconds=ms)
    return dt.isoformat(timespec="milliseconds").replace("+00:00", "Z")


# ---------------- Service ----------------
class FootprintService:
    """Read-only query side of the AlertFootprints table."""

    def __init__(
        self,
        table,
        *,
        api_key: str = config.FOOTPRINTS_API_KEY,
        timeout_s: float = config.FOOTPRINTS_TIMEOUT_S,
        max_workers: int = config.FOOTPRINTS_MAX_WORKERS,
        index_name: str = config.FOOTPRINTS_GEOHASH_INDEX,
        clock: Callable[[], float] = time.time,
    ):
        self.table = table
        self.api_key = api_key or ""
        self.timeout_s = timeout_s
        self.max_workers = max(1, int(max_workers))
        self.index_name = index_name
        self.clock = clock

    def check_api_key(self, provided: Optional[str]) -> bool:
        """Open when no key is configured; otherwise a constant-time match."""
        if not self.api_key:
            return True
        return bool(provided) and hmac.compare_digest(str(provided).encode(), self.api_key.encode())

    def query(self, params: Mapping[str, Any]) -> Dict[str, Any]:
        t0 = time.monotonic()
        now_ms = int(self.clock() * 1000)
        mode = resolve_mode(params)
        since_ms = resolve_since_ms(params, now_ms)
        limit = parse_limit(params.get("limit"))
        log.info("[FOOTPRINTS] START mode=%s since=%s limit=%d", mode, _iso_ms(since_ms), limit)

        if mode == "bbox":
            north, south, east, west = parse_bbox(params)
            c_lat, c_lng, radius = enclosing_circle(north, south, east, west)
            raw = self._fetch(geohash_query_bounds(c_lat, c_lng, radius), since_ms, limit)
            area = bbox_geometry(north, south, east, west)
            kept = [d for d in self._candidates(raw, now_ms) if area.covers(Point(d["lng"], d["lat"]))]
            kept.sort(key=lambda d: (-int(d.get("createdAt") or 0), str(d["id"])))
            log.info("[FOOTPRINTS] bbox done requested=%d kept=%d", len(raw), len(kept))
        else:
            lat, lng, radius = parse_circle(params)
            raw = self._fetch(geohash_query_bounds(lat, lng, radius), since_ms, limit)
            scored = []
            for d in self._candidates(raw, now_ms):
                dist = haversine_m(lat, lng, d["lat"], d["lng"])
                if dist <= radius:
                    scored.append((dist, str(d["id"]), d))
            scored.sort(key=lambda t: (t[0], t[1]))
            kept = [d for _, _, d in scored]
            log.info("[FOOTPRINTS] circle done requested=%d kept=%d radius_m=%.0f", len(raw), len(kept), radius)

        items = [to_item(d) for d in kept[:limit]]
        resp = FootprintResponse(ok=True, mode=mode, since=_iso_ms(since_ms), count=len(items), items=items)
        log.info("[FOOTPRINTS] END count=%d ms=%d", resp.count, int((time.monotonic() - t0) * 1000))
        return resp.model_dump(by_alias=True)

    # ---------------- Internals ----------------
    @staticmethod
    def _candidates(raw: Iterable[Dict[str, Any]], now_ms: int) -> List[Dict[str, Any]]:
        """Unique by id, with finite coordinates, not past expireAt."""
        seen = set()
        out: List[Dict[str, Any]] = []
        for d in raw:
            fid = d.get("id")
            if fid is None or fid in seen:
                continue
            lat, lng = to_num(d.get("lat")), to_num(d.get("lng"))
            if math.isnan(lat) or math.isnan(lng):
                continue
            expire_at = d.get("expireAt")
            if expire_at is not None and int(expire_at) <= now_ms:
                continue
            seen.add(fid)
            out.append(dict(d, lat=lat, lng=lng))
        return out

    def _scan(self, part: Tuple[str, str, str], since_ms: int, limit: int) -> List[Dict[str, Any]]:
        gh1, start, end = part
        return query_geohash_range(self.table, gh1, start, end, since_ms, limit, index_name=self.index_name)

    def _fetch(self, bounds: List[Tuple[str, str]], since_ms: int, limit: int) -> List[Dict[str, Any]]:
        """Run every range scan in parallel; give up after `timeout_s`."""
        parts = partition_ranges(bounds)
        if not parts:
            return []
        pool = ThreadPoolExecutor(max_workers=min(self.max_workers, len(parts)))
        try:
            futures = [pool.submit(self._scan, part, since_ms, limit) for part in parts]
            _, pending = wait(futures, timeout=self.timeout_s)
            if pending:
                log.warning("[FOOTPRINTS] timeout after %.1fs, %d/%d scans pending", self.timeout_s, len(pending), len(futures))
                raise QueryTimeoutError(f"footprint query exceeded {self.timeout_s:.0f}s")
            rows: List[Dict[str, Any]] = []
            for f in futures:
                rows.extend(f.result())
            return rows
        finally:
            pool.shutdown(wait=False, cancel_futures=True)
