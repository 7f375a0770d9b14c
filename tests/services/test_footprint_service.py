from __future__ import annotations

import math
import time

import pytest

from vigia.db.footprints import put_footprint
from vigia.errors import QueryParamError, QueryTimeoutError
from vigia.models.footprint import Footprint
from vigia.services import footprint_service as fps
from vigia.services.footprint_service import FootprintService
from vigia.services.geo_utils import EARTH_RADIUS_M, encode_geohash

NOW_S = 1_741_600_000.0
NOW_MS = int(NOW_S * 1000)
DAY_MS = 24 * 60 * 60 * 1000
CENTER = (-3.7305, -38.5218)
BBOX = {"north": "-3.72", "south": "-3.74", "east": "-38.51", "west": "-38.53"}


def _north_of(meters: float):
    return CENTER[0] + math.degrees(meters / EARTH_RADIUS_M), CENTER[1]


def _add(table, fid: str, lat: float, lng: float, *, age_ms: int = 60_000, **extra) -> Footprint:
    fp = Footprint(
        id=fid,
        lat=lat,
        lng=lng,
        alert_id=f"alert-{fid}",
        user_id="u1",
        created_at=NOW_MS - age_ms,
        expire_at=extra.pop("expire_at", NOW_MS + 90 * DAY_MS),
        geohash=encode_geohash(lat, lng),
        **extra,
    )
    assert put_footprint(table, fp) is True
    return fp


@pytest.fixture
def service(footprints_table) -> FootprintService:
    return FootprintService(footprints_table, api_key="", clock=lambda: NOW_S)


def _ids(resp) -> list:
    return [it["id"] for it in resp["items"]]


def test_circle_uses_exact_distance(service, footprints_table) -> None:
    _add(footprints_table, "in-999", *_north_of(999))
    _add(footprints_table, "out-1001", *_north_of(1001))
    resp = service.query({"lat": CENTER[0], "lng": CENTER[1], "radius_m": 1000})
    assert resp["ok"] is True
    assert resp["mode"] == "circle"
    assert _ids(resp) == ["in-999"]
    assert resp["count"] == 1


def test_circle_sorted_by_distance(service, footprints_table) -> None:
    _add(footprints_table, "far", *_north_of(500))
    _add(footprints_table, "near", *_north_of(100))
    _add(footprints_table, "mid", *_north_of(300))
    resp = service.query({"lat": CENTER[0], "lng": CENTER[1]})
    assert _ids(resp) == ["near", "mid", "far"]


def test_bbox_edges_are_inclusive(service, footprints_table) -> None:
    _add(footprints_table, "north-edge", -3.72, -38.52)
    _add(footprints_table, "west-edge", -3.73, -38.53)
    _add(footprints_table, "corner", -3.74, -38.51)
    _add(footprints_table, "north-out", -3.72 + 0.0001, -38.52)
    _add(footprints_table, "east-out", -3.73, -38.51 + 0.0001)
    _add(footprints_table, "south-out", -3.74 - 0.0001, -38.52)
    resp = service.query({"mode": "bbox", **BBOX})
    assert resp["mode"] == "bbox"
    assert sorted(_ids(resp)) == ["corner", "north-edge", "west-edge"]


def test_point_sized_bbox_returns_the_record_on_it(service, footprints_table) -> None:
    _add(footprints_table, "here", -3.73, -38.52)
    _add(footprints_table, "next-door", -3.7301, -38.52)
    resp = service.query({"mode": "bbox", "north": "-3.73", "south": "-3.73", "east": "-38.52", "west": "-38.52"})
    assert resp["ok"] is True
    assert _ids(resp) == ["here"]


def test_flat_bbox_keeps_records_on_the_segment(service, footprints_table) -> None:
    _add(footprints_table, "on-line", -3.73, -38.525)
    _add(footprints_table, "off-line", -3.7301, -38.525)
    resp = service.query({"mode": "bbox", "north": "-3.73", "south": "-3.73", "east": "-38.52", "west": "-38.53"})
    assert _ids(resp) == ["on-line"]


def test_bbox_mode_is_inferred_from_edges(service, footprints_table) -> None:
    _add(footprints_table, "inside", -3.73, -38.52)
    resp = service.query(dict(BBOX))
    assert resp["mode"] == "bbox"
    assert _ids(resp) == ["inside"]


def test_bbox_sorted_newest_first(service, footprints_table) -> None:
    _add(footprints_table, "old", -3.73, -38.52, age_ms=3 * DAY_MS)
    _add(footprints_table, "new", -3.731, -38.521, age_ms=1000)
    assert _ids(service.query({"mode": "bbox", **BBOX})) == ["new", "old"]


def test_overlapping_bounds_return_each_record_once(service, footprints_table, monkeypatch) -> None:
    fp = _add(footprints_table, "dup", *CENTER)
    gh = fp.geohash
    monkeypatch.setattr(
        fps, "geohash_query_bounds", lambda lat, lng, r: [(gh[:6], gh[:6] + "~"), (gh[:5], gh[:5] + "~")]
    )
    resp = service.query({"lat": CENTER[0], "lng": CENTER[1]})
    assert _ids(resp) == ["dup"]


def test_since_days_and_expiry_filter(service, footprints_table) -> None:
    _add(footprints_table, "recent", *_north_of(10), age_ms=2 * DAY_MS)
    _add(footprints_table, "older", *_north_of(20), age_ms=10 * DAY_MS)
    _add(footprints_table, "expired", *_north_of(30), expire_at=NOW_MS - 1)
    q = {"lat": CENTER[0], "lng": CENTER[1]}
    assert _ids(service.query({**q, "sinceDays": "7"})) == ["recent"]
    assert _ids(service.query(q)) == ["recent", "older"]


def test_limit_truncates(service, footprints_table) -> None:
    for i in range(5):
        _add(footprints_table, f"p{i}", *_north_of(100 + i * 10))
    resp = service.query({"lat": CENTER[0], "lng": CENTER[1], "limit": "2"})
    assert resp["count"] == 2
    ids = _ids(resp)
    assert ids == sorted(ids)
    assert set(ids) <= {f"p{i}" for i in range(5)}


def test_item_shape_and_tooltip(service, footprints_table) -> None:
    _add(footprints_table, "f1", *CENTER, radius_m=1500, endereco="Rua A, 10", cidade="Fortaleza", uf="CE")
    item = service.query({"lat": CENTER[0], "lng": CENTER[1]})["items"][0]
    assert set(item) == {"id", "lat", "lng", "radius_m", "kind", "alertId", "userId", "createdAt", "tooltip"}
    assert item["alertId"] == "alert-f1"
    assert item["createdAt"] == NOW_MS - 60_000
    assert item["tooltip"] == {
        "title": "publicIncident",
        "subtitle": "Rua A, 10 - Fortaleza/CE",
        "meta": {"alertId": "alert-f1", "userId": "u1", "radiusText": "1.5 km"},
    }


def test_tooltip_title_prefers_category(service, footprints_table) -> None:
    _add(footprints_table, "f1", *CENTER, category="Incêndio")
    item = service.query({"lat": CENTER[0], "lng": CENTER[1]})["items"][0]
    assert item["kind"] == "publicIncident"
    assert item["tooltip"]["title"] == "Incêndio"


@pytest.mark.parametrize(
    "doc, subtitle",
    [
        ({"endereco": "Rua A", "cidade": "Fortaleza", "uf": "CE"}, "Rua A - Fortaleza/CE"),
        ({"cidade": "Fortaleza", "uf": "CE"}, "Fortaleza/CE"),
        ({"cidade": "Fortaleza"}, "Fortaleza"),
        ({"uf": "CE"}, "/CE"),
        ({}, "sua região"),
    ],
)
def test_subtitle_fallbacks(doc, subtitle) -> None:
    assert fps.build_subtitle(doc) == subtitle


def test_api_key_check() -> None:
    open_service = FootprintService(None, api_key="")
    assert open_service.check_api_key(None) is True
    locked = FootprintService(None, api_key="s3cret")
    assert locked.check_api_key("s3cret") is True
    assert locked.check_api_key("wrong") is False
    assert locked.check_api_key(None) is False
    assert locked.check_api_key("ção") is False


@pytest.mark.parametrize(
    "params",
    [
        {"mode": "bbox", "north": "-3.74", "south": "-3.72", "east": "-38.51", "west": "-38.53"},
        {"mode": "bbox", "north": "-3.72", "south": "-3.74", "east": "-38.53", "west": "-38.51"},
        {"mode": "bbox", "north": "abc", "south": "-3.74", "east": "-38.51", "west": "-38.53"},
        {"mode": "bbox"},
        {"lat": "abc", "lng": "-38.5"},
        {},
    ],
)
def test_bad_params_raise(service, params) -> None:
    with pytest.raises(QueryParamError):
        service.query(params)


def test_timeout_raises() -> None:
    class SlowTable:
        def query(self, **kwargs):
            time.sleep(1.0)
            return {"Items": []}

    service = FootprintService(SlowTable(), timeout_s=0.05, clock=lambda: NOW_S)
    started = time.monotonic()
    with pytest.raises(QueryTimeoutError):
        service.query({"lat": CENTER[0], "lng": CENTER[1]})
    assert time.monotonic() - started < 0.9


def test_resolve_since_clamps() -> None:
    assert fps.resolve_since_ms({}, NOW_MS) == NOW_MS - 90 * DAY_MS
    assert fps.resolve_since_ms({"sinceDays": "0"}, NOW_MS) == NOW_MS - DAY_MS
    assert fps.resolve_since_ms({"sinceDays": "500"}, NOW_MS) == NOW_MS - 90 * DAY_MS
    assert fps.resolve_since_ms({"sinceDays": "abc"}, NOW_MS) == NOW_MS - 90 * DAY_MS
    assert fps.resolve_since_ms({"since": "2000-01-01"}, NOW_MS) == NOW_MS - 90 * DAY_MS
    assert fps.resolve_since_ms({"since": "2025-03-09T00:00:00Z"}, NOW_MS) == 1_741_478_400_000


@pytest.mark.parametrize("raw, limit", [(None, 2000), ("abc", 2000), ("0", 1), ("50000", 10000), ("15", 15)])
def test_parse_limit(raw, limit) -> None:
    assert fps.parse_limit(raw) == limit


def test_partition_ranges() -> None:
    assert fps.partition_ranges([("6vb", "6vc"), ("6vb", "6vc")]) == [("6", "6vb", "6vc")]
    assert fps.partition_ranges([("6", "8")]) == [("6", "6", "6~"), ("7", "7", "7~")]
    tail = fps.partition_ranges([("w", "~")])
    assert [p[0] for p in tail] == ["w", "x", "y", "z"]
