from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from vigia.services import buckets


def _utc(h: int, m: int) -> datetime:
    return datetime(2025, 3, 10, h, m, tzinfo=timezone.utc)


def test_hourly_time_key_floors_to_the_hour() -> None:
    assert buckets.time_bucket_key(_utc(12, 0)) == "2025031012"
    assert buckets.time_bucket_key(_utc(12, 59)) == "2025031012"


def test_reports_straddling_the_hour_land_in_different_buckets() -> None:
    assert buckets.time_bucket_key(_utc(12, 59)) != buckets.time_bucket_key(_utc(13, 1))


def test_sub_hour_window_appends_minutes() -> None:
    assert buckets.time_bucket_key(_utc(12, 59), window_min=15) == "202503101245"
    assert buckets.time_bucket_key(_utc(12, 14), window_min=15) == "202503101200"


def test_time_key_is_computed_in_utc() -> None:
    fortaleza = timezone(timedelta(hours=-3))
    local = datetime(2025, 3, 10, 9, 30, tzinfo=fortaleza)
    assert buckets.time_bucket_key(local) == "2025031012"
    # naive datetimes are read as UTC
    assert buckets.time_bucket_key(datetime(2025, 3, 10, 12, 30)) == "2025031012"


def test_nearby_points_share_a_cell() -> None:
    a = buckets.spatial_bucket_key(-3.7305, -38.5218)
    b = buckets.spatial_bucket_key(-3.7308, -38.5220)
    assert a == b


def test_points_far_apart_get_different_cells() -> None:
    # ~1.5 km north
    a = buckets.spatial_bucket_key(-3.7305, -38.5218)
    b = buckets.spatial_bucket_key(-3.7305 + 0.0136, -38.5218)
    assert a != b
    # ~1.5 km east
    c = buckets.spatial_bucket_key(-3.7305, -38.5218 + 0.0136)
    assert a != c


def test_cell_key_format() -> None:
    key = buckets.spatial_bucket_key(-3.7305, -38.5218)
    lat_idx, lng_idx = key.split("_")
    assert int(lat_idx) < 0 and int(lng_idx) < 0


def test_longitude_step_widens_with_latitude() -> None:
    d_lat0, d_lng0 = buckets.grid_deltas(0.0)
    d_lat60, d_lng60 = buckets.grid_deltas(60.0)
    assert d_lat0 == pytest.approx(1 / 110.574)
    assert d_lng0 == pytest.approx(d_lat0)
    assert d_lat60 == pytest.approx(d_lat0)
    assert d_lng60 == pytest.approx(2 * d_lat60, rel=1e-6)


def test_group_id_joins_time_and_cell() -> None:
    gid = buckets.build_group_id(-3.7305, -38.5218, _utc(10, 5))
    time_key, cell = gid.split("__")
    assert time_key == "2025031010"
    assert cell == buckets.spatial_bucket_key(-3.7305, -38.5218)
