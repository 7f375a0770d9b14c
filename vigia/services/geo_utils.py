# vigia/services/geo_utils.py
"""
Geometry helpers for footprint retrieval.

Geohash bounds follow the usual Firebase geo-query scheme: sample the
circle's bounding box at 9 points, hash each at the precision the radius
allows, and turn each hash into a [start, end] string range. A circle needs
several disjoint ranges; the union over-approximates it, so callers always
post-filter by true distance.
"""
from __future__ import annotations

import math
from typing import List, Tuple

import pygeohash

BASE32 = "0123456789bcdefghjkmnpqrstuvwxyz"
BITS_PER_CHAR = 5
MAX_BITS = 22 * BITS_PER_CHAR
FOOTPRINT_PRECISION = 10

EARTH_RADIUS_M = 6371000.0
EARTH_MERI_CIRCUMFERENCE_M = 40007860.0
METERS_PER_DEGREE_LATITUDE = 110574.0
EARTH_EQ_RADIUS_M = 6378137.0
E2 = 0.00669447819799
EPSILON = 1e-12
# point-sized areas still get a finite, precision-10 query
MIN_QUERY_RADIUS_M = 1.0

GeohashRange = Tuple[str, str]


# ---------------- Distance ----------------
def haversine_m(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    dphi = math.radians(lat2 - lat1)
    dl = math.radians(lon2 - lon1)
    a = math.sin(dphi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(dl / 2) ** 2
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_M * c


def fmt_dist(meters: float) -> str:
    """1500 -> '1.5 km', 350 -> '350 m'."""
    if not math.isfinite(meters) or meters <= 0:
        return "0 m"
    if meters >= 1000:
        return f"{meters / 1000:.1f} km"
    return f"{int(round(meters))} m"


# ---------------- Geohash ----------------
def encode_geohash(lat: float, lng: float, precision: int = FOOTPRINT_PRECISION) -> str:
    return pygeohash.encode(lat, lng, precision=precision)


def wrap_longitude(lng: float) -> float:
    if -180 <= lng <= 180:
        return lng
    adjusted = lng + 180
    if adjusted > 0:
        return (adjusted % 360) - 180
    return 180 - (-adjusted % 360)


def meters_to_longitude_degrees(distance_m: float, lat: float) -> float:
    radians = math.radians(lat)
    num = math.cos(radians) * EARTH_EQ_RADIUS_M * math.pi / 180
    denom = 1 / math.sqrt(1 - E2 * math.sin(radians) * math.sin(radians))
    delta_deg = num * denom
    if delta_deg < EPSILON:
        return 360.0 if distance_m > 0 else 0.0
    return min(360.0, distance_m / delta_deg)


def _longitude_bits_for_resolution(resolution_m: float, lat: float) -> float:
    degs = meters_to_longitude_degrees(resolution_m, lat)
    return max(1.0, math.log2(360 / degs)) if abs(degs) > 0.000001 else 1.0


def _latitude_bits_for_resolution(resolution_m: float) -> float:
    if resolution_m <= 0:
        return MAX_BITS
    return min(math.log2(EARTH_MERI_CIRCUMFERENCE_M / 2 / resolution_m), MAX_BITS)


def _bounding_box_bits(lat: float, radius_m: float) -> int:
    lat_delta = radius_m / METERS_PER_DEGREE_LATITUDE
    lat_north = min(90.0, lat + lat_delta)
    lat_south = max(-90.0, lat - lat_delta)
    bits_lat = math.floor(_latitude_bits_for_resolution(radius_m)) * 2
    bits_lng_north = math.floor(_longitude_bits_for_resolution(radius_m, lat_north)) * 2 - 1
    bits_lng_south = math.floor(_longitude_bits_for_resolution(radius_m, lat_south)) * 2 - 1
    return int(min(bits_lat, bits_lng_north, bits_lng_south, MAX_BITS))


def _bounding_box_points(lat: float, lng: float, radius_m: float) -> List[Tuple[float, float]]:
    lat_deg = radius_m / METERS_PER_DEGREE_LATITUDE
    lat_north = min(90.0, lat + lat_deg)
    lat_south = max(-90.0, lat - lat_deg)
    lng_deg = max(
        meters_to_longitude_degrees(radius_m, lat_north),
        meters_to_longitude_degrees(radius_m, lat_south),
    )
    west = wrap_longitude(lng - lng_deg)
    east = wrap_longitude(lng + lng_deg)
    return [
        (lat, lng), (lat, west), (lat, east),
        (lat_north, lng), (lat_north, west), (lat_north, east),
        (lat_south, lng), (lat_south, west), (lat_south, east),
    ]


def _geohash_range(geohash: str, bits: int) -> GeohashRange:
    precision = math.ceil(bits / BITS_PER_CHAR)
    if len(geohash) < precision:
        return geohash, geohash + "~"
    ghash = geohash[:precision]
    base = ghash[:-1]
    last_value = BASE32.index(ghash[-1])
    significant_bits = bits - len(base) * BITS_PER_CHAR
    unused_bits = BITS_PER_CHAR - significant_bits
    start_value = (last_value >> unused_bits) << unused_bits
    end_value = start_value + (1 << unused_bits)
    if end_value > 31:
        return base + BASE32[start_value], base + "~"
    return base + BASE32[start_value], base + BASE32[end_value]


def geohash_query_bounds(lat: float, lng: float, radius_m: float) -> List[GeohashRange]:
    """Distinct [start, end] geohash ranges covering the circle."""
    radius_m = max(radius_m, MIN_QUERY_RADIUS_M)
    query_bits = max(1, _bounding_box_bits(lat, radius_m))
    precision = math.ceil(query_bits / BITS_PER_CHAR)
    ranges: List[GeohashRange] = []
    for p_lat, p_lng in _bounding_box_points(lat, lng, radius_m):
        rng = _geohash_range(encode_geohash(p_lat, p_lng, precision), query_bits)
        if rng not in ranges:
            ranges.append(rng)
    return ranges


def enclosing_circle(north: float, south: float, east: float, west: float) -> Tuple[float, float, float]:
    """(center_lat, center_lng, radius_m) of a circle covering the bbox."""
    c_lat = (north + south) / 2
    c_lng = (east + west) / 2
    radius = max(
        haversine_m(c_lat, c_lng, north, west),
        haversine_m(c_lat, c_lng, north, east),
        haversine_m(c_lat, c_lng, south, west),
        haversine_m(c_lat, c_lng, south, east),
    )
    return c_lat, c_lng, radius
