"""Blockbrief Backend - Geometry helpers (distance, bbox, WKT reprojection)"""

import math
import re
import logging
from functools import lru_cache

import numpy as np
from pyproj import CRS, Transformer

from config import EPSG_2263

logger = logging.getLogger("blockbrief.geo")

EARTH_RADIUS_M = 6_371_000
WGS84_SEMI_MAJOR_M = 6_378_137
METERS_PER_DEGREE_LAT = 111_320

_LINESTRING_RE = re.compile(r"^LINESTRING\s*\((.*)\)$", re.I | re.S)


@lru_cache(maxsize=1)
def _state_plane_transformer() -> Transformer:
    return Transformer.from_crs(CRS.from_proj4(EPSG_2263), CRS.from_epsg(4326), always_xy=True)


def haversine_meters(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    dlat = math.radians(lat2 - lat1)
    dlon = math.radians(lon2 - lon1)
    a = (math.sin(dlat / 2) ** 2
         + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(dlon / 2) ** 2)
    return EARTH_RADIUS_M * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def bbox_for_radius(lat: float, lon: float, radius_m: float) -> dict[str, float]:
    """Generous lat/lon rectangle around a radius. Re-filter by true distance afterwards."""
    lat_delta = radius_m / METERS_PER_DEGREE_LAT
    lon_delta = radius_m / (METERS_PER_DEGREE_LAT * math.cos(math.radians(lat)))
    return {
        "min_lat": lat - lat_delta,
        "max_lat": lat + lat_delta,
        "min_lon": lon - lon_delta,
        "max_lon": lon + lon_delta,
    }


def to_block_key(lat: float, lon: float, bbl: str | None = None) -> str:
    if bbl:
        return f"bbl:{bbl}"
    return f"grid:{lat:.5f}:{lon:.5f}"


def to_point_wkt(lon: float, lat: float) -> str:
    return f"POINT ({lon} {lat})"


def parse_wkt_linestring(wkt: str | None) -> list[list[float]]:
    """Parse a state-plane LINESTRING into [[lat, lon], ...]. Returns [] on bad input."""
    if not wkt:
        return []
    match = _LINESTRING_RE.match(wkt.strip())
    if not match:
        return []

    xs, ys = [], []
    for pair in match.group(1).split(","):
        parts = pair.split()
        if len(parts) < 2:
            continue
        try:
            x, y = float(parts[0]), float(parts[1])
        except ValueError:
            continue
        if math.isfinite(x) and math.isfinite(y):
            xs.append(x)
            ys.append(y)

    if not xs:
        return []

    try:
        lons, lats = _state_plane_transformer().transform(xs, ys)
    except Exception as e:
        logger.debug(f"WKT reprojection failed: {e}")
        return []

    return [
        [float(la), float(lo)]
        for lo, la in zip(np.atleast_1d(lons), np.atleast_1d(lats))
        if math.isfinite(la) and math.isfinite(lo)
    ]


def distance_point_to_line_meters(lat: float, lon: float, line: list[list[float]]) -> float:
    """Minimum distance in meters from a point to a polyline of [lat, lon] vertices.

    Uses an equirectangular projection centred on the query latitude, which is
    accurate at block scale.
    """
    if not line:
        return math.inf
    if len(line) == 1:
        return haversine_meters(lat, lon, line[0][0], line[0][1])

    coords = np.radians(np.asarray(line, dtype=np.float64))
    scale = WGS84_SEMI_MAJOR_M * math.cos(math.radians(lat))
    xs = coords[:, 1] * scale
    ys = coords[:, 0] * WGS84_SEMI_MAJOR_M
    px = math.radians(lon) * scale
    py = math.radians(lat) * WGS84_SEMI_MAJOR_M

    ax, ay = xs[:-1], ys[:-1]
    dx, dy = xs[1:] - ax, ys[1:] - ay
    seg_len_sq = dx * dx + dy * dy
    with np.errstate(divide="ignore", invalid="ignore"):
        t = np.where(seg_len_sq > 0, ((px - ax) * dx + (py - ay) * dy) / seg_len_sq, 0.0)
    t = np.clip(t, 0.0, 1.0)
    dist = np.hypot(px - (ax + t * dx), py - (ay + t * dy))
    return float(dist.min())
