"""Geodesy helpers: distance, bearing, interpolation and compass buckets."""
from __future__ import annotations

from math import atan2, cos, degrees, pi, radians, sin, sqrt
from typing import List, Sequence

from wanderer.core.models import Coordinate

EARTH_RADIUS_M = 6_371_000.0

COMPASS_DIRECTIONS = (
    "north", "northeast", "east", "southeast",
    "south", "southwest", "west", "northwest",
)


def distance(a: Coordinate, b: Coordinate) -> float:
    """Great-circle distance in metres between two WGS-84 points."""
    lat1r, lon1r, lat2r, lon2r = map(radians, [a.latitude, a.longitude, b.latitude, b.longitude])
    dlat = lat2r - lat1r
    dlon = lon2r - lon1r
    h = sin(dlat / 2) ** 2 + cos(lat1r) * cos(lat2r) * sin(dlon / 2) ** 2
    return EARTH_RADIUS_M * 2 * atan2(sqrt(h), sqrt(1 - h))


def bearing(a: Coordinate, b: Coordinate) -> float:
    """Initial bearing (degrees clockwise from true north, in [0, 360))."""
    lat1r, lon1r, lat2r, lon2r = map(radians, [a.latitude, a.longitude, b.latitude, b.longitude])
    dlon = lon2r - lon1r
    x = sin(dlon) * cos(lat2r)
    y = cos(lat1r) * sin(lat2r) - sin(lat1r) * cos(lat2r) * cos(dlon)
    brg = (degrees(atan2(x, y)) + 360.0) % 360.0
    # (-tiny + 360) % 360 can round to exactly 360.0
    return 0.0 if brg >= 360.0 else brg


def interpolate(a: Coordinate, b: Coordinate, ratio: float) -> Coordinate:
    """Linear interpolation in degree space (fine at pedestrian scale)."""
    return Coordinate(
        latitude=a.latitude + ratio * (b.latitude - a.latitude),
        longitude=a.longitude + ratio * (b.longitude - a.longitude),
    )


def curve_offset(ratio: float, amplitude_deg: float = 0.0001) -> float:
    """Sinusoidal bulge used to keep synthetic paths from being ruler-straight."""
    return sin(ratio * pi) * amplitude_deg


def compass_sector(bearing_deg: float) -> str:
    """Bucket a bearing into one of 8 sectors centred on each direction."""
    idx = int(((bearing_deg % 360.0) + 22.5) // 45.0) % 8
    return COMPASS_DIRECTIONS[idx]


def cumulative_distances(coords: Sequence[Coordinate]) -> List[float]:
    """[0, d(0,1), d(0,1)+d(1,2), ...]"""
    cum = [0.0]
    for i in range(1, len(coords)):
        cum.append(cum[-1] + distance(coords[i - 1], coords[i]))
    return cum


def path_length(coords: Sequence[Coordinate]) -> float:
    return cumulative_distances(coords)[-1] if coords else 0.0

