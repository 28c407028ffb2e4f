"""
geometry.py – GeoPoint value type and WGS-84 helpers

All distances are metres on the WGS-84 ellipsoid (pyproj ``Geod``).
Coordinates are always (lon, lat) in that order, like GeoJSON.
"""
from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Iterable, List, Sequence, Tuple

import numpy as np
from pyproj import Geod

from .errors import InputError

_GEOD = Geod(ellps="WGS84")                    # thread-safe geodesic helper


@dataclass(frozen=True, order=True)
class GeoPoint:
    lon: float
    lat: float

    def __post_init__(self):
        if not (math.isfinite(self.lon) and math.isfinite(self.lat)):
            raise InputError(f"non-finite coordinate ({self.lon}, {self.lat})")
        if not -180.0 <= self.lon <= 180.0:
            raise InputError(f"longitude {self.lon} out of range")
        if not -90.0 <= self.lat <= 90.0:
            raise InputError(f"latitude {self.lat} out of range")

    @classmethod
    def from_lonlat(cls, xy: Sequence[float]) -> "GeoPoint":
        if len(xy) < 2:
            raise InputError(f"expected (lon, lat), got {xy!r}")
        return cls(float(xy[0]), float(xy[1]))

    def as_tuple(self) -> Tuple[float, float]:
        return (self.lon, self.lat)

    def distance_to(self, other: "GeoPoint") -> float:
        return distance_m(self, other)


def distance_m(a: GeoPoint, b: GeoPoint) -> float:
    """Geodesic distance between two points in metres."""
    if a == b:
        return 0.0
    _, _, dist = _GEOD.inv(a.lon, a.lat, b.lon, b.lat)
    return abs(dist)


def distances_m(origin: GeoPoint, lons: np.ndarray, lats: np.ndarray) -> np.ndarray:
    """Vectorised geodesic distance from ``origin`` to many points."""
    if len(lons) == 0:
        return np.zeros(0, dtype=float)
    lon0 = np.full(len(lons), origin.lon)
    lat0 = np.full(len(lats), origin.lat)
    _, _, dist = _GEOD.inv(lon0, lat0, np.asarray(lons, float), np.asarray(lats, float))
    return np.abs(np.asarray(dist, dtype=float))


def line_length_m(points: Sequence[GeoPoint]) -> float:
    """Summed segment length of a polyline; 0 for fewer than two points."""
    if len(points) < 2:
        return 0.0
    return sum(distance_m(p, q) for p, q in zip(points, points[1:]))


def densify(route: Sequence[GeoPoint], interval_m: float) -> List[GeoPoint]:
    """
    Return the route's vertices plus intermediate points every ``interval_m``
    metres along each segment, in route order.

    Intermediate points follow the great circle between the two vertices, so
    every returned point lies on the route.
    """
    if interval_m <= 0:
        raise InputError("sampling interval must be positive")
    if not route:
        return []

    out: List[GeoPoint] = [route[0]]
    for a, b in zip(route, route[1:]):
        seg = distance_m(a, b)
        n_inner = int(math.ceil(seg / interval_m - 1e-9)) - 1 if seg > 0 else 0
        if n_inner > 0:
            for lon, lat in _GEOD.npts(a.lon, a.lat, b.lon, b.lat, n_inner):
                out.append(GeoPoint(lon, lat))
        if b != out[-1]:
            out.append(b)
    return out


def bounds(points: Iterable[GeoPoint]) -> Tuple[float, float, float, float] | None:
    """(min_lon, min_lat, max_lon, max_lat) or None for an empty iterable."""
    pts = list(points)
    if not pts:
        return None
    lons = [p.lon for p in pts]
    lats = [p.lat for p in pts]
    return (min(lons), min(lats), max(lons), max(lats))


__all__ = ["GeoPoint", "distance_m", "distances_m", "line_length_m", "densify", "bounds"]
