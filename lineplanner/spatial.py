"""
spatial.py – nearest-neighbour helper shared by the street graph and the
coverage engine

Points are stored as 3-D positions on a sphere of mean Earth radius in a
``scipy.spatial.cKDTree``.  Chord length grows monotonically with
great-circle distance everywhere on the globe, so one tree serves points
spread over any latitude range.  The tree only shortlists candidates;
reported distances are always exact WGS-84 geodesics, and the sphere vs.
ellipsoid difference (< 0.6 %) is absorbed by a small search margin.
"""
from __future__ import annotations

import logging
import math
from typing import List, Optional, Sequence, Tuple

import numpy as np
from scipy.spatial import cKDTree

from .geometry import GeoPoint, distances_m

log = logging.getLogger("lineplanner.spatial")

_EARTH_RADIUS_M = 6_371_008.8
# shortlist radius is widened by this factor (+1 m) before the exact check
_MARGIN = 1.02
_NEAREST_K = 8


def _chord_m(arc_m: float) -> float:
    """Straight-through-the-sphere length of a great-circle arc."""
    half_angle = min(arc_m / (2.0 * _EARTH_RADIUS_M), math.pi / 2)
    return 2.0 * _EARTH_RADIUS_M * math.sin(half_angle)


class SpatialIndex:
    """Immutable KD-tree over a fixed sequence of GeoPoints."""

    def __init__(self, points: Sequence[GeoPoint]):
        self._lons = np.fromiter((p.lon for p in points), dtype=float, count=len(points))
        self._lats = np.fromiter((p.lat for p in points), dtype=float, count=len(points))
        self._tree: Optional[cKDTree] = cKDTree(self._project(self._lons, self._lats)) if len(points) else None

    def __len__(self) -> int:
        return len(self._lons)

    # ── projection ─────────────────────────────────────────────────────────
    @staticmethod
    def _project(lons, lats) -> np.ndarray:
        lon = np.radians(np.asarray(lons, dtype=float))
        lat = np.radians(np.asarray(lats, dtype=float))
        cos_lat = np.cos(lat)
        return _EARTH_RADIUS_M * np.column_stack([cos_lat * np.cos(lon), cos_lat * np.sin(lon), np.sin(lat)])

    # ── queries ────────────────────────────────────────────────────────────
    def nearest(self, point: GeoPoint) -> Optional[Tuple[int, float]]:
        """
        Index of the closest stored point and its geodesic distance.

        Returns None for an empty index.  Equal distances resolve to the
        lowest index.
        """
        if self._tree is None:
            return None
        k = min(_NEAREST_K, len(self))
        _, idx = self._tree.query(self._project([point.lon], [point.lat])[0], k=k)
        idx = np.atleast_1d(idx)
        dist = distances_m(point, self._lons[idx], self._lats[idx])
        best = min(range(len(idx)), key=lambda i: (dist[i], idx[i]))
        return int(idx[best]), float(dist[best])

    def within(self, point: GeoPoint, radius_m: float) -> List[Tuple[int, float]]:
        """All ``(index, distance)`` pairs with distance ≤ radius, by index."""
        if self._tree is None or radius_m < 0:
            return []
        centre = self._project([point.lon], [point.lat])[0]
        idx = self._tree.query_ball_point(centre, r=_chord_m(radius_m * _MARGIN + 1.0))
        if not idx:
            return []
        idx = np.asarray(sorted(idx), dtype=int)
        dist = distances_m(point, self._lons[idx], self._lats[idx])
        keep = dist <= radius_m
        return [(int(i), float(d)) for i, d in zip(idx[keep], dist[keep])]

    def any_within(self, point: GeoPoint, radius_m: float) -> bool:
        return bool(self.within(point, radius_m))


__all__ = ["SpatialIndex"]
