"""
coverage.py – population served by a set of stations              v1·0
────────────────────────────────────────────────────────────────────
Two independent choices per request:

* Routing – straight-line geodesic or walking distance on the street graph
* Method  – ABSOLUTE (all weight to the nearest in-range station) or
            RELATIVE (weight split by inverse distance)

Both are dispatched once per request: the routing picks the distance-table
builder, the method picks the allocator.  A centroid further than the
coverage radius from every station is left out of the result.

Network routing runs exactly one bounded Dijkstra expansion per station and
reads every centroid distance off it.
"""
from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from .errors import EmptyGraphError, InputError
from .geometry import GeoPoint
from .layers import Centroid, LayerSet
from .models import CoverageMap, Method, Routing, Station, StationCoverage
from .spatial import SpatialIndex
from .streetgraph import StreetGraph

log = logging.getLogger("lineplanner.coverage")

DEFAULT_COVERAGE_RADIUS_M = 500.0
_ZERO = 1e-9

# station index → {centroid index: distance_m}
DistanceRow = Dict[int, float]


# ────────────────────────────────────────────────────────────────────────────
# Prepared centroid set
# ────────────────────────────────────────────────────────────────────────────
class PreparedCentroids:
    """Centroids plus the lookup structures every distance builder needs."""

    def __init__(self, centroids: Sequence[Centroid], streets: Optional[StreetGraph] = None):
        self.centroids: Tuple[Centroid, ...] = tuple(centroids)
        self.index = SpatialIndex([c.point for c in self.centroids])
        self._by_node: Optional[Dict[int, List[Tuple[int, float]]]] = None
        self._streets = streets

    def __len__(self) -> int:
        return len(self.centroids)

    def by_node(self) -> Dict[int, List[Tuple[int, float]]]:
        """Snapped node → [(centroid index, snap distance)], computed once."""
        if self._by_node is None:
            grouped: Dict[int, List[Tuple[int, float]]] = defaultdict(list)
            if self._streets is not None:
                for i, c in enumerate(self.centroids):
                    snapped = self._streets.nearest_node(c.point)
                    if snapped is not None:
                        grouped[snapped[0]].append((i, snapped[1]))
            self._by_node = dict(grouped)
        return self._by_node


@dataclass(frozen=True)
class CentroidCoverage:
    centroid: Centroid
    station_id: Optional[str]
    distance_m: Optional[float]


# ────────────────────────────────────────────────────────────────────────────
# Allocators
# ────────────────────────────────────────────────────────────────────────────
def _allocate_absolute(weight: float, in_range: List[Tuple[int, float]]) -> List[Tuple[int, float]]:
    s, _ = min(in_range, key=lambda sd: (sd[1], sd[0]))
    return [(s, weight)]


def _allocate_relative(weight: float, in_range: List[Tuple[int, float]]) -> List[Tuple[int, float]]:
    at_station = [s for s, d in in_range if d <= _ZERO]
    if at_station:
        share = weight / len(at_station)
        shares = [(s, share) for s in at_station]
    else:
        inv = [(s, 1.0 / d) for s, d in in_range]
        total = sum(v for _, v in inv)
        shares = [(s, weight * v / total) for s, v in inv]
    # last share absorbs rounding so the parts add up to the weight
    head = shares[:-1]
    return head + [(shares[-1][0], weight - sum(v for _, v in head))]


_ALLOCATORS: Dict[Method, Callable[[float, List[Tuple[int, float]]], List[Tuple[int, float]]]] = {
    Method.ABSOLUTE: _allocate_absolute,
    Method.RELATIVE: _allocate_relative,
}


# ────────────────────────────────────────────────────────────────────────────
# Engine
# ────────────────────────────────────────────────────────────────────────────
class CoverageEngine:
    """Computes per-station coverage against one street graph snapshot."""

    def __init__(self, streets: Optional[StreetGraph] = None, radius_m: float = DEFAULT_COVERAGE_RADIUS_M):
        if radius_m < 0:
            raise InputError("coverage radius must be non-negative")
        self.streets = streets
        self.radius_m = radius_m

    def prepare(self, centroids: Sequence[Centroid] | PreparedCentroids) -> PreparedCentroids:
        if isinstance(centroids, PreparedCentroids):
            return centroids
        return PreparedCentroids(centroids, self.streets)

    def check_routing(self, routing: Routing) -> None:
        if routing is Routing.NETWORK and (self.streets is None or self.streets.is_empty()):
            raise EmptyGraphError("network routing requested but no street graph is loaded")

    # ── distance tables ────────────────────────────────────────────────────
    def distance_row(self, point: GeoPoint, prepared: PreparedCentroids, routing: Routing) -> DistanceRow:
        """Distances from one station position to every in-radius centroid."""
        self.check_routing(routing)
        if routing is Routing.STRAIGHT_LINE:
            return dict(prepared.index.within(point, self.radius_m))
        return self._network_row(point, prepared)

    def _network_row(self, point: GeoPoint, prepared: PreparedCentroids) -> DistanceRow:
        expansion = self.streets.distances_from(point, cutoff=self.radius_m)
        row: DistanceRow = {i: 0.0 for i, _ in prepared.index.within(point, 0.0)}
        by_node = prepared.by_node()
        for node in expansion.reached_nodes():
            for i, snap in by_node.get(node, ()):
                if i in row:
                    continue
                d = expansion.distance_to_node(node, snap)
                if d is not None and d <= self.radius_m:
                    row[i] = d
        return row

    def distance_table(
        self, stations: Sequence[Station], prepared: PreparedCentroids, routing: Routing
    ) -> List[DistanceRow]:
        return [self.distance_row(s.point, prepared, routing) for s in stations]

    # ── allocation ─────────────────────────────────────────────────────────
    @staticmethod
    def allocate(
        stations: Sequence[Station],
        prepared: PreparedCentroids,
        table: Sequence[DistanceRow],
        method: Method,
    ) -> CoverageMap:
        allocator = _ALLOCATORS[method]
        in_range: Dict[int, List[Tuple[int, float]]] = defaultdict(list)
        for s, row in enumerate(table):
            for i, d in row.items():
                in_range[i].append((s, d))

        result = CoverageMap()
        for i, c in enumerate(prepared.centroids):
            candidates = in_range.get(i)
            if not candidates:
                result.uncovered_weight += c.weight
                continue
            for s, share in allocator(c.weight, candidates):
                station = stations[s]
                sc = result.stations.get(station.id)
                if sc is None:
                    sc = result.stations[station.id] = StationCoverage(station)
                sc.attribute(c, share, table[s][i])
        return result

    # ── public API ─────────────────────────────────────────────────────────
    def coverage(
        self,
        stations: Sequence[Station],
        centroids: Sequence[Centroid] | PreparedCentroids,
        method: Method = Method.RELATIVE,
        routing: Routing = Routing.NETWORK,
    ) -> CoverageMap:
        if not stations:
            raise InputError("at least one station is required")
        prepared = self.prepare(centroids)
        table = self.distance_table(stations, prepared, routing)
        result = self.allocate(stations, prepared, table, method)
        log.debug(
            "coverage: %d stations, %d centroids → %.1f covered / %.1f uncovered (%s, %s)",
            len(stations), len(prepared), result.total_weight(), result.uncovered_weight,
            method.value, routing.value,
        )
        return result

    def coverage_by_category(
        self,
        stations: Sequence[Station],
        layers: LayerSet,
        method: Method = Method.RELATIVE,
        routing: Routing = Routing.NETWORK,
    ) -> Dict[str, CoverageMap]:
        out: Dict[str, CoverageMap] = {}
        for category in layers.categories():
            log.debug("calculating for layer type: %s", category)
            out[category] = self.coverage(stations, layers.centroids(category), method, routing)
        return out

    def coverage_info(
        self,
        stations: Sequence[Station],
        centroids: Sequence[Centroid] | PreparedCentroids,
        routing: Routing = Routing.NETWORK,
    ) -> List[CentroidCoverage]:
        """Per centroid: the nearest in-range station (lowest index on ties)."""
        if not stations:
            raise InputError("at least one station is required")
        prepared = self.prepare(centroids)
        table = self.distance_table(stations, prepared, routing)
        out: List[CentroidCoverage] = []
        for i, c in enumerate(prepared.centroids):
            best = min(
                ((d, s) for s, row in enumerate(table) if (d := row.get(i)) is not None),
                default=None,
            )
            if best is None:
                out.append(CentroidCoverage(c, None, None))
            else:
                out.append(CentroidCoverage(c, stations[best[1]].id, best[0]))
        return out


def coverage_for_stations(
    stations: Sequence[Station],
    centroids: Sequence[Centroid],
    method: Method,
    routing: Routing,
    streets: Optional[StreetGraph] = None,
    radius_m: float = DEFAULT_COVERAGE_RADIUS_M,
) -> CoverageMap:
    """One-shot helper around ``CoverageEngine.coverage``."""
    return CoverageEngine(streets, radius_m).coverage(stations, centroids, method, routing)


__all__ = [
    "DEFAULT_COVERAGE_RADIUS_M",
    "PreparedCentroids",
    "CentroidCoverage",
    "CoverageEngine",
    "coverage_for_stations",
]
