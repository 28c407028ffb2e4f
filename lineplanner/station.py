"""
station.py – best position for one more station along a route

The search never leaves the caller's route: candidates are its vertices plus
points sampled every ``sample_interval_m`` metres along each segment.  Only
candidates within the search radius of at least one centroid are scored.

Score = covered weight with the candidate added − covered weight without it.
Every covered centroid contributes its full weight under both methods, so
the gain is the weight of centroids the candidate brings into range that no
existing station reaches; the existing-station distance table is computed
once and shared by all candidates.
"""
from __future__ import annotations

import logging
import math
from typing import List, Optional, Sequence, Set

from .coverage import CoverageEngine, DEFAULT_COVERAGE_RADIUS_M, PreparedCentroids
from .errors import InputError
from .geometry import GeoPoint, densify
from .layers import Centroid
from .models import Method, OptimalStationResult, Routing, Station
from .streetgraph import StreetGraph

logger = logging.getLogger("lineplanner.station")

DEFAULT_SEARCH_RADIUS_M = 300.0
DEFAULT_SAMPLE_INTERVAL_M = 25.0
CANDIDATE_ID = "__candidate__"


class StationOptimizer:
    def __init__(
        self,
        streets: Optional[StreetGraph] = None,
        coverage_radius_m: float = DEFAULT_COVERAGE_RADIUS_M,
        search_radius_m: float = DEFAULT_SEARCH_RADIUS_M,
        sample_interval_m: float = DEFAULT_SAMPLE_INTERVAL_M,
    ):
        self.engine = CoverageEngine(streets, coverage_radius_m)
        self.search_radius_m = search_radius_m
        self.sample_interval_m = sample_interval_m

    def candidates(self, points: Sequence[GeoPoint], prepared: PreparedCentroids) -> List[int]:
        """Positions in the densified route worth scoring."""
        return [i for i, p in enumerate(points) if prepared.index.any_within(p, self.search_radius_m)]

    def find(
        self,
        route: Sequence[GeoPoint],
        centroids: Sequence[Centroid] | PreparedCentroids,
        stations: Sequence[Station] = (),
        method: Method = Method.RELATIVE,
        routing: Routing = Routing.NETWORK,
    ) -> OptimalStationResult:
        """
        Return the route point whose addition covers the most new weight.

        Ties go to the earliest route position.  When nothing improves
        coverage the earliest eligible candidate (or the route start) comes
        back with a gain of 0 instead of an error.
        """
        if not route:
            raise InputError("route must contain at least one point")
        if any(s.id == CANDIDATE_ID for s in stations):
            raise InputError(f"station id '{CANDIDATE_ID}' is reserved")
        self.engine.check_routing(routing)

        prepared = self.engine.prepare(centroids)
        points = densify(route, self.sample_interval_m)
        positions = self.candidates(points, prepared)

        baseline = self.engine.distance_table(stations, prepared, routing)
        already: Set[int] = set()
        for row in baseline:
            already.update(row)

        best_pos, best_gain = (positions[0] if positions else 0), 0.0
        for pos in positions:
            row = self.engine.distance_row(points[pos], prepared, routing)
            # fsum over sorted indices: same covered set, same score
            gain = math.fsum(prepared.centroids[i].weight for i in sorted(row) if i not in already)
            if gain > best_gain:
                best_pos, best_gain = pos, gain

        chosen = points[best_pos]
        with_candidate = list(stations) + [Station(CANDIDATE_ID, chosen)]
        table = baseline + [self.engine.distance_row(chosen, prepared, routing)]
        attracted = self.engine.allocate(with_candidate, prepared, table, method).weight_of(CANDIDATE_ID)

        logger.info(
            "find-station: %d/%d candidates scored, best #%d gains %.1f (attracts %.1f)",
            len(positions), len(points), best_pos, best_gain, attracted,
        )
        return OptimalStationResult(
            point=chosen,
            marginal_weight=best_gain,
            method=method,
            routing=routing,
            route_position=best_pos,
            attracted_weight=attracted,
            candidates_evaluated=len(positions),
        )


def find_optimal_station(
    route: Sequence[GeoPoint],
    centroids: Sequence[Centroid],
    stations: Sequence[Station],
    method: Method,
    routing: Routing,
    streets: Optional[StreetGraph] = None,
    search_radius_m: float = DEFAULT_SEARCH_RADIUS_M,
    coverage_radius_m: float = DEFAULT_COVERAGE_RADIUS_M,
) -> OptimalStationResult:
    """Functional wrapper around ``StationOptimizer.find``."""
    optimizer = StationOptimizer(streets, coverage_radius_m, search_radius_m)
    return optimizer.find(route, centroids, stations, method, routing)


__all__ = [
    "DEFAULT_SEARCH_RADIUS_M",
    "DEFAULT_SAMPLE_INTERVAL_M",
    "StationOptimizer",
    "find_optimal_station",
]
