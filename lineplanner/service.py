"""
service.py – request-level operations on the shared snapshot

Each public function takes a raw payload (already JSON-decoded), validates
it, runs the computation against one immutable ``Snapshot`` and returns
plain JSON-able data.  The transport layer in front of this module is not
part of the package.
"""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

from .config import Settings
from .coverage import CoverageEngine, PreparedCentroids
from .errors import InputError
from .ingest import build_preprocessed, find_extract, layers_from_centroids, load_layer_file
from .layers import LayerSet
from .models import (
    CoverageMap,
    FindStationRequest,
    OptimalStationResult,
    Routing,
    StationInfoRequest,
    parse_request,
)
from .persistence import cache_path, load_layers, load_or_build, save_layers
from .state import AppState, Snapshot
from .station import StationOptimizer

logger = logging.getLogger("lineplanner.service")


# ────────────────────────────────────────────────────────────────────────────
# serialisation
# ────────────────────────────────────────────────────────────────────────────
def coverage_to_dict(cov: CoverageMap, with_centroids: bool = False) -> Dict[str, Any]:
    out: Dict[str, Any] = {}
    for sid, sc in cov.stations.items():
        entry: Dict[str, Any] = {"weight": sc.weight}
        if with_centroids:
            entry["centroids"] = [
                {"id": a.centroid.id, "share": a.share, "distance_m": a.distance_m}
                for a in sc.centroids
            ]
        out[sid] = entry
    return out


def result_to_dict(res: OptimalStationResult) -> Dict[str, Any]:
    return {
        "location": {"lon": res.point.lon, "lat": res.point.lat},
        "marginal_weight": res.marginal_weight,
        "attracted_weight": res.attracted_weight,
        "route_position": res.route_position,
        "candidates_evaluated": res.candidates_evaluated,
        "method": res.method.value,
        "routing": res.routing.value,
    }


# ────────────────────────────────────────────────────────────────────────────
# operations
# ────────────────────────────────────────────────────────────────────────────
def station_info(
    payload: Mapping[str, Any],
    snapshot: Snapshot,
    settings: Settings,
    with_centroids: bool = False,
) -> Dict[str, Dict[str, Any]]:
    """Per-category coverage of the requested stations."""
    req = parse_request(StationInfoRequest, payload)
    stations = [s.to_station() for s in req.stations]
    method = req.method or settings.default_method
    routing = req.routing or settings.default_routing

    engine = CoverageEngine(snapshot.streets, settings.coverage_radius_m)
    by_category = engine.coverage_by_category(stations, snapshot.layers, method, routing)
    return {cat: coverage_to_dict(cov, with_centroids) for cat, cov in by_category.items()}


def find_station(
    payload: Mapping[str, Any],
    snapshot: Snapshot,
    settings: Settings,
) -> Dict[str, Any]:
    """Best new station position on the requested route."""
    req = parse_request(FindStationRequest, payload)
    optimizer = StationOptimizer(
        snapshot.streets,
        coverage_radius_m=settings.coverage_radius_m,
        search_radius_m=settings.search_radius_m,
        sample_interval_m=settings.sample_interval_m,
    )
    result = optimizer.find(
        req.route_points(),
        PreparedCentroids(snapshot.layers.all_centroids(), snapshot.streets),
        [s.to_station() for s in req.stations],
        req.method or settings.default_method,
        req.routing or settings.default_routing,
    )
    return result_to_dict(result)


def coverage_info(
    payload: Mapping[str, Any],
    routing: str,
    snapshot: Snapshot,
    settings: Settings,
) -> List[Dict[str, Any]]:
    """Nearest serving station for every centroid of every layer."""
    req = parse_request(StationInfoRequest, payload)
    try:
        routing_ = Routing(routing)
    except ValueError as exc:
        raise InputError(f"unknown routing '{routing}'") from exc

    engine = CoverageEngine(snapshot.streets, settings.coverage_radius_m)
    rows = engine.coverage_info([s.to_station() for s in req.stations],
                                snapshot.layers.all_centroids(), routing_)
    return [
        {
            "id": r.centroid.id,
            "category": r.centroid.category,
            "weight": r.centroid.weight,
            "station": r.station_id,
            "distance_m": r.distance_m,
        }
        for r in rows
    ]


# ────────────────────────────────────────────────────────────────────────────
# startup & layer management
# ────────────────────────────────────────────────────────────────────────────
def bootstrap(settings: Settings, extract: Optional[Path] = None) -> AppState:
    """
    Load (or build and cache) the street graph for the extract in
    ``settings.data_dir`` plus the cached layers, and return a ready AppState.
    """
    source = Path(extract) if extract is not None else find_extract(settings.data_dir)
    key, data = load_or_build(source, settings.cache_dir, build_preprocessed)

    layers = load_layers(settings.cache_dir)
    if layers is None:
        layers = layers_from_centroids(data.buildings, key) if data.buildings else LayerSet()
        logger.info("No cached layers – starting from %d building centroids", len(data.buildings))

    snapshot = Snapshot(data.streets, layers, key, data.buildings)
    logger.info("Map data ready: %s (%s)", key, cache_path(settings.cache_dir, key).name)
    return AppState(snapshot, max_workers=settings.workers)


def add_layer_file(state: AppState, path: Path | str, settings: Settings,
                   area_id: Optional[str] = None) -> Dict[str, Dict[str, float]]:
    """Merge a centroid file into the live layers and persist the result."""
    incoming = load_layer_file(path, area_id)
    snap = state.update_layers(lambda current: current.merge(incoming))
    save_layers(snap.layers, settings.cache_dir)
    return snap.layers.summary()


__all__ = [
    "coverage_to_dict",
    "result_to_dict",
    "station_info",
    "find_station",
    "coverage_info",
    "bootstrap",
    "add_layer_file",
]
