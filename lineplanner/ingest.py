"""
ingest.py – raw map data → Ways and centroid Layers

Accepted inputs
---------------
* Overpass JSON (``out geom``) – ways and relation members with geometry
* GeoJSON / any file GeoPandas reads – LineStrings with a ``highway``
  property for roads, Points (or polygons, reduced to a representative point)
  with ``weight``/``population`` and ``category`` properties for centroids
"""
from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional

import geopandas as gpd
import pandas as pd
from shapely.geometry import LineString, MultiLineString

from .errors import EmptyGraphError
from .geometry import GeoPoint
from .layers import Centroid, Layer, LayerSet
from .persistence import PreprocessedData
from .streetgraph import StreetGraph, Way

logger = logging.getLogger("lineplanner.ingest")

EXTRACT_SUFFIXES = (".json", ".geojson", ".gpkg")
_WEIGHT_COLUMNS = ("weight", "population", "inhabitants", "pop")


# ────────────────────────────────────────────────────────────────────────────
# Overpass
# ────────────────────────────────────────────────────────────────────────────
def _geometry_points(raw: Iterable[Mapping[str, Any]]) -> tuple:
    return tuple(GeoPoint(float(p["lon"]), float(p["lat"])) for p in raw if p)


def ways_from_overpass(payload: Mapping[str, Any]) -> List[Way]:
    """Ways (and way members of relations) that carry inline geometry."""
    ways: List[Way] = []
    bad = 0
    for el in payload.get("elements", []):
        tags = el.get("tags") or {}
        try:
            if el.get("type") == "way" and el.get("geometry"):
                ways.append(Way(int(el["id"]), _geometry_points(el["geometry"]), tags))
            elif el.get("type") == "relation":
                for m in el.get("members") or []:
                    if m.get("type") == "way" and m.get("geometry"):
                        ways.append(Way(int(m["ref"]), _geometry_points(m["geometry"]), tags))
        except (KeyError, TypeError, ValueError):
            bad += 1
    if bad:
        logger.warning("Skipped %d malformed Overpass elements", bad)
    return ways


# ────────────────────────────────────────────────────────────────────────────
# GeoPandas sources
# ────────────────────────────────────────────────────────────────────────────
def _to_wgs84(gdf: gpd.GeoDataFrame) -> gpd.GeoDataFrame:
    if gdf.crs is not None and gdf.crs.to_epsg() != 4326:
        return gdf.to_crs(4326)
    return gdf


def _lines(geom) -> Iterator[LineString]:
    if isinstance(geom, LineString):
        yield geom
    elif isinstance(geom, MultiLineString):
        yield from geom.geoms


def ways_from_frame(gdf: gpd.GeoDataFrame) -> List[Way]:
    gdf = _to_wgs84(gdf)
    if "highway" not in gdf.columns:
        return []
    ways: List[Way] = []
    for i, row in enumerate(gdf.itertuples(index=False)):
        highway = getattr(row, "highway")
        if highway is None or (isinstance(highway, float) and pd.isna(highway)):
            continue
        way_id = getattr(row, "id", i)
        for line in _lines(row.geometry):
            coords = tuple(GeoPoint(float(x), float(y)) for x, y, *_ in line.coords)
            ways.append(Way(int(way_id) if str(way_id).isdigit() else i, coords, {"highway": str(highway)}))
    return ways


def _weight(row: Mapping[str, Any]) -> Optional[float]:
    for col in _WEIGHT_COLUMNS:
        v = row.get(col)
        if v is not None and not pd.isna(v):
            return float(v)
    return None


def centroids_from_frame(
    gdf: gpd.GeoDataFrame,
    default_category: str = "residential",
) -> List[Centroid]:
    """Weighted centroids from point (or polygon) features; unweighted rows are dropped."""
    gdf = _to_wgs84(gdf)
    out: List[Centroid] = []
    dropped = 0
    for i, row in enumerate(gdf.to_dict(orient="records")):
        geom = row.get("geometry")
        w = _weight(row)
        if geom is None or geom.is_empty or w is None or w < 0:
            dropped += 1
            continue
        pt = geom if geom.geom_type == "Point" else geom.representative_point()
        category = row.get("category")
        if category is None or (isinstance(category, float) and pd.isna(category)):
            category = default_category
        cid = row.get("id")
        cid = str(i) if cid is None or (isinstance(cid, float) and pd.isna(cid)) else str(cid)
        try:
            out.append(Centroid(cid, GeoPoint(float(pt.x), float(pt.y)), w, str(category)))
        except ValueError:
            dropped += 1
    if dropped:
        logger.warning("Dropped %d features without usable geometry/weight", dropped)
    return out


def layers_from_centroids(centroids: Iterable[Centroid], area_id: str) -> LayerSet:
    grouped: Dict[str, List[Centroid]] = {}
    for c in centroids:
        grouped.setdefault(c.category, []).append(c)
    return LayerSet.from_layers(Layer(cat, area_id, tuple(cs)) for cat, cs in grouped.items())


# ────────────────────────────────────────────────────────────────────────────
# whole-extract helpers
# ────────────────────────────────────────────────────────────────────────────
def find_extract(data_dir: Path | str) -> Path:
    """First map extract in ``data_dir`` (sorted by name)."""
    data_dir = Path(data_dir)
    files = sorted(p for p in data_dir.glob("*") if p.suffix.lower() in EXTRACT_SUFFIXES)
    if not files:
        raise FileNotFoundError(f"no map extract ({', '.join(EXTRACT_SUFFIXES)}) in {data_dir}")
    return files[0]


def _is_overpass(path: Path) -> bool:
    if path.suffix.lower() != ".json":
        return False
    with path.open("r", encoding="utf-8") as fh:
        head = fh.read(4096)
    return '"elements"' in head


def build_preprocessed(source: Path | str) -> PreprocessedData:
    """Street graph + building centroids from one extract file."""
    source = Path(source)
    if _is_overpass(source):
        with source.open("r", encoding="utf-8") as fh:
            payload = json.load(fh)
        streets = StreetGraph.from_ways(ways_from_overpass(payload))
        buildings: tuple = ()
    else:
        gdf = gpd.read_file(source)
        streets = StreetGraph.from_ways(ways_from_frame(gdf))
        points = gdf[~gdf.geometry.geom_type.isin(["LineString", "MultiLineString"])]
        buildings = tuple(centroids_from_frame(points, default_category="buildings"))
    if streets.is_empty():
        raise EmptyGraphError(f"{source.name} contains no road geometry")
    return PreprocessedData(streets, buildings)


def load_layer_file(path: Path | str, area_id: Optional[str] = None) -> LayerSet:
    path = Path(path)
    gdf = gpd.read_file(path)
    layers = layers_from_centroids(centroids_from_frame(gdf), area_id or path.stem)
    logger.info("Loaded layer file %s: %s", path.name, layers.summary())
    return layers


__all__ = [
    "ways_from_overpass",
    "ways_from_frame",
    "centroids_from_frame",
    "layers_from_centroids",
    "find_extract",
    "build_preprocessed",
    "load_layer_file",
]
