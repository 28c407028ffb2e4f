"""
streetgraph.py – walkable street network                          v1·0
────────────────────────────────────────────────────────────────────
Built once from tagged way geometry:
  ① keep only ways whose ``highway`` tag is a road class,
  ② create a node at every way endpoint and at every coordinate
    shared by two or more ways,
  ③ add one undirected edge per span between consecutive nodes,
    weighted by its summed geodesic length in metres.

Nodes live in an arena (``list[GeoPoint]``) and are addressed by integer
index; the networkx graph only stores those indices plus edge attributes.
Disconnected pieces are kept – queries across them answer ``None``.

Public symbols
--------------
Way                    – one tagged polyline from the map feed
StreetGraph            – the graph, snapping and shortest-path queries
SourceExpansion        – one Dijkstra run answering many target lookups
"""
from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

import networkx as nx

from .errors import UnreachableError
from .geometry import GeoPoint, bounds, distance_m
from .spatial import SpatialIndex

log = logging.getLogger("lineplanner.streetgraph")

# highway=* values a pedestrian can walk along
ROAD_CLASSES = frozenset(
    {
        "trunk", "trunk_link",
        "primary", "primary_link",
        "secondary", "secondary_link",
        "tertiary", "tertiary_link",
        "unclassified", "residential", "living_street", "service", "road",
        "pedestrian", "footway", "path", "steps", "cycleway", "track",
    }
)


# ────────────────────────────────────────────────────────────────────────────
# Input record
# ────────────────────────────────────────────────────────────────────────────
@dataclass(frozen=True)
class Way:
    id: int
    coords: Tuple[GeoPoint, ...]
    tags: Mapping[str, str] = field(default_factory=dict)

    @property
    def is_road(self) -> bool:
        return self.tags.get("highway") in ROAD_CLASSES and len(self.coords) >= 2


# ────────────────────────────────────────────────────────────────────────────
# Reusable single-source expansion
# ────────────────────────────────────────────────────────────────────────────
class SourceExpansion:
    """
    Result of one bounded Dijkstra run from a snapped source point.

    ``distance_to`` answers any number of targets without touching the graph
    again; targets beyond the cutoff or in another component give ``None``.
    """

    def __init__(self, graph: "StreetGraph", source: GeoPoint, cutoff: Optional[float]):
        self.graph = graph
        self.source = source
        self.cutoff = cutoff
        self._lengths: Dict[int, float] = {}
        self._snap = 0.0

        snapped = graph.nearest_node(source)
        if snapped is None:
            return
        node, self._snap = snapped
        if cutoff is not None and self._snap > cutoff:
            return
        budget = None if cutoff is None else cutoff - self._snap
        self._lengths = nx.single_source_dijkstra_path_length(
            graph.nx, node, cutoff=budget, weight="length"
        )

    def __len__(self) -> int:
        return len(self._lengths)

    def reached_nodes(self) -> Iterable[int]:
        return self._lengths.keys()

    def distance_to_node(self, node: int, snap_m: float) -> Optional[float]:
        path = self._lengths.get(node)
        if path is None:
            return None
        return path + (self._snap + snap_m)

    def distance_to(self, target: GeoPoint) -> Optional[float]:
        if target == self.source:
            return 0.0
        snapped = self.graph.nearest_node(target)
        if snapped is None:
            return None
        return self.distance_to_node(*snapped)


# ────────────────────────────────────────────────────────────────────────────
# Graph
# ────────────────────────────────────────────────────────────────────────────
class StreetGraph:
    """Undirected, length-weighted street graph over an arena of nodes."""

    def __init__(self, points: Sequence[GeoPoint], graph: nx.Graph):
        self._points: List[GeoPoint] = list(points)
        self.nx = graph
        self._index = SpatialIndex(self._points)

    # ── constructors ───────────────────────────────────────────────────────
    @classmethod
    def from_ways(cls, ways: Iterable[Way]) -> "StreetGraph":
        """Build the graph from raw way geometry; non-road ways are skipped."""
        roads: List[Tuple[int, List[GeoPoint]]] = []
        skipped = 0
        for way in ways:
            if not way.is_road:
                skipped += 1
                continue
            coords = [p for i, p in enumerate(way.coords) if i == 0 or p != way.coords[i - 1]]
            if len(coords) >= 2:
                roads.append((way.id, coords))

        # a coordinate becomes a node if it ends a way or is used twice
        usage: Counter = Counter()
        junctions = set()
        for _, coords in roads:
            usage.update(coords)
            junctions.add(coords[0])
            junctions.add(coords[-1])
        junctions.update(p for p, n in usage.items() if n >= 2)

        points: List[GeoPoint] = []
        node_of: Dict[GeoPoint, int] = {}

        def _node(p: GeoPoint) -> int:
            if p not in node_of:
                node_of[p] = len(points)
                points.append(p)
            return node_of[p]

        g = nx.Graph()
        for way_id, coords in roads:
            start = _node(coords[0])
            span = [coords[0]]
            for p in coords[1:]:
                span.append(p)
                if p in junctions:
                    end = _node(p)
                    if end == start and len(span) > 2:
                        # closed loop back to one node: pin it at an interior vertex
                        k = len(span) // 2
                        mid = _node(span[k])
                        cls._add_edge(g, start, mid, tuple(span[:k + 1]), way_id)
                        cls._add_edge(g, mid, end, tuple(span[k:]), way_id)
                    else:
                        cls._add_edge(g, start, end, tuple(span), way_id)
                    start, span = end, [p]

        g.add_nodes_from(range(len(points)))
        log.info(
            "Street graph built: %d nodes, %d edges from %d road ways (%d non-road skipped)",
            len(points), g.number_of_edges(), len(roads), skipped,
        )
        return cls(points, g)

    @classmethod
    def from_edges(
        cls,
        points: Sequence[GeoPoint],
        edges: Iterable[Tuple[int, int, float]],
    ) -> "StreetGraph":
        """Build from explicit nodes and ``(u, v, length_m)`` edges."""
        g = nx.Graph()
        g.add_nodes_from(range(len(points)))
        for u, v, length in edges:
            if not (0 <= u < len(points) and 0 <= v < len(points)):
                raise ValueError(f"edge ({u}, {v}) references a missing node")
            if length < 0:
                raise ValueError(f"edge ({u}, {v}) has negative length {length}")
            cls._add_edge(g, u, v, (points[u], points[v]), None, length)
        return cls(points, g)

    @classmethod
    def from_networkx(cls, source: nx.Graph) -> "StreetGraph":
        """
        Convert an osmnx-style graph (nodes carry ``x``/``y``, edges carry
        ``length``) into a StreetGraph.  Direction and parallel edges collapse
        to the shortest undirected span.
        """
        order = list(source.nodes)
        index = {n: i for i, n in enumerate(order)}
        points = [GeoPoint(float(source.nodes[n]["x"]), float(source.nodes[n]["y"])) for n in order]
        g = nx.Graph()
        g.add_nodes_from(range(len(points)))
        for u, v, data in source.edges(data=True):
            iu, iv = index[u], index[v]
            length = data.get("length")
            if length is None:
                length = distance_m(points[iu], points[iv])
            cls._add_edge(g, iu, iv, (points[iu], points[iv]), data.get("osmid"), float(length))
        return cls(points, g)

    @staticmethod
    def _add_edge(g: nx.Graph, u: int, v: int, geometry, way_id, length: Optional[float] = None):
        if u == v:
            return                              # loops never shorten a path
        if length is None:
            length = sum(distance_m(p, q) for p, q in zip(geometry, geometry[1:]))
        if g.has_edge(u, v) and g[u][v]["length"] <= length:
            return
        if u > v:
            u, v, geometry = v, u, tuple(reversed(geometry))
        g.add_edge(u, v, length=length, geometry=geometry, way=way_id)

    # ── introspection ──────────────────────────────────────────────────────
    @property
    def node_count(self) -> int:
        return len(self._points)

    @property
    def edge_count(self) -> int:
        return self.nx.number_of_edges()

    @property
    def component_count(self) -> int:
        return nx.number_connected_components(self.nx) if self._points else 0

    @property
    def bounds(self):
        return bounds(self._points)

    def is_empty(self) -> bool:
        return not self._points

    def node_point(self, node: int) -> GeoPoint:
        return self._points[node]

    def edges(self) -> Iterable[Tuple[int, int, Dict[str, Any]]]:
        return self.nx.edges(data=True)

    # ── queries ────────────────────────────────────────────────────────────
    def nearest_node(self, point: GeoPoint) -> Optional[Tuple[int, float]]:
        """``(node, snap_distance_m)`` of the closest node; None if empty."""
        return self._index.nearest(point)

    def distance(self, a: GeoPoint, b: GeoPoint) -> Optional[float]:
        """
        Walking distance between two arbitrary points.

        Both points are snapped to their nearest node; the result is the
        path length plus both snap distances, or None when unreachable.
        """
        if a == b:
            return 0.0
        sa, sb = self.nearest_node(a), self.nearest_node(b)
        if sa is None or sb is None:
            return None
        (na, da), (nb, db) = sa, sb
        if na == nb:
            return da + db
        # fixed orientation keeps the float sum identical both ways round
        src, dst = (na, nb) if na < nb else (nb, na)
        try:
            path = nx.dijkstra_path_length(self.nx, src, dst, weight="length")
        except nx.NetworkXNoPath:
            return None
        return path + (da + db)

    def require_distance(self, a: GeoPoint, b: GeoPoint) -> float:
        """Like ``distance`` but raises UnreachableError instead of None."""
        d = self.distance(a, b)
        if d is None:
            raise UnreachableError(f"no path between {a} and {b}")
        return d

    def distances_from(self, source: GeoPoint, cutoff: Optional[float] = None) -> SourceExpansion:
        """One Dijkstra expansion from ``source``, reusable for many targets."""
        return SourceExpansion(self, source, cutoff)

    def path(self, a: GeoPoint, b: GeoPoint) -> Optional[List[GeoPoint]]:
        """Shortest path as a polyline (start, edge geometry…, end)."""
        sa, sb = self.nearest_node(a), self.nearest_node(b)
        if sa is None or sb is None:
            return None
        try:
            nodes = nx.dijkstra_path(self.nx, sa[0], sb[0], weight="length")
        except nx.NetworkXNoPath:
            return None

        line = [a]
        for u, v in zip(nodes, nodes[1:]):
            geom = self.nx[u][v]["geometry"]
            line.extend(geom if u < v else reversed(geom))
        if len(nodes) == 1:
            line.append(self._points[nodes[0]])
        line.append(b)
        return [p for i, p in enumerate(line) if i == 0 or p != line[i - 1]]

    # ── persistence helpers ────────────────────────────────────────────────
    def to_dict(self) -> Dict[str, Any]:
        return {
            "nodes": [p.as_tuple() for p in self._points],
            "edges": [
                [u, v, d["length"], [p.as_tuple() for p in d["geometry"]], d.get("way")]
                for u, v, d in self.nx.edges(data=True)
            ],
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "StreetGraph":
        points = [GeoPoint.from_lonlat(xy) for xy in data["nodes"]]
        g = nx.Graph()
        g.add_nodes_from(range(len(points)))
        for u, v, length, geom, way in data["edges"]:
            g.add_edge(u, v, length=float(length),
                       geometry=tuple(GeoPoint.from_lonlat(xy) for xy in geom), way=way)
        return cls(points, g)


__all__ = ["ROAD_CLASSES", "Way", "StreetGraph", "SourceExpansion"]
