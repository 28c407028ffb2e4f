import networkx as nx
import pytest

from lineplanner.errors import UnreachableError
from lineplanner.geometry import GeoPoint
from lineplanner.streetgraph import StreetGraph, Way

from conftest import ORIGIN, offset


def test_grid_nodes_at_endpoints_and_crossings(grid):
    g, rows = grid
    # 9 crossings + footway end; the river is not a road
    assert g.node_count == 10
    assert g.edge_count == 12 + 1
    assert g.component_count == 1
    for row in rows:
        for p in row:
            node, snap = g.nearest_node(p)
            assert snap == 0.0
            assert g.node_point(node) == p


def test_edge_length_is_summed_geometry():
    a = ORIGIN
    mid = offset(a, east_m=60, north_m=30)
    b = offset(a, east_m=120)
    g = StreetGraph.from_ways([Way(7, (a, mid, b), {"highway": "service"})])
    assert g.node_count == 2                     # mid is not shared → no node
    (_, _, data), = g.edges()
    assert data["length"] == pytest.approx(a.distance_to(mid) + mid.distance_to(b), rel=1e-9)
    assert data["length"] == pytest.approx(2 * a.distance_to(mid), rel=1e-3)
    assert data["geometry"][1] == mid


def test_non_road_geometry_is_ignored():
    a, b = ORIGIN, offset(ORIGIN, east_m=50)
    g = StreetGraph.from_ways([
        Way(1, (a, b), {"building": "yes"}),
        Way(2, (a, b), {"highway": "bus_stop"}),
        Way(3, (a,), {"highway": "residential"}),
    ])
    assert g.is_empty()
    assert g.nearest_node(a) is None
    assert g.distance(a, b) is None


def test_t_distances(tee):
    g, p = tee
    assert g.distance(p["A"], p["D"]) == pytest.approx(200.0)
    assert g.distance(p["C"], p["D"]) == pytest.approx(200.0)
    assert g.distance(p["A"], p["C"]) == pytest.approx(200.0)


def test_distance_symmetry_and_identity(grid):
    g, rows = grid
    a = offset(rows[0][0], east_m=13, north_m=7)
    b = offset(rows[2][1], east_m=-20, north_m=4)
    assert g.distance(a, b) == g.distance(b, a)
    assert g.distance(a, a) == 0.0


def test_distance_includes_both_snaps(tee):
    g, p = tee
    a_off = offset(p["A"], north_m=30)
    d_off = offset(p["D"], east_m=-40)
    assert g.distance(a_off, d_off) == pytest.approx(200.0 + 30.0 + 40.0, abs=1e-3)


def test_disconnected_components_are_unreachable():
    a, b = ORIGIN, offset(ORIGIN, east_m=100)
    c, d = offset(ORIGIN, east_m=1_000), offset(ORIGIN, east_m=1_100)
    g = StreetGraph.from_ways([
        Way(1, (a, b), {"highway": "residential"}),
        Way(2, (c, d), {"highway": "residential"}),
    ])
    assert g.component_count == 2
    assert g.distance(a, d) is None
    with pytest.raises(UnreachableError):
        g.require_distance(a, d)
    assert g.path(a, d) is None


def test_zero_length_edge_is_legal():
    a, b, c = ORIGIN, offset(ORIGIN, east_m=1e-7), offset(ORIGIN, east_m=100)
    g = StreetGraph.from_edges([a, b, c], [(0, 1, 0.0), (1, 2, 100.0)])
    assert g.distance(a, c) == pytest.approx(100.0)


def test_from_edges_validates():
    with pytest.raises(ValueError):
        StreetGraph.from_edges([ORIGIN], [(0, 1, 5.0)])
    with pytest.raises(ValueError):
        StreetGraph.from_edges([ORIGIN, offset(ORIGIN, east_m=5)], [(0, 1, -1.0)])


def test_parallel_ways_keep_shortest():
    a, b = ORIGIN, offset(ORIGIN, east_m=100)
    detour = offset(ORIGIN, east_m=50, north_m=80)
    g = StreetGraph.from_ways([
        Way(1, (a, detour, b), {"highway": "residential"}),
        Way(2, (a, b), {"highway": "residential"}),
    ])
    assert g.edge_count == 1
    assert g.distance(a, b) == pytest.approx(100.0, abs=1e-6)


def test_expansion_serves_many_targets(grid):
    g, rows = grid
    exp = g.distances_from(rows[0][0], cutoff=250.0)
    assert exp.distance_to(rows[0][0]) == 0.0
    assert exp.distance_to(rows[0][2]) == pytest.approx(g.distance(rows[0][0], rows[0][2]))
    assert exp.distance_to(rows[2][2]) is None        # 400 m > cutoff
    assert len(exp) == len(list(exp.reached_nodes()))


def test_expansion_skips_source_beyond_cutoff(tee):
    g, p = tee
    far = offset(p["A"], north_m=-500)
    assert len(g.distances_from(far, cutoff=100)) == 0


def test_path_follows_streets(tee):
    g, p = tee
    line = g.path(p["A"], p["D"])
    assert line[0] == p["A"] and line[-1] == p["D"]
    assert p["B"] in line


def test_from_networkx_osmnx_style():
    src = nx.MultiDiGraph()
    src.add_node(10, x=ORIGIN.lon, y=ORIGIN.lat)
    b = offset(ORIGIN, east_m=80)
    src.add_node(20, x=b.lon, y=b.lat)
    src.add_edge(10, 20, length=85.0, osmid=1)
    src.add_edge(20, 10, length=90.0, osmid=1)
    g = StreetGraph.from_networkx(src)
    assert g.node_count == 2
    assert g.distance(ORIGIN, b) == pytest.approx(85.0)


def test_dict_roundtrip_preserves_queries(grid):
    g, rows = grid
    again = StreetGraph.from_dict(g.to_dict())
    assert again.node_count == g.node_count
    assert again.edge_count == g.edge_count
    a, b = rows[0][0], rows[2][2]
    assert again.distance(a, b) == pytest.approx(g.distance(a, b))


def test_closed_loop_keeps_its_geometry():
    c0 = ORIGIN
    c1, c2, c3 = offset(c0, east_m=200), offset(c0, east_m=200, north_m=200), offset(c0, north_m=200)
    tail = offset(c0, east_m=-100)
    g = StreetGraph.from_ways([
        Way(1, (c0, c1, c2, c3, c0), {"highway": "residential"}),
        Way(2, (tail, c0), {"highway": "residential"}),
    ])
    assert g.node_count == 3
    assert g.nearest_node(c2)[1] == 0.0
    assert g.distance(tail, c2) == pytest.approx(500.0, rel=1e-3)
    assert g.distance(c2, tail) == g.distance(tail, c2)


def test_lone_ring_road():
    c0 = ORIGIN
    ring = (c0, offset(c0, east_m=100), offset(c0, east_m=100, north_m=100), offset(c0, north_m=100), c0)
    g = StreetGraph.from_ways([Way(1, ring, {"highway": "residential"})])
    assert g.node_count == 2 and g.edge_count == 1
    assert g.distance(ring[0], ring[2]) == pytest.approx(200.0, rel=1e-3)
