import pytest
from pyproj import Geod

from lineplanner.geometry import GeoPoint
from lineplanner.layers import Centroid
from lineplanner.models import Station
from lineplanner.streetgraph import StreetGraph, Way

_GEOD = Geod(ellps="WGS84")
ORIGIN = GeoPoint(8.4037, 49.0069)


def offset(p: GeoPoint, east_m: float = 0.0, north_m: float = 0.0) -> GeoPoint:
    """Point ``east_m``/``north_m`` metres away from ``p`` (geodesic)."""
    lon, lat = p.lon, p.lat
    if east_m:
        lon, lat, _ = _GEOD.fwd(lon, lat, 90.0 if east_m > 0 else 270.0, abs(east_m))
    if north_m:
        lon, lat, _ = _GEOD.fwd(lon, lat, 0.0 if north_m > 0 else 180.0, abs(north_m))
    return GeoPoint(lon, lat)


def centroid(cid, point, weight=1.0, category="residential"):
    return Centroid(str(cid), point, weight, category)


@pytest.fixture
def tee():
    """
    A ── B ── C
         │
         D

    every edge exactly 100 m long; returns (graph, {name: GeoPoint}).
    """
    a = ORIGIN
    b = offset(a, east_m=100)
    c = offset(a, east_m=200)
    d = offset(b, north_m=-100)
    points = [a, b, c, d]
    graph = StreetGraph.from_edges(points, [(0, 1, 100.0), (1, 2, 100.0), (1, 3, 100.0)])
    return graph, dict(A=a, B=b, C=c, D=d)


@pytest.fixture
def grid_ways():
    """3×3 street grid with 100 m blocks plus one footpath and one river."""
    rows = [[offset(ORIGIN, east_m=100 * i, north_m=100 * j) for i in range(3)] for j in range(3)]
    ways = []
    wid = 1
    for j in range(3):
        ways.append(Way(wid, tuple(rows[j]), {"highway": "residential"}))
        wid += 1
    for i in range(3):
        ways.append(Way(wid, tuple(rows[j][i] for j in range(3)), {"highway": "residential"}))
        wid += 1
    ways.append(Way(wid, (rows[0][0], offset(ORIGIN, east_m=-80)), {"highway": "footway"}))
    ways.append(Way(wid + 1, (rows[0][0], rows[2][2]), {"waterway": "river"}))
    return ways, rows


@pytest.fixture
def grid(grid_ways):
    ways, rows = grid_ways
    return StreetGraph.from_ways(ways), rows


@pytest.fixture
def stations_abc():
    return [
        Station("a", ORIGIN),
        Station("b", offset(ORIGIN, east_m=400)),
        Station("c", offset(ORIGIN, east_m=2_000)),
    ]
