import math

import pytest

from lineplanner.errors import InputError
from lineplanner.geometry import GeoPoint, bounds, densify, distance_m, line_length_m

from conftest import ORIGIN, offset


def test_geopoint_rejects_out_of_range():
    with pytest.raises(InputError):
        GeoPoint(181.0, 0.0)
    with pytest.raises(InputError):
        GeoPoint(0.0, -91.0)
    with pytest.raises(InputError):
        GeoPoint(float("nan"), 0.0)


def test_geopoint_is_hashable_value():
    assert GeoPoint(1.0, 2.0) == GeoPoint(1.0, 2.0)
    assert len({GeoPoint(1.0, 2.0), GeoPoint(1.0, 2.0)}) == 1
    assert GeoPoint.from_lonlat([3, 4]).as_tuple() == (3.0, 4.0)


def test_distance_is_symmetric_and_zero_on_self():
    p = offset(ORIGIN, east_m=250, north_m=120)
    assert distance_m(ORIGIN, ORIGIN) == 0.0
    assert distance_m(ORIGIN, p) == pytest.approx(distance_m(p, ORIGIN))
    assert distance_m(ORIGIN, offset(ORIGIN, east_m=100)) == pytest.approx(100.0, abs=1e-6)


def test_densify_keeps_vertices_and_spacing():
    b = offset(ORIGIN, east_m=100)
    c = offset(b, north_m=60)
    pts = densify([ORIGIN, b, c], 25.0)

    assert pts[0] == ORIGIN and pts[-1] == c
    assert b in pts
    # 100 m → 3 inner points, 60 m → 2 inner points
    assert len(pts) == 1 + 3 + 1 + 2 + 1
    gaps = [distance_m(p, q) for p, q in zip(pts, pts[1:])]
    assert max(gaps) <= 25.0 + 1e-6
    assert sum(gaps) == pytest.approx(line_length_m([ORIGIN, b, c]), rel=1e-9)


def test_densify_edge_cases():
    assert densify([], 10) == []
    assert densify([ORIGIN], 10) == [ORIGIN]
    assert densify([ORIGIN, ORIGIN], 10) == [ORIGIN]
    with pytest.raises(InputError):
        densify([ORIGIN], 0)


def test_bounds():
    assert bounds([]) is None
    p = offset(ORIGIN, east_m=10, north_m=10)
    minx, miny, maxx, maxy = bounds([ORIGIN, p])
    assert (minx, miny) == (ORIGIN.lon, ORIGIN.lat)
    assert math.isclose(maxx, p.lon) and math.isclose(maxy, p.lat)
