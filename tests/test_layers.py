import pytest

from lineplanner.geometry import GeoPoint
from lineplanner.layers import Centroid, Layer, LayerSet

from conftest import ORIGIN, centroid, offset


def _layer(category, area, ids, weight=10.0):
    return Layer(category, area, tuple(
        centroid(i, offset(ORIGIN, east_m=10 * n), weight, category) for n, i in enumerate(ids)
    ))


def test_merge_is_idempotent():
    ls = LayerSet.from_layers([_layer("residential", "north", ["1", "2"]), _layer("schools", "north", ["s"])])
    assert ls.merge(ls) == ls


def test_merge_concatenates_and_keeps_first_occurrence():
    first = LayerSet.from_layers([_layer("residential", "north", ["1", "2"], weight=10.0)])
    second = LayerSet.from_layers([_layer("residential", "south", ["2", "3"], weight=99.0)])
    merged = first.merge(second)

    ids = [c.id for c in merged.centroids("residential")]
    assert ids == ["1", "2", "3"]
    assert merged.centroids("residential")[1].weight == 10.0
    assert merged.areas == ("north", "south")


def test_add_layer_dedups_within_category():
    ls = LayerSet().add_layer(_layer("residential", "a", ["1", "1", "2"]))
    assert [c.id for c in ls.centroids("residential")] == ["1", "2"]


def test_views():
    ls = LayerSet.from_layers([_layer("residential", "a", ["1", "2"]), _layer("work", "a", ["w"], 5.0)])
    assert ls.categories() == ["residential", "work"]
    assert ls.centroids("missing") == ()
    assert [c.id for c in ls.all_centroids()] == ["1", "2", "w"]
    assert ls.summary() == {"residential": {"count": 2, "weight": 20.0}, "work": {"count": 1, "weight": 5.0}}
    assert LayerSet().is_empty()


def test_layer_rejects_foreign_category():
    with pytest.raises(ValueError):
        Layer("residential", "a", (centroid("x", ORIGIN, 1.0, "work"),))


def test_centroid_rejects_negative_weight():
    with pytest.raises(ValueError):
        Centroid("x", GeoPoint(0, 0), -1.0, "residential")


def test_dict_roundtrip():
    ls = LayerSet.from_layers([_layer("residential", "a", ["1", "2"])])
    assert LayerSet.from_dict(ls.to_dict()) == ls
