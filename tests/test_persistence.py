import gzip
from unittest.mock import Mock

import pytest

from lineplanner.errors import CacheError
from lineplanner.layers import Layer, LayerSet
from lineplanner.persistence import (
    PreprocessedData,
    cache_path,
    load_layers,
    load_or_build,
    load_preprocessed_data,
    save_layers,
    save_preprocessed_data,
    source_key,
)

from conftest import ORIGIN, centroid, offset


@pytest.fixture
def data(grid):
    g, rows = grid
    return PreprocessedData(g, (centroid("b1", rows[1][1], 4.0, "buildings"),))


@pytest.fixture
def extract(tmp_path):
    p = tmp_path / "town.json"
    p.write_text('{"elements": []}')
    return p


def test_preprocessed_roundtrip(tmp_path, data, grid):
    _, rows = grid
    path = save_preprocessed_data(data, tmp_path / "x.map.json.gz")
    back = load_preprocessed_data(path)
    assert back.streets.node_count == data.streets.node_count
    assert back.streets.edge_count == data.streets.edge_count
    assert back.buildings == data.buildings
    assert back.streets.distance(rows[0][0], rows[2][2]) == pytest.approx(
        data.streets.distance(rows[0][0], rows[2][2]))


def test_source_key_tracks_content(extract):
    k1 = source_key(extract)
    assert k1.startswith("town-") and k1 == source_key(extract)
    extract.write_text('{"elements": [1]}')
    assert source_key(extract) != k1


def test_load_or_build_builds_once(tmp_path, extract, data):
    build = Mock(return_value=data)
    key, first = load_or_build(extract, tmp_path / "cache", build)
    assert cache_path(tmp_path / "cache", key).is_file()
    key2, second = load_or_build(extract, tmp_path / "cache", build)
    assert key2 == key
    build.assert_called_once_with(extract)
    assert second.streets.node_count == first.streets.node_count


def test_changed_source_rebuilds(tmp_path, extract, data):
    build = Mock(return_value=data)
    k1, _ = load_or_build(extract, tmp_path, build)
    extract.write_text('{"elements": [], "changed": true}')
    k2, _ = load_or_build(extract, tmp_path, build)
    assert k1 != k2
    assert build.call_count == 2


def test_corrupt_cache_is_rebuilt(tmp_path, extract, data):
    key = source_key(extract)
    bad = cache_path(tmp_path, key)
    bad.write_bytes(b"not gzip at all")
    build = Mock(return_value=data)
    load_or_build(extract, tmp_path, build)
    build.assert_called_once()
    assert load_preprocessed_data(bad).streets.node_count == data.streets.node_count


def test_wrong_version_raises(tmp_path):
    path = tmp_path / "old.map.json.gz"
    with gzip.open(path, "wt", encoding="utf-8") as fh:
        fh.write('{"version": 0, "kind": "preprocessed"}')
    with pytest.raises(CacheError):
        load_preprocessed_data(path)


def test_layers_cache(tmp_path):
    assert load_layers(tmp_path) is None
    layers = LayerSet.from_layers([
        Layer("work", "area", (centroid("w", offset(ORIGIN, east_m=5), 2.0, "work"),)),
    ])
    save_layers(layers, tmp_path)
    assert load_layers(tmp_path) == layers


def test_unusable_layers_cache_is_ignored(tmp_path):
    (tmp_path / "layers.json.gz").write_bytes(b"\x00\x01")
    assert load_layers(tmp_path) is None
