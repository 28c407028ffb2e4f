from pathlib import Path

import pytest

from lineplanner.config import Settings, load_settings
from lineplanner.errors import InputError
from lineplanner.models import Method, Routing


def test_defaults(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    s = load_settings(environ={})
    assert s == Settings()
    assert s.coverage_radius_m == 500.0
    assert s.search_radius_m == 300.0
    assert s.default_method is Method.RELATIVE
    assert s.default_routing is Routing.NETWORK
    assert s.workers >= 1


def test_toml_then_env(tmp_path):
    cfg = tmp_path / "lp.toml"
    cfg.write_text(
        'coverage_radius_m = 400\n'
        'default_routing = "straight_line"\n'
        '[acquisition]\n'
        'max_attempts = 5\n'
        'timeout_s = 60\n'
    )
    s = load_settings(cfg, environ={
        "LINEPLANNER_COVERAGE_RADIUS_M": "350",
        "LINEPLANNER_CACHE_DIR": str(tmp_path / "c"),
        "LINEPLANNER_ACQUISITION_MAX_ATTEMPTS": "7",
        "UNRELATED": "x",
    })
    assert s.coverage_radius_m == 350.0
    assert s.default_routing is Routing.STRAIGHT_LINE
    assert s.cache_dir == Path(tmp_path / "c")
    assert s.acquisition.max_attempts == 7
    assert s.acquisition.timeout_s == 60.0


def test_bad_value_is_input_error():
    with pytest.raises(InputError):
        load_settings(environ={"LINEPLANNER_SAMPLE_INTERVAL_M": "0"})


def test_missing_explicit_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_settings(tmp_path / "nope.toml", environ={})


def test_malformed_toml_is_input_error(tmp_path):
    cfg = tmp_path / "broken.toml"
    cfg.write_text("coverage_radius_m = = 3\n")
    with pytest.raises(InputError):
        load_settings(cfg, environ={})
