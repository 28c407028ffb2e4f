"""
persistence.py – on-disk cache of expensive preprocessing

Street graph + building centroids are cached per source extract; the cache
key is the extract's file stem plus a SHA-256 digest of its bytes, so an
unchanged input never triggers a rebuild and a changed one never reuses a
stale cache.  Layers are cached in a single file per cache directory.

Files are gzip-compressed JSON with a format version.
"""
from __future__ import annotations

import gzip
import hashlib
import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Tuple

from .errors import CacheError
from .geometry import GeoPoint
from .layers import Centroid, LayerSet
from .streetgraph import StreetGraph

logger = logging.getLogger("lineplanner.persistence")

FORMAT_VERSION = 1
LAYERS_FILE = "layers.json.gz"
_CHUNK = 1 << 20


@dataclass(frozen=True)
class PreprocessedData:
    streets: StreetGraph
    buildings: Tuple[Centroid, ...]


# ────────────────────────────────────────────────────────────────────────────
# keys & raw IO
# ────────────────────────────────────────────────────────────────────────────
def source_key(source: Path | str) -> str:
    """Identity of a source extract: ``<stem>-<sha256 prefix>``."""
    source = Path(source)
    digest = hashlib.sha256()
    with source.open("rb") as fh:
        for chunk in iter(lambda: fh.read(_CHUNK), b""):
            digest.update(chunk)
    return f"{source.stem}-{digest.hexdigest()[:16]}"


def cache_path(cache_dir: Path | str, key: str) -> Path:
    return Path(cache_dir) / f"{key}.map.json.gz"


def _write(path: Path, kind: str, payload: Dict[str, Any]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_name(path.name + ".tmp")
    with gzip.open(tmp, "wt", encoding="utf-8") as fh:
        json.dump({"version": FORMAT_VERSION, "kind": kind, **payload}, fh)
    tmp.replace(path)


def _read(path: Path, kind: str) -> Dict[str, Any]:
    try:
        with gzip.open(path, "rt", encoding="utf-8") as fh:
            data = json.load(fh)
    except (OSError, EOFError, ValueError) as exc:
        raise CacheError(f"cannot read {path}: {exc}") from exc
    if data.get("version") != FORMAT_VERSION or data.get("kind") != kind:
        raise CacheError(
            f"{path} is {data.get('kind')!r} v{data.get('version')}, expected {kind!r} v{FORMAT_VERSION}"
        )
    return data


# ────────────────────────────────────────────────────────────────────────────
# street graph + buildings
# ────────────────────────────────────────────────────────────────────────────
def save_preprocessed_data(data: PreprocessedData, path: Path | str) -> Path:
    path = Path(path)
    _write(path, "preprocessed", {
        "streets": data.streets.to_dict(),
        "buildings": [[c.id, c.point.lon, c.point.lat, c.weight, c.category] for c in data.buildings],
    })
    logger.info("Preprocessed data written to %s (%d nodes, %d buildings)",
                path, data.streets.node_count, len(data.buildings))
    return path


def load_preprocessed_data(path: Path | str) -> PreprocessedData:
    path = Path(path)
    data = _read(path, "preprocessed")
    try:
        streets = StreetGraph.from_dict(data["streets"])
        buildings = tuple(
            Centroid(str(cid), GeoPoint(lon, lat), float(w), cat)
            for cid, lon, lat, w, cat in data["buildings"]
        )
    except (KeyError, TypeError, ValueError) as exc:
        raise CacheError(f"corrupt preprocessed cache {path}: {exc}") from exc
    logger.info("Loaded preprocessed data from %s (%d nodes)", path, streets.node_count)
    return PreprocessedData(streets, buildings)


def load_or_build(
    source: Path | str,
    cache_dir: Path | str,
    build: Callable[[Path], PreprocessedData],
) -> Tuple[str, PreprocessedData]:
    """
    Return ``(key, data)`` for a source extract.

    Order of battle:
      1. cache file for this exact extract → load it
      2. unreadable cache → warn and rebuild
      3. build, persist, return
    """
    source = Path(source)
    key = source_key(source)
    path = cache_path(cache_dir, key)

    if path.is_file():
        try:
            return key, load_preprocessed_data(path)
        except CacheError as exc:
            logger.warning("Cache unusable (%s) – rebuilding", exc)

    logger.info("Preprocessing %s …", source.name)
    data = build(source)
    save_preprocessed_data(data, path)
    return key, data


# ────────────────────────────────────────────────────────────────────────────
# layers
# ────────────────────────────────────────────────────────────────────────────
def save_layers(layers: LayerSet, cache_dir: Path | str) -> Path:
    path = Path(cache_dir) / LAYERS_FILE
    _write(path, "layers", layers.to_dict())
    logger.info("Layers written to %s (%s)", path, ", ".join(layers.categories()) or "empty")
    return path


def load_layers(cache_dir: Path | str) -> Optional[LayerSet]:
    """Cached LayerSet, or None when nothing usable is cached."""
    path = Path(cache_dir) / LAYERS_FILE
    if not path.is_file():
        return None
    try:
        return LayerSet.from_dict(_read(path, "layers"))
    except (CacheError, KeyError, TypeError, ValueError) as exc:
        logger.warning("Layer cache unusable (%s) – starting empty", exc)
        return None


__all__ = [
    "FORMAT_VERSION",
    "PreprocessedData",
    "source_key",
    "cache_path",
    "save_preprocessed_data",
    "load_preprocessed_data",
    "load_or_build",
    "save_layers",
    "load_layers",
]
