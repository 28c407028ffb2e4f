"""Weighted population points grouped by category, mergeable across areas."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Tuple

from .geometry import GeoPoint

log = logging.getLogger("lineplanner.layers")


@dataclass(frozen=True)
class Centroid:
    id: str
    point: GeoPoint
    weight: float
    category: str

    def __post_init__(self):
        if not self.weight >= 0:
            raise ValueError(f"centroid {self.id} has invalid weight {self.weight}")


@dataclass(frozen=True)
class Layer:
    """One category's centroids from one ingested map area."""

    category: str
    area_id: str
    centroids: Tuple[Centroid, ...] = ()

    def __post_init__(self):
        stray = {c.category for c in self.centroids} - {self.category}
        if stray:
            raise ValueError(f"layer {self.category!r} contains centroids of {sorted(stray)}")


def _dedup(centroids: Iterable[Centroid]) -> Tuple[Centroid, ...]:
    seen = set()
    out: List[Centroid] = []
    for c in centroids:
        if c.id in seen:
            continue
        seen.add(c.id)
        out.append(c)
    return tuple(out)


@dataclass(frozen=True)
class LayerSet:
    """
    Category → ordered, de-duplicated centroids.

    Instances are immutable; ``merge`` and ``add_layer`` return new sets.
    Deduplication is by centroid id, first occurrence wins.
    """

    layers: Mapping[str, Tuple[Centroid, ...]] = field(default_factory=dict)
    areas: Tuple[str, ...] = ()

    @classmethod
    def from_layers(cls, layers: Iterable[Layer]) -> "LayerSet":
        out = cls()
        for layer in layers:
            out = out.add_layer(layer)
        return out

    def add_layer(self, layer: Layer) -> "LayerSet":
        merged = dict(self.layers)
        merged[layer.category] = _dedup(merged.get(layer.category, ()) + tuple(layer.centroids))
        areas = self.areas if layer.area_id in self.areas else self.areas + (layer.area_id,)
        return LayerSet(merged, areas)

    def merge(self, other: "LayerSet") -> "LayerSet":
        merged = dict(self.layers)
        for category, centroids in other.layers.items():
            merged[category] = _dedup(merged.get(category, ()) + tuple(centroids))
        areas = self.areas + tuple(a for a in other.areas if a not in self.areas)
        return LayerSet(merged, areas)

    # ── views ──────────────────────────────────────────────────────────────
    def categories(self) -> List[str]:
        return list(self.layers)

    def centroids(self, category: str) -> Tuple[Centroid, ...]:
        return self.layers.get(category, ())

    def all_centroids(self) -> Tuple[Centroid, ...]:
        return tuple(c for centroids in self.layers.values() for c in centroids)

    def is_empty(self) -> bool:
        return not any(self.layers.values())

    def summary(self) -> Dict[str, Dict[str, float]]:
        return {
            cat: {"count": len(cs), "weight": sum(c.weight for c in cs)}
            for cat, cs in self.layers.items()
        }

    # ── persistence helpers ────────────────────────────────────────────────
    def to_dict(self) -> Dict[str, Any]:
        return {
            "areas": list(self.areas),
            "layers": {
                cat: [[c.id, c.point.lon, c.point.lat, c.weight] for c in cs]
                for cat, cs in self.layers.items()
            },
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "LayerSet":
        layers = {
            cat: tuple(Centroid(str(cid), GeoPoint(lon, lat), float(w), cat) for cid, lon, lat, w in rows)
            for cat, rows in data.get("layers", {}).items()
        }
        return cls(layers, tuple(data.get("areas", ())))


__all__ = ["Centroid", "Layer", "LayerSet"]
