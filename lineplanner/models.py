"""Core value types plus the pydantic request records of the service facade."""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .errors import InputError
from .geometry import GeoPoint
from .layers import Centroid


class Method(Enum):
    """How a centroid's weight is shared between in-range stations."""

    RELATIVE = "relative"
    ABSOLUTE = "absolute"


class Routing(Enum):
    """Distance metric between a centroid and a station."""

    NETWORK = "network"
    STRAIGHT_LINE = "straight_line"


@dataclass(frozen=True)
class Station:
    id: str
    point: GeoPoint


@dataclass(frozen=True)
class Attribution:
    centroid: Centroid
    share: float
    distance_m: float


@dataclass
class StationCoverage:
    station: Station
    weight: float = 0.0
    centroids: List[Attribution] = field(default_factory=list)

    def attribute(self, centroid: Centroid, share: float, distance_m: float) -> None:
        self.weight += share
        self.centroids.append(Attribution(centroid, share, distance_m))


@dataclass
class CoverageMap:
    """Station id → accumulated coverage.  Stations covering nothing are absent."""

    stations: Dict[str, StationCoverage] = field(default_factory=dict)
    uncovered_weight: float = 0.0

    def __len__(self) -> int:
        return len(self.stations)

    def __contains__(self, station_id: str) -> bool:
        return station_id in self.stations

    def __getitem__(self, station_id: str) -> StationCoverage:
        return self.stations[station_id]

    def is_empty(self) -> bool:
        return not self.stations

    def total_weight(self) -> float:
        return sum(sc.weight for sc in self.stations.values())

    def weight_of(self, station_id: str) -> float:
        sc = self.stations.get(station_id)
        return sc.weight if sc else 0.0

    def as_dict(self) -> Dict[str, float]:
        return {sid: sc.weight for sid, sc in self.stations.items()}


@dataclass(frozen=True)
class OptimalStationResult:
    point: GeoPoint
    marginal_weight: float
    method: Method
    routing: Routing
    route_position: int = 0
    attracted_weight: float = 0.0
    candidates_evaluated: int = 0

    @property
    def improves(self) -> bool:
        return self.marginal_weight > 0


# ────────────────────────────────────────────────────────────────────────────
# Request records
# ────────────────────────────────────────────────────────────────────────────
class StationIn(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    lon: float = Field(..., ge=-180, le=180, allow_inf_nan=False)
    lat: float = Field(..., ge=-90, le=90, allow_inf_nan=False)

    @field_validator("id", mode="before")
    @classmethod
    def _id_to_str(cls, v):
        return str(v).strip() if v is not None else v

    def to_station(self) -> Station:
        return Station(self.id, GeoPoint(self.lon, self.lat))


class StationInfoRequest(BaseModel):
    stations: List[StationIn] = Field(..., min_length=1)
    method: Optional[Method] = None
    routing: Optional[Routing] = None

    @field_validator("stations")
    @classmethod
    def _unique_ids(cls, v: List[StationIn]) -> List[StationIn]:
        ids = [s.id for s in v]
        if len(set(ids)) != len(ids):
            raise ValueError("station ids must be unique")
        return v


class FindStationRequest(StationInfoRequest):
    stations: List[StationIn] = Field(default_factory=list)
    route: List[Tuple[float, float]] = Field(..., min_length=1)

    @field_validator("route")
    @classmethod
    def _route_in_range(cls, v: List[Tuple[float, float]]) -> List[Tuple[float, float]]:
        for lon, lat in v:
            GeoPoint(lon, lat)                  # raises on bad coordinates
        return v

    def route_points(self) -> List[GeoPoint]:
        return [GeoPoint(lon, lat) for lon, lat in self.route]


def parse_request(model: type[BaseModel], payload) -> BaseModel:
    """Validate a raw payload, turning pydantic errors into InputError."""
    try:
        return model.model_validate(payload)
    except ValidationError as err:
        raise InputError(str(err)) from err


__all__ = [
    "Method",
    "Routing",
    "Station",
    "Attribution",
    "StationCoverage",
    "CoverageMap",
    "OptimalStationResult",
    "StationIn",
    "StationInfoRequest",
    "FindStationRequest",
    "parse_request",
]
