"""
errors.py – exception hierarchy shared by every module

Only graph-wide preconditions surface as exceptions during a request;
per-centroid and per-candidate failures are absorbed by the engines.
"""
from __future__ import annotations


class LinePlannerError(RuntimeError):
    """Base class for everything raised by lineplanner."""


class InputError(LinePlannerError, ValueError):
    """Malformed request data (coordinates, empty station list, …)."""


class UnreachableError(LinePlannerError):
    """No path connects the two points in the street graph."""


class EmptyGraphError(LinePlannerError):
    """The street graph has no nodes – fatal at startup."""


class AcquisitionError(LinePlannerError):
    """Upstream map download failed or answered with garbage."""


class CacheError(LinePlannerError):
    """A cache file exists but cannot be used."""


__all__ = [
    "LinePlannerError",
    "InputError",
    "UnreachableError",
    "EmptyGraphError",
    "AcquisitionError",
    "CacheError",
]
