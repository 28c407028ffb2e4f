"""
state.py – the process-wide map snapshot

``AppState`` is built once at startup and handed to every request handler.
It owns:

* the current ``Snapshot`` (street graph, layers, buildings, source key),
  swapped atomically behind a readers/writer lock – many concurrent readers,
  one writer that blocks new readers only while it swaps the reference;
* a ``ThreadPoolExecutor`` sized to the available cores on which request
  computations run.

Snapshots themselves are never mutated; a reader keeps using the one it
grabbed even if a swap happens mid-request.
"""
from __future__ import annotations

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Callable, Iterator, Optional, Tuple

from .errors import EmptyGraphError
from .layers import Centroid, LayerSet
from .streetgraph import StreetGraph

logger = logging.getLogger("lineplanner.state")


class ReadWriteLock:
    """Writer-preferring readers/writer lock."""

    def __init__(self):
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False
        self._writers_waiting = 0

    def acquire_read(self) -> None:
        with self._cond:
            while self._writer or self._writers_waiting:
                self._cond.wait()
            self._readers += 1

    def release_read(self) -> None:
        with self._cond:
            self._readers -= 1
            if self._readers == 0:
                self._cond.notify_all()

    def acquire_write(self) -> None:
        with self._cond:
            self._writers_waiting += 1
            try:
                while self._writer or self._readers:
                    self._cond.wait()
            finally:
                self._writers_waiting -= 1
            self._writer = True

    def release_write(self) -> None:
        with self._cond:
            self._writer = False
            self._cond.notify_all()

    @contextmanager
    def read(self) -> Iterator[None]:
        self.acquire_read()
        try:
            yield
        finally:
            self.release_read()

    @contextmanager
    def write(self) -> Iterator[None]:
        self.acquire_write()
        try:
            yield
        finally:
            self.release_write()


@dataclass(frozen=True)
class Snapshot:
    streets: StreetGraph
    layers: LayerSet
    source_key: str = ""
    buildings: Tuple[Centroid, ...] = field(default=())

    def __post_init__(self):
        if self.streets.is_empty():
            raise EmptyGraphError(f"snapshot {self.source_key or '<unnamed>'} has an empty street graph")


class AppState:
    def __init__(self, snapshot: Optional[Snapshot] = None, max_workers: Optional[int] = None):
        self._lock = ReadWriteLock()
        self._snapshot = snapshot
        self._pool = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="lineplanner")
        if snapshot is not None:
            logger.info("AppState ready with snapshot %s", snapshot.source_key or "<unnamed>")

    def snapshot(self) -> Snapshot:
        """Current snapshot; raises EmptyGraphError before the first install."""
        with self._lock.read():
            snap = self._snapshot
        if snap is None:
            raise EmptyGraphError("no map data loaded yet")
        return snap

    def install(self, snapshot: Snapshot) -> Optional[Snapshot]:
        """Swap in a freshly ingested snapshot; returns the previous one."""
        with self._lock.write():
            previous, self._snapshot = self._snapshot, snapshot
        logger.info("Installed snapshot %s (%d nodes, %s)",
                    snapshot.source_key or "<unnamed>", snapshot.streets.node_count,
                    ", ".join(snapshot.layers.categories()) or "no layers")
        return previous

    def update_layers(self, update: Callable[[LayerSet], LayerSet]) -> Snapshot:
        """Replace the layers of the current snapshot (e.g. after a merge)."""
        with self._lock.write():
            if self._snapshot is None:
                raise EmptyGraphError("no map data loaded yet")
            current = self._snapshot
            self._snapshot = Snapshot(current.streets, update(current.layers),
                                      current.source_key, current.buildings)
            return self._snapshot

    def submit(self, fn: Callable[..., Any], /, *args: Any, **kwargs: Any) -> Future:
        """Run ``fn(snapshot, *args, **kwargs)`` on the worker pool."""
        snap = self.snapshot()
        return self._pool.submit(fn, snap, *args, **kwargs)

    def shutdown(self, wait: bool = True) -> None:
        self._pool.shutdown(wait=wait, cancel_futures=True)

    def __enter__(self) -> "AppState":
        return self

    def __exit__(self, *exc) -> None:
        self.shutdown()


__all__ = ["ReadWriteLock", "Snapshot", "AppState"]
