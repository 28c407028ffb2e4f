"""
acquire.py – download raw map data for an admin area              v1·0
────────────────────────────────────────────────────────────────────
Two upstream paths:

  ① Overpass – one synchronous POST returning tagged elements with
    geometry (``out geom``).
  ② Bulk-area job – submit a named bbox, poll the job status URL until it
    reports ``complete``, then stream the binary extract to disk.

Polling is bounded: at most ``max_attempts`` status requests, exponential
backoff capped at ``max_backoff_s``, an overall ``timeout_s`` deadline and an
optional ``threading.Event`` that cancels the wait.  Every failure surfaces
as AcquisitionError.
"""
from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import requests

from .config import AcquisitionSettings
from .errors import AcquisitionError

log = logging.getLogger("lineplanner.acquire")

_STREAM_CHUNK = 1 << 16


@dataclass(frozen=True)
class AdminArea:
    name: str
    min_lon: float
    min_lat: float
    max_lon: float
    max_lat: float

    @property
    def bounding_box(self) -> List[float]:
        """Wire order used by the bulk-area service: N, E, S, W."""
        return [self.max_lat, self.max_lon, self.min_lat, self.min_lon]

    @property
    def overpass_bbox(self) -> str:
        return f"{self.min_lat},{self.min_lon},{self.max_lat},{self.max_lon}"


def admin_area(query: str) -> AdminArea:
    """Geocode an admin area name to its bounding box (Nominatim via osmnx)."""
    import osmnx as ox

    try:
        gdf = ox.geocoder.geocode_to_gdf(query)
    except Exception as exc:  # noqa: BLE001
        raise AcquisitionError(f"geocoding '{query}' failed: {exc}") from exc
    if gdf.empty:
        raise AcquisitionError(f"no admin area found for '{query}'")
    min_lon, min_lat, max_lon, max_lat = (float(v) for v in gdf.total_bounds)
    return AdminArea(query, min_lon, min_lat, max_lon, max_lat)


# ────────────────────────────────────────────────────────────────────────────
# ① Overpass
# ────────────────────────────────────────────────────────────────────────────
def overpass_query(area: AdminArea) -> str:
    return (
        "[out:json][timeout:300];\n"
        f"way[\"highway\"]({area.overpass_bbox});\n"
        "out geom;"
    )


def query_overpass(
    query: str,
    settings: AcquisitionSettings,
    session: Optional[requests.Session] = None,
    sleep: Callable[[float], None] = time.sleep,
    max_retries: int = 3,
) -> Dict[str, Any]:
    """Execute an Overpass query with retries; returns the decoded JSON."""
    session = session or requests.Session()
    delay = settings.initial_backoff_s

    for attempt in range(max_retries):
        try:
            resp = session.post(settings.overpass_url, data={"data": query},
                                timeout=settings.request_timeout_s)
            resp.raise_for_status()
            payload = resp.json()
        except (requests.RequestException, ValueError) as exc:
            if attempt < max_retries - 1:
                log.warning("Overpass retry %d/%d after error: %s", attempt + 1, max_retries, exc)
                sleep(min(delay, settings.max_backoff_s))
                delay *= 2
                continue
            raise AcquisitionError(f"Overpass query failed: {exc}") from exc

        if not isinstance(payload, dict) or not isinstance(payload.get("elements"), list):
            raise AcquisitionError("Overpass response has no 'elements' list")
        log.info("Overpass returned %d elements", len(payload["elements"]))
        return payload

    raise AcquisitionError("Overpass query failed")  # pragma: no cover


# ────────────────────────────────────────────────────────────────────────────
# ② Bulk-area job
# ────────────────────────────────────────────────────────────────────────────
@dataclass(frozen=True)
class AreaJob:
    uuid: str
    status_url: str


class BulkAreaClient:
    """Three-step download: submit → poll → stream."""

    def __init__(
        self,
        settings: AcquisitionSettings,
        session: Optional[requests.Session] = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.settings = settings
        self.session = session or requests.Session()
        self._sleep = sleep
        self._clock = clock

    @property
    def _headers(self) -> Dict[str, str]:
        return {"Referer": self.settings.referer, "Origin": self.settings.referer.rstrip("/")}

    def _get_json(self, url: str) -> Dict[str, Any]:
        try:
            resp = self.session.get(url, headers=self._headers, timeout=self.settings.request_timeout_s)
            resp.raise_for_status()
            payload = resp.json()
        except (requests.RequestException, ValueError) as exc:
            raise AcquisitionError(f"GET {url} failed: {exc}") from exc
        if not isinstance(payload, dict):
            raise AcquisitionError(f"GET {url} returned non-object JSON")
        return payload

    # step 1
    def submit(self, area: AdminArea) -> AreaJob:
        url = f"{self.settings.bulk_base_url}/osm"
        body = {"name": area.name, "region": {"type": "bbox", "data": area.bounding_box}}
        try:
            # first GET sets the session cookie the service expects
            self.session.get(url, timeout=self.settings.request_timeout_s)
            resp = self.session.post(url, json=body, headers=self._headers,
                                     timeout=self.settings.request_timeout_s)
            resp.raise_for_status()
            payload = resp.json()
        except (requests.RequestException, ValueError) as exc:
            raise AcquisitionError(f"area request for '{area.name}' failed: {exc}") from exc

        uuid, status_url = payload.get("uuid"), payload.get("url")
        if not uuid or not status_url:
            raise AcquisitionError(f"malformed area-request response: {payload!r}")
        log.info("Area job %s submitted for %s", uuid, area.name)
        return AreaJob(str(uuid), str(status_url))

    # step 2
    def wait_until_ready(self, job: AreaJob, cancel: Optional[threading.Event] = None) -> str:
        """Poll until complete; returns the download uuid."""
        s = self.settings
        deadline = self._clock() + s.timeout_s
        delay = s.initial_backoff_s

        for attempt in range(1, s.max_attempts + 1):
            if cancel is not None and cancel.is_set():
                raise AcquisitionError(f"area job {job.uuid} cancelled")

            status = self._get_json(job.status_url)
            if status.get("complete"):
                uuid = status.get("uuid") or job.uuid
                log.info("Area job %s complete after %d polls", job.uuid, attempt)
                return str(uuid)

            remaining = deadline - self._clock()
            if remaining <= 0:
                break
            wait = min(delay, s.max_backoff_s, remaining)
            log.debug("Area job %s not ready (poll %d/%d) – waiting %.1fs",
                      job.uuid, attempt, s.max_attempts, wait)
            if cancel is not None:
                if cancel.wait(wait):
                    raise AcquisitionError(f"area job {job.uuid} cancelled")
            else:
                self._sleep(wait)
            delay = delay * 2 if delay > 0 else s.initial_backoff_s

        raise AcquisitionError(
            f"area job {job.uuid} not complete after {s.max_attempts} polls / {s.timeout_s:.0f}s"
        )

    # step 3
    def download(self, uuid: str, dest: Path | str) -> Path:
        dest = Path(dest)
        dest.parent.mkdir(parents=True, exist_ok=True)
        url = f"{self.settings.bulk_base_url}/{uuid}/download"
        tmp = dest.with_name(dest.name + ".part")
        try:
            with self.session.get(url, headers=self._headers, stream=True,
                                  timeout=self.settings.request_timeout_s) as resp:
                resp.raise_for_status()
                with tmp.open("wb") as fh:
                    for chunk in resp.iter_content(chunk_size=_STREAM_CHUNK):
                        if chunk:
                            fh.write(chunk)
        except (requests.RequestException, OSError) as exc:
            tmp.unlink(missing_ok=True)
            raise AcquisitionError(f"download of {uuid} failed: {exc}") from exc
        tmp.replace(dest)
        log.info("Extract %s written to %s (%d bytes)", uuid, dest, dest.stat().st_size)
        return dest

    def fetch(self, area: AdminArea, dest: Path | str, cancel: Optional[threading.Event] = None) -> Path:
        job = self.submit(area)
        uuid = self.wait_until_ready(job, cancel)
        return self.download(uuid, dest)


__all__ = [
    "AdminArea",
    "admin_area",
    "overpass_query",
    "query_overpass",
    "AreaJob",
    "BulkAreaClient",
]
