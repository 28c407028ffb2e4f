"""
config.py – runtime settings

Order of precedence (last wins):
  1. defaults below
  2. ``lineplanner.toml`` (or the file passed to ``load_settings``)
  3. ``LINEPLANNER_<FIELD>`` environment variables, e.g.
     ``LINEPLANNER_COVERAGE_RADIUS_M=400`` or ``LINEPLANNER_CACHE_DIR=/tmp/c``
"""
from __future__ import annotations

import logging
import os
import tomllib
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from . import DEFAULT_CACHE_DIR, DEFAULT_DATA_DIR
from .errors import InputError
from .models import Method, Routing

logger = logging.getLogger("lineplanner.config")

ENV_PREFIX = "LINEPLANNER_"
DEFAULT_CONFIG_FILE = Path("lineplanner.toml")


class AcquisitionSettings(BaseModel):
    model_config = ConfigDict(extra="forbid")

    overpass_url: str = "https://overpass-api.de/api/interpreter"
    bulk_base_url: str = "https://app.protomaps.com/downloads"
    referer: str = "https://app.protomaps.com/"
    request_timeout_s: float = Field(60.0, gt=0)
    max_attempts: int = Field(30, ge=1)
    initial_backoff_s: float = Field(1.0, ge=0)
    max_backoff_s: float = Field(30.0, ge=0)
    timeout_s: float = Field(900.0, gt=0)


class Settings(BaseModel):
    model_config = ConfigDict(extra="forbid")

    cache_dir: Path = DEFAULT_CACHE_DIR
    data_dir: Path = DEFAULT_DATA_DIR
    coverage_radius_m: float = Field(500.0, ge=0)
    search_radius_m: float = Field(300.0, ge=0)
    sample_interval_m: float = Field(25.0, gt=0)
    default_method: Method = Method.RELATIVE
    default_routing: Routing = Routing.NETWORK
    max_workers: Optional[int] = Field(None, ge=1)
    log_level: str = "INFO"
    acquisition: AcquisitionSettings = Field(default_factory=AcquisitionSettings)

    @property
    def workers(self) -> int:
        return self.max_workers or os.cpu_count() or 1


def _env_overrides(environ: Mapping[str, str]) -> Dict[str, Any]:
    out: Dict[str, Any] = {}
    acq: Dict[str, Any] = {}
    for key, value in environ.items():
        if not key.startswith(ENV_PREFIX):
            continue
        name = key[len(ENV_PREFIX):].lower()
        if name.startswith("acquisition_"):
            acq[name[len("acquisition_"):]] = value
        elif name in Settings.model_fields:
            out[name] = value
    if acq:
        out["acquisition"] = acq
    return out


def load_settings(path: Path | str | None = None, environ: Optional[Mapping[str, str]] = None) -> Settings:
    """Build Settings from file + environment; bad values raise InputError."""
    environ = os.environ if environ is None else environ
    data: Dict[str, Any] = {}

    cfg_file = Path(path) if path is not None else DEFAULT_CONFIG_FILE
    if cfg_file.is_file():
        with cfg_file.open("rb") as fh:
            try:
                data = tomllib.load(fh)
            except tomllib.TOMLDecodeError as err:
                raise InputError(f"{cfg_file}: {err}") from err
        logger.info("Loaded settings from %s", cfg_file)
    elif path is not None:
        raise FileNotFoundError(cfg_file)

    env = _env_overrides(environ)
    if "acquisition" in env:
        data["acquisition"] = {**data.get("acquisition", {}), **env.pop("acquisition")}
    data.update(env)

    try:
        return Settings.model_validate(data)
    except ValidationError as err:
        raise InputError(f"invalid settings: {err}") from err


__all__ = ["AcquisitionSettings", "Settings", "load_settings"]
