"""
lineplanner – transit line coverage & station placement

Importing the package sets up a plain stderr log format (level from
``LINEPLANNER_LOG_LEVEL``); the CLI swaps it for a rich console handler.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Final

__version__ = "1.0.0"
__all__ = ["__version__", "logger", "PROJECT_ROOT", "DEFAULT_CACHE_DIR", "DEFAULT_DATA_DIR"]

# ── default locations (relative to a source checkout) ──
PROJECT_ROOT: Final[Path] = Path(__file__).resolve().parent.parent
DEFAULT_CACHE_DIR: Final[Path] = PROJECT_ROOT / "cache"     # preprocessed graphs, layers
DEFAULT_DATA_DIR: Final[Path] = PROJECT_ROOT / "pbf"        # downloaded map extracts

_level = os.getenv("LINEPLANNER_LOG_LEVEL", "INFO").upper()
logging.basicConfig(
    level=_level,
    format="%(asctime)s │ %(levelname)-8s │ %(name)s │ %(message)s",
    datefmt="%H:%M:%S",
)

logger = logging.getLogger("lineplanner")
