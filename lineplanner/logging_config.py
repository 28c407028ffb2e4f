"""Console logging for CLI runs."""
import logging

from rich.logging import RichHandler

# third-party loggers that flood INFO with per-request lines
_NOISY = ("urllib3", "requests", "osmnx", "pyogrio", "fiona")


def configure(level: str = "INFO") -> logging.Logger:
    """Route everything through one RichHandler; returns the package logger."""
    level = level.upper()
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(rich_tracebacks=True, show_time=False, show_path=False)],
        force=True,
    )
    numeric = logging.getLevelName(level)
    quiet = max(numeric, logging.WARNING) if isinstance(numeric, int) else logging.WARNING
    for name in _NOISY:
        logging.getLogger(name).setLevel(quiet)
    return logging.getLogger("lineplanner")
