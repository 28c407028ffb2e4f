# ───────────────────────────────────────────────────────────
from __future__ import annotations
import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any, Optional, Sequence

from rich.console import Console

from .acquire import BulkAreaClient, admin_area, overpass_query, query_overpass
from .config import load_settings
from .errors import LinePlannerError
from .logging_config import configure
from .service import add_layer_file, bootstrap, coverage_info, find_station, station_info

log = logging.getLogger("lineplanner.cli")
console = Console()


def _read_payload(path: str) -> Any:
    if path == "-":
        return json.load(sys.stdin)
    with Path(path).open("r", encoding="utf-8") as fh:
        return json.load(fh)


def _parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="lineplanner", description="Transit line coverage & station placement")
    p.add_argument("--config", help="Path to lineplanner.toml")
    p.add_argument("--extract", help="Map extract to use instead of the first one in data_dir")
    p.add_argument("--log-level", default=None, help="DEBUG, INFO, WARNING …")
    sub = p.add_subparsers(dest="command", required=True)

    f = sub.add_parser("fetch", help="Download a map extract for an admin area")
    f.add_argument("area", help="Admin area name, e.g. 'Karlsruhe, Germany'")
    f.add_argument("--bulk", action="store_true",
                   help="Raw .osm.pbf via the bulk-area job (convert to .gpkg before building)")

    sub.add_parser("build", help="Preprocess the extract into the cache")

    for name, text in (("coverage", "Per-category coverage of stations"),
                       ("find-station", "Best new station along a route")):
        c = sub.add_parser(name, help=text)
        c.add_argument("request", help="JSON request file ('-' for stdin)")
        c.add_argument("--details", action="store_true", help="List attributed centroids")

    ci = sub.add_parser("coverage-info", help="Nearest station for every centroid")
    ci.add_argument("request", help="JSON request file ('-' for stdin)")
    ci.add_argument("--routing", default="network", choices=["network", "straight_line"])

    a = sub.add_parser("add-layer", help="Merge a centroid file into the cached layers")
    a.add_argument("path")
    a.add_argument("--area-id")
    return p


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = _parser().parse_args(argv)
    configure(args.log_level or "INFO")

    try:
        settings = load_settings(args.config)
        if args.log_level is None and settings.log_level.upper() != "INFO":
            configure(settings.log_level)

        if args.command == "fetch":
            area = admin_area(args.area)
            settings.data_dir.mkdir(parents=True, exist_ok=True)
            slug = "".join(ch if ch.isalnum() else "_" for ch in args.area).strip("_").lower()
            if args.bulk:
                dest = BulkAreaClient(settings.acquisition).fetch(area, settings.data_dir / f"{slug}.osm.pbf")
                log.warning("%s is raw PBF; convert it (e.g. ogr2ogr -f GPKG) before `build`", dest.name)
            else:
                payload = query_overpass(overpass_query(area), settings.acquisition)
                dest = settings.data_dir / f"{slug}.json"
                dest.write_text(json.dumps(payload), encoding="utf-8")
            log.info("Extract → %s", dest)
            return 0

        state = bootstrap(settings, Path(args.extract) if args.extract else None)
        with state:
            if args.command == "build":
                snap = state.snapshot()
                console.print_json(data={
                    "source": snap.source_key,
                    "nodes": snap.streets.node_count,
                    "edges": snap.streets.edge_count,
                    "components": snap.streets.component_count,
                    "layers": snap.layers.summary(),
                })
            elif args.command == "coverage":
                fut = state.submit(lambda s, p: station_info(p, s, settings, args.details),
                                   _read_payload(args.request))
                console.print_json(data=fut.result())
            elif args.command == "find-station":
                fut = state.submit(lambda s, p: find_station(p, s, settings), _read_payload(args.request))
                console.print_json(data=fut.result())
            elif args.command == "coverage-info":
                fut = state.submit(lambda s, p: coverage_info(p, args.routing, s, settings),
                                   _read_payload(args.request))
                console.print_json(data=fut.result())
            elif args.command == "add-layer":
                console.print_json(data=add_layer_file(state, args.path, settings, args.area_id))
    except (LinePlannerError, FileNotFoundError) as exc:
        log.error("%s", exc)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
