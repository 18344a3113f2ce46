from __future__ import annotations

import argparse
import json
from dataclasses import asdict
from typing import List, Optional

from .errors import DetectionInProgress, PersistenceError
from .runtime import build_services, configure_logging
from .services.local_installations import LocalInstallationStore
from .services.reference_catalog import ReferenceCatalogStore


def _open_services(args: argparse.Namespace):
    catalog = ReferenceCatalogStore.open(args.catalog) if args.catalog else None
    installations = LocalInstallationStore.open(args.local_db) if args.local_db else None
    return build_services(catalog=catalog, installations=installations)


def _print_json(payload) -> None:
    print(json.dumps(payload, ensure_ascii=False, indent=2, default=str))


def _cmd_detect(args: argparse.Namespace) -> int:
    services = _open_services(args)
    services.detection.enrichment_enabled = False
    try:
        summary = services.detection.run(blocking=False)
    except DetectionInProgress:
        raise SystemExit("a detection pass is already running")
    except PersistenceError as exc:
        raise SystemExit(f"detection failed: {exc}")
    _print_json(summary.as_dict())
    if args.enrich:
        _print_json(services.scheduler.run().as_dict())
    return 0


def _cmd_list(args: argparse.Namespace) -> int:
    services = _open_services(args)
    views = services.query.query(category=args.category, source=args.source)
    if args.json:
        _print_json([asdict(view) for view in views])
        return 0
    for view in views:
        location = view.install_location or view.executable_path or "-"
        print(f"{view.name}\t{view.source}\t{view.category}\t{location}")
    print(f"{len(views)} titles")
    return 0


def _cmd_sources(args: argparse.Namespace) -> int:
    services = _open_services(args)
    for source in services.query.available_sources():
        print(source)
    return 0


def _cmd_stats(args: argparse.Namespace) -> int:
    _print_json(_open_services(args).query.statistics())
    return 0


def _cmd_enrich(args: argparse.Namespace) -> int:
    services = _open_services(args)
    if args.max_batches:
        services.scheduler.max_batches = max(1, args.max_batches)
    _print_json(services.scheduler.run().as_dict())
    return 0


def _cmd_serve(args: argparse.Namespace) -> int:
    import uvicorn

    from .main import create_app

    app = create_app(services=_open_services(args))
    uvicorn.run(app, host=args.host, port=args.port, log_level=args.log_level.lower())
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="softcatalog", description="Installed software catalog")
    parser.add_argument("--catalog", default="", help="Reference catalog database file")
    parser.add_argument("--local-db", default="", help="Local installation database file")
    parser.add_argument("--log-level", default="INFO", help="Logging level, e.g. DEBUG")
    sub = parser.add_subparsers(dest="command", required=True)

    detect = sub.add_parser("detect", help="Run a full detection pass")
    detect.add_argument("--enrich", action="store_true", help="Enrich new entries afterwards")
    detect.set_defaults(handler=_cmd_detect)

    listing = sub.add_parser("list", help="List installed software")
    listing.add_argument("--category", default=None, help="Only this category, e.g. Games")
    listing.add_argument("--source", default=None, help="Only this source, e.g. Steam")
    listing.add_argument("--json", action="store_true", help="Print JSON instead of a table")
    listing.set_defaults(handler=_cmd_list)

    sources = sub.add_parser("sources", help="List sources with installed titles")
    sources.set_defaults(handler=_cmd_sources)

    stats = sub.add_parser("stats", help="Counts by category and source")
    stats.set_defaults(handler=_cmd_stats)

    enrich = sub.add_parser("enrich", help="Run the metadata enrichment loop once")
    enrich.add_argument("--max-batches", type=int, default=0, help="Override the batch limit")
    enrich.set_defaults(handler=_cmd_enrich)

    serve = sub.add_parser("serve", help="Run the HTTP API")
    serve.add_argument("--host", default="127.0.0.1")
    serve.add_argument("--port", type=int, default=8765)
    serve.set_defaults(handler=_cmd_serve)
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(args.log_level)
    return args.handler(args)
