from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from softcatalog.core.config import CATALOG_DATABASE_URL, CATALOG_DOWNLOAD_URL
from softcatalog.errors import CatalogDistributionError
from softcatalog.services.catalog_files import check_catalog_availability, download_catalog, replace_catalog


def _default_catalog_path() -> str:
    prefix = "sqlite:///"
    if CATALOG_DATABASE_URL.startswith(prefix):
        return CATALOG_DATABASE_URL[len(prefix):]
    return "master_catalog.db"


def _print_progress(percent: int) -> None:
    sys.stdout.write(f"\rDownloading catalog: {percent:3d}%")
    sys.stdout.flush()
    if percent >= 100:
        sys.stdout.write("\n")


def main() -> int:
    parser = argparse.ArgumentParser(description="Download a published catalog and swap it in")
    parser.add_argument("--url", default=CATALOG_DOWNLOAD_URL, help="Catalog download URL")
    parser.add_argument("--catalog", default=_default_catalog_path(), help="Catalog file to replace")
    parser.add_argument("--check", action="store_true", help="Only report whether the URL is reachable")
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
    if args.check:
        available = check_catalog_availability(args.url)
        print("available" if available else "unavailable")
        return 0 if available else 1

    catalog_path = Path(args.catalog).resolve()
    staging = catalog_path.with_name(catalog_path.name + ".download")
    try:
        download_catalog(args.url, staging, progress=_print_progress)
        replace_catalog(staging, catalog_path)
    except CatalogDistributionError as exc:
        raise SystemExit(str(exc))
    finally:
        staging.unlink(missing_ok=True)
    print(f"Catalog installed at {catalog_path}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
