from __future__ import annotations

import argparse
import json
import logging
from pathlib import Path

from softcatalog.services.catalog_files import import_csv


def main() -> int:
    parser = argparse.ArgumentParser(description="Build or extend a reference catalog from a CSV file")
    parser.add_argument("csv_path", help="CSV with Name, Source, ExternalId, Category, Publisher columns")
    parser.add_argument("--catalog", default="master_catalog.db", help="Catalog database file to write")
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
    csv_path = Path(args.csv_path).resolve()
    if not csv_path.exists():
        raise SystemExit(f"csv file not found: {csv_path}")

    stats = import_csv(csv_path, Path(args.catalog).resolve())
    print(json.dumps(stats, indent=2))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
