"""Building, downloading and swapping catalog database files."""

from __future__ import annotations

import csv
import logging
import os
import shutil
from pathlib import Path
from typing import Callable, Dict, Optional

import requests

from ..core.config import CATALOG_DOWNLOAD_TIMEOUT_SECONDS, CATALOG_DOWNLOAD_URL, HTTP_USER_AGENT
from ..errors import CatalogDistributionError, PersistenceError
from .reference_catalog import ReferenceCatalogStore

logger = logging.getLogger(__name__)

_CHUNK_SIZE = 64 * 1024


def import_csv(csv_path, catalog_path) -> Dict[str, int]:
    """Find-or-create one catalog entry per CSV row.

    Expected columns: Name, Source, ExternalId, Category, Publisher. Rows
    without a name or source are counted as skipped.
    """
    store = ReferenceCatalogStore.open(catalog_path)
    stats = {"rows": 0, "created": 0, "existing": 0, "skipped": 0, "failed": 0}
    with open(csv_path, newline="", encoding="utf-8-sig") as handle:
        for row in csv.DictReader(handle):
            stats["rows"] += 1
            name = (row.get("Name") or "").strip()
            source = (row.get("Source") or "").strip()
            if not name or not source:
                stats["skipped"] += 1
                continue
            try:
                _entry, created = store.ensure_entry(
                    name,
                    source,
                    external_id=(row.get("ExternalId") or "").strip() or None,
                    category=(row.get("Category") or "").strip() or None,
                    publisher=(row.get("Publisher") or "").strip() or None,
                )
            except PersistenceError as exc:
                logger.warning("CSV row %d (%s) not imported: %s", stats["rows"], name, exc)
                stats["failed"] += 1
                continue
            stats["created" if created else "existing"] += 1
    logger.info("Imported %s into %s: %s", csv_path, catalog_path, stats)
    return stats


def download_catalog(
    url: Optional[str],
    destination,
    progress: Optional[Callable[[int], None]] = None,
    session: Optional[requests.Session] = None,
    timeout: int = CATALOG_DOWNLOAD_TIMEOUT_SECONDS,
) -> Path:
    """Stream a catalog file to ``destination``, reporting whole percentages."""
    download_url = (url or CATALOG_DOWNLOAD_URL or "").strip()
    if not download_url:
        raise CatalogDistributionError("no catalog download URL configured")
    target = Path(destination)
    target.parent.mkdir(parents=True, exist_ok=True)
    partial = target.with_name(target.name + ".part")

    getter = session.get if session is not None else requests.get
    try:
        response = getter(
            download_url, stream=True, timeout=timeout, headers={"User-Agent": HTTP_USER_AGENT}
        )
        response.raise_for_status()
        total = int(response.headers.get("Content-Length") or 0)
        written = 0
        last_percent = -1
        with open(partial, "wb") as handle:
            for chunk in response.iter_content(chunk_size=_CHUNK_SIZE):
                if not chunk:
                    continue
                handle.write(chunk)
                written += len(chunk)
                if progress is not None and total:
                    percent = min(100, written * 100 // total)
                    if percent != last_percent:
                        last_percent = percent
                        progress(percent)
    except (requests.RequestException, OSError) as exc:
        partial.unlink(missing_ok=True)
        raise CatalogDistributionError(f"catalog download failed: {exc}") from exc

    if written == 0:
        partial.unlink(missing_ok=True)
        raise CatalogDistributionError("catalog download produced an empty file")
    os.replace(partial, target)
    if progress is not None and last_percent != 100:
        progress(100)
    logger.info("Downloaded catalog from %s (%.2f MB)", download_url, written / 1024 / 1024)
    return target


def check_catalog_availability(url: Optional[str] = None, session: Optional[requests.Session] = None) -> bool:
    download_url = (url or CATALOG_DOWNLOAD_URL or "").strip()
    if not download_url:
        return False
    header = session.head if session is not None else requests.head
    try:
        response = header(download_url, timeout=10, allow_redirects=True, headers={"User-Agent": HTTP_USER_AGENT})
    except requests.RequestException as exc:
        logger.info("Catalog URL %s unreachable: %s", download_url, exc)
        return False
    return response.status_code == 200


def replace_catalog(new_file, catalog_path, validate: bool = True) -> Path:
    """Swap ``catalog_path`` for ``new_file`` keeping a ``.bak`` until the new file opens."""
    source = Path(new_file)
    target = Path(catalog_path)
    if not source.is_file() or source.stat().st_size == 0:
        raise CatalogDistributionError(f"replacement catalog {source} is missing or empty")

    backup = target.with_name(target.name + ".bak")
    had_previous = target.exists()
    try:
        target.parent.mkdir(parents=True, exist_ok=True)
        if had_previous:
            shutil.copy2(target, backup)
        shutil.copy2(source, target)
        if validate:
            store = ReferenceCatalogStore.open(target)
            try:
                store.count()
            finally:
                store.engine.dispose()
    except Exception as exc:
        logger.error("Catalog replacement failed, restoring previous file: %s", exc)
        if had_previous and backup.exists():
            shutil.copy2(backup, target)
        elif target.exists():
            target.unlink()
        raise CatalogDistributionError(f"catalog replacement failed: {exc}") from exc

    logger.info("Catalog at %s replaced from %s", target, source)
    return target
