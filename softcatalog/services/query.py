"""Read side: join installation facts with their catalog identities."""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional

from ..categories import SoftwareCategory
from .local_installations import LocalInstallationStore
from .reference_catalog import ReferenceCatalogStore

logger = logging.getLogger(__name__)


@dataclass
class MergedSoftwareView:
    installation_id: int
    reference_id: int
    name: str
    source: str
    category: str
    external_id: Optional[str] = None
    publisher: Optional[str] = None
    description: Optional[str] = None
    genres: List[str] = field(default_factory=list)
    developers: List[str] = field(default_factory=list)
    release_date: Optional[datetime] = None
    cover_image_url: Optional[str] = None
    install_location: Optional[str] = None
    executable_path: Optional[str] = None
    icon_path: Optional[str] = None
    version: Optional[str] = None
    install_date: Optional[datetime] = None
    size_bytes: Optional[int] = None
    last_detected: Optional[datetime] = None
    last_enriched_date: Optional[datetime] = None

    @property
    def is_game(self) -> bool:
        return self.category == SoftwareCategory.GAMES.value


def _matches(value: Optional[str], wanted: Optional[str]) -> bool:
    if not wanted:
        return True
    return (value or "").casefold() == wanted.strip().casefold()


def _category_filter(category) -> Optional[str]:
    if category is None:
        return None
    if isinstance(category, SoftwareCategory):
        return None if category == SoftwareCategory.ALL else category.value
    text = str(category).strip()
    if not text or text.casefold() == SoftwareCategory.ALL.value.casefold():
        return None
    return text


class QueryService:
    def __init__(self, catalog: ReferenceCatalogStore, installations: LocalInstallationStore) -> None:
        self.catalog = catalog
        self.installations = installations

    def query(self, category=None, source: Optional[str] = None) -> List[MergedSoftwareView]:
        """Installed software, optionally narrowed to one category and/or source.

        Both filters are case-insensitive exact matches. Installations that
        point at a missing catalog entry are logged and left out.
        """
        wanted_category = _category_filter(category)
        references = {entry.id: entry for entry in self.catalog.get_all_entries()}
        selected = {
            entry_id
            for entry_id, entry in references.items()
            if _matches(entry.category, wanted_category) and _matches(entry.source, source)
        }

        results: List[MergedSoftwareView] = []
        orphans = 0
        for installation in self.installations.get_all():
            reference = references.get(installation.reference_id)
            if reference is None:
                orphans += 1
                logger.warning(
                    "Installation %s references missing catalog entry %s; skipped",
                    installation.id,
                    installation.reference_id,
                )
                continue
            if reference.id not in selected:
                continue
            results.append(
                MergedSoftwareView(
                    installation_id=installation.id,
                    reference_id=reference.id,
                    name=reference.name,
                    source=reference.source,
                    category=reference.category or SoftwareCategory.OTHER.value,
                    external_id=reference.external_id,
                    publisher=reference.publisher,
                    description=reference.description,
                    genres=list(reference.genres or []),
                    developers=list(reference.developers or []),
                    release_date=reference.release_date,
                    cover_image_url=reference.cover_image_url,
                    install_location=installation.install_location,
                    executable_path=installation.executable_path,
                    icon_path=installation.icon_path,
                    version=installation.version,
                    install_date=installation.install_date,
                    size_bytes=installation.size_bytes,
                    last_detected=installation.last_detected,
                    last_enriched_date=reference.last_enriched_date,
                )
            )

        if orphans:
            logger.warning("%d installations skipped for missing catalog entries", orphans)
        results.sort(key=lambda view: (view.name.casefold(), view.installation_id))
        return results

    def available_sources(self) -> List[str]:
        """Sources that currently have at least one installed title."""
        return sorted({view.source for view in self.query() if view.source}, key=str.casefold)

    def statistics(self) -> Dict[str, object]:
        views = self.query()
        return {
            "total": len(views),
            "by_category": dict(sorted(Counter(view.category for view in views).items())),
            "by_source": dict(sorted(Counter(view.source for view in views).items())),
            "catalog_entries": self.catalog.count(),
            "installations": self.installations.get_count(),
        }
