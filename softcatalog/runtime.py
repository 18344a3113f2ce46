"""Wiring of stores and services shared by the API and the command line."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from .core.config import LOG_LEVEL
from .services.detection import DetectionService
from .services.enrichment import EnrichmentScheduler
from .services.local_installations import LocalInstallationStore
from .services.query import QueryService
from .services.reference_catalog import ReferenceCatalogStore

logger = logging.getLogger(__name__)


@dataclass
class Services:
    catalog: ReferenceCatalogStore
    installations: LocalInstallationStore
    scheduler: EnrichmentScheduler
    detection: DetectionService
    query: QueryService


def configure_logging(level: Optional[str] = None) -> None:
    logging.basicConfig(
        level=(level or LOG_LEVEL).upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def build_services(
    catalog: Optional[ReferenceCatalogStore] = None,
    installations: Optional[LocalInstallationStore] = None,
    scheduler: Optional[EnrichmentScheduler] = None,
    detection: Optional[DetectionService] = None,
) -> Services:
    """Open both stores (ensuring their schema) and assemble the services around them."""
    catalog = catalog or ReferenceCatalogStore()
    installations = installations or LocalInstallationStore()
    catalog.ensure_schema()
    installations.ensure_schema()
    scheduler = scheduler or EnrichmentScheduler(catalog)
    detection = detection or DetectionService(catalog, installations, scheduler=scheduler)
    return Services(
        catalog=catalog,
        installations=installations,
        scheduler=scheduler,
        detection=detection,
        query=QueryService(catalog, installations),
    )
