"""Full detection pass: reconcile, resolve catalog identities, persist installations."""

from __future__ import annotations

import logging
import threading
from dataclasses import asdict, dataclass
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional, Sequence

from ..core.config import ENRICHMENT_ENABLED, STALE_INSTALL_DAYS
from ..detectors import RegistryInventoryDetector, default_platform_detectors
from ..detectors.base import CandidateRecord, Detector
from ..errors import DetectionInProgress, PersistenceError
from ..models import LocalInstallation, utcnow
from .enrichment import EnrichmentScheduler
from .local_installations import LocalInstallationStore
from .reconciler import Reconciler
from .reference_catalog import ReferenceCatalogStore

logger = logging.getLogger(__name__)

# Full passes are serialized across the whole process.
_DETECTION_LOCK = threading.Lock()


@dataclass
class DetectionSummary:
    candidates: int = 0
    references_created: int = 0
    references_failed: int = 0
    inserted: int = 0
    updated: int = 0
    failed: int = 0
    stale_removed: int = 0
    enrichment_triggered: bool = False
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None

    def as_dict(self) -> Dict[str, object]:
        return asdict(self)


def installation_from_candidate(record: CandidateRecord, reference_id: int) -> LocalInstallation:
    return LocalInstallation(
        reference_id=reference_id,
        install_location=record.install_location,
        executable_path=record.executable_path,
        icon_path=record.icon_path,
        registry_key=record.registry_key,
        version=record.version,
        install_date=record.install_date,
        size_bytes=record.size_bytes,
    )


class DetectionService:
    def __init__(
        self,
        catalog: ReferenceCatalogStore,
        installations: LocalInstallationStore,
        scheduler: Optional[EnrichmentScheduler] = None,
        generic_detector: Optional[Detector] = None,
        detector_factory: Callable[[], Sequence[Detector]] = default_platform_detectors,
        stale_days: int = STALE_INSTALL_DAYS,
        enrichment_enabled: bool = ENRICHMENT_ENABLED,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.catalog = catalog
        self.installations = installations
        self.scheduler = scheduler
        self.generic_detector = generic_detector if generic_detector is not None else RegistryInventoryDetector()
        self.detector_factory = detector_factory
        self.stale_days = stale_days
        self.enrichment_enabled = enrichment_enabled
        self._clock = clock
        self.last_summary: Optional[DetectionSummary] = None

    @staticmethod
    def is_running() -> bool:
        return _DETECTION_LOCK.locked()

    def detect(self) -> List[CandidateRecord]:
        return Reconciler(self.generic_detector, list(self.detector_factory())).reconcile()

    def run(self, blocking: bool = True) -> DetectionSummary:
        """Run one full pass; with ``blocking=False`` a busy guard raises instead of waiting."""
        if not _DETECTION_LOCK.acquire(blocking=blocking):
            raise DetectionInProgress("a detection pass is already running")
        try:
            summary = self._run()
        finally:
            _DETECTION_LOCK.release()
        self.last_summary = summary
        return summary

    def _run(self) -> DetectionSummary:
        summary = DetectionSummary(started_at=self._clock())
        records = self.detect()
        summary.candidates = len(records)

        rows: List[LocalInstallation] = []
        needs_enrichment = False
        for record in records:
            try:
                entry, created = self.catalog.ensure_entry(
                    record.name,
                    record.source,
                    external_id=record.external_id,
                    category=record.category,
                    publisher=record.publisher,
                )
            except (PersistenceError, ValueError) as exc:
                logger.warning("Could not resolve catalog entry for %r (%s): %s", record.name, record.source, exc)
                summary.references_failed += 1
                continue
            if created:
                summary.references_created += 1
            if entry.last_enriched_date is None:
                needs_enrichment = True
            rows.append(installation_from_candidate(record, entry.id))

        result = self.installations.upsert_batch(rows)
        summary.inserted = result.inserted
        summary.updated = result.updated
        summary.failed = result.failed

        cutoff = summary.started_at - timedelta(days=self.stale_days)
        summary.stale_removed = self.installations.remove_stale_entries(cutoff)

        if needs_enrichment and self.enrichment_enabled and self.scheduler is not None:
            summary.enrichment_triggered = self.scheduler.start_background()

        summary.finished_at = self._clock()
        logger.info(
            "Detection finished: candidates=%d created=%d inserted=%d updated=%d failed=%d stale=%d",
            summary.candidates,
            summary.references_created,
            summary.inserted,
            summary.updated,
            summary.failed + summary.references_failed,
            summary.stale_removed,
        )
        return summary


class PeriodicDetection:
    """Re-runs detection every ``interval_seconds`` on a daemon thread."""

    def __init__(self, service: DetectionService, interval_seconds: float) -> None:
        self.service = service
        self.interval_seconds = interval_seconds
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def start(self) -> bool:
        if self.interval_seconds <= 0 or (self._thread is not None and self._thread.is_alive()):
            return False
        self._stop.clear()
        self._thread = threading.Thread(target=self._loop, name="detection-timer", daemon=True)
        self._thread.start()
        return True

    def stop(self) -> None:
        self._stop.set()

    def _loop(self) -> None:
        while not self._stop.wait(self.interval_seconds):
            try:
                self.service.run(blocking=False)
            except DetectionInProgress:
                logger.info("Timed detection skipped; a pass is already running")
            except PersistenceError as exc:
                logger.error("Timed detection failed: %s", exc)
