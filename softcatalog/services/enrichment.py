"""Rate-limited background enrichment of catalog entries."""

from __future__ import annotations

import logging
import threading
from dataclasses import asdict, dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Callable, Dict, Optional

from ..core.config import (
    ENRICHMENT_BATCH_DELAY_SECONDS,
    ENRICHMENT_BATCH_SIZE,
    ENRICHMENT_ITEM_DELAY_SECONDS,
    ENRICHMENT_MAX_AGE_DAYS,
    ENRICHMENT_MAX_BATCHES,
)
from ..errors import PersistenceError
from ..models import ReferenceEntry, utcnow
from .metadata import MetadataFetcher
from .reference_catalog import ReferenceCatalogStore, start_of_utc_day

logger = logging.getLogger(__name__)

# One enrichment loop per process, whichever scheduler instance starts it.
_ACTIVE_LOOP_LOCK = threading.Lock()


class EnrichmentState(str, Enum):
    FRESH = "Fresh"
    STALE = "Stale"
    ATTEMPTED_TODAY = "AttemptedToday"


def enrichment_state(
    last_enriched: Optional[datetime],
    last_attempt: Optional[datetime],
    now: datetime,
    max_age_days: int = ENRICHMENT_MAX_AGE_DAYS,
) -> EnrichmentState:
    """Derive the state from the two timestamps; nothing else is stored."""
    if last_enriched is not None and last_enriched >= now - timedelta(days=max_age_days):
        return EnrichmentState.FRESH
    if last_attempt is not None and last_attempt >= start_of_utc_day(now):
        return EnrichmentState.ATTEMPTED_TODAY
    return EnrichmentState.STALE


def entry_state(
    entry: ReferenceEntry, now: datetime, max_age_days: int = ENRICHMENT_MAX_AGE_DAYS
) -> EnrichmentState:
    return enrichment_state(entry.last_enriched_date, entry.last_enrichment_attempt, now, max_age_days)


@dataclass
class EnrichmentStats:
    batches: int = 0
    processed: int = 0
    enriched: int = 0
    not_found: int = 0
    failed: int = 0
    stop_reason: str = ""
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None

    def as_dict(self) -> Dict[str, object]:
        return asdict(self)


class EnrichmentScheduler:
    def __init__(
        self,
        catalog: ReferenceCatalogStore,
        fetcher: Optional[MetadataFetcher] = None,
        batch_size: int = ENRICHMENT_BATCH_SIZE,
        max_batches: int = ENRICHMENT_MAX_BATCHES,
        batch_delay_seconds: float = ENRICHMENT_BATCH_DELAY_SECONDS,
        item_delay_seconds: float = ENRICHMENT_ITEM_DELAY_SECONDS,
        max_age_days: int = ENRICHMENT_MAX_AGE_DAYS,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.catalog = catalog
        self.fetcher = fetcher or MetadataFetcher.default()
        self.batch_size = max(1, int(batch_size))
        self.max_batches = max(1, int(max_batches))
        self.batch_delay_seconds = max(0.0, float(batch_delay_seconds))
        self.item_delay_seconds = max(0.0, float(item_delay_seconds))
        self.max_age_days = max_age_days
        self._clock = clock
        self._cancel = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._state_lock = threading.Lock()
        self._current: Optional[EnrichmentStats] = None
        self._last: Optional[EnrichmentStats] = None

    def is_running(self) -> bool:
        return _ACTIVE_LOOP_LOCK.locked()

    def cancel(self) -> None:
        self._cancel.set()

    def status(self) -> Dict[str, object]:
        with self._state_lock:
            current = self._current.as_dict() if self._current else None
            last = self._last.as_dict() if self._last else None
        return {"running": self.is_running(), "current": current, "last": last}

    def start_background(self) -> bool:
        """Kick off ``run`` on a daemon thread; False when a loop is already active."""
        if self.is_running() or (self._thread is not None and self._thread.is_alive()):
            return False
        self._thread = threading.Thread(target=self._run_in_background, name="enrichment", daemon=True)
        self._thread.start()
        return True

    def _run_in_background(self) -> None:
        try:
            self.run()
        except Exception:
            logger.exception("Background enrichment stopped unexpectedly")

    def run(self) -> EnrichmentStats:
        """Enrich batches until caught up, the batch limit is hit or ``cancel`` is called."""
        if not _ACTIVE_LOOP_LOCK.acquire(blocking=False):
            logger.info("Enrichment already running; skipping this request")
            return EnrichmentStats(stop_reason="already_running")
        try:
            self._cancel.clear()
            stats = EnrichmentStats(started_at=self._clock())
            with self._state_lock:
                self._current = stats
            self._run_batches(stats)
            stats.finished_at = self._clock()
            logger.info(
                "Enrichment finished (%s): batches=%d processed=%d enriched=%d not_found=%d failed=%d",
                stats.stop_reason,
                stats.batches,
                stats.processed,
                stats.enriched,
                stats.not_found,
                stats.failed,
            )
            return stats
        finally:
            with self._state_lock:
                if self._current is not None:
                    self._last = self._current
                self._current = None
            _ACTIVE_LOOP_LOCK.release()

    def _run_batches(self, stats: EnrichmentStats) -> None:
        for batch_number in range(1, self.max_batches + 1):
            if self._cancel.is_set():
                stats.stop_reason = "cancelled"
                return
            batch = self.catalog.get_unenriched_entries(
                max_age_days=self.max_age_days, max_results=self.batch_size, now=self._clock()
            )
            if not batch:
                stats.stop_reason = "caught_up"
                return

            stats.batches += 1
            logger.info("Enrichment batch %d: %d entries", batch_number, len(batch))
            for index, entry in enumerate(batch):
                if self._cancel.is_set():
                    stats.stop_reason = "cancelled"
                    return
                self.enrich_entry(entry, stats)
                if self.item_delay_seconds and index < len(batch) - 1:
                    self._cancel.wait(self.item_delay_seconds)

            if batch_number < self.max_batches and self.batch_delay_seconds:
                if self._cancel.wait(self.batch_delay_seconds):
                    stats.stop_reason = "cancelled"
                    return
        stats.stop_reason = "batch_limit"

    def enrich_entry(self, entry: ReferenceEntry, stats: Optional[EnrichmentStats] = None) -> bool:
        """Fetch metadata for one entry; the attempt is stamped whatever happens."""
        stats = stats if stats is not None else EnrichmentStats()
        stats.processed += 1
        now = self._clock()
        errored = False
        try:
            result, found = self.fetcher.fetch(
                entry.name, entry.source, entry.external_id, entry.category, entry.publisher
            )
        except Exception:
            logger.exception("Metadata fetch failed for %r (%s)", entry.name, entry.source)
            result, found, errored = None, False, True

        try:
            if found and result is not None:
                self.catalog.apply_metadata(entry.id, result, now)
                stats.enriched += 1
                logger.debug("Enriched %r from %s", entry.name, result.source)
                return True
            self.catalog.record_attempt(entry.id, now)
        except PersistenceError as exc:
            logger.error("Could not record enrichment of %r: %s", entry.name, exc)
            stats.failed += 1
            return False

        if errored:
            stats.failed += 1
        else:
            stats.not_found += 1
        return False
