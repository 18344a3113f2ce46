from datetime import datetime, timedelta

from softcatalog.services import enrichment as enrichment_module
from softcatalog.services.enrichment import EnrichmentScheduler, EnrichmentState, enrichment_state
from softcatalog.services.metadata import MetadataResult

NOW = datetime(2024, 6, 15, 12, 0, 0)


class FakeFetcher:
    def __init__(self, results=None, error=None, on_fetch=None):
        self.results = results or {}
        self.error = error
        self.on_fetch = on_fetch
        self.calls = []

    def fetch(self, name, source, external_id=None, category=None, publisher=None):
        self.calls.append((name, source, external_id, category))
        if self.on_fetch is not None:
            self.on_fetch()
        if self.error is not None:
            raise self.error
        result = self.results.get(name)
        return result, result is not None


def _scheduler(catalog, clock, fetcher, **kwargs) -> EnrichmentScheduler:
    options = dict(batch_size=10, max_batches=5, batch_delay_seconds=0, item_delay_seconds=0, max_age_days=30)
    options.update(kwargs)
    return EnrichmentScheduler(catalog, fetcher=fetcher, clock=clock, **options)


def test_enrichment_state_is_derived_from_timestamps() -> None:
    assert enrichment_state(None, None, NOW) == EnrichmentState.STALE
    assert enrichment_state(NOW - timedelta(days=2), None, NOW) == EnrichmentState.FRESH
    assert enrichment_state(NOW - timedelta(days=45), NOW - timedelta(hours=1), NOW) == EnrichmentState.ATTEMPTED_TODAY
    assert enrichment_state(None, NOW - timedelta(days=1), NOW) == EnrichmentState.STALE
    assert enrichment_state(NOW - timedelta(days=45), NOW - timedelta(days=3), NOW, max_age_days=60) == EnrichmentState.FRESH


def test_successful_fetch_marks_entry_enriched(catalog, clock) -> None:
    entry = catalog.find_or_create("Portal 2", "Steam", external_id="620", category="Games")
    fetcher = FakeFetcher({"Portal 2": MetadataResult(name="Portal 2", description="Puzzles", source="Steam Store")})

    stats = _scheduler(catalog, clock, fetcher).run()

    assert stats.enriched == 1
    assert stats.stop_reason == "caught_up"
    assert fetcher.calls == [("Portal 2", "Steam", "620", "Games")]
    stored = catalog.get_by_id(entry.id)
    assert stored.description == "Puzzles"
    assert stored.last_enriched_date == clock()


def test_not_found_only_stamps_attempt(catalog, clock) -> None:
    entry = catalog.find_or_create("Internal Tool", "Registry")

    stats = _scheduler(catalog, clock, FakeFetcher()).run()

    assert stats.not_found == 1
    stored = catalog.get_by_id(entry.id)
    assert stored.last_enriched_date is None
    assert stored.last_enrichment_attempt == clock()
    # Rate limited for the rest of the day, so the second run has nothing to do.
    assert _scheduler(catalog, clock, FakeFetcher()).run().processed == 0


def test_fetch_error_is_counted_and_stamped(catalog, clock) -> None:
    entry = catalog.find_or_create("Flaky", "Registry")

    stats = _scheduler(catalog, clock, FakeFetcher(error=RuntimeError("HTTP 500"))).run()

    assert stats.failed == 1
    assert catalog.get_by_id(entry.id).last_enrichment_attempt == clock()


def test_batch_limit_stops_the_loop(catalog, clock) -> None:
    for name in ("One", "Two", "Three"):
        catalog.find_or_create(name, "Registry")

    stats = _scheduler(catalog, clock, FakeFetcher(), batch_size=1, max_batches=2).run()

    assert stats.batches == 2
    assert stats.processed == 2
    assert stats.stop_reason == "batch_limit"
    assert catalog.count_unenriched() == 1


def test_empty_catalog_is_caught_up(catalog, clock) -> None:
    stats = _scheduler(catalog, clock, FakeFetcher()).run()
    assert stats.batches == 0
    assert stats.stop_reason == "caught_up"


def test_cancel_stops_after_current_item(catalog, clock) -> None:
    for name in ("One", "Two", "Three"):
        catalog.find_or_create(name, "Registry")
    fetcher = FakeFetcher()
    scheduler = _scheduler(catalog, clock, fetcher)
    fetcher.on_fetch = scheduler.cancel

    stats = scheduler.run()

    assert stats.stop_reason == "cancelled"
    assert stats.processed == 1
    assert scheduler.status()["last"]["stop_reason"] == "cancelled"


def test_second_loop_is_refused_while_one_runs(catalog, clock) -> None:
    scheduler = _scheduler(catalog, clock, FakeFetcher())
    assert enrichment_module._ACTIVE_LOOP_LOCK.acquire(blocking=False)
    try:
        assert scheduler.is_running() is True
        assert scheduler.run().stop_reason == "already_running"
        assert scheduler.start_background() is False
    finally:
        enrichment_module._ACTIVE_LOOP_LOCK.release()
    assert scheduler.is_running() is False
