import pytest

from softcatalog.categories import SoftwareCategory
from softcatalog.detectors.base import CandidateRecord, Detector
from softcatalog.errors import DetectionInProgress
from softcatalog.services import detection as detection_module
from softcatalog.services.detection import DetectionService
from softcatalog.services.query import QueryService

HL2_PATH = r"C:\Steam\steamapps\common\Half-Life 2"


class ListDetector(Detector):
    def __init__(self, source, records, claims=None):
        self.source = source
        self.records = records
        self.claims = claims or {}

    def list_candidates(self):
        return list(self.records)

    def classify_path(self, path):
        record = self.claims.get(path)
        return (record is not None), record


class RecordingScheduler:
    def __init__(self):
        self.starts = 0

    def start_background(self):
        self.starts += 1
        return True


def _hl2():
    return CandidateRecord(
        name="Half-Life 2", source="Steam", external_id="220", install_location=HL2_PATH, category=SoftwareCategory.GAMES
    )


def _service(catalog, installations, clock, generic_records, scheduler=None, **kwargs):
    generic = ListDetector("Registry", generic_records)
    steam = ListDetector("Steam", [_hl2()], claims={HL2_PATH: _hl2()})
    return DetectionService(
        catalog,
        installations,
        scheduler=scheduler,
        generic_detector=generic,
        detector_factory=lambda: [steam],
        clock=clock,
        **kwargs,
    )


def _generic_records():
    return [
        CandidateRecord(name="Half-Life 2", source="Registry", install_location=HL2_PATH, publisher="Valve"),
        CandidateRecord(name="7-Zip", source="Registry", install_location=r"C:\Program Files\7-Zip"),
    ]


def test_first_pass_creates_references_and_installations(catalog, installations, clock) -> None:
    scheduler = RecordingScheduler()
    service = _service(catalog, installations, clock, _generic_records(), scheduler=scheduler, enrichment_enabled=True)

    summary = service.run()

    assert summary.candidates == 2
    assert summary.references_created == 2
    assert summary.inserted == 2
    assert summary.enrichment_triggered is True
    assert scheduler.starts == 1
    assert service.last_summary is summary

    steam_entry = catalog.find_by_external_id("Steam", "220")
    assert steam_entry.name == "Half-Life 2"
    assert installations.get_by_reference_id(steam_entry.id)[0].install_location == HL2_PATH
    views = QueryService(catalog, installations).query()
    assert [(view.name, view.source) for view in views] == [("7-Zip", "Registry"), ("Half-Life 2", "Steam")]


def test_second_pass_updates_in_place(catalog, installations, clock) -> None:
    service = _service(catalog, installations, clock, _generic_records(), enrichment_enabled=False)
    service.run()
    clock.advance(hours=1)

    summary = service.run()

    assert summary.references_created == 0
    assert summary.inserted == 0
    assert summary.updated == 2
    assert catalog.count() == 2
    assert installations.get_count() == 2


def test_uninstalled_titles_age_out(catalog, installations, clock) -> None:
    _service(catalog, installations, clock, _generic_records(), enrichment_enabled=False).run()
    clock.advance(days=31)

    summary = _service(catalog, installations, clock, [], enrichment_enabled=False, stale_days=30).run()

    assert summary.stale_removed == 1
    remaining = QueryService(catalog, installations).query()
    assert [view.name for view in remaining] == ["Half-Life 2"]
    # Catalog identities are shared and never deleted by the sweep.
    assert catalog.count() == 2


def test_enrichment_not_triggered_when_disabled(catalog, installations, clock) -> None:
    scheduler = RecordingScheduler()
    summary = _service(
        catalog, installations, clock, _generic_records(), scheduler=scheduler, enrichment_enabled=False
    ).run()
    assert summary.enrichment_triggered is False
    assert scheduler.starts == 0


def test_concurrent_pass_is_rejected(catalog, installations, clock) -> None:
    service = _service(catalog, installations, clock, [], enrichment_enabled=False)
    assert detection_module._DETECTION_LOCK.acquire(blocking=False)
    try:
        assert DetectionService.is_running() is True
        with pytest.raises(DetectionInProgress):
            service.run(blocking=False)
    finally:
        detection_module._DETECTION_LOCK.release()
