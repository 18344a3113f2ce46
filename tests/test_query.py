from softcatalog.models import LocalInstallation
from softcatalog.services.query import QueryService


def _seed(catalog, installations):
    doom = catalog.find_or_create("DOOM", "Steam", external_id="379720", category="Games")
    zip_ = catalog.find_or_create("7-Zip", "Registry", category="Utilities")
    discord = catalog.find_or_create("Discord", "Registry", category="Communication")
    catalog.find_or_create("Not Installed", "Registry")
    installations.upsert(LocalInstallation(reference_id=doom.id, install_location=r"C:\Steam\steamapps\common\DOOM"))
    installations.upsert(LocalInstallation(reference_id=zip_.id, install_location=r"C:\Program Files\7-Zip"))
    installations.upsert(LocalInstallation(reference_id=discord.id, install_location=r"C:\Users\me\Discord"))
    installations.upsert(LocalInstallation(reference_id=9999, install_location=r"C:\Orphan"))
    return QueryService(catalog, installations)


def test_query_joins_and_skips_orphans(catalog, installations) -> None:
    service = _seed(catalog, installations)
    views = service.query()
    assert [view.name for view in views] == ["7-Zip", "Discord", "DOOM"]
    assert views[2].install_location == r"C:\Steam\steamapps\common\DOOM"
    assert views[2].is_game is True


def test_filters_are_case_insensitive(catalog, installations) -> None:
    service = _seed(catalog, installations)
    assert [view.name for view in service.query(category="games")] == ["DOOM"]
    assert [view.name for view in service.query(source="registry")] == ["7-Zip", "Discord"]
    assert [view.name for view in service.query(category="Utilities", source="Registry")] == ["7-Zip"]
    assert service.query(category="Security") == []
    assert len(service.query(category="All")) == 3


def test_sources_and_statistics(catalog, installations) -> None:
    service = _seed(catalog, installations)
    assert service.available_sources() == ["Registry", "Steam"]
    stats = service.statistics()
    assert stats["total"] == 3
    assert stats["by_source"] == {"Registry": 2, "Steam": 1}
    assert stats["by_category"]["Games"] == 1
    assert stats["catalog_entries"] == 4
    assert stats["installations"] == 4
