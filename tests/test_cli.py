import json

from softcatalog.cli import main
from softcatalog.models import LocalInstallation
from softcatalog.services.local_installations import LocalInstallationStore
from softcatalog.services.reference_catalog import ReferenceCatalogStore


def _seed(tmp_path):
    catalog = ReferenceCatalogStore.open(tmp_path / "master_catalog.db")
    installations = LocalInstallationStore.open(tmp_path / "ref.db")
    entry = catalog.find_or_create("Celeste", "Steam", external_id="504230", category="Games")
    installations.upsert(LocalInstallation(reference_id=entry.id, install_location=r"C:\Steam\steamapps\common\Celeste"))
    catalog.engine.dispose()
    installations.engine.dispose()
    return ["--catalog", str(tmp_path / "master_catalog.db"), "--local-db", str(tmp_path / "ref.db")]


def test_list_and_sources(tmp_path, capsys) -> None:
    options = _seed(tmp_path)

    assert main(options + ["list", "--category", "Games"]) == 0
    out = capsys.readouterr().out
    assert "Celeste\tSteam\tGames" in out
    assert "1 titles" in out

    assert main(options + ["sources"]) == 0
    assert capsys.readouterr().out.strip() == "Steam"


def test_stats_and_json_listing(tmp_path, capsys) -> None:
    options = _seed(tmp_path)

    assert main(options + ["stats"]) == 0
    stats = json.loads(capsys.readouterr().out)
    assert stats["total"] == 1
    assert stats["by_source"] == {"Steam": 1}

    assert main(options + ["list", "--json", "--source", "GOG Galaxy"]) == 0
    assert json.loads(capsys.readouterr().out) == []


def test_serve_uses_the_given_databases(tmp_path, monkeypatch) -> None:
    options = _seed(tmp_path)
    served = {}

    def fake_run(app, **kwargs):
        served["app"] = app
        served.update(kwargs)

    monkeypatch.setattr("uvicorn.run", fake_run)

    assert main(options + ["serve", "--port", "9001"]) == 0
    services = served["app"].state.services
    try:
        assert services.query.statistics()["total"] == 1
        assert [view.name for view in services.query.query()] == ["Celeste"]
        assert served["port"] == 9001
    finally:
        services.catalog.engine.dispose()
        services.installations.engine.dispose()
