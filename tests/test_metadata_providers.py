from datetime import datetime

import requests

from softcatalog.services.metadata import (
    MetadataFetcher,
    MetadataProvider,
    MetadataResult,
    RawgProvider,
    SteamStoreProvider,
    WikipediaProvider,
    WingetProvider,
    is_game_entry,
)
from softcatalog.services.metadata.base import clean_game_title, title_similarity
from softcatalog.services.metadata.winget import clean_software_name


class FakeResponse:
    def __init__(self, payload, status_code=200):
        self.payload = payload
        self.status_code = status_code

    def json(self):
        if isinstance(self.payload, Exception):
            raise self.payload
        return self.payload


class FakeSession:
    """Answers GETs and POSTs from a list of (predicate, response) routes.

    Predicates see the URL and the query parameters, or the JSON body of a POST.
    """

    def __init__(self, routes):
        self.routes = routes
        self.calls = []

    def _answer(self, url, arguments):
        self.calls.append((url, arguments))
        for predicate, response in self.routes:
            if predicate(url, arguments):
                if isinstance(response, Exception):
                    raise response
                return response
        return FakeResponse({}, status_code=404)

    def get(self, url, params=None, timeout=None, headers=None):
        return self._answer(url, dict(params or {}))

    def post(self, url, json=None, timeout=None, headers=None):
        return self._answer(url, json or {})


class StaticProvider(MetadataProvider):
    def __init__(self, name, by_name=None, by_id=None, priority=100, error=None):
        self.name = name
        self.priority = priority
        self.by_name = by_name
        self.by_id = by_id
        self.error = error
        self.publishers = []

    def search_by_name(self, title):
        if self.error is not None:
            raise self.error
        return self.by_name

    def search_by_name_and_publisher(self, title, publisher):
        self.publishers.append(publisher)
        return self.search_by_name(title)

    def get_by_external_id(self, source, external_id):
        if self.error is not None:
            raise self.error
        return self.by_id


def test_title_helpers() -> None:
    assert clean_game_title("The Witcher 3 - Game of the Year Edition") == "The Witcher 3"
    assert clean_game_title("Prey (2017)") == "Prey"
    assert title_similarity("Half-Life 2", "half life 2") == 1.0
    assert title_similarity("Portal", "Stardew Valley") < 0.5


def test_steam_store_parses_appdetails() -> None:
    payload = {
        "620": {
            "success": True,
            "data": {
                "name": "Portal 2",
                "publishers": ["Valve"],
                "developers": ["Valve"],
                "short_description": "Sequel.",
                "genres": [{"id": "1", "description": "Action"}, {"id": "2", "description": "Puzzle"}],
                "release_date": {"date": "18 Apr, 2011"},
                "header_image": "https://cdn.example/header.jpg",
                "metacritic": {"score": 95},
            },
        }
    }
    session = FakeSession([(lambda url, params: params.get("appids") == "620", FakeResponse(payload))])
    provider = SteamStoreProvider(session=session, base_url="https://store.example/api/appdetails")

    result = provider.get_by_external_id("Steam", "620")

    assert result.name == "Portal 2"
    assert result.publisher == "Valve"
    assert result.genres == ["Action", "Puzzle"]
    assert result.release_date == datetime(2011, 4, 18)
    assert result.icon_url == "https://cdn.example/header.jpg"
    assert result.rating == 95.0
    assert result.confidence == 1.0
    assert provider.get_by_external_id("GOG Galaxy", "620") is None
    assert provider.search_by_name("Portal 2") is None


def test_steam_store_unsuccessful_lookup() -> None:
    session = FakeSession([(lambda url, params: True, FakeResponse({"1": {"success": False}}))])
    assert SteamStoreProvider(session=session).get_by_external_id("Steam", "1") is None


def test_rawg_search_picks_best_match_and_adds_details() -> None:
    search = {
        "results": [
            {"id": 1, "name": "Hades II", "released": "2024-05-06"},
            {"id": 2, "name": "Hades", "released": "2020-09-17", "rating": 4.4, "genres": [{"name": "Action"}]},
        ]
    }
    details = {
        "publishers": [{"name": "Supergiant Games"}],
        "developers": [{"name": "Supergiant Games"}],
        "description_raw": "Roguelike.",
        "website": "https://supergiant.example",
    }
    session = FakeSession(
        [
            (lambda url, params: url.endswith("/games") and params.get("search") == "Hades", FakeResponse(search)),
            (lambda url, params: url.endswith("/games/2"), FakeResponse(details)),
        ]
    )
    provider = RawgProvider(api_key="k", session=session, base_url="https://rawg.example/api")

    result = provider.search_by_name("Hades")

    assert result.name == "Hades"
    assert result.confidence == 1.0
    assert result.publisher == "Supergiant Games"
    assert result.description == "Roguelike."
    assert result.release_date == datetime(2020, 9, 17)
    assert result.additional_data == {"rawg_id": 2}
    assert all(params.get("key") == "k" for _url, params in session.calls)


def test_rawg_needs_api_key() -> None:
    session = FakeSession([])
    provider = RawgProvider(api_key="", session=session)
    assert provider.is_available() is False
    assert provider.search_by_name("Hades") is None
    assert session.calls == []


def test_wikipedia_search_then_extract() -> None:
    search = {"query": {"search": [{"title": "7-Zip"}]}}
    pages = {
        "query": {
            "pages": {
                "123": {
                    "pageid": 123,
                    "title": "7-Zip",
                    "extract": "7-Zip is a free file archiver.",
                    "fullurl": "https://en.wikipedia.org/wiki/7-Zip",
                    "thumbnail": {"source": "https://upload.example/7zip.png"},
                }
            }
        }
    }
    session = FakeSession(
        [
            (lambda url, params: params.get("list") == "search", FakeResponse(search)),
            (lambda url, params: params.get("titles") == "7-Zip", FakeResponse(pages)),
        ]
    )

    result = WikipediaProvider(session=session).search_by_name("7-zip")

    assert result.description == "7-Zip is a free file archiver."
    assert result.icon_url == "https://upload.example/7zip.png"
    assert result.website_url == "https://en.wikipedia.org/wiki/7-Zip"
    assert result.confidence == 0.9


def test_wikipedia_network_failure_is_not_found() -> None:
    session = FakeSession([(lambda url, params: True, requests.ConnectionError("offline"))])
    assert WikipediaProvider(session=session).search_by_name("Anything") is None


def test_fetcher_routes_games_and_applies_thresholds() -> None:
    weak = MetadataResult(name="Close", source="A", confidence=0.8)
    strong = MetadataResult(name="Exact", source="B", confidence=0.9)
    fetcher = MetadataFetcher(
        game_providers=[StaticProvider("B", by_name=strong, priority=20), StaticProvider("A", by_name=weak, priority=10)],
        software_providers=[StaticProvider("W", by_name=MetadataResult(source="W", confidence=0.5))],
    )

    assert fetcher.fetch("Game", "Steam") == (strong, True)
    # Software needs strictly more than the software threshold.
    assert fetcher.fetch("Tool", "Registry", category="Utilities") == (None, False)


def test_fetcher_prefers_external_id_lookup() -> None:
    by_id = MetadataResult(name="Portal 2", source="Steam Store", confidence=1.0)
    provider = StaticProvider("Steam Store", by_name=None, by_id=by_id)
    fetcher = MetadataFetcher(game_providers=[provider], software_providers=[])
    assert fetcher.fetch("Portal 2", "Steam", external_id="620") == (by_id, True)


def test_is_game_entry() -> None:
    assert is_game_entry("Games", "Registry") is True
    assert is_game_entry("Other", "GOG Galaxy") is True
    assert is_game_entry("Utilities", "Registry") is False


def test_fetcher_moves_past_a_provider_that_raises() -> None:
    good = MetadataResult(name="Half-Life 2", source="RAWG", confidence=0.95)
    fetcher = MetadataFetcher(
        game_providers=[
            StaticProvider("Broken", error=KeyError("unexpected payload"), priority=10),
            StaticProvider("RAWG", by_name=good, priority=20),
        ],
        software_providers=[
            StaticProvider("Broken", error=ValueError("bad json"), priority=10),
            StaticProvider("Wikipedia", by_name=MetadataResult(name="7-Zip", source="Wikipedia", confidence=0.9)),
        ],
    )

    assert fetcher.fetch("Half-Life 2", "Steam", external_id="220", category="Games") == (good, True)
    result, found = fetcher.fetch("7-Zip", "Registry", category="Utilities")
    assert found is True
    assert result.source == "Wikipedia"


def test_fetcher_passes_publisher_to_software_providers() -> None:
    provider = StaticProvider("Winget", by_name=MetadataResult(name="7-Zip", source="Winget", confidence=1.0))
    fetcher = MetadataFetcher(game_providers=[], software_providers=[provider])

    assert fetcher.fetch("7-Zip", "Registry", category="Utilities", publisher="Igor Pavlov")[1] is True
    assert provider.publishers == ["Igor Pavlov"]


def test_default_fetcher_tries_winget_before_wikipedia() -> None:
    fetcher = MetadataFetcher.default()
    assert [provider.name for provider in fetcher.software_providers] == ["Winget", "Wikipedia"]


def test_steam_store_tolerates_malformed_fields() -> None:
    payload = {
        "220": {
            "success": True,
            "data": {
                "name": "Half-Life 2",
                "release_date": "2004",
                "metacritic": "96",
                "publishers": "Valve",
                "short_description": 7,
            },
        }
    }
    session = FakeSession([(lambda url, params: True, FakeResponse(payload))])

    result = SteamStoreProvider(session=session).get_by_external_id("Steam", "220")

    assert result.name == "Half-Life 2"
    assert result.release_date is None
    assert result.rating is None
    assert result.publisher is None
    assert result.description is None


def test_steam_store_unexpected_shapes_are_not_found() -> None:
    for payload in ([], {"220": ["success"]}, {"220": {"success": True, "data": "x"}}):
        session = FakeSession([(lambda url, params: True, FakeResponse(payload))])
        assert SteamStoreProvider(session=session).get_by_external_id("Steam", "220") is None


def test_wikipedia_accepts_pages_as_a_list() -> None:
    search = {"query": {"search": [{"title": "Audacity"}]}}
    pages = {"query": {"pages": [{"pageid": 9, "title": "Audacity", "extract": "Audio editor."}]}}
    session = FakeSession(
        [
            (lambda url, params: params.get("list") == "search", FakeResponse(search)),
            (lambda url, params: params.get("titles") == "Audacity", FakeResponse(pages)),
        ]
    )

    result = WikipediaProvider(session=session).search_by_name("Audacity")

    assert result.description == "Audio editor."
    assert result.icon_url is None


def test_wikipedia_malformed_payloads_are_not_found() -> None:
    session = FakeSession([(lambda url, params: True, FakeResponse({"query": {"search": "nothing"}}))])
    assert WikipediaProvider(session=session).search_by_name("Audacity") is None

    session = FakeSession(
        [
            (lambda url, params: params.get("list") == "search", FakeResponse({"query": {"search": [{"title": "X"}]}})),
            (lambda url, params: params.get("titles") == "X", FakeResponse({"query": {"pages": "gone"}})),
        ]
    )
    assert WikipediaProvider(session=session).search_by_name("X") is None


def test_rawg_malformed_results_are_not_found() -> None:
    session = FakeSession([(lambda url, params: True, FakeResponse({"results": {"0": {"name": "Hades"}}}))])
    provider = RawgProvider(api_key="k", session=session, base_url="https://rawg.example/api")
    assert provider.search_by_name("Hades") is None
    assert provider.get_by_external_id("Steam", "1145360") is None


def test_clean_software_name() -> None:
    assert clean_software_name("7-Zip 23.01 (x64)") == "7-Zip"
    assert clean_software_name("Notepad++ v8.6.2") == "Notepad++"
    assert clean_software_name("Audacity") == "Audacity"


def _winget_search(package_id, name, publisher, version="1.0"):
    return {
        "Data": [
            {
                "PackageIdentifier": package_id,
                "PackageName": name,
                "Publisher": publisher,
                "Versions": [{"PackageVersion": version}],
            }
        ]
    }


def test_winget_search_with_publisher_and_details() -> None:
    manifest = {
        "Data": {
            "PackageIdentifier": "7zip.7zip",
            "Versions": [
                {
                    "PackageVersion": "23.01",
                    "DefaultLocale": {
                        "Publisher": "Igor Pavlov",
                        "ShortDescription": "Free and open source file archiver.",
                        "PackageUrl": "https://www.7-zip.org/",
                        "License": "LGPL-2.1",
                        "Tags": ["archiver", "compression"],
                    },
                }
            ],
        }
    }
    session = FakeSession(
        [
            (
                lambda url, body: url.endswith("/manifestSearch") and "Filters" in body,
                FakeResponse(_winget_search("7zip.7zip", "7-Zip", "Igor Pavlov", "23.01")),
            ),
            (lambda url, body: url.endswith("/packageManifests/7zip.7zip"), FakeResponse(manifest)),
        ]
    )
    provider = WingetProvider(session=session, base_url="https://winget.example/api/")

    result = provider.search_by_name_and_publisher("7-Zip 23.01 (x64)", "Igor Pavlov")

    assert result.name == "7-Zip"
    assert result.confidence == 1.0
    assert result.publisher == "Igor Pavlov"
    assert result.description == "Free and open source file archiver."
    assert result.website_url == "https://www.7-zip.org/"
    assert result.genres == ["archiver", "compression"]
    assert result.additional_data == {"package_id": "7zip.7zip", "version": "23.01", "license": "LGPL-2.1"}
    search_url, body = session.calls[0]
    assert search_url == "https://winget.example/api/manifestSearch"
    assert body["Query"]["KeyWord"] == "7-Zip"
    assert body["Filters"][0]["RequestMatch"]["KeyWord"] == "Igor Pavlov"


def test_winget_falls_back_to_unfiltered_search() -> None:
    session = FakeSession(
        [
            (
                lambda url, body: url.endswith("/manifestSearch") and "Filters" not in body,
                FakeResponse(_winget_search("VideoLAN.VLC", "VLC media player", "VideoLAN")),
            ),
        ]
    )
    provider = WingetProvider(session=session, base_url="https://winget.example/api")

    result = provider.search_by_name_and_publisher("VLC", "Unknown Publisher")

    assert result.name == "VLC media player"
    assert result.publisher == "VideoLAN"
    assert result.confidence == 0.8
    assert len([url for url, _body in session.calls if url.endswith("/manifestSearch")]) == 2


def test_winget_malformed_or_failed_search_is_not_found() -> None:
    session = FakeSession([(lambda url, body: True, FakeResponse({"Data": {"PackageName": "x"}}))])
    assert WingetProvider(session=session, base_url="https://winget.example").search_by_name("x") is None

    offline = FakeSession([(lambda url, body: True, requests.ConnectionError("offline"))])
    assert WingetProvider(session=offline, base_url="https://winget.example").search_by_name("x") is None
    assert WingetProvider(base_url="").is_available() is False
