from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import requests

from ...core.config import RAWG_API_KEY, RAWG_API_URL
from .base import (
    MetadataProvider,
    MetadataResult,
    clean_game_title,
    names_from,
    parse_release_date,
    request_json_with_status,
    text_or_none,
    title_similarity,
)

logger = logging.getLogger(__name__)

# Confidence given to a lookup keyed by a store id rather than a title.
ID_LOOKUP_CONFIDENCE = 0.95


def _results(payload: Optional[Dict[str, Any]]) -> List[Dict[str, Any]]:
    results = (payload or {}).get("results")
    if not isinstance(results, list):
        return []
    return [game for game in results if isinstance(game, dict)]


class RawgProvider(MetadataProvider):
    """RAWG video game database; requires an API key."""

    name = "RAWG"
    priority = 20

    def __init__(
        self,
        api_key: str = RAWG_API_KEY,
        session: Optional[requests.Session] = None,
        base_url: str = RAWG_API_URL,
    ) -> None:
        self.api_key = api_key
        self.session = session
        self.base_url = base_url.rstrip("/")

    def is_available(self) -> bool:
        return bool(self.api_key)

    def _get(self, path: str, **params: Any) -> Optional[Dict[str, Any]]:
        params["key"] = self.api_key
        payload, _status = request_json_with_status(self.session, f"{self.base_url}{path}", params=params)
        return payload if isinstance(payload, dict) else None

    def _parse(self, game: Dict[str, Any], expected_title: Optional[str]) -> MetadataResult:
        name = text_or_none(game.get("name")) or ""
        rating = game.get("rating")
        confidence = title_similarity(expected_title, name) if expected_title else ID_LOOKUP_CONFIDENCE
        return MetadataResult(
            name=name,
            genres=names_from(game.get("genres")),
            release_date=parse_release_date(game.get("released")),
            background_image_url=text_or_none(game.get("background_image")),
            rating=float(rating) if isinstance(rating, (int, float)) else None,
            source=self.name,
            additional_data={"rawg_id": game.get("id")},
            confidence=confidence,
        )

    def _add_details(self, result: MetadataResult, game_id) -> MetadataResult:
        if not game_id:
            return result
        details = self._get(f"/games/{game_id}")
        if not details:
            return result
        publishers = names_from(details.get("publishers"))
        result.publisher = publishers[0] if publishers else result.publisher
        result.developers = names_from(details.get("developers")) or result.developers
        result.description = text_or_none(details.get("description_raw")) or result.description
        result.website_url = text_or_none(details.get("website")) or result.website_url
        if not result.genres:
            result.genres = names_from(details.get("genres"))
        return result

    def search_by_name(self, title: str) -> Optional[MetadataResult]:
        if not self.is_available() or not title:
            return None
        cleaned = clean_game_title(title)
        payload = self._get("/games", search=cleaned, page_size=5)
        games = [game for game in _results(payload) if text_or_none(game.get("name"))]
        if not games:
            logger.debug("RAWG: no results for %r", cleaned)
            return None

        best = max(games, key=lambda game: title_similarity(cleaned, str(game.get("name"))))
        result = self._parse(best, cleaned)
        return self._add_details(result, best.get("id"))

    def get_by_external_id(self, source: str, external_id: str) -> Optional[MetadataResult]:
        if not self.is_available() or (source or "").casefold() != "steam":
            return None
        app_id = str(external_id or "").strip()
        if not app_id.isdigit():
            return None
        payload = self._get("/games", stores=1, search=app_id)
        results = _results(payload)
        if not results:
            return None
        result = self._parse(results[0], None)
        return self._add_details(result, results[0].get("id"))
