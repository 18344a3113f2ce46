from __future__ import annotations

import logging
from typing import Optional

import requests

from ...core.config import STEAM_STORE_API_URL
from .base import (
    MetadataProvider,
    MetadataResult,
    mapping,
    names_from,
    parse_release_date,
    request_json_with_status,
    text_or_none,
)

logger = logging.getLogger(__name__)


class SteamStoreProvider(MetadataProvider):
    """Store ``appdetails`` lookups; only usable when the Steam app id is known."""

    name = "Steam Store"
    priority = 10

    def __init__(self, session: Optional[requests.Session] = None, base_url: str = STEAM_STORE_API_URL) -> None:
        self.session = session
        self.base_url = base_url

    def search_by_name(self, title: str) -> Optional[MetadataResult]:
        return None

    def get_by_external_id(self, source: str, external_id: str) -> Optional[MetadataResult]:
        app_id = str(external_id or "").strip()
        if (source or "").casefold() != "steam" or not app_id.isdigit():
            return None
        payload, _status = request_json_with_status(
            self.session, self.base_url, params={"appids": app_id, "l": "english"}
        )
        if not isinstance(payload, dict):
            return None
        entry = mapping(payload.get(app_id))
        data = entry.get("data")
        if not entry.get("success") or not isinstance(data, dict):
            logger.debug("Steam Store has no details for app %s", app_id)
            return None

        publishers = names_from(data.get("publishers"))
        rating = mapping(data.get("metacritic")).get("score")
        return MetadataResult(
            name=text_or_none(data.get("name")) or "",
            publisher=publishers[0] if publishers else None,
            developers=names_from(data.get("developers")),
            description=text_or_none(data.get("short_description")),
            genres=names_from(data.get("genres"), key="description"),
            release_date=parse_release_date(mapping(data.get("release_date")).get("date")),
            icon_url=text_or_none(data.get("header_image")),
            background_image_url=text_or_none(data.get("background")) or text_or_none(data.get("background_raw")),
            rating=float(rating) if isinstance(rating, (int, float)) else None,
            website_url=text_or_none(data.get("website")),
            source=self.name,
            additional_data={"steam_appid": app_id},
            confidence=1.0,
        )
