from __future__ import annotations

import logging
from typing import Optional

import requests

from ...core.config import WIKIPEDIA_API_URL
from .base import MetadataProvider, MetadataResult, mapping, request_json_with_status, text_or_none

logger = logging.getLogger(__name__)


def match_confidence(query: str, page_title: str) -> float:
    wanted = query.strip().casefold()
    found = page_title.strip().casefold()
    if wanted == found:
        return 0.9
    if wanted in found or found in wanted:
        return 0.7
    return 0.5


class WikipediaProvider(MetadataProvider):
    """General-purpose fallback: article intro as description."""

    name = "Wikipedia"
    priority = 50

    def __init__(self, session: Optional[requests.Session] = None, api_url: str = WIKIPEDIA_API_URL) -> None:
        self.session = session
        self.api_url = api_url

    def search_by_name(self, title: str) -> Optional[MetadataResult]:
        if not title or not title.strip():
            return None
        search, _status = request_json_with_status(
            self.session,
            self.api_url,
            params={
                "action": "query",
                "list": "search",
                "srsearch": title,
                "srlimit": 1,
                "format": "json",
            },
        )
        hits = mapping(mapping(search).get("query")).get("search")
        first_hit = mapping(hits[0]) if isinstance(hits, list) and hits else {}
        page_title = text_or_none(first_hit.get("title"))
        if not page_title:
            logger.debug("Wikipedia: no article for %r", title)
            return None

        pages_payload, _status = request_json_with_status(
            self.session,
            self.api_url,
            params={
                "action": "query",
                "prop": "extracts|pageimages|info",
                "exintro": 1,
                "explaintext": 1,
                "inprop": "url",
                "piprop": "thumbnail",
                "pithumbsize": 256,
                "titles": page_title,
                "format": "json",
            },
        )
        pages = mapping(mapping(pages_payload).get("query")).get("pages")
        # Keyed by page id, or a plain list with formatversion=2.
        if isinstance(pages, dict):
            candidates = list(pages.values())
        elif isinstance(pages, list):
            candidates = pages
        else:
            candidates = []
        page = next((value for value in candidates if isinstance(value, dict)), None)
        if page is None or "missing" in page:
            return None
        extract = text_or_none(page.get("extract"))
        if not extract:
            return None

        thumbnail = mapping(page.get("thumbnail"))
        return MetadataResult(
            name=page_title,
            description=extract,
            icon_url=text_or_none(thumbnail.get("source")),
            website_url=text_or_none(page.get("fullurl")),
            source=self.name,
            additional_data={"wikipedia_pageid": page.get("pageid")},
            confidence=match_confidence(title, page_title),
        )
