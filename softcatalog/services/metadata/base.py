from __future__ import annotations

import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from difflib import SequenceMatcher
from typing import Any, Dict, List, Optional, Tuple

import requests

from ...core.config import HTTP_USER_AGENT, METADATA_TIMEOUT_SECONDS

logger = logging.getLogger(__name__)

_NON_ALNUM = re.compile(r"[^a-z0-9]+")
_TRAILING_YEAR = re.compile(r"\s*\((19[7-9]\d|20\d\d)\)\s*$")
_EDITION_SUFFIXES = (
    " - game of the year edition",
    " - definitive edition",
    " - complete edition",
    " - enhanced edition",
    " - remastered",
    " goty",
    " deluxe edition",
    " gold edition",
)


@dataclass
class MetadataResult:
    name: str = ""
    publisher: Optional[str] = None
    developers: List[str] = field(default_factory=list)
    description: Optional[str] = None
    genres: List[str] = field(default_factory=list)
    release_date: Optional[datetime] = None
    icon_url: Optional[str] = None
    background_image_url: Optional[str] = None
    rating: Optional[float] = None
    website_url: Optional[str] = None
    source: str = ""
    additional_data: Dict[str, Any] = field(default_factory=dict)
    confidence: float = 1.0

    def extras(self) -> Dict[str, Any]:
        """Attributes with no column of their own, stored as ``metadata_json``."""
        payload: Dict[str, Any] = dict(self.additional_data)
        if self.rating is not None:
            payload["rating"] = self.rating
        if self.background_image_url:
            payload["backgroundImage"] = self.background_image_url
        if self.website_url:
            payload["website"] = self.website_url
        return payload


class MetadataProvider(ABC):
    """One external source of descriptive metadata."""

    name: str = ""
    priority: int = 100

    def is_available(self) -> bool:
        return True

    @abstractmethod
    def search_by_name(self, title: str) -> Optional[MetadataResult]:
        """Best match for ``title`` or None when the source has nothing."""

    def get_by_external_id(self, source: str, external_id: str) -> Optional[MetadataResult]:
        return None

    def search_by_name_and_publisher(self, title: str, publisher: Optional[str]) -> Optional[MetadataResult]:
        return self.search_by_name(title)


def normalize_title(value: str) -> str:
    cleaned = _NON_ALNUM.sub(" ", (value or "").strip().lower())
    return " ".join(cleaned.split())


def clean_game_title(title: str) -> str:
    """Drop edition suffixes and a trailing ``(year)`` before searching."""
    cleaned = (title or "").strip()
    lowered = cleaned.lower()
    for suffix in _EDITION_SUFFIXES:
        if lowered.endswith(suffix):
            cleaned = cleaned[: len(cleaned) - len(suffix)].strip()
            lowered = cleaned.lower()
    match = _TRAILING_YEAR.search(cleaned)
    if match and int(match.group(1)) <= datetime.now().year + 2:
        cleaned = cleaned[: match.start()].strip()
    return cleaned


def _tokenize_title(value: str) -> set:
    normalized = normalize_title(value)
    if not normalized:
        return set()
    return {piece for piece in normalized.split(" ") if piece}


def title_similarity(left: str, right: str) -> float:
    a = normalize_title(left)
    b = normalize_title(right)
    if not a or not b:
        return 0.0
    if a == b:
        return 1.0

    ratio = SequenceMatcher(a=a, b=b).ratio()
    tokens_a = _tokenize_title(a)
    tokens_b = _tokenize_title(b)
    if tokens_a and tokens_b:
        union = len(tokens_a | tokens_b)
        jaccard = len(tokens_a & tokens_b) / union if union else 0.0
    else:
        jaccard = 0.0
    prefix_bonus = 0.05 if (a.startswith(b) or b.startswith(a)) else 0.0
    return max(0.0, min(1.0, (ratio * 0.62) + (jaccard * 0.33) + prefix_bonus))


def request_json_with_status(
    session: Optional[requests.Session],
    url: str,
    *,
    params: Optional[Dict[str, Any]] = None,
    json_body: Optional[Dict[str, Any]] = None,
    timeout: Optional[int] = None,
) -> Tuple[Optional[Any], Optional[int]]:
    """GET ``url`` (POST when ``json_body`` is given) and decode JSON.

    Network and decode failures return no payload.
    """
    client = session if session is not None else requests
    headers = {"User-Agent": HTTP_USER_AGENT, "Accept": "application/json"}
    try:
        if json_body is not None:
            response = client.post(url, json=json_body, timeout=timeout or METADATA_TIMEOUT_SECONDS, headers=headers)
        else:
            response = client.get(url, params=params, timeout=timeout or METADATA_TIMEOUT_SECONDS, headers=headers)
    except requests.RequestException as exc:
        logger.warning("Metadata request to %s failed: %s", url, exc)
        return None, None

    status = int(response.status_code)
    if status != 200:
        logger.debug("Metadata request to %s returned HTTP %s", url, status)
        return None, status
    try:
        return response.json(), status
    except ValueError:
        logger.warning("Metadata response from %s was not JSON", url)
        return None, status


def parse_release_date(raw: Optional[str]) -> Optional[datetime]:
    if not isinstance(raw, str):
        return None
    text = raw.strip()
    if not text:
        return None
    for pattern in ("%Y-%m-%d", "%d %b, %Y", "%b %d, %Y", "%d %B, %Y", "%B %d, %Y", "%Y"):
        try:
            return datetime.strptime(text, pattern)
        except ValueError:
            continue
    return None


def names_from(items: Any, key: str = "name") -> List[str]:
    """Flatten ``[{"name": ...}, ...]`` or a plain list of strings."""
    names: List[str] = []
    if not isinstance(items, list):
        return names
    for item in items:
        if isinstance(item, dict):
            value = item.get(key)
        else:
            value = item
        if isinstance(value, str) and value.strip() and value.strip() not in names:
            names.append(value.strip())
    return names


def mapping(value: Any) -> Dict[str, Any]:
    """``value`` when it is a JSON object, else an empty one."""
    return value if isinstance(value, dict) else {}


def text_or_none(value: Any) -> Optional[str]:
    if not isinstance(value, str):
        return None
    return value.strip() or None
