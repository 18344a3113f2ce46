from __future__ import annotations

import logging
import re
from typing import Any, Dict, List, Optional

import requests

from ...core.config import WINGET_SOURCE_URL
from .base import (
    MetadataProvider,
    MetadataResult,
    mapping,
    request_json_with_status,
    text_or_none,
)

logger = logging.getLogger(__name__)

_TRAILING_VERSION = re.compile(r"\s+v?\d+(\.\d+)*$", re.IGNORECASE)
_ARCH_SUFFIXES = (" (x64)", " (x86)", " (64-bit)", " (32-bit)", " x64", " 64-bit", " 32-bit")


def clean_software_name(name: str) -> str:
    """Drop a trailing version number and architecture markers from an uninstall entry name."""
    cleaned = (name or "").strip()
    changed = True
    while changed:
        changed = False
        lowered = cleaned.lower()
        for suffix in _ARCH_SUFFIXES:
            if lowered.endswith(suffix):
                cleaned = cleaned[: len(cleaned) - len(suffix)].strip()
                changed = True
                break
        stripped = _TRAILING_VERSION.sub("", cleaned).strip()
        if stripped and stripped != cleaned:
            cleaned = stripped
            changed = True
    return cleaned


def match_confidence(query: str, package_name: str) -> float:
    wanted = query.strip().casefold()
    found = package_name.strip().casefold()
    if not wanted or not found:
        return 0.5
    if wanted == found:
        return 1.0
    if wanted in found:
        return 0.8
    return 0.6


def _latest_version(package: Dict[str, Any]) -> Optional[str]:
    versions = package.get("Versions")
    if not isinstance(versions, list):
        return None
    for version in versions:
        value = text_or_none(mapping(version).get("PackageVersion"))
        if value:
            return value
    return None


class WingetProvider(MetadataProvider):
    """Windows Package Manager REST source; searches by name, optionally filtered by publisher."""

    name = "Winget"
    priority = 10

    def __init__(self, session: Optional[requests.Session] = None, base_url: str = WINGET_SOURCE_URL) -> None:
        self.session = session
        self.base_url = (base_url or "").rstrip("/")

    def is_available(self) -> bool:
        return bool(self.base_url)

    def _search(self, keyword: str, publisher: Optional[str]) -> List[Dict[str, Any]]:
        body: Dict[str, Any] = {
            "Query": {"KeyWord": keyword, "MatchType": "Substring"},
            "MaximumResults": 10,
        }
        if publisher:
            body["Filters"] = [
                {
                    "PackageMatchField": "Publisher",
                    "RequestMatch": {"KeyWord": publisher, "MatchType": "CaseInsensitive"},
                }
            ]
        payload, _status = request_json_with_status(
            self.session, f"{self.base_url}/manifestSearch", json_body=body
        )
        data = mapping(payload).get("Data")
        if not isinstance(data, list):
            return []
        return [
            package
            for package in data
            if isinstance(package, dict)
            and text_or_none(package.get("PackageIdentifier"))
            and text_or_none(package.get("PackageName"))
        ]

    def _add_details(self, result: MetadataResult, package_id: str) -> MetadataResult:
        payload, _status = request_json_with_status(self.session, f"{self.base_url}/packageManifests/{package_id}")
        versions = mapping(mapping(payload).get("Data")).get("Versions")
        if not isinstance(versions, list):
            return result
        for version in versions:
            locale = mapping(mapping(version).get("DefaultLocale"))
            if not locale:
                continue
            result.publisher = text_or_none(locale.get("Publisher")) or result.publisher
            result.description = (
                text_or_none(locale.get("ShortDescription"))
                or text_or_none(locale.get("Description"))
                or result.description
            )
            result.website_url = (
                text_or_none(locale.get("PackageUrl"))
                or text_or_none(locale.get("PublisherUrl"))
                or result.website_url
            )
            license_name = text_or_none(locale.get("License"))
            if license_name:
                result.additional_data["license"] = license_name
            tags = locale.get("Tags")
            if isinstance(tags, list) and not result.genres:
                result.genres = [tag.strip() for tag in tags if isinstance(tag, str) and tag.strip()][:5]
            break
        return result

    def search_by_name(self, title: str) -> Optional[MetadataResult]:
        return self.search_by_name_and_publisher(title, None)

    def search_by_name_and_publisher(self, title: str, publisher: Optional[str]) -> Optional[MetadataResult]:
        if not self.is_available() or not title or not title.strip():
            return None
        keyword = clean_software_name(title)
        packages = self._search(keyword, publisher) if publisher else []
        if not packages:
            packages = self._search(keyword, None)
        if not packages:
            logger.debug("Winget: no packages for %r", keyword)
            return None

        best = max(packages, key=lambda package: match_confidence(keyword, package["PackageName"]))
        package_id = best["PackageIdentifier"].strip()
        result = MetadataResult(
            name=best["PackageName"].strip(),
            publisher=text_or_none(best.get("Publisher")),
            source=self.name,
            additional_data={"package_id": package_id},
            confidence=match_confidence(keyword, best["PackageName"]),
        )
        version = _latest_version(best)
        if version:
            result.additional_data["version"] = version
        return self._add_details(result, package_id)
