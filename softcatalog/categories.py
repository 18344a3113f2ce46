"""Software categories and the keyword heuristic used for generic inventory entries."""

from __future__ import annotations

import logging
import re
from enum import Enum
from typing import Dict, List, Optional

logger = logging.getLogger(__name__)


class SoftwareCategory(str, Enum):
    ALL = "All"
    GAMES = "Games"
    GAMING_PLATFORMS = "GamingPlatforms"
    OFFICE_PRODUCTIVITY = "OfficeProductivity"
    DESIGN = "Design"
    DEVELOPMENT = "Development"
    MEDIA = "Media"
    COMMUNICATION = "Communication"
    UTILITIES = "Utilities"
    SECURITY = "Security"
    OTHER = "Other"

    @classmethod
    def parse(cls, value: Optional[str]) -> "SoftwareCategory":
        if isinstance(value, SoftwareCategory):
            return value
        cleaned = (value or "").strip().lower()
        for member in cls:
            if cleaned in (member.value.lower(), member.name.lower()):
                return member
        return cls.OTHER


DEFAULT_CATEGORY = SoftwareCategory.OTHER

DISPLAY_NAMES: Dict[SoftwareCategory, str] = {
    SoftwareCategory.ALL: "All Software",
    SoftwareCategory.GAMES: "Games",
    SoftwareCategory.GAMING_PLATFORMS: "Gaming Platforms",
    SoftwareCategory.OFFICE_PRODUCTIVITY: "Office & Productivity",
    SoftwareCategory.DESIGN: "Design & Graphics",
    SoftwareCategory.DEVELOPMENT: "Development Tools",
    SoftwareCategory.MEDIA: "Media & Entertainment",
    SoftwareCategory.COMMUNICATION: "Communication",
    SoftwareCategory.UTILITIES: "Utilities",
    SoftwareCategory.SECURITY: "Security",
    SoftwareCategory.OTHER: "Other",
}

# Checked in order; the first category with a matching keyword wins.
CATEGORY_KEYWORDS: Dict[SoftwareCategory, List[str]] = {
    SoftwareCategory.GAMING_PLATFORMS: [
        "steam", "epic games", "gog galaxy", "origin", "uplay", "ubisoft connect",
        "battle.net", "blizzard", "xbox", "game pass", "ea app", "itch.io",
        "playnite", "lutris", "legendary", "amazon games", "humble app", "legacy games",
    ],
    SoftwareCategory.OFFICE_PRODUCTIVITY: [
        "microsoft office", "word", "excel", "powerpoint", "outlook", "onenote",
        "libreoffice", "openoffice", "wps office", "google workspace",
        "notion", "evernote", "adobe acrobat", "pdf", "onlyoffice", "workflowy",
    ],
    SoftwareCategory.DESIGN: [
        "adobe", "photoshop", "illustrator", "indesign", "premiere", "after effects",
        "affinity", "gimp", "inkscape", "blender", "3ds max", "maya", "cinema 4d",
        "sketch", "figma", "canva", "corel", "paint.net", "painter", "autodesk", "da vinci",
    ],
    SoftwareCategory.DEVELOPMENT: [
        "visual studio", "vscode", "jetbrains", "intellij", "pycharm", "webstorm",
        "eclipse", "netbeans", "atom", "sublime", "notepad++",
        "git", "github desktop", "sourcetree", "tortoise",
        "python", "node", "node.js", "java", "docker", "kubernetes", "postman",
        "android studio", "xcode", "unity", "unreal engine",
    ],
    SoftwareCategory.MEDIA: [
        "vlc", "media player", "spotify", "itunes", "audacity", "obs studio",
        "handbrake", "ffmpeg", "plex", "kodi", "winamp", "kdenlive", "shotcut", "jellyfin",
    ],
    SoftwareCategory.COMMUNICATION: [
        "chrome", "firefox", "edge", "brave", "opera", "browser", "thunderbird", "mail",
        "discord", "slack", "teams", "zoom", "skype", "telegram", "whatsapp", "signal",
    ],
    SoftwareCategory.UTILITIES: [
        "7-zip", "winrar", "winzip", "ccleaner", "windirstat", "treesize",
        "notepad", "total commander", "file explorer", "powertoys", "autohotkey", "rainmeter",
    ],
    SoftwareCategory.SECURITY: [
        "antivirus", "firewall", "malwarebytes", "kaspersky", "norton", "mcafee",
        "avast", "avg", "bitdefender", "windows defender", "eset",
    ],
}

PUBLISHER_CATEGORIES: Dict[str, SoftwareCategory] = {
    "microsoft corporation": SoftwareCategory.OFFICE_PRODUCTIVITY,
    "the document foundation": SoftwareCategory.OFFICE_PRODUCTIVITY,
    "adobe systems": SoftwareCategory.DESIGN,
    "adobe inc.": SoftwareCategory.DESIGN,
    "serif": SoftwareCategory.DESIGN,
    "blender foundation": SoftwareCategory.DESIGN,
    "autodesk": SoftwareCategory.DESIGN,
    "jetbrains": SoftwareCategory.DEVELOPMENT,
    "github": SoftwareCategory.DEVELOPMENT,
    "oracle": SoftwareCategory.DEVELOPMENT,
    "python software foundation": SoftwareCategory.DEVELOPMENT,
    "node.js foundation": SoftwareCategory.DEVELOPMENT,
    "unity technologies": SoftwareCategory.DEVELOPMENT,
    "malwarebytes": SoftwareCategory.SECURITY,
    "kaspersky": SoftwareCategory.SECURITY,
    "norton": SoftwareCategory.SECURITY,
    "mcafee": SoftwareCategory.SECURITY,
}

_LOCATION_HINTS = ("steamapps", "steam", "epicgames", "epic games", "gog galaxy")


def _keyword_pattern(keyword: str) -> re.Pattern:
    # Word boundaries keep "edge" out of "knowledge" and "git" out of "digital".
    return re.compile(r"(?<![a-z0-9])" + re.escape(keyword) + r"(?![a-z0-9])")


_COMPILED_KEYWORDS = [
    (category, [_keyword_pattern(keyword) for keyword in keywords])
    for category, keywords in CATEGORY_KEYWORDS.items()
]


def categorize(
    name: Optional[str],
    publisher: Optional[str] = None,
    install_location: Optional[str] = None,
) -> SoftwareCategory:
    """Guess a category from the display name, publisher and install path.

    Keyword hits on the name or publisher come first, then exact publisher
    lookups, then gaming-platform hints in the install location.
    """
    if not name or not name.strip():
        return DEFAULT_CATEGORY

    lower_name = name.lower()
    lower_publisher = (publisher or "").lower()
    for category, patterns in _COMPILED_KEYWORDS:
        for pattern in patterns:
            if pattern.search(lower_name) or pattern.search(lower_publisher):
                logger.debug("Categorized %r as %s by keyword %s", name, category.value, pattern.pattern)
                return category

    if lower_publisher.strip() in PUBLISHER_CATEGORIES:
        return PUBLISHER_CATEGORIES[lower_publisher.strip()]

    lower_location = (install_location or "").lower()
    if lower_location and any(hint in lower_location for hint in _LOCATION_HINTS):
        return SoftwareCategory.GAMING_PLATFORMS

    return DEFAULT_CATEGORY


def display_name(category: SoftwareCategory) -> str:
    return DISPLAY_NAMES.get(category, category.value)
