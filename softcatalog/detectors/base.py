from __future__ import annotations

import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional, Tuple

from ..categories import DEFAULT_CATEGORY, SoftwareCategory

logger = logging.getLogger(__name__)

GENERIC_SOURCE = "Registry"

# Executables that ship next to a program but never start it.
_HELPER_TOKENS = (
    "unins",
    "crashreport",
    "crashhandler",
    "crashpad",
    "reporter",
    "redist",
    "dxsetup",
)
# Usually not the program itself, unless the name matches the title.
_SECONDARY_TOKENS = (
    "launcher",
    "setup",
    "installer",
    "updater",
)
_TITLE_STRIP_PATTERN = re.compile(r"[^a-z0-9]+")


@dataclass
class CandidateRecord:
    """One installed title as seen by a single detector."""

    name: str
    source: str
    external_id: Optional[str] = None
    install_location: Optional[str] = None
    executable_path: Optional[str] = None
    icon_path: Optional[str] = None
    version: Optional[str] = None
    install_date: Optional[datetime] = None
    size_bytes: Optional[int] = None
    category: SoftwareCategory = DEFAULT_CATEGORY
    publisher: Optional[str] = None
    registry_key: Optional[str] = None

    def __post_init__(self) -> None:
        self.name = (self.name or "").strip()
        self.source = (self.source or "").strip()
        if self.external_id is not None:
            self.external_id = str(self.external_id).strip() or None
        if self.install_location is not None:
            self.install_location = self.install_location.strip() or None

    def name_key(self) -> str:
        return self.name.casefold()

    def with_baseline(self, baseline: "CandidateRecord") -> "CandidateRecord":
        """Fill facts this record lacks from the generic inventory entry it replaces."""
        return replace(
            self,
            install_location=self.install_location or baseline.install_location,
            executable_path=self.executable_path or baseline.executable_path,
            icon_path=self.icon_path or baseline.icon_path,
            version=self.version or baseline.version,
            install_date=self.install_date or baseline.install_date,
            size_bytes=self.size_bytes if self.size_bytes is not None else baseline.size_bytes,
            publisher=self.publisher or baseline.publisher,
        )


class Detector(ABC):
    """Reports installed titles for one source."""

    source: str = ""

    def is_platform_present(self) -> bool:
        return True

    @abstractmethod
    def list_candidates(self) -> List[CandidateRecord]:
        """Return every title this source can see. Malformed items are skipped."""

    def classify_path(self, path: str) -> Tuple[bool, Optional[CandidateRecord]]:
        """Claim ``path`` for this platform when its on-disk signature matches."""
        return False, None

    def __repr__(self) -> str:
        return f"<{type(self).__name__} source={self.source!r}>"


def normalize_path_key(path: Optional[str]) -> str:
    """Comparable form of a Windows-style path on any host."""
    if not path:
        return ""
    cleaned = str(path).strip().strip('"').replace("\\", "/")
    while "//" in cleaned:
        cleaned = cleaned.replace("//", "/")
    return cleaned.rstrip("/").casefold()


def same_path(left: Optional[str], right: Optional[str]) -> bool:
    left_key = normalize_path_key(left)
    return bool(left_key) and left_key == normalize_path_key(right)


def _title_key(value: str) -> str:
    return _TITLE_STRIP_PATTERN.sub("", value.lower())


def _is_helper(filename: str) -> bool:
    lowered = filename.lower()
    return any(token in lowered for token in _HELPER_TOKENS)


def _is_secondary(filename: str) -> bool:
    lowered = filename.lower()
    return any(token in lowered for token in _SECONDARY_TOKENS)


def find_executable(directory: Optional[str], title: str = "", max_depth: int = 2) -> Optional[str]:
    """Pick the most likely game or program executable inside ``directory``.

    An executable whose name resembles ``title`` wins, otherwise the first
    plausible one found closest to the top of the tree.
    """
    if not directory:
        return None
    root = Path(directory)
    if not root.is_dir():
        return None

    wanted = _title_key(title)
    fallback: Optional[Path] = None
    level = [root]
    for _depth in range(max_depth + 1):
        next_level: List[Path] = []
        for folder in level:
            try:
                children = sorted(folder.iterdir(), key=lambda item: item.name.lower())
            except OSError as exc:
                logger.debug("Cannot list %s: %s", folder, exc)
                continue
            for child in children:
                if child.is_dir():
                    next_level.append(child)
                    continue
                if child.suffix.lower() != ".exe" or _is_helper(child.name):
                    continue
                stem_key = _title_key(child.stem)
                if wanted and stem_key and (stem_key in wanted or wanted in stem_key):
                    return str(child)
                if _is_secondary(child.name):
                    continue
                if fallback is None:
                    fallback = child
        if fallback is not None:
            return str(fallback)
        level = next_level
    return None


def parse_unix_timestamp(value) -> Optional[datetime]:
    try:
        seconds = int(str(value).strip())
    except (TypeError, ValueError):
        return None
    if seconds <= 0:
        return None
    try:
        return datetime.fromtimestamp(seconds, tz=timezone.utc).replace(tzinfo=None)
    except (OverflowError, OSError, ValueError):
        return None


def parse_int(value) -> Optional[int]:
    if value is None:
        return None
    try:
        parsed = int(str(value).strip())
    except (TypeError, ValueError):
        return None
    return parsed if parsed >= 0 else None
