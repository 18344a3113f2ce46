from __future__ import annotations

import logging
import ntpath
import os
import xml.etree.ElementTree as ET
from typing import Dict, List, Optional, Tuple

from ..categories import SoftwareCategory
from .base import CandidateRecord, Detector, find_executable, normalize_path_key
from .winreg_utils import HKLM, iter_subkeys, read_values

logger = logging.getLogger(__name__)

GAMES_KEY = r"SOFTWARE\WOW6432Node\EA Games"
DESKTOP_KEY = r"SOFTWARE\Electronic Arts\EA Desktop"
INSTALLER_MANIFEST = os.path.join("__Installer", "installerdata.xml")


def _local_name(tag: str) -> str:
    return tag.rsplit("}", 1)[-1].lower()


def read_installer_manifest(directory: str) -> Optional[Dict[str, str]]:
    """Title and content id from ``__Installer/installerdata.xml``."""
    manifest_path = os.path.join(directory, INSTALLER_MANIFEST)
    if not os.path.isfile(manifest_path):
        return None
    try:
        root = ET.parse(manifest_path).getroot()
    except (OSError, ET.ParseError) as exc:
        logger.warning("Unreadable EA installer manifest %s: %s", manifest_path, exc)
        return None

    titles: Dict[str, str] = {}
    content_id = ""
    for element in root.iter():
        tag = _local_name(element.tag)
        text = (element.text or "").strip()
        if not text:
            continue
        if tag == "gametitle":
            titles.setdefault((element.get("locale") or "").lower(), text)
        elif tag == "contentid" and not content_id:
            content_id = text

    title = titles.get("en_us") or next(iter(titles.values()), "")
    return {"name": title, "content_id": content_id}


class EAAppDetector(Detector):
    source = "EA App"

    def __init__(self, installs: Optional[Dict[str, str]] = None) -> None:
        # title -> install directory; read from the registry when omitted
        self._installs = installs

    def installs(self) -> Dict[str, str]:
        if self._installs is not None:
            return self._installs
        found: Dict[str, str] = {}
        for title, values in iter_subkeys(HKLM, GAMES_KEY):
            install_dir = str(values.get("Install Dir") or values.get("InstallLocation") or "").strip()
            if install_dir:
                found[title] = install_dir
        return found

    def is_platform_present(self) -> bool:
        if self._installs is not None:
            return True
        return read_values(HKLM, DESKTOP_KEY) is not None or read_values(HKLM, GAMES_KEY) is not None

    def _build_candidate(self, title: str, install_dir: str) -> Optional[CandidateRecord]:
        manifest = read_installer_manifest(install_dir) or {}
        name = manifest.get("name") or title or ntpath.basename(install_dir.rstrip("\\/"))
        if not name:
            return None
        content_id = manifest.get("content_id") or None
        executable = find_executable(install_dir, name)
        return CandidateRecord(
            name=name,
            source=self.source,
            external_id=content_id,
            install_location=install_dir.rstrip("\\/"),
            executable_path=executable,
            icon_path=executable,
            category=SoftwareCategory.GAMES,
            registry_key=f"EA:{content_id or name}",
        )

    def list_candidates(self) -> List[CandidateRecord]:
        if not self.is_platform_present():
            return []
        candidates: List[CandidateRecord] = []
        for title, install_dir in sorted(self.installs().items()):
            candidate = self._build_candidate(title, install_dir)
            if candidate is not None:
                candidates.append(candidate)
        logger.info("EA App reported %d games", len(candidates))
        return candidates

    def classify_path(self, path: str) -> Tuple[bool, Optional[CandidateRecord]]:
        if not normalize_path_key(path):
            return False, None
        if not os.path.isfile(os.path.join(path, INSTALLER_MANIFEST)):
            return False, None
        candidate = self._build_candidate("", path)
        return (candidate is not None), candidate
