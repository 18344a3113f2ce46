from __future__ import annotations

import logging
import os
import re
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from ..categories import SoftwareCategory
from ..core.config import STEAM_PATH
from .base import (
    CandidateRecord,
    Detector,
    find_executable,
    normalize_path_key,
    parse_int,
    parse_unix_timestamp,
)
from .winreg_utils import HKCU, HKLM, read_string

logger = logging.getLogger(__name__)

_LIBRARY_PATH_PATTERN = re.compile(r'"path"\s+"([^"]+)"', re.IGNORECASE)
_KEY_VALUE_PATTERN = re.compile(r'"([^"]+)"\s+"((?:[^"\\]|\\.)*)"')
# Runtime packages Steam installs next to games.
_IGNORED_APP_IDS = {"228980", "1070560", "1391110", "1628350"}


def parse_acf(text: str) -> Dict[str, str]:
    """Flat view of an ACF/VDF document; the first occurrence of a key wins."""
    values: Dict[str, str] = {}
    for key, value in _KEY_VALUE_PATTERN.findall(text):
        values.setdefault(key.lower(), value.replace("\\\\", "\\"))
    return values


def parse_library_folders(text: str) -> List[str]:
    return [match.replace("\\\\", "\\") for match in _LIBRARY_PATH_PATTERN.findall(text)]


class SteamDetector(Detector):
    source = "Steam"

    def __init__(self, steam_path: Optional[str] = None) -> None:
        self._steam_path = steam_path
        self._manifest_cache: Optional[Dict[str, Dict[str, str]]] = None

    @property
    def steam_path(self) -> str:
        if self._steam_path is None:
            self._steam_path = (
                STEAM_PATH
                or read_string(HKCU, r"Software\Valve\Steam", "SteamPath")
                or read_string(HKLM, r"SOFTWARE\WOW6432Node\Valve\Steam", "InstallPath")
                or ""
            )
        return self._steam_path

    def is_platform_present(self) -> bool:
        root = self.steam_path
        return bool(root) and os.path.isdir(os.path.join(root, "steamapps"))

    def library_folders(self) -> List[str]:
        root = self.steam_path
        if not root:
            return []
        folders = [root]
        vdf_path = Path(root) / "steamapps" / "libraryfolders.vdf"
        if vdf_path.exists():
            try:
                folders.extend(parse_library_folders(vdf_path.read_text(encoding="utf-8", errors="replace")))
            except OSError as exc:
                logger.warning("Cannot read %s: %s", vdf_path, exc)

        unique: List[str] = []
        seen = set()
        for folder in folders:
            key = normalize_path_key(folder)
            if key and key not in seen:
                seen.add(key)
                unique.append(folder)
        return unique

    def _read_manifest(self, library: str, manifest_path: Path) -> Optional[CandidateRecord]:
        values = parse_acf(manifest_path.read_text(encoding="utf-8", errors="replace"))
        app_id = values.get("appid", "").strip()
        name = values.get("name", "").strip()
        install_dir = values.get("installdir", "").strip()
        if not app_id or not name or app_id in _IGNORED_APP_IDS:
            return None

        install_location = (
            os.path.join(library, "steamapps", "common", install_dir) if install_dir else None
        )
        executable = find_executable(install_location, name)
        return CandidateRecord(
            name=name,
            source=self.source,
            external_id=app_id,
            install_location=install_location,
            executable_path=executable,
            icon_path=executable,
            version=values.get("buildid") or None,
            install_date=parse_unix_timestamp(values.get("lastupdated")),
            size_bytes=parse_int(values.get("sizeondisk")),
            category=SoftwareCategory.GAMES,
            registry_key=f"Steam:{app_id}",
        )

    def _load_manifests(self) -> Dict[str, Dict[str, str]]:
        if self._manifest_cache is not None:
            return self._manifest_cache
        by_install_dir: Dict[str, Dict[str, str]] = {}
        for library in self.library_folders():
            steamapps = Path(library) / "steamapps"
            if not steamapps.is_dir():
                logger.debug("Steam library %s has no steamapps folder", library)
                continue
            for manifest_path in sorted(steamapps.glob("appmanifest_*.acf")):
                try:
                    values = parse_acf(manifest_path.read_text(encoding="utf-8", errors="replace"))
                except OSError as exc:
                    logger.warning("Cannot read Steam manifest %s: %s", manifest_path, exc)
                    continue
                values["_library"] = library
                values["_manifest"] = str(manifest_path)
                install_dir = values.get("installdir", "")
                if install_dir:
                    key = normalize_path_key(os.path.join(library, "steamapps", "common", install_dir))
                    by_install_dir[key] = values
        self._manifest_cache = by_install_dir
        return by_install_dir

    def list_candidates(self) -> List[CandidateRecord]:
        if not self.is_platform_present():
            return []
        candidates: List[CandidateRecord] = []
        for library in self.library_folders():
            steamapps = Path(library) / "steamapps"
            if not steamapps.is_dir():
                continue
            for manifest_path in sorted(steamapps.glob("appmanifest_*.acf")):
                try:
                    candidate = self._read_manifest(library, manifest_path)
                except (OSError, ValueError) as exc:
                    logger.warning("Skipping Steam manifest %s: %s", manifest_path, exc)
                    continue
                if candidate is not None:
                    candidates.append(candidate)
        logger.info("Steam reported %d games", len(candidates))
        return candidates

    def classify_path(self, path: str) -> Tuple[bool, Optional[CandidateRecord]]:
        key = normalize_path_key(path)
        if "/steamapps/common/" not in key:
            return False, None
        values = self._load_manifests().get(key)
        if values is None:
            return False, None
        candidate = self._read_manifest(values["_library"], Path(values["_manifest"]))
        if candidate is None:
            return False, None
        return True, candidate
