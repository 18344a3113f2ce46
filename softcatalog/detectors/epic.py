from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from ..categories import SoftwareCategory
from ..core.config import EPIC_MANIFEST_DIR
from .base import CandidateRecord, Detector, find_executable, normalize_path_key, parse_int

logger = logging.getLogger(__name__)


def _pick_first_string(payload: Dict, *keys: str) -> str:
    for key in keys:
        value = payload.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return ""


class EpicGamesDetector(Detector):
    """Reads the launcher's ``*.item`` install manifests."""

    source = "Epic Games Store"

    def __init__(self, manifest_dir: Optional[str] = None) -> None:
        self.manifest_dir = manifest_dir if manifest_dir is not None else EPIC_MANIFEST_DIR

    def is_platform_present(self) -> bool:
        return bool(self.manifest_dir) and os.path.isdir(self.manifest_dir)

    def _iter_manifests(self):
        for manifest_path in sorted(Path(self.manifest_dir).glob("*.item")):
            try:
                payload = json.loads(manifest_path.read_text(encoding="utf-8-sig"))
            except (OSError, ValueError) as exc:
                logger.warning("Skipping Epic manifest %s: %s", manifest_path, exc)
                continue
            if not isinstance(payload, dict):
                logger.warning("Skipping Epic manifest %s: not an object", manifest_path)
                continue
            yield manifest_path, payload

    def _build_candidate(self, payload: Dict) -> Optional[CandidateRecord]:
        if payload.get("bIsIncompleteInstall"):
            return None
        app_name = _pick_first_string(payload, "AppName", "CatalogItemId")
        main_app = _pick_first_string(payload, "MainGameAppName")
        if main_app and app_name and main_app != app_name:
            # DLC manifests point back at their base game.
            return None
        name = _pick_first_string(payload, "DisplayName", "AppName")
        if not name:
            return None

        install_location = _pick_first_string(payload, "InstallLocation") or None
        launch = _pick_first_string(payload, "LaunchExecutable")
        executable = None
        if install_location and launch:
            executable = os.path.join(install_location, launch)
        elif install_location:
            executable = find_executable(install_location, name)

        return CandidateRecord(
            name=name,
            source=self.source,
            external_id=app_name or None,
            install_location=install_location,
            executable_path=executable,
            icon_path=executable,
            version=_pick_first_string(payload, "AppVersionString") or None,
            size_bytes=parse_int(payload.get("InstallSize")),
            category=SoftwareCategory.GAMES,
            registry_key=f"Epic:{app_name}" if app_name else None,
        )

    def list_candidates(self) -> List[CandidateRecord]:
        if not self.is_platform_present():
            return []
        candidates: List[CandidateRecord] = []
        for manifest_path, payload in self._iter_manifests():
            try:
                candidate = self._build_candidate(payload)
            except (TypeError, ValueError) as exc:
                logger.warning("Skipping Epic manifest %s: %s", manifest_path, exc)
                continue
            if candidate is not None:
                candidates.append(candidate)
        logger.info("Epic Games Store reported %d games", len(candidates))
        return candidates

    def classify_path(self, path: str) -> Tuple[bool, Optional[CandidateRecord]]:
        key = normalize_path_key(path)
        if not key or not self.is_platform_present():
            return False, None
        for _manifest_path, payload in self._iter_manifests():
            if normalize_path_key(payload.get("InstallLocation")) != key:
                continue
            candidate = self._build_candidate(payload)
            if candidate is not None:
                return True, candidate
        return False, None
