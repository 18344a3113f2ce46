from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple

from ..categories import SoftwareCategory
from .base import CandidateRecord, Detector, find_executable, normalize_path_key
from .winreg_utils import HKLM, iter_subkeys, read_values

logger = logging.getLogger(__name__)

GAMES_KEY = r"SOFTWARE\WOW6432Node\GOG.com\Games"
CLIENT_KEY = r"SOFTWARE\WOW6432Node\GOG.com\GalaxyClient"


def read_info_file(directory: str) -> Optional[Dict]:
    """Load the ``goggame-<id>.info`` file every GOG install carries."""
    root = Path(directory)
    if not root.is_dir():
        return None
    for info_path in sorted(root.glob("goggame-*.info")):
        try:
            payload = json.loads(info_path.read_text(encoding="utf-8-sig"))
        except (OSError, ValueError) as exc:
            logger.warning("Unreadable GOG info file %s: %s", info_path, exc)
            continue
        if isinstance(payload, dict):
            return payload
    return None


def _primary_task_path(payload: Dict) -> str:
    for task in payload.get("playTasks") or []:
        if isinstance(task, dict) and task.get("isPrimary") and task.get("path"):
            return str(task["path"])
    return ""


class GOGGalaxyDetector(Detector):
    source = "GOG Galaxy"

    def __init__(self, library_dirs: Optional[Iterable[str]] = None, use_registry: bool = True) -> None:
        self.library_dirs = list(library_dirs or [])
        self.use_registry = use_registry

    def is_platform_present(self) -> bool:
        if any(os.path.isdir(path) for path in self.library_dirs):
            return True
        return self.use_registry and read_values(HKLM, CLIENT_KEY) is not None

    def _candidate_from_info(self, directory: str, payload: Dict) -> Optional[CandidateRecord]:
        name = str(payload.get("name") or "").strip()
        game_id = str(payload.get("gameId") or "").strip()
        if not name or not game_id:
            return None
        task_path = _primary_task_path(payload)
        executable = os.path.join(directory, task_path) if task_path else find_executable(directory, name)
        return CandidateRecord(
            name=name,
            source=self.source,
            external_id=game_id,
            install_location=directory,
            executable_path=executable,
            icon_path=executable,
            version=str(payload.get("version") or "").strip() or None,
            category=SoftwareCategory.GAMES,
            registry_key=f"GOG:{game_id}",
        )

    def _candidate_from_registry(self, sub_name: str, values: Dict[str, object]) -> Optional[CandidateRecord]:
        name = str(values.get("gameName") or values.get("GAMENAME") or "").strip()
        game_id = str(values.get("gameID") or values.get("GAMEID") or sub_name).strip()
        install_location = str(values.get("path") or values.get("PATH") or "").strip() or None
        if not name:
            return None
        executable = str(values.get("exe") or values.get("EXE") or "").strip() or None
        if not executable:
            executable = find_executable(install_location, name)
        return CandidateRecord(
            name=name,
            source=self.source,
            external_id=game_id,
            install_location=install_location,
            executable_path=executable,
            icon_path=executable,
            version=str(values.get("ver") or "").strip() or None,
            category=SoftwareCategory.GAMES,
            registry_key=f"GOG:{game_id}",
        )

    def list_candidates(self) -> List[CandidateRecord]:
        candidates: List[CandidateRecord] = []
        seen = set()

        if self.use_registry:
            for sub_name, values in iter_subkeys(HKLM, GAMES_KEY):
                try:
                    candidate = self._candidate_from_registry(sub_name, values)
                except (TypeError, ValueError) as exc:
                    logger.warning("Skipping GOG registry entry %s: %s", sub_name, exc)
                    continue
                if candidate is not None and candidate.external_id not in seen:
                    seen.add(candidate.external_id)
                    candidates.append(candidate)

        for library in self.library_dirs:
            root = Path(library)
            if not root.is_dir():
                continue
            for game_dir in sorted(child for child in root.iterdir() if child.is_dir()):
                payload = read_info_file(str(game_dir))
                if payload is None:
                    continue
                candidate = self._candidate_from_info(str(game_dir), payload)
                if candidate is not None and candidate.external_id not in seen:
                    seen.add(candidate.external_id)
                    candidates.append(candidate)

        logger.info("GOG Galaxy reported %d games", len(candidates))
        return candidates

    def classify_path(self, path: str) -> Tuple[bool, Optional[CandidateRecord]]:
        if not normalize_path_key(path):
            return False, None
        payload = read_info_file(path)
        if payload is None:
            return False, None
        candidate = self._candidate_from_info(path, payload)
        return (candidate is not None), candidate
