from __future__ import annotations

import logging
import ntpath
import os
from typing import Dict, List, Optional, Tuple

from ..categories import SoftwareCategory
from .base import CandidateRecord, Detector, find_executable, normalize_path_key
from .winreg_utils import HKLM, iter_subkeys, read_values

logger = logging.getLogger(__name__)

INSTALLS_KEYS = (
    r"SOFTWARE\WOW6432Node\Ubisoft\Launcher\Installs",
    r"SOFTWARE\Ubisoft\Launcher\Installs",
)
LAUNCHER_KEYS = (r"SOFTWARE\WOW6432Node\Ubisoft\Launcher", r"SOFTWARE\Ubisoft\Launcher")
INSTALL_STATE_FILE = "uplay_install.state"


def _title_from_directory(path: str) -> str:
    return ntpath.basename(path.rstrip("\\/"))


class UbisoftConnectDetector(Detector):
    source = "Ubisoft Connect"

    def __init__(self, installs: Optional[Dict[str, str]] = None) -> None:
        # game id -> install directory; read from the launcher registry when omitted
        self._installs = installs

    def installs(self) -> Dict[str, str]:
        if self._installs is not None:
            return self._installs
        found: Dict[str, str] = {}
        for key in INSTALLS_KEYS:
            for game_id, values in iter_subkeys(HKLM, key):
                install_dir = str(values.get("InstallDir") or "").strip()
                if install_dir and game_id not in found:
                    found[game_id] = install_dir
        return found

    def is_platform_present(self) -> bool:
        if self._installs is not None:
            return True
        return any(read_values(HKLM, key) is not None for key in LAUNCHER_KEYS)

    def _build_candidate(self, game_id: str, install_dir: str) -> Optional[CandidateRecord]:
        name = _title_from_directory(install_dir)
        if not name:
            return None
        executable = find_executable(install_dir, name)
        return CandidateRecord(
            name=name,
            source=self.source,
            external_id=game_id,
            install_location=install_dir.rstrip("\\/"),
            executable_path=executable,
            icon_path=executable,
            category=SoftwareCategory.GAMES,
            registry_key=f"Ubisoft:{game_id}",
        )

    def list_candidates(self) -> List[CandidateRecord]:
        if not self.is_platform_present():
            return []
        candidates: List[CandidateRecord] = []
        for game_id, install_dir in sorted(self.installs().items()):
            candidate = self._build_candidate(game_id, install_dir)
            if candidate is not None:
                candidates.append(candidate)
        logger.info("Ubisoft Connect reported %d games", len(candidates))
        return candidates

    def classify_path(self, path: str) -> Tuple[bool, Optional[CandidateRecord]]:
        key = normalize_path_key(path)
        if not key:
            return False, None
        for game_id, install_dir in self.installs().items():
            if normalize_path_key(install_dir) == key:
                return True, self._build_candidate(game_id, install_dir)
        if os.path.isfile(os.path.join(path, INSTALL_STATE_FILE)):
            return True, self._build_candidate("", path)
        return False, None
