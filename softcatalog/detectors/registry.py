from __future__ import annotations

import logging
import ntpath
import os
import re
from datetime import datetime
from typing import Dict, Iterator, List, Optional, Tuple

from ..categories import categorize
from .base import GENERIC_SOURCE, CandidateRecord, Detector, find_executable
from .winreg_utils import HKCU, HKLM, VIEW_32, VIEW_64, iter_subkeys, registry_available

logger = logging.getLogger(__name__)

UNINSTALL_PATHS = [
    (HKLM, r"SOFTWARE\Microsoft\Windows\CurrentVersion\Uninstall", VIEW_64),
    (HKLM, r"SOFTWARE\WOW6432Node\Microsoft\Windows\CurrentVersion\Uninstall", VIEW_32),
    (HKCU, r"SOFTWARE\Microsoft\Windows\CurrentVersion\Uninstall", VIEW_64),
]

INVALID_LOCATION_TOKENS = {"unknown", "n/a", "na", "none", "null"}
_SKIPPED_RELEASE_TYPES = {"update", "hotfix", "security update", "service pack"}
_INSTALL_DATE_PATTERN = re.compile(r"^(?P<y>\d{4})(?P<m>\d{2})(?P<d>\d{2})$")


def is_valid_software(values: Dict[str, object]) -> bool:
    """Filter out patches, runtimes and hidden system components."""
    name = str(values.get("DisplayName") or "").strip()
    if not name:
        return False
    if str(values.get("SystemComponent") or "0").strip() == "1":
        return False
    if values.get("ParentKeyName"):
        return False
    if str(values.get("ReleaseType") or "").strip().lower() in _SKIPPED_RELEASE_TYPES:
        return False

    lowered = name.lower()
    if "hotfix" in lowered or "update for" in lowered or "security update" in lowered:
        return False
    if lowered.startswith("kb") and lowered[2:3].isdigit():
        return False
    if "microsoft visual c++" in lowered and "redistributable" in lowered:
        return False
    if "microsoft .net" in lowered and "update" in lowered:
        return False
    return True


def normalize_install_location(raw_path: Optional[str]) -> str:
    if not raw_path:
        return ""
    path = str(raw_path).strip().strip('"')
    if not path:
        return ""
    lower = path.casefold()
    if lower in INVALID_LOCATION_TOKENS or lower.startswith("unknown"):
        return ""
    return os.path.expandvars(path).rstrip("\\/") or path


def executable_from_icon(raw_icon: Optional[str]) -> str:
    """``DisplayIcon`` holds ``"C:\\App\\app.exe",0``; keep only an exe path."""
    text = str(raw_icon or "").strip()
    if not text:
        return ""
    if text.startswith('"'):
        end = text.find('"', 1)
        text = text[1:end] if end > 1 else text.strip('"')
    lowered = text.casefold()
    idx = lowered.find(".exe")
    if idx == -1:
        return ""
    candidate = text[: idx + 4].strip()
    name = ntpath.basename(candidate).lower()
    if name.startswith("unins") or "uninstall" in name or name in ("msiexec.exe", "rundll32.exe"):
        return ""
    return candidate


def parse_install_date(raw: Optional[str]) -> Optional[datetime]:
    """Uninstall keys store the install date as YYYYMMDD."""
    match = _INSTALL_DATE_PATTERN.match(str(raw or "").strip())
    if not match:
        return None
    try:
        return datetime(int(match.group("y")), int(match.group("m")), int(match.group("d")))
    except ValueError:
        return None


def estimated_size_bytes(raw) -> Optional[int]:
    """``EstimatedSize`` is reported in kilobytes."""
    if raw is None:
        return None
    try:
        return max(int(raw), 0) * 1024
    except (TypeError, ValueError):
        return None


class RegistryInventoryDetector(Detector):
    """Enumerates Win32 uninstall entries across both registry views and HKCU."""

    source = GENERIC_SOURCE

    def is_platform_present(self) -> bool:
        return registry_available()

    def _iter_uninstall_entries(self) -> Iterator[Tuple[str, Dict[str, object]]]:
        for hive, path, view in UNINSTALL_PATHS:
            for sub_name, values in iter_subkeys(hive, path, view):
                yield f"{hive}\\{path}\\{sub_name}", values

    def list_candidates(self) -> List[CandidateRecord]:
        candidates: List[CandidateRecord] = []
        seen = set()
        for key_path, values in self._iter_uninstall_entries():
            try:
                candidate = self.build_candidate(key_path, values)
            except (TypeError, ValueError, OSError) as exc:
                logger.warning("Skipping malformed uninstall entry %s: %s", key_path, exc)
                continue
            if candidate is None:
                continue
            # 64-bit and 32-bit views often list the same product twice.
            identity = (candidate.name_key(), (candidate.version or "").casefold())
            if identity in seen:
                continue
            seen.add(identity)
            candidates.append(candidate)
        logger.info("Generic inventory reported %d programs", len(candidates))
        return candidates

    def build_candidate(self, key_path: str, values: Dict[str, object]) -> Optional[CandidateRecord]:
        if not is_valid_software(values):
            return None

        name = str(values.get("DisplayName")).strip()
        publisher = str(values.get("Publisher") or "").strip() or None
        install_location = normalize_install_location(values.get("InstallLocation"))
        icon_exe = executable_from_icon(values.get("DisplayIcon"))
        if not install_location and icon_exe:
            install_location = ntpath.dirname(icon_exe)

        executable = icon_exe or find_executable(install_location, name) or None
        return CandidateRecord(
            name=name,
            source=self.source,
            install_location=install_location or None,
            executable_path=executable,
            icon_path=icon_exe or executable,
            version=str(values.get("DisplayVersion") or "").strip() or None,
            install_date=parse_install_date(values.get("InstallDate")),
            size_bytes=estimated_size_bytes(values.get("EstimatedSize")),
            category=categorize(name, publisher, install_location),
            publisher=publisher,
            registry_key=key_path,
        )
