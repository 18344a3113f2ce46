from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import List, Optional, Tuple

from sqlalchemy import create_engine, text
from sqlalchemy.exc import SQLAlchemyError

from ..categories import SoftwareCategory
from ..core.config import AMAZON_GAMES_DIR
from .base import CandidateRecord, Detector, find_executable, normalize_path_key

logger = logging.getLogger(__name__)

INSTALL_INFO_DB = Path("Data") / "Games" / "Sql" / "GameInstallInfo.sqlite"


def _default_root() -> str:
    if AMAZON_GAMES_DIR:
        return AMAZON_GAMES_DIR
    local_app_data = os.getenv("LOCALAPPDATA", "").strip()
    return os.path.join(local_app_data, "Amazon Games") if local_app_data else ""


class AmazonGamesDetector(Detector):
    """Reads the launcher's own install-info SQLite database."""

    source = "Amazon Games"

    def __init__(self, root: Optional[str] = None) -> None:
        self.root = root if root is not None else _default_root()
        self._candidates: Optional[List[CandidateRecord]] = None

    @property
    def database_path(self) -> Optional[Path]:
        if not self.root:
            return None
        return Path(self.root) / INSTALL_INFO_DB

    def is_platform_present(self) -> bool:
        path = self.database_path
        return path is not None and path.is_file()

    def _read_rows(self) -> List[Tuple[str, str, str]]:
        path = self.database_path
        engine = create_engine(f"sqlite:///file:{path.as_posix()}?mode=ro&uri=true")
        try:
            with engine.connect() as connection:
                rows = connection.execute(
                    text("SELECT Id, InstallDirectory, ProductTitle FROM DbSet WHERE Installed = 1")
                ).fetchall()
        finally:
            engine.dispose()
        return [(str(row[0] or ""), str(row[1] or ""), str(row[2] or "")) for row in rows]

    def list_candidates(self) -> List[CandidateRecord]:
        if not self.is_platform_present():
            return []
        try:
            rows = self._read_rows()
        except SQLAlchemyError as exc:
            logger.warning("Cannot read Amazon Games database %s: %s", self.database_path, exc)
            return []

        candidates: List[CandidateRecord] = []
        for product_id, install_dir, title in rows:
            if not product_id or not title.strip():
                logger.warning("Skipping Amazon Games row without id or title: %r", product_id)
                continue
            executable = find_executable(install_dir, title)
            candidates.append(
                CandidateRecord(
                    name=title,
                    source=self.source,
                    external_id=product_id,
                    install_location=install_dir or None,
                    executable_path=executable,
                    icon_path=executable,
                    category=SoftwareCategory.GAMES,
                    registry_key=f"Amazon:{product_id}",
                )
            )
        logger.info("Amazon Games reported %d games", len(candidates))
        return candidates

    def classify_path(self, path: str) -> Tuple[bool, Optional[CandidateRecord]]:
        key = normalize_path_key(path)
        if not key:
            return False, None
        if self._candidates is None:
            self._candidates = self.list_candidates()
        for candidate in self._candidates:
            if normalize_path_key(candidate.install_location) == key:
                return True, candidate
        return False, None
