"""Per-machine installation facts (``installed_software``)."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Iterable, List, Optional

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError

from ..core.config import sqlite_url
from ..db import LocalBase, LocalSession, build_engine, build_session_factory
from ..errors import PersistenceError
from ..migrations import ensure_schema
from ..models import LocalInstallation, utcnow

logger = logging.getLogger(__name__)

_INSTALLATION_FACTS = (
    "install_location",
    "executable_path",
    "icon_path",
    "registry_key",
    "version",
    "install_date",
    "size_bytes",
)


@dataclass
class UpsertResult:
    inserted: int = 0
    updated: int = 0
    failed: int = 0
    errors: List[str] = field(default_factory=list)

    @property
    def processed(self) -> int:
        return self.inserted + self.updated


def _clean(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    cleaned = str(value).strip()
    return cleaned or None


def _find_match(db, entry: LocalInstallation) -> Optional[LocalInstallation]:
    query = db.query(LocalInstallation).filter(LocalInstallation.reference_id == entry.reference_id)
    if entry.install_location:
        return query.filter(LocalInstallation.install_location == entry.install_location).first()
    if entry.executable_path:
        return query.filter(LocalInstallation.executable_path == entry.executable_path).first()
    return None


class LocalInstallationStore:
    def __init__(self, session_factory=None, clock: Callable[[], datetime] = utcnow) -> None:
        self._session_factory = session_factory or LocalSession
        self._clock = clock

    @classmethod
    def open(cls, database_path, clock: Callable[[], datetime] = utcnow) -> "LocalInstallationStore":
        engine = build_engine(sqlite_url(database_path))
        ensure_schema(engine, LocalBase)
        return cls(build_session_factory(engine), clock=clock)

    @property
    def engine(self):
        return self._session_factory.kw["bind"]

    def ensure_schema(self) -> None:
        ensure_schema(self.engine, LocalBase)

    @contextmanager
    def _write(self, action: str):
        db = self._session_factory()
        try:
            yield db
            db.commit()
        except SQLAlchemyError as exc:
            db.rollback()
            logger.error("Installation %s failed: %s", action, exc)
            raise PersistenceError(f"installation {action} failed: {exc}") from exc
        finally:
            db.close()

    def get_all(self) -> List[LocalInstallation]:
        db = self._session_factory()
        try:
            return (
                db.query(LocalInstallation)
                .order_by(LocalInstallation.reference_id.asc(), LocalInstallation.install_location.asc())
                .all()
            )
        finally:
            db.close()

    def get_by_reference_id(self, reference_id: int) -> List[LocalInstallation]:
        db = self._session_factory()
        try:
            return (
                db.query(LocalInstallation)
                .filter(LocalInstallation.reference_id == reference_id)
                .order_by(LocalInstallation.id.asc())
                .all()
            )
        finally:
            db.close()

    def get_count(self) -> int:
        db = self._session_factory()
        try:
            return int(db.query(func.count(LocalInstallation.id)).scalar() or 0)
        finally:
            db.close()

    def _apply(self, db, entry: LocalInstallation, now: datetime) -> bool:
        """Insert or refresh one row inside ``db``; True when a new row was added."""
        if not entry.reference_id:
            raise ValueError("installation has no reference id")
        entry.install_location = _clean(entry.install_location)
        entry.executable_path = _clean(entry.executable_path)

        existing = _find_match(db, entry)
        if existing is None:
            row = LocalInstallation(reference_id=entry.reference_id)
            for name in _INSTALLATION_FACTS:
                setattr(row, name, getattr(entry, name))
            row.created_at = now
            row.updated_at = now
            row.last_detected = now
            db.add(row)
            db.flush()
            entry.id = row.id
            entry.created_at = now
            entry.updated_at = now
            entry.last_detected = now
            return True

        for name in _INSTALLATION_FACTS:
            value = getattr(entry, name)
            if value is not None:
                setattr(existing, name, value)
        existing.last_detected = now
        existing.updated_at = now
        db.flush()
        entry.id = existing.id
        entry.created_at = existing.created_at
        entry.updated_at = now
        entry.last_detected = now
        return False

    def upsert(self, entry: LocalInstallation) -> bool:
        """Insert or refresh ``entry``; returns True when a new row was created.

        Rows match on (reference, install location), or on (reference,
        executable) when the location is empty.
        """
        if not entry.reference_id:
            raise ValueError("installation has no reference id")
        now = self._clock()
        with self._write("upsert") as db:
            return self._apply(db, entry, now)

    def upsert_batch(self, entries: Iterable[LocalInstallation]) -> UpsertResult:
        """Upsert every entry; a failing row is rolled back alone and counted."""
        result = UpsertResult()
        now = self._clock()
        db = self._session_factory()
        try:
            for entry in entries:
                if not entry.reference_id:
                    logger.warning("Skipping installation without reference id: %s", entry.install_location)
                    result.failed += 1
                    result.errors.append(f"missing reference id for {entry.install_location!r}")
                    continue
                savepoint = db.begin_nested()
                try:
                    inserted = self._apply(db, entry, now)
                    savepoint.commit()
                except (SQLAlchemyError, ValueError) as exc:
                    savepoint.rollback()
                    logger.warning(
                        "Installation upsert failed for reference %s at %s: %s",
                        entry.reference_id,
                        entry.install_location,
                        exc,
                    )
                    result.failed += 1
                    result.errors.append(str(exc))
                    continue
                if inserted:
                    result.inserted += 1
                else:
                    result.updated += 1
            db.commit()
        except SQLAlchemyError as exc:
            db.rollback()
            logger.error("Installation batch upsert failed: %s", exc)
            raise PersistenceError(f"installation batch upsert failed: {exc}") from exc
        finally:
            db.close()
        logger.info(
            "Installation upsert: inserted=%d updated=%d failed=%d",
            result.inserted,
            result.updated,
            result.failed,
        )
        return result

    def remove_stale_entries(self, older_than: datetime) -> int:
        """Delete rows not detected since ``older_than``; returns how many went."""
        with self._write("stale sweep") as db:
            removed = (
                db.query(LocalInstallation)
                .filter(LocalInstallation.last_detected < older_than)
                .delete(synchronize_session=False)
            )
        if removed:
            logger.info("Removed %d installations not seen since %s", removed, older_than.isoformat())
        return int(removed or 0)
