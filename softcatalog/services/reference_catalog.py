"""Shared catalog of canonical software identities (``software_ref``)."""

from __future__ import annotations

import json
import logging
from contextlib import contextmanager
from datetime import datetime, timedelta
from typing import Callable, List, Optional, Tuple

from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from ..categories import DEFAULT_CATEGORY, SoftwareCategory
from ..core.config import sqlite_url
from ..db import CatalogBase, CatalogSession, build_engine, build_session_factory
from ..errors import PersistenceError
from ..migrations import ensure_schema
from ..models import ReferenceEntry, utcnow

logger = logging.getLogger(__name__)

_MUTABLE_FIELDS = (
    "name",
    "source",
    "external_id",
    "category",
    "publisher",
    "description",
    "genres",
    "developers",
    "release_date",
    "cover_image_url",
    "metadata_json",
    "metadata_source",
    "last_enriched_date",
    "last_enrichment_attempt",
)


def start_of_utc_day(moment: datetime) -> datetime:
    return moment.replace(hour=0, minute=0, second=0, microsecond=0)


class ReferenceCatalogStore:
    """Every operation opens, commits and closes its own session."""

    def __init__(self, session_factory=None, clock: Callable[[], datetime] = utcnow) -> None:
        self._session_factory = session_factory or CatalogSession
        self._clock = clock

    @classmethod
    def open(cls, catalog_path, clock: Callable[[], datetime] = utcnow) -> "ReferenceCatalogStore":
        """Open (creating if needed) the catalog file at ``catalog_path``."""
        engine = build_engine(sqlite_url(catalog_path))
        ensure_schema(engine, CatalogBase)
        return cls(build_session_factory(engine), clock=clock)

    @property
    def engine(self):
        return self._session_factory.kw["bind"]

    def ensure_schema(self) -> None:
        ensure_schema(self.engine, CatalogBase)

    @contextmanager
    def _write(self, action: str):
        db = self._session_factory()
        try:
            yield db
            db.commit()
        except SQLAlchemyError as exc:
            db.rollback()
            logger.error("Catalog %s failed: %s", action, exc)
            raise PersistenceError(f"catalog {action} failed: {exc}") from exc
        finally:
            db.close()

    def find_by_external_id(self, source: str, external_id: Optional[str]) -> Optional[ReferenceEntry]:
        if not source or not external_id:
            return None
        db = self._session_factory()
        try:
            return (
                db.query(ReferenceEntry)
                .filter(ReferenceEntry.source == source, ReferenceEntry.external_id == str(external_id))
                .order_by(ReferenceEntry.id.asc())
                .first()
            )
        finally:
            db.close()

    def find_by_name(self, name: str, source: Optional[str] = None) -> Optional[ReferenceEntry]:
        if not name:
            return None
        db = self._session_factory()
        try:
            query = db.query(ReferenceEntry).filter(ReferenceEntry.name == name)
            if source:
                query = query.filter(ReferenceEntry.source == source)
            return query.order_by(ReferenceEntry.id.asc()).first()
        finally:
            db.close()

    def get_by_id(self, entry_id: int) -> Optional[ReferenceEntry]:
        db = self._session_factory()
        try:
            return db.get(ReferenceEntry, entry_id)
        finally:
            db.close()

    def get_all_entries(self) -> List[ReferenceEntry]:
        db = self._session_factory()
        try:
            return db.query(ReferenceEntry).order_by(ReferenceEntry.name.asc(), ReferenceEntry.id.asc()).all()
        finally:
            db.close()

    def count(self) -> int:
        db = self._session_factory()
        try:
            return int(db.query(func.count(ReferenceEntry.id)).scalar() or 0)
        finally:
            db.close()

    def get_available_sources(self) -> List[str]:
        db = self._session_factory()
        try:
            rows = db.query(ReferenceEntry.source).distinct().all()
        finally:
            db.close()
        return sorted({row[0] for row in rows if row[0]}, key=str.casefold)

    def insert(self, entry: ReferenceEntry) -> ReferenceEntry:
        now = self._clock()
        entry.created_at = entry.created_at or now
        entry.updated_at = now
        if not entry.category:
            entry.category = DEFAULT_CATEGORY.value
        with self._write("insert") as db:
            db.add(entry)
            db.flush()
        logger.debug("Inserted catalog entry %s (%s) id=%s", entry.name, entry.source, entry.id)
        return entry

    def update(self, entry: ReferenceEntry) -> bool:
        """Copy the fields of a detached ``entry`` onto its stored row."""
        if not entry.id:
            return False
        with self._write("update") as db:
            existing = db.get(ReferenceEntry, entry.id)
            if existing is None:
                logger.warning("Catalog entry %s not found for update", entry.id)
                return False
            for field in _MUTABLE_FIELDS:
                setattr(existing, field, getattr(entry, field))
            existing.updated_at = self._clock()
        return True

    def ensure_entry(
        self,
        name: str,
        source: str,
        external_id: Optional[str] = None,
        category=DEFAULT_CATEGORY,
        publisher: Optional[str] = None,
    ) -> Tuple[ReferenceEntry, bool]:
        """``find_or_create`` that also reports whether a row was created."""
        if not name or not name.strip():
            raise ValueError("name is required")
        if not source or not source.strip():
            raise ValueError("source is required")
        name = name.strip()
        source = source.strip()
        external_id = str(external_id).strip() if external_id else None

        existing = self.find_by_external_id(source, external_id) if external_id else None
        if existing is None:
            existing = self.find_by_name(name, source)
        if existing is not None:
            return existing, False

        entry = ReferenceEntry(
            name=name,
            source=source,
            external_id=external_id,
            category=SoftwareCategory.parse(category).value,
            publisher=publisher or None,
            genres=[],
            developers=[],
        )
        try:
            return self.insert(entry), True
        except PersistenceError as exc:
            # Another writer created the same identity between lookup and insert.
            if not isinstance(exc.__cause__, IntegrityError):
                raise
            existing = self.find_by_external_id(source, external_id) if external_id else None
            existing = existing or self.find_by_name(name, source)
            if existing is None:
                raise
            return existing, False

    def find_or_create(
        self,
        name: str,
        source: str,
        external_id: Optional[str] = None,
        category=DEFAULT_CATEGORY,
        publisher: Optional[str] = None,
    ) -> ReferenceEntry:
        entry, _created = self.ensure_entry(name, source, external_id, category, publisher)
        return entry

    @staticmethod
    def _unenriched_query(db, max_age_days: int, now: datetime):
        cutoff = now - timedelta(days=max_age_days)
        today_start = start_of_utc_day(now)
        return db.query(ReferenceEntry).filter(
            or_(
                ReferenceEntry.last_enriched_date.is_(None),
                ReferenceEntry.last_enriched_date < cutoff,
            ),
            or_(
                ReferenceEntry.last_enrichment_attempt.is_(None),
                ReferenceEntry.last_enrichment_attempt < today_start,
            ),
        )

    def count_unenriched(self, max_age_days: int = 30, now: Optional[datetime] = None) -> int:
        db = self._session_factory()
        try:
            return int(self._unenriched_query(db, max_age_days, now or self._clock()).count())
        finally:
            db.close()

    def get_unenriched_entries(
        self, max_age_days: int = 30, max_results: int = 100, now: Optional[datetime] = None
    ) -> List[ReferenceEntry]:
        """Entries that are stale and were not attempted during the current UTC day.

        Never-enriched rows come first, then the oldest enrichments; ties keep
        insertion order.
        """
        if max_results <= 0:
            return []
        db = self._session_factory()
        try:
            return (
                self._unenriched_query(db, max_age_days, now or self._clock())
                .order_by(
                    ReferenceEntry.last_enriched_date.is_(None).desc(),
                    ReferenceEntry.last_enriched_date.asc(),
                    ReferenceEntry.id.asc(),
                )
                .limit(max_results)
                .all()
            )
        finally:
            db.close()

    def record_attempt(self, entry_id: int, when: Optional[datetime] = None) -> bool:
        """Stamp the rate-limit marker without touching enrichment data."""
        when = when or self._clock()
        with self._write("attempt stamp") as db:
            existing = db.get(ReferenceEntry, entry_id)
            if existing is None:
                return False
            existing.last_enrichment_attempt = when
            existing.updated_at = when
        return True

    def apply_metadata(self, entry_id: int, metadata, when: Optional[datetime] = None) -> bool:
        """Merge a provider result into the stored entry and mark it enriched."""
        when = when or self._clock()
        with self._write("metadata update") as db:
            existing = db.get(ReferenceEntry, entry_id)
            if existing is None:
                logger.warning("Catalog entry %s vanished before enrichment was applied", entry_id)
                return False

            if not existing.publisher and metadata.publisher:
                existing.publisher = metadata.publisher
            if metadata.description:
                existing.description = metadata.description
            if metadata.genres:
                existing.genres = list(metadata.genres)
            if metadata.developers:
                existing.developers = list(metadata.developers)
            if metadata.release_date is not None:
                existing.release_date = metadata.release_date
            if metadata.icon_url:
                existing.cover_image_url = metadata.icon_url
            elif metadata.background_image_url:
                existing.cover_image_url = metadata.background_image_url

            extras = metadata.extras()
            if extras:
                existing.metadata_json = json.dumps(extras, sort_keys=True, default=str)

            existing.metadata_source = metadata.source or None
            existing.last_enriched_date = when
            existing.last_enrichment_attempt = when
            existing.updated_at = when
        return True
