from datetime import datetime, timezone

from sqlalchemy import (
    Column,
    DateTime,
    Index,
    Integer,
    BigInteger,
    JSON,
    String,
    Text,
    UniqueConstraint,
    text,
)

from .categories import SoftwareCategory
from .db import CatalogBase, LocalBase


def utcnow() -> datetime:
    """Naive UTC timestamp, the form every stored datetime uses."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class ReferenceEntry(CatalogBase):
    __tablename__ = "software_ref"
    __table_args__ = (
        UniqueConstraint("source", "external_id", name="uq_software_ref_source_external"),
        Index(
            "uq_software_ref_name_source",
            "name",
            "source",
            unique=True,
            sqlite_where=text("external_id IS NULL"),
            postgresql_where=text("external_id IS NULL"),
        ),
        Index("ix_software_ref_last_enriched", "last_enriched_date"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(500), nullable=False, index=True)
    source = Column(String(50), nullable=False)
    external_id = Column(String(200), nullable=True)
    category = Column(String(100), default=SoftwareCategory.OTHER.value)
    publisher = Column(String(500), nullable=True)
    description = Column(Text, nullable=True)
    genres = Column(JSON, default=list)
    developers = Column(JSON, default=list)
    release_date = Column(DateTime, nullable=True)
    cover_image_url = Column(String(1000), nullable=True)
    metadata_json = Column(Text, nullable=True)
    metadata_source = Column(String(100), nullable=True)
    last_enriched_date = Column(DateTime, nullable=True)
    last_enrichment_attempt = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    def __repr__(self) -> str:
        return f"<ReferenceEntry id={self.id} name={self.name!r} source={self.source!r}>"


class LocalInstallation(LocalBase):
    __tablename__ = "installed_software"
    __table_args__ = (
        UniqueConstraint("software_ref_id", "install_location", name="uq_installed_ref_location"),
        Index("ix_installed_ref_executable", "software_ref_id", "executable_path"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    # Points into software_ref, which usually lives in a different database file,
    # so the reference is checked by the query layer rather than by a constraint.
    reference_id = Column("software_ref_id", Integer, nullable=False, index=True)
    install_location = Column(String(1000), nullable=True)
    executable_path = Column(String(1000), nullable=True)
    icon_path = Column(String(1000), nullable=True)
    registry_key = Column(String(1000), nullable=True)
    version = Column(String(100), nullable=True)
    install_date = Column(DateTime, nullable=True)
    size_bytes = Column(BigInteger, nullable=True)
    last_detected = Column(DateTime, default=utcnow, nullable=False, index=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    def __repr__(self) -> str:
        return (
            f"<LocalInstallation id={self.id} reference_id={self.reference_id} "
            f"location={self.install_location!r}>"
        )
