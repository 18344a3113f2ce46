from typing import Dict, List, Optional
from datetime import datetime
from pydantic import BaseModel, Field, field_validator


class MergedSoftwareOut(BaseModel):
    installation_id: int
    reference_id: int
    name: str
    source: str
    category: str
    external_id: Optional[str] = None
    publisher: Optional[str] = None
    description: Optional[str] = None
    genres: List[str] = Field(default_factory=list)
    developers: List[str] = Field(default_factory=list)
    release_date: Optional[datetime] = None
    cover_image_url: Optional[str] = None
    install_location: Optional[str] = None
    executable_path: Optional[str] = None
    icon_path: Optional[str] = None
    version: Optional[str] = None
    install_date: Optional[datetime] = None
    size_bytes: Optional[int] = None
    last_detected: Optional[datetime] = None
    last_enriched_date: Optional[datetime] = None

    class Config:
        from_attributes = True


class ReferenceEntryOut(BaseModel):
    id: int
    name: str
    source: str
    external_id: Optional[str] = None
    category: Optional[str] = None
    publisher: Optional[str] = None
    description: Optional[str] = None
    genres: List[str] = Field(default_factory=list)
    developers: List[str] = Field(default_factory=list)
    release_date: Optional[datetime] = None
    cover_image_url: Optional[str] = None
    metadata_source: Optional[str] = None
    last_enriched_date: Optional[datetime] = None
    last_enrichment_attempt: Optional[datetime] = None
    enrichment_state: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_validator("genres", "developers", mode="before")
    @classmethod
    def none_to_list(cls, value):
        return value or []

    class Config:
        from_attributes = True


class SoftwareStatsOut(BaseModel):
    total: int
    by_category: Dict[str, int]
    by_source: Dict[str, int]
    catalog_entries: int
    installations: int


class DetectionSummaryOut(BaseModel):
    candidates: int = 0
    references_created: int = 0
    references_failed: int = 0
    inserted: int = 0
    updated: int = 0
    failed: int = 0
    stale_removed: int = 0
    enrichment_triggered: bool = False
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class DetectionStatusOut(BaseModel):
    running: bool
    last: Optional[DetectionSummaryOut] = None


class EnrichmentStatsOut(BaseModel):
    batches: int = 0
    processed: int = 0
    enriched: int = 0
    not_found: int = 0
    failed: int = 0
    stop_reason: str = ""
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None


class EnrichmentStatusOut(BaseModel):
    running: bool
    current: Optional[EnrichmentStatsOut] = None
    last: Optional[EnrichmentStatsOut] = None
    pending: int = 0


class EnrichmentStartOut(BaseModel):
    started: bool
    running: bool
