from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from ..core.config import ENRICHMENT_MAX_AGE_DAYS
from ..models import utcnow
from ..runtime import Services
from ..schemas import MergedSoftwareOut, ReferenceEntryOut, SoftwareStatsOut
from ..services.enrichment import entry_state
from .deps import get_services

router = APIRouter()


@router.get("/software", response_model=list[MergedSoftwareOut])
def list_software(
    category: Optional[str] = Query(None, description="Category name, e.g. Games"),
    source: Optional[str] = Query(None, description="Source tag, e.g. Steam"),
    services: Services = Depends(get_services),
):
    return services.query.query(category=category, source=source)


@router.get("/software/sources", response_model=list[str])
def list_sources(services: Services = Depends(get_services)):
    return services.query.available_sources()


@router.get("/software/stats", response_model=SoftwareStatsOut)
def software_stats(services: Services = Depends(get_services)):
    return services.query.statistics()


@router.get("/catalog/{entry_id}", response_model=ReferenceEntryOut)
def get_catalog_entry(entry_id: int, services: Services = Depends(get_services)):
    entry = services.catalog.get_by_id(entry_id)
    if not entry:
        raise HTTPException(status_code=404, detail="Catalog entry not found")
    payload = ReferenceEntryOut.model_validate(entry)
    payload.enrichment_state = entry_state(entry, utcnow(), ENRICHMENT_MAX_AGE_DAYS).value
    return payload
