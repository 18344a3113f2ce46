from fastapi import APIRouter, Depends

from ..runtime import Services
from ..schemas import EnrichmentStartOut, EnrichmentStatusOut
from .deps import get_services

router = APIRouter()


@router.post("/enrichment/run", response_model=EnrichmentStartOut)
def start_enrichment(services: Services = Depends(get_services)):
    started = services.scheduler.start_background()
    return {"started": started, "running": services.scheduler.is_running() or started}


@router.post("/enrichment/cancel", response_model=EnrichmentStatusOut)
def cancel_enrichment(services: Services = Depends(get_services)):
    services.scheduler.cancel()
    return _status(services)


@router.get("/enrichment/status", response_model=EnrichmentStatusOut)
def enrichment_status(services: Services = Depends(get_services)):
    return _status(services)


def _status(services: Services) -> dict:
    status = services.scheduler.status()
    status["pending"] = services.catalog.count_unenriched(services.scheduler.max_age_days)
    return status
