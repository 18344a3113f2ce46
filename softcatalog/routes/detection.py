import logging

from fastapi import APIRouter, Depends, HTTPException

from ..errors import DetectionInProgress, PersistenceError
from ..runtime import Services
from ..schemas import DetectionStatusOut, DetectionSummaryOut
from .deps import get_services

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/detection/run", response_model=DetectionSummaryOut)
def run_detection(services: Services = Depends(get_services)):
    try:
        summary = services.detection.run(blocking=False)
    except DetectionInProgress:
        raise HTTPException(status_code=409, detail="Detection is already running")
    except PersistenceError as exc:
        logger.error("Detection request failed: %s", exc)
        raise HTTPException(status_code=500, detail="Detection could not be saved")
    return summary.as_dict()


@router.get("/detection/status", response_model=DetectionStatusOut)
def detection_status(services: Services = Depends(get_services)):
    last = services.detection.last_summary
    return {
        "running": services.detection.is_running(),
        "last": last.as_dict() if last else None,
    }
