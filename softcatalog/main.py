import logging
import threading
from typing import Optional

from fastapi import FastAPI

from .core.config import DETECTION_INTERVAL_SECONDS, DETECTION_ON_STARTUP
from .errors import DetectionInProgress, PersistenceError
from .routes import detection, enrichment, software
from .runtime import Services, build_services, configure_logging
from .services.detection import PeriodicDetection

logger = logging.getLogger(__name__)


def _initial_detection(services: Services) -> None:
    try:
        summary = services.detection.run(blocking=False)
    except DetectionInProgress:
        logger.info("Startup detection skipped (a pass is already running)")
        return
    except PersistenceError as exc:
        logger.error("Startup detection failed: %s", exc)
        return
    logger.info("Startup detection completed (titles=%d)", summary.candidates)


def create_app(
    services: Optional[Services] = None,
    detect_on_startup: bool = DETECTION_ON_STARTUP,
    detection_interval_seconds: int = DETECTION_INTERVAL_SECONDS,
) -> FastAPI:
    app = FastAPI(title="SoftCatalog API", version="0.1.0")
    app.state.services = services
    app.state.timer = None

    app.include_router(software.router, tags=["software"])
    app.include_router(detection.router, tags=["detection"])
    app.include_router(enrichment.router, tags=["enrichment"])

    @app.on_event("startup")
    def on_startup() -> None:
        if app.state.services is None:
            app.state.services = build_services()
        current = app.state.services
        if detect_on_startup:
            # Detection walks the registry and launcher folders; keep startup responsive.
            threading.Thread(target=_initial_detection, args=(current,), daemon=True).start()
        if detection_interval_seconds > 0:
            app.state.timer = PeriodicDetection(current.detection, detection_interval_seconds)
            app.state.timer.start()

    @app.on_event("shutdown")
    def on_shutdown() -> None:
        if app.state.timer is not None:
            app.state.timer.stop()
        if app.state.services is not None:
            app.state.services.scheduler.cancel()

    @app.get("/health")
    def health_check():
        current = app.state.services
        return {
            "status": "ok",
            "catalog_open": current is not None,
            "detection_running": bool(current and current.detection.is_running()),
            "enrichment_running": bool(current and current.scheduler.is_running()),
        }

    return app


configure_logging()
app = create_app()
