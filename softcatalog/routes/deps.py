from fastapi import HTTPException, Request

from ..runtime import Services


def get_services(request: Request) -> Services:
    services = getattr(request.app.state, "services", None)
    if services is None:
        raise HTTPException(status_code=503, detail="Catalog is not open yet")
    return services
