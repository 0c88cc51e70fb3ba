from typing import TYPE_CHECKING

from fastapi import HTTPException, Request

if TYPE_CHECKING:
    from alert_engine.services.alert_engine import AlertEngineService


def get_alert_engine_service(request: Request) -> "AlertEngineService":
    service = getattr(request.app.state, "alert_engine_service", None)
    if service is None:
        raise HTTPException(status_code=503, detail="Alert engine service is not initialized")
    return service
