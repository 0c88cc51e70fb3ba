from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from alert_engine.db.session import get_db
from alert_engine.dependencies import get_alert_engine_service
from alert_engine.schemas.alert_engine import (
    AlertEngineRunSummaryResponse,
    AlertEngineStatusResponse,
)
from alert_engine.services.alert_engine import AlertEngineBusyError, AlertEngineService


router = APIRouter(prefix="/api/alert-engine", tags=["alert-engine"])


@router.post("/runs", response_model=AlertEngineRunSummaryResponse)
def post_alert_engine_run(
    engine: AlertEngineService = Depends(get_alert_engine_service),
) -> AlertEngineRunSummaryResponse:
    try:
        summary = engine.run_once(trigger_source="api")
    except AlertEngineBusyError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
    except Exception as exc:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc))

    return AlertEngineRunSummaryResponse.model_validate(summary.to_dict())


@router.get("/status", response_model=AlertEngineStatusResponse)
def get_alert_engine_status(
    db: Session = Depends(get_db),
    engine: AlertEngineService = Depends(get_alert_engine_service),
) -> AlertEngineStatusResponse:
    return AlertEngineStatusResponse.model_validate(engine.get_status_snapshot(db))
