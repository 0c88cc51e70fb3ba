from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import Depends, FastAPI, Request
from sqlalchemy.orm import Session

from alert_engine.api.alert_engine import router as alert_engine_router
from alert_engine.core.config import Settings, get_settings
from alert_engine.core.logging import configure_logging
from alert_engine.db.session import SessionLocal, check_db_connection, get_db
from alert_engine.services.alert_engine import AlertEngineService


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    settings = get_settings()
    alert_engine_service = AlertEngineService(settings=settings, session_factory=SessionLocal)

    app.state.settings = settings
    app.state.alert_engine_service = alert_engine_service

    alert_engine_service.start()
    try:
        yield
    finally:
        alert_engine_service.stop()


app = FastAPI(title="PV Alert Engine", lifespan=lifespan)
app.include_router(alert_engine_router)


@app.get("/health")
def health():
    return {"status": "ok", "service": "alert-engine"}


@app.get("/status")
def status(request: Request, db: Session = Depends(get_db)):
    db_ok, db_error = check_db_connection(db)
    alert_engine_service: AlertEngineService | None = getattr(
        request.app.state,
        "alert_engine_service",
        None,
    )
    settings: Settings | None = getattr(request.app.state, "settings", None)

    db_status: dict[str, object] = {"ok": db_ok}
    if db_error:
        db_status["error"] = db_error

    if alert_engine_service is None:
        engine_status: dict[str, object] = {
            "running": False,
            "last_error": "Alert engine service not initialized",
        }
    elif db_ok:
        engine_status = alert_engine_service.get_status_snapshot(db)
    else:
        engine_status = {"running": False, "last_error": "database unavailable"}

    return {
        "status": "working",
        "service": "alert-engine",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "db": db_status,
        "alert_engine": engine_status,
        "config": {
            "alert_engine_interval_seconds": (
                settings.alert_engine_interval_seconds if settings else None
            ),
            "alert_engine_max_workers": settings.alert_engine_max_workers if settings else None,
            "alert_reading_window_minutes": (
                settings.alert_reading_window_minutes if settings else None
            ),
            "alert_default_timezone": settings.alert_default_timezone if settings else None,
            "alert_default_types": settings.alert_default_type_list if settings else None,
        },
    }
