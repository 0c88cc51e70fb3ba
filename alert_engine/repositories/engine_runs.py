from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from sqlalchemy import desc, select
from sqlalchemy.orm import Session

from alert_engine.db.models import AlertEngineRun


def create_engine_run(db: Session, *, trigger_source: str) -> int:
    run = AlertEngineRun(
        trigger_source=trigger_source,
        status="running",
        started_at=datetime.now(timezone.utc),
        details_json={},
    )
    db.add(run)
    db.flush()
    return int(run.id)


def finish_engine_run(
    db: Session,
    *,
    run_id: int,
    status: str,
    counters: dict[str, int],
    details_json: dict[str, Any],
    error_text: str | None = None,
) -> None:
    run = db.get(AlertEngineRun, run_id)
    if run is None:
        return
    run.status = status
    run.finished_at = datetime.now(timezone.utc)
    run.tenants_processed = int(counters.get("tenants_processed", 0))
    run.plants_processed = int(counters.get("plants_processed", 0))
    run.alerts_opened = int(counters.get("alerts_opened", 0))
    run.alerts_closed = int(counters.get("alerts_closed", 0))
    run.candidates_skipped = int(counters.get("candidates_skipped", 0))
    run.errors = int(counters.get("errors", 0))
    run.details_json = details_json
    run.error_text = error_text


def get_latest_engine_run(db: Session) -> dict[str, Any] | None:
    run = db.scalars(
        select(AlertEngineRun).order_by(desc(AlertEngineRun.started_at), desc(AlertEngineRun.id))
    ).first()
    if run is None:
        return None
    return {
        "id": run.id,
        "trigger_source": run.trigger_source,
        "status": run.status,
        "started_at": run.started_at,
        "finished_at": run.finished_at,
        "tenants_processed": run.tenants_processed,
        "plants_processed": run.plants_processed,
        "alerts_opened": run.alerts_opened,
        "alerts_closed": run.alerts_closed,
        "candidates_skipped": run.candidates_skipped,
        "errors": run.errors,
        "details_json": run.details_json,
        "error_text": run.error_text,
    }
