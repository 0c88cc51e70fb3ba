from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field


RunStatus = Literal["running", "ok", "partial", "failed"]


class TenantErrorResponse(BaseModel):
    tenant_id: str
    error: str


class AlertEngineRunSummaryResponse(BaseModel):
    run_id: int | None = None
    trigger_source: str
    status: RunStatus
    started_at: datetime
    finished_at: datetime | None = None
    tenants_processed: int
    plants_processed: int
    alerts_opened: int
    alerts_closed: int
    candidates_skipped: int
    errors: int
    duration_ms: int
    tenant_errors: list[TenantErrorResponse] = Field(default_factory=list)


class AlertEngineRunRecordResponse(BaseModel):
    id: int
    trigger_source: str
    status: RunStatus
    started_at: datetime
    finished_at: datetime | None = None
    tenants_processed: int
    plants_processed: int
    alerts_opened: int
    alerts_closed: int
    candidates_skipped: int
    errors: int
    details_json: dict[str, Any] = Field(default_factory=dict)
    error_text: str | None = None


class AlertEngineStatusResponse(BaseModel):
    scheduler_enabled: bool
    running: bool
    run_in_progress: bool
    interval_seconds: int
    next_due_ts: datetime | None = None
    last_summary: AlertEngineRunSummaryResponse | None = None
    last_error: str | None = None
    last_run: AlertEngineRunRecordResponse | None = None
