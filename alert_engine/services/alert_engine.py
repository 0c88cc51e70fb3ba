from __future__ import annotations

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta, timezone
from threading import Event, Lock, Thread
from typing import Any

from sqlalchemy.orm import Session, sessionmaker

from alert_engine.core.config import Settings
from alert_engine.repositories.engine_runs import (
    create_engine_run,
    finish_engine_run,
    get_latest_engine_run,
)
from alert_engine.repositories.monitoring import (
    apply_statement_timeout,
    list_active_channels,
    list_monitored_tenant_ids,
    list_recent_readings,
    list_tenant_plants,
)
from alert_engine.repositories.plans import list_tenant_subscriptions
from alert_engine.services.alert_lifecycle import LifecycleOutcome, reconcile_tenant_alerts
from alert_engine.services.alert_rules import RuleThresholds, evaluate_tenant
from alert_engine.services.plan_resolver import default_alert_types_from_names, resolve_tenant_plan


class AlertEngineRunError(RuntimeError):
    pass


class AlertEngineBusyError(RuntimeError):
    pass


@dataclass(frozen=True)
class TenantPassResult:
    tenant_id: str
    plants_processed: int = 0
    candidates: int = 0
    outcome: LifecycleOutcome = field(default_factory=LifecycleOutcome)
    error: str | None = None


@dataclass
class AlertEngineRunSummary:
    run_id: int | None
    trigger_source: str
    status: str
    started_at: datetime
    finished_at: datetime | None = None
    tenants_processed: int = 0
    plants_processed: int = 0
    alerts_opened: int = 0
    alerts_closed: int = 0
    candidates_skipped: int = 0
    errors: int = 0
    duration_ms: int = 0
    tenant_errors: list[dict[str, str]] = field(default_factory=list)

    def counters(self) -> dict[str, int]:
        return {
            "tenants_processed": self.tenants_processed,
            "plants_processed": self.plants_processed,
            "alerts_opened": self.alerts_opened,
            "alerts_closed": self.alerts_closed,
            "candidates_skipped": self.candidates_skipped,
            "errors": self.errors,
        }

    def to_dict(self) -> dict[str, Any]:
        payload = asdict(self)
        payload["started_at"] = _to_iso(self.started_at)
        payload["finished_at"] = _to_iso(self.finished_at)
        return payload


class AlertEngineService:
    def __init__(self, *, settings: Settings, session_factory: sessionmaker):
        self._settings = settings
        self._session_factory = session_factory
        self._logger = logging.getLogger("alert_engine.engine")
        self._thresholds = RuleThresholds.from_settings(settings)
        self._default_alert_types = default_alert_types_from_names(settings.alert_default_type_list)
        self._stop_event = Event()
        self._thread: Thread | None = None
        self._run_lock = Lock()
        self._lock = Lock()
        self._running = False
        self._next_due_ts: datetime | None = None
        self._last_summary: AlertEngineRunSummary | None = None
        self._last_error: str | None = None

    def start(self) -> None:
        if not self._settings.alert_engine_scheduler_enabled:
            self._logger.info("alert engine scheduler disabled; runs are triggered externally")
            return
        with self._lock:
            if self._running:
                return
            self._running = True
            self._next_due_ts = datetime.now(timezone.utc)
        self._stop_event.clear()
        self._thread = Thread(target=self._loop, name="alert-engine", daemon=True)
        self._thread.start()
        self._logger.info(
            "started alert engine interval_seconds=%s max_workers=%s",
            self._settings.alert_engine_interval_seconds,
            self._settings.alert_engine_max_workers,
        )

    def stop(self) -> None:
        self._stop_event.set()
        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=5.0)
        with self._lock:
            self._running = False

    def run_once(
        self,
        *,
        trigger_source: str = "manual",
        now: datetime | None = None,
    ) -> AlertEngineRunSummary:
        if not self._run_lock.acquire(blocking=False):
            raise AlertEngineBusyError("An alert engine run is already in progress")
        try:
            summary = self._run(trigger_source=trigger_source, now=now or datetime.now(timezone.utc))
        except AlertEngineRunError as exc:
            with self._lock:
                self._last_error = str(exc)
            raise
        finally:
            self._run_lock.release()

        with self._lock:
            self._last_summary = summary
            self._last_error = None
        return summary

    def process_tenant(self, tenant_id: str, *, now: datetime) -> TenantPassResult:
        settings = self._settings
        with self._session_factory() as db:
            apply_statement_timeout(db, timeout_seconds=settings.alert_engine_query_timeout_seconds)
            plan = resolve_tenant_plan(
                tenant_id,
                list_tenant_subscriptions(db, tenant_id=tenant_id),
                default_alert_types=self._default_alert_types,
            )
            plants = list_tenant_plants(db, tenant_id=tenant_id, plant_ids=plan.plant_ids)
            channels = list_active_channels(
                db,
                tenant_id=tenant_id,
                plant_ids=[plant.id for plant in plants],
            )
            readings = list_recent_readings(
                db,
                tenant_id=tenant_id,
                since=now - timedelta(minutes=settings.alert_reading_window_minutes),
                limit=settings.alert_reading_row_limit,
            )

            # The complete candidate set must exist before reconciliation closes anything.
            candidates = evaluate_tenant(
                plants,
                channels,
                readings,
                enabled=plan.enabled_alert_types,
                now=now,
                thresholds=self._thresholds,
            )
            outcome = reconcile_tenant_alerts(
                db,
                tenant_id=tenant_id,
                candidates=candidates,
                now=now,
                close_min_open_seconds=settings.alert_close_min_open_seconds,
            )
            db.commit()

        self._logger.debug(
            "tenant pass done tenant_id=%s plants=%s candidates=%s opened=%s closed=%s skipped=%s",
            tenant_id,
            len(plants),
            len(candidates),
            outcome.opened,
            outcome.closed,
            outcome.skipped,
        )
        return TenantPassResult(
            tenant_id=tenant_id,
            plants_processed=len(plants),
            candidates=len(candidates),
            outcome=outcome,
        )

    def get_status_snapshot(self, db: Session) -> dict[str, Any]:
        latest = get_latest_engine_run(db)
        with self._lock:
            return {
                "scheduler_enabled": self._settings.alert_engine_scheduler_enabled,
                "running": self._running and not self._stop_event.is_set(),
                "run_in_progress": self._run_lock.locked(),
                "interval_seconds": self._settings.alert_engine_interval_seconds,
                "next_due_ts": _to_iso(self._next_due_ts),
                "last_summary": self._last_summary.to_dict() if self._last_summary else None,
                "last_error": self._last_error,
                "last_run": latest,
            }

    def _run(self, *, trigger_source: str, now: datetime) -> AlertEngineRunSummary:
        started = time.monotonic()
        summary = AlertEngineRunSummary(
            run_id=None,
            trigger_source=trigger_source,
            status="running",
            started_at=now,
        )
        self._logger.info("alert engine run started trigger_source=%s", trigger_source)

        try:
            with self._session_factory() as db:
                summary.run_id = create_engine_run(db, trigger_source=trigger_source)
                db.commit()
        except Exception:
            # Detection runs without a ledger row.
            self._logger.exception("failed to create alert engine run record; continuing without run_id")

        try:
            with self._session_factory() as db:
                tenant_ids = list_monitored_tenant_ids(
                    db,
                    statuses=self._settings.monitoring_active_status_list,
                )
        except Exception as exc:
            self._logger.exception("alert engine run failed run_id=%s", summary.run_id)
            self._mark_failed(summary, exc)
            raise AlertEngineRunError(f"Alert engine run failed: {exc}") from exc

        for result in self._process_tenants(tenant_ids, now=now):
            if result.error is not None:
                summary.errors += 1
                summary.tenant_errors.append({"tenant_id": result.tenant_id, "error": result.error})
                continue
            summary.tenants_processed += 1
            summary.plants_processed += result.plants_processed
            summary.alerts_opened += result.outcome.opened
            summary.alerts_closed += result.outcome.closed
            summary.candidates_skipped += result.outcome.skipped

        summary.status = "partial" if summary.errors else "ok"
        summary.finished_at = datetime.now(timezone.utc)
        summary.duration_ms = int((time.monotonic() - started) * 1000)
        self._finish_ledger(summary)

        self._logger.info(
            "alert engine run finished run_id=%s status=%s tenants=%s tenants_processed=%s "
            "plants=%s opened=%s closed=%s skipped=%s errors=%s duration_ms=%s",
            summary.run_id,
            summary.status,
            len(tenant_ids),
            summary.tenants_processed,
            summary.plants_processed,
            summary.alerts_opened,
            summary.alerts_closed,
            summary.candidates_skipped,
            summary.errors,
            summary.duration_ms,
        )
        return summary

    def _process_tenants(self, tenant_ids: list[str], *, now: datetime) -> list[TenantPassResult]:
        max_workers = self._settings.alert_engine_max_workers
        if max_workers <= 1 or len(tenant_ids) <= 1:
            return [self._process_tenant_isolated(tenant_id, now=now) for tenant_id in tenant_ids]

        with ThreadPoolExecutor(
            max_workers=min(max_workers, len(tenant_ids)),
            thread_name_prefix="alert-engine-tenant",
        ) as executor:
            futures = [
                executor.submit(self._process_tenant_isolated, tenant_id, now=now)
                for tenant_id in tenant_ids
            ]
            return [future.result() for future in futures]

    def _process_tenant_isolated(self, tenant_id: str, *, now: datetime) -> TenantPassResult:
        try:
            return self.process_tenant(tenant_id, now=now)
        except Exception as exc:
            self._logger.exception("alert pass failed tenant_id=%s", tenant_id)
            return TenantPassResult(tenant_id=tenant_id, error=str(exc) or exc.__class__.__name__)

    def _finish_ledger(self, summary: AlertEngineRunSummary) -> None:
        if summary.run_id is None:
            return
        try:
            with self._session_factory() as db:
                finish_engine_run(
                    db,
                    run_id=summary.run_id,
                    status=summary.status,
                    counters=summary.counters(),
                    details_json={
                        "trigger_source": summary.trigger_source,
                        "duration_ms": summary.duration_ms,
                        "tenant_errors": summary.tenant_errors,
                    },
                )
                db.commit()
        except Exception:
            self._logger.exception("failed to record alert engine run run_id=%s", summary.run_id)

    def _mark_failed(self, summary: AlertEngineRunSummary, exc: Exception) -> None:
        summary.status = "failed"
        summary.finished_at = datetime.now(timezone.utc)
        if summary.run_id is None:
            return
        try:
            with self._session_factory() as db:
                finish_engine_run(
                    db,
                    run_id=summary.run_id,
                    status="failed",
                    counters=summary.counters(),
                    details_json={"trigger_source": summary.trigger_source},
                    error_text=str(exc),
                )
                db.commit()
        except Exception:
            self._logger.exception("failed to record alert engine failure run_id=%s", summary.run_id)

    def _loop(self) -> None:
        while not self._stop_event.is_set():
            now = datetime.now(timezone.utc)
            with self._lock:
                next_due = self._next_due_ts
            if next_due is None or now >= next_due:
                try:
                    self.run_once(trigger_source="scheduler", now=now)
                except AlertEngineBusyError:
                    self._logger.info("scheduled alert engine run skipped; previous run still active")
                except Exception:
                    self._logger.exception("scheduled alert engine run failed")
                with self._lock:
                    self._next_due_ts = now + timedelta(
                        seconds=self._settings.alert_engine_interval_seconds
                    )

            self._stop_event.wait(1.0)


def _to_iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None
