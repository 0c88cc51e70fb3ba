from __future__ import annotations

from datetime import datetime, timezone
from typing import Any
from unittest import TestCase

from fastapi import FastAPI
from fastapi.testclient import TestClient

from alert_engine.api.alert_engine import router as alert_engine_router
from alert_engine.db.session import get_db
from alert_engine.dependencies import get_alert_engine_service
from alert_engine.services.alert_engine import (
    AlertEngineBusyError,
    AlertEngineRunError,
    AlertEngineRunSummary,
)

NOW = datetime(2026, 10, 18, 15, 0, tzinfo=timezone.utc)


class _FakeEngine:
    def __init__(self, *, error: Exception | None = None) -> None:
        self.error = error
        self.trigger_sources: list[str] = []

    def run_once(self, *, trigger_source: str = "manual", now: datetime | None = None) -> AlertEngineRunSummary:
        self.trigger_sources.append(trigger_source)
        if self.error is not None:
            raise self.error
        return AlertEngineRunSummary(
            run_id=7,
            trigger_source=trigger_source,
            status="partial",
            started_at=NOW,
            finished_at=NOW,
            tenants_processed=2,
            plants_processed=5,
            alerts_opened=1,
            alerts_closed=2,
            candidates_skipped=3,
            errors=1,
            duration_ms=42,
            tenant_errors=[{"tenant_id": "T3", "error": "statement timeout"}],
        )

    def get_status_snapshot(self, _db: Any) -> dict[str, Any]:
        return {
            "scheduler_enabled": True,
            "running": True,
            "run_in_progress": False,
            "interval_seconds": 300,
            "next_due_ts": NOW.isoformat(),
            "last_summary": None,
            "last_error": None,
            "last_run": {
                "id": 7,
                "trigger_source": "scheduler",
                "status": "ok",
                "started_at": NOW.isoformat(),
                "finished_at": NOW.isoformat(),
                "tenants_processed": 2,
                "plants_processed": 5,
                "alerts_opened": 0,
                "alerts_closed": 0,
                "candidates_skipped": 1,
                "errors": 0,
                "details_json": {"duration_ms": 10},
                "error_text": None,
            },
        }


def _client(engine: _FakeEngine | None) -> TestClient:
    app = FastAPI()
    app.include_router(alert_engine_router)
    if engine is not None:
        app.dependency_overrides[get_alert_engine_service] = lambda: engine
    app.dependency_overrides[get_db] = lambda: object()
    return TestClient(app)


class AlertEngineApiTests(TestCase):
    def test_post_run_returns_summary(self) -> None:
        engine = _FakeEngine()

        response = _client(engine).post("/api/alert-engine/runs")

        self.assertEqual(response.status_code, 200)
        payload = response.json()
        self.assertEqual(payload["run_id"], 7)
        self.assertEqual(payload["status"], "partial")
        self.assertEqual(payload["alerts_closed"], 2)
        self.assertEqual(payload["tenant_errors"], [{"tenant_id": "T3", "error": "statement timeout"}])
        self.assertEqual(engine.trigger_sources, ["api"])

    def test_post_run_while_busy_returns_conflict(self) -> None:
        engine = _FakeEngine(error=AlertEngineBusyError("An alert engine run is already in progress"))

        response = _client(engine).post("/api/alert-engine/runs")

        self.assertEqual(response.status_code, 409)
        self.assertIn("already in progress", response.json()["detail"])

    def test_post_run_fatal_failure_returns_server_error(self) -> None:
        engine = _FakeEngine(error=AlertEngineRunError("Alert engine run failed: connection refused"))

        response = _client(engine).post("/api/alert-engine/runs")

        self.assertEqual(response.status_code, 500)
        self.assertIn("connection refused", response.json()["detail"])

    def test_status_returns_scheduler_and_last_run(self) -> None:
        response = _client(_FakeEngine()).get("/api/alert-engine/status")

        self.assertEqual(response.status_code, 200)
        payload = response.json()
        self.assertTrue(payload["scheduler_enabled"])
        self.assertEqual(payload["interval_seconds"], 300)
        self.assertEqual(payload["last_run"]["id"], 7)
        self.assertIsNone(payload["last_summary"])

    def test_missing_service_returns_unavailable(self) -> None:
        response = _client(None).post("/api/alert-engine/runs")

        self.assertEqual(response.status_code, 503)
