from __future__ import annotations

import io
import json
from contextlib import redirect_stdout
from datetime import datetime, timezone
from unittest import TestCase
from unittest.mock import MagicMock, patch

from alert_engine.jobs import run_once
from alert_engine.services.alert_engine import AlertEngineRunError, AlertEngineRunSummary

NOW = datetime(2026, 10, 18, 15, 0, tzinfo=timezone.utc)


class RunOnceJobTests(TestCase):
    def _main(self, service) -> tuple[int, str]:
        buffer = io.StringIO()
        with patch.object(run_once, "configure_logging"), patch.object(
            run_once,
            "AlertEngineService",
            return_value=service,
        ), redirect_stdout(buffer):
            exit_code = run_once.main()
        return exit_code, buffer.getvalue()

    def test_successful_run_prints_summary(self) -> None:
        summary = AlertEngineRunSummary(
            run_id=3,
            trigger_source="cli",
            status="partial",
            started_at=NOW,
            finished_at=NOW,
            tenants_processed=1,
            errors=1,
            tenant_errors=[{"tenant_id": "T2", "error": "timeout"}],
        )
        service = MagicMock()
        service.run_once.return_value = summary

        exit_code, output = self._main(service)

        self.assertEqual(exit_code, 0)
        payload = json.loads(output)
        self.assertEqual(payload["run_id"], 3)
        self.assertEqual(payload["status"], "partial")
        self.assertEqual(payload["started_at"], NOW.isoformat())
        service.run_once.assert_called_once_with(trigger_source="cli")

    def test_fatal_run_exits_non_zero(self) -> None:
        service = MagicMock()
        service.run_once.side_effect = AlertEngineRunError("Alert engine run failed: boom")

        exit_code, output = self._main(service)

        self.assertEqual(exit_code, 1)
        self.assertEqual(json.loads(output)["status"], "failed")
