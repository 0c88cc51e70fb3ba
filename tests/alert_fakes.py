from __future__ import annotations

from contextlib import ExitStack, contextmanager
from datetime import datetime
from threading import Lock
from typing import Any, Iterator
from unittest.mock import patch

from alert_engine.domain import (
    AlertCandidate,
    ChannelSnapshot,
    PlantSnapshot,
    ReadingSnapshot,
    SubscriptionSnapshot,
)
from alert_engine.repositories.alerts import OpenAlert

LIFECYCLE_MODULE = "alert_engine.services.alert_lifecycle"
ENGINE_MODULE = "alert_engine.services.alert_engine"


class AlertStore:
    """In-memory stand-in for monitor_events honouring the open-fingerprint index."""

    def __init__(self) -> None:
        self.rows: list[dict[str, Any]] = []
        self._lock = Lock()

    def list_open(self, _db: Any, *, tenant_id: str) -> list[OpenAlert]:
        with self._lock:
            return [
                OpenAlert(
                    id=row["id"],
                    tenant_id=row["tenant_id"],
                    plant_id=row["plant_id"],
                    fingerprint=row["fingerprint"],
                    type=row["type"],
                    opened_at=row["opened_at"],
                )
                for row in self.rows
                if row["tenant_id"] == tenant_id and row["is_open"]
            ]

    def insert(self, _db: Any, *, candidate: AlertCandidate, now: datetime) -> int | None:
        with self._lock:
            for row in self.rows:
                if (
                    row["is_open"]
                    and row["tenant_id"] == candidate.tenant_id
                    and row["fingerprint"] == candidate.fingerprint
                ):
                    return None
            row_id = len(self.rows) + 1
            self.rows.append(
                {
                    "id": row_id,
                    "tenant_id": candidate.tenant_id,
                    "plant_id": candidate.plant_id,
                    "channel_id": candidate.channel_id,
                    "type": candidate.type.value,
                    "severity": candidate.severity.value,
                    "title": candidate.title,
                    "message": candidate.message,
                    "fingerprint": candidate.fingerprint,
                    "is_open": True,
                    "starts_at": now,
                    "opened_at": now,
                    "ends_at": None,
                    "resolved_at": None,
                }
            )
            return row_id

    def close(self, _db: Any, *, alert_id: int, now: datetime) -> bool:
        with self._lock:
            for row in self.rows:
                if row["id"] == alert_id and row["is_open"]:
                    row["is_open"] = False
                    row["resolved_at"] = now
                    row["ends_at"] = now
                    return True
            return False

    def open_rows(self, tenant_id: str | None = None) -> list[dict[str, Any]]:
        return [
            row
            for row in self.rows
            if row["is_open"] and (tenant_id is None or row["tenant_id"] == tenant_id)
        ]

    def open_fingerprints(self, tenant_id: str | None = None) -> list[str]:
        return sorted(row["fingerprint"] for row in self.open_rows(tenant_id))

    @contextmanager
    def patched(self) -> Iterator["AlertStore"]:
        with patch(f"{LIFECYCLE_MODULE}.list_open_alerts", side_effect=self.list_open), patch(
            f"{LIFECYCLE_MODULE}.insert_open_alert",
            side_effect=self.insert,
        ), patch(
            f"{LIFECYCLE_MODULE}.close_alert",
            side_effect=self.close,
        ):
            yield self


class FakeSession:
    def __init__(self) -> None:
        self.commits = 0

    def commit(self) -> None:
        self.commits += 1

    def __enter__(self) -> "FakeSession":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        return None


class FakeSessionFactory:
    def __init__(self) -> None:
        self.sessions: list[FakeSession] = []

    def __call__(self) -> FakeSession:
        session = FakeSession()
        self.sessions.append(session)
        return session


class MonitoringWorld:
    """Per-tenant telemetry, plan and run-ledger data behind the repository functions."""

    def __init__(self) -> None:
        self.tenant_ids: list[str] = []
        self.subscriptions: dict[str, list[SubscriptionSnapshot]] = {}
        self.plants: dict[str, list[PlantSnapshot]] = {}
        self.channels: dict[str, list[ChannelSnapshot]] = {}
        self.readings: dict[str, list[ReadingSnapshot]] = {}
        self.failing_tenants: set[str] = set()
        self.finished_runs: list[dict[str, Any]] = []
        self.alerts = AlertStore()

    def list_tenants(self, _db: Any, *, statuses: list[str]) -> list[str]:
        return list(self.tenant_ids)

    def list_subscriptions(self, _db: Any, *, tenant_id: str) -> list[SubscriptionSnapshot]:
        return list(self.subscriptions.get(tenant_id, []))

    def list_plants(
        self,
        _db: Any,
        *,
        tenant_id: str,
        plant_ids: frozenset[str] | None = None,
    ) -> list[PlantSnapshot]:
        return [
            plant
            for plant in self.plants.get(tenant_id, [])
            if plant_ids is None or plant.id in plant_ids
        ]

    def list_channels(self, _db: Any, *, tenant_id: str, plant_ids: list[str]) -> list[ChannelSnapshot]:
        return [channel for channel in self.channels.get(tenant_id, []) if channel.plant_id in plant_ids]

    def list_readings(
        self,
        _db: Any,
        *,
        tenant_id: str,
        since: datetime,
        limit: int,
    ) -> list[ReadingSnapshot]:
        if tenant_id in self.failing_tenants:
            raise TimeoutError("canceling statement due to statement timeout")
        rows = [reading for reading in self.readings.get(tenant_id, []) if reading.ts >= since]
        rows.sort(key=lambda reading: reading.ts, reverse=True)
        return rows[:limit]

    def finish_run(self, _db: Any, **kwargs: Any) -> None:
        self.finished_runs.append(kwargs)

    @contextmanager
    def patched(self) -> Iterator["MonitoringWorld"]:
        with ExitStack() as stack:
            stack.enter_context(patch(f"{ENGINE_MODULE}.create_engine_run", return_value=1))
            stack.enter_context(patch(f"{ENGINE_MODULE}.finish_engine_run", side_effect=self.finish_run))
            stack.enter_context(patch(f"{ENGINE_MODULE}.apply_statement_timeout"))
            stack.enter_context(
                patch(f"{ENGINE_MODULE}.list_monitored_tenant_ids", side_effect=self.list_tenants)
            )
            stack.enter_context(
                patch(f"{ENGINE_MODULE}.list_tenant_subscriptions", side_effect=self.list_subscriptions)
            )
            stack.enter_context(patch(f"{ENGINE_MODULE}.list_tenant_plants", side_effect=self.list_plants))
            stack.enter_context(patch(f"{ENGINE_MODULE}.list_active_channels", side_effect=self.list_channels))
            stack.enter_context(patch(f"{ENGINE_MODULE}.list_recent_readings", side_effect=self.list_readings))
            stack.enter_context(self.alerts.patched())
            yield self
