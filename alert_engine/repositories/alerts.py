from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import select, text, update
from sqlalchemy.orm import Session

from alert_engine.db.models import MonitorEvent
from alert_engine.domain import AlertCandidate


@dataclass(frozen=True)
class OpenAlert:
    id: int
    tenant_id: str
    plant_id: str
    fingerprint: str
    type: str
    opened_at: datetime


def list_open_alerts(db: Session, *, tenant_id: str) -> list[OpenAlert]:
    rows = db.execute(
        select(
            MonitorEvent.id,
            MonitorEvent.tenant_id,
            MonitorEvent.plant_id,
            MonitorEvent.fingerprint,
            MonitorEvent.type,
            MonitorEvent.opened_at,
        )
        .where(MonitorEvent.tenant_id == tenant_id, MonitorEvent.is_open.is_(True))
        .order_by(MonitorEvent.id.asc())
    ).all()
    return [
        OpenAlert(
            id=row.id,
            tenant_id=row.tenant_id,
            plant_id=row.plant_id,
            fingerprint=row.fingerprint,
            type=row.type,
            opened_at=row.opened_at,
        )
        for row in rows
    ]


def insert_open_alert(db: Session, *, candidate: AlertCandidate, now: datetime) -> int | None:
    """Insert an open alert unless one is already open for the fingerprint.

    Returns the new row id, or None when the partial unique index
    (tenant_id, fingerprint) WHERE is_open rejected the row.
    """
    row = db.execute(
        text(
            """
            INSERT INTO monitor_events
                (tenant_id, plant_id, device_id, channel_id, type, severity, title, message,
                 fingerprint, is_open, starts_at, opened_at, updated_at)
            VALUES
                (:tenant_id, :plant_id, :device_id, :channel_id, :type, :severity, :title, :message,
                 :fingerprint, TRUE, :now, :now, :now)
            ON CONFLICT (tenant_id, fingerprint) WHERE is_open
            DO NOTHING
            RETURNING id
            """
        ),
        {
            "tenant_id": candidate.tenant_id,
            "plant_id": candidate.plant_id,
            "device_id": candidate.device_id,
            "channel_id": candidate.channel_id,
            "type": candidate.type.value,
            "severity": candidate.severity.value,
            "title": candidate.title,
            "message": candidate.message,
            "fingerprint": candidate.fingerprint,
            "now": now,
        },
    ).first()
    return int(row[0]) if row is not None else None


def close_alert(db: Session, *, alert_id: int, now: datetime) -> bool:
    result = db.execute(
        update(MonitorEvent)
        .where(MonitorEvent.id == alert_id, MonitorEvent.is_open.is_(True))
        .values(
            is_open=False,
            resolved_at=now,
            ends_at=now,
            updated_at=now,
        )
    )
    return (result.rowcount or 0) > 0
