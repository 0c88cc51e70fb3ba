from __future__ import annotations

from datetime import datetime

from sqlalchemy import select, text
from sqlalchemy.orm import Session

from alert_engine.db.models import MonitorChannel, MonitorReading, MonitoringIntegration, SolarPlant
from alert_engine.domain import ChannelSnapshot, PlantSnapshot, ReadingSnapshot


def apply_statement_timeout(db: Session, *, timeout_seconds: float) -> None:
    """Bound every statement of the current transaction (Postgres only)."""
    if db.get_bind().dialect.name != "postgresql":
        return
    timeout_ms = max(1, int(timeout_seconds * 1000))
    # SET does not accept bind parameters; the value is an int we formatted ourselves.
    db.execute(text(f"SET LOCAL statement_timeout = {timeout_ms}"))


def list_monitored_tenant_ids(db: Session, *, statuses: list[str]) -> list[str]:
    rows = db.scalars(
        select(MonitoringIntegration.tenant_id)
        .where(MonitoringIntegration.status.in_(statuses))
        .distinct()
        .order_by(MonitoringIntegration.tenant_id)
    )
    return list(rows)


def list_tenant_plants(
    db: Session,
    *,
    tenant_id: str,
    plant_ids: frozenset[str] | None = None,
) -> list[PlantSnapshot]:
    query = select(SolarPlant).where(SolarPlant.tenant_id == tenant_id)
    if plant_ids is not None:
        if not plant_ids:
            return []
        query = query.where(SolarPlant.id.in_(sorted(plant_ids)))
    plants = db.scalars(query.order_by(SolarPlant.id))
    return [
        PlantSnapshot(
            id=plant.id,
            tenant_id=plant.tenant_id,
            name=plant.name,
            capacity_kw=plant.capacity_kw,
            last_contact_at=plant.last_contact_at,
            timezone=_timezone_from_metadata(plant.metadata_json),
        )
        for plant in plants
    ]


def list_active_channels(
    db: Session,
    *,
    tenant_id: str,
    plant_ids: list[str],
) -> list[ChannelSnapshot]:
    if not plant_ids:
        return []
    channels = db.scalars(
        select(MonitorChannel)
        .where(
            MonitorChannel.tenant_id == tenant_id,
            MonitorChannel.plant_id.in_(plant_ids),
            MonitorChannel.is_active.is_(True),
        )
        .order_by(MonitorChannel.plant_id, MonitorChannel.id)
    )
    return [
        ChannelSnapshot(
            id=channel.id,
            plant_id=channel.plant_id,
            device_id=channel.device_id,
            channel_type=channel.channel_type,
            installed_power_wp=channel.installed_power_wp,
            name=channel.name,
            is_active=channel.is_active,
        )
        for channel in channels
    ]


def list_recent_readings(
    db: Session,
    *,
    tenant_id: str,
    since: datetime,
    limit: int,
) -> list[ReadingSnapshot]:
    rows = db.execute(
        select(
            MonitorReading.plant_id,
            MonitorReading.device_id,
            MonitorReading.channel_id,
            MonitorReading.ts,
            MonitorReading.power_w,
            MonitorReading.energy_kwh,
        )
        .where(MonitorReading.tenant_id == tenant_id, MonitorReading.ts >= since)
        .order_by(MonitorReading.ts.desc(), MonitorReading.id.desc())
        .limit(limit)
    ).all()
    return [
        ReadingSnapshot(
            plant_id=row.plant_id,
            device_id=row.device_id,
            channel_id=row.channel_id,
            ts=row.ts,
            power_w=float(row.power_w or 0.0),
            energy_kwh=row.energy_kwh,
        )
        for row in rows
    ]


def _timezone_from_metadata(metadata: object) -> str | None:
    if not isinstance(metadata, dict):
        return None
    value = metadata.get("timezone")
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None
