from datetime import datetime

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    DateTime,
    Float,
    ForeignKey,
    Identity,
    Index,
    Integer,
    String,
    Text,
    func,
    text,
)
from sqlalchemy.dialects.postgresql import ARRAY, JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from alert_engine.db.base import Base


ALERT_TYPE_VALUES = "'offline','stale_data','freeze','sudden_drop','zero_generation','imbalance'"
SEVERITY_VALUES = "'info','warning','critical'"


class MonitoringIntegration(Base):
    __tablename__ = "monitoring_integrations"
    __table_args__ = (
        Index("ix_monitoring_integrations_tenant_status", "tenant_id", "status"),
    )

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    tenant_id: Mapped[str] = mapped_column(String(64), nullable=False)
    provider: Mapped[str] = mapped_column(String(64), nullable=False)
    status: Mapped[str] = mapped_column(String(32), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )


class SolarPlant(Base):
    __tablename__ = "solar_plants"
    __table_args__ = (Index("ix_solar_plants_tenant", "tenant_id"),)

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    tenant_id: Mapped[str] = mapped_column(String(64), nullable=False)
    name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    capacity_kw: Mapped[float | None] = mapped_column(Float, nullable=True)
    last_contact_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    metadata_json: Mapped[dict] = mapped_column(
        JSONB,
        nullable=False,
        default=dict,
        server_default="'{}'",
    )

    channels: Mapped[list["MonitorChannel"]] = relationship(back_populates="plant")


class MonitorChannel(Base):
    __tablename__ = "monitor_channels"
    __table_args__ = (
        Index("ix_monitor_channels_tenant_plant", "tenant_id", "plant_id"),
    )

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    tenant_id: Mapped[str] = mapped_column(String(64), nullable=False)
    plant_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("solar_plants.id", ondelete="CASCADE"),
        nullable=False,
    )
    device_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    channel_type: Mapped[str] = mapped_column(String(32), nullable=False, default="string")
    installed_power_wp: Mapped[float | None] = mapped_column(Float, nullable=True)
    name: Mapped[str | None] = mapped_column(String(128), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default="true")

    plant: Mapped[SolarPlant] = relationship(back_populates="channels")


class MonitorReading(Base):
    __tablename__ = "monitor_readings"
    __table_args__ = (
        Index("ix_monitor_readings_tenant_ts", "tenant_id", "ts"),
        Index("ix_monitor_readings_plant_ts", "plant_id", "ts"),
    )

    id: Mapped[int] = mapped_column(BigInteger, Identity(always=False), primary_key=True)
    tenant_id: Mapped[str] = mapped_column(String(64), nullable=False)
    plant_id: Mapped[str] = mapped_column(String(64), nullable=False)
    device_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    channel_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    ts: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    power_w: Mapped[float | None] = mapped_column(Float, nullable=True)
    energy_kwh: Mapped[float | None] = mapped_column(Float, nullable=True)


class MonitorPlan(Base):
    __tablename__ = "monitor_plans"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    features: Mapped[dict] = mapped_column(
        JSONB,
        nullable=False,
        default=dict,
        server_default="'{}'",
    )
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default="true")


class MonitorSubscription(Base):
    __tablename__ = "monitor_subscriptions"
    __table_args__ = (
        Index("ix_monitor_subscriptions_tenant_status", "tenant_id", "status"),
    )

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    tenant_id: Mapped[str] = mapped_column(String(64), nullable=False)
    plan_id: Mapped[str | None] = mapped_column(
        String(64),
        ForeignKey("monitor_plans.id", ondelete="SET NULL"),
        nullable=True,
    )
    plant_ids: Mapped[list[str] | None] = mapped_column(ARRAY(String(64)), nullable=True)
    status: Mapped[str] = mapped_column(String(32), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    plan: Mapped[MonitorPlan | None] = relationship()


class MonitorEvent(Base):
    __tablename__ = "monitor_events"
    __table_args__ = (
        Index(
            "uq_monitor_events_open_fingerprint",
            "tenant_id",
            "fingerprint",
            unique=True,
            postgresql_where=text("is_open"),
        ),
        Index("ix_monitor_events_tenant_open", "tenant_id", "is_open"),
        CheckConstraint(f"type IN ({ALERT_TYPE_VALUES})", name="ck_monitor_events_type"),
        CheckConstraint(f"severity IN ({SEVERITY_VALUES})", name="ck_monitor_events_severity"),
        CheckConstraint(
            "is_open OR resolved_at IS NOT NULL",
            name="ck_monitor_events_closed_resolved",
        ),
    )

    id: Mapped[int] = mapped_column(BigInteger, Identity(always=False), primary_key=True)
    tenant_id: Mapped[str] = mapped_column(String(64), nullable=False)
    plant_id: Mapped[str] = mapped_column(String(64), nullable=False)
    device_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    channel_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    type: Mapped[str] = mapped_column(String(32), nullable=False)
    severity: Mapped[str] = mapped_column(String(16), nullable=False)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    fingerprint: Mapped[str] = mapped_column(String(255), nullable=False)
    is_open: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default="true")
    starts_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    opened_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    ends_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    resolved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )


class AlertEngineRun(Base):
    __tablename__ = "alert_engine_runs"
    __table_args__ = (
        CheckConstraint(
            "status IN ('running','ok','partial','failed')",
            name="ck_alert_engine_runs_status",
        ),
        Index("ix_alert_engine_runs_started_at", "started_at"),
    )

    id: Mapped[int] = mapped_column(BigInteger, Identity(always=False), primary_key=True)
    trigger_source: Mapped[str] = mapped_column(String(32), nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="running")
    started_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )
    finished_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    tenants_processed: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    plants_processed: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    alerts_opened: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    alerts_closed: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    candidates_skipped: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    errors: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    details_json: Mapped[dict] = mapped_column(
        JSONB,
        nullable=False,
        default=dict,
        server_default="'{}'",
    )
    error_text: Mapped[str | None] = mapped_column(Text, nullable=True)
