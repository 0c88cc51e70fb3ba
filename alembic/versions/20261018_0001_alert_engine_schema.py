"""alert engine schema: monitoring inputs, monitor events and run ledger

Revision ID: 20261018_0001
Revises:
Create Date: 2026-10-18 09:00:00
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "20261018_0001"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "monitoring_integrations",
        sa.Column("id", sa.String(length=64), nullable=False),
        sa.Column("tenant_id", sa.String(length=64), nullable=False),
        sa.Column("provider", sa.String(length=64), nullable=False),
        sa.Column("status", sa.String(length=32), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_monitoring_integrations_tenant_status",
        "monitoring_integrations",
        ["tenant_id", "status"],
    )

    op.create_table(
        "solar_plants",
        sa.Column("id", sa.String(length=64), nullable=False),
        sa.Column("tenant_id", sa.String(length=64), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=True),
        sa.Column("capacity_kw", sa.Float(), nullable=True),
        sa.Column("last_contact_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "metadata_json",
            postgresql.JSONB(astext_type=sa.Text()),
            server_default=sa.text("'{}'::jsonb"),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_solar_plants_tenant", "solar_plants", ["tenant_id"])

    op.create_table(
        "monitor_channels",
        sa.Column("id", sa.String(length=64), nullable=False),
        sa.Column("tenant_id", sa.String(length=64), nullable=False),
        sa.Column("plant_id", sa.String(length=64), nullable=False),
        sa.Column("device_id", sa.String(length=64), nullable=True),
        sa.Column("channel_type", sa.String(length=32), nullable=False),
        sa.Column("installed_power_wp", sa.Float(), nullable=True),
        sa.Column("name", sa.String(length=128), nullable=True),
        sa.Column("is_active", sa.Boolean(), server_default=sa.text("true"), nullable=False),
        sa.ForeignKeyConstraint(["plant_id"], ["solar_plants.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_monitor_channels_tenant_plant", "monitor_channels", ["tenant_id", "plant_id"])

    op.create_table(
        "monitor_readings",
        sa.Column("id", sa.BigInteger(), sa.Identity(always=False), nullable=False),
        sa.Column("tenant_id", sa.String(length=64), nullable=False),
        sa.Column("plant_id", sa.String(length=64), nullable=False),
        sa.Column("device_id", sa.String(length=64), nullable=True),
        sa.Column("channel_id", sa.String(length=64), nullable=True),
        sa.Column("ts", sa.DateTime(timezone=True), nullable=False),
        sa.Column("power_w", sa.Float(), nullable=True),
        sa.Column("energy_kwh", sa.Float(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.execute(
        "CREATE INDEX ix_monitor_readings_tenant_ts ON monitor_readings (tenant_id, ts DESC)"
    )
    op.execute(
        "CREATE INDEX ix_monitor_readings_plant_ts ON monitor_readings (plant_id, ts DESC)"
    )

    op.create_table(
        "monitor_plans",
        sa.Column("id", sa.String(length=64), nullable=False),
        sa.Column("name", sa.String(length=128), nullable=False),
        sa.Column(
            "features",
            postgresql.JSONB(astext_type=sa.Text()),
            server_default=sa.text("'{}'::jsonb"),
            nullable=False,
        ),
        sa.Column("is_active", sa.Boolean(), server_default=sa.text("true"), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "monitor_subscriptions",
        sa.Column("id", sa.String(length=64), nullable=False),
        sa.Column("tenant_id", sa.String(length=64), nullable=False),
        sa.Column("plan_id", sa.String(length=64), nullable=True),
        sa.Column("plant_ids", postgresql.ARRAY(sa.String(length=64)), nullable=True),
        sa.Column("status", sa.String(length=32), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(["plan_id"], ["monitor_plans.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_monitor_subscriptions_tenant_status",
        "monitor_subscriptions",
        ["tenant_id", "status"],
    )

    op.create_table(
        "monitor_events",
        sa.Column("id", sa.BigInteger(), sa.Identity(always=False), nullable=False),
        sa.Column("tenant_id", sa.String(length=64), nullable=False),
        sa.Column("plant_id", sa.String(length=64), nullable=False),
        sa.Column("device_id", sa.String(length=64), nullable=True),
        sa.Column("channel_id", sa.String(length=64), nullable=True),
        sa.Column("type", sa.String(length=32), nullable=False),
        sa.Column("severity", sa.String(length=16), nullable=False),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("fingerprint", sa.String(length=255), nullable=False),
        sa.Column("is_open", sa.Boolean(), server_default=sa.text("true"), nullable=False),
        sa.Column("starts_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("opened_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("ends_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("resolved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.CheckConstraint(
            "type IN ('offline','stale_data','freeze','sudden_drop','zero_generation','imbalance')",
            name="ck_monitor_events_type",
        ),
        sa.CheckConstraint(
            "severity IN ('info','warning','critical')",
            name="ck_monitor_events_severity",
        ),
        sa.CheckConstraint(
            "is_open OR resolved_at IS NOT NULL",
            name="ck_monitor_events_closed_resolved",
        ),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "uq_monitor_events_open_fingerprint",
        "monitor_events",
        ["tenant_id", "fingerprint"],
        unique=True,
        postgresql_where=sa.text("is_open"),
    )
    op.create_index("ix_monitor_events_tenant_open", "monitor_events", ["tenant_id", "is_open"])

    op.create_table(
        "alert_engine_runs",
        sa.Column("id", sa.BigInteger(), sa.Identity(always=False), nullable=False),
        sa.Column("trigger_source", sa.String(length=32), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False),
        sa.Column("started_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("finished_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("tenants_processed", sa.Integer(), server_default="0", nullable=False),
        sa.Column("plants_processed", sa.Integer(), server_default="0", nullable=False),
        sa.Column("alerts_opened", sa.Integer(), server_default="0", nullable=False),
        sa.Column("alerts_closed", sa.Integer(), server_default="0", nullable=False),
        sa.Column("candidates_skipped", sa.Integer(), server_default="0", nullable=False),
        sa.Column("errors", sa.Integer(), server_default="0", nullable=False),
        sa.Column(
            "details_json",
            postgresql.JSONB(astext_type=sa.Text()),
            server_default=sa.text("'{}'::jsonb"),
            nullable=False,
        ),
        sa.Column("error_text", sa.Text(), nullable=True),
        sa.CheckConstraint(
            "status IN ('running','ok','partial','failed')",
            name="ck_alert_engine_runs_status",
        ),
        sa.PrimaryKeyConstraint("id"),
    )
    op.execute(
        "CREATE INDEX ix_alert_engine_runs_started_at ON alert_engine_runs (started_at DESC)"
    )


def downgrade() -> None:
    op.execute("DROP INDEX IF EXISTS ix_alert_engine_runs_started_at")
    op.drop_table("alert_engine_runs")
    op.drop_index("ix_monitor_events_tenant_open", table_name="monitor_events")
    op.drop_index("uq_monitor_events_open_fingerprint", table_name="monitor_events")
    op.drop_table("monitor_events")
    op.drop_index("ix_monitor_subscriptions_tenant_status", table_name="monitor_subscriptions")
    op.drop_table("monitor_subscriptions")
    op.drop_table("monitor_plans")
    op.execute("DROP INDEX IF EXISTS ix_monitor_readings_plant_ts")
    op.execute("DROP INDEX IF EXISTS ix_monitor_readings_tenant_ts")
    op.drop_table("monitor_readings")
    op.drop_index("ix_monitor_channels_tenant_plant", table_name="monitor_channels")
    op.drop_table("monitor_channels")
    op.drop_index("ix_solar_plants_tenant", table_name="solar_plants")
    op.drop_table("solar_plants")
    op.drop_index("ix_monitoring_integrations_tenant_status", table_name="monitoring_integrations")
    op.drop_table("monitoring_integrations")
