from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.orm import Session

from alert_engine.db.models import MonitorPlan, MonitorSubscription
from alert_engine.domain import SubscriptionSnapshot

ENABLED_SUBSCRIPTION_STATUSES: tuple[str, ...] = ("active", "trialing")


def list_tenant_subscriptions(db: Session, *, tenant_id: str) -> list[SubscriptionSnapshot]:
    rows = db.execute(
        select(
            MonitorSubscription.id,
            MonitorSubscription.plan_id,
            MonitorSubscription.plant_ids,
            MonitorSubscription.status,
            MonitorPlan.features,
            MonitorPlan.is_active,
        )
        .outerjoin(MonitorPlan, MonitorPlan.id == MonitorSubscription.plan_id)
        .where(
            MonitorSubscription.tenant_id == tenant_id,
            MonitorSubscription.status.in_(ENABLED_SUBSCRIPTION_STATUSES),
        )
        .order_by(MonitorSubscription.created_at.asc(), MonitorSubscription.id.asc())
    ).all()
    return [
        SubscriptionSnapshot(
            id=row.id,
            plan_id=row.plan_id,
            plant_ids=tuple(row.plant_ids) if row.plant_ids is not None else None,
            status=row.status,
            plan_features=row.features if isinstance(row.features, dict) else None,
            plan_is_active=bool(row.is_active) if row.is_active is not None else False,
        )
        for row in rows
    ]
