from __future__ import annotations

from collections.abc import Iterable, Sequence

from alert_engine.domain import AlertType, SubscriptionSnapshot, TenantPlan, parse_alert_types

DEFAULT_ALERT_TYPES: frozenset[AlertType] = frozenset({AlertType.OFFLINE})


def resolve_tenant_plan(
    tenant_id: str,
    subscriptions: Sequence[SubscriptionSnapshot],
    *,
    default_alert_types: Iterable[AlertType] = DEFAULT_ALERT_TYPES,
) -> TenantPlan:
    """Merge a tenant's enabled subscriptions into one immutable plan.

    `subscriptions` must already be filtered to active/trialing and ordered by
    creation. The first subscription whose plan resolves supplies the enabled
    alert types; plant scopes are unioned, and any unscoped subscription (or
    no subscription at all) puts every plant of the tenant in scope.
    """
    default_types = frozenset(default_alert_types) or DEFAULT_ALERT_TYPES

    enabled: frozenset[AlertType] | None = None
    plan_id: str | None = None
    for subscription in subscriptions:
        resolved = _resolve_plan_features(subscription)
        if resolved is not None:
            enabled = resolved
            plan_id = subscription.plan_id
            break

    return TenantPlan(
        tenant_id=tenant_id,
        enabled_alert_types=enabled if enabled is not None else default_types,
        plant_ids=_merge_plant_scope(subscriptions),
        plan_id=plan_id,
    )


def default_alert_types_from_names(names: Iterable[str]) -> frozenset[AlertType]:
    parsed = parse_alert_types(list(names))
    return parsed or DEFAULT_ALERT_TYPES


def _resolve_plan_features(subscription: SubscriptionSnapshot) -> frozenset[AlertType] | None:
    if subscription.plan_id is None or not subscription.plan_is_active:
        return None
    features = subscription.plan_features
    if not isinstance(features, dict):
        return None
    alerts = features.get("alerts")
    if not isinstance(alerts, list):
        return None
    return parse_alert_types(alerts)


def _merge_plant_scope(subscriptions: Sequence[SubscriptionSnapshot]) -> frozenset[str] | None:
    if not subscriptions:
        return None
    scope: set[str] = set()
    for subscription in subscriptions:
        if subscription.plant_ids is None:
            return None
        scope.update(subscription.plant_ids)
    return frozenset(scope)
