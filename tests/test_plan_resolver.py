from __future__ import annotations

from unittest import TestCase

from alert_engine.domain import AlertType, SubscriptionSnapshot
from alert_engine.services.plan_resolver import (
    DEFAULT_ALERT_TYPES,
    default_alert_types_from_names,
    resolve_tenant_plan,
)


def _subscription(
    sub_id: str,
    *,
    plan_id: str | None = "plan-pro",
    alerts: list[str] | None = None,
    plant_ids: tuple[str, ...] | None = None,
    plan_is_active: bool = True,
) -> SubscriptionSnapshot:
    return SubscriptionSnapshot(
        id=sub_id,
        plan_id=plan_id,
        plant_ids=plant_ids,
        status="active",
        plan_features=None if alerts is None else {"alerts": alerts},
        plan_is_active=plan_is_active,
    )


class PlanResolverTests(TestCase):
    def test_tenant_without_subscription_gets_offline_only(self) -> None:
        plan = resolve_tenant_plan("T1", [])

        self.assertEqual(plan.enabled_alert_types, frozenset({AlertType.OFFLINE}))
        self.assertIsNone(plan.plant_ids)
        self.assertIsNone(plan.plan_id)

    def test_first_resolvable_plan_in_creation_order_wins(self) -> None:
        subscriptions = [
            _subscription("s1", plan_id="plan-old", alerts=["freeze"], plan_is_active=False),
            _subscription("s2", plan_id="plan-pro", alerts=["offline", "imbalance"]),
            _subscription("s3", plan_id="plan-max", alerts=["freeze"]),
        ]

        plan = resolve_tenant_plan("T1", subscriptions)

        self.assertEqual(plan.enabled_alert_types, frozenset({AlertType.OFFLINE, AlertType.IMBALANCE}))
        self.assertEqual(plan.plan_id, "plan-pro")
        self.assertTrue(plan.allows(AlertType.IMBALANCE))
        self.assertFalse(plan.allows(AlertType.FREEZE))

    def test_unresolvable_subscriptions_fall_back_to_default(self) -> None:
        subscriptions = [
            _subscription("s1", plan_id=None),
            _subscription("s2", plan_id="plan-broken", alerts=None),
        ]

        plan = resolve_tenant_plan("T1", subscriptions)

        self.assertEqual(plan.enabled_alert_types, DEFAULT_ALERT_TYPES)

    def test_unknown_feature_names_are_ignored(self) -> None:
        plan = resolve_tenant_plan("T1", [_subscription("s1", alerts=["offline", "weather_alert", "FREEZE"])])

        self.assertEqual(plan.enabled_alert_types, frozenset({AlertType.OFFLINE, AlertType.FREEZE}))

    def test_plant_scopes_are_unioned(self) -> None:
        subscriptions = [
            _subscription("s1", alerts=["offline"], plant_ids=("P1",)),
            _subscription("s2", alerts=["freeze"], plant_ids=("P2", "P3")),
        ]

        plan = resolve_tenant_plan("T1", subscriptions)

        self.assertEqual(plan.plant_ids, frozenset({"P1", "P2", "P3"}))

    def test_unscoped_subscription_covers_all_plants(self) -> None:
        subscriptions = [
            _subscription("s1", alerts=["offline"], plant_ids=("P1",)),
            _subscription("s2", alerts=["freeze"], plant_ids=None),
        ]

        self.assertIsNone(resolve_tenant_plan("T1", subscriptions).plant_ids)

    def test_configured_default_types(self) -> None:
        defaults = default_alert_types_from_names(["offline", "stale_data"])

        plan = resolve_tenant_plan("T1", [], default_alert_types=defaults)

        self.assertEqual(plan.enabled_alert_types, frozenset({AlertType.OFFLINE, AlertType.STALE_DATA}))
        self.assertEqual(default_alert_types_from_names([]), DEFAULT_ALERT_TYPES)
        self.assertEqual(default_alert_types_from_names(["nonsense"]), DEFAULT_ALERT_TYPES)
