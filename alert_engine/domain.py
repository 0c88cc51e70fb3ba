from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class AlertType(str, Enum):
    OFFLINE = "offline"
    STALE_DATA = "stale_data"
    FREEZE = "freeze"
    SUDDEN_DROP = "sudden_drop"
    ZERO_GENERATION = "zero_generation"
    IMBALANCE = "imbalance"

    @classmethod
    def parse(cls, value: object) -> "AlertType | None":
        if not isinstance(value, str):
            return None
        try:
            return cls(value.strip().lower())
        except ValueError:
            return None


class Severity(str, Enum):
    INFO = "info"
    WARNING = "warning"
    CRITICAL = "critical"


ALL_ALERT_TYPES: frozenset[AlertType] = frozenset(AlertType)

TOTAL_CHANNEL_TYPE = "total"


def parse_alert_types(values: object) -> frozenset[AlertType]:
    if not isinstance(values, (list, tuple, set, frozenset)):
        return frozenset()
    parsed = (AlertType.parse(value) for value in values)
    return frozenset(alert_type for alert_type in parsed if alert_type is not None)


def build_fingerprint(alert_type: AlertType, plant_id: str, channel_id: str | None = None) -> str:
    if channel_id is None:
        return f"{alert_type.value}:{plant_id}"
    return f"{alert_type.value}:{plant_id}:{channel_id}"


@dataclass(frozen=True)
class PlantSnapshot:
    id: str
    tenant_id: str
    name: str | None
    capacity_kw: float | None
    last_contact_at: datetime | None
    timezone: str | None = None

    @property
    def display_name(self) -> str:
        return self.name or "Plant"


@dataclass(frozen=True)
class ChannelSnapshot:
    id: str
    plant_id: str
    device_id: str | None
    channel_type: str
    installed_power_wp: float | None
    name: str | None = None
    is_active: bool = True

    @property
    def is_aggregate(self) -> bool:
        return self.channel_type.strip().lower() == TOTAL_CHANNEL_TYPE

    @property
    def display_name(self) -> str:
        return self.name or self.id


@dataclass(frozen=True)
class ReadingSnapshot:
    plant_id: str
    device_id: str | None
    channel_id: str | None
    ts: datetime
    power_w: float
    energy_kwh: float | None = None


@dataclass(frozen=True)
class AlertCandidate:
    tenant_id: str
    plant_id: str
    device_id: str | None
    channel_id: str | None
    type: AlertType
    severity: Severity
    title: str
    message: str
    fingerprint: str


@dataclass(frozen=True)
class SubscriptionSnapshot:
    id: str
    plan_id: str | None
    plant_ids: tuple[str, ...] | None
    status: str
    plan_features: dict | None
    plan_is_active: bool = True


@dataclass(frozen=True)
class TenantPlan:
    tenant_id: str
    enabled_alert_types: frozenset[AlertType]
    plant_ids: frozenset[str] | None
    plan_id: str | None = None

    def allows(self, alert_type: AlertType) -> bool:
        return alert_type in self.enabled_alert_types
