"""Pure anomaly rules for one plant's recent telemetry window.

Nothing in this module performs I/O: the orchestrator loads plants, channels
and readings, resolves the tenant plan once, and hands the immutable values
in. Every rule is gated by the enabled alert types and skipped entirely when
its type is not enabled.
"""

from __future__ import annotations

from collections.abc import Callable, Collection, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from functools import lru_cache
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from alert_engine.core.config import Settings
from alert_engine.domain import (
    AlertCandidate,
    AlertType,
    ChannelSnapshot,
    PlantSnapshot,
    ReadingSnapshot,
    Severity,
    build_fingerprint,
)

OFFLINE_THRESHOLD = timedelta(minutes=15)
STALE_THRESHOLD = timedelta(minutes=15)
FREEZE_THRESHOLD = timedelta(minutes=10)
FREEZE_SAMPLE_COUNT = 5
FREEZE_EPSILON_W = 1.0
DROP_WINDOW = timedelta(minutes=5)
DROP_MIN_POWER_W = 100.0
DROP_RATIO = 0.4
ZERO_GENERATION_HOUR_START = 9
ZERO_GENERATION_HOUR_END = 16
ZERO_GENERATION_MAX_POWER_W = 5.0
IMBALANCE_MIN_POWER_W = 50.0
IMBALANCE_TOLERANCE = 0.3
DEFAULT_TIMEZONE = "America/Sao_Paulo"


@dataclass(frozen=True)
class RuleThresholds:
    offline_after: timedelta = OFFLINE_THRESHOLD
    stale_after: timedelta = STALE_THRESHOLD
    freeze_after: timedelta = FREEZE_THRESHOLD
    freeze_sample_count: int = FREEZE_SAMPLE_COUNT
    freeze_epsilon_w: float = FREEZE_EPSILON_W
    drop_window: timedelta = DROP_WINDOW
    drop_min_power_w: float = DROP_MIN_POWER_W
    drop_ratio: float = DROP_RATIO
    zero_generation_hour_start: int = ZERO_GENERATION_HOUR_START
    zero_generation_hour_end: int = ZERO_GENERATION_HOUR_END
    zero_generation_max_power_w: float = ZERO_GENERATION_MAX_POWER_W
    imbalance_min_power_w: float = IMBALANCE_MIN_POWER_W
    imbalance_tolerance: float = IMBALANCE_TOLERANCE
    default_timezone: str = DEFAULT_TIMEZONE

    @classmethod
    def from_settings(cls, settings: Settings) -> "RuleThresholds":
        return cls(
            offline_after=timedelta(minutes=settings.alert_offline_minutes),
            stale_after=timedelta(minutes=settings.alert_stale_minutes),
            freeze_after=timedelta(minutes=settings.alert_freeze_minutes),
            freeze_sample_count=settings.alert_freeze_sample_count,
            freeze_epsilon_w=settings.alert_freeze_epsilon_w,
            drop_window=timedelta(minutes=settings.alert_drop_window_minutes),
            drop_min_power_w=settings.alert_drop_min_power_w,
            drop_ratio=settings.alert_drop_ratio,
            zero_generation_hour_start=settings.alert_zero_generation_hour_start,
            zero_generation_hour_end=settings.alert_zero_generation_hour_end,
            zero_generation_max_power_w=settings.alert_zero_generation_max_power_w,
            imbalance_min_power_w=settings.alert_imbalance_min_power_w,
            imbalance_tolerance=settings.alert_imbalance_tolerance,
            default_timezone=settings.alert_default_timezone,
        )


DEFAULT_THRESHOLDS = RuleThresholds()


@dataclass(frozen=True)
class PlantWindow:
    plant: PlantSnapshot
    # Newest first.
    readings: Sequence[ReadingSnapshot] = field(default_factory=tuple)
    channels: Sequence[ChannelSnapshot] = field(default_factory=tuple)


RuleFn = Callable[[PlantWindow, datetime, RuleThresholds], list[AlertCandidate]]


def evaluate_plant(
    window: PlantWindow,
    *,
    enabled: Collection[AlertType],
    now: datetime,
    thresholds: RuleThresholds = DEFAULT_THRESHOLDS,
) -> list[AlertCandidate]:
    now_utc = _to_utc(now)
    candidates: list[AlertCandidate] = []
    for alert_type in AlertType:
        if alert_type not in enabled:
            continue
        candidates.extend(RULES[alert_type](window, now_utc, thresholds))
    return candidates


def evaluate_tenant(
    plants: Sequence[PlantSnapshot],
    channels: Sequence[ChannelSnapshot],
    readings: Sequence[ReadingSnapshot],
    *,
    enabled: Collection[AlertType],
    now: datetime,
    thresholds: RuleThresholds = DEFAULT_THRESHOLDS,
) -> list[AlertCandidate]:
    readings_by_plant: dict[str, list[ReadingSnapshot]] = {}
    for reading in sorted(readings, key=lambda item: _to_utc(item.ts), reverse=True):
        readings_by_plant.setdefault(reading.plant_id, []).append(reading)
    channels_by_plant: dict[str, list[ChannelSnapshot]] = {}
    for channel in channels:
        channels_by_plant.setdefault(channel.plant_id, []).append(channel)

    candidates: list[AlertCandidate] = []
    for plant in plants:
        window = PlantWindow(
            plant=plant,
            readings=tuple(readings_by_plant.get(plant.id, ())),
            channels=tuple(channels_by_plant.get(plant.id, ())),
        )
        candidates.extend(evaluate_plant(window, enabled=enabled, now=now, thresholds=thresholds))
    return candidates


def _offline(window: PlantWindow, now: datetime, thresholds: RuleThresholds) -> list[AlertCandidate]:
    plant = window.plant
    if plant.last_contact_at is None:
        return []
    last_contact = _to_utc(plant.last_contact_at)
    silence = now - last_contact
    if silence <= thresholds.offline_after:
        return []
    minutes = round(silence.total_seconds() / 60)
    return [
        _candidate(
            plant,
            AlertType.OFFLINE,
            Severity.CRITICAL,
            title=f"Plant offline for {minutes} min",
            message=f"{plant.display_name}: no communication since {last_contact.isoformat()}",
        )
    ]


def _stale_data(window: PlantWindow, now: datetime, thresholds: RuleThresholds) -> list[AlertCandidate]:
    plant = window.plant
    if window.readings or plant.last_contact_at is None:
        return []
    if now - _to_utc(plant.last_contact_at) <= thresholds.stale_after:
        return []
    stale_minutes = round(thresholds.stale_after.total_seconds() / 60)
    return [
        _candidate(
            plant,
            AlertType.STALE_DATA,
            Severity.WARNING,
            title="Stale telemetry",
            message=f"{plant.display_name}: no readings for more than {stale_minutes} min",
        )
    ]


def _freeze(window: PlantWindow, now: datetime, thresholds: RuleThresholds) -> list[AlertCandidate]:
    series = _series_readings(window)
    if len(series) < 2:
        return []
    recent = series[: thresholds.freeze_sample_count]
    powers = [reading.power_w for reading in recent]
    reference = powers[0]
    if any(abs(power - reference) >= thresholds.freeze_epsilon_w for power in powers):
        return []
    if any(power <= 0 for power in powers):
        return []
    span = now - _to_utc(recent[-1].ts)
    if span < thresholds.freeze_after:
        return []
    return [
        _candidate(
            window.plant,
            AlertType.FREEZE,
            Severity.WARNING,
            title="Frozen power reading",
            message=(
                f"{window.plant.display_name}: power stuck at {_fmt_w(reference)} "
                f"for {round(span.total_seconds() / 60)} min"
            ),
        )
    ]


def _sudden_drop(window: PlantWindow, now: datetime, thresholds: RuleThresholds) -> list[AlertCandidate]:
    series = _series_readings(window)
    if len(series) < 2:
        return []
    latest = series[0]
    cutoff = now - thresholds.drop_window
    reference = next((reading for reading in series if _to_utc(reading.ts) <= cutoff), None)
    if reference is None or reference is latest:
        return []
    if reference.power_w <= thresholds.drop_min_power_w:
        return []
    drop = 1 - (latest.power_w / reference.power_w)
    if drop < thresholds.drop_ratio:
        return []
    return [
        _candidate(
            window.plant,
            AlertType.SUDDEN_DROP,
            Severity.CRITICAL,
            title=f"Sudden power drop of {round(drop * 100)}%",
            message=(
                f"{window.plant.display_name}: power fell from {_fmt_w(reference.power_w)} "
                f"to {_fmt_w(latest.power_w)}"
            ),
        )
    ]


def _zero_generation(
    window: PlantWindow,
    now: datetime,
    thresholds: RuleThresholds,
) -> list[AlertCandidate]:
    series = _series_readings(window)
    if not series:
        return []
    local_hour = local_hour_for(window.plant, now, default_timezone=thresholds.default_timezone)
    if not thresholds.zero_generation_hour_start <= local_hour < thresholds.zero_generation_hour_end:
        return []
    latest = series[0]
    if latest.power_w >= thresholds.zero_generation_max_power_w:
        return []
    return [
        _candidate(
            window.plant,
            AlertType.ZERO_GENERATION,
            Severity.WARNING,
            title="Zero generation during daylight",
            message=(
                f"{window.plant.display_name}: power ~{_fmt_w(latest.power_w)} "
                f"at {local_hour}h local time (generation expected)"
            ),
        )
    ]


def _imbalance(window: PlantWindow, now: datetime, thresholds: RuleThresholds) -> list[AlertCandidate]:
    peers = [channel for channel in window.channels if channel.is_active and not channel.is_aggregate]
    if len(peers) < 2:
        return []

    latest_by_channel: dict[str, ReadingSnapshot] = {}
    for reading in window.readings:
        if reading.channel_id is not None and reading.channel_id not in latest_by_channel:
            latest_by_channel[reading.channel_id] = reading

    channel_powers = [
        (channel, latest_by_channel[channel.id].power_w)
        for channel in peers
        if channel.id in latest_by_channel
    ]
    if len(channel_powers) < 2:
        return []

    max_power = max(power for _, power in channel_powers)
    if max_power <= thresholds.imbalance_min_power_w:
        return []
    max_capacity = max(channel.installed_power_wp or 1.0 for channel in peers)

    candidates: list[AlertCandidate] = []
    for channel, power in channel_powers:
        expected_ratio = (
            channel.installed_power_wp / max_capacity if channel.installed_power_wp else 1.0
        )
        actual_ratio = power / max_power
        if abs(actual_ratio - expected_ratio) <= thresholds.imbalance_tolerance:
            continue
        candidates.append(
            _candidate(
                window.plant,
                AlertType.IMBALANCE,
                Severity.WARNING,
                title=f"Channel imbalance: {channel.display_name}",
                message=(
                    f"Channel {channel.display_name} at {round(actual_ratio * 100)}% "
                    f"vs expected {round(expected_ratio * 100)}%"
                ),
                device_id=channel.device_id,
                channel_id=channel.id,
            )
        )
    return candidates


RULES: dict[AlertType, RuleFn] = {
    AlertType.OFFLINE: _offline,
    AlertType.STALE_DATA: _stale_data,
    AlertType.FREEZE: _freeze,
    AlertType.SUDDEN_DROP: _sudden_drop,
    AlertType.ZERO_GENERATION: _zero_generation,
    AlertType.IMBALANCE: _imbalance,
}


def local_hour_for(plant: PlantSnapshot, now: datetime, *, default_timezone: str = DEFAULT_TIMEZONE) -> int:
    zone = _zone(plant.timezone) if plant.timezone else None
    if zone is None:
        zone = _zone(default_timezone) or timezone.utc
    return _to_utc(now).astimezone(zone).hour


@lru_cache(maxsize=64)
def _zone(name: str) -> ZoneInfo | None:
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        return None


def _series_readings(window: PlantWindow) -> list[ReadingSnapshot]:
    """Plant-level power series, newest first.

    Prefers readings without a channel, then readings of `total` channels.
    Plants that only report per-channel readings get the channel powers
    summed per timestamp.
    """
    aggregate = [reading for reading in window.readings if reading.channel_id is None]
    if aggregate:
        return aggregate
    total_ids = {channel.id for channel in window.channels if channel.is_aggregate}
    totals = [reading for reading in window.readings if reading.channel_id in total_ids]
    if totals:
        return totals

    power_by_ts: dict[datetime, float] = {}
    for reading in window.readings:
        ts = _to_utc(reading.ts)
        power_by_ts[ts] = power_by_ts.get(ts, 0.0) + reading.power_w
    return [
        ReadingSnapshot(
            plant_id=window.plant.id,
            device_id=None,
            channel_id=None,
            ts=ts,
            power_w=power,
        )
        for ts, power in sorted(power_by_ts.items(), reverse=True)
    ]


def _candidate(
    plant: PlantSnapshot,
    alert_type: AlertType,
    severity: Severity,
    *,
    title: str,
    message: str,
    device_id: str | None = None,
    channel_id: str | None = None,
) -> AlertCandidate:
    return AlertCandidate(
        tenant_id=plant.tenant_id,
        plant_id=plant.id,
        device_id=device_id,
        channel_id=channel_id,
        type=alert_type,
        severity=severity,
        title=title,
        message=message,
        fingerprint=build_fingerprint(alert_type, plant.id, channel_id),
    )


def _fmt_w(value: float) -> str:
    return f"{value:g}W"


def _to_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
