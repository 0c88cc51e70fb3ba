from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from sqlalchemy.orm import Session

from alert_engine.domain import AlertCandidate
from alert_engine.repositories.alerts import close_alert, insert_open_alert, list_open_alerts

logger = logging.getLogger("alert_engine.lifecycle")


@dataclass(frozen=True)
class LifecycleOutcome:
    opened: int = 0
    closed: int = 0
    skipped: int = 0


def reconcile_tenant_alerts(
    db: Session,
    *,
    tenant_id: str,
    candidates: Sequence[AlertCandidate],
    now: datetime,
    close_min_open_seconds: int = 0,
) -> LifecycleOutcome:
    """Open alerts for new conditions and close alerts whose condition cleared.

    `candidates` must be the complete candidate set of this tenant's pass: any
    open alert whose fingerprint is missing from it gets closed. An already
    open alert is left untouched (title, message and severity keep the values
    from when it opened).
    """
    now = _to_utc(now)
    unique_candidates = _dedupe_by_fingerprint(candidates)
    candidate_fingerprints = set(unique_candidates)

    open_fingerprints = {alert.fingerprint for alert in list_open_alerts(db, tenant_id=tenant_id)}

    opened = 0
    skipped = 0
    for fingerprint, candidate in unique_candidates.items():
        if fingerprint in open_fingerprints:
            skipped += 1
            continue
        alert_id = insert_open_alert(db, candidate=candidate, now=now)
        if alert_id is None:
            # Another pass opened the same fingerprint between our read and insert.
            logger.debug("alert open raced tenant_id=%s fingerprint=%s", tenant_id, fingerprint)
            skipped += 1
            continue
        opened += 1
        logger.info(
            "alert opened tenant_id=%s fingerprint=%s severity=%s alert_id=%s",
            tenant_id,
            fingerprint,
            candidate.severity.value,
            alert_id,
        )

    min_open_age = timedelta(seconds=close_min_open_seconds)
    closed = 0
    for alert in list_open_alerts(db, tenant_id=tenant_id):
        if alert.fingerprint in candidate_fingerprints:
            continue
        if min_open_age and now - _to_utc(alert.opened_at) < min_open_age:
            continue
        if close_alert(db, alert_id=alert.id, now=now):
            closed += 1
            logger.info(
                "alert closed tenant_id=%s fingerprint=%s alert_id=%s",
                tenant_id,
                alert.fingerprint,
                alert.id,
            )

    return LifecycleOutcome(opened=opened, closed=closed, skipped=skipped)


def _dedupe_by_fingerprint(candidates: Sequence[AlertCandidate]) -> dict[str, AlertCandidate]:
    unique: dict[str, AlertCandidate] = {}
    for candidate in candidates:
        unique.setdefault(candidate.fingerprint, candidate)
    return unique


def _to_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
