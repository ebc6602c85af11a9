"""Risk and health reporting over the operational log and audit chain."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from enum import StrEnum
from typing import TYPE_CHECKING

import httpx
from pydantic import BaseModel, Field

from agent_warden.activity import ActivityType
from agent_warden.suggestions import suggested_guardrails

if TYPE_CHECKING:
    from agent_warden.activity import ActivityLog
    from agent_warden.anomaly.detector import AnomalyDetector
    from agent_warden.audit.chain import AuditChain
    from agent_warden.clock import Clock
    from agent_warden.permissions import PermissionLedger

logger = logging.getLogger(__name__)


class SuggestedRuleSummary(BaseModel):
    id: str
    type: str
    description: str


class RiskReport(BaseModel):
    period: str
    since: datetime
    until: datetime
    blocked_count: int = 0
    approved_count: int = 0
    anomaly_count: int = 0
    rate_spike_count: int = 0
    top_anomaly_types: dict[str, int] = Field(default_factory=dict)
    suggested_rules: list[SuggestedRuleSummary] = Field(default_factory=list)

    @property
    def suggested_rules_count(self) -> int:
        return len(self.suggested_rules)


class HealthSeverity(StrEnum):
    OK = "ok"
    WARNING = "warning"
    FATAL = "fatal"


class HealthCheck(BaseModel):
    name: str
    severity: HealthSeverity
    detail: str


class HealthReport(BaseModel):
    generated_at: datetime
    severity: HealthSeverity
    health_score: int
    checks: list[HealthCheck] = Field(default_factory=list)
    action_items: list[str] = Field(default_factory=list)


def _period_label(hours: float) -> str:
    if hours == 24:
        return "24h"
    if hours == 168:
        return "7d"
    return f"{hours:g}h"


async def build_risk_report(
    activity: ActivityLog,
    detector: AnomalyDetector,
    clock: Clock,
    hours: float = 24,
) -> RiskReport:
    """Aggregate blocked/approved/rate-spike/anomaly counts and suggestions for a window."""
    until = clock()
    since = until - timedelta(hours=hours)
    report = RiskReport(period=_period_label(hours), since=since, until=until)

    types: dict[str, int] = {}
    for entry in await activity.query(since=since, until=until):
        if entry.type == ActivityType.OPERATION_BLOCKED:
            report.blocked_count += 1
        elif entry.type == ActivityType.OPERATION_APPROVED:
            report.approved_count += 1
        elif entry.type == ActivityType.RATE_SPIKE:
            report.rate_spike_count += 1

    events = detector.events(since)
    report.anomaly_count = len(events)
    for event in events:
        types[event.type.value] = types.get(event.type.value, 0) + 1
    report.top_anomaly_types = dict(sorted(types.items(), key=lambda kv: kv[1], reverse=True))

    report.suggested_rules = [
        SuggestedRuleSummary(id=s.id, type=s.type.value, description=s.description)
        for s in await suggested_guardrails(activity, clock, hours)
    ]
    return report


async def build_health_report(
    audit: AuditChain,
    detector: AnomalyDetector,
    permissions: PermissionLedger,
    clock: Clock,
) -> HealthReport:
    """Daily health summary. A broken audit chain is always fatal."""
    now = clock()
    checks: list[HealthCheck] = []
    actions: list[str] = []
    score = 100

    verification = await audit.verify()
    if verification.valid:
        checks.append(
            HealthCheck(
                name="audit_chain",
                severity=HealthSeverity.OK,
                detail=f"{verification.count} entries verified",
            )
        )
    else:
        checks.append(
            HealthCheck(
                name="audit_chain",
                severity=HealthSeverity.FATAL,
                detail=f"Broken at seq {verification.broken_at_seq}: {verification.reason}",
            )
        )
        actions.append("CRITICAL: Audit chain integrity issue detected, review immediately")
        score -= 30

    recent = detector.events(now - timedelta(hours=24))
    pending = detector.pending_reviews()
    if pending or detector.is_paused():
        checks.append(
            HealthCheck(
                name="anomalies",
                severity=HealthSeverity.WARNING,
                detail=f"{len(recent)} anomalies in 24h, {len(pending)} awaiting review"
                + (", agent paused" if detector.is_paused() else ""),
            )
        )
        actions.append("Review security events: anomalies awaiting review")
        score -= 20
    else:
        checks.append(
            HealthCheck(
                name="anomalies",
                severity=HealthSeverity.OK,
                detail=f"{len(recent)} anomalies in 24h",
            )
        )

    active = [p for p in await permissions.all() if p.is_live(now)]
    checks.append(
        HealthCheck(
            name="permissions",
            severity=HealthSeverity.OK,
            detail=f"{len(active)} active timed permissions",
        )
    )

    if any(c.severity == HealthSeverity.FATAL for c in checks):
        severity = HealthSeverity.FATAL
    elif any(c.severity == HealthSeverity.WARNING for c in checks):
        severity = HealthSeverity.WARNING
    else:
        severity = HealthSeverity.OK

    return HealthReport(
        generated_at=now,
        severity=severity,
        health_score=max(0, min(100, score)),
        checks=checks,
        action_items=actions,
    )


async def maybe_send_alert(
    anomaly_count_last_hour: int,
    *,
    webhook_url: str | None,
    activity: ActivityLog,
    detector: AnomalyDetector,
    clock: Clock,
    threshold: int = 5,
    timeout: float = 5.0,
    client: httpx.AsyncClient | None = None,
) -> bool:
    """POST a one-hour risk summary when anomalies exceed ``threshold``.

    Returns ``True`` only if the webhook accepted the alert; any failure
    yields ``False``.
    """
    if not webhook_url or not webhook_url.strip() or anomaly_count_last_hour < threshold:
        return False

    summary = await build_risk_report(activity, detector, clock, hours=1)
    payload = {
        "event": "risk_alert",
        "reason": f"{anomaly_count_last_hour} anomalies in the last hour",
        "summary": summary.model_dump(mode="json"),
    }
    owns_client = client is None
    http = client or httpx.AsyncClient(timeout=timeout)
    try:
        resp = await http.post(webhook_url.strip(), json=payload)
        return resp.is_success
    except httpx.HTTPError as exc:
        logger.warning("Risk alert webhook failed: %s", exc)
        return False
    finally:
        if owns_client:
            await http.aclose()
