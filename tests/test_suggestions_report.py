"""Tests for guardrail suggestions and the risk/health reports."""

import json
from typing import Any

import httpx
import pytest
from agent_warden.activity import (
    ActivityLog,
    AnomalyDetectedEntry,
    OperationApprovedEntry,
    OperationBlockedEntry,
    RateSpikeEntry,
)
from agent_warden.anomaly import AnomalyDetector
from agent_warden.audit import AUDIT_LOG_KEY, AuditChain, AuditEventType, AuditResult
from agent_warden.overrides import AllowOverride, OverrideStore
from agent_warden.permissions import PermissionLedger
from agent_warden.report import (
    HealthSeverity,
    build_health_report,
    build_risk_report,
    maybe_send_alert,
)
from agent_warden.storage import MemoryStore
from agent_warden.suggestions import (
    SuggestionType,
    apply_suggestion,
    suggest_guardrails,
    suggested_guardrails,
)


def blocked(clock: Any, operation: str, target: str) -> OperationBlockedEntry:
    return OperationBlockedEntry(timestamp=clock(), operation=operation, target=target, reason="r")


def approved(clock: Any, operation: str, target: str) -> OperationApprovedEntry:
    return OperationApprovedEntry(timestamp=clock(), operation=operation, target=target, approved_by="ops")


# ── Suggestions ───────────────────────────────────────────────


def test_repeated_file_blocks_suggest_safe_path(clock: Any) -> None:
    entries = [blocked(clock, "read:file", "/srv/data/report.csv") for _ in range(5)]
    [suggestion] = suggest_guardrails(entries)
    assert suggestion.type == SuggestionType.ALLOWLIST
    assert suggestion.id == "allow-read_file__srv_data_report_csv"
    assert suggestion.payload.path == "/srv/data/report.csv"


def test_repeated_blocks_suggest_override(clock: Any) -> None:
    entries = [blocked(clock, "network:api_call", "api.example.com") for _ in range(6)]
    [suggestion] = suggest_guardrails(entries)
    assert suggestion.type == SuggestionType.TRUST
    assert suggestion.payload.operation == "network:api_call"
    assert "blocked 6 times" in suggestion.description


def test_below_threshold_no_suggestion(clock: Any) -> None:
    entries = [blocked(clock, "read:file", "/srv/x") for _ in range(4)]
    assert suggest_guardrails(entries) == []


def test_repeated_approvals_suggest_trust(clock: Any) -> None:
    entries = [approved(clock, "write:moltbook_comment", "alice") for _ in range(5)]
    entries += [approved(clock, "write:moltbook_post", "") for _ in range(10)]
    [suggestion] = suggest_guardrails(entries)
    assert suggestion.id == "trust-write_moltbook_comment_alice"
    assert suggestion.payload.target == "alice"


@pytest.mark.asyncio
async def test_suggestions_use_recent_window(store: MemoryStore, clock: Any) -> None:
    activity = ActivityLog(store)
    for _ in range(5):
        await activity.append(blocked(clock, "read:file", "/srv/old"))
    clock.advance(hours=25)
    assert await suggested_guardrails(activity, clock) == []


@pytest.mark.asyncio
async def test_apply_allowlist(clock: Any, store: MemoryStore) -> None:
    detector = AnomalyDetector(clock=clock)
    overrides = OverrideStore(store, clock=clock)
    [suggestion] = suggest_guardrails([blocked(clock, "read:file", "/srv/data") for _ in range(5)])

    assert await apply_suggestion(suggestion, detector=detector, overrides=overrides)
    assert detector.check_file_access("/srv/data/x.csv") is None


@pytest.mark.asyncio
async def test_apply_trust(clock: Any, store: MemoryStore) -> None:
    detector = AnomalyDetector(clock=clock)
    overrides = OverrideStore(store, clock=clock)
    [suggestion] = suggest_guardrails([approved(clock, "write:moltbook_comment", "alice") for _ in range(5)])

    assert await apply_suggestion(suggestion, detector=detector, overrides=overrides)
    [override] = await overrides.list()
    assert isinstance(override, AllowOverride)
    assert override.target == "alice"
    assert (override.reason or "").startswith("Applied from suggestion:")


# ── Risk report ───────────────────────────────────────────────


@pytest.mark.asyncio
async def test_risk_report_counts(store: MemoryStore, clock: Any) -> None:
    activity = ActivityLog(store)
    detector = AnomalyDetector(clock=clock)

    for _ in range(5):
        await activity.append(blocked(clock, "read:file", "/srv/data"))
    await activity.append(approved(clock, "write:moltbook_dm", "bob"))
    await activity.append(RateSpikeEntry(timestamp=clock(), metric="fetch", value=40, baseline=10))
    await activity.append(AnomalyDetectedEntry(timestamp=clock(), anomaly_type="rate_spike", severity="warning"))
    detector.check_file_access("/etc/passwd")
    detector.check_file_access("/etc/shadow")
    detector.check_network_request("https://example.com")

    report = await build_risk_report(activity, detector, clock)
    assert report.period == "24h"
    assert report.blocked_count == 5
    assert report.approved_count == 1
    assert report.rate_spike_count == 1
    assert report.anomaly_count == 3
    assert list(report.top_anomaly_types) == ["unusual_access", "network_anomaly"]
    assert report.suggested_rules_count == 1


@pytest.mark.asyncio
async def test_risk_report_period_labels(store: MemoryStore, clock: Any) -> None:
    activity = ActivityLog(store)
    detector = AnomalyDetector(clock=clock)
    assert (await build_risk_report(activity, detector, clock, hours=168)).period == "7d"
    assert (await build_risk_report(activity, detector, clock, hours=6)).period == "6h"


# ── Health report ─────────────────────────────────────────────


@pytest.mark.asyncio
async def test_health_report_ok(store: MemoryStore, clock: Any) -> None:
    audit = AuditChain(store, clock=clock)
    ledger = PermissionLedger(store, audit=audit, clock=clock)
    await ledger.grant("agent-1", "write:*", duration_minutes=10, granted_by="ops", reason="r")

    report = await build_health_report(audit, AnomalyDetector(clock=clock), ledger, clock)
    assert report.severity == HealthSeverity.OK
    assert report.health_score == 100
    assert report.checks[-1].detail == "1 active timed permissions"


@pytest.mark.asyncio
async def test_health_report_broken_chain_is_fatal(store: MemoryStore, clock: Any) -> None:
    audit = AuditChain(store, clock=clock)
    for _ in range(3):
        await audit.append(AuditEventType.SYSTEM_EVENT, result=AuditResult.SYSTEM, operation="x")
    body = json.loads((await store.read_lines(AUDIT_LOG_KEY))[1])
    body["operation"] = "y"
    store.replace_line(AUDIT_LOG_KEY, 1, json.dumps(body, sort_keys=True, separators=(",", ":")))

    detector = AnomalyDetector(clock=clock)
    detector.check_file_access("/etc/passwd")
    report = await build_health_report(audit, detector, PermissionLedger(store, clock=clock), clock)

    assert report.severity == HealthSeverity.FATAL
    assert report.health_score == 50
    assert report.action_items[0].startswith("CRITICAL")


# ── Alerting ──────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_alert_below_threshold_not_sent(store: MemoryStore, clock: Any) -> None:
    sent = await maybe_send_alert(
        2,
        webhook_url="http://alerts.test/hook",
        activity=ActivityLog(store),
        detector=AnomalyDetector(clock=clock),
        clock=clock,
    )
    assert not sent


@pytest.mark.asyncio
async def test_alert_without_url_not_sent(store: MemoryStore, clock: Any) -> None:
    sent = await maybe_send_alert(
        50, webhook_url="  ", activity=ActivityLog(store), detector=AnomalyDetector(clock=clock), clock=clock
    )
    assert not sent


@pytest.mark.asyncio
async def test_alert_posts_summary(store: MemoryStore, clock: Any) -> None:
    received: list[dict[str, Any]] = []

    def handler(request: httpx.Request) -> httpx.Response:
        received.append(json.loads(request.content))
        return httpx.Response(204)

    detector = AnomalyDetector(clock=clock)
    clock.advance(minutes=-90)
    detector.check_network_request("https://old.example.com")
    clock.advance(minutes=90)
    detector.check_network_request("https://example.com")

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        sent = await maybe_send_alert(
            7,
            webhook_url="http://alerts.test/hook",
            activity=ActivityLog(store),
            detector=detector,
            clock=clock,
            client=client,
        )

    assert sent
    [payload] = received
    assert payload["event"] == "risk_alert"
    assert payload["reason"] == "7 anomalies in the last hour"
    assert payload["summary"]["period"] == "1h"
    assert payload["summary"]["anomaly_count"] == 1


@pytest.mark.asyncio
async def test_alert_failure_returns_false(store: MemoryStore, clock: Any) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused")

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        sent = await maybe_send_alert(
            9,
            webhook_url="http://alerts.test/hook",
            activity=ActivityLog(store),
            detector=AnomalyDetector(clock=clock),
            clock=clock,
            client=client,
        )
    assert not sent


@pytest.mark.asyncio
async def test_alert_rejected_returns_false(store: MemoryStore, clock: Any) -> None:
    transport = httpx.MockTransport(lambda request: httpx.Response(500))
    async with httpx.AsyncClient(transport=transport) as client:
        sent = await maybe_send_alert(
            9,
            webhook_url="http://alerts.test/hook",
            activity=ActivityLog(store),
            detector=AnomalyDetector(clock=clock),
            clock=clock,
            client=client,
        )
    assert not sent
