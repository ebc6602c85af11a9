"""The explicit dependency set owned by the host process.

``build_warden`` wires every component from :class:`Settings`; the API and
the maintenance cycle work against the resulting :class:`Warden` rather than
module-level singletons.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from agent_warden.activity import ActivityLog
from agent_warden.anomaly import AnomalyConfig, AnomalyDetector
from agent_warden.audit import AuditChain, WebhookForwarder
from agent_warden.clock import utc_now
from agent_warden.config import Settings
from agent_warden.engine import DecisionEngine
from agent_warden.events import SecurityEventBus
from agent_warden.governance import HaltSwitch
from agent_warden.llm import ClaudeLLMProvider
from agent_warden.overrides import OverrideStore
from agent_warden.patterns import default_catalog, load_catalog
from agent_warden.permissions import PermissionLedger
from agent_warden.risk import RiskClassifier
from agent_warden.sanitizer import ContentSanitizer
from agent_warden.storage import FileStore
from agent_warden.tasks import TaskSpecStore
from agent_warden.trust import TrustScorer

if TYPE_CHECKING:
    from agent_warden.clock import Clock
    from agent_warden.governance import AwarenessHook
    from agent_warden.llm import LLMProvider
    from agent_warden.storage import KeyValueStore

logger = logging.getLogger(__name__)


@dataclass
class Warden:
    settings: Settings
    clock: Clock
    store: KeyValueStore
    bus: SecurityEventBus
    audit: AuditChain
    activity: ActivityLog
    detector: AnomalyDetector
    trust: TrustScorer
    overrides: OverrideStore
    permissions: PermissionLedger
    tasks: TaskSpecStore
    halt: HaltSwitch
    engine: DecisionEngine
    forwarder: WebhookForwarder | None = None

    async def close(self) -> None:
        if self.forwarder is not None:
            await self.forwarder.close()


def build_warden(
    settings: Settings | None = None,
    *,
    store: KeyValueStore | None = None,
    clock: Clock = utc_now,
    llm_provider: LLMProvider | None = None,
    awareness: AwarenessHook | None = None,
) -> Warden:
    """Construct every component from settings.

    ``store`` defaults to a :class:`FileStore` over ``data_dir``/``audit_dir``.
    The risk classifier is wired only when it is enabled and either
    ``llm_provider`` is given or an API key is configured.
    """
    settings = settings or Settings()
    store = store or FileStore(settings.data_dir, settings.audit_dir)
    catalog = load_catalog(settings.pattern_file) if settings.pattern_file else default_catalog()
    bus = SecurityEventBus()

    forwarder = None
    if settings.audit_webhook_url:
        forwarder = WebhookForwarder(settings.audit_webhook_url, timeout=settings.webhook_timeout_seconds)

    audit = AuditChain(store, forwarder=forwarder, clock=clock)
    detector = AnomalyDetector(
        AnomalyConfig(
            auto_block=settings.anomaly_auto_block,
            auto_pause=settings.anomaly_auto_pause,
            baseline_window_hours=settings.baseline_window_hours,
            rate_spike_tolerance=settings.rate_spike_tolerance,
            baseline_alpha=settings.baseline_alpha,
            baseline_update_interval_minutes=settings.baseline_update_interval_minutes,
        ),
        catalog=catalog,
        bus=bus,
        clock=clock,
    )
    trust = TrustScorer(
        store,
        threshold=settings.auto_approve_threshold,
        recent_incident_hours=settings.recent_incident_hours,
        half_life_days=settings.trust_half_life_days,
        failure_weight=settings.failure_weight,
        clock=clock,
    )
    overrides = OverrideStore(store, clock=clock)
    permissions = PermissionLedger(store, audit=audit, clock=clock)
    tasks = TaskSpecStore(store, audit=audit, clock=clock)
    halt = HaltSwitch(store, clock=clock)
    activity = ActivityLog(store)

    risk = None
    if settings.enable_risk_analysis:
        if llm_provider is None and settings.risk_api_key:
            llm_provider = ClaudeLLMProvider(api_key=settings.risk_api_key, model=settings.risk_model)
        if llm_provider is not None:
            risk = RiskClassifier(llm_provider, timeout=settings.risk_timeout_seconds)
        else:
            logger.warning("Risk analysis enabled but no API key configured; classifier disabled")

    engine = DecisionEngine(
        audit=audit,
        detector=detector,
        trust=trust,
        overrides=overrides,
        permissions=permissions,
        tasks=tasks,
        halt=halt,
        activity=activity,
        sanitizer=ContentSanitizer(strict_mode=settings.sanitizer_strict_mode, catalog=catalog),
        risk=risk,
        awareness=awareness,
        bus=bus,
        approval_ttl_minutes=settings.approval_ttl_minutes,
        clock=clock,
    )
    return Warden(
        settings=settings,
        clock=clock,
        store=store,
        bus=bus,
        audit=audit,
        activity=activity,
        detector=detector,
        trust=trust,
        overrides=overrides,
        permissions=permissions,
        tasks=tasks,
        halt=halt,
        engine=engine,
        forwarder=forwarder,
    )
