"""Authorization decision engine.

Every operation an agent wants to perform goes through
:meth:`DecisionEngine.check_operation`, which combines static policy, task
constraints, overrides, learned trust, timed permissions, the optional risk
classifier and content/anomaly inspection into a single decision.

Block strength is asymmetric: the halt switch, the pause state, the hard-block
set and leak detection always win. Overrides and trust only relax level 1-2
operations, and a level 3 operation is lifted only by a live timed permission.
Every decision is audited, whatever the outcome.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from enum import StrEnum
from typing import TYPE_CHECKING, Any, Protocol, TypeVar
from uuid import uuid4

from pydantic import BaseModel

from agent_warden.activity import (
    ActivityType,
    AnomalyDetectedEntry,
    OperationAllowedEntry,
    OperationApprovedEntry,
    OperationBlockedEntry,
    RateSpikeEntry,
)
from agent_warden.anomaly.models import AnomalyAction, AnomalyEvent, AnomalyType, Severity
from agent_warden.audit.models import AuditEventType, AuditResult
from agent_warden.clock import utc_now
from agent_warden.errors import OperationBlockedError, RiskAnalysisError, WardenError
from agent_warden.events import SecurityEventKind
from agent_warden.governance import AllowAllAwareness, SystemMode
from agent_warden.models import (
    ApprovalLevel,
    AuthorizationDecision,
    OperationCategory,
    OperationRequest,
    SecurityContext,
)
from agent_warden.risk import RiskLevel
from agent_warden.sanitizer import ContentSanitizer
from agent_warden.tasks.models import ExecutionResult

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from agent_warden.activity import ActivityEntry, ActivityLog
    from agent_warden.anomaly.detector import AnomalyDetector
    from agent_warden.audit.chain import AuditChain
    from agent_warden.clock import Clock
    from agent_warden.events import SecurityEventBus
    from agent_warden.governance import AwarenessHook, HaltSwitch, SystemState
    from agent_warden.overrides import OverrideStore
    from agent_warden.permissions import PermissionLedger
    from agent_warden.risk import RiskClassifier
    from agent_warden.tasks.store import TaskSpecStore
    from agent_warden.trust import TrustScorer

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Catastrophic operations; no override, trust score or grant can allow these.
BLOCKED_OPERATIONS = frozenset(
    {
        "execute:rm_rf",
        "execute:format",
        "execute:shutdown",
        "credential:export_all",
        "network:tunnel",
        "write:system_file",
    }
)

OPERATION_APPROVAL_LEVELS: dict[str, ApprovalLevel] = {
    # Level 0: read-only, low risk
    "read:moltbook_feed": ApprovalLevel.AUTO,
    "read:moltbook_post": ApprovalLevel.AUTO,
    "read:moltbook_profile": ApprovalLevel.AUTO,
    "write:moltbook_upvote": ApprovalLevel.AUTO,
    "read:config": ApprovalLevel.AUTO,
    "read:status": ApprovalLevel.AUTO,
    # Level 1: approve with context
    "write:moltbook_post": ApprovalLevel.CONTEXT,
    "write:moltbook_comment": ApprovalLevel.CONTEXT,
    "write:moltbook_follow": ApprovalLevel.CONTEXT,
    "read:file_workspace": ApprovalLevel.CONTEXT,
    "network:known_domain": ApprovalLevel.CONTEXT,
    # Level 2: explicit confirmation
    "write:moltbook_dm": ApprovalLevel.CONFIRM,
    "write:file": ApprovalLevel.CONFIRM,
    "network:api_call": ApprovalLevel.CONFIRM,
    "network:unknown_domain": ApprovalLevel.CONFIRM,
    "read:file_sensitive": ApprovalLevel.CONFIRM,
    "execute:skill": ApprovalLevel.CONFIRM,
    # Level 3: blocked unless a human grant covers it
    "execute:shell": ApprovalLevel.BLOCKED,
    "execute:code": ApprovalLevel.BLOCKED,
    "credential:read": ApprovalLevel.BLOCKED,
    "credential:write": ApprovalLevel.BLOCKED,
    "network:external": ApprovalLevel.BLOCKED,
    "write:config": ApprovalLevel.BLOCKED,
    "execute:self_modify": ApprovalLevel.BLOCKED,
}

DEFAULT_APPROVAL_LEVEL = ApprovalLevel.CONFIRM

HALTED_REASON = "System halted; no autonomous execution until resumed by human."
PAUSED_REASON = "Agent execution is paused due to security concern"
INTERNAL_ERROR_REASON = "Internal error during authorization"


def approval_level_for(operation: str) -> ApprovalLevel:
    """Static approval level for an operation key; unknown keys need confirmation."""
    return OPERATION_APPROVAL_LEVELS.get(operation, DEFAULT_APPROVAL_LEVEL)


class ApprovalStatus(StrEnum):
    PENDING = "pending"
    APPROVED = "approved"
    DENIED = "denied"
    EXPIRED = "expired"


class PendingApproval(BaseModel):
    """A request waiting for a human decision."""

    id: str
    request: OperationRequest
    context: SecurityContext
    reason: str
    created_at: datetime
    expires_at: datetime
    status: ApprovalStatus = ApprovalStatus.PENDING
    resolved_by: str | None = None
    resolved_at: datetime | None = None
    deny_reason: str | None = None


class EngineStats(BaseModel):
    """Decision totals over the last 24 hours."""

    total_operations: int
    allowed: int
    blocked: int
    pending_approvals: int
    anomalies: int
    is_paused: bool
    mode: SystemMode


class CredentialVault(Protocol):
    """Opaque keyed-lookup service that runs a callable with a secret."""

    async def execute_with_credential(
        self,
        credential_id: str,
        permission: str,
        executor: Callable[[str], Awaitable[T]],
    ) -> T: ...


class DecisionEngine:
    """Orchestrates every policy layer into one :class:`AuthorizationDecision`."""

    def __init__(
        self,
        *,
        audit: AuditChain,
        detector: AnomalyDetector,
        trust: TrustScorer,
        overrides: OverrideStore,
        permissions: PermissionLedger,
        tasks: TaskSpecStore,
        halt: HaltSwitch,
        activity: ActivityLog,
        sanitizer: ContentSanitizer | None = None,
        risk: RiskClassifier | None = None,
        awareness: AwarenessHook | None = None,
        bus: SecurityEventBus | None = None,
        approval_ttl_minutes: float = 30,
        clock: Clock = utc_now,
    ) -> None:
        self.audit = audit
        self.detector = detector
        self.trust = trust
        self.overrides = overrides
        self.permissions = permissions
        self.tasks = tasks
        self.halt_switch = halt
        self.activity = activity
        self.sanitizer = sanitizer or ContentSanitizer()
        self.risk = risk
        self.awareness = awareness or AllowAllAwareness()
        self._bus = bus
        self._approval_ttl = timedelta(minutes=approval_ttl_minutes)
        self._clock = clock
        self._approvals: dict[str, PendingApproval] = {}

    # ── Authorization ───────────────────────────────────────────

    async def check_operation(
        self, request: OperationRequest, context: SecurityContext
    ) -> AuthorizationDecision:
        """Run the full pipeline. Never raises; every outcome is audited."""
        try:
            decision = (await self._evaluate(request, context)).normalize()
            if decision.allowed:
                await self._consume_permission(request, decision)
        except Exception:
            logger.exception("Unexpected error while authorizing %s", request.key)
            decision = AuthorizationDecision(
                allowed=False,
                reason=INTERNAL_ERROR_REASON,
                approval_level=approval_level_for(request.key),
            )

        decision.normalize()
        await self._record_decision(request, context, decision)
        return decision

    async def _evaluate(
        self, request: OperationRequest, context: SecurityContext
    ) -> AuthorizationDecision:
        key = request.key
        decision = AuthorizationDecision()

        mode = await self.halt_switch.mode()
        if mode == SystemMode.HALTED:
            return decision.block(HALTED_REASON)

        if self.detector.is_paused():
            return decision.block(PAUSED_REASON)

        if key in BLOCKED_OPERATIONS:
            decision.approval_level = ApprovalLevel.BLOCKED
            return decision.block(f'Operation "{key}" is permanently blocked')

        awareness = await self.awareness.check(request, context)
        decision.awareness = awareness
        if not awareness.allowed:
            return decision.block(awareness.reason or "Awareness check disallowed")

        verdict = await self.tasks.check_operation(context.subject, key)
        if not verdict.allowed:
            return decision.block(verdict.reason or f'Operation "{key}" violates task constraints')
        if verdict.degraded:
            decision.warnings.append(verdict.reason or "Task constraints unavailable")

        # A human must decide; trust and allow overrides cannot clear this
        pinned = awareness.requires_human or verdict.degraded or mode == SystemMode.SUPERVISED

        level = approval_level_for(key)
        decision.approval_level = level
        decision.requires_approval = level >= ApprovalLevel.CONFIRM or pinned

        override = await self.overrides.resolve(key, request.target, context.agent_id)
        if override is not None:
            if override.action == "block":
                return decision.block(override.reason or f'Operation "{key}" blocked by override')
            if override.action == "ask":
                pinned = True
                decision.requires_approval = True
            elif override.action == "allow" and level in (ApprovalLevel.CONTEXT, ApprovalLevel.CONFIRM):
                decision.requires_approval = pinned
        static_requires_approval = decision.requires_approval

        if level == ApprovalLevel.BLOCKED:
            grant = await self.permissions.check(
                context.subject, key, request.target, consume=False
            )
            if not grant.granted or grant.permission is None:
                return decision.block(f'Operation "{key}" is blocked by security policy')
            decision.permission_id = grant.permission.id
            decision.requires_approval = pinned
        elif decision.requires_approval and not pinned:
            if await self.trust.should_auto_approve(key, request.target, context.agent_id):
                logger.debug("Trust cleared approval for %s", key)
                decision.requires_approval = False
            else:
                grant = await self.permissions.check(
                    context.subject, key, request.target, consume=False
                )
                if grant.granted and grant.permission is not None:
                    decision.permission_id = grant.permission.id
                    decision.requires_approval = False

        if request.content:
            if self.risk is not None:
                blocked = await self._apply_risk(
                    self.risk, request.content, decision, static_requires_approval
                )
                if blocked:
                    return decision

            if self._inspect_content(request.content, request, context, decision):
                return decision

            if request.category == OperationCategory.WRITE and self._check_leaks(
                request.content, request, context, decision
            ):
                return decision

        if request.category == OperationCategory.NETWORK and request.target:
            method = str(request.metadata.get("method") or "GET")
            anomaly = self.detector.check_network_request(request.target, method)
            if anomaly is not None and self._apply_anomaly(anomaly, decision):
                return decision

        if request.target and ("file" in request.action or request.category == OperationCategory.READ):
            anomaly = self.detector.check_file_access(request.target)
            if anomaly is not None and self._apply_anomaly(anomaly, decision):
                return decision

        self.detector.log_activity(
            request.action,
            {"category": request.category.value, "target": request.target, "source": context.source.value},
        )
        anomaly = self.detector.check_rate_anomaly(request.action)
        if anomaly is not None:
            await self._log_activity(
                RateSpikeEntry(
                    timestamp=self._clock(),
                    metric=request.action,
                    value=float(anomaly.context.get("count", 0)),
                    baseline=float(anomaly.context.get("baseline", 0)),
                    operator_id=context.user_id,
                )
            )
            if self._apply_anomaly(anomaly, decision):
                return decision

        return decision

    async def _consume_permission(self, request: OperationRequest, decision: AuthorizationDecision) -> None:
        """Use the grant that cleared an allowed decision.

        Grants are only looked up during evaluation, so a later block never
        spends a use. A grant that lapsed in between no longer lifts anything.
        """
        permission_id = decision.permission_id
        if permission_id is None or await self.permissions.consume(permission_id):
            return
        decision.permission_id = None
        if decision.approval_level == ApprovalLevel.BLOCKED:
            decision.block(f'Operation "{request.key}" is blocked by security policy')
        else:
            decision.requires_approval = True

    @staticmethod
    async def _apply_risk(
        risk: RiskClassifier,
        content: str,
        decision: AuthorizationDecision,
        static_requires_approval: bool,
    ) -> bool:
        """Fold the classifier verdict into ``decision``; returns True when it blocked."""
        try:
            verdict = await risk.analyze(content)
        except RiskAnalysisError as exc:
            logger.warning("Risk analysis failed, falling back to static policy: %s", exc)
            decision.warnings.append("Risk analysis unavailable; static approval policy applied")
            decision.requires_approval = decision.requires_approval or static_requires_approval
            return False

        if verdict.reasoning:
            decision.warnings.append(f"Risk: {verdict.reasoning}")
        if verdict.risk_level == RiskLevel.CRITICAL:
            decision.block(f"Content rated critical risk: {verdict.reasoning or 'no reasoning given'}")
            return True
        if verdict.requires_approval:
            decision.requires_approval = True
        return False

    def _inspect_content(
        self,
        content: str,
        request: OperationRequest,
        context: SecurityContext,
        decision: AuthorizationDecision,
    ) -> bool:
        result = self.sanitizer.sanitize_incoming(content, context.source.value)
        critical = result.critical_threats
        for threat in critical:
            decision.anomalies.append(
                self.detector.record_anomaly(
                    AnomalyType.INJECTION_ATTEMPT,
                    Severity.CRITICAL,
                    context.source.value,
                    f"Prompt injection detected: {threat.description}",
                    {"operation": request.key, "threat_type": threat.type, "position": threat.position},
                    AnomalyAction.BLOCKED,
                )
            )
        if critical:
            types = ", ".join(sorted({t.type for t in critical}))
            decision.block(f"Content contains critical security threats: {types}")
            return True
        if result.threats:
            types = ", ".join(sorted({t.type for t in result.threats}))
            decision.warnings.append(f"Content contains potential security concerns: {types}")
        if result.sanitized != content:
            decision.sanitized_content = result.sanitized

        for anomaly in self.detector.check_content(content, context.source.value):
            if self._apply_anomaly(anomaly, decision):
                return True
        return False

    def _check_leaks(
        self,
        content: str,
        request: OperationRequest,
        context: SecurityContext,
        decision: AuthorizationDecision,
    ) -> bool:
        scan = self.sanitizer.sanitize_outgoing(content)
        if scan.safe:
            return False
        decision.sanitized_content = scan.sanitized
        decision.anomalies.append(
            self.detector.record_anomaly(
                AnomalyType.CREDENTIAL_EXPOSURE,
                Severity.CRITICAL,
                context.source.value,
                f"Outgoing content would leak credentials: {', '.join(scan.leaks)}",
                {"operation": request.key, "target": request.target, "leaks": scan.leaks},
                AnomalyAction.BLOCKED,
            )
        )
        decision.block(f"Content would leak credentials: {', '.join(scan.leaks)}")
        return True

    @staticmethod
    def _apply_anomaly(anomaly: AnomalyEvent, decision: AuthorizationDecision) -> bool:
        decision.anomalies.append(anomaly)
        if anomaly.is_blocking:
            decision.block(anomaly.description)
            return True
        decision.warnings.append(anomaly.description)
        return False

    async def _record_decision(
        self, request: OperationRequest, context: SecurityContext, decision: AuthorizationDecision
    ) -> None:
        result = AuditResult.ALLOWED if decision.allowed else AuditResult.BLOCKED
        await self._audit(
            AuditEventType.OPERATION_CHECK,
            result,
            request,
            context,
            reason=decision.reason,
            metadata={
                "session_id": context.session_id,
                "approval_level": int(decision.approval_level),
                "requires_approval": decision.requires_approval,
                "permission_id": decision.permission_id,
                "warnings": decision.warnings,
                "anomalies": [a.id for a in decision.anomalies],
            },
        )

        now = self._clock()
        target = request.target or ""
        entry: ActivityEntry
        if decision.allowed:
            entry = OperationAllowedEntry(
                timestamp=now, operation=request.key, target=target, operator_id=context.user_id
            )
        else:
            entry = OperationBlockedEntry(
                timestamp=now,
                operation=request.key,
                target=target,
                reason=decision.reason or "blocked",
                operator_id=context.user_id,
            )
        await self._log_activity(entry)
        for anomaly in decision.anomalies:
            await self._log_activity(
                AnomalyDetectedEntry(
                    timestamp=now,
                    anomaly_type=anomaly.type.value,
                    severity=anomaly.severity.value,
                    operator_id=context.user_id,
                )
            )

    async def _audit(
        self,
        event: AuditEventType,
        result: AuditResult,
        request: OperationRequest,
        context: SecurityContext,
        *,
        reason: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        try:
            await self.audit.append(
                event,
                result=result,
                operation=request.key,
                target=request.target,
                user_id=context.user_id,
                agent_id=context.agent_id,
                source=context.source.value,
                reason=reason,
                metadata=metadata,
            )
        except WardenError:
            logger.exception("Failed to audit %s for %s", event, request.key)

    async def _log_activity(self, entry: ActivityEntry) -> None:
        try:
            await self.activity.append(entry)
        except WardenError:
            logger.exception("Failed to append %s to the activity log", entry.type)

    # ── Approval workflow ───────────────────────────────────────

    async def request_approval(
        self, request: OperationRequest, context: SecurityContext, reason: str
    ) -> PendingApproval:
        now = self._clock()
        approval = PendingApproval(
            id=f"approval-{uuid4().hex[:12]}",
            request=request,
            context=context,
            reason=reason,
            created_at=now,
            expires_at=now + self._approval_ttl,
        )
        self._approvals[approval.id] = approval
        logger.info("Approval %s requested for %s: %s", approval.id, request.key, reason)
        self._publish(
            SecurityEventKind.APPROVAL_REQUESTED,
            approval_id=approval.id,
            operation=request.key,
            target=request.target,
            agent_id=context.agent_id,
            reason=reason,
        )
        return approval

    async def approve(self, approval_id: str, approved_by: str) -> bool:
        """Approve a pending request. Returns ``False`` if it is unknown, resolved or expired."""
        approval = self._approvals.get(approval_id)
        if approval is None or approval.status != ApprovalStatus.PENDING:
            return False

        now = self._clock()
        if now > approval.expires_at:
            approval.status = ApprovalStatus.EXPIRED
            await self._audit(
                AuditEventType.APPROVAL_EXPIRED,
                AuditResult.EXPIRED,
                approval.request,
                approval.context,
                reason="Approval window elapsed",
                metadata={"approval_id": approval_id},
            )
            return False

        approval.status = ApprovalStatus.APPROVED
        approval.resolved_by = approved_by
        approval.resolved_at = now
        await self._audit(
            AuditEventType.APPROVAL_GRANTED,
            AuditResult.APPROVED,
            approval.request,
            approval.context,
            reason=f"Approved by {approved_by}",
            metadata={"approval_id": approval_id},
        )
        await self._log_activity(
            OperationApprovedEntry(
                timestamp=now,
                operation=approval.request.key,
                target=approval.request.target or "",
                approved_by=approved_by,
                operator_id=approval.context.user_id,
            )
        )
        self._publish(
            SecurityEventKind.APPROVAL_RESOLVED,
            approval_id=approval_id,
            status=approval.status.value,
            resolved_by=approved_by,
        )
        return True

    async def deny(self, approval_id: str, denied_by: str, reason: str | None = None) -> bool:
        approval = self._approvals.get(approval_id)
        if approval is None or approval.status != ApprovalStatus.PENDING:
            return False

        now = self._clock()
        approval.status = ApprovalStatus.DENIED
        approval.resolved_by = denied_by
        approval.resolved_at = now
        approval.deny_reason = reason
        await self._audit(
            AuditEventType.APPROVAL_DENIED,
            AuditResult.DENIED,
            approval.request,
            approval.context,
            reason=f"Denied by {denied_by}: {reason or ''}",
            metadata={"approval_id": approval_id},
        )
        await self._log_activity(
            OperationBlockedEntry(
                timestamp=now,
                operation=approval.request.key,
                target=approval.request.target or "",
                reason=reason or "denied",
                operator_id=approval.context.user_id,
            )
        )
        self._publish(
            SecurityEventKind.APPROVAL_RESOLVED,
            approval_id=approval_id,
            status=approval.status.value,
            resolved_by=denied_by,
        )
        return True

    def is_approved(self, approval_id: str) -> bool:
        approval = self._approvals.get(approval_id)
        return approval is not None and approval.status == ApprovalStatus.APPROVED

    def get_approval(self, approval_id: str) -> PendingApproval | None:
        return self._approvals.get(approval_id)

    def pending_approvals(self) -> list[PendingApproval]:
        now = self._clock()
        return [
            a
            for a in self._approvals.values()
            if a.status == ApprovalStatus.PENDING and a.expires_at > now
        ]

    # ── Outcomes and execution ──────────────────────────────────

    async def record_outcome(
        self,
        request: OperationRequest,
        context: SecurityContext,
        success: bool,
        spec_id: str | None = None,
    ) -> None:
        """Feed an execution result back into trust, the audit chain and the task log."""
        if spec_id is not None:
            await self.tasks.log_execution(
                spec_id,
                request.key,
                ExecutionResult.SUCCESS if success else ExecutionResult.FAILURE,
            )

        if success:
            await self.trust.record_success(request.key, request.target, context.agent_id)
        else:
            await self.trust.record_failure(request.key, request.target, context.agent_id)

        await self._audit(
            AuditEventType.OPERATION_EXECUTE,
            AuditResult.ALLOWED if success else AuditResult.DENIED,
            request,
            context,
            reason=None if success else "Execution failed",
            metadata={"success": success, "spec_id": spec_id},
        )

    async def execute_with_credential(
        self,
        credential_id: str,
        request: OperationRequest,
        context: SecurityContext,
        executor: Callable[[str], Awaitable[T]],
        vault: CredentialVault,
        *,
        permission: str = "read",
        approval_id: str | None = None,
    ) -> T:
        """Authorize ``credential:use`` and only then let the vault run ``executor``.

        Raises ``OperationBlockedError`` if the check blocks, or if it requires
        approval and ``approval_id`` does not name an approved request.
        """
        check_request = request.model_copy(
            update={"category": OperationCategory.CREDENTIAL, "action": "use"}
        )
        decision = await self.check_operation(check_request, context)
        if not decision.allowed:
            raise OperationBlockedError(decision.reason or "blocked")
        if decision.requires_approval and not (approval_id and self.is_approved(approval_id)):
            raise OperationBlockedError(f'Approval required for "{check_request.key}"')
        return await vault.execute_with_credential(credential_id, permission, executor)

    # ── Operator controls ───────────────────────────────────────

    async def pause(self, paused_by: str, reason: str = "Paused by operator") -> None:
        self.detector.pause(reason)
        await self._audit_system(AuditEventType.AGENT_PAUSED, "agent:pause", paused_by, reason)

    async def resume(self, resumed_by: str) -> None:
        self.detector.resume()
        await self._audit_system(AuditEventType.AGENT_RESUMED, "agent:resume", resumed_by, None)

    async def halt(self, halted_by: str, reason: str) -> SystemState:
        state = await self.halt_switch.halt(halted_by, reason)
        await self._audit_system(AuditEventType.SYSTEM_EVENT, "system:halt", halted_by, reason)
        self._publish(SecurityEventKind.SYSTEM_HALTED, halted_by=halted_by, reason=reason)
        return state

    async def resume_system(self, resumed_by: str, mode: SystemMode = SystemMode.ACTIVE) -> SystemState:
        state = await self.halt_switch.resume(mode)
        await self._audit_system(
            AuditEventType.SYSTEM_EVENT, "system:resume", resumed_by, f"Resumed in {mode} mode"
        )
        self._publish(SecurityEventKind.SYSTEM_RESUMED, resumed_by=resumed_by, mode=mode.value)
        return state

    async def _audit_system(
        self, event: AuditEventType, operation: str, user_id: str, reason: str | None
    ) -> None:
        try:
            await self.audit.append(
                event, result=AuditResult.SYSTEM, operation=operation, user_id=user_id, reason=reason
            )
        except WardenError:
            logger.exception("Failed to audit %s", operation)

    # ── Stats ───────────────────────────────────────────────────

    async def stats(self) -> EngineStats:
        since = self._clock() - timedelta(hours=24)
        allowed = blocked = 0
        for entry in await self.activity.query(since=since):
            if entry.type == ActivityType.OPERATION_ALLOWED:
                allowed += 1
            elif entry.type == ActivityType.OPERATION_BLOCKED:
                blocked += 1
        return EngineStats(
            total_operations=allowed + blocked,
            allowed=allowed,
            blocked=blocked,
            pending_approvals=len(self.pending_approvals()),
            anomalies=len(self.detector.events(since)),
            is_paused=self.detector.is_paused(),
            mode=await self.halt_switch.mode(),
        )

    def _publish(self, kind: SecurityEventKind, **payload: Any) -> None:
        if self._bus is not None:
            self._bus.emit(kind, **payload)
