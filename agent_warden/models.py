"""Request, caller-context and decision models shared across the pipeline."""

from __future__ import annotations

from enum import IntEnum, StrEnum
from typing import Any

from pydantic import BaseModel, Field

from agent_warden.anomaly.models import AnomalyEvent, Severity


class OperationCategory(StrEnum):
    """Broad class of an agent action."""

    READ = "read"
    WRITE = "write"
    EXECUTE = "execute"
    NETWORK = "network"
    CREDENTIAL = "credential"


class ContextSource(StrEnum):
    """Where an operation request originated."""

    MANUAL = "manual"
    API = "api"
    AUTOPILOT = "autopilot"
    CRON = "cron"
    SOCIAL = "social"


class ApprovalLevel(IntEnum):
    """How much human involvement an operation nominally requires."""

    AUTO = 0          # read-only, low risk
    CONTEXT = 1       # approve with context
    CONFIRM = 2       # explicit confirmation
    BLOCKED = 3       # blocked by default, liftable only by a human grant


class OperationRequest(BaseModel):
    """An action an agent wants to take. Constructed per call, never persisted."""

    category: OperationCategory
    action: str
    target: str | None = None
    content: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def key(self) -> str:
        """Operation key in ``category:action`` form."""
        return f"{self.category.value}:{self.action}"


class SecurityContext(BaseModel):
    """Identity of the caller requesting an operation."""

    user_id: str
    agent_id: str
    session_id: str
    source: ContextSource = ContextSource.API
    subject_id: str | None = None
    ip_address: str | None = None
    user_agent: str | None = None

    @property
    def subject(self) -> str:
        """Subject that timed permissions and task specs are keyed by."""
        return self.subject_id or self.agent_id


class AwarenessResult(BaseModel):
    """Verdict of the governance awareness hook."""

    allowed: bool = True
    requires_human: bool = False
    reason: str | None = None


class AuthorizationDecision(BaseModel):
    """Output of the authorization pipeline."""

    allowed: bool = True
    reason: str | None = None
    warnings: list[str] = Field(default_factory=list)
    anomalies: list[AnomalyEvent] = Field(default_factory=list)
    requires_approval: bool = False
    approval_level: ApprovalLevel = ApprovalLevel.AUTO
    sanitized_content: str | None = None
    awareness: AwarenessResult | None = None
    permission_id: str | None = None

    def block(self, reason: str) -> AuthorizationDecision:
        """Mark the decision as a definitive block."""
        self.allowed = False
        self.reason = reason
        return self

    def normalize(self) -> AuthorizationDecision:
        """Enforce the decision invariants.

        A blocked decision always carries a reason, and a decision carrying a
        critical or emergency anomaly is never allowed.
        """
        severe = [a for a in self.anomalies if a.severity in (Severity.CRITICAL, Severity.EMERGENCY)]
        if severe and self.allowed:
            self.block("; ".join(a.description for a in severe))
        if not self.allowed and not self.reason:
            self.reason = "Operation blocked by security policy"
        return self
