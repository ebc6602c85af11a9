"""Anomaly event and behavioral baseline models."""

from __future__ import annotations

from datetime import UTC, datetime
from enum import StrEnum
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, Field


class AnomalyType(StrEnum):
    """Kinds of anomalous behavior the detector can raise."""

    RATE_SPIKE = "rate_spike"
    UNUSUAL_ACCESS = "unusual_access"
    CREDENTIAL_EXPOSURE = "credential_exposure"
    INJECTION_ATTEMPT = "injection_attempt"
    NETWORK_ANOMALY = "network_anomaly"
    AUTH_FAILURE = "auth_failure"
    POLICY_VIOLATION = "policy_violation"
    BEHAVIORAL_DEVIATION = "behavioral_deviation"
    SELF_MODIFICATION = "self_modification"
    RECURSIVE_PROMPT = "recursive_prompt"
    EXFILTRATION_ATTEMPT = "exfiltration_attempt"
    PRIVILEGE_ESCALATION = "privilege_escalation"


class Severity(StrEnum):
    """Anomaly severity, ordered from least to most severe."""

    INFO = "info"
    WARNING = "warning"
    CRITICAL = "critical"
    EMERGENCY = "emergency"


class AnomalyAction(StrEnum):
    """What the system did in response to an anomaly."""

    LOGGED = "logged"
    WARNED = "warned"
    BLOCKED = "blocked"
    PAUSED = "paused"
    QUARANTINED = "quarantined"


class AnomalyEvent(BaseModel):
    """A single detected anomaly.

    Created once; the only later mutation is clearing ``requires_review``
    when a human marks the event reviewed.
    """

    id: str = Field(default_factory=lambda: f"anomaly-{uuid4().hex[:12]}")
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))
    type: AnomalyType
    severity: Severity
    source: str
    description: str
    context: dict[str, Any] = Field(default_factory=dict)
    action_taken: AnomalyAction = AnomalyAction.LOGGED
    requires_review: bool = False

    @property
    def is_blocking(self) -> bool:
        """Only critical and emergency anomalies block; ``action_taken`` is a record."""
        return self.severity in (Severity.CRITICAL, Severity.EMERGENCY)


class BehavioralBaseline(BaseModel):
    """Learned picture of normal agent behavior.

    ``activity_rates`` holds the expected hourly count per activity type;
    types missing from the map fall back to ``default_rate``.
    """

    activity_rates: dict[str, float] = Field(
        default_factory=lambda: {"post": 2.0, "comment": 5.0, "api_call": 600.0}
    )
    default_rate: float = 10.0
    known_domains: set[str] = Field(
        default_factory=lambda: {"api.anthropic.com", "api.openai.com", "api.github.com"}
    )
    known_path_prefixes: set[str] = Field(default_factory=lambda: {"/home/user/workspace", "/tmp"})
    last_updated_at: datetime | None = None

    def rate_for(self, activity_type: str) -> float:
        return self.activity_rates.get(activity_type, self.default_rate)


class AnomalyConfig(BaseModel):
    """Tunable detector behavior."""

    enabled: bool = True
    auto_block: bool = True
    auto_pause: bool = True
    baseline_window_hours: float = 24.0
    rate_spike_tolerance: float = 3.0
    baseline_alpha: float = 0.1
    baseline_update_interval_minutes: int = 60
