"""Audit chain data models and the canonical hashing scheme."""

from __future__ import annotations

import hashlib
import json
from datetime import datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field

GENESIS_HASH = "0"

# Field order is irrelevant to the digest (keys are sorted) but the set is
# fixed: a stored line with extra or missing keys fails verification.
ENTRY_FIELDS = (
    "seq",
    "timestamp",
    "prev_hash",
    "event",
    "result",
    "operation",
    "target",
    "user_id",
    "agent_id",
    "source",
    "reason",
    "metadata",
    "hash",
)


class AuditEventType(StrEnum):
    OPERATION_CHECK = "operation_check"
    OPERATION_EXECUTE = "operation_execute"
    APPROVAL_GRANTED = "approval_granted"
    APPROVAL_DENIED = "approval_denied"
    APPROVAL_EXPIRED = "approval_expired"
    ANOMALY_DETECTED = "anomaly_detected"
    AGENT_PAUSED = "agent_paused"
    AGENT_RESUMED = "agent_resumed"
    SPEC_CREATED = "spec_created"
    SPEC_UPDATED = "spec_updated"
    PERMISSION_GRANTED = "permission_granted"
    PERMISSION_REVOKED = "permission_revoked"
    SYSTEM_EVENT = "system_event"


class AuditResult(StrEnum):
    ALLOWED = "allowed"
    BLOCKED = "blocked"
    APPROVED = "approved"
    DENIED = "denied"
    EXPIRED = "expired"
    SYSTEM = "system"


class AuditEntry(BaseModel):
    """One immutable, hash-linked audit record."""

    seq: int
    timestamp: datetime
    prev_hash: str
    event: AuditEventType
    result: AuditResult
    operation: str
    target: str | None = None
    user_id: str | None = None
    agent_id: str | None = None
    source: str | None = None
    reason: str | None = None
    metadata: dict[str, Any] | None = None
    hash: str


class ChainVerification(BaseModel):
    """Outcome of walking the full chain."""

    valid: bool
    count: int
    broken_at_seq: int | None = None
    reason: str | None = None


class AuditStats(BaseModel):
    total_entries: int
    chain_valid: bool
    broken_at_seq: int | None = None
    last_24h: dict[str, int] = Field(default_factory=dict)


def canonical_json(obj: Any) -> str:
    """Deterministic JSON text: sorted keys, no insignificant whitespace."""
    return json.dumps(obj, sort_keys=True, separators=(",", ":"), default=str)


def compute_hash(body: dict[str, Any]) -> str:
    """SHA-256 over every entry field except ``hash`` itself."""
    hashable = {k: v for k, v in body.items() if k != "hash"}
    return hashlib.sha256(canonical_json(hashable).encode()).hexdigest()
