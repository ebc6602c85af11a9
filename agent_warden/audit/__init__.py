"""Tamper-evident audit trail."""

from agent_warden.audit.chain import AUDIT_LOG_KEY, AuditChain
from agent_warden.audit.models import (
    AuditEntry,
    AuditEventType,
    AuditResult,
    AuditStats,
    ChainVerification,
)
from agent_warden.audit.webhook import WebhookForwarder

__all__ = [
    "AUDIT_LOG_KEY",
    "AuditChain",
    "AuditEntry",
    "AuditEventType",
    "AuditResult",
    "AuditStats",
    "ChainVerification",
    "WebhookForwarder",
]
