"""Agent Warden: operation authorization and tamper-evident audit for autonomous agents."""

from agent_warden.engine import DecisionEngine, PendingApproval, approval_level_for
from agent_warden.errors import OperationBlockedError, WardenError
from agent_warden.models import (
    ApprovalLevel,
    AuthorizationDecision,
    ContextSource,
    OperationCategory,
    OperationRequest,
    SecurityContext,
)
from agent_warden.runtime import Warden, build_warden
from agent_warden.storage import FileStore, KeyValueStore, MemoryStore

__all__ = [
    "ApprovalLevel",
    "AuthorizationDecision",
    "ContextSource",
    "DecisionEngine",
    "FileStore",
    "KeyValueStore",
    "MemoryStore",
    "OperationBlockedError",
    "OperationCategory",
    "OperationRequest",
    "PendingApproval",
    "SecurityContext",
    "Warden",
    "WardenError",
    "approval_level_for",
    "build_warden",
]
