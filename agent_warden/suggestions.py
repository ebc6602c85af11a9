"""Learning loop: suggest guardrail changes from the operational log.

Operations blocked repeatedly for the same target suggest either a safe-path
addition (file targets) or an allow override. Targets approved repeatedly by
a human suggest an allow override. Suggestions are never applied
automatically.
"""

from __future__ import annotations

import logging
import re
from datetime import timedelta
from enum import StrEnum
from typing import TYPE_CHECKING

from pydantic import BaseModel, Field

from agent_warden.activity import ActivityType
from agent_warden.overrides import AllowOverride

if TYPE_CHECKING:
    from agent_warden.activity import ActivityEntry, ActivityLog
    from agent_warden.anomaly.detector import AnomalyDetector
    from agent_warden.clock import Clock
    from agent_warden.overrides import OverrideStore

logger = logging.getLogger(__name__)

BLOCKED_THRESHOLD = 5
APPROVED_THRESHOLD = 5

_UNSAFE_ID_CHARS = re.compile(r"[^a-zA-Z0-9_]")


class SuggestionType(StrEnum):
    ALLOWLIST = "allowlist"
    TRUST = "trust"


class SuggestionPayload(BaseModel):
    path: str | None = None
    operation: str | None = None
    target: str | None = None


class SuggestedRule(BaseModel):
    id: str
    type: SuggestionType
    description: str
    payload: SuggestionPayload = Field(default_factory=SuggestionPayload)


def _suggestion_id(prefix: str, operation: str, target: str) -> str:
    return f"{prefix}-{_UNSAFE_ID_CHARS.sub('_', f'{operation}_{target}')}"


def suggest_guardrails(
    entries: list[ActivityEntry],
    *,
    blocked_threshold: int = BLOCKED_THRESHOLD,
    approved_threshold: int = APPROVED_THRESHOLD,
) -> list[SuggestedRule]:
    """Derive suggestions from typed activity entries."""
    blocked: dict[tuple[str, str], int] = {}
    approved: dict[tuple[str, str], int] = {}
    for entry in entries:
        if entry.type == ActivityType.OPERATION_BLOCKED:
            key = (entry.operation, entry.target)
            blocked[key] = blocked.get(key, 0) + 1
        elif entry.type == ActivityType.OPERATION_APPROVED:
            key = (entry.operation, entry.target)
            approved[key] = approved.get(key, 0) + 1

    suggestions: list[SuggestedRule] = []
    seen: set[str] = set()

    for (operation, target), count in blocked.items():
        if count < blocked_threshold:
            continue
        suggestion_id = _suggestion_id("allow", operation, target)
        if suggestion_id in seen:
            continue
        seen.add(suggestion_id)
        if "file" in operation or target.startswith("/"):
            suggestions.append(
                SuggestedRule(
                    id=suggestion_id,
                    type=SuggestionType.ALLOWLIST,
                    description=f'Agent frequently accessed "{target}" (blocked {count} times). '
                    "Add to safe paths?",
                    payload=SuggestionPayload(path=target),
                )
            )
        else:
            suggestions.append(
                SuggestedRule(
                    id=suggestion_id,
                    type=SuggestionType.TRUST,
                    description=f'Operation "{operation}" on "{target}" blocked {count} times. '
                    "Always allow for this target?",
                    payload=SuggestionPayload(operation=operation, target=target or None),
                )
            )

    for (operation, target), count in approved.items():
        if count < approved_threshold or not target:
            continue
        suggestion_id = _suggestion_id("trust", operation, target)
        if suggestion_id in seen:
            continue
        seen.add(suggestion_id)
        suggestions.append(
            SuggestedRule(
                id=suggestion_id,
                type=SuggestionType.TRUST,
                description=f'You frequently engage with "{target}" ({count} approvals). '
                "Auto-approve interactions?",
                payload=SuggestionPayload(operation=operation, target=target),
            )
        )

    return suggestions


async def suggested_guardrails(
    activity: ActivityLog, clock: Clock, hours: float = 24
) -> list[SuggestedRule]:
    """Suggestions from the last ``hours`` of the operational log."""
    entries = await activity.query(since=clock() - timedelta(hours=hours))
    return suggest_guardrails(entries)


async def apply_suggestion(
    suggestion: SuggestedRule,
    *,
    detector: AnomalyDetector,
    overrides: OverrideStore,
) -> bool:
    """Apply a suggestion. Returns ``False`` if its payload is incomplete."""
    if suggestion.type == SuggestionType.ALLOWLIST and suggestion.payload.path:
        detector.add_known_path(suggestion.payload.path)
        logger.info("Applied suggestion %s: safe path %s", suggestion.id, suggestion.payload.path)
        return True
    if suggestion.type == SuggestionType.TRUST and suggestion.payload.operation:
        await overrides.add(
            AllowOverride(
                operation=suggestion.payload.operation,
                target=suggestion.payload.target,
                reason=f"Applied from suggestion: {suggestion.description}",
            )
        )
        logger.info("Applied suggestion %s: allow override", suggestion.id)
        return True
    return False
