"""Rolling operational log feeding the learning-suggestion and report layers.

Entries are typed by ``type`` and stored one JSON object per line through the
store's ``append`` primitive. Unlike the audit chain this log carries no
integrity guarantees and unreadable lines are skipped.
"""

from __future__ import annotations

import logging
from datetime import datetime
from enum import StrEnum
from typing import TYPE_CHECKING, Annotated, Literal

from pydantic import BaseModel, Field, TypeAdapter, ValidationError

if TYPE_CHECKING:
    from agent_warden.storage import KeyValueStore

logger = logging.getLogger(__name__)

ACTIVITY_LOG_KEY = "activity-log"


class ActivityType(StrEnum):
    OPERATION_ALLOWED = "operation_allowed"
    OPERATION_BLOCKED = "operation_blocked"
    OPERATION_APPROVED = "operation_approved"
    ANOMALY_DETECTED = "anomaly_detected"
    RATE_SPIKE = "rate_spike"


class _ActivityBase(BaseModel):
    timestamp: datetime
    operator_id: str | None = None


class OperationAllowedEntry(_ActivityBase):
    type: Literal["operation_allowed"] = "operation_allowed"
    operation: str
    target: str = ""


class OperationBlockedEntry(_ActivityBase):
    type: Literal["operation_blocked"] = "operation_blocked"
    operation: str
    target: str = ""
    reason: str


class OperationApprovedEntry(_ActivityBase):
    type: Literal["operation_approved"] = "operation_approved"
    operation: str
    target: str = ""
    approved_by: str


class AnomalyDetectedEntry(_ActivityBase):
    type: Literal["anomaly_detected"] = "anomaly_detected"
    anomaly_type: str
    severity: str


class RateSpikeEntry(_ActivityBase):
    type: Literal["rate_spike"] = "rate_spike"
    metric: str
    value: float
    baseline: float


ActivityEntry = Annotated[
    OperationAllowedEntry
    | OperationBlockedEntry
    | OperationApprovedEntry
    | AnomalyDetectedEntry
    | RateSpikeEntry,
    Field(discriminator="type"),
]

activity_adapter: TypeAdapter[ActivityEntry] = TypeAdapter(ActivityEntry)


class ActivityLog:
    """Append-only typed log under ``activity-log``."""

    def __init__(self, store: KeyValueStore, *, log_key: str = ACTIVITY_LOG_KEY) -> None:
        self._store = store
        self._log_key = log_key

    async def append(self, entry: ActivityEntry) -> None:
        await self._store.append(self._log_key, entry.model_dump_json())

    async def query(
        self,
        *,
        since: datetime | None = None,
        until: datetime | None = None,
        type: ActivityType | None = None,  # noqa: A002
        limit: int = 10000,
    ) -> list[ActivityEntry]:
        """Entries in append order, filtered by window and type, newest ``limit`` kept."""
        entries: list[ActivityEntry] = []
        for line in await self._store.read_lines(self._log_key):
            try:
                entry = activity_adapter.validate_json(line)
            except ValidationError:
                logger.debug("Skipping unreadable activity line")
                continue
            if since is not None and entry.timestamp < since:
                continue
            if until is not None and entry.timestamp > until:
                continue
            if type is not None and entry.type != type:
                continue
            entries.append(entry)
        return entries[-limit:] if limit > 0 else []

    async def read_recent(self, limit: int = 50) -> list[ActivityEntry]:
        """Most recent entries, newest first."""
        return list(reversed(await self.query(limit=limit)))
