"""In-process security event channel.

Components publish; dashboards and API streams subscribe with their own
queue. Publishing never blocks: a subscriber whose queue is full misses
the event (it is still retained in the bus history).
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

DEFAULT_HISTORY = 500


class SecurityEventKind(StrEnum):
    ANOMALY_DETECTED = "anomaly_detected"
    APPROVAL_REQUESTED = "approval_requested"
    APPROVAL_RESOLVED = "approval_resolved"
    AGENT_PAUSED = "agent_paused"
    AGENT_RESUMED = "agent_resumed"
    SYSTEM_HALTED = "system_halted"
    SYSTEM_RESUMED = "system_resumed"


class SecurityEvent(BaseModel):
    """A notification emitted by one of the pipeline components."""

    kind: SecurityEventKind
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))
    payload: dict[str, Any] = Field(default_factory=dict)


class SecurityEventBus:
    """Fan-out channel with one bounded queue per subscriber."""

    def __init__(self, history: int = DEFAULT_HISTORY) -> None:
        self._subscribers: list[asyncio.Queue[SecurityEvent]] = []
        self._history: deque[SecurityEvent] = deque(maxlen=history)

    def subscribe(self, maxsize: int = 100) -> asyncio.Queue[SecurityEvent]:
        queue: asyncio.Queue[SecurityEvent] = asyncio.Queue(maxsize=maxsize)
        self._subscribers.append(queue)
        return queue

    def unsubscribe(self, queue: asyncio.Queue[SecurityEvent]) -> None:
        if queue in self._subscribers:
            self._subscribers.remove(queue)

    def publish(self, event: SecurityEvent) -> None:
        self._history.append(event)
        for queue in self._subscribers:
            try:
                queue.put_nowait(event)
            except asyncio.QueueFull:
                logger.debug("Subscriber queue full, dropping %s event", event.kind)

    def emit(self, kind: SecurityEventKind, **payload: Any) -> SecurityEvent:
        """Build and publish an event in one call."""
        event = SecurityEvent(kind=kind, payload=payload)
        self.publish(event)
        return event

    def recent(self, limit: int = 50) -> list[SecurityEvent]:
        """Most recent events, newest first."""
        return list(reversed(self._history))[:limit]

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)
