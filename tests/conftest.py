"""Shared fixtures: a controllable clock and an in-memory store."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest
from agent_warden.storage import MemoryStore

START = datetime(2025, 6, 1, 12, 0, tzinfo=UTC)


class ManualClock:
    """Clock that only moves when a test advances it."""

    def __init__(self, now: datetime = START) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def store() -> MemoryStore:
    return MemoryStore()
