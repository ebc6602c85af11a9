"""Trust scoring with exponential time decay.

Scores are kept per ``(operation, target, agent)`` key. The weighted score is
never stored; it is recomputed on every read::

    score = successes * decay(days since last success)
            - failure_weight * failures * decay(days since last failure)

    decay(d) = 0.5 ** (d / half_life_days)

An operation with no history never auto-approves, and a failure inside the
recent-incident window vetoes auto-approval regardless of score.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta
from typing import TYPE_CHECKING

from pydantic import BaseModel

from agent_warden.clock import utc_now
from agent_warden.errors import StoreError

if TYPE_CHECKING:
    from agent_warden.clock import Clock
    from agent_warden.storage import KeyValueStore

logger = logging.getLogger(__name__)

TRUST_SCORES_KEY = "trust-scores"
SECONDS_PER_DAY = 86400.0


class TrustScoreEntry(BaseModel):
    """Success/failure counters for one key. Mutated only by recording outcomes."""

    operation: str
    target: str | None = None
    agent_id: str | None = None
    success_count: int = 0
    failure_count: int = 0
    last_success_at: datetime | None = None
    last_failure_at: datetime | None = None


class TrustScoreView(TrustScoreEntry):
    """An entry together with its score as of the time it was read."""

    weighted_score: float


def _key(operation: str, target: str | None, agent_id: str | None) -> str:
    return f"{operation}\t{target or ''}\t{agent_id or ''}"


class TrustScorer:
    """Learned trust per operation, persisted under ``trust-scores``."""

    def __init__(
        self,
        store: KeyValueStore,
        *,
        threshold: float = 5.0,
        recent_incident_hours: float = 24.0,
        half_life_days: float = 30.0,
        failure_weight: float = 3.0,
        clock: Clock = utc_now,
    ) -> None:
        self._store = store
        self.threshold = threshold
        self.recent_incident = timedelta(hours=recent_incident_hours)
        self.half_life_days = half_life_days
        self.failure_weight = failure_weight
        self._clock = clock
        self._entries: dict[str, TrustScoreEntry] | None = None
        self._lock = asyncio.Lock()

    # ── Scoring ─────────────────────────────────────────────────

    def decay(self, days_ago: float) -> float:
        if days_ago <= 0:
            return 1.0
        return 0.5 ** (days_ago / self.half_life_days)

    def weighted_score(self, entry: TrustScoreEntry, now: datetime | None = None) -> float:
        now = now or self._clock()
        score = 0.0
        if entry.success_count and entry.last_success_at is not None:
            days = (now - entry.last_success_at).total_seconds() / SECONDS_PER_DAY
            score += entry.success_count * self.decay(days)
        if entry.failure_count and entry.last_failure_at is not None:
            days = (now - entry.last_failure_at).total_seconds() / SECONDS_PER_DAY
            score -= self.failure_weight * entry.failure_count * self.decay(days)
        return score

    # ── Persistence ─────────────────────────────────────────────

    async def _load(self) -> dict[str, TrustScoreEntry]:
        if self._entries is not None:
            return self._entries
        data = await self._store.get(TRUST_SCORES_KEY) or {}
        entries: dict[str, TrustScoreEntry] = {}
        for raw in data.get("scores", []):
            entry = TrustScoreEntry.model_validate(raw)
            entries[_key(entry.operation, entry.target, entry.agent_id)] = entry
        self._entries = entries
        return entries

    async def _save(self, entries: dict[str, TrustScoreEntry]) -> None:
        await self._store.set(
            TRUST_SCORES_KEY,
            {"version": 1, "scores": [e.model_dump(mode="json") for e in entries.values()]},
        )

    # ── Recording ───────────────────────────────────────────────

    async def record_success(
        self, operation: str, target: str | None = None, agent_id: str | None = None
    ) -> TrustScoreEntry:
        return await self._record(operation, target, agent_id, success=True)

    async def record_failure(
        self, operation: str, target: str | None = None, agent_id: str | None = None
    ) -> TrustScoreEntry:
        return await self._record(operation, target, agent_id, success=False)

    async def _record(
        self, operation: str, target: str | None, agent_id: str | None, *, success: bool
    ) -> TrustScoreEntry:
        async with self._lock:
            entries = await self._load()
            key = _key(operation, target, agent_id)
            entry = entries.get(key) or TrustScoreEntry(
                operation=operation, target=target, agent_id=agent_id
            )
            now = self._clock()
            if success:
                entry = entry.model_copy(
                    update={"success_count": entry.success_count + 1, "last_success_at": now}
                )
            else:
                entry = entry.model_copy(
                    update={"failure_count": entry.failure_count + 1, "last_failure_at": now}
                )
            entries[key] = entry
            await self._save(entries)
        logger.debug(
            "Recorded %s for %s (target=%s, agent=%s)",
            "success" if success else "failure",
            operation,
            target,
            agent_id,
        )
        return entry

    # ── Queries ─────────────────────────────────────────────────

    async def lookup(
        self, operation: str, target: str | None = None, agent_id: str | None = None
    ) -> TrustScoreEntry | None:
        """Most specific entry: exact key, then operation+target, then operation."""
        entries = await self._load()
        for key in (
            _key(operation, target, agent_id),
            _key(operation, target, None),
            _key(operation, None, None),
        ):
            if key in entries:
                return entries[key]
        return None

    async def should_auto_approve(
        self, operation: str, target: str | None = None, agent_id: str | None = None
    ) -> bool:
        try:
            entry = await self.lookup(operation, target, agent_id)
        except StoreError as exc:
            logger.warning("Trust scores unavailable, requiring approval: %s", exc)
            return False
        if entry is None:
            return False

        now = self._clock()
        if self.weighted_score(entry, now) < self.threshold:
            return False
        if entry.last_failure_at is not None and now - entry.last_failure_at < self.recent_incident:
            return False
        return True

    async def scores(self) -> list[TrustScoreView]:
        entries = await self._load()
        now = self._clock()
        return [
            TrustScoreView(**entry.model_dump(), weighted_score=self.weighted_score(entry, now))
            for entry in entries.values()
        ]
