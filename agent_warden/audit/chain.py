"""Append-only, hash-chained audit log.

Each stored line is the canonical JSON of one entry. ``entry[i].prev_hash``
is ``entry[i-1].hash`` and the genesis entry links to ``"0"``, so any edit to
history is detectable by :meth:`AuditChain.verify`. There is no update or
delete operation, and a broken chain is only ever reported, never repaired.
"""

from __future__ import annotations

import asyncio
import hashlib
import json
import logging
from datetime import timedelta
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from agent_warden.audit.models import (
    ENTRY_FIELDS,
    GENESIS_HASH,
    AuditEntry,
    AuditEventType,
    AuditResult,
    AuditStats,
    ChainVerification,
    canonical_json,
    compute_hash,
)
from agent_warden.clock import utc_now
from agent_warden.errors import ChainIntegrityError
from agent_warden.storage import AUDIT_PREFIX

if TYPE_CHECKING:
    from agent_warden.audit.webhook import WebhookForwarder
    from agent_warden.clock import Clock
    from agent_warden.storage import KeyValueStore

logger = logging.getLogger(__name__)

AUDIT_LOG_KEY = f"{AUDIT_PREFIX}audit-chain"


class AuditChain:
    """Tamper-evident audit trail over a key-value store log."""

    def __init__(
        self,
        store: KeyValueStore,
        *,
        forwarder: WebhookForwarder | None = None,
        clock: Clock = utc_now,
        log_key: str = AUDIT_LOG_KEY,
    ) -> None:
        self._store = store
        self._forwarder = forwarder
        self._clock = clock
        self._log_key = log_key
        # Appends are serialized: seq and prev_hash are only valid under a
        # total order.
        self._lock = asyncio.Lock()
        self._tail: tuple[int, str] | None = None

    async def append(
        self,
        event: AuditEventType,
        *,
        result: AuditResult,
        operation: str,
        target: str | None = None,
        user_id: str | None = None,
        agent_id: str | None = None,
        source: str | None = None,
        reason: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> AuditEntry:
        """Append one entry and return it. This is the only write operation."""
        async with self._lock:
            last_seq, prev_hash = await self._load_tail()
            body: dict[str, Any] = {
                "seq": last_seq + 1,
                "timestamp": self._clock().isoformat(),
                "prev_hash": prev_hash,
                "event": event.value,
                "result": result.value,
                "operation": operation,
                "target": target,
                "user_id": user_id,
                "agent_id": agent_id,
                "source": source,
                "reason": reason,
                "metadata": metadata,
            }
            # Normalize metadata to its JSON form so the stored line re-hashes
            # identically when verified.
            body = json.loads(canonical_json(body))
            body["hash"] = compute_hash(body)
            await self._store.append(self._log_key, canonical_json(body))
            self._tail = (body["seq"], body["hash"])

        if self._forwarder is not None:
            self._forwarder.forward(body)
        return AuditEntry.model_validate(body)

    async def _load_tail(self) -> tuple[int, str]:
        if self._tail is not None:
            return self._tail

        lines = await self._store.read_lines(self._log_key)
        if not lines:
            return -1, GENESIS_HASH

        raw = lines[-1]
        try:
            last = json.loads(raw)
            return len(lines) - 1, str(last["hash"])
        except (ValueError, KeyError, TypeError):
            # Keep appending after a corrupt tail; verify() will still report it
            logger.error("Audit chain tail is unreadable; continuing from line %d", len(lines))
            return len(lines) - 1, hashlib.sha256(raw.encode()).hexdigest()

    async def verify(self) -> ChainVerification:
        """Walk the full log recomputing hashes and links."""
        lines = await self._store.read_lines(self._log_key)
        prev_hash = GENESIS_HASH

        for i, line in enumerate(lines):
            try:
                body = json.loads(line)
            except ValueError:
                return self._broken(len(lines), i, f"Entry at seq {i} is not valid JSON")

            if not isinstance(body, dict) or set(body) != set(ENTRY_FIELDS):
                return self._broken(len(lines), i, f"Entry at seq {i} has an unexpected field set")
            if canonical_json(body) != line:
                return self._broken(len(lines), i, f"Entry at seq {i} is not in canonical form")
            if body["seq"] != i:
                return self._broken(len(lines), i, f"Expected seq {i}, got {body['seq']}")
            if body["prev_hash"] != prev_hash:
                return self._broken(len(lines), i, f"Chain broken: prev_hash mismatch at seq {i}")
            if compute_hash(body) != body["hash"]:
                return self._broken(len(lines), i, f"Hash mismatch at seq {i}: entry tampered")

            prev_hash = body["hash"]

        return ChainVerification(valid=True, count=len(lines))

    @staticmethod
    def _broken(count: int, seq: int, reason: str) -> ChainVerification:
        logger.critical("Audit chain verification failed: %s", reason)
        return ChainVerification(valid=False, count=count, broken_at_seq=seq, reason=reason)

    async def verify_or_raise(self) -> int:
        """Verify the chain, raising ``ChainIntegrityError`` if it is broken."""
        verification = await self.verify()
        if not verification.valid:
            raise ChainIntegrityError(
                verification.reason or "Audit chain broken",
                broken_at_seq=verification.broken_at_seq or 0,
            )
        return verification.count

    async def read_recent(self, limit: int = 50) -> list[AuditEntry]:
        """Most recent entries, newest first. Unparseable lines are skipped."""
        lines = await self._store.read_lines(self._log_key)
        entries: list[AuditEntry] = []
        for line in reversed(lines[-limit:] if limit > 0 else []):
            try:
                entries.append(AuditEntry.model_validate_json(line))
            except ValidationError:
                logger.warning("Skipping unreadable audit line")
        return entries

    async def stats(self) -> AuditStats:
        """Totals, validity and per-result counts over the last 24 hours."""
        verification = await self.verify()
        cutoff = self._clock() - timedelta(hours=24)
        counts = {result.value: 0 for result in AuditResult}
        for entry in await self.read_recent(500):
            if entry.timestamp > cutoff:
                counts[entry.result.value] += 1
        return AuditStats(
            total_entries=verification.count,
            chain_valid=verification.valid,
            broken_at_seq=verification.broken_at_seq,
            last_24h=counts,
        )
