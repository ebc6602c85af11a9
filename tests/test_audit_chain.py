"""Tests for the hash-chained audit log."""

import asyncio
import json
from pathlib import Path
from typing import Any

import httpx
import pytest
from agent_warden.audit import AUDIT_LOG_KEY, AuditChain, AuditEventType, AuditResult
from agent_warden.audit.models import GENESIS_HASH, canonical_json, compute_hash
from agent_warden.audit.webhook import WebhookForwarder
from agent_warden.errors import ChainIntegrityError
from agent_warden.storage import FileStore, MemoryStore


async def _fill(chain: AuditChain, n: int) -> None:
    for i in range(n):
        await chain.append(
            AuditEventType.OPERATION_CHECK,
            result=AuditResult.ALLOWED,
            operation="read:file",
            target=f"/tmp/{i}",
            metadata={"i": i},
        )


@pytest.mark.asyncio
async def test_entries_are_linked(store: MemoryStore, clock: Any) -> None:
    chain = AuditChain(store, clock=clock)
    await _fill(chain, 3)

    entries = list(reversed(await chain.read_recent(10)))
    assert [e.seq for e in entries] == [0, 1, 2]
    assert entries[0].prev_hash == GENESIS_HASH
    assert entries[1].prev_hash == entries[0].hash
    assert entries[2].prev_hash == entries[1].hash


@pytest.mark.asyncio
async def test_hash_covers_every_field(store: MemoryStore) -> None:
    chain = AuditChain(store)
    entry = await chain.append(
        AuditEventType.SYSTEM_EVENT, result=AuditResult.SYSTEM, operation="system:halt"
    )
    body = json.loads((await store.read_lines(AUDIT_LOG_KEY))[0])
    assert compute_hash(body) == entry.hash


@pytest.mark.asyncio
async def test_verify_intact_chain(store: MemoryStore) -> None:
    chain = AuditChain(store)
    await _fill(chain, 5)
    result = await chain.verify()
    assert result.valid
    assert result.count == 5
    assert result.broken_at_seq is None


@pytest.mark.asyncio
async def test_verify_reports_tampered_entry(store: MemoryStore) -> None:
    chain = AuditChain(store)
    await _fill(chain, 5)

    body = json.loads((await store.read_lines(AUDIT_LOG_KEY))[2])
    body["result"] = "blocked"
    store.replace_line(AUDIT_LOG_KEY, 2, canonical_json(body))

    result = await chain.verify()
    assert not result.valid
    assert result.broken_at_seq == 2
    assert "tampered" in (result.reason or "")


@pytest.mark.asyncio
async def test_verify_reports_rehashed_entry_as_broken_link(store: MemoryStore) -> None:
    chain = AuditChain(store)
    await _fill(chain, 4)

    body = json.loads((await store.read_lines(AUDIT_LOG_KEY))[1])
    body["reason"] = "rewritten"
    body["hash"] = compute_hash(body)
    store.replace_line(AUDIT_LOG_KEY, 1, canonical_json(body))

    result = await chain.verify()
    assert not result.valid
    assert result.broken_at_seq == 2


@pytest.mark.asyncio
async def test_verify_rejects_extra_fields(store: MemoryStore) -> None:
    chain = AuditChain(store)
    await _fill(chain, 2)

    body = json.loads((await store.read_lines(AUDIT_LOG_KEY))[0])
    body["extra"] = True
    store.replace_line(AUDIT_LOG_KEY, 0, canonical_json(body))

    result = await chain.verify()
    assert result.broken_at_seq == 0


@pytest.mark.asyncio
async def test_verify_or_raise(store: MemoryStore) -> None:
    chain = AuditChain(store)
    await _fill(chain, 3)
    assert await chain.verify_or_raise() == 3

    store.replace_line(AUDIT_LOG_KEY, 1, "not json")
    with pytest.raises(ChainIntegrityError) as exc_info:
        await chain.verify_or_raise()
    assert exc_info.value.broken_at_seq == 1


@pytest.mark.asyncio
async def test_new_chain_continues_existing_log(store: MemoryStore) -> None:
    await _fill(AuditChain(store), 2)
    reopened = AuditChain(store)
    entry = await reopened.append(
        AuditEventType.SYSTEM_EVENT, result=AuditResult.SYSTEM, operation="system:resume"
    )
    assert entry.seq == 2
    assert (await reopened.verify()).valid


@pytest.mark.asyncio
async def test_stats_counts_last_day(store: MemoryStore, clock: Any) -> None:
    chain = AuditChain(store, clock=clock)
    await _fill(chain, 2)
    clock.advance(hours=30)
    await chain.append(
        AuditEventType.OPERATION_CHECK, result=AuditResult.BLOCKED, operation="execute:shell"
    )

    stats = await chain.stats()
    assert stats.total_entries == 3
    assert stats.chain_valid
    assert stats.last_24h["blocked"] == 1
    assert stats.last_24h["allowed"] == 0


@pytest.mark.asyncio
async def test_webhook_receives_entries(store: MemoryStore) -> None:
    received: list[dict[str, Any]] = []

    def handler(request: httpx.Request) -> httpx.Response:
        received.append(json.loads(request.content))
        return httpx.Response(200)

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    forwarder = WebhookForwarder("http://collector.test/audit", client=client)
    chain = AuditChain(store, forwarder=forwarder)
    await _fill(chain, 2)
    await forwarder.close()

    assert [r["seq"] for r in sorted(received, key=lambda r: r["seq"])] == [0, 1]


@pytest.mark.asyncio
async def test_webhook_failure_does_not_affect_chain(store: MemoryStore) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(500)

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    forwarder = WebhookForwarder("http://collector.test/audit", client=client)
    chain = AuditChain(store, forwarder=forwarder)
    await _fill(chain, 3)
    await forwarder.close()

    assert (await chain.verify()).count == 3


# ── Concurrency ───────────────────────────────────────────────


@pytest.mark.asyncio
async def test_concurrent_appends_stay_linked(tmp_path: Path) -> None:
    chain = AuditChain(FileStore(tmp_path / "data", tmp_path / "audit"))
    entries = await asyncio.gather(
        *(
            chain.append(
                AuditEventType.OPERATION_CHECK,
                result=AuditResult.ALLOWED,
                operation="read:status",
                metadata={"i": i},
            )
            for i in range(25)
        )
    )

    assert sorted(e.seq for e in entries) == list(range(25))
    result = await chain.verify()
    assert result.valid
    assert result.count == 25
