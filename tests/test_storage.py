"""Tests for the key-value and log storage backends."""

from pathlib import Path

import pytest
from agent_warden.errors import StoreError
from agent_warden.storage import FileStore, MemoryStore


@pytest.mark.asyncio
async def test_memory_store_missing_key_is_none() -> None:
    assert await MemoryStore().get("nope") is None


@pytest.mark.asyncio
async def test_memory_store_values_are_copies() -> None:
    store = MemoryStore()
    value = {"items": [1, 2]}
    await store.set("k", value)
    value["items"].append(3)
    assert await store.get("k") == {"items": [1, 2]}


@pytest.mark.asyncio
async def test_memory_store_rejects_multiline_append() -> None:
    with pytest.raises(StoreError):
        await MemoryStore().append("log", "a\nb")


@pytest.mark.asyncio
async def test_file_store_round_trip(tmp_path: Path) -> None:
    store = FileStore(tmp_path / "data", tmp_path / "audit")
    await store.set("trust-scores", {"a": 1})
    assert await store.get("trust-scores") == {"a": 1}
    assert (tmp_path / "data" / "trust-scores.json").exists()


@pytest.mark.asyncio
async def test_file_store_logs_preserve_order(tmp_path: Path) -> None:
    store = FileStore(tmp_path)
    for i in range(3):
        await store.append("activity-log", f'{{"i": {i}}}')
    assert await store.read_lines("activity-log") == ['{"i": 0}', '{"i": 1}', '{"i": 2}']


@pytest.mark.asyncio
async def test_file_store_routes_audit_keys(tmp_path: Path) -> None:
    store = FileStore(tmp_path / "data", tmp_path / "audit")
    await store.append("audit:audit-chain", "{}")
    assert (tmp_path / "audit" / "audit-chain.jsonl").exists()
    assert not (tmp_path / "data" / "audit-chain.jsonl").exists()


@pytest.mark.asyncio
async def test_file_store_corrupt_value_raises(tmp_path: Path) -> None:
    store = FileStore(tmp_path)
    (tmp_path / "broken.json").write_text("{not json")
    with pytest.raises(StoreError):
        await store.get("broken")


@pytest.mark.asyncio
async def test_file_store_missing_log_is_empty(tmp_path: Path) -> None:
    assert await FileStore(tmp_path).read_lines("absent") == []
