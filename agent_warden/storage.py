"""Key-value and append-only log storage: abstract interface plus implementations.

The pipeline only ever needs four primitives: read a value by key, write a
value by key, append a line to a log, read all lines of a log. Keys with the
``audit:`` prefix belong to the tamper-evident audit namespace and a store may
route them to separate, more restrictively permissioned storage.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import re
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any

from agent_warden.errors import StoreError

logger = logging.getLogger(__name__)

AUDIT_PREFIX = "audit:"

_SAFE_KEY = re.compile(r"[^A-Za-z0-9._-]")


class KeyValueStore(ABC):
    """Abstract interface for persistence backends."""

    @abstractmethod
    async def get(self, key: str) -> Any | None:
        """Return the JSON value stored under ``key`` or ``None``."""

    @abstractmethod
    async def set(self, key: str, value: Any) -> None:
        """Replace the value stored under ``key``."""

    @abstractmethod
    async def append(self, log_key: str, line: str) -> None:
        """Append one line to the log ``log_key``."""

    @abstractmethod
    async def read_lines(self, log_key: str) -> list[str]:
        """Return every line of ``log_key`` in append order."""


class MemoryStore(KeyValueStore):
    """In-process store used by tests and ephemeral deployments."""

    def __init__(self) -> None:
        self._values: dict[str, str] = {}
        self._logs: dict[str, list[str]] = {}

    async def get(self, key: str) -> Any | None:
        raw = self._values.get(key)
        return None if raw is None else json.loads(raw)

    async def set(self, key: str, value: Any) -> None:
        # Round-trip through JSON so callers never share mutable state
        self._values[key] = json.dumps(value)

    async def append(self, log_key: str, line: str) -> None:
        if "\n" in line:
            raise StoreError("Log lines must not contain newlines")
        self._logs.setdefault(log_key, []).append(line)

    async def read_lines(self, log_key: str) -> list[str]:
        return list(self._logs.get(log_key, []))

    def replace_line(self, log_key: str, index: int, line: str) -> None:
        """Overwrite a stored log line in place (test helper for tamper drills)."""
        self._logs[log_key][index] = line


class FileStore(KeyValueStore):
    """File-system backed store.

    Values are JSON files and logs are JSONL files::

        {data_dir}/{key}.json
        {data_dir}/{log_key}.jsonl
        {audit_dir}/{log_key}.jsonl     # keys prefixed with "audit:"
    """

    def __init__(self, data_dir: str | Path, audit_dir: str | Path | None = None) -> None:
        self.data_dir = Path(data_dir)
        self.audit_dir = Path(audit_dir) if audit_dir is not None else self.data_dir / ".audit"
        self.data_dir.mkdir(parents=True, exist_ok=True)
        self.audit_dir.mkdir(parents=True, exist_ok=True)
        self._lock = asyncio.Lock()

    def _path(self, key: str, suffix: str) -> Path:
        if key.startswith(AUDIT_PREFIX):
            name = _SAFE_KEY.sub("_", key[len(AUDIT_PREFIX):])
            return self.audit_dir / f"{name}{suffix}"
        return self.data_dir / f"{_SAFE_KEY.sub('_', key)}{suffix}"

    async def get(self, key: str) -> Any | None:
        path = self._path(key, ".json")
        try:
            if not path.exists():
                return None
            return json.loads(path.read_text())
        except (OSError, ValueError) as exc:
            raise StoreError(f"Failed to read {key}: {exc}") from exc

    async def set(self, key: str, value: Any) -> None:
        path = self._path(key, ".json")
        tmp = path.with_suffix(".json.tmp")
        async with self._lock:
            try:
                tmp.write_text(json.dumps(value, indent=2))
                os.replace(tmp, path)
            except (OSError, TypeError, ValueError) as exc:
                raise StoreError(f"Failed to write {key}: {exc}") from exc

    async def append(self, log_key: str, line: str) -> None:
        if "\n" in line:
            raise StoreError("Log lines must not contain newlines")
        path = self._path(log_key, ".jsonl")
        async with self._lock:
            try:
                with path.open("a", encoding="utf-8") as fh:
                    fh.write(line + "\n")
                    fh.flush()
                    os.fsync(fh.fileno())
            except OSError as exc:
                raise StoreError(f"Failed to append to {log_key}: {exc}") from exc

    async def read_lines(self, log_key: str) -> list[str]:
        path = self._path(log_key, ".jsonl")
        try:
            if not path.exists():
                return []
            return [line for line in path.read_text(encoding="utf-8").split("\n") if line]
        except OSError as exc:
            raise StoreError(f"Failed to read {log_key}: {exc}") from exc
