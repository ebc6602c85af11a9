"""Per-operation allow/block/ask overrides and their resolution order.

Overrides are a tagged union on ``action`` so each variant is validated at
construction. Resolution for ``(operation, target, agent)`` discards expired
and non-matching entries, then takes the first hit of:

1. same target, agent-scoped to this agent
2. same target, not agent-scoped
3. no target, global
4. no target, agent-scoped to this agent
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from enum import StrEnum
from typing import TYPE_CHECKING, Annotated, Literal

from pydantic import BaseModel, Field, TypeAdapter, field_validator, model_validator

from agent_warden.clock import to_utc, utc_now
from agent_warden.errors import StoreError

if TYPE_CHECKING:
    from agent_warden.clock import Clock
    from agent_warden.storage import KeyValueStore

logger = logging.getLogger(__name__)

OVERRIDES_KEY = "operation-overrides"


class OverrideScope(StrEnum):
    GLOBAL = "global"
    AGENT = "agent"


class _OverrideBase(BaseModel):
    operation: str
    target: str | None = None
    scope: OverrideScope = OverrideScope.GLOBAL
    agent_id: str | None = None
    expires_at: datetime | None = None
    reason: str | None = None

    @field_validator("expires_at")
    @classmethod
    def _aware_expiry(cls, value: datetime | None) -> datetime | None:
        return None if value is None else to_utc(value)

    @model_validator(mode="after")
    def _agent_scope_needs_agent(self) -> _OverrideBase:
        if self.scope == OverrideScope.AGENT and not self.agent_id:
            raise ValueError("agent-scoped overrides require agent_id")
        return self

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at is not None and self.expires_at <= now


class AllowOverride(_OverrideBase):
    """Relax the operation to auto-approval (levels 1 and 2 only)."""

    action: Literal["allow"] = "allow"


class BlockOverride(_OverrideBase):
    """Block the operation with the override's reason."""

    action: Literal["block"] = "block"


class AskOverride(_OverrideBase):
    """Always require a human, whatever trust says."""

    action: Literal["ask"] = "ask"


OperationOverride = Annotated[
    AllowOverride | BlockOverride | AskOverride,
    Field(discriminator="action"),
]

override_adapter: TypeAdapter[OperationOverride] = TypeAdapter(OperationOverride)


def resolve_override(
    overrides: list[OperationOverride],
    operation: str,
    target: str | None,
    agent_id: str | None,
    now: datetime,
) -> OperationOverride | None:
    """Pick the most specific live override, or ``None`` to defer to other layers."""
    candidates = [o for o in overrides if o.operation == operation and not o.is_expired(now)]
    if not candidates:
        return None

    targeted = [o for o in candidates if o.target is not None and o.target == target]
    untargeted = [o for o in candidates if o.target is None]

    tiers = (
        [o for o in targeted if o.scope == OverrideScope.AGENT and o.agent_id == agent_id],
        [o for o in targeted if o.scope != OverrideScope.AGENT],
        [o for o in untargeted if o.scope != OverrideScope.AGENT],
        [o for o in untargeted if o.scope == OverrideScope.AGENT and o.agent_id == agent_id],
    )
    for tier in tiers:
        if tier:
            return tier[0]
    return None


class OverrideStore:
    """Persisted override table under ``operation-overrides``."""

    def __init__(self, store: KeyValueStore, *, clock: Clock = utc_now) -> None:
        self._store = store
        self._clock = clock
        self._overrides: list[OperationOverride] | None = None
        self._lock = asyncio.Lock()

    async def load(self) -> list[OperationOverride]:
        """Load and validate the table. Invalid payloads raise ``ValidationError``."""
        if self._overrides is None:
            data = await self._store.get(OVERRIDES_KEY) or {}
            self._overrides = [override_adapter.validate_python(raw) for raw in data.get("overrides", [])]
        return list(self._overrides)

    async def _save(self, overrides: list[OperationOverride]) -> None:
        await self._store.set(
            OVERRIDES_KEY,
            {"version": 1, "overrides": [o.model_dump(mode="json") for o in overrides]},
        )
        self._overrides = overrides

    async def list(self) -> list[OperationOverride]:
        return await self.load()

    async def add(self, override: OperationOverride) -> None:
        async with self._lock:
            overrides = await self.load()
            overrides.append(override)
            await self._save(overrides)
        logger.info(
            "Override added: %s %s (target=%s, scope=%s)",
            override.action,
            override.operation,
            override.target,
            override.scope,
        )

    async def remove(
        self, operation: str, target: str | None = None, agent_id: str | None = None
    ) -> bool:
        """Remove overrides for ``operation``, narrowed by target/agent when given."""
        async with self._lock:
            overrides = await self.load()
            kept = [
                o
                for o in overrides
                if o.operation != operation
                or (target is not None and o.target != target)
                or (agent_id is not None and o.agent_id != agent_id)
            ]
            if len(kept) == len(overrides):
                return False
            await self._save(kept)
        logger.info("Removed %d override(s) for %s", len(overrides) - len(kept), operation)
        return True

    async def resolve(
        self, operation: str, target: str | None, agent_id: str | None
    ) -> OperationOverride | None:
        try:
            overrides = await self.load()
        except StoreError as exc:
            logger.warning("Overrides unavailable, deferring to other layers: %s", exc)
            return None
        return resolve_override(overrides, operation, target, agent_id, self._clock())
