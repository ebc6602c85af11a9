"""Human governance hooks: the global halt switch and the awareness check."""

from __future__ import annotations

import logging
from datetime import datetime
from enum import StrEnum
from typing import TYPE_CHECKING, Protocol

from pydantic import BaseModel

from agent_warden.clock import utc_now
from agent_warden.errors import StoreError
from agent_warden.models import AwarenessResult

if TYPE_CHECKING:
    from agent_warden.clock import Clock
    from agent_warden.models import OperationRequest, SecurityContext
    from agent_warden.storage import KeyValueStore

logger = logging.getLogger(__name__)

SYSTEM_STATE_KEY = "system-state"


class SystemMode(StrEnum):
    ACTIVE = "active"
    SUPERVISED = "supervised"
    HALTED = "halted"


class SystemState(BaseModel):
    mode: SystemMode = SystemMode.ACTIVE
    halted_at: datetime | None = None
    halted_by: str | None = None
    halt_reason: str | None = None


class HaltSwitch:
    """Human-operated kill switch for all autonomous execution.

    Persisted so a halt survives restarts. If the state cannot be read the
    system is treated as halted.
    """

    def __init__(self, store: KeyValueStore, *, clock: Clock = utc_now) -> None:
        self._store = store
        self._clock = clock

    async def state(self) -> SystemState:
        data = await self._store.get(SYSTEM_STATE_KEY)
        return SystemState.model_validate(data) if data else SystemState()

    async def mode(self) -> SystemMode:
        try:
            return (await self.state()).mode
        except (StoreError, ValueError) as exc:
            logger.error("System state unreadable, treating as halted: %s", exc)
            return SystemMode.HALTED

    async def is_halted(self) -> bool:
        return await self.mode() == SystemMode.HALTED

    async def halt(self, halted_by: str, reason: str) -> SystemState:
        state = SystemState(
            mode=SystemMode.HALTED,
            halted_at=self._clock(),
            halted_by=halted_by,
            halt_reason=reason,
        )
        await self._store.set(SYSTEM_STATE_KEY, state.model_dump(mode="json"))
        logger.warning("System HALTED by %s: %s", halted_by, reason)
        return state

    async def resume(self, mode: SystemMode = SystemMode.ACTIVE) -> SystemState:
        if mode == SystemMode.HALTED:
            raise ValueError("Use halt() to halt the system")
        state = SystemState(mode=mode)
        await self._store.set(SYSTEM_STATE_KEY, state.model_dump(mode="json"))
        logger.info("System resumed in %s mode", mode)
        return state


class AwarenessHook(Protocol):
    """External governance policy consulted before the static tables."""

    async def check(self, request: OperationRequest, context: SecurityContext) -> AwarenessResult: ...


class AllowAllAwareness:
    """Default hook: never vetoes, never asks for a human."""

    async def check(self, request: OperationRequest, context: SecurityContext) -> AwarenessResult:
        return AwarenessResult(allowed=True, reason="No awareness policy configured")
