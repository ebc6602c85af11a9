"""Time-boxed, usage-capped permission grants.

A grant lets a subject perform an operation without a fresh human decision
until it expires, is revoked, or hits its usage cap. Revocation is one-way.
``check`` verifies expiry itself at read time; ``sweep_expired`` additionally
flips past-due grants to revoked and must run every maintenance cycle.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Any
from uuid import uuid4

from pydantic import BaseModel, Field

from agent_warden.audit.models import AuditEventType, AuditResult
from agent_warden.clock import utc_now
from agent_warden.errors import NotFoundError, StoreError, WardenError

if TYPE_CHECKING:
    from agent_warden.audit.chain import AuditChain
    from agent_warden.clock import Clock
    from agent_warden.storage import KeyValueStore

logger = logging.getLogger(__name__)

PERMISSIONS_KEY = "timed-permissions"
MAX_USES_REASON = "Max uses reached"


def operation_matches(pattern: str, operation: str) -> bool:
    """Exact match, or ``prefix:*`` matching every action in the category."""
    if pattern == operation:
        return True
    return pattern.endswith(":*") and operation.startswith(pattern[:-1])


class TimedPermission(BaseModel):
    id: str = Field(default_factory=lambda: f"perm-{uuid4().hex[:12]}")
    subject_id: str
    operation: str
    target: str | None = None
    granted_at: datetime
    expires_at: datetime
    granted_by: str
    reason: str
    revoked: bool = False
    revoked_at: datetime | None = None
    revoked_reason: str | None = None
    usage_count: int = 0
    max_uses: int | None = None

    def covers(self, operation: str, target: str | None) -> bool:
        return operation_matches(self.operation, operation) and (
            self.target is None or self.target == target
        )

    def is_live(self, now: datetime) -> bool:
        if self.revoked or self.expires_at <= now:
            return False
        return self.max_uses is None or self.usage_count < self.max_uses


class PermissionCheck(BaseModel):
    granted: bool
    permission: TimedPermission | None = None
    reason: str | None = None


class PermissionLedger:
    """Persisted grants under ``timed-permissions``."""

    def __init__(
        self,
        store: KeyValueStore,
        *,
        audit: AuditChain | None = None,
        clock: Clock = utc_now,
    ) -> None:
        self._store = store
        self._audit = audit
        self._clock = clock
        self._lock = asyncio.Lock()

    async def _read(self) -> list[TimedPermission]:
        data = await self._store.get(PERMISSIONS_KEY) or []
        return [TimedPermission.model_validate(raw) for raw in data]

    async def _write(self, permissions: list[TimedPermission]) -> None:
        await self._store.set(PERMISSIONS_KEY, [p.model_dump(mode="json") for p in permissions])

    async def _record(self, event: AuditEventType, result: AuditResult, **fields: Any) -> None:
        if self._audit is None:
            return
        try:
            await self._audit.append(event, result=result, **fields)
        except WardenError:
            logger.exception("Failed to audit %s", event)

    # ── Grants ──────────────────────────────────────────────────

    async def grant(
        self,
        subject_id: str,
        operation: str,
        *,
        duration_minutes: float,
        granted_by: str,
        reason: str,
        target: str | None = None,
        max_uses: int | None = None,
    ) -> TimedPermission:
        if duration_minutes <= 0:
            raise ValueError("duration_minutes must be positive")
        if max_uses is not None and max_uses < 1:
            raise ValueError("max_uses must be at least 1")

        now = self._clock()
        permission = TimedPermission(
            subject_id=subject_id,
            operation=operation,
            target=target,
            granted_at=now,
            expires_at=now + timedelta(minutes=duration_minutes),
            granted_by=granted_by,
            reason=reason,
            max_uses=max_uses,
        )
        async with self._lock:
            permissions = await self._read()
            permissions.append(permission)
            await self._write(permissions)

        logger.info(
            "Granted %s on %s to %s for %s min (max_uses=%s)",
            permission.id,
            operation,
            subject_id,
            duration_minutes,
            max_uses,
        )
        await self._record(
            AuditEventType.PERMISSION_GRANTED,
            AuditResult.APPROVED,
            operation=operation,
            target=target,
            user_id=granted_by,
            reason=reason,
            metadata={
                "permission_id": permission.id,
                "subject_id": subject_id,
                "duration_minutes": duration_minutes,
                "expires_at": permission.expires_at.isoformat(),
                "max_uses": max_uses,
            },
        )
        return permission

    async def check(
        self,
        subject_id: str,
        operation: str,
        target: str | None = None,
        *,
        consume: bool = True,
    ) -> PermissionCheck:
        """Return the first live grant covering the operation.

        With ``consume`` the grant's usage counter is incremented and the grant
        auto-revokes once it reaches ``max_uses``.
        """
        denied = PermissionCheck(
            granted=False,
            reason=f'No valid timed permission for "{operation}"'
            + (f' on "{target}"' if target else ""),
        )
        try:
            async with self._lock:
                now = self._clock()
                permissions = await self._read()
                match = next(
                    (
                        p
                        for p in permissions
                        if p.subject_id == subject_id and p.covers(operation, target) and p.is_live(now)
                    ),
                    None,
                )
                if match is None:
                    return denied
                if not consume:
                    return PermissionCheck(granted=True, permission=match)

                exhausted = self._use(match, now)
                await self._write(permissions)
        except StoreError as exc:
            logger.warning("Permission ledger unavailable, treating as not granted: %s", exc)
            return denied

        if exhausted:
            await self._record_exhausted(match)
        return PermissionCheck(granted=True, permission=match)

    async def consume(self, permission_id: str) -> bool:
        """Record one use of a grant found earlier with ``check(consume=False)``.

        Returns ``False`` if the grant is no longer live.
        """
        try:
            async with self._lock:
                now = self._clock()
                permissions = await self._read()
                match = next((p for p in permissions if p.id == permission_id and p.is_live(now)), None)
                if match is None:
                    return False
                exhausted = self._use(match, now)
                await self._write(permissions)
        except StoreError as exc:
            logger.warning("Permission ledger unavailable, use of %s not recorded: %s", permission_id, exc)
            return False

        if exhausted:
            await self._record_exhausted(match)
        return True

    @staticmethod
    def _use(permission: TimedPermission, now: datetime) -> bool:
        permission.usage_count += 1
        exhausted = permission.max_uses is not None and permission.usage_count >= permission.max_uses
        if exhausted:
            permission.revoked = True
            permission.revoked_at = now
            permission.revoked_reason = MAX_USES_REASON
        return exhausted

    async def _record_exhausted(self, permission: TimedPermission) -> None:
        logger.info("Permission %s auto-revoked: %s", permission.id, MAX_USES_REASON)
        await self._record(
            AuditEventType.PERMISSION_REVOKED,
            AuditResult.EXPIRED,
            operation=permission.operation,
            target=permission.target,
            reason=MAX_USES_REASON,
            metadata={"permission_id": permission.id, "usage_count": permission.usage_count},
        )

    async def revoke(self, permission_id: str, revoked_by: str, reason: str | None = None) -> bool:
        """Revoke a grant. Returns ``False`` if it was already revoked."""
        reason = reason or "Manually revoked"
        async with self._lock:
            permissions = await self._read()
            permission = next((p for p in permissions if p.id == permission_id), None)
            if permission is None:
                raise NotFoundError(f"Permission not found: {permission_id}")
            if permission.revoked:
                return False
            permission.revoked = True
            permission.revoked_at = self._clock()
            permission.revoked_reason = reason
            await self._write(permissions)

        logger.info("Permission %s revoked by %s: %s", permission_id, revoked_by, reason)
        await self._record(
            AuditEventType.PERMISSION_REVOKED,
            AuditResult.DENIED,
            operation=permission.operation,
            target=permission.target,
            user_id=revoked_by,
            reason=reason,
            metadata={"permission_id": permission_id},
        )
        return True

    async def sweep_expired(self) -> int:
        """Revoke every past-due grant; returns how many were swept."""
        async with self._lock:
            now = self._clock()
            permissions = await self._read()
            swept = [p for p in permissions if not p.revoked and p.expires_at <= now]
            for permission in swept:
                permission.revoked = True
                permission.revoked_at = now
                permission.revoked_reason = "Expired"
            if swept:
                await self._write(permissions)

        for permission in swept:
            await self._record(
                AuditEventType.PERMISSION_REVOKED,
                AuditResult.EXPIRED,
                operation=permission.operation,
                target=permission.target,
                reason="Time limit expired",
                metadata={
                    "permission_id": permission.id,
                    "expires_at": permission.expires_at.isoformat(),
                },
            )
        if swept:
            logger.info("Swept %d expired permission(s)", len(swept))
        return len(swept)

    async def active(self, subject_id: str) -> list[TimedPermission]:
        now = self._clock()
        return [p for p in await self._read() if p.subject_id == subject_id and p.is_live(now)]

    async def all(self, subject_id: str | None = None) -> list[TimedPermission]:
        permissions = await self._read()
        if subject_id is None:
            return permissions
        return [p for p in permissions if p.subject_id == subject_id]

    async def get(self, permission_id: str) -> TimedPermission:
        for permission in await self._read():
            if permission.id == permission_id:
                return permission
        raise NotFoundError(f"Permission not found: {permission_id}")
