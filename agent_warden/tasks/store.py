"""Task spec persistence and lifecycle.

Lifecycle: ``draft -> active -> completed | expired | cancelled``. The time
limit starts ticking on activation; terminal states are final.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import timedelta
from typing import TYPE_CHECKING, Any
from uuid import uuid4

from agent_warden.audit.models import AuditEventType, AuditResult
from agent_warden.clock import utc_now
from agent_warden.errors import InvalidTransitionError, NotFoundError, StoreError, WardenError
from agent_warden.tasks.constraints import ConstraintVerdict, evaluate_constraints
from agent_warden.tasks.models import (
    SPEC_TEMPLATES,
    TERMINAL_STATUSES,
    ExecutionResult,
    SpecTemplateName,
    TaskConstraints,
    TaskExecutionEntry,
    TaskOutcome,
    TaskPermission,
    TaskResult,
    TaskSpec,
    TaskStatus,
    TimeLimit,
)

if TYPE_CHECKING:
    from agent_warden.audit.chain import AuditChain
    from agent_warden.clock import Clock
    from agent_warden.storage import KeyValueStore

logger = logging.getLogger(__name__)

TASK_SPECS_KEY = "task-specs"

_OUTCOME_STATUS = {
    TaskOutcome.SUCCESS: TaskStatus.COMPLETED,
    TaskOutcome.FAILURE: TaskStatus.CANCELLED,
    TaskOutcome.TIMEOUT: TaskStatus.EXPIRED,
    TaskOutcome.CANCELLED: TaskStatus.CANCELLED,
}


class TaskSpecStore:
    """Persisted task specs under ``task-specs``."""

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

    async def _read(self) -> list[TaskSpec]:
        data = await self._store.get(TASK_SPECS_KEY) or []
        return [TaskSpec.model_validate(raw) for raw in data]

    async def _write(self, specs: list[TaskSpec]) -> None:
        await self._store.set(TASK_SPECS_KEY, [s.model_dump(mode="json") for s in specs])

    @staticmethod
    def _find(specs: list[TaskSpec], spec_id: str) -> TaskSpec:
        for spec in specs:
            if spec.id == spec_id:
                return spec
        raise NotFoundError(f"Task spec not found: {spec_id}")

    async def _record(self, event: AuditEventType, result: AuditResult, **fields: Any) -> None:
        if self._audit is None:
            return
        try:
            await self._audit.append(event, result=result, **fields)
        except WardenError:
            logger.exception("Failed to audit %s", event)

    # ── Lifecycle ───────────────────────────────────────────────

    async def create(
        self,
        subject_id: str,
        objective: str,
        *,
        template: SpecTemplateName = SpecTemplateName.CUSTOM,
        description: str | None = None,
        constraints: dict[str, Any] | None = None,
        permissions: list[str] | None = None,
        success_criteria: list[str] | None = None,
        failure_criteria: list[str] | None = None,
        time_limit_minutes: int | None = None,
        custom_rules: list[str] | None = None,
    ) -> TaskSpec:
        """Create a draft spec seeded from ``template``.

        ``constraints`` overrides individual template constraint fields;
        ``custom_rules`` are appended to the template's rules.
        """
        base = SPEC_TEMPLATES[template]
        now = self._clock()

        merged = TaskConstraints.model_validate({**base.constraints.model_dump(), **(constraints or {})})
        merged.custom_rules = [*base.constraints.custom_rules, *(custom_rules or [])]

        minutes = time_limit_minutes if time_limit_minutes is not None else base.suggested_time_limit_minutes
        spec = TaskSpec(
            id=f"spec-{uuid4().hex[:12]}",
            subject_id=subject_id,
            created_at=now,
            updated_at=now,
            objective=objective,
            description=description,
            constraints=merged,
            permissions=[
                TaskPermission(operation=op, granted_at=now, granted_by="system")
                for op in (permissions if permissions is not None else base.default_permissions)
            ],
            time_limit=TimeLimit(max_duration_minutes=minutes) if minutes else None,
        )
        if success_criteria is not None:
            spec.success_criteria = success_criteria
        if failure_criteria is not None:
            spec.failure_criteria = failure_criteria

        async with self._lock:
            specs = await self._read()
            specs.append(spec)
            await self._write(specs)

        logger.info("Created task spec %s for %s (template=%s)", spec.id, subject_id, template)
        await self._record(
            AuditEventType.SPEC_CREATED,
            AuditResult.SYSTEM,
            operation="spec:create",
            target=spec.id,
            metadata={"subject_id": subject_id, "objective": objective, "template": template.value},
        )
        return spec

    async def activate(self, spec_id: str) -> TaskSpec:
        async with self._lock:
            specs = await self._read()
            spec = self._find(specs, spec_id)
            if spec.status != TaskStatus.DRAFT:
                raise InvalidTransitionError(f"Cannot activate spec {spec_id} in status {spec.status}")
            now = self._clock()
            spec.status = TaskStatus.ACTIVE
            spec.updated_at = now
            if spec.time_limit is not None:
                spec.time_limit.started_at = now
                spec.time_limit.expires_at = now + timedelta(minutes=spec.time_limit.max_duration_minutes)
            await self._write(specs)

        logger.info("Activated task spec %s", spec_id)
        await self._record(
            AuditEventType.SPEC_UPDATED,
            AuditResult.SYSTEM,
            operation="spec:activate",
            target=spec_id,
        )
        return spec

    async def complete(self, spec_id: str, outcome: TaskOutcome, summary: str) -> TaskSpec:
        async with self._lock:
            specs = await self._read()
            spec = self._find(specs, spec_id)
            if spec.status in TERMINAL_STATUSES:
                raise InvalidTransitionError(f"Spec {spec_id} is already {spec.status}")
            now = self._clock()
            spec.status = _OUTCOME_STATUS[outcome]
            spec.updated_at = now
            spec.result = TaskResult(status=outcome, summary=summary, completed_at=now)
            await self._write(specs)

        logger.info("Task spec %s finished as %s", spec_id, spec.status)
        await self._record(
            AuditEventType.SPEC_UPDATED,
            AuditResult.SYSTEM,
            operation="spec:complete",
            target=spec_id,
            reason=summary,
            metadata={"outcome": outcome.value},
        )
        return spec

    async def update_constraints(self, spec_id: str, updates: dict[str, Any]) -> TaskSpec:
        """Change constraints on a draft spec. Active specs are immutable."""
        async with self._lock:
            specs = await self._read()
            spec = self._find(specs, spec_id)
            if spec.status != TaskStatus.DRAFT:
                raise InvalidTransitionError(f"Constraints of spec {spec_id} can only change while draft")
            spec.constraints = TaskConstraints.model_validate({**spec.constraints.model_dump(), **updates})
            spec.updated_at = self._clock()
            await self._write(specs)

        await self._record(
            AuditEventType.SPEC_UPDATED,
            AuditResult.SYSTEM,
            operation="spec:update",
            target=spec_id,
            metadata={"updates": updates},
        )
        return spec

    async def log_execution(
        self,
        spec_id: str,
        action: str,
        result: ExecutionResult,
        detail: str | None = None,
    ) -> TaskSpec:
        async with self._lock:
            specs = await self._read()
            spec = self._find(specs, spec_id)
            now = self._clock()
            spec.execution_log.append(
                TaskExecutionEntry(timestamp=now, action=action, result=result, detail=detail)
            )
            spec.updated_at = now
            await self._write(specs)
        return spec

    async def check_expiry(self) -> list[str]:
        """Move overdue active specs to ``expired``; returns their ids."""
        async with self._lock:
            specs = await self._read()
            now = self._clock()
            expired = [s for s in specs if s.status == TaskStatus.ACTIVE and s.is_overdue(now)]
            for spec in expired:
                spec.status = TaskStatus.EXPIRED
                spec.updated_at = now
                spec.result = TaskResult(
                    status=TaskOutcome.TIMEOUT,
                    summary="Task time limit exceeded",
                    completed_at=now,
                )
            if expired:
                await self._write(specs)

        for spec in expired:
            logger.info("Task spec %s expired", spec.id)
            await self._record(
                AuditEventType.SPEC_UPDATED,
                AuditResult.EXPIRED,
                operation="spec:expired",
                target=spec.id,
                metadata={"objective": spec.objective},
            )
        return [s.id for s in expired]

    # ── Queries ─────────────────────────────────────────────────

    async def get(self, spec_id: str) -> TaskSpec:
        return self._find(await self._read(), spec_id)

    async def for_subject(self, subject_id: str) -> list[TaskSpec]:
        return [s for s in await self._read() if s.subject_id == subject_id]

    async def all(self) -> list[TaskSpec]:
        return await self._read()

    async def check_operation(self, subject_id: str, operation: str) -> ConstraintVerdict:
        """Constraint verdict for ``operation`` under the subject's active specs."""
        try:
            specs = await self._read()
        except StoreError as exc:
            logger.warning("Task specs unavailable: %s", exc)
            return ConstraintVerdict(degraded=True, reason="Task specs unavailable")
        return evaluate_constraints(specs, subject_id, operation, self._clock())
