"""Task constraint checking for a subject's active specs."""

from __future__ import annotations

from typing import TYPE_CHECKING

from pydantic import BaseModel

from agent_warden.permissions import operation_matches
from agent_warden.tasks.models import TaskStatus

if TYPE_CHECKING:
    from datetime import datetime

    from agent_warden.tasks.models import TaskSpec

SELF_MODIFY_OPERATION = "execute:self_modify"


class ConstraintVerdict(BaseModel):
    allowed: bool = True
    reason: str | None = None
    spec_id: str | None = None
    # Set when the specs could not be read; callers should fail toward approval
    degraded: bool = False


def evaluate_constraints(
    specs: list[TaskSpec],
    subject_id: str,
    operation: str,
    now: datetime,
) -> ConstraintVerdict:
    """Check ``operation`` against every active spec for ``subject_id``.

    No active spec means no restriction from this layer. Specs whose time
    limit has passed but that have not yet been swept are skipped.
    """
    active = [
        s
        for s in specs
        if s.subject_id == subject_id and s.status == TaskStatus.ACTIVE and not s.is_overdue(now)
    ]

    for spec in active:
        constraints = spec.constraints

        if any(operation_matches(f, operation) for f in constraints.forbidden_operations):
            return ConstraintVerdict(
                allowed=False,
                reason=f'Operation "{operation}" is forbidden by task spec "{spec.objective}"',
                spec_id=spec.id,
            )

        if constraints.allowed_operations and not any(
            operation_matches(a, operation) for a in constraints.allowed_operations
        ):
            return ConstraintVerdict(
                allowed=False,
                reason=f'Operation "{operation}" is not in the allowed list for task spec '
                f'"{spec.objective}"',
                spec_id=spec.id,
            )

        if operation == SELF_MODIFY_OPERATION and not constraints.can_self_modify:
            return ConstraintVerdict(
                allowed=False,
                reason=f'Task spec "{spec.objective}" does not permit self-modification',
                spec_id=spec.id,
            )

        if constraints.max_actions is not None and spec.successful_actions >= constraints.max_actions:
            return ConstraintVerdict(
                allowed=False,
                reason=f'Task spec "{spec.objective}" reached its limit of '
                f"{constraints.max_actions} actions",
                spec_id=spec.id,
            )

    return ConstraintVerdict()
