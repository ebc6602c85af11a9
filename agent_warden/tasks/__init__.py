"""Task specs: per-task constraint sets with a time-boxed lifecycle."""

from agent_warden.tasks.constraints import ConstraintVerdict, evaluate_constraints
from agent_warden.tasks.models import (
    SPEC_TEMPLATES,
    ExecutionResult,
    SpecTemplate,
    SpecTemplateName,
    TaskConstraints,
    TaskOutcome,
    TaskSpec,
    TaskStatus,
)
from agent_warden.tasks.store import TaskSpecStore

__all__ = [
    "SPEC_TEMPLATES",
    "ConstraintVerdict",
    "ExecutionResult",
    "SpecTemplate",
    "SpecTemplateName",
    "TaskConstraints",
    "TaskOutcome",
    "TaskSpec",
    "TaskSpecStore",
    "TaskStatus",
    "evaluate_constraints",
]
