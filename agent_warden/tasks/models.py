"""Task spec models and the built-in spec templates."""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel, Field


class TaskStatus(StrEnum):
    DRAFT = "draft"
    ACTIVE = "active"
    COMPLETED = "completed"
    EXPIRED = "expired"
    CANCELLED = "cancelled"


TERMINAL_STATUSES = frozenset({TaskStatus.COMPLETED, TaskStatus.EXPIRED, TaskStatus.CANCELLED})


class TaskOutcome(StrEnum):
    SUCCESS = "success"
    FAILURE = "failure"
    TIMEOUT = "timeout"
    CANCELLED = "cancelled"


class ExecutionResult(StrEnum):
    SUCCESS = "success"
    FAILURE = "failure"
    BLOCKED = "blocked"


class TaskConstraints(BaseModel):
    """What an agent may and may not do while the task is active.

    ``allowed_operations`` acts as a whitelist when non-empty. Entries in
    either list may be exact keys or ``category:*`` wildcards.
    """

    allowed_operations: list[str] = Field(default_factory=list)
    forbidden_operations: list[str] = Field(default_factory=list)
    allowed_sources: list[str] = Field(default_factory=list)
    allowed_external_services: list[str] = Field(default_factory=list)
    max_actions: int | None = None
    max_cost_estimate: float | None = None
    can_self_modify: bool = False
    can_create_sub_tasks: bool = False
    custom_rules: list[str] = Field(default_factory=list)


class TimeLimit(BaseModel):
    max_duration_minutes: int
    started_at: datetime | None = None
    expires_at: datetime | None = None


class TaskPermission(BaseModel):
    operation: str
    target: str | None = None
    granted_at: datetime
    granted_by: str
    expires_at: datetime | None = None


class TaskExecutionEntry(BaseModel):
    timestamp: datetime
    action: str
    result: ExecutionResult
    detail: str | None = None


class TaskResult(BaseModel):
    status: TaskOutcome
    summary: str
    completed_at: datetime


class TaskSpec(BaseModel):
    id: str
    subject_id: str
    created_at: datetime
    updated_at: datetime
    status: TaskStatus = TaskStatus.DRAFT
    objective: str
    description: str | None = None
    constraints: TaskConstraints = Field(default_factory=TaskConstraints)
    success_criteria: list[str] = Field(default_factory=lambda: ["Task objective completed"])
    failure_criteria: list[str] = Field(
        default_factory=lambda: ["Constraint violated", "Time limit exceeded"]
    )
    time_limit: TimeLimit | None = None
    permissions: list[TaskPermission] = Field(default_factory=list)
    execution_log: list[TaskExecutionEntry] = Field(default_factory=list)
    result: TaskResult | None = None

    @property
    def successful_actions(self) -> int:
        return sum(1 for e in self.execution_log if e.result == ExecutionResult.SUCCESS)

    def is_overdue(self, now: datetime) -> bool:
        return (
            self.time_limit is not None
            and self.time_limit.expires_at is not None
            and self.time_limit.expires_at < now
        )


class SpecTemplateName(StrEnum):
    RESEARCH = "research"
    CONTENT_CREATION = "content_creation"
    SOCIAL_POSTING = "social_posting"
    CODE_REVIEW = "code_review"
    MONITORING = "monitoring"
    CUSTOM = "custom"


class SpecTemplate(BaseModel):
    name: SpecTemplateName
    label: str
    description: str
    constraints: TaskConstraints
    default_permissions: list[str] = Field(default_factory=list)
    suggested_time_limit_minutes: int


SPEC_TEMPLATES: dict[SpecTemplateName, SpecTemplate] = {
    t.name: t
    for t in (
        SpecTemplate(
            name=SpecTemplateName.RESEARCH,
            label="Research Task",
            description="Agent researches a topic and reports findings",
            constraints=TaskConstraints(
                allowed_operations=["read:rss", "read:github", "read:web"],
                forbidden_operations=["write:*", "execute:*", "credential:*"],
                allowed_sources=["rss", "github", "web"],
                custom_rules=["Report only, no actions taken"],
            ),
            default_permissions=["read:rss", "read:github"],
            suggested_time_limit_minutes=60,
        ),
        SpecTemplate(
            name=SpecTemplateName.CONTENT_CREATION,
            label="Content Creation",
            description="Agent drafts content for human review",
            constraints=TaskConstraints(
                allowed_operations=["read:rss", "read:github", "write:draft"],
                forbidden_operations=["write:publish", "execute:*", "credential:*"],
                allowed_sources=["rss", "github"],
                custom_rules=["All content must be reviewed before publishing"],
            ),
            default_permissions=["read:rss", "write:draft"],
            suggested_time_limit_minutes=120,
        ),
        SpecTemplate(
            name=SpecTemplateName.SOCIAL_POSTING,
            label="Social Posting",
            description="Agent posts to the social network (approval per post)",
            constraints=TaskConstraints(
                allowed_operations=["read:rss", "write:moltbook_post", "write:moltbook_comment"],
                forbidden_operations=["write:moltbook_follow", "credential:*", "execute:self_modify"],
                allowed_sources=["rss", "moltbook"],
                allowed_external_services=["moltbook"],
                max_actions=5,
                custom_rules=["Each post requires explicit human approval"],
            ),
            default_permissions=["read:rss", "write:moltbook_post"],
            suggested_time_limit_minutes=30,
        ),
        SpecTemplate(
            name=SpecTemplateName.CODE_REVIEW,
            label="Code Review",
            description="Agent reviews code changes and provides feedback",
            constraints=TaskConstraints(
                allowed_operations=["read:github", "write:comment"],
                forbidden_operations=["write:merge", "write:approve_pr", "execute:*", "credential:*"],
                allowed_sources=["github"],
                allowed_external_services=["github"],
                custom_rules=["Review only, cannot merge or approve PRs"],
            ),
            default_permissions=["read:github", "write:comment"],
            suggested_time_limit_minutes=45,
        ),
        SpecTemplate(
            name=SpecTemplateName.MONITORING,
            label="Monitoring Watch",
            description="Agent monitors sources and flags items of interest",
            constraints=TaskConstraints(
                allowed_operations=["read:rss", "read:github", "read:web", "write:notification"],
                forbidden_operations=["execute:*", "credential:*"],
                allowed_sources=["rss", "github", "web"],
                custom_rules=["Flag only, no autonomous actions"],
            ),
            default_permissions=["read:rss", "read:github", "write:notification"],
            suggested_time_limit_minutes=480,
        ),
        SpecTemplate(
            name=SpecTemplateName.CUSTOM,
            label="Custom Task",
            description="Define custom constraints from scratch",
            constraints=TaskConstraints(
                forbidden_operations=["execute:self_modify", "credential:export_all"],
            ),
            suggested_time_limit_minutes=60,
        ),
    )
}
