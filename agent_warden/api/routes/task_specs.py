"""Task spec endpoints: create, list, activate, complete."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel

from agent_warden.api.deps import get_warden
from agent_warden.api.middleware.auth import TokenClaims, get_current_user, require_operator
from agent_warden.errors import InvalidTransitionError, NotFoundError
from agent_warden.runtime import Warden  # noqa: TC001
from agent_warden.tasks import SPEC_TEMPLATES, SpecTemplateName, TaskOutcome, TaskSpec

router = APIRouter(prefix="/task-specs", tags=["task-specs"])


class CreateSpecBody(BaseModel):
    subject_id: str
    objective: str
    template: SpecTemplateName = SpecTemplateName.CUSTOM
    description: str | None = None
    constraints: dict[str, Any] | None = None
    permissions: list[str] | None = None
    success_criteria: list[str] | None = None
    failure_criteria: list[str] | None = None
    time_limit_minutes: int | None = None
    custom_rules: list[str] | None = None


class CompleteSpecBody(BaseModel):
    outcome: TaskOutcome
    summary: str


def _spec_error(exc: Exception) -> HTTPException:
    if isinstance(exc, NotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))


def _dump(spec: TaskSpec) -> dict[str, object]:
    return {"spec": spec.model_dump(mode="json")}


@router.get("/templates")
async def list_templates(
    user: TokenClaims = Depends(get_current_user),
) -> dict[str, object]:
    return {"templates": {name.value: t.model_dump(mode="json") for name, t in SPEC_TEMPLATES.items()}}


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_spec(
    body: CreateSpecBody,
    warden: Warden = Depends(get_warden),
    user: TokenClaims = Depends(require_operator),
) -> dict[str, object]:
    spec = await warden.tasks.create(
        body.subject_id,
        body.objective,
        template=body.template,
        description=body.description,
        constraints=body.constraints,
        permissions=body.permissions,
        success_criteria=body.success_criteria,
        failure_criteria=body.failure_criteria,
        time_limit_minutes=body.time_limit_minutes,
        custom_rules=body.custom_rules,
    )
    return _dump(spec)


@router.get("")
async def list_specs(
    subject_id: str | None = None,
    warden: Warden = Depends(get_warden),
    user: TokenClaims = Depends(get_current_user),
) -> dict[str, object]:
    specs = await warden.tasks.for_subject(subject_id) if subject_id else await warden.tasks.all()
    return {"specs": [s.model_dump(mode="json") for s in specs], "count": len(specs)}


@router.get("/{spec_id}")
async def get_spec(
    spec_id: str,
    warden: Warden = Depends(get_warden),
    user: TokenClaims = Depends(get_current_user),
) -> dict[str, object]:
    try:
        return _dump(await warden.tasks.get(spec_id))
    except NotFoundError as e:
        raise _spec_error(e) from e


@router.post("/{spec_id}/activate")
async def activate_spec(
    spec_id: str,
    warden: Warden = Depends(get_warden),
    user: TokenClaims = Depends(require_operator),
) -> dict[str, object]:
    try:
        return _dump(await warden.tasks.activate(spec_id))
    except (NotFoundError, InvalidTransitionError) as e:
        raise _spec_error(e) from e


@router.post("/{spec_id}/complete")
async def complete_spec(
    spec_id: str,
    body: CompleteSpecBody,
    warden: Warden = Depends(get_warden),
    user: TokenClaims = Depends(require_operator),
) -> dict[str, object]:
    try:
        return _dump(await warden.tasks.complete(spec_id, body.outcome, body.summary))
    except (NotFoundError, InvalidTransitionError) as e:
        raise _spec_error(e) from e


@router.patch("/{spec_id}/constraints")
async def update_constraints(
    spec_id: str,
    updates: dict[str, Any],
    warden: Warden = Depends(get_warden),
    user: TokenClaims = Depends(require_operator),
) -> dict[str, object]:
    try:
        return _dump(await warden.tasks.update_constraints(spec_id, updates))
    except (NotFoundError, InvalidTransitionError) as e:
        raise _spec_error(e) from e
