"""Timed permission endpoints: grant, list, revoke, sweep."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field

from agent_warden.api.deps import get_warden
from agent_warden.api.middleware.auth import TokenClaims, get_current_user, require_operator
from agent_warden.errors import NotFoundError
from agent_warden.runtime import Warden  # noqa: TC001

router = APIRouter(prefix="/permissions", tags=["permissions"])


class GrantBody(BaseModel):
    subject_id: str
    operation: str
    target: str | None = None
    duration_minutes: float = Field(gt=0)
    reason: str
    max_uses: int | None = Field(default=None, ge=1)


class RevokeBody(BaseModel):
    reason: str | None = None


@router.post("", status_code=status.HTTP_201_CREATED)
async def grant(
    body: GrantBody,
    warden: Warden = Depends(get_warden),
    user: TokenClaims = Depends(require_operator),
) -> dict[str, object]:
    permission = await warden.permissions.grant(
        body.subject_id,
        body.operation,
        duration_minutes=body.duration_minutes,
        granted_by=user.sub,
        reason=body.reason,
        target=body.target,
        max_uses=body.max_uses,
    )
    return {"permission": permission.model_dump(mode="json")}


@router.get("")
async def list_permissions(
    subject_id: str | None = None,
    active_only: bool = False,
    warden: Warden = Depends(get_warden),
    user: TokenClaims = Depends(get_current_user),
) -> dict[str, object]:
    if active_only and subject_id is not None:
        permissions = await warden.permissions.active(subject_id)
    else:
        permissions = await warden.permissions.all(subject_id)
        if active_only:
            now = warden.clock()
            permissions = [p for p in permissions if p.is_live(now)]
    return {
        "permissions": [p.model_dump(mode="json") for p in permissions],
        "count": len(permissions),
    }


@router.post("/{permission_id}/revoke")
async def revoke(
    permission_id: str,
    body: RevokeBody,
    warden: Warden = Depends(get_warden),
    user: TokenClaims = Depends(require_operator),
) -> dict[str, object]:
    try:
        revoked = await warden.permissions.revoke(permission_id, user.sub, body.reason)
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e)) from e
    if not revoked:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Permission {permission_id} is already revoked",
        )
    return {"id": permission_id, "revoked": True}


@router.post("/sweep")
async def sweep(
    warden: Warden = Depends(get_warden),
    user: TokenClaims = Depends(require_operator),
) -> dict[str, int]:
    return {"swept": await warden.permissions.sweep_expired()}
