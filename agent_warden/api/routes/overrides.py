"""Operation override endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Body, Depends, HTTPException, status

from agent_warden.api.deps import get_warden
from agent_warden.api.middleware.auth import TokenClaims, get_current_user, require_operator
from agent_warden.overrides import OperationOverride  # noqa: TC001
from agent_warden.runtime import Warden  # noqa: TC001

router = APIRouter(prefix="/overrides", tags=["overrides"])


@router.get("")
async def list_overrides(
    warden: Warden = Depends(get_warden),
    user: TokenClaims = Depends(get_current_user),
) -> dict[str, object]:
    overrides = await warden.overrides.list()
    return {"overrides": [o.model_dump(mode="json") for o in overrides], "count": len(overrides)}


@router.post("", status_code=status.HTTP_201_CREATED)
async def add_override(
    override: OperationOverride = Body(...),
    warden: Warden = Depends(get_warden),
    user: TokenClaims = Depends(require_operator),
) -> dict[str, object]:
    await warden.overrides.add(override)
    return {"override": override.model_dump(mode="json")}


@router.delete("")
async def remove_override(
    operation: str,
    target: str | None = None,
    agent_id: str | None = None,
    warden: Warden = Depends(get_warden),
    user: TokenClaims = Depends(require_operator),
) -> dict[str, object]:
    if not await warden.overrides.remove(operation, target, agent_id):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"No override found for {operation}",
        )
    return {"operation": operation, "removed": True}
