"""Audit chain endpoints: recent entries, verification and stats."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from agent_warden.api.deps import get_warden
from agent_warden.api.middleware.auth import TokenClaims, get_current_user
from agent_warden.runtime import Warden  # noqa: TC001

router = APIRouter(prefix="/audit", tags=["audit"])


@router.get("/recent")
async def recent(
    limit: int = Query(default=50, ge=1, le=500),
    warden: Warden = Depends(get_warden),
    user: TokenClaims = Depends(get_current_user),
) -> dict[str, object]:
    """Most recent audit entries, newest first."""
    entries = await warden.audit.read_recent(limit)
    return {"entries": [e.model_dump(mode="json") for e in entries], "count": len(entries)}


@router.get("/verify")
async def verify(
    warden: Warden = Depends(get_warden),
    user: TokenClaims = Depends(get_current_user),
) -> dict[str, object]:
    """Walk the whole chain; a broken chain is reported, never repaired."""
    return (await warden.audit.verify()).model_dump(mode="json")


@router.get("/stats")
async def stats(
    warden: Warden = Depends(get_warden),
    user: TokenClaims = Depends(get_current_user),
) -> dict[str, object]:
    return (await warden.audit.stats()).model_dump(mode="json")
