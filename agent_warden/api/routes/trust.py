"""Trust score endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from agent_warden.api.deps import get_warden
from agent_warden.api.middleware.auth import TokenClaims, get_current_user, require_operator
from agent_warden.runtime import Warden  # noqa: TC001

router = APIRouter(prefix="/trust-scores", tags=["trust"])


class RecordBody(BaseModel):
    operation: str
    target: str | None = None
    agent_id: str | None = None
    success: bool


@router.get("")
async def list_scores(
    warden: Warden = Depends(get_warden),
    user: TokenClaims = Depends(get_current_user),
) -> dict[str, object]:
    scores = sorted(await warden.trust.scores(), key=lambda s: s.weighted_score, reverse=True)
    return {
        "scores": [s.model_dump(mode="json") for s in scores],
        "threshold": warden.trust.threshold,
    }


@router.post("")
async def record(
    body: RecordBody,
    warden: Warden = Depends(get_warden),
    user: TokenClaims = Depends(require_operator),
) -> dict[str, object]:
    if body.success:
        entry = await warden.trust.record_success(body.operation, body.target, body.agent_id)
    else:
        entry = await warden.trust.record_failure(body.operation, body.target, body.agent_id)
    return {
        "entry": entry.model_dump(mode="json"),
        "weighted_score": warden.trust.weighted_score(entry),
    }
