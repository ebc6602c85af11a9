"""Authorization, operator controls, anomaly review, approvals and reports."""

from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel

from agent_warden.api.deps import get_warden
from agent_warden.api.middleware.auth import TokenClaims, get_current_user, require_operator
from agent_warden.governance import SystemMode
from agent_warden.models import OperationRequest, SecurityContext
from agent_warden.report import build_health_report, build_risk_report
from agent_warden.runtime import Warden  # noqa: TC001
from agent_warden.suggestions import apply_suggestion, suggested_guardrails

router = APIRouter(prefix="/security", tags=["security"])


class CheckBody(BaseModel):
    request: OperationRequest
    context: SecurityContext


class ReasonBody(BaseModel):
    reason: str | None = None


class ResumeSystemBody(BaseModel):
    mode: SystemMode = SystemMode.ACTIVE


class ApprovalRequestBody(CheckBody):
    reason: str


# ── Authorization ─────────────────────────────────────────────


@router.post("/check")
async def check_operation(
    body: CheckBody,
    warden: Warden = Depends(get_warden),
    user: TokenClaims = Depends(get_current_user),
) -> dict[str, object]:
    """Run an operation through the authorization pipeline."""
    decision = await warden.engine.check_operation(body.request, body.context)
    return {"decision": decision.model_dump(mode="json")}


@router.get("/stats")
async def stats(
    warden: Warden = Depends(get_warden),
    user: TokenClaims = Depends(get_current_user),
) -> dict[str, object]:
    return (await warden.engine.stats()).model_dump(mode="json")


# ── Operator controls ────────────────────────────────────────


@router.post("/pause")
async def pause(
    body: ReasonBody,
    warden: Warden = Depends(get_warden),
    user: TokenClaims = Depends(require_operator),
) -> dict[str, object]:
    await warden.engine.pause(user.sub, body.reason or f"Paused by {user.sub}")
    return {"paused": True, "reason": warden.detector.pause_reason}


@router.post("/resume")
async def resume(
    warden: Warden = Depends(get_warden),
    user: TokenClaims = Depends(require_operator),
) -> dict[str, object]:
    await warden.engine.resume(user.sub)
    return {"paused": False}


@router.post("/halt")
async def halt(
    body: ReasonBody,
    warden: Warden = Depends(get_warden),
    user: TokenClaims = Depends(require_operator),
) -> dict[str, object]:
    """Engage the global kill switch."""
    state = await warden.engine.halt(user.sub, body.reason or "Halted by operator")
    return {"state": state.model_dump(mode="json")}


@router.post("/halt/release")
async def release_halt(
    body: ResumeSystemBody,
    warden: Warden = Depends(get_warden),
    user: TokenClaims = Depends(require_operator),
) -> dict[str, object]:
    if body.mode == SystemMode.HALTED:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="Use /security/halt to halt the system",
        )
    state = await warden.engine.resume_system(user.sub, body.mode)
    return {"state": state.model_dump(mode="json")}


# ── Anomaly review ───────────────────────────────────────────


@router.get("/anomalies")
async def list_anomalies(
    since: datetime | None = None,
    pending_only: bool = False,
    limit: int = Query(default=100, le=1000),
    warden: Warden = Depends(get_warden),
    user: TokenClaims = Depends(get_current_user),
) -> dict[str, object]:
    events = warden.detector.pending_reviews() if pending_only else warden.detector.events(since)
    if pending_only and since is not None:
        events = [e for e in events if e.timestamp >= since]
    events = sorted(events, key=lambda e: e.timestamp, reverse=True)[:limit]
    return {
        "anomalies": [e.model_dump(mode="json") for e in events],
        "count": len(events),
        "paused": warden.detector.is_paused(),
    }


@router.post("/anomalies/{anomaly_id}/review")
async def review_anomaly(
    anomaly_id: str,
    warden: Warden = Depends(get_warden),
    user: TokenClaims = Depends(require_operator),
) -> dict[str, object]:
    if not warden.detector.mark_reviewed(anomaly_id):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Anomaly {anomaly_id} not found",
        )
    return {"id": anomaly_id, "reviewed": True}


# ── Approvals ────────────────────────────────────────────────


@router.get("/approvals")
async def list_approvals(
    warden: Warden = Depends(get_warden),
    user: TokenClaims = Depends(get_current_user),
) -> dict[str, object]:
    pending = warden.engine.pending_approvals()
    return {"approvals": [a.model_dump(mode="json") for a in pending], "count": len(pending)}


@router.post("/approvals", status_code=status.HTTP_201_CREATED)
async def request_approval(
    body: ApprovalRequestBody,
    warden: Warden = Depends(get_warden),
    user: TokenClaims = Depends(get_current_user),
) -> dict[str, object]:
    approval = await warden.engine.request_approval(body.request, body.context, body.reason)
    return {"approval": approval.model_dump(mode="json")}


async def _resolve(warden: Warden, approval_id: str, resolved: bool) -> dict[str, object]:
    approval = warden.engine.get_approval(approval_id)
    if approval is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Approval {approval_id} not found",
        )
    if not resolved:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Approval {approval_id} is {approval.status}",
        )
    return {"approval": approval.model_dump(mode="json")}


@router.post("/approvals/{approval_id}/approve")
async def approve(
    approval_id: str,
    warden: Warden = Depends(get_warden),
    user: TokenClaims = Depends(require_operator),
) -> dict[str, object]:
    resolved = await warden.engine.approve(approval_id, user.sub)
    return await _resolve(warden, approval_id, resolved)


@router.post("/approvals/{approval_id}/deny")
async def deny(
    approval_id: str,
    body: ReasonBody,
    warden: Warden = Depends(get_warden),
    user: TokenClaims = Depends(require_operator),
) -> dict[str, object]:
    resolved = await warden.engine.deny(approval_id, user.sub, body.reason)
    return await _resolve(warden, approval_id, resolved)


# ── Suggestions and reports ──────────────────────────────────


@router.get("/suggestions")
async def list_suggestions(
    hours: float = Query(default=24, gt=0, le=168),
    warden: Warden = Depends(get_warden),
    user: TokenClaims = Depends(get_current_user),
) -> dict[str, object]:
    suggestions = await suggested_guardrails(warden.activity, warden.clock, hours)
    return {"suggestions": [s.model_dump(mode="json") for s in suggestions]}


@router.post("/suggestions/{suggestion_id}/apply")
async def apply(
    suggestion_id: str,
    hours: float = Query(default=24, gt=0, le=168),
    warden: Warden = Depends(get_warden),
    user: TokenClaims = Depends(require_operator),
) -> dict[str, object]:
    suggestions = await suggested_guardrails(warden.activity, warden.clock, hours)
    suggestion = next((s for s in suggestions if s.id == suggestion_id), None)
    if suggestion is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Suggestion {suggestion_id} not found",
        )
    applied = await apply_suggestion(suggestion, detector=warden.detector, overrides=warden.overrides)
    return {"id": suggestion_id, "applied": applied}


@router.get("/report")
async def risk_report(
    hours: float = Query(default=24, ge=1, le=168),
    warden: Warden = Depends(get_warden),
    user: TokenClaims = Depends(get_current_user),
) -> dict[str, object]:
    report = await build_risk_report(warden.activity, warden.detector, warden.clock, hours)
    return {"summary": report.model_dump(mode="json"), "suggested_rules_count": report.suggested_rules_count}


@router.get("/report/health")
async def health_report(
    warden: Warden = Depends(get_warden),
    user: TokenClaims = Depends(get_current_user),
) -> dict[str, object]:
    report = await build_health_report(warden.audit, warden.detector, warden.permissions, warden.clock)
    return report.model_dump(mode="json")
