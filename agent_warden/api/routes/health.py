"""Health check endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from agent_warden.api.deps import get_warden
from agent_warden.runtime import Warden  # noqa: TC001

router = APIRouter(tags=["health"])


@router.get("/health")
async def health() -> dict[str, str]:
    """Basic health check."""
    return {"status": "ok", "service": "agent-warden"}


@router.get("/health/detailed")
async def health_detailed(warden: Warden = Depends(get_warden)) -> dict[str, object]:
    """Detailed health check: chain integrity, system mode and pause state."""
    verification = await warden.audit.verify()
    mode = await warden.halt.mode()
    paused = warden.detector.is_paused()

    components = {
        "audit_chain": "ok" if verification.valid else "broken",
        "system_mode": mode.value,
        "detector": "paused" if paused else "running",
    }
    if not verification.valid:
        overall = "critical"
    elif mode != "active" or paused:
        overall = "degraded"
    else:
        overall = "ok"
    return {"status": overall, "service": "agent-warden", "components": components}
