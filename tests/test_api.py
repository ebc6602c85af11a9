"""Tests for the operator API routes."""

from collections.abc import Iterator
from typing import Any

import httpx
import pytest
from agent_warden.api.deps import get_warden
from agent_warden.api.main import app
from agent_warden.api.middleware.auth import create_token
from agent_warden.config import Settings
from agent_warden.runtime import Warden, build_warden
from agent_warden.storage import MemoryStore


@pytest.fixture
def warden(store: MemoryStore, clock: Any) -> Iterator[Warden]:
    settings = Settings(audit_webhook_url=None, enable_risk_analysis=False, pattern_file=None)
    w = build_warden(settings, store=store, clock=clock)
    app.dependency_overrides[get_warden] = lambda: w
    yield w
    app.dependency_overrides.clear()


@pytest.fixture
def client(warden: Warden) -> httpx.AsyncClient:
    transport = httpx.ASGITransport(app=app)  # type: ignore[arg-type]
    return httpx.AsyncClient(transport=transport, base_url="http://test")


@pytest.fixture
def viewer_headers() -> dict[str, str]:
    return {"Authorization": f"Bearer {create_token(sub='viewer-1')}"}


@pytest.fixture
def operator_headers() -> dict[str, str]:
    return {"Authorization": f"Bearer {create_token(sub='ops-1', role='operator')}"}


def check_body(category: str, action: str, **request: Any) -> dict[str, Any]:
    return {
        "request": {"category": category, "action": action, **request},
        "context": {"user_id": "user-1", "agent_id": "agent-1", "session_id": "s-1"},
    }


# ── Health ────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_health(client: httpx.AsyncClient) -> None:
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok", "service": "agent-warden"}


@pytest.mark.asyncio
async def test_health_detailed(client: httpx.AsyncClient) -> None:
    response = await client.get("/health/detailed")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "ok"
    assert data["components"] == {"audit_chain": "ok", "system_mode": "active", "detector": "running"}


@pytest.mark.asyncio
async def test_uninitialized_warden_is_unavailable() -> None:
    transport = httpx.ASGITransport(app=app)  # type: ignore[arg-type]
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        response = await client.get("/health/detailed")
    assert response.status_code == 503


# ── Auth ──────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_check_requires_auth(client: httpx.AsyncClient) -> None:
    response = await client.post("/security/check", json=check_body("read", "status"))
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_invalid_token_rejected(client: httpx.AsyncClient) -> None:
    response = await client.get("/audit/verify", headers={"Authorization": "Bearer not-a-jwt"})
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_viewer_cannot_halt(client: httpx.AsyncClient, viewer_headers: dict[str, str]) -> None:
    response = await client.post("/security/halt", json={}, headers=viewer_headers)
    assert response.status_code == 403
    assert response.json()["detail"] == "Operator role required"


# ── Authorization ─────────────────────────────────────────────


@pytest.mark.asyncio
async def test_check_allows_read(client: httpx.AsyncClient, viewer_headers: dict[str, str]) -> None:
    response = await client.post("/security/check", json=check_body("read", "status"), headers=viewer_headers)
    assert response.status_code == 200
    decision = response.json()["decision"]
    assert decision["allowed"]
    assert not decision["requires_approval"]


@pytest.mark.asyncio
async def test_check_blocks_shell(client: httpx.AsyncClient, viewer_headers: dict[str, str]) -> None:
    response = await client.post(
        "/security/check", json=check_body("execute", "shell", target="rm -rf /"), headers=viewer_headers
    )
    assert response.status_code == 200
    assert not response.json()["decision"]["allowed"]


@pytest.mark.asyncio
async def test_halt_blocks_everything(
    client: httpx.AsyncClient,
    viewer_headers: dict[str, str],
    operator_headers: dict[str, str],
) -> None:
    response = await client.post("/security/halt", json={"reason": "incident"}, headers=operator_headers)
    assert response.status_code == 200
    assert response.json()["state"]["mode"] == "halted"

    response = await client.post("/security/check", json=check_body("read", "status"), headers=viewer_headers)
    assert not response.json()["decision"]["allowed"]

    response = await client.post("/security/halt/release", json={"mode": "halted"}, headers=operator_headers)
    assert response.status_code == 422

    response = await client.post("/security/halt/release", json={}, headers=operator_headers)
    assert response.json()["state"]["mode"] == "active"


# ── Approvals ─────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_approve_unknown(client: httpx.AsyncClient, operator_headers: dict[str, str]) -> None:
    response = await client.post("/security/approvals/nope/approve", headers=operator_headers)
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_approve_twice_conflicts(
    client: httpx.AsyncClient,
    viewer_headers: dict[str, str],
    operator_headers: dict[str, str],
) -> None:
    body = {**check_body("write", "moltbook_dm", target="bob", content="hi"), "reason": "needs review"}
    response = await client.post("/security/approvals", json=body, headers=viewer_headers)
    assert response.status_code == 201
    approval_id = response.json()["approval"]["id"]

    response = await client.post(f"/security/approvals/{approval_id}/approve", headers=operator_headers)
    assert response.status_code == 200
    assert response.json()["approval"]["status"] == "approved"

    response = await client.post(f"/security/approvals/{approval_id}/approve", headers=operator_headers)
    assert response.status_code == 409


# ── Permissions ───────────────────────────────────────────────


@pytest.mark.asyncio
async def test_grant_and_revoke(
    client: httpx.AsyncClient,
    viewer_headers: dict[str, str],
    operator_headers: dict[str, str],
) -> None:
    body = {"subject_id": "agent-1", "operation": "write:*", "duration_minutes": 30, "reason": "demo"}
    response = await client.post("/permissions", json=body, headers=operator_headers)
    assert response.status_code == 201
    permission = response.json()["permission"]
    assert permission["granted_by"] == "ops-1"

    response = await client.get("/permissions?active_only=true", headers=viewer_headers)
    assert response.json()["count"] == 1

    response = await client.post(f"/permissions/{permission['id']}/revoke", json={}, headers=operator_headers)
    assert response.status_code == 200

    response = await client.post(f"/permissions/{permission['id']}/revoke", json={}, headers=operator_headers)
    assert response.status_code == 409

    response = await client.post("/permissions/missing/revoke", json={}, headers=operator_headers)
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_grant_rejects_nonpositive_duration(
    client: httpx.AsyncClient, operator_headers: dict[str, str]
) -> None:
    body = {"subject_id": "agent-1", "operation": "write:*", "duration_minutes": 0, "reason": "demo"}
    response = await client.post("/permissions", json=body, headers=operator_headers)
    assert response.status_code == 422


# ── Overrides ─────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_override_lifecycle(
    client: httpx.AsyncClient,
    viewer_headers: dict[str, str],
    operator_headers: dict[str, str],
) -> None:
    body = {"action": "block", "operation": "network:fetch", "reason": "maintenance"}
    response = await client.post("/overrides", json=body, headers=operator_headers)
    assert response.status_code == 201

    response = await client.get("/overrides", headers=viewer_headers)
    assert response.json()["count"] == 1

    response = await client.delete("/overrides?operation=network:fetch", headers=operator_headers)
    assert response.json() == {"operation": "network:fetch", "removed": True}

    response = await client.delete("/overrides?operation=network:fetch", headers=operator_headers)
    assert response.status_code == 404


# ── Task specs ────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_task_spec_lifecycle(
    client: httpx.AsyncClient,
    viewer_headers: dict[str, str],
    operator_headers: dict[str, str],
) -> None:
    response = await client.get("/task-specs/templates", headers=viewer_headers)
    assert response.status_code == 200

    body = {"subject_id": "agent-1", "objective": "Summarize the feed", "template": "monitoring"}
    response = await client.post("/task-specs", json=body, headers=operator_headers)
    assert response.status_code == 201
    spec_id = response.json()["spec"]["id"]

    response = await client.post(f"/task-specs/{spec_id}/activate", headers=operator_headers)
    assert response.json()["spec"]["status"] == "active"

    response = await client.post(f"/task-specs/{spec_id}/activate", headers=operator_headers)
    assert response.status_code == 409

    response = await client.post(
        f"/task-specs/{spec_id}/complete",
        json={"outcome": "success", "summary": "done"},
        headers=operator_headers,
    )
    assert response.json()["spec"]["status"] == "completed"

    response = await client.get("/task-specs/spec-missing", headers=viewer_headers)
    assert response.status_code == 404


# ── Audit and trust ───────────────────────────────────────────


@pytest.mark.asyncio
async def test_audit_records_checks(client: httpx.AsyncClient, viewer_headers: dict[str, str]) -> None:
    await client.post("/security/check", json=check_body("read", "status"), headers=viewer_headers)

    response = await client.get("/audit/verify", headers=viewer_headers)
    assert response.json()["valid"]
    assert response.json()["count"] >= 1

    response = await client.get("/audit/recent?limit=5", headers=viewer_headers)
    assert response.json()["entries"][0]["operation"] == "read:status"


@pytest.mark.asyncio
async def test_record_trust(
    client: httpx.AsyncClient,
    viewer_headers: dict[str, str],
    operator_headers: dict[str, str],
) -> None:
    body = {"operation": "write:moltbook_comment", "target": "alice", "agent_id": "agent-1", "success": True}
    response = await client.post("/trust-scores", json=body, headers=operator_headers)
    assert response.status_code == 200
    assert response.json()["weighted_score"] == pytest.approx(1.0)

    response = await client.get("/trust-scores", headers=viewer_headers)
    assert len(response.json()["scores"]) == 1
    assert response.json()["threshold"] == 5.0
