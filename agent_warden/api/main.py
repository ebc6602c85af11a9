"""Agent Warden API application entry point."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from agent_warden.api.deps import close_warden, init_warden
from agent_warden.api.routes import (
    audit,
    health,
    overrides,
    permissions,
    security,
    task_specs,
    trust,
    ws,
)
from agent_warden.config import settings

if TYPE_CHECKING:
    from collections.abc import AsyncIterator


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage startup / shutdown lifecycle."""
    await init_warden()
    yield
    await close_warden()


app = FastAPI(
    title=settings.api_title,
    description="Operation authorization and audit for autonomous agents",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health.router)
app.include_router(security.router)
app.include_router(permissions.router)
app.include_router(overrides.router)
app.include_router(trust.router)
app.include_router(task_specs.router)
app.include_router(audit.router)
app.include_router(ws.router)
