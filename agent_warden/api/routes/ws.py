"""WebSocket endpoint streaming security events to dashboards."""

from __future__ import annotations

import asyncio
import logging

from fastapi import APIRouter, HTTPException, WebSocket, WebSocketDisconnect

from agent_warden.api.deps import get_warden
from agent_warden.api.middleware.auth import decode_token

router = APIRouter(tags=["websocket"])
logger = logging.getLogger(__name__)

HEARTBEAT_SECONDS = 30


@router.websocket("/ws/events")
async def event_stream(
    websocket: WebSocket,
    token: str | None = None,
) -> None:
    """Fan out bus events to a dashboard client.

    Clients connect with ``ws://host/ws/events?token=<jwt>``. A heartbeat is
    sent when no event arrives within the heartbeat interval.
    """
    if token is None:
        await websocket.close(code=4001, reason="Missing token")
        return

    try:
        claims = decode_token(token)
    except HTTPException:
        await websocket.close(code=4003, reason="Invalid token")
        return

    try:
        bus = get_warden().bus
    except HTTPException:
        await websocket.close(code=1011, reason="Warden is not initialized")
        return
    await websocket.accept()
    queue = bus.subscribe()
    logger.info("WebSocket connected: user=%s", claims.sub)

    try:
        while True:
            try:
                event = await asyncio.wait_for(queue.get(), timeout=HEARTBEAT_SECONDS)
            except TimeoutError:
                await websocket.send_json({"type": "heartbeat"})
                continue
            await websocket.send_json({"type": "event", "event": event.model_dump(mode="json")})
    except WebSocketDisconnect:
        logger.info("WebSocket disconnected: user=%s", claims.sub)
    finally:
        bus.unsubscribe(queue)
