"""Best-effort forwarding of audit entries to an external collector.

The local chain is the source of truth. Forwarding runs in background tasks
so a slow or failing collector never delays or rolls back a local append.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import httpx

logger = logging.getLogger(__name__)


class WebhookForwarder:
    """POSTs JSON payloads to ``url`` without blocking the caller."""

    def __init__(
        self,
        url: str,
        timeout: float = 5.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._url = url
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self._pending: set[asyncio.Task[None]] = set()

    @property
    def url(self) -> str:
        return self._url

    def forward(self, payload: dict[str, Any]) -> None:
        """Schedule delivery of ``payload``; returns immediately."""
        try:
            task = asyncio.get_running_loop().create_task(self._post(payload))
        except RuntimeError:
            logger.debug("No running event loop, audit webhook delivery skipped")
            return
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _post(self, payload: dict[str, Any]) -> None:
        try:
            resp = await self._client.post(self._url, json=payload)
            resp.raise_for_status()
        except httpx.HTTPError as exc:
            logger.debug("Audit webhook delivery failed: %s", exc)

    async def drain(self) -> None:
        """Wait for all in-flight deliveries."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def close(self) -> None:
        """Flush pending deliveries and close the HTTP client."""
        await self.drain()
        await self._client.aclose()
