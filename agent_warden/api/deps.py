"""Process-wide warden lifecycle for the API."""

from __future__ import annotations

import logging

from fastapi import HTTPException, status

from agent_warden.config import settings
from agent_warden.runtime import Warden, build_warden

logger = logging.getLogger(__name__)

_warden: Warden | None = None


async def init_warden() -> Warden:
    """Build the warden from settings. Called on app startup.

    Overrides are loaded eagerly so an invalid override file fails startup
    instead of the first authorization call.
    """
    global _warden  # noqa: PLW0603

    warden = build_warden(settings)
    await warden.overrides.load()
    verification = await warden.audit.verify()
    if not verification.valid:
        logger.critical(
            "Audit chain broken at seq %s: %s", verification.broken_at_seq, verification.reason
        )
    _warden = warden
    logger.info("Warden initialized (data_dir=%s)", settings.data_dir)
    return warden


async def close_warden() -> None:
    """Flush and release resources. Called on app shutdown."""
    global _warden  # noqa: PLW0603

    if _warden is not None:
        await _warden.close()
        _warden = None
        logger.info("Warden closed")


def get_warden() -> Warden:
    """FastAPI dependency returning the live warden."""
    if _warden is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Warden is not initialized",
        )
    return _warden
