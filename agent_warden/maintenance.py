"""Per-cycle housekeeping run from the host's heartbeat."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import TYPE_CHECKING

from pydantic import BaseModel, Field

from agent_warden.report import maybe_send_alert

if TYPE_CHECKING:
    from agent_warden.runtime import Warden

logger = logging.getLogger(__name__)


class MaintenanceSummary(BaseModel):
    ran_at: datetime
    permissions_swept: int = 0
    specs_expired: list[str] = Field(default_factory=list)
    baseline_updated: bool = False
    anomalies_last_hour: int = 0
    alert_sent: bool = False


async def run_maintenance_cycle(warden: Warden) -> MaintenanceSummary:
    """Sweep expired grants and specs, then refresh the baseline if it is due.

    The permission sweep runs every cycle so a stale grant is never mistaken
    for a live one between cycles.
    """
    now = warden.clock()
    summary = MaintenanceSummary(ran_at=now)
    summary.permissions_swept = await warden.permissions.sweep_expired()
    summary.specs_expired = await warden.tasks.check_expiry()
    summary.baseline_updated = warden.detector.maybe_update_baseline()

    summary.anomalies_last_hour = len(warden.detector.events(now - timedelta(hours=1)))
    summary.alert_sent = await maybe_send_alert(
        summary.anomalies_last_hour,
        webhook_url=warden.settings.risk_report_webhook_url,
        activity=warden.activity,
        detector=warden.detector,
        clock=warden.clock,
        threshold=warden.settings.risk_alert_threshold,
        timeout=warden.settings.webhook_timeout_seconds,
    )

    logger.info(
        "Maintenance cycle: %d permission(s) swept, %d spec(s) expired, baseline updated=%s",
        summary.permissions_swept,
        len(summary.specs_expired),
        summary.baseline_updated,
    )
    return summary
