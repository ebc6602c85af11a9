"""Stateful anomaly detection against a learned behavioral baseline.

The detector is an explicit object owned by the host process and handed to
the decision engine; it is not a module-level singleton. Its rolling
activity log and baseline are shared mutable state, so every read-modify-
write happens under a single re-entrant lock. No I/O is performed while the
lock is held: notifications go to the in-process event bus.
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime, timedelta
from pathlib import PurePosixPath
from typing import TYPE_CHECKING, Any
from urllib.parse import urlsplit

from pydantic import BaseModel, Field

from agent_warden.anomaly.models import (
    AnomalyAction,
    AnomalyConfig,
    AnomalyEvent,
    AnomalyType,
    BehavioralBaseline,
    Severity,
)
from agent_warden.clock import utc_now
from agent_warden.events import SecurityEventKind
from agent_warden.patterns import default_catalog

if TYPE_CHECKING:
    from agent_warden.clock import Clock
    from agent_warden.events import SecurityEventBus
    from agent_warden.patterns import PatternCatalog, PatternEntry

logger = logging.getLogger(__name__)

RATE_WINDOW = timedelta(hours=1)
MAX_EVENTS = 1000


class ActivityRecord(BaseModel):
    """One entry in the detector's rolling activity log."""

    timestamp: datetime
    type: str
    details: dict[str, Any] = Field(default_factory=dict)


class AnomalyDetector:
    """Pattern and rate checks with a ``running <-> paused`` state machine.

    Each ``check_*`` method is independently callable and returns an
    ``AnomalyEvent`` or ``None``. Any emergency-severity event pauses the
    detector when ``auto_pause`` is on; only :meth:`resume` clears it.
    """

    def __init__(
        self,
        config: AnomalyConfig | None = None,
        *,
        baseline: BehavioralBaseline | None = None,
        catalog: PatternCatalog | None = None,
        bus: SecurityEventBus | None = None,
        clock: Clock = utc_now,
    ) -> None:
        self.config = config or AnomalyConfig()
        self.baseline = baseline or BehavioralBaseline()
        self._catalog = catalog or default_catalog()
        self._bus = bus
        self._clock = clock
        self._lock = threading.RLock()
        self._activity: list[ActivityRecord] = []
        self._events: list[AnomalyEvent] = []
        self._paused = False
        self._pause_reason: str | None = None

    # ── Activity log ────────────────────────────────────────────

    def log_activity(self, activity_type: str, details: dict[str, Any] | None = None) -> None:
        """Record an activity and drop entries older than the baseline window."""
        now = self._clock()
        cutoff = now - timedelta(hours=self.config.baseline_window_hours)
        with self._lock:
            self._activity.append(ActivityRecord(timestamp=now, type=activity_type, details=details or {}))
            self._activity = [a for a in self._activity if a.timestamp > cutoff]

    def recent_count(self, activity_type: str, window: timedelta = RATE_WINDOW) -> int:
        since = self._clock() - window
        with self._lock:
            return sum(1 for a in self._activity if a.type == activity_type and a.timestamp > since)

    # ── Checks ──────────────────────────────────────────────────

    def check_rate_anomaly(self, activity_type: str) -> AnomalyEvent | None:
        count = self.recent_count(activity_type)
        with self._lock:
            expected = self.baseline.rate_for(activity_type)
        if count <= expected * self.config.rate_spike_tolerance:
            return None
        return self._raise(
            AnomalyType.RATE_SPIKE,
            Severity.WARNING,
            "autopilot",
            f"Activity rate spike detected: {count} {activity_type} in last hour "
            f"(baseline: {expected:g})",
            {"activity_type": activity_type, "count": count, "baseline": expected},
            AnomalyAction.BLOCKED if self.config.auto_block else AnomalyAction.WARNED,
        )

    def check_file_access(self, file_path: str) -> AnomalyEvent | None:
        for entry in self._catalog.sensitive_paths:
            if entry.search(file_path):
                return self._raise(
                    AnomalyType.UNUSUAL_ACCESS,
                    Severity.CRITICAL,
                    "filesystem",
                    f"Access to sensitive file path: {file_path}",
                    {"file_path": file_path, "pattern": entry.regex.pattern},
                    AnomalyAction.BLOCKED,
                )

        with self._lock:
            path = PurePosixPath(file_path)
            known = any(path.is_relative_to(prefix) for prefix in self.baseline.known_path_prefixes)
        if known:
            return None
        return self._raise(
            AnomalyType.UNUSUAL_ACCESS,
            Severity.WARNING,
            "filesystem",
            f"Access to unknown file path: {file_path}",
            {"file_path": file_path},
            AnomalyAction.WARNED,
        )

    def check_network_request(self, url: str, method: str = "GET") -> AnomalyEvent | None:
        domain = _hostname(url)
        if domain is None:
            return self._raise(
                AnomalyType.NETWORK_ANOMALY,
                Severity.WARNING,
                "network",
                f"Invalid URL format: {url}",
                {"url": url, "method": method},
                AnomalyAction.BLOCKED,
            )

        with self._lock:
            known = domain in self.baseline.known_domains
        if known:
            return None

        malicious = any(entry.search(domain) for entry in self._catalog.tunnel_domains)
        severity = Severity.CRITICAL if malicious else Severity.WARNING
        return self._raise(
            AnomalyType.NETWORK_ANOMALY,
            severity,
            "network",
            f"Request to unknown domain: {domain}",
            {"url": url, "domain": domain, "method": method},
            AnomalyAction.BLOCKED if malicious else AnomalyAction.WARNED,
        )

    def check_self_modification(self, content: str) -> AnomalyEvent | None:
        entry, match = _first_match(self._catalog.self_modification, content)
        if entry is None:
            return None
        return self._raise(
            AnomalyType.SELF_MODIFICATION,
            Severity.EMERGENCY,
            "security",
            "Self-modification attempt detected",
            {"pattern": entry.regex.pattern, "match": match},
            AnomalyAction.BLOCKED,
        )

    def check_exfiltration(self, content: str) -> AnomalyEvent | None:
        entry, match = _first_match(self._catalog.exfiltration, content)
        if entry is None:
            return None
        return self._raise(
            AnomalyType.EXFILTRATION_ATTEMPT,
            Severity.CRITICAL,
            "security",
            "Potential data exfiltration attempt detected",
            {"pattern": entry.regex.pattern, "match": match},
            AnomalyAction.BLOCKED,
        )

    def check_credential_exposure(self, content: str) -> AnomalyEvent | None:
        entry, _ = _first_match(self._catalog.credentials, content)
        if entry is None:
            return None
        # The matched secret itself is never copied into the event
        kind = entry.name or "credential"
        return self._raise(
            AnomalyType.CREDENTIAL_EXPOSURE,
            Severity.CRITICAL,
            "security",
            f"Credential exposure detected: {kind}",
            {"credential_type": kind},
            AnomalyAction.BLOCKED,
        )

    def check_recursive_pattern(self, content: str) -> AnomalyEvent | None:
        entry, _ = _first_match(self._catalog.recursive, content)
        if entry is None:
            return None
        return self._raise(
            AnomalyType.RECURSIVE_PROMPT,
            Severity.WARNING,
            "execution",
            "Recursive pattern detected",
            {"pattern": entry.regex.pattern},
            AnomalyAction.WARNED,
        )

    def check_content(self, content: str, source: str | None = None) -> list[AnomalyEvent]:
        """Run every content check and collect the anomalies raised."""
        checks = (
            self.check_self_modification,
            self.check_exfiltration,
            self.check_credential_exposure,
            self.check_recursive_pattern,
        )
        found = [event for check in checks if (event := check(content)) is not None]
        if found and source:
            logger.debug("%d content anomalies from source %s", len(found), source)
        return found

    # ── Pause state ─────────────────────────────────────────────

    def pause(self, reason: str = "Paused by operator") -> None:
        with self._lock:
            if self._paused:
                return
            self._paused = True
            self._pause_reason = reason
        logger.warning("Agent execution PAUSED: %s", reason)
        self._publish(SecurityEventKind.AGENT_PAUSED, reason=reason)

    def resume(self) -> None:
        with self._lock:
            if not self._paused:
                return
            self._paused = False
            self._pause_reason = None
        logger.info("Agent execution RESUMED")
        self._publish(SecurityEventKind.AGENT_RESUMED)

    def is_paused(self) -> bool:
        with self._lock:
            return self._paused

    @property
    def pause_reason(self) -> str | None:
        return self._pause_reason

    # ── Review surface ──────────────────────────────────────────

    def events(self, since: datetime | None = None) -> list[AnomalyEvent]:
        with self._lock:
            if since is None:
                return list(self._events)
            return [e for e in self._events if e.timestamp >= since]

    def pending_reviews(self) -> list[AnomalyEvent]:
        with self._lock:
            return [e for e in self._events if e.requires_review]

    def mark_reviewed(self, event_id: str) -> bool:
        with self._lock:
            for event in self._events:
                if event.id == event_id:
                    event.requires_review = False
                    return True
        return False

    def add_known_domain(self, domain: str) -> None:
        with self._lock:
            self.baseline.known_domains.add(domain.lower())

    def add_known_path(self, path: str) -> None:
        with self._lock:
            self.baseline.known_path_prefixes.add(path)

    def update_config(self, **updates: Any) -> AnomalyConfig:
        with self._lock:
            self.config = self.config.model_copy(update=updates)
            return self.config

    # ── Baseline learning ───────────────────────────────────────

    def update_baseline(self) -> dict[str, float]:
        """Fold the last hour of activity into the baseline with an EMA.

        ``smoothed = alpha * recent + (1 - alpha) * smoothed`` for every
        activity type in the baseline or seen in the last hour.
        """
        now = self._clock()
        since = now - RATE_WINDOW
        alpha = self.config.baseline_alpha
        with self._lock:
            counts: dict[str, int] = {}
            for record in self._activity:
                if record.timestamp > since:
                    counts[record.type] = counts.get(record.type, 0) + 1
            for activity_type in set(self.baseline.activity_rates) | set(counts):
                previous = self.baseline.rate_for(activity_type)
                recent = counts.get(activity_type, 0)
                self.baseline.activity_rates[activity_type] = alpha * recent + (1 - alpha) * previous
            self.baseline.last_updated_at = now
            rates = dict(self.baseline.activity_rates)

        logger.info(
            "Baseline updated: %s",
            ", ".join(f"{k}={v:.1f}/hr" for k, v in sorted(rates.items())),
        )
        return rates

    def maybe_update_baseline(self) -> bool:
        """Run :meth:`update_baseline` if the update interval has elapsed."""
        interval = timedelta(minutes=self.config.baseline_update_interval_minutes)
        with self._lock:
            last = self.baseline.last_updated_at
        if last is not None and self._clock() - last < interval:
            return False
        self.update_baseline()
        return True

    def record_anomaly(
        self,
        anomaly_type: AnomalyType,
        severity: Severity,
        source: str,
        description: str,
        context: dict[str, Any] | None = None,
        action: AnomalyAction = AnomalyAction.LOGGED,
    ) -> AnomalyEvent:
        """Register an anomaly found by another inspector (sanitizer, leak scan)."""
        return self._raise(anomaly_type, severity, source, description, context or {}, action)

    # ── Internals ───────────────────────────────────────────────

    def _raise(
        self,
        anomaly_type: AnomalyType,
        severity: Severity,
        source: str,
        description: str,
        context: dict[str, Any],
        action: AnomalyAction,
    ) -> AnomalyEvent:
        event = AnomalyEvent(
            timestamp=self._clock(),
            type=anomaly_type,
            severity=severity,
            source=source,
            description=description,
            context=context,
            action_taken=action,
            requires_review=severity in (Severity.CRITICAL, Severity.EMERGENCY),
        )
        with self._lock:
            self._events.append(event)
            if len(self._events) > MAX_EVENTS:
                del self._events[: len(self._events) - MAX_EVENTS]

        logger.warning("Anomaly %s [%s]: %s", anomaly_type, severity, description)
        self._publish(SecurityEventKind.ANOMALY_DETECTED, anomaly=event.model_dump(mode="json"))

        if severity == Severity.EMERGENCY and self.config.auto_pause:
            self.pause(f"Emergency anomaly: {description}")
        return event

    def _publish(self, kind: SecurityEventKind, **payload: Any) -> None:
        if self._bus is not None:
            self._bus.emit(kind, **payload)


def _hostname(url: str) -> str | None:
    candidate = url if "://" in url else f"//{url}"
    try:
        host = urlsplit(candidate).hostname
    except ValueError:
        return None
    return host or None


def _first_match(
    entries: list[PatternEntry], content: str
) -> tuple[PatternEntry | None, str | None]:
    for entry in entries:
        match = entry.search(content)
        if match:
            return entry, match.group(0)
    return None, None
