"""Content inspection: prompt-injection detection and credential-leak redaction.

Incoming content (feeds, email, web pages) is scanned for injection
patterns and, in strict mode, high and critical matches are replaced with
``[BLOCKED:<type>]``. Outgoing content is scanned for credential material,
which is redacted as ``[REDACTED:<type>]``.
"""

from __future__ import annotations

import html
import logging
import re
from enum import StrEnum
from typing import TYPE_CHECKING

from pydantic import BaseModel, Field

from agent_warden.patterns import default_catalog

if TYPE_CHECKING:
    from agent_warden.patterns import PatternCatalog

logger = logging.getLogger(__name__)

_HIDDEN_CHARS = re.compile(r"[\u200b-\u200f\u2028-\u202f\u2060-\u206f\ufeff]")
_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")
_TAGS = re.compile(r"<[^>]*>")
_WHITESPACE = re.compile(r"\s+")

QUICK_INJECTION_MARKERS = (
    "ignore previous",
    "ignore all",
    "disregard",
    "forget everything",
    "new instructions",
    "you are now",
    "pretend you",
    "system prompt",
    "reveal your",
    "jailbreak",
    "dan mode",
)


class ThreatSeverity(StrEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ThreatDetection(BaseModel):
    type: str
    severity: ThreatSeverity
    pattern: str
    match: str
    position: int
    description: str


class SanitizationResult(BaseModel):
    safe: bool
    sanitized: str
    threats: list[ThreatDetection] = Field(default_factory=list)
    confidence: float = 1.0
    # External content is always untrusted
    tainted: bool = True

    @property
    def critical_threats(self) -> list[ThreatDetection]:
        return [t for t in self.threats if t.severity == ThreatSeverity.CRITICAL]


class OutgoingScan(BaseModel):
    safe: bool
    sanitized: str
    leaks: list[str] = Field(default_factory=list)


class ContentSanitizer:
    def __init__(self, strict_mode: bool = True, catalog: PatternCatalog | None = None) -> None:
        self.strict_mode = strict_mode
        self._catalog = catalog or default_catalog()

    def sanitize_incoming(self, content: str, source: str = "unknown") -> SanitizationResult:
        threats: list[ThreatDetection] = []
        for entry in self._catalog.injection:
            for match in entry.regex.finditer(content):
                threats.append(
                    ThreatDetection(
                        type=entry.type or "unknown",
                        severity=ThreatSeverity(entry.severity or "medium"),
                        pattern=entry.regex.pattern,
                        match=match.group(0),
                        position=match.start(),
                        description=entry.description or "",
                    )
                )

        sanitized = self._neutralize(content, threats) if self.strict_mode else content
        sanitized = remove_hidden_characters(sanitized)

        critical = sum(1 for t in threats if t.severity == ThreatSeverity.CRITICAL)
        high = sum(1 for t in threats if t.severity == ThreatSeverity.HIGH)
        medium = sum(1 for t in threats if t.severity == ThreatSeverity.MEDIUM)

        confidence = max(0.0, 1 - (critical * 0.4 + high * 0.2 + medium * 0.1))
        safe = critical == 0 and high == 0 and (self.strict_mode or medium == 0)

        logger.debug("Sanitized content from %s: %d threats, safe=%s", source, len(threats), safe)
        return SanitizationResult(
            safe=safe,
            sanitized=sanitized,
            threats=threats,
            confidence=confidence,
        )

    def sanitize_outgoing(self, content: str) -> OutgoingScan:
        """Redact credential material before content leaves the system."""
        leaks: list[str] = []
        sanitized = content
        for entry in self._catalog.credential_leaks:
            if entry.regex.search(content):
                kind = entry.type or "credential"
                leaks.append(f"{kind}: {entry.description or kind}")
                sanitized = entry.regex.sub(f"[REDACTED:{kind}]", sanitized)

        if leaks:
            logger.warning("Blocked credential leak: %s", ", ".join(leaks))
        return OutgoingScan(safe=not leaks, sanitized=sanitized, leaks=leaks)

    @staticmethod
    def is_likely_injection(content: str) -> bool:
        """Cheap substring pre-check, no regex."""
        lowered = content.lower()
        return any(marker in lowered for marker in QUICK_INJECTION_MARKERS)

    @staticmethod
    def extract_safe_text(markup: str) -> str:
        """Strip tags, decode entities and hidden characters from HTML."""
        text = html.unescape(_TAGS.sub(" ", markup))
        text = remove_hidden_characters(text)
        return _WHITESPACE.sub(" ", text).strip()

    @staticmethod
    def _neutralize(content: str, threats: list[ThreatDetection]) -> str:
        result = content
        # Right to left so earlier positions stay valid; overlapping spans are
        # covered by the first replacement.
        boundary = len(content) + 1
        for threat in sorted(threats, key=lambda t: t.position, reverse=True):
            if threat.severity not in (ThreatSeverity.CRITICAL, ThreatSeverity.HIGH):
                continue
            end = threat.position + len(threat.match)
            if end > boundary:
                continue
            result = result[: threat.position] + f"[BLOCKED:{threat.type}]" + result[end:]
            boundary = threat.position
        return result


def remove_hidden_characters(content: str) -> str:
    """Drop zero-width characters and control characters except tab/newline/CR."""
    return _CONTROL_CHARS.sub("", _HIDDEN_CHARS.sub("", content))
