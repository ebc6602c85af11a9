"""Exception hierarchy for the authorization pipeline."""

from __future__ import annotations


class WardenError(Exception):
    """Base class for agent-warden errors."""


class StoreError(WardenError):
    """A persistence primitive failed (read, write or append)."""


class NotFoundError(WardenError):
    """A referenced record does not exist."""


class InvalidTransitionError(WardenError):
    """A lifecycle transition is not permitted from the current state."""


class ChainIntegrityError(WardenError):
    """The audit chain failed verification.

    Raised only by callers that need a hard failure; the chain itself never
    rewrites history in response to a broken link.
    """

    def __init__(self, message: str, broken_at_seq: int) -> None:
        super().__init__(message)
        self.broken_at_seq = broken_at_seq


class PatternCatalogError(WardenError):
    """The detection pattern catalog could not be loaded or compiled."""


class OperationBlockedError(WardenError):
    """Raised when a guarded call is attempted after a blocking decision."""

    def __init__(self, reason: str) -> None:
        super().__init__(f"Operation blocked: {reason}")
        self.reason = reason


class RiskAnalysisError(WardenError):
    """The external risk classifier failed or timed out."""
