"""
Exception hierarchy for the enrichment engine.

Per-item failures never surface as exceptions (the search client and the
resolver absorb them). Only the systemic ones below reach callers.
"""

from typing import Optional


class MulinkerError(Exception):
    """Base class for all mulinker errors."""


class CacheUnavailableError(MulinkerError):
    """Raised when the cache backend cannot be reached at the start of a run."""
    def __init__(self, backend: str, reason: Optional[str] = None):
        self.backend = backend
        self.reason = reason
        message = f"Cache backend '{backend}' is unavailable"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class InvalidTransitionError(MulinkerError):
    """Raised when an enrichment status change is not allowed."""
    def __init__(self, current: str, requested: str):
        self.current = current
        self.requested = requested
        super().__init__(f"Cannot move enrichment from '{current}' to '{requested}'")


class ReviewError(MulinkerError):
    """Raised when a review decision cannot be applied."""


class SessionNotFoundError(MulinkerError):
    """Raised when a session id is unknown or expired."""
    def __init__(self, session_id: str):
        self.session_id = session_id
        super().__init__(f"Session not found: {session_id}")


class UnsupportedTargetError(MulinkerError):
    """Raised for enrichment targets other than the supported catalog."""
    def __init__(self, target: str):
        self.target = target
        super().__init__(f"Invalid target '{target}'. Only MangaUpdates is supported.")


class EnrichmentCancelled(MulinkerError):
    """Raised by the driver when a run is aborted by its caller."""
