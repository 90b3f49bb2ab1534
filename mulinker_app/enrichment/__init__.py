"""
Batch enrichment of reading lists and per-session enrichment state.
"""

from .driver import EnrichmentDriver
from .session import (
    EnrichmentProgress, EnrichmentSession, EnrichmentStatus,
    SessionEnrichmentState, SessionStore, StateSnapshot,
)

__all__ = [
    'EnrichmentDriver', 'EnrichmentProgress', 'EnrichmentSession',
    'EnrichmentStatus', 'SessionEnrichmentState', 'SessionStore', 'StateSnapshot',
]
