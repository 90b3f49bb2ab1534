"""
================================================================================
mulinker - Enrichment Sessions
================================================================================
Per-session enrichment state and the manual review gate.

State machine (per target):

    idle ──start──▶ enriching ──complete──▶ complete
                        │
                        └──────fail───────▶ error

complete and error are terminal. Starting again is a no-op that reports
the current status.

Review gate: once complete, fuzzy matches scoring below 0.9 are flagged for
the user. One decision lists the indices to reject; rejected records go
back to the unmatched state, the rest are kept as they are.
================================================================================
"""

import time
import uuid
import logging
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, FrozenSet, Iterable, List, Optional, Sequence, Tuple

from ..errors import InvalidTransitionError, ReviewError, SessionNotFoundError
from ..matching.models import MatchKind, Subscription

logger = logging.getLogger(__name__)


class EnrichmentStatus(str, Enum):
    """Lifecycle of one enrichment target within a session."""
    IDLE = "idle"
    ENRICHING = "enriching"
    COMPLETE = "complete"
    ERROR = "error"


ALLOWED_TRANSITIONS: Dict[EnrichmentStatus, FrozenSet[EnrichmentStatus]] = {
    EnrichmentStatus.IDLE: frozenset({EnrichmentStatus.ENRICHING}),
    EnrichmentStatus.ENRICHING: frozenset({EnrichmentStatus.COMPLETE, EnrichmentStatus.ERROR}),
    EnrichmentStatus.COMPLETE: frozenset(),
    EnrichmentStatus.ERROR: frozenset(),
}


@dataclass(frozen=True)
class EnrichmentProgress:
    """What a polling client sees: {status, current, total}."""
    status: EnrichmentStatus
    current: int
    total: int
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            'status': self.status.value,
            'current': self.current,
            'total': self.total,
        }
        if self.error:
            data['error'] = self.error
        return data


@dataclass(frozen=True)
class StateSnapshot:
    """Consistent view of one target for a single poll."""
    progress: EnrichmentProgress
    records: List[Subscription]
    flagged: List[int]
    review_applied: bool


class SessionEnrichmentState:
    """
    Enrichment status, progress and records for one target.

    Thread-safe: the API thread reads while the enrichment loop writes.
    """

    # Fuzzy matches below this go to manual review
    REVIEW_THRESHOLD = 0.9

    def __init__(self, records: Sequence[Subscription], target: str = "mangaupdates"):
        self.target = target
        self._records: List[Subscription] = list(records)
        self._status = EnrichmentStatus.IDLE
        self._current = 0
        self._total = len(self._records)
        self._error: Optional[str] = None
        self._review_applied = False
        self._lock = threading.Lock()

    # =========================================================================
    # STATE
    # =========================================================================

    @property
    def status(self) -> EnrichmentStatus:
        return self._status

    @property
    def records(self) -> List[Subscription]:
        with self._lock:
            return list(self._records)

    def _transition(self, new_status: EnrichmentStatus) -> None:
        """Move to new_status; caller holds the lock."""
        if new_status not in ALLOWED_TRANSITIONS[self._status]:
            raise InvalidTransitionError(self._status.value, new_status.value)
        logger.debug(f"{self.target}: {self._status.value} → {new_status.value}")
        self._status = new_status

    def progress(self) -> EnrichmentProgress:
        with self._lock:
            return EnrichmentProgress(self._status, self._current, self._total, self._error)

    def start(self) -> Tuple[bool, EnrichmentProgress]:
        """
        Request enrichment.

        Returns:
            (started, progress). started is False when the target already
            left idle; nothing changes in that case.
        """
        with self._lock:
            if self._status != EnrichmentStatus.IDLE:
                return False, EnrichmentProgress(self._status, self._current, self._total, self._error)
            self._transition(EnrichmentStatus.ENRICHING)
            self._current = 0
            self._total = len(self._records)
            return True, EnrichmentProgress(self._status, self._current, self._total)

    def update_progress(self, current: int, total: int) -> None:
        """Progress callback for the driver. Ignored outside enriching."""
        with self._lock:
            if self._status != EnrichmentStatus.ENRICHING:
                return
            self._current = max(self._current, current)
            self._total = total

    def complete(self, records: Sequence[Subscription]) -> None:
        """Store the enriched records and finish."""
        with self._lock:
            self._transition(EnrichmentStatus.COMPLETE)
            self._records = list(records)
            self._total = len(self._records)
            self._current = self._total

    def fail(self, reason: str) -> bool:
        """
        Mark the run as failed.

        Returns False (and changes nothing) if the run already ended, so a
        cancellation racing the run's own error handling is harmless.
        """
        with self._lock:
            if self._status != EnrichmentStatus.ENRICHING:
                return False
            self._transition(EnrichmentStatus.ERROR)
            self._error = reason
            return True

    # =========================================================================
    # REVIEW GATE
    # =========================================================================

    @classmethod
    def needs_review(cls, record: Subscription) -> bool:
        match = record.match
        return (
            match is not None
            and match.kind == MatchKind.FUZZY
            and match.series_id is not None
            and match.score < cls.REVIEW_THRESHOLD
        )

    def _flagged_locked(self) -> List[int]:
        if self._status != EnrichmentStatus.COMPLETE:
            return []
        return [i for i, record in enumerate(self._records) if self.needs_review(record)]

    def flagged_indices(self) -> List[int]:
        """Indices of records awaiting manual confirmation."""
        with self._lock:
            return self._flagged_locked()

    def snapshot(self) -> StateSnapshot:
        """Progress, records and review flags read under one lock."""
        with self._lock:
            return StateSnapshot(
                progress=EnrichmentProgress(self._status, self._current, self._total, self._error),
                records=list(self._records),
                flagged=self._flagged_locked(),
                review_applied=self._review_applied,
            )

    @property
    def review_applied(self) -> bool:
        return self._review_applied

    def apply_review(self, rejected_indices: Iterable[Any]) -> List[int]:
        """
        Apply the user's review decision.

        Args:
            rejected_indices: Record indices to reset. Anything that is not
                an in-range integer is skipped.

        Returns:
            Sorted indices that were actually reset

        Raises:
            ReviewError: enrichment not complete, or decision already made
        """
        with self._lock:
            if self._status != EnrichmentStatus.COMPLETE:
                raise ReviewError(
                    f"Review is only possible once enrichment is complete "
                    f"(status: {self._status.value})"
                )
            if self._review_applied:
                raise ReviewError("A review decision was already applied to this session")

            rejected = set()
            for index in rejected_indices:
                if isinstance(index, bool) or not isinstance(index, int):
                    logger.warning(f"Ignoring non-integer review index: {index!r}")
                    continue
                if not 0 <= index < len(self._records):
                    logger.warning(f"Ignoring out-of-range review index: {index}")
                    continue
                rejected.add(index)

            for index in rejected:
                self._records[index] = self._records[index].reject_match()

            self._review_applied = True
            return sorted(rejected)


# =============================================================================
# SESSION REGISTRY
# =============================================================================

@dataclass
class EnrichmentSession:
    """One extraction run: its records and enrichment state per target."""
    id: str
    state: SessionEnrichmentState
    created_at: float
    last_access: float
    user_id: Optional[str] = None
    meta: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Polling payload: progress, merged records, review flags."""
        snapshot = self.state.snapshot()
        return {
            'sessionId': self.id,
            'enrichment': {self.state.target: snapshot.progress.to_dict()},
            'subscriptions': [record.to_dict() for record in snapshot.records],
            'review': snapshot.flagged,
            'reviewApplied': snapshot.review_applied,
        }


class SessionStore:
    """
    In-memory session registry with idle expiry.

    Expired sessions are purged on access and whenever the owner calls
    purge_expired(); on_expire lets the owner cancel any enrichment still
    running for them.
    """

    def __init__(
        self,
        ttl: int = 3600,
        on_expire: Optional[Callable[[EnrichmentSession], None]] = None,
        clock: Callable[[], float] = time.time
    ):
        self.ttl = ttl
        self.on_expire = on_expire
        self._clock = clock
        self._sessions: Dict[str, EnrichmentSession] = {}
        self._lock = threading.Lock()

    def create(
        self,
        records: Sequence[Subscription],
        target: str = "mangaupdates",
        user_id: Optional[str] = None
    ) -> EnrichmentSession:
        self.purge_expired()
        now = self._clock()
        session = EnrichmentSession(
            id=f"session-{uuid.uuid4().hex[:16]}",
            state=SessionEnrichmentState(records, target=target),
            created_at=now,
            last_access=now,
            user_id=user_id,
        )
        with self._lock:
            self._sessions[session.id] = session
        logger.info(f"Created {session.id} with {len(records)} records")
        return session

    def get(self, session_id: str) -> EnrichmentSession:
        self.purge_expired()
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                raise SessionNotFoundError(session_id)
            session.last_access = self._clock()
            return session

    def remove(self, session_id: str) -> Optional[EnrichmentSession]:
        with self._lock:
            return self._sessions.pop(session_id, None)

    def purge_expired(self) -> int:
        """Drop sessions idle for longer than ttl. Returns how many went."""
        if self.ttl <= 0:
            return 0
        now = self._clock()
        with self._lock:
            expired = [
                session for session in self._sessions.values()
                if now - session.last_access > self.ttl
            ]
            for session in expired:
                del self._sessions[session.id]

        for session in expired:
            logger.info(f"Session expired: {session.id}")
            if self.on_expire:
                self.on_expire(session)
        return len(expired)

    def __len__(self) -> int:
        return len(self._sessions)

    def __iter__(self):
        with self._lock:
            return iter(list(self._sessions.values()))
