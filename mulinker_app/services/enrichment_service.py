"""
Enrichment Service - sessions, background runs and review for the API.

Owns the long-lived pieces that every run shares:
  - one MatchCache
  - one AdaptiveRateLimiter and MangaUpdates client (single pacing point)
  - one asyncio event loop on a background thread

Flask routes are sync; runs are submitted to the loop with
run_coroutine_threadsafe and polled through the session state.

Usage:
    service = EnrichmentService(Settings.from_env())
    session = service.create_session([Subscription("One Piece")])
    service.start(session.id, "mangaupdates")
    ...
    service.close()
"""

import asyncio
import logging
import threading
from concurrent.futures import Future
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from ..cache import MatchCache, build_cache
from ..config import Settings
from ..enrichment.driver import EnrichmentDriver
from ..enrichment.session import EnrichmentProgress, EnrichmentSession, SessionStore
from ..errors import EnrichmentCancelled, InvalidTransitionError, UnsupportedTargetError
from ..log import log
from ..matching.models import Subscription
from ..matching.resolver import MatchResolver
from ..providers.base import AdaptiveRateLimiter, BaseSearchClient
from ..providers.mangaupdates import MangaUpdatesClient

logger = logging.getLogger(__name__)

SUPPORTED_TARGETS = ('mangaupdates',)


class EnrichmentService:
    """Session registry plus background enrichment runner."""

    def __init__(
        self,
        settings: Settings,
        cache: Optional[MatchCache] = None,
        search_client: Optional[BaseSearchClient] = None,
        rate_limiter: Optional[AdaptiveRateLimiter] = None
    ):
        self.settings = settings
        self.cache = cache or build_cache(settings)
        self.rate_limiter = rate_limiter or AdaptiveRateLimiter.from_settings(settings.rate_limit)
        self.search_client = search_client or MangaUpdatesClient(
            self.rate_limiter,
            base_url=settings.mu_api_url,
            page_size=settings.search_page_size,
            max_attempts=settings.rate_limit.max_attempts,
            timeout=settings.request_timeout,
        )
        self.resolver = MatchResolver(self.search_client, self.cache)
        self.sessions = SessionStore(ttl=settings.session_ttl, on_expire=self._on_session_expired)

        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._thread: Optional[threading.Thread] = None
        self._runs: Dict[str, Tuple[Future, threading.Event, EnrichmentSession]] = {}
        self._purger: Optional[Future] = None
        self._lock = threading.Lock()
        self._closed = False

    # =========================================================================
    # EVENT LOOP
    # =========================================================================

    def _ensure_loop(self) -> asyncio.AbstractEventLoop:
        with self._lock:
            if self._loop is None:
                self._loop = asyncio.new_event_loop()
                self._thread = threading.Thread(
                    target=self._loop.run_forever,
                    name="mulinker-enrichment",
                    daemon=True,
                )
                self._thread.start()
                if self.settings.session_purge_interval > 0:
                    self._purger = asyncio.run_coroutine_threadsafe(
                        self._purge_sessions(self.settings.session_purge_interval), self._loop
                    )
            return self._loop

    # =========================================================================
    # SESSIONS
    # =========================================================================

    def create_session(
        self,
        records: Sequence[Subscription],
        user_id: Optional[str] = None
    ) -> EnrichmentSession:
        self._ensure_loop()
        return self.sessions.create(records, target=SUPPORTED_TARGETS[0], user_id=user_id)

    def get_session(self, session_id: str) -> EnrichmentSession:
        return self.sessions.get(session_id)

    def delete_session(self, session_id: str) -> bool:
        self.cancel(session_id)
        return self.sessions.remove(session_id) is not None

    def _on_session_expired(self, session: EnrichmentSession) -> None:
        self.cancel(session.id)

    async def _purge_sessions(self, interval: float) -> None:
        """Drop idle sessions (and cancel their runs) every `interval` seconds."""
        while True:
            await asyncio.sleep(interval)
            try:
                purged = self.sessions.purge_expired()
            except Exception:
                logger.exception("Session purge failed")
                continue
            if purged:
                log(f"🧹 Purged {purged} expired session(s)")

    # =========================================================================
    # ENRICHMENT
    # =========================================================================

    def start(self, session_id: str, target: str) -> Tuple[bool, EnrichmentProgress]:
        """
        Start enrichment for a session (idempotent).

        Returns:
            (started, progress); started is False when a run was already
            started, finished or failed for this session.
        """
        if target not in SUPPORTED_TARGETS:
            raise UnsupportedTargetError(target)

        session = self.sessions.get(session_id)
        started, progress = session.state.start()
        if not started:
            return False, progress

        cancel_event = threading.Event()
        loop = self._ensure_loop()
        future = asyncio.run_coroutine_threadsafe(self._run(session, cancel_event), loop)
        with self._lock:
            self._runs[session.id] = (future, cancel_event, session)
        future.add_done_callback(lambda _f, sid=session.id: self._forget_run(sid))

        log(f"🚀 Enrichment started for {session.id} ({progress.total} items)")
        return True, progress

    def _forget_run(self, session_id: str) -> None:
        with self._lock:
            self._runs.pop(session_id, None)

    async def _run(self, session: EnrichmentSession, cancel_event: threading.Event) -> None:
        state = session.state
        driver = EnrichmentDriver(self.resolver, concurrency=self.settings.concurrency)
        try:
            enriched = await driver.run(state.records, state.update_progress, cancel_event)
        except EnrichmentCancelled:
            state.fail("cancelled")
            log(f"⏹️ Enrichment cancelled for {session.id}")
            return
        except asyncio.CancelledError:
            state.fail("cancelled")
            log(f"⏹️ Enrichment cancelled for {session.id}")
            raise
        except Exception as e:
            logger.exception(f"Enrichment failed for {session.id}")
            state.fail(str(e) or e.__class__.__name__)
            return
        finally:
            self.cache.flush()
        try:
            state.complete(enriched)
        except InvalidTransitionError:
            # Cancelled from another thread while the last batch finished
            logger.info(f"Discarding results for {session.id}: run was cancelled")

    def cancel(self, session_id: str) -> bool:
        """Abort a running enrichment. Already cached results are kept."""
        with self._lock:
            run = self._runs.pop(session_id, None)
        if run is None:
            return False
        future, cancel_event, session = run
        cancel_event.set()
        future.cancel()
        # A run cancelled before it started never reaches its own handler
        session.state.fail("cancelled")
        return True

    def wait(self, session_id: str, timeout: Optional[float] = None) -> None:
        """Block until the session's run finishes (tests and CLI use)."""
        with self._lock:
            run = self._runs.get(session_id)
        if run is None:
            return
        future = run[0]
        try:
            future.result(timeout=timeout)
        except Exception as e:
            logger.debug(f"Run for {session_id} ended with {e.__class__.__name__}")

    # =========================================================================
    # REVIEW
    # =========================================================================

    def flagged(self, session_id: str) -> List[Dict[str, Any]]:
        session = self.sessions.get(session_id)
        records = session.state.records
        return [
            {'index': index, **records[index].to_dict()}
            for index in session.state.flagged_indices()
        ]

    def apply_review(self, session_id: str, rejected_indices: Iterable[Any]) -> List[int]:
        session = self.sessions.get(session_id)
        rejected = session.state.apply_review(rejected_indices)
        log(f"📝 Review applied for {session_id}: {len(rejected)} rejected")
        return rejected

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    def stats(self) -> Dict[str, Any]:
        limiter = self.rate_limiter.snapshot()
        return {
            'sessions': len(self.sessions),
            'active_runs': len(self._runs),
            'cache': self.cache.stats(),
            'rate_limit': {
                'min_delay': limiter.min_delay,
                'current_delay': round(limiter.current_delay, 3),
            },
        }

    def close(self) -> None:
        """Cancel runs, close the HTTP client, stop the loop, flush the cache."""
        if self._closed:
            return
        self._closed = True

        with self._lock:
            session_ids = list(self._runs)
        for session_id in session_ids:
            self.cancel(session_id)

        if self._purger is not None:
            self._purger.cancel()
            self._purger = None

        loop = self._loop
        if loop is not None:
            try:
                asyncio.run_coroutine_threadsafe(self.search_client.close(), loop).result(timeout=5)
            except Exception as e:
                logger.warning(f"Closing search client failed: {e}")
            loop.call_soon_threadsafe(loop.stop)
            if self._thread is not None:
                self._thread.join(timeout=5)
            if not loop.is_running():
                loop.close()
            self._loop = None

        self.cache.close()
        logger.info("Enrichment service closed")
