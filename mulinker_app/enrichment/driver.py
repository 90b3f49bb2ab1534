"""
================================================================================
mulinker - Enrichment Driver
================================================================================
Runs the resolver over a reading list in small concurrent batches.

  - Records that already carry a match are skipped (re-runs only process
    what is left)
  - Each batch of `concurrency` titles is resolved with asyncio.gather and
    fully awaited before the next one starts
  - on_progress(current, total) fires after every single record
  - Output order always equals input order

Usage:
    driver = EnrichmentDriver(resolver, concurrency=2)
    enriched = await driver.run(records, on_progress=print)
================================================================================
"""

import asyncio
import logging
from typing import Callable, List, Optional, Sequence

from ..errors import EnrichmentCancelled
from ..log import log
from ..matching.models import MatchKind, MatchResult, Subscription
from ..matching.resolver import MatchResolver

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int], None]


class EnrichmentDriver:
    """Bounded-concurrency batch enrichment of Subscription records."""

    DEFAULT_CONCURRENCY = 2

    def __init__(self, resolver: MatchResolver, concurrency: int = DEFAULT_CONCURRENCY):
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        self.resolver = resolver
        self.concurrency = concurrency

    @staticmethod
    def _check_cancelled(cancel_event) -> None:
        if cancel_event is not None and cancel_event.is_set():
            raise EnrichmentCancelled("Enrichment run was cancelled")

    async def _enrich_one(
        self,
        record: Subscription,
        cancel_event
    ) -> Subscription:
        """Resolve one record; failures become a NONE match."""
        self._check_cancelled(cancel_event)
        try:
            match = await self.resolver.resolve(record.title)
        except Exception as e:
            logger.error(f"Resolution failed for '{record.title}': {e}")
            match = MatchResult.unmatched(record.title)
        return record.with_match(match)

    async def run(
        self,
        records: Sequence[Subscription],
        on_progress: Optional[ProgressCallback] = None,
        cancel_event=None
    ) -> List[Subscription]:
        """
        Enrich a batch of records.

        Args:
            records: Records in display order
            on_progress: Called with (processed, total) after each record
            cancel_event: Anything with is_set(); checked before each request

        Returns:
            New list with a match attached to every record

        Raises:
            CacheUnavailableError: cache backend unreachable at start
            EnrichmentCancelled: cancel_event was set mid-run
        """
        self.resolver.ensure_ready()

        total = len(records)
        results: List[Subscription] = list(records)
        processed = 0

        def report() -> None:
            nonlocal processed
            processed += 1
            if on_progress:
                on_progress(processed, total)

        pending = []
        for index, record in enumerate(records):
            if record.is_enriched:
                report()
            else:
                pending.append(index)

        log(f"🔍 Enriching {len(pending)} of {total} items via MangaUpdates...")

        async def enrich_at(index: int) -> None:
            results[index] = await self._enrich_one(records[index], cancel_event)
            report()

        for start in range(0, len(pending), self.concurrency):
            self._check_cancelled(cancel_event)
            batch = pending[start:start + self.concurrency]
            await asyncio.gather(*(enrich_at(index) for index in batch))

        matched = sum(
            1 for record in results
            if record.match is not None and record.match.kind != MatchKind.NONE
        )
        log(f"✅ Enrichment finished: {matched}/{total} matched")
        return results
