"""
================================================================================
mulinker - Match Resolver
================================================================================
Resolves one reading-list title to a MangaUpdates series.

Algorithm:
  1. Cache lookup by normalized key → return on hit (no network)
  2. Search the catalog
  3. Any candidate whose canonical or alias title normalizes to the query
     → exact match (score 1.0), cached
  4. Otherwise score every candidate against its alias title (canonical as
     fallback) and keep the first best one
  5. Best score below MIN_SCORE → no match (not cached)
  6. Otherwise → fuzzy match, cached
================================================================================
"""

import logging
from typing import List, Optional, Tuple

from ..cache import MatchCache
from ..providers.base import BaseSearchClient
from .matcher import TitleScorer, normalize_title, cache_key
from .models import CandidateRecord, MatchKind, MatchResult

logger = logging.getLogger(__name__)


class MatchResolver:
    """
    Cache-first resolver of titles to catalog matches.

    resolve() does not raise for per-title problems: the search client
    already degrades failures to "no candidates", which resolve as NONE.
    """

    # Acceptance threshold (inclusive)
    MIN_SCORE = 0.4

    def __init__(
        self,
        search_client: BaseSearchClient,
        cache: MatchCache,
        scorer: Optional[TitleScorer] = None,
        min_score: float = MIN_SCORE
    ):
        self.search_client = search_client
        self.cache = cache
        self.scorer = scorer or TitleScorer()
        self.min_score = min_score

    def ensure_ready(self) -> None:
        """Fail fast if the cache backend is unreachable."""
        self.cache.check()

    @staticmethod
    def find_exact(query_norm: str, candidates: List[CandidateRecord]) -> Optional[CandidateRecord]:
        """First candidate whose canonical or alias title normalizes to the query."""
        for candidate in candidates:
            if normalize_title(candidate.title) == query_norm:
                return candidate
            if candidate.hit_title and normalize_title(candidate.hit_title) == query_norm:
                return candidate
        return None

    def find_best(
        self,
        title: str,
        candidates: List[CandidateRecord]
    ) -> Tuple[Optional[CandidateRecord], float]:
        """
        Highest-scoring candidate and its score.

        Ties keep the earlier candidate (search order).
        """
        best_candidate = None
        best_score = float('-inf')

        for candidate in candidates:
            score = self.scorer.score(title, candidate.scoring_title, candidate.category)
            if score > best_score:
                best_score = score
                best_candidate = candidate

        if best_candidate is None:
            return None, 0.0
        return best_candidate, best_score

    async def resolve(self, title: str) -> MatchResult:
        """
        Resolve a title to a MatchResult.

        Args:
            title: Title as it appears in the reading list

        Returns:
            MatchResult (kind NONE keeps the original title)
        """
        query_norm = normalize_title(title)
        if not query_norm:
            logger.debug(f"Nothing to match for '{title}'")
            return MatchResult.unmatched(title)

        key = cache_key(title)
        cached = self.cache.get(key)
        if cached is not None:
            logger.debug(f"Resolved '{title}' from cache → {cached.series_id}")
            return cached

        candidates = await self.search_client.search(title)
        if not candidates:
            logger.info(f"No candidates for '{title}'")
            return MatchResult.unmatched(title)

        exact = self.find_exact(query_norm, candidates)
        if exact is not None:
            result = MatchResult.from_candidate(exact, MatchKind.EXACT, 1.0)
            self.cache.put(key, result)
            logger.info(f"Exact match: '{title}' → '{exact.title}' ({exact.series_id})")
            return result

        best, best_score = self.find_best(title, candidates)

        if best is None or best_score < self.min_score:
            logger.info(
                f"No match above threshold {self.min_score:.2f} for '{title}'. "
                f"Best score was {best_score:.2f}"
            )
            return MatchResult.unmatched(title, score=max(best_score, 0.0))

        result = MatchResult.from_candidate(best, MatchKind.FUZZY, best_score)
        self.cache.put(key, result)
        logger.info(
            f"Fuzzy match: '{title}' → '{best.title}' "
            f"(score={best_score:.2f}, id={best.series_id})"
        )
        return result
