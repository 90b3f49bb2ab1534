"""
================================================================================
mulinker - Title Matcher
================================================================================
Normalization and similarity scoring for resolving reading-list titles
against MangaUpdates search results.

Problem:
  A reading list says "Attack on Titan". The catalog returns "Attack on
  Titan", "Attack on Titan: Colossal Edition" (an anthology), a light novel
  spin-off, ... We need a 0-1 confidence for each candidate.

Solution:
  Normalized equality short-circuits to 1.0. Otherwise the score is the
  better of a token-set Jaccard index and a Levenshtein ratio (rapidfuzz),
  minus a penalty when the candidate is an anthology/doujinshi/novel and the
  query gives no hint of that.
================================================================================
"""

import re
import logging
from typing import Optional, Dict
from rapidfuzz.distance import Levenshtein


logger = logging.getLogger(__name__)


# =============================================================================
# NORMALIZATION
# =============================================================================

_WHITESPACE = re.compile(r'\s+')
_NON_ALNUM = re.compile(r'[^a-z0-9 ]')


def normalize_title(title: Optional[str]) -> str:
    """
    Canonicalize a title for comparison.

    Steps:
      1. Convert to lowercase
      2. Turn any whitespace into a plain space
      3. Drop everything outside [a-z0-9 ]
      4. Collapse runs of spaces and strip

    Examples:
        "One Piece!" → "one piece"
        "Attack on Titan: Colossal Edition" → "attack on titan colossal edition"
        "ワンピース" → ""  (no match possible)
    """
    if not title:
        return ""

    normalized = _WHITESPACE.sub(' ', title.lower())
    normalized = _NON_ALNUM.sub('', normalized)
    return _WHITESPACE.sub(' ', normalized).strip()


def cache_key(title: Optional[str]) -> str:
    """Cache key for a title: the normalized form without spaces ("onepiece")."""
    return normalize_title(title).replace(' ', '')


# =============================================================================
# SCORING
# =============================================================================

class TitleScorer:
    """
    Confidence scorer for a query title against one candidate title.

    Scores are in [0, 1] except when the category penalty applies, which can
    push a score below zero. Negative scores simply fail the acceptance
    threshold; they are not clamped.
    """

    # Edit distance is only meaningful for strings of similar length
    MAX_LENGTH_DIFF = 5

    # Below this length, Jaccard on one or two short tokens is unreliable
    SHORT_TITLE_LENGTH = 5

    CATEGORY_PENALTY = 0.5

    # Restricted category → keyword the query must contain to avoid the penalty
    RESTRICTED_CATEGORIES: Dict[str, str] = {
        'anthology': 'anthology',
        'doujin': 'doujin',
        'novel': 'novel',
    }

    def __init__(self, category_penalty: float = CATEGORY_PENALTY):
        self.category_penalty = category_penalty

    @staticmethod
    def jaccard(norm1: str, norm2: str) -> float:
        """Token-set Jaccard index of two normalized strings."""
        tokens1 = set(norm1.split())
        tokens2 = set(norm2.split())
        if not tokens1 or not tokens2:
            return 0.0
        return len(tokens1 & tokens2) / len(tokens1 | tokens2)

    def edit_ratio(self, norm1: str, norm2: str) -> float:
        """
        1 - (Levenshtein distance / longer length).

        Returns 0 without computing anything when the lengths differ by
        MAX_LENGTH_DIFF or more.
        """
        if abs(len(norm1) - len(norm2)) >= self.MAX_LENGTH_DIFF:
            return 0.0
        longest = max(len(norm1), len(norm2))
        if longest == 0:
            return 0.0
        return 1.0 - (Levenshtein.distance(norm1, norm2) / longest)

    def category_penalty_for(self, query_norm: str, category: Optional[str]) -> float:
        """Penalty owed when the candidate category is restricted and unhinted."""
        if not category:
            return 0.0
        category_lower = category.lower()
        for marker, keyword in self.RESTRICTED_CATEGORIES.items():
            if marker in category_lower and keyword not in query_norm:
                return self.category_penalty
        return 0.0

    def score(
        self,
        query: Optional[str],
        candidate_title: Optional[str],
        candidate_category: Optional[str] = None
    ) -> float:
        """
        Calculate the match confidence of `candidate_title` for `query`.

        Args:
            query: Title from the reading list
            candidate_title: Catalog title (alias preferred by the resolver)
            candidate_category: Catalog category, e.g. "Doujinshi"

        Returns:
            Confidence score, 1.0 for a normalized exact match

        Examples:
            score("One Piece", "ONE PIECE") → 1.0
            score("Blue Box", "Blue Lock") → ~0.67
        """
        if not query or not candidate_title:
            return 0.0

        norm1 = normalize_title(query)
        norm2 = normalize_title(candidate_title)

        if not norm1 or not norm2:
            return 0.0

        if norm1 == norm2:
            return 1.0

        ratio = self.edit_ratio(norm1, norm2)

        if len(norm1) < self.SHORT_TITLE_LENGTH or len(norm2) < self.SHORT_TITLE_LENGTH:
            best = ratio
        else:
            best = max(self.jaccard(norm1, norm2), ratio)

        penalty = self.category_penalty_for(norm1, candidate_category)

        logger.debug(
            f"Similarity: '{query}' vs '{candidate_title}' → "
            f"best={best:.3f}, penalty={penalty:.1f}"
        )

        return best - penalty
