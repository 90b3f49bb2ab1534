"""
Title matching: data models, normalization and scoring.

The cache-first resolver lives in matching.resolver (it depends on the
cache and the search clients, which depend on these models).
"""

from .models import CandidateRecord, MatchKind, MatchResult, Subscription
from .matcher import TitleScorer, normalize_title, cache_key

__all__ = [
    'CandidateRecord', 'MatchKind', 'MatchResult', 'Subscription',
    'TitleScorer', 'normalize_title', 'cache_key',
]
